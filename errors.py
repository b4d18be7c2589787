"""Exceptions raised by the extraction worker and handled at the run boundary."""

from __future__ import annotations


class WorkerError(RuntimeError):
    """Base class for failures that end a run with a structured error response."""

    kind = "worker_error"


class CredentialMissing(WorkerError):
    kind = "credential_missing"


class UpstreamUnavailable(WorkerError):
    """The target document could not be retrieved.

    ``status`` is None for transport failures (timeout, DNS, refused connection).
    ``body`` holds whatever the upstream sent back, for diagnostics.
    """

    kind = "upstream_unavailable"

    def __init__(self, status: int | None, body: str = "", message: str | None = None) -> None:
        self.status = status
        self.body = body
        super().__init__(message or f"Upstream returned status {status}")


class DiagnosticsWriteFailed(WorkerError):
    kind = "diagnostics_write_failed"
