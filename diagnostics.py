"""Overwrite-only diagnostic snapshots of the latest run."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from errors import DiagnosticsWriteFailed
from kv_store import KeyValueStore, StoreError
from models import DiagnosticSnapshot, ExtractionResult, RawDocument, Record

DIAG_HTML_SAMPLE_CHARS = int(os.getenv("DIAG_HTML_SAMPLE_CHARS", "2000"))
DIAG_SAMPLE_SIZE = int(os.getenv("DIAG_SAMPLE_SIZE", "5"))
_CANDIDATE_MAX_CHARS = 500

SNAPSHOT_SLOTS = (
    "debug_html_sample",
    "debug_candidates",
    "debug_articles",
    "debug_counts",
    "debug_timestamp",
)

LOGGER = logging.getLogger(__name__)


def build_snapshot(
    document: RawDocument,
    result: ExtractionResult,
    records: Sequence[Record],
    now: datetime | None = None,
) -> DiagnosticSnapshot:
    """Sample the run down to a bounded size."""
    counts: dict[str, Any] = {
        "response_status": document.status_code,
        "html_length": document.length,
        "candidates": len(result.candidates),
        "extracted": len(result.records),
        "normalized": len(records),
        "strategy": result.strategy,
        "strategies_run": [a.strategy for a in result.attempts],
    }
    return DiagnosticSnapshot(
        html_sample=document.body[:DIAG_HTML_SAMPLE_CHARS],
        candidate_sample=tuple(_truncate(c) for c in result.candidates[:DIAG_SAMPLE_SIZE]),
        record_sample=tuple(records[:DIAG_SAMPLE_SIZE]),
        counts=counts,
        timestamp=now or datetime.now(UTC),
    )


def record_snapshot(store: KeyValueStore, snapshot: DiagnosticSnapshot) -> None:
    """Write every slot, replacing the previous run's values.

    Raises:
        DiagnosticsWriteFailed: the store rejected a write. Slots written
            before the failure keep their new values.
    """
    for key, value in snapshot.to_slots().items():
        try:
            store.put(key, value)
        except StoreError as exc:
            raise DiagnosticsWriteFailed(f"Could not write diagnostic slot {key}: {exc}") from exc
    LOGGER.debug("Diagnostics: wrote %s slots", len(SNAPSHOT_SLOTS))


def load_snapshot(store: KeyValueStore) -> dict[str, Any]:
    """Read the stored slots back, decoding the JSON ones."""
    snapshot: dict[str, Any] = {}
    for key in SNAPSHOT_SLOTS:
        raw = store.get(key)
        if raw is None:
            snapshot[key] = None
            continue
        if key in ("debug_candidates", "debug_articles", "debug_counts"):
            try:
                snapshot[key] = json.loads(raw)
            except ValueError:
                snapshot[key] = raw
        else:
            snapshot[key] = raw
    return snapshot


def _truncate(text: str, max_len: int = _CANDIDATE_MAX_CHARS) -> str:
    return text if len(text) <= max_len else text[: max_len - 1] + "…"
