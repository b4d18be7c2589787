"""One invocation of the extraction worker: session -> fetch -> extract -> normalize -> snapshot."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlsplit

from diagnostics import build_snapshot, record_snapshot
from errors import CredentialMissing, DiagnosticsWriteFailed, UpstreamUnavailable, WorkerError
from extraction import run_pipeline
from fetcher import TARGET_URL, retrieve
from kv_store import KeyValueStore, StoreError
from models import DiagnosticSnapshot, ExtractionResult, RawDocument, Record, SessionCredential
from normalizer import normalize
from session_store import get_session


def _default_base_url(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}/"


BASE_URL = os.getenv("BASE_URL") or _default_base_url(TARGET_URL)
LATEST_ARTICLES_KEY = "latest_articles"

LOGGER = logging.getLogger(__name__)

Fetch = Callable[[SessionCredential], RawDocument]


@dataclass(frozen=True, slots=True)
class CycleOutcome:
    records: list[Record]
    document: RawDocument
    result: ExtractionResult
    snapshot: DiagnosticSnapshot
    stale: bool


def run_cycle(
    store: KeyValueStore,
    now: datetime | None = None,
    fetch: Fetch | None = None,
    record: bool = True,
) -> CycleOutcome:
    """Run one fetch+extract cycle.

    Credential and fetch failures propagate. A failed diagnostics write is
    logged and the records are still returned.
    """
    now = now or datetime.now(UTC)
    fetch = fetch or retrieve

    credential, stale = get_session(store, now)
    document = fetch(credential)

    result = run_pipeline(document.body, BASE_URL)
    records = normalize(result.records)

    snapshot = build_snapshot(document, result, records, now)
    if record:
        try:
            record_snapshot(store, snapshot)
        except DiagnosticsWriteFailed as exc:
            LOGGER.warning("Diagnostics write failed (non-fatal): %s", exc)

    return CycleOutcome(records=records, document=document, result=result, snapshot=snapshot, stale=stale)


def run_scheduled(
    store: KeyValueStore,
    now: datetime | None = None,
    fetch: Fetch | None = None,
    dry_run: bool = False,
) -> list[Record]:
    """Scheduled tick: run a cycle and store the cleaned record set."""
    try:
        outcome = run_cycle(store, now=now, fetch=fetch, record=not dry_run)
    except (WorkerError, StoreError) as exc:
        LOGGER.error("Scheduled run failed: %s: %s", _error_kind(exc), exc)
        raise

    if dry_run:
        LOGGER.info("[dry-run] Would store %s articles under %s", len(outcome.records), LATEST_ARTICLES_KEY)
        return outcome.records

    store.put(LATEST_ARTICLES_KEY, json.dumps([r.to_dict() for r in outcome.records]))
    LOGGER.info(
        "Scheduled run complete: articles=%s strategy=%s stale_session=%s",
        len(outcome.records),
        outcome.result.strategy,
        outcome.stale,
    )
    return outcome.records


def handle_diagnostic_request(
    store: KeyValueStore,
    now: datetime | None = None,
    fetch: Fetch | None = None,
    record: bool = True,
) -> tuple[int, dict[str, Any]]:
    """Synchronous diagnostic read: re-run the cycle and report what it saw.

    Returns an HTTP status and a JSON-ready body; never raises for worker or
    store failures.
    """
    try:
        outcome = run_cycle(store, now=now, fetch=fetch, record=record)
    except CredentialMissing as exc:
        LOGGER.error("Diagnostic run failed: no session credential: %s", exc)
        return 500, {"error": "Session credential missing", "details": str(exc)}
    except UpstreamUnavailable as exc:
        LOGGER.error("Diagnostic run failed: upstream status=%s: %s", exc.status, exc)
        return 502, {"error": "Upstream unavailable", "details": str(exc), "responseStatus": exc.status}
    except (WorkerError, StoreError) as exc:
        LOGGER.error("Diagnostic run failed: %s: %s", _error_kind(exc), exc)
        return 500, {"error": "Diagnostic run failed", "details": str(exc)}

    timestamp = outcome.snapshot.timestamp or now or datetime.now(UTC)
    return 200, {
        "status": "success",
        "articleCount": len(outcome.records),
        "articles": [r.to_dict() for r in outcome.records],
        "debugInfo": {
            "responseStatus": outcome.document.status_code,
            "htmlLength": outcome.document.length,
            "timestamp": timestamp.isoformat(),
            "strategy": outcome.result.strategy,
            "staleSession": outcome.stale,
        },
    }


def _error_kind(exc: Exception) -> str:
    return getattr(exc, "kind", type(exc).__name__)
