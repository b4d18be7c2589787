"""Tests for one worker invocation (worker.run_cycle and its boundaries)."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

import worker
from errors import CredentialMissing, UpstreamUnavailable
from kv_store import MemoryStore, StoreError
from models import RawDocument, Record
from session_store import SESSION_COOKIE_KEY, SESSION_UPDATED_AT_KEY

NOW = datetime(2026, 10, 17, 6, 0, tzinfo=UTC)

FEED_HTML = """
<div id="feed">
  <article><a href="/story/a"><h2>Alpha first headline</h2></a></article>
  <article><a href="/story/b"><h2>Beta story</h2></a></article>
  <article><a href="https://www.example.com/story/a"><h2>Alpha updated headline</h2></a></article>
  <nav><a href="/news/"><h3>News</h3></a></nav>
</div>
"""


@pytest.fixture(autouse=True)
def fixed_base_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(worker, "BASE_URL", "https://www.example.com/")


class _DiagnosticsFailingStore(MemoryStore):
    def put(self, key: str, value: str) -> None:
        if key.startswith("debug_"):
            raise StoreError("write quota exceeded")
        super().put(key, value)


def _session_store(updated_at: datetime | None = None, cls: type[MemoryStore] = MemoryStore) -> MemoryStore:
    data = {SESSION_COOKIE_KEY: "sid=abc"}
    if updated_at is not None:
        data[SESSION_UPDATED_AT_KEY] = updated_at.isoformat()
    return cls(data)


def _fetch(html: str = FEED_HTML, status: int = 200) -> MagicMock:
    return MagicMock(return_value=RawDocument(body=html, status_code=status, retrieved_at=NOW))


def test_three_containers_with_duplicate_reference_give_two_records() -> None:
    outcome = worker.run_cycle(_session_store(), now=NOW, fetch=_fetch())

    assert outcome.records == [
        Record(url="https://www.example.com/story/a", title="Alpha updated headline"),
        Record(url="https://www.example.com/story/b", title="Beta story"),
    ]
    assert outcome.result.strategy == "container"


def test_missing_credential_short_circuits_before_fetch() -> None:
    fetch = _fetch()

    with pytest.raises(CredentialMissing):
        worker.run_cycle(MemoryStore(), now=NOW, fetch=fetch)

    assert fetch.call_count == 0


def test_stale_credential_still_fetches() -> None:
    fetch = _fetch()
    store = _session_store(updated_at=NOW - timedelta(days=29))

    outcome = worker.run_cycle(store, now=NOW, fetch=fetch)

    assert fetch.call_count == 1
    assert outcome.stale is True
    assert fetch.call_args.args[0].token == "sid=abc"


def test_cycle_records_snapshot() -> None:
    store = _session_store()

    worker.run_cycle(store, now=NOW, fetch=_fetch())

    assert store.get("debug_timestamp") == NOW.isoformat()
    assert json.loads(store.get("debug_counts"))["normalized"] == 2


def test_cycle_without_recording_leaves_store_untouched() -> None:
    store = _session_store()

    worker.run_cycle(store, now=NOW, fetch=_fetch(), record=False)

    assert store.get("debug_timestamp") is None


def test_diagnostics_write_failure_does_not_block_records() -> None:
    store = _session_store(cls=_DiagnosticsFailingStore)

    outcome = worker.run_cycle(store, now=NOW, fetch=_fetch())

    assert len(outcome.records) == 2


def test_empty_extraction_is_a_valid_outcome() -> None:
    outcome = worker.run_cycle(_session_store(), now=NOW, fetch=_fetch("<html><body>Sign in</body></html>"))

    assert outcome.records == []
    assert outcome.result.strategy is None


def test_run_scheduled_stores_latest_articles() -> None:
    store = _session_store()

    records = worker.run_scheduled(store, now=NOW, fetch=_fetch())

    assert len(records) == 2
    assert json.loads(store.get(worker.LATEST_ARTICLES_KEY)) == [r.to_dict() for r in records]


def test_run_scheduled_dry_run_writes_nothing() -> None:
    store = _session_store()

    worker.run_scheduled(store, now=NOW, fetch=_fetch(), dry_run=True)

    assert store.get(worker.LATEST_ARTICLES_KEY) is None
    assert store.get("debug_html_sample") is None


def test_run_scheduled_propagates_upstream_failure() -> None:
    fetch = MagicMock(side_effect=UpstreamUnavailable(503, "maintenance"))

    with pytest.raises(UpstreamUnavailable):
        worker.run_scheduled(_session_store(), now=NOW, fetch=fetch)


def test_diagnostic_request_success_shape() -> None:
    status, body = worker.handle_diagnostic_request(_session_store(), now=NOW, fetch=_fetch())

    assert status == 200
    assert body["status"] == "success"
    assert body["articleCount"] == 2
    assert body["articles"][0] == {"title": "Alpha updated headline", "url": "https://www.example.com/story/a"}
    assert body["debugInfo"]["responseStatus"] == 200
    assert body["debugInfo"]["htmlLength"] == len(FEED_HTML)
    assert body["debugInfo"]["timestamp"] == NOW.isoformat()


def test_diagnostic_request_missing_credential() -> None:
    fetch = _fetch()

    status, body = worker.handle_diagnostic_request(MemoryStore(), now=NOW, fetch=fetch)

    assert status == 500
    assert set(body) >= {"error", "details"}
    assert fetch.call_count == 0


def test_diagnostic_request_upstream_unavailable() -> None:
    fetch = MagicMock(side_effect=UpstreamUnavailable(403, "<html>login</html>"))

    status, body = worker.handle_diagnostic_request(_session_store(), now=NOW, fetch=fetch)

    assert status == 502
    assert body["error"] == "Upstream unavailable"
    assert "403" in body["details"]


def test_diagnostic_request_store_failure() -> None:
    store = MagicMock()
    store.get.side_effect = StoreError("KV down")

    status, body = worker.handle_diagnostic_request(store, now=NOW, fetch=_fetch())

    assert status == 500
    assert "KV down" in body["details"]


def test_default_base_url_from_target() -> None:
    assert worker._default_base_url("https://news.example.org/for-you?tab=1") == "https://news.example.org/"


def test_diagnostic_request_out_of_range_timestamp_still_succeeds() -> None:
    store = MemoryStore({SESSION_COOKIE_KEY: "sid=abc", SESSION_UPDATED_AT_KEY: "9" * 20})

    status, body = worker.handle_diagnostic_request(store, now=NOW, fetch=_fetch())

    assert status == 200
    assert body["debugInfo"]["staleSession"] is False
