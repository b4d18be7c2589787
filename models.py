"""Shared typed models for the extraction worker."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class SessionCredential:
    """Session cookie as stored by the out-of-band refresh tool."""

    token: str
    updated_at: datetime | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class RawDocument:
    """Fetched document body plus response metadata for one invocation."""

    body: str
    status_code: int
    retrieved_at: datetime

    @property
    def length(self) -> int:
        return len(self.body)


@dataclass(frozen=True, slots=True)
class Record:
    """One extracted article. ``url`` is the absolute identity key."""

    url: str
    title: str

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "url": self.url}


@dataclass(frozen=True, slots=True)
class ExtractionAttempt:
    strategy: str
    records: tuple[Record, ...]

    @property
    def succeeded(self) -> bool:
        return bool(self.records)


@dataclass(frozen=True, slots=True)
class ExtractionResult:
    """Outcome of the fallback chain.

    ``attempts`` only lists strategies that actually ran; ``strategy`` is the
    name of the winner, or None when every strategy came back empty.
    """

    records: tuple[Record, ...]
    attempts: tuple[ExtractionAttempt, ...]
    candidates: tuple[str, ...] = ()
    strategy: str | None = None


@dataclass(frozen=True, slots=True)
class DiagnosticSnapshot:
    """Bounded samples of one run, written to fixed overwrite-only slots."""

    html_sample: str
    candidate_sample: tuple[str, ...]
    record_sample: tuple[Record, ...]
    counts: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime | None = None

    def to_slots(self) -> dict[str, str]:
        return {
            "debug_html_sample": self.html_sample,
            "debug_candidates": json.dumps(list(self.candidate_sample)),
            "debug_articles": json.dumps([r.to_dict() for r in self.record_sample]),
            "debug_counts": json.dumps(self.counts),
            "debug_timestamp": self.timestamp.isoformat() if self.timestamp else "",
        }
