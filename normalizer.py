"""Post-extraction cleanup: drop navigation links, then collapse duplicates."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from models import Record

# Path segments that identify section, category or listing pages rather than
# individual articles. Only matters together with a short label.
NAVIGATION_MARKERS: frozenset[str] = frozenset({
    "/news/",
    "/category/",
    "/categories/",
    "/section/",
    "/tag/",
    "/tags/",
    "/topic/",
    "/topics/",
    "/author/",
    "/page/",
    "/latest/",
    "/archive/",
})

_MAX_NAV_LABEL_TOKENS = 2


def is_navigation_record(record: Record) -> bool:
    """Return True if the record looks like a menu entry rather than an article.

    Both must hold: the label is at most two words, and the url contains a
    navigation marker. "News" -> /news/ is dropped; "Breaking News Today" ->
    /news/123 is kept.
    """
    if len(record.title.split()) > _MAX_NAV_LABEL_TOKENS:
        return False
    return any(marker in record.url for marker in NAVIGATION_MARKERS)


def filter_navigation(records: Iterable[Record]) -> list[Record]:
    return [r for r in records if not is_navigation_record(r)]


def dedupe_records(records: Iterable[Record]) -> list[Record]:
    """Collapse records sharing a url.

    Output order follows the first occurrence of each url, but the title kept
    is the one from the last occurrence. Re-assigning an existing dict key
    keeps its original position, which gives exactly that.
    """
    by_url: dict[str, Record] = {}
    for record in records:
        by_url[record.url] = record
    return list(by_url.values())


def normalize(records: Iterable[Record]) -> list[Record]:
    records = list(records)
    kept = filter_navigation(records)
    unique = dedupe_records(kept)
    logging.info(
        "Normalize: extracted=%s after_nav_filter=%s after_dedup=%s",
        len(records),
        len(kept),
        len(unique),
    )
    return unique
