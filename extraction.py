"""Pattern-based article extraction with an ordered fallback chain.

The target page is matched with regular expressions rather than parsed into
a DOM. Three strategies run from most to least specific:

  container: one record per ``<article>`` block that holds both a link and
             a heading.
  heading:   headings whose class marks them as a title, paired with the
             link inside, around, or right after them.
  broad:     any heading/link pair (link inside a heading, or a link that
             wraps a heading).

The first strategy that yields at least one record wins and the chain stops.
An empty result from all three is a valid outcome, not an error.
"""

from __future__ import annotations

import html
import logging
import re
from collections.abc import Callable, Sequence
from urllib.parse import urljoin

from models import ExtractionAttempt, ExtractionResult, Record

LOGGER = logging.getLogger(__name__)

StrategyOutput = tuple[list[Record], list[str]]
Strategy = Callable[[str, str], StrategyOutput]

_FLAGS = re.IGNORECASE | re.DOTALL

_ARTICLE_RE = re.compile(r"<article\b[^>]*>(.*?)</article\s*>", _FLAGS)
_HEADING_RE = re.compile(r"<(h[1-6])\b([^>]*)>(.*?)</\1\s*>", _FLAGS)
_LINK_RE = re.compile(r"""<a\b[^>]*?\bhref\s*=\s*(["'])(.*?)\1[^>]*>(.*?)</a\s*>""", _FLAGS)
_LINK_OPEN_RE = re.compile(r"""<a\b[^>]*?\bhref\s*=\s*(["'])(.*?)\1[^>]*>""", _FLAGS)
_LINK_CLOSE_RE = re.compile(r"</a\s*>", re.IGNORECASE)
_TITLE_CLASS_RE = re.compile(
    r"""\bclass\s*=\s*(["'])[^"']*\b(?:title|headline|heading)\b[^"']*\1""", re.IGNORECASE
)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")

# How far (in characters) to look around a title heading for its link.
_ADJACENT_WINDOW = 400
# Upper bound on raw fragments kept for diagnostics per strategy.
MAX_CANDIDATES = 50

_REJECTED_SCHEMES = ("javascript:", "mailto:", "tel:", "data:")


def clean_label(fragment: str) -> str:
    """Strip tags, decode entities and collapse whitespace."""
    text = _TAG_RE.sub(" ", fragment)
    return _WS_RE.sub(" ", html.unescape(text)).strip()


def resolve_reference(href: str, base_url: str) -> str:
    """Qualify ``href`` against ``base_url``.

    Raises:
        ValueError: empty, fragment-only or non-navigable references.
    """
    value = html.unescape(href).strip()
    if not value or value.startswith("#"):
        raise ValueError(f"Not a navigable reference: {href!r}")
    if value.lower().startswith(_REJECTED_SCHEMES):
        raise ValueError(f"Unsupported reference scheme: {href!r}")
    return urljoin(base_url, value)


def _make_record(href: str, label_fragment: str, base_url: str) -> Record:
    title = clean_label(label_fragment)
    if not title:
        raise ValueError("Empty label")
    return Record(url=resolve_reference(href, base_url), title=title)


def extract_containers(document: str, base_url: str) -> StrategyOutput:
    """One record per ``<article>`` block carrying both a link and a heading."""
    records: list[Record] = []
    fragments: list[str] = []

    for match in _ARTICLE_RE.finditer(document):
        block = match.group(1)
        if len(fragments) < MAX_CANDIDATES:
            fragments.append(match.group(0))

        link = _LINK_RE.search(block)
        heading = _HEADING_RE.search(block)
        if link is None or heading is None:
            continue
        try:
            records.append(_make_record(link.group(2), heading.group(3), base_url))
        except ValueError as exc:
            LOGGER.debug("container: skipped candidate at offset %s: %s", match.start(), exc)

    return records, fragments


def _link_for_heading(document: str, heading: re.Match[str]) -> str | None:
    inner = _LINK_RE.search(heading.group(3))
    if inner is not None:
        return inner.group(2)

    # Heading wrapped by an anchor that is still open when the heading starts.
    before = document[max(0, heading.start() - _ADJACENT_WINDOW):heading.start()]
    openers = list(_LINK_OPEN_RE.finditer(before))
    if openers and not _LINK_CLOSE_RE.search(before, openers[-1].end()):
        return openers[-1].group(2)

    after = _LINK_RE.search(document[heading.end():heading.end() + _ADJACENT_WINDOW])
    if after is not None:
        return after.group(2)
    return None


def extract_title_headings(document: str, base_url: str) -> StrategyOutput:
    """Headings with a title-like class, paired with an adjacent link."""
    records: list[Record] = []
    fragments: list[str] = []

    for heading in _HEADING_RE.finditer(document):
        if not _TITLE_CLASS_RE.search(heading.group(2)):
            continue
        if len(fragments) < MAX_CANDIDATES:
            fragments.append(heading.group(0))

        href = _link_for_heading(document, heading)
        if href is None:
            continue
        try:
            records.append(_make_record(href, heading.group(3), base_url))
        except ValueError as exc:
            LOGGER.debug("heading: skipped candidate at offset %s: %s", heading.start(), exc)

    return records, fragments


def extract_any_heading_links(document: str, base_url: str) -> StrategyOutput:
    """Loosest match: links inside headings, and links wrapping headings."""
    found: list[tuple[int, str, str, str]] = []

    for heading in _HEADING_RE.finditer(document):
        link = _LINK_RE.search(heading.group(3))
        if link is not None:
            found.append((heading.start(), link.group(2), link.group(3), heading.group(0)))

    for link in _LINK_RE.finditer(document):
        heading = _HEADING_RE.search(link.group(3))
        if heading is not None:
            found.append((link.start(), link.group(2), heading.group(3), link.group(0)))

    found.sort(key=lambda item: item[0])

    records: list[Record] = []
    fragments: list[str] = []
    for offset, href, label, fragment in found:
        if len(fragments) < MAX_CANDIDATES:
            fragments.append(fragment)
        try:
            records.append(_make_record(href, label, base_url))
        except ValueError as exc:
            LOGGER.debug("broad: skipped candidate at offset %s: %s", offset, exc)

    return records, fragments


STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("container", extract_containers),
    ("heading", extract_title_headings),
    ("broad", extract_any_heading_links),
)


def run_pipeline(
    document: str,
    base_url: str,
    strategies: Sequence[tuple[str, Strategy]] = STRATEGIES,
) -> ExtractionResult:
    """Run ``strategies`` in order and return the first non-empty result.

    A strategy that raises is logged and counted as empty.
    """
    attempts: list[ExtractionAttempt] = []
    candidates: list[str] = []

    for name, strategy in strategies:
        try:
            records, fragments = strategy(document, base_url)
        except Exception as exc:  # a broken strategy counts as empty
            LOGGER.exception("Strategy %s failed, treating as empty: %s", name, exc)
            records, fragments = [], []

        attempt = ExtractionAttempt(strategy=name, records=tuple(records))
        attempts.append(attempt)
        candidates.extend(fragments)
        LOGGER.debug("Strategy %s: candidates=%s records=%s", name, len(fragments), len(records))

        if attempt.succeeded:
            LOGGER.info("Extraction: strategy=%s records=%s", name, len(attempt.records))
            return ExtractionResult(
                records=attempt.records,
                attempts=tuple(attempts),
                candidates=tuple(candidates),
                strategy=name,
            )

    LOGGER.info("Extraction: no records from any of %s strategies", len(attempts))
    return ExtractionResult(records=(), attempts=tuple(attempts), candidates=tuple(candidates))
