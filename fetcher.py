"""Authenticated retrieval of the target document."""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime

import requests

from errors import UpstreamUnavailable
from models import RawDocument, SessionCredential

TARGET_URL = os.getenv("TARGET_URL", "https://www.example-news.com/for-you")
# A fixed desktop browser identity; the upstream ties sessions to it.
CLIENT_USER_AGENT = os.getenv(
    "CLIENT_USER_AGENT",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
)
REQUEST_TIMEOUT_SECONDS = int(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))
_LOG_BODY_CHARS = 300


def build_headers(credential: SessionCredential) -> dict[str, str]:
    return {
        "Cookie": credential.token,
        "User-Agent": CLIENT_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml",
    }


def retrieve(credential: SessionCredential, url: str | None = None) -> RawDocument:
    """Fetch the target document with the session cookie.

    The body is read before the status check so a failed response can still
    be inspected through ``UpstreamUnavailable.body``. No retries here; the
    scheduler decides whether to try again.

    Raises:
        UpstreamUnavailable: transport failure, or a status outside 2xx.
    """
    url = url or TARGET_URL

    try:
        response = requests.get(url, headers=build_headers(credential), timeout=REQUEST_TIMEOUT_SECONDS)
    except requests.RequestException as exc:
        logging.warning("Fetch: request to %s failed: %s", url, exc)
        raise UpstreamUnavailable(None, message=f"Request to {url} failed: {exc}") from exc

    body = response.text or ""
    if not 200 <= response.status_code < 300:
        logging.warning(
            "Fetch: status=%s length=%s body_prefix=%r",
            response.status_code,
            len(body),
            body[:_LOG_BODY_CHARS],
        )
        raise UpstreamUnavailable(response.status_code, body)

    document = RawDocument(body=body, status_code=response.status_code, retrieved_at=datetime.now(UTC))
    logging.info("Fetch: url=%s status=%s length=%s", url, document.status_code, document.length)
    return document
