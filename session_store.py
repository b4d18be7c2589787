"""Session cookie lifecycle: read, staleness check, out-of-band save."""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime, timedelta

from errors import CredentialMissing
from kv_store import KeyValueStore
from models import SessionCredential

SESSION_COOKIE_KEY = "session_cookie"
SESSION_UPDATED_AT_KEY = "session_updated_at"

SESSION_LIFETIME = timedelta(days=int(os.getenv("SESSION_LIFETIME_DAYS", "30")))
SESSION_GRACE = timedelta(days=int(os.getenv("SESSION_GRACE_DAYS", "3")))

LOGGER = logging.getLogger(__name__)


def load_credential(store: KeyValueStore) -> SessionCredential:
    """Read the stored session cookie. Never tries to renew it.

    Raises:
        CredentialMissing: nothing (or only whitespace) is stored under the cookie key.
    """
    token = store.get(SESSION_COOKIE_KEY)
    if not token or not token.strip():
        raise CredentialMissing(f"No session credential stored under {SESSION_COOKIE_KEY!r}")

    updated_at = _parse_timestamp(store.get(SESSION_UPDATED_AT_KEY))
    expires_at = None
    if updated_at is not None:
        try:
            expires_at = updated_at + SESSION_LIFETIME
        except OverflowError:
            LOGGER.warning("Session expiry out of range for updated_at=%s; treating as unknown", updated_at)
    return SessionCredential(token=token.strip(), updated_at=updated_at, expires_at=expires_at)


def is_stale(credential: SessionCredential, now: datetime) -> bool:
    """True when the known expiry falls inside the grace window after ``now``.

    A credential without a known expiry is never stale.
    """
    if credential.expires_at is None:
        return False
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return credential.expires_at < now + SESSION_GRACE


def get_session(store: KeyValueStore, now: datetime | None = None) -> tuple[SessionCredential, bool]:
    """Load the credential and flag staleness; a stale credential is still returned."""
    now = now or datetime.now(UTC)
    credential = load_credential(store)
    stale = is_stale(credential, now)
    if stale:
        LOGGER.warning(
            "Session credential is stale: expires_at=%s grace_days=%s; proceeding anyway",
            credential.expires_at.isoformat() if credential.expires_at else None,
            SESSION_GRACE.days,
        )
    return credential, stale


def save_credential(store: KeyValueStore, token: str, now: datetime | None = None) -> SessionCredential:
    """Replace the stored credential wholesale with a freshly exported cookie."""
    token = token.strip()
    if not token:
        raise ValueError("Refusing to store an empty session cookie")

    now = now or datetime.now(UTC)
    store.put(SESSION_COOKIE_KEY, token)
    store.put(SESSION_UPDATED_AT_KEY, now.isoformat())
    LOGGER.info("Stored new session credential (%s chars) updated_at=%s", len(token), now.isoformat())
    return SessionCredential(token=token, updated_at=now, expires_at=now + SESSION_LIFETIME)


def _parse_timestamp(raw: str | None) -> datetime | None:
    if not raw or not raw.strip():
        return None

    value = raw.strip()
    # Epoch milliseconds, as written by some browser export tools.
    if value.isdigit():
        try:
            return datetime.fromtimestamp(int(value) / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            LOGGER.warning("Ignoring out-of-range %s value: %r", SESSION_UPDATED_AT_KEY, raw)
            return None

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        LOGGER.warning("Ignoring unparseable %s value: %r", SESSION_UPDATED_AT_KEY, raw)
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
