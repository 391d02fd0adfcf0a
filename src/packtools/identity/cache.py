"""In-memory identity cache with expiry margin and scope checks."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from threading import Lock

from packtools.identity.models import IdentityResult

DEFAULT_SAFETY_MARGIN = timedelta(seconds=60)


def utc_now() -> datetime:
    """Return current UTC time."""
    return datetime.now(UTC)


class IdentityCache:
    """Thread-safe cache of acquired identities keyed by caller-chosen key."""

    def __init__(
        self,
        *,
        safety_margin: timedelta = DEFAULT_SAFETY_MARGIN,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize empty cache.

        Args:
            safety_margin: Minimum remaining token lifetime for a usable entry.
            clock: UTC clock, replaceable in tests.
        """
        self._lock = Lock()
        self._entries: dict[str, IdentityResult] = {}
        self._safety_margin = safety_margin
        self._clock = clock

    def try_get(self, key: str, scopes: Iterable[str]) -> IdentityResult | None:
        """Return cached identity when its access token is still usable.

        An entry is usable only while its access token expires after
        ``now + safety_margin`` and carries every requested scope.

        Args:
            key: Cache key.
            scopes: Scopes the caller needs.

        Returns:
            Cached identity or None.
        """
        with self._lock:
            cached = self._entries.get(key)
        if cached is None or cached.access_token is None:
            return None
        token = cached.access_token
        if token.expires_at <= self._clock() + self._safety_margin:
            return None
        if not set(scopes).issubset(token.scopes):
            return None
        return cached

    def set(self, key: str, identity: IdentityResult) -> None:
        """Store identity under key.

        Args:
            key: Cache key.
            identity: Identity to cache.
        """
        with self._lock:
            self._entries[key] = identity

    def invalidate(self, key: str) -> None:
        """Drop one cached entry if present.

        Args:
            key: Cache key.
        """
        with self._lock:
            self._entries.pop(key, None)
