"""Identity attached to the current packaging invocation."""

from __future__ import annotations

from threading import Lock

from packtools.identity.models import IdentityResult


class IdentityContextAccessor:
    """Lock-guarded holder for the identity of the current invocation."""

    def __init__(self, identity: IdentityResult | None = None) -> None:
        """Initialize accessor.

        Args:
            identity: Optional identity to start with.
        """
        self._lock = Lock()
        self._identity = identity

    @property
    def identity(self) -> IdentityResult | None:
        """Current identity, if one was attached."""
        with self._lock:
            return self._identity

    def set_identity(self, identity: IdentityResult) -> None:
        """Attach identity for subsequent runs.

        Args:
            identity: Acquired identity result.
        """
        with self._lock:
            self._identity = identity

    def clear(self) -> None:
        """Detach any attached identity."""
        with self._lock:
            self._identity = None
