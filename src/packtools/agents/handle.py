"""Leased build agent handle."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from threading import Lock
from types import MappingProxyType, TracebackType


class BuildAgentHandle:
    """Exclusive lease on one execution agent for one pipeline run.

    Capabilities are copied and frozen at lease time. ``release`` is
    idempotent; the broker's release callback runs exactly once.
    """

    def __init__(
        self,
        name: str,
        capabilities: Mapping[str, str] | None = None,
        *,
        on_release: Callable[[BuildAgentHandle], None] | None = None,
    ) -> None:
        """Create handle.

        Args:
            name: Agent name.
            capabilities: Agent capability map.
            on_release: Callback invoked once when the lease ends.
        """
        self._name = name
        self._capabilities = MappingProxyType(dict(capabilities or {}))
        self._on_release = on_release
        self._lock = Lock()
        self._released = False

    @property
    def name(self) -> str:
        """Agent name."""
        return self._name

    @property
    def capabilities(self) -> Mapping[str, str]:
        """Read-only capability map, stable for the lease lifetime."""
        return self._capabilities

    @property
    def released(self) -> bool:
        """Whether the lease has ended."""
        with self._lock:
            return self._released

    def release(self) -> None:
        """End the lease; repeated calls are no-ops."""
        with self._lock:
            if self._released:
                return
            self._released = True
        if self._on_release is not None:
            self._on_release(self)

    def __enter__(self) -> BuildAgentHandle:
        """Return self for ``with`` usage."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Release the lease on scope exit."""
        self.release()

    def __repr__(self) -> str:
        return f"BuildAgentHandle(name={self._name!r}, released={self.released})"
