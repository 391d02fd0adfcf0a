"""Deterministic packaging error contracts and cooperative cancellation."""

from __future__ import annotations

from enum import StrEnum
from threading import Event


class PackagingErrorCode(StrEnum):
    """Stable packaging error codes raised at outer surfaces."""

    PROJECT_NOT_FOUND = "project_not_found"
    PROJECT_INVALID = "project_invalid"
    CONFIG_INVALID = "config_invalid"
    PLUGIN_LOAD_FAILED = "plugin_load_failed"
    PIPELINE_NOT_REGISTERED = "pipeline_not_registered"
    AGENT_UNAVAILABLE = "agent_unavailable"
    CANCELLED = "cancelled"


class PackagingError(RuntimeError):
    """Packaging failure with stable deterministic code."""

    def __init__(
        self,
        code: PackagingErrorCode,
        message: str,
        *,
        data: dict[str, object] | None = None,
    ) -> None:
        """Create packaging failure.

        Args:
            code: Stable packaging error code.
            message: Human-readable error message.
            data: Optional structured payload for diagnostics.
        """
        super().__init__(message)
        self.code = code
        self.data = data or {}


class PackagingCancelledError(PackagingError):
    """Raised when a caller-requested cancellation is honored."""

    def __init__(self, message: str = "Error: packaging run was cancelled.") -> None:
        """Create cancellation failure.

        Args:
            message: Human-readable error message.
        """
        super().__init__(PackagingErrorCode.CANCELLED, message)


class CancellationToken:
    """Cooperative cancellation signal shared between a caller and one run."""

    def __init__(self) -> None:
        """Initialize an un-cancelled token."""
        self._event = Event()

    @classmethod
    def none(cls) -> CancellationToken:
        """Return a token nobody holds a reference to cancel.

        Returns:
            Fresh token that stays un-cancelled.
        """
        return cls()

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or timeout elapses.

        Args:
            timeout: Maximum seconds to wait; ``None`` waits forever.

        Returns:
            True when cancellation was requested.
        """
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        """Raise when cancellation has been requested.

        Raises:
            PackagingCancelledError: If the token is cancelled.
        """
        if self._event.is_set():
            raise PackagingCancelledError()
