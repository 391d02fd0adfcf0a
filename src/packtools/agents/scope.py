"""Explicit execution scope exposing the current build agent."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock

from packtools.agents.handle import BuildAgentHandle


class AgentExecutionScope:
    """LIFO stack of agent handles owned by one pipeline run.

    Closing a frame removes exactly that frame, so the current agent is always
    the innermost frame still open, whatever order frames close in.
    """

    def __init__(self) -> None:
        """Initialize empty scope."""
        self._lock = Lock()
        self._frames: list[tuple[object, BuildAgentHandle]] = []

    @property
    def current(self) -> BuildAgentHandle | None:
        """Innermost open agent, if any."""
        with self._lock:
            if not self._frames:
                return None
            return self._frames[-1][1]

    @property
    def depth(self) -> int:
        """Number of open frames."""
        with self._lock:
            return len(self._frames)

    @contextmanager
    def push(self, handle: BuildAgentHandle) -> Iterator[BuildAgentHandle]:
        """Publish handle as the current agent until the block exits.

        Args:
            handle: Agent handle to publish.

        Yields:
            The pushed handle.
        """
        marker = object()
        with self._lock:
            self._frames.append((marker, handle))
        try:
            yield handle
        finally:
            with self._lock:
                for index in range(len(self._frames) - 1, -1, -1):
                    if self._frames[index][0] is marker:
                        del self._frames[index]
                        break
