"""Build agent brokers: local host and exclusive agent pool."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from threading import Condition
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from packtools.agents.handle import BuildAgentHandle
from packtools.errors import CancellationToken, PackagingError, PackagingErrorCode
from packtools.models import EMPTY_MAP, Platform, StringMap

_LOGGER = logging.getLogger(__name__)

LOCAL_AGENT_NAME = "local"
_CANCELLATION_POLL_SECONDS = 0.05


class BuildAgentBroker(Protocol):
    """Allocates build agents capable of executing packaging workloads."""

    def acquire(
        self,
        platform: Platform,
        *,
        cancellation: CancellationToken | None = None,
    ) -> BuildAgentHandle:
        """Lease one agent for a platform.

        Args:
            platform: Target platform.
            cancellation: Optional cancellation token.
        """


class LocalAgentBroker:
    """Hands out a fresh local-host lease for every run."""

    def __init__(self, capabilities: Mapping[str, str] | None = None) -> None:
        """Initialize broker.

        Args:
            capabilities: Capabilities advertised by the local host.
        """
        self._capabilities = dict(capabilities or {})

    def acquire(
        self,
        platform: Platform,
        *,
        cancellation: CancellationToken | None = None,
    ) -> BuildAgentHandle:
        """Return a local handle.

        Args:
            platform: Target platform.
            cancellation: Optional cancellation token.

        Returns:
            Local agent handle.
        """
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        capabilities = {"platform": platform.value, **self._capabilities}
        return BuildAgentHandle(LOCAL_AGENT_NAME, capabilities)


class AgentDefinition(BaseModel):
    """Static description of one pooled agent."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    platforms: frozenset[Platform]
    capabilities: StringMap = EMPTY_MAP


class AgentPoolBroker:
    """Round-robin broker over a fixed pool with exclusive leases.

    A leased agent is not handed out again until its handle is released.
    Callers block while every matching agent is busy.
    """

    def __init__(
        self,
        agents: Iterable[AgentDefinition],
        *,
        required_capabilities: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize pool.

        Args:
            agents: Pool members, in round-robin order.
            required_capabilities: Capabilities every leased agent must expose.

        Raises:
            ValueError: If agent names are not unique.
        """
        self._agents = tuple(agents)
        names = [agent.name for agent in self._agents]
        if len(set(names)) != len(names):
            raise ValueError("Error: agent names must be unique.")
        self._required = dict(required_capabilities or {})
        self._condition = Condition()
        self._busy: set[str] = set()
        self._cursor = 0

    @property
    def busy_agents(self) -> frozenset[str]:
        """Names of agents currently leased."""
        with self._condition:
            return frozenset(self._busy)

    def acquire(
        self,
        platform: Platform,
        *,
        cancellation: CancellationToken | None = None,
    ) -> BuildAgentHandle:
        """Lease the next free agent serving the platform.

        Args:
            platform: Target platform.
            cancellation: Optional cancellation token polled while waiting.

        Returns:
            Exclusive agent handle.

        Raises:
            PackagingError: If no pool member can ever serve the platform.
            PackagingCancelledError: If cancelled while waiting.
        """
        candidates = [
            index
            for index, agent in enumerate(self._agents)
            if self._serves(agent, platform)
        ]
        if not candidates:
            raise PackagingError(
                PackagingErrorCode.AGENT_UNAVAILABLE,
                f"Error: no build agent can serve platform '{platform.value}'.",
                data={"platform": platform.value},
            )
        with self._condition:
            while True:
                if cancellation is not None:
                    cancellation.raise_if_cancelled()
                agent = self._next_free(candidates)
                if agent is not None:
                    self._busy.add(agent.name)
                    _LOGGER.debug("leased agent %s for %s", agent.name, platform)
                    return BuildAgentHandle(
                        agent.name, agent.capabilities, on_release=self._release
                    )
                self._condition.wait(timeout=_CANCELLATION_POLL_SECONDS)

    def _serves(self, agent: AgentDefinition, platform: Platform) -> bool:
        if platform not in agent.platforms:
            return False
        return all(
            agent.capabilities.get(key) == value
            for key, value in self._required.items()
        )

    def _next_free(self, candidates: list[int]) -> AgentDefinition | None:
        """Pick next free candidate after the cursor. Caller holds the condition."""
        total = len(self._agents)
        for offset in range(total):
            index = (self._cursor + offset) % total
            if index not in candidates:
                continue
            agent = self._agents[index]
            if agent.name in self._busy:
                continue
            self._cursor = (index + 1) % total
            return agent
        return None

    def _release(self, handle: BuildAgentHandle) -> None:
        with self._condition:
            self._busy.discard(handle.name)
            self._condition.notify_all()
        _LOGGER.debug("released agent %s", handle.name)
