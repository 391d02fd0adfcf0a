"""Build agent broker and execution scope public surface."""

from packtools.agents.broker import (
    AgentDefinition,
    AgentPoolBroker,
    BuildAgentBroker,
    LocalAgentBroker,
)
from packtools.agents.handle import BuildAgentHandle
from packtools.agents.scope import AgentExecutionScope

__all__ = [
    "AgentDefinition",
    "AgentExecutionScope",
    "AgentPoolBroker",
    "BuildAgentBroker",
    "BuildAgentHandle",
    "LocalAgentBroker",
]
