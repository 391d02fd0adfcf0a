"""Remote dispatch of tool invocations to leased build agents."""

from __future__ import annotations

import logging
import shlex
from collections.abc import Iterable
from typing import Protocol

from packtools.agents.handle import BuildAgentHandle
from packtools.agents.scope import AgentExecutionScope
from packtools.errors import CancellationToken
from packtools.telemetry.channel import NullTelemetryChannel, TelemetryChannel
from packtools.tooling.process import (
    LocalProcessRunner,
    ProcessRequest,
    ProcessResult,
    ProcessRunner,
)

_LOGGER = logging.getLogger(__name__)

SSH_HOST_CAPABILITY = "remote.sshHost"
SSH_USER_CAPABILITY = "remote.sshUser"
SSH_IDENTITY_CAPABILITY = "remote.sshIdentity"
SSH_PORT_CAPABILITY = "remote.sshPort"


class RemoteCommandClient(Protocol):
    """Client able to run tools on some remote agents."""

    def can_execute(self, agent: BuildAgentHandle) -> bool:
        """Whether this client claims the agent.

        Args:
            agent: Leased agent.
        """

    def execute(
        self,
        agent: BuildAgentHandle,
        request: ProcessRequest,
        *,
        cancellation: CancellationToken | None = None,
    ) -> ProcessResult:
        """Run invocation on the agent.

        Args:
            agent: Leased agent.
            request: Invocation.
            cancellation: Optional cancellation token.
        """


def build_remote_command(request: ProcessRequest) -> str:
    """Render invocation as one POSIX shell command line.

    Args:
        request: Invocation.

    Returns:
        ``KEY=value ... cd <dir> && <tool> <args>`` with every token quoted.
    """
    parts: list[str] = []
    for key, value in (request.environment or {}).items():
        parts.append(f"{key}={shlex.quote(value)}")
    command = shlex.join([request.file_name, *request.arguments])
    if request.working_directory:
        parts.append(f"cd {shlex.quote(request.working_directory)} && {command}")
    else:
        parts.append(command)
    return " ".join(parts)


class SshRemoteCommandClient:
    """Run tools on agents exposing SSH connection capabilities."""

    def __init__(self, *, local_runner: ProcessRunner | None = None) -> None:
        """Initialize client.

        Args:
            local_runner: Runner used to launch the local ``ssh`` binary.
        """
        self._local_runner = local_runner or LocalProcessRunner()

    def can_execute(self, agent: BuildAgentHandle) -> bool:
        """Claim agents with a non-blank ``remote.sshHost`` capability.

        Args:
            agent: Leased agent.

        Returns:
            True when the agent is reachable over SSH.
        """
        host = agent.capabilities.get(SSH_HOST_CAPABILITY)
        return bool(host and host.strip())

    def build_ssh_request(
        self, agent: BuildAgentHandle, request: ProcessRequest
    ) -> ProcessRequest:
        """Translate invocation into a local ``ssh`` invocation.

        Args:
            agent: Leased agent.
            request: Invocation to run remotely.

        Returns:
            Local ssh invocation.

        Raises:
            ValueError: If the agent has no SSH host capability.
        """
        host = (agent.capabilities.get(SSH_HOST_CAPABILITY) or "").strip()
        if not host:
            raise ValueError(
                f"Error: agent '{agent.name}' is missing '{SSH_HOST_CAPABILITY}'."
            )
        user = (agent.capabilities.get(SSH_USER_CAPABILITY) or "").strip()
        identity = (agent.capabilities.get(SSH_IDENTITY_CAPABILITY) or "").strip()
        port = (agent.capabilities.get(SSH_PORT_CAPABILITY) or "").strip()
        arguments: list[str] = []
        if identity:
            arguments.extend(["-i", identity])
        if port:
            arguments.extend(["-p", port])
        arguments.append(f"{user}@{host}" if user else host)
        arguments.append(build_remote_command(request))
        return ProcessRequest(file_name="ssh", arguments=tuple(arguments))

    def execute(
        self,
        agent: BuildAgentHandle,
        request: ProcessRequest,
        *,
        cancellation: CancellationToken | None = None,
    ) -> ProcessResult:
        """Run invocation on the agent through ``ssh``.

        Args:
            agent: Leased agent.
            request: Invocation.
            cancellation: Optional cancellation token.

        Returns:
            Result reported by the remote command.
        """
        ssh_request = self.build_ssh_request(agent, request)
        return self._local_runner.execute(ssh_request, cancellation=cancellation)


class AgentAwareProcessRunner:
    """Route invocations to the remote client claiming the run's agent.

    The agent comes from the call, either directly or through the run's
    execution scope. Invocations with no agent, or whose agent no client
    claims, run locally.
    """

    def __init__(
        self,
        *,
        local_runner: ProcessRunner,
        remote_clients: Iterable[RemoteCommandClient] = (),
        telemetry: TelemetryChannel | None = None,
    ) -> None:
        """Store routing collaborators.

        Args:
            local_runner: Fallback local runner.
            remote_clients: Remote clients, consulted in order.
            telemetry: Telemetry sink for dispatch events.
        """
        self._local_runner = local_runner
        self._remote_clients = tuple(remote_clients)
        self._telemetry = telemetry or NullTelemetryChannel()

    def execute(
        self,
        request: ProcessRequest,
        *,
        agent: BuildAgentHandle | None = None,
        scope: AgentExecutionScope | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ProcessResult:
        """Run invocation on the current agent.

        Args:
            request: Invocation.
            agent: Explicit agent; wins over scope.
            scope: Execution scope of the calling run, usually
                ``PackageFormatContext.execution_scope``.
            cancellation: Optional cancellation token.

        Returns:
            Process result.
        """
        target = agent
        if target is None and scope is not None:
            target = scope.current
        if target is not None:
            for client in self._remote_clients:
                if not client.can_execute(target):
                    continue
                try:
                    self._telemetry.track_event(
                        "remote.execute",
                        {"agent": target.name, "tool": request.file_name},
                    )
                except Exception:  # noqa: BLE001
                    _LOGGER.debug("tooling.telemetry_dropped", exc_info=True)
                _LOGGER.debug(
                    "tooling.remote_dispatch tool=%s agent=%s",
                    request.file_name,
                    target.name,
                )
                return client.execute(target, request, cancellation=cancellation)
        return self._local_runner.execute(request, cancellation=cancellation)
