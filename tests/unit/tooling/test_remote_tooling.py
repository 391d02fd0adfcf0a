"""Unit tests for local tool invocation and remote dispatch."""

from __future__ import annotations

import sys

import pytest

from packtools.agents.handle import BuildAgentHandle
from packtools.agents.scope import AgentExecutionScope
from packtools.errors import CancellationToken, PackagingCancelledError
from packtools.tooling.process import (
    MISSING_EXECUTABLE_EXIT_CODE,
    LocalProcessRunner,
    ProcessRequest,
    ProcessResult,
)
from packtools.tooling.remote import (
    AgentAwareProcessRunner,
    SshRemoteCommandClient,
    build_remote_command,
)
from tests.unit.doubles import RecordingTelemetry


class _RecordingRunner:
    def __init__(self, label: str) -> None:
        self.label = label
        self.requests: list[ProcessRequest] = []

    def execute(
        self,
        request: ProcessRequest,
        *,
        cancellation: CancellationToken | None = None,
    ) -> ProcessResult:
        self.requests.append(request)
        return ProcessResult(exit_code=0, stdout=self.label)


class _ClaimingClient:
    def __init__(self, claimed: str) -> None:
        self.claimed = claimed
        self.calls: list[tuple[str, str]] = []

    def can_execute(self, agent: BuildAgentHandle) -> bool:
        return agent.name == self.claimed

    def execute(
        self,
        agent: BuildAgentHandle,
        request: ProcessRequest,
        *,
        cancellation: CancellationToken | None = None,
    ) -> ProcessResult:
        self.calls.append((agent.name, request.file_name))
        return ProcessResult(exit_code=0, stdout="remote")


@pytest.mark.unit
def test_remote_command_quotes_every_token() -> None:
    """Environment, directory, and arguments are shell-quoted."""
    request = ProcessRequest(
        file_name="pkgbuild",
        arguments=("--identifier", "com.example app", "it's.pkg"),
        working_directory="/tmp/build dir",
        environment={"SIGN_ID": "Developer ID"},
    )

    command = build_remote_command(request)

    assert command == (
        "SIGN_ID='Developer ID' cd '/tmp/build dir' && "
        "pkgbuild --identifier 'com.example app' 'it'\"'\"'s.pkg'"
    )


@pytest.mark.unit
def test_ssh_request_uses_agent_capabilities() -> None:
    """Identity, port, and user capabilities shape the ssh invocation."""
    agent = BuildAgentHandle(
        "mac-1",
        {
            "remote.sshHost": "mac1.local",
            "remote.sshUser": "builder",
            "remote.sshIdentity": "~/.ssh/id_mac",
            "remote.sshPort": "2222",
        },
    )
    client = SshRemoteCommandClient(local_runner=_RecordingRunner("ssh"))

    ssh_request = client.build_ssh_request(
        agent, ProcessRequest(file_name="hdiutil", arguments=("create",))
    )

    assert client.can_execute(agent) is True
    assert ssh_request.file_name == "ssh"
    assert ssh_request.arguments == (
        "-i",
        "~/.ssh/id_mac",
        "-p",
        "2222",
        "builder@mac1.local",
        "hdiutil create",
    )


@pytest.mark.unit
def test_ssh_client_refuses_agents_without_host() -> None:
    """Blank host capabilities are not claimed."""
    agent = BuildAgentHandle("local", {"remote.sshHost": "  "})
    client = SshRemoteCommandClient(local_runner=_RecordingRunner("ssh"))

    assert client.can_execute(agent) is False
    with pytest.raises(ValueError, match="remote.sshHost"):
        client.build_ssh_request(agent, ProcessRequest(file_name="ls"))


@pytest.mark.unit
def test_agent_aware_runner_routes_by_scope() -> None:
    """The scope's current agent selects the claiming remote client."""
    # Arrange
    local = _RecordingRunner("local")
    client = _ClaimingClient("remote-agent")
    telemetry = RecordingTelemetry()
    scope = AgentExecutionScope()
    runner = AgentAwareProcessRunner(
        local_runner=local,
        remote_clients=[client],
        telemetry=telemetry,
    )
    request = ProcessRequest(file_name="dpkg-deb")

    # Act
    outside = runner.execute(request, scope=scope)
    with scope.push(BuildAgentHandle("remote-agent")):
        inside = runner.execute(request, scope=scope)
    with scope.push(BuildAgentHandle("other-agent")):
        unclaimed = runner.execute(request, scope=scope)

    # Assert
    assert [outside.stdout, inside.stdout, unclaimed.stdout] == [
        "local",
        "remote",
        "local",
    ]
    assert client.calls == [("remote-agent", "dpkg-deb")]
    assert telemetry.event_names() == ["remote.execute"]


@pytest.mark.unit
def test_explicit_agent_overrides_scope() -> None:
    """An agent passed to execute wins over the scope."""
    client = _ClaimingClient("explicit")
    runner = AgentAwareProcessRunner(
        local_runner=_RecordingRunner("local"),
        remote_clients=[client],
    )
    scope = AgentExecutionScope()

    with scope.push(BuildAgentHandle("scoped")):
        result = runner.execute(
            ProcessRequest(file_name="rpmbuild"),
            agent=BuildAgentHandle("explicit"),
            scope=scope,
        )

    assert result.stdout == "remote"


@pytest.mark.unit
def test_local_runner_reports_missing_executable() -> None:
    """A missing tool yields exit code -1 instead of raising."""
    result = LocalProcessRunner().execute(
        ProcessRequest(file_name="packtools-no-such-tool-3f9a")
    )

    assert result.exit_code == MISSING_EXECUTABLE_EXIT_CODE
    assert result.success is False
    assert "Executable not found" in result.stderr


@pytest.mark.unit
def test_local_runner_captures_output() -> None:
    """stdout and the exit code of a real process are captured."""
    result = LocalProcessRunner(timeout=30).execute(
        ProcessRequest(
            file_name=sys.executable,
            arguments=("-c", "import os; print(os.environ['PACK_STAGE'])"),
            environment={"PACK_STAGE": "staging"},
        )
    )

    assert result.success is True
    assert result.stdout.strip() == "staging"


@pytest.mark.unit
def test_local_runner_honors_cancellation() -> None:
    """A cancelled token raises before the process starts."""
    token = CancellationToken()
    token.cancel()

    with pytest.raises(PackagingCancelledError):
        LocalProcessRunner().execute(
            ProcessRequest(file_name="ls"), cancellation=token
        )
