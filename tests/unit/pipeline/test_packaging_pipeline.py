"""Unit tests for the platform-bound packaging pipeline."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from pathlib import Path

import pytest

from packtools.agents.broker import AgentDefinition, AgentPoolBroker
from packtools.agents.handle import BuildAgentHandle
from packtools.agents.scope import AgentExecutionScope
from packtools.audit.auditor import SnapshotRunAuditor
from packtools.audit.service import ConfigurationAuditService
from packtools.errors import CancellationToken, PackagingCancelledError
from packtools.models import (
    IssueSeverity,
    PackagingArtifact,
    PackagingIssue,
    Platform,
)
from packtools.pipeline.pipeline import PackagingPipeline
from packtools.pipeline.project_store import InMemoryProjectStore
from packtools.pipeline.providers import PackageFormatContext
from packtools.policy.evaluator import PolicyEngineEvaluator
from packtools.policy.models import PolicyEvaluationContext, PolicyEvaluationResult
from tests.unit.doubles import (
    CountingAgentBroker,
    FakeProvider,
    RecordingTelemetry,
    StaticPolicyEvaluator,
    make_project,
    make_request,
)


def _pipeline(
    platform: Platform,
    providers: Iterable[FakeProvider],
    *,
    metadata: dict[str, str] | None = None,
    policy: object | None = None,
    broker: object | None = None,
    telemetry: RecordingTelemetry | None = None,
    **kwargs: object,
) -> PackagingPipeline:
    return PackagingPipeline(
        platform,
        project_store=InMemoryProjectStore([make_project(metadata=metadata)]),
        providers=providers,
        policy_evaluator=policy or StaticPolicyEvaluator(),  # type: ignore[arg-type]
        agent_broker=broker or CountingAgentBroker(),  # type: ignore[arg-type]
        telemetry=telemetry,
        **kwargs,  # type: ignore[arg-type]
    )


class _RaisingVerifier:
    def verify(
        self, context: PackageFormatContext, artifact: PackagingArtifact
    ) -> list[PackagingIssue]:
        raise RuntimeError("verifier exploded")


class _ExtensionVerifier:
    def verify(
        self, context: PackageFormatContext, artifact: PackagingArtifact
    ) -> list[PackagingIssue]:
        return [PackagingIssue.warning("verify.checked", artifact.path)]


class _ExplodingPolicy:
    def evaluate(
        self,
        context: PolicyEvaluationContext,
        *,
        cancellation: CancellationToken | None = None,
    ) -> PolicyEvaluationResult:
        raise RuntimeError("policy backend offline")


@pytest.mark.unit
def test_unmatched_format_is_silently_skipped() -> None:
    """Requesting msix+msi with only an msix provider yields msix artifacts only."""
    # Arrange - only msix is registered
    msix = FakeProvider("msix")
    pipeline = _pipeline(Platform.WINDOWS, [msix])

    # Act
    result = pipeline.execute(make_request(Platform.WINDOWS, ("msix", "msi")))

    # Assert - no complaint about msi
    assert [artifact.format for artifact in result.artifacts] == ["msix"]
    assert result.issues == ()
    assert result.success is True


@pytest.mark.unit
def test_unmatched_format_warning_is_opt_in() -> None:
    """warn_on_unmatched_formats adds one warning per unmatched format."""
    pipeline = _pipeline(
        Platform.WINDOWS, [FakeProvider("msix")], warn_on_unmatched_formats=True
    )

    result = pipeline.execute(make_request(Platform.WINDOWS, ("msix", "msi")))

    assert [issue.code for issue in result.issues] == ["windows.format_unmatched"]
    assert result.issues[0].severity == IssueSeverity.WARNING
    assert result.success is True


@pytest.mark.unit
def test_format_matching_is_case_insensitive() -> None:
    """Requested format tokens match providers regardless of case."""
    msix = FakeProvider("msix")
    pipeline = _pipeline(Platform.WINDOWS, [msix])

    result = pipeline.execute(make_request(Platform.WINDOWS, ("MSIX",)))

    assert len(msix.calls) == 1
    assert result.success is True


@pytest.mark.unit
def test_failing_provider_does_not_abort_siblings() -> None:
    """A throwing dmg provider yields one mac.dmg error; pkg still contributes."""
    # Arrange
    dmg = FakeProvider("dmg", error=RuntimeError("hdiutil crashed"))
    pkg = FakeProvider("pkg")
    telemetry = RecordingTelemetry()
    pipeline = _pipeline(Platform.MACOS, [dmg, pkg], telemetry=telemetry)

    # Act
    result = pipeline.execute(make_request(Platform.MACOS, ("dmg", "pkg")))

    # Assert
    assert [artifact.format for artifact in result.artifacts] == ["pkg"]
    errors = [issue for issue in result.issues if issue.is_blocking]
    assert len(errors) == 1
    assert errors[0].code == "mac.dmg.exception"
    assert errors[0].message == "hdiutil crashed"
    assert result.success is False
    outcomes = {name: success for name, _, success, _ in telemetry.dependencies}
    assert outcomes == {"dmg": False, "pkg": True}
    failure = next(
        props for name, _, _, props in telemetry.dependencies if name == "dmg"
    )
    assert failure["exception"] == "RuntimeError"


@pytest.mark.unit
def test_provider_issues_and_artifacts_are_collected_in_registration_order() -> None:
    """Providers run sequentially in registration order."""
    order: list[str] = []
    first = FakeProvider("deb", on_package=lambda _: order.append("deb"))
    second = FakeProvider(
        "rpm",
        issues=[PackagingIssue.warning("linux.rpm.lint", "rpmlint reported a warning")],
        on_package=lambda _: order.append("rpm"),
    )
    pipeline = _pipeline(Platform.LINUX, [first, second])

    result = pipeline.execute(make_request(Platform.LINUX, ("rpm", "deb")))

    assert order == ["deb", "rpm"]
    assert [artifact.format for artifact in result.artifacts] == ["deb", "rpm"]
    assert [issue.code for issue in result.issues] == ["linux.rpm.lint"]
    assert result.success is True


@pytest.mark.unit
@pytest.mark.parametrize("fails", [False, True], ids=["success", "provider_error"])
def test_agent_released_once_and_workspace_removed(fails: bool) -> None:
    """The agent lease ends exactly once and the working directory is deleted."""
    # Arrange
    seen_dirs: list[Path] = []
    broker = CountingAgentBroker()
    provider = FakeProvider(
        "msix",
        error=RuntimeError("makeappx failed") if fails else None,
        on_package=lambda context: seen_dirs.append(context.working_directory),
    )
    pipeline = _pipeline(Platform.WINDOWS, [provider], broker=broker)

    # Act
    result = pipeline.execute(make_request())

    # Assert
    assert result.success is not fails
    assert len(broker.handles) == 1
    assert broker.releases_of(broker.handles[0]) == 1
    assert broker.handles[0].released is True
    assert len(seen_dirs) == 1
    assert not seen_dirs[0].exists()


@pytest.mark.unit
def test_cancellation_releases_agent_and_propagates() -> None:
    """An honored cancel raises and still cleans up the lease and workspace."""
    # Arrange - first provider requests cancellation mid-run
    token = CancellationToken()
    seen: list[PackageFormatContext] = []

    def cancel(context: PackageFormatContext) -> None:
        seen.append(context)
        token.cancel()

    first = FakeProvider("deb", on_package=cancel)
    second = FakeProvider("rpm")
    broker = CountingAgentBroker()
    pipeline = _pipeline(Platform.LINUX, [first, second], broker=broker)

    # Act / Assert
    with pytest.raises(PackagingCancelledError):
        pipeline.execute(
            make_request(Platform.LINUX, ("deb", "rpm")), cancellation=token
        )
    assert second.calls == []
    assert broker.releases_of(broker.handles[0]) == 1
    assert not seen[0].working_directory.exists()
    assert seen[0].execution_scope.current is None


@pytest.mark.unit
def test_cancelled_before_start_raises_without_leasing() -> None:
    """A token cancelled up front is honored before any resource is taken."""
    token = CancellationToken()
    token.cancel()
    broker = CountingAgentBroker()
    pipeline = _pipeline(Platform.WINDOWS, [FakeProvider("msix")], broker=broker)

    with pytest.raises(PackagingCancelledError):
        pipeline.execute(make_request(), cancellation=token)
    assert broker.handles == []


@pytest.mark.unit
def test_blocked_policy_short_circuits_providers() -> None:
    """A blocked decision is returned verbatim and no provider runs."""
    # Arrange
    blocked = PolicyEvaluationResult.blocked(
        [
            PackagingIssue.error("policy.approval.missing_token", "no token"),
            PackagingIssue.warning("policy.signing.timestamp_recommended", "tsa"),
        ]
    )
    provider = FakeProvider("msix")
    broker = CountingAgentBroker()
    telemetry = RecordingTelemetry()
    pipeline = _pipeline(
        Platform.WINDOWS,
        [provider],
        policy=StaticPolicyEvaluator(blocked),
        broker=broker,
        telemetry=telemetry,
    )

    # Act
    result = pipeline.execute(make_request())

    # Assert
    assert result.issues == blocked.issues
    assert result.artifacts == ()
    assert provider.calls == []
    assert broker.handles == []
    assert "pipeline.completed" not in telemetry.event_names()


@pytest.mark.unit
def test_signing_policy_blocks_run_without_signing_material() -> None:
    """Required signing with no signing keys blocks with policy.signing.required."""
    provider = FakeProvider("msix")
    pipeline = _pipeline(
        Platform.WINDOWS,
        [provider],
        metadata={"policy.signing.required": "true"},
        policy=PolicyEngineEvaluator(),
    )

    result = pipeline.execute(make_request())

    assert [issue.code for issue in result.issues] == ["policy.signing.required"]
    assert result.success is False
    assert provider.calls == []


@pytest.mark.unit
def test_policy_warnings_are_carried_into_allowed_runs() -> None:
    """Signing without a timestamp service surfaces the recommendation warning."""
    pipeline = _pipeline(
        Platform.WINDOWS,
        [FakeProvider("msix")],
        metadata={
            "policy.signing.required": "true",
            "windows.signing.certificateThumbprint": "ABCDEF",
        },
        policy=PolicyEngineEvaluator(),
    )

    result = pipeline.execute(make_request())

    assert result.success is True
    assert [issue.code for issue in result.issues] == [
        "policy.signing.timestamp_recommended"
    ]
    assert len(result.artifacts) == 1


@pytest.mark.unit
def test_platform_mismatch_is_reported() -> None:
    """A linux request sent to the windows pipeline fails with a mismatch issue."""
    provider = FakeProvider("msix")
    pipeline = _pipeline(Platform.WINDOWS, [provider])

    result = pipeline.execute(make_request(Platform.LINUX, ("deb",)))

    assert [issue.code for issue in result.issues] == ["windows.platform_mismatch"]
    assert provider.calls == []


@pytest.mark.unit
def test_unknown_project_is_reported() -> None:
    """A request for an unknown project fails without telemetry completion."""
    telemetry = RecordingTelemetry()
    pipeline = _pipeline(Platform.MACOS, [FakeProvider("pkg")], telemetry=telemetry)

    result = pipeline.execute(
        make_request(Platform.MACOS, ("pkg",), project_id="missing")
    )

    assert [issue.code for issue in result.issues] == ["mac.project_not_found"]
    assert telemetry.events == []


@pytest.mark.unit
def test_no_matching_provider_fails_and_releases_agent() -> None:
    """When nothing matches, the run fails with no_providers after leasing."""
    broker = CountingAgentBroker()
    pipeline = _pipeline(Platform.LINUX, [FakeProvider("deb")], broker=broker)

    result = pipeline.execute(make_request(Platform.LINUX, ("appimage",)))

    assert [issue.code for issue in result.issues] == ["linux.no_providers"]
    assert broker.releases_of(broker.handles[0]) == 1


@pytest.mark.unit
def test_unavailable_agent_becomes_issue() -> None:
    """A pool without windows agents yields windows.agent_unavailable."""
    broker = AgentPoolBroker(
        [AgentDefinition(name="linux-1", platforms=frozenset({Platform.LINUX}))]
    )
    provider = FakeProvider("msix")
    pipeline = _pipeline(Platform.WINDOWS, [provider], broker=broker)

    result = pipeline.execute(make_request())

    assert [issue.code for issue in result.issues] == ["windows.agent_unavailable"]
    assert provider.calls == []


@pytest.mark.unit
def test_unexpected_failure_becomes_pipeline_exception_issue() -> None:
    """An exception outside providers is converted, never raised."""
    pipeline = _pipeline(
        Platform.WINDOWS, [FakeProvider("msix")], policy=_ExplodingPolicy()
    )

    result = pipeline.execute(make_request())

    assert [issue.code for issue in result.issues] == ["windows.pipeline.exception"]
    assert result.issues[0].message == "policy backend offline"


@pytest.mark.unit
def test_completion_telemetry_describes_the_run() -> None:
    """pipeline.completed and per-artifact events carry run details."""
    telemetry = RecordingTelemetry()
    pipeline = _pipeline(Platform.WINDOWS, [FakeProvider("msix")], telemetry=telemetry)

    pipeline.execute(make_request(configuration="Beta"))

    names = telemetry.event_names()
    assert names == [
        "windows.provider.start",
        "pipeline.completed",
        "pipeline.artifact",
    ]
    completed = telemetry.events[1][1]
    assert completed["projectId"] == "sample"
    assert completed["displayName"] == "Sample App (windows)"
    assert completed["channel"] == "Beta"
    assert completed["platform"] == "windows"
    assert completed["status"] == "succeeded"
    assert completed["blockingIssues"] == 0
    assert telemetry.events[2][1]["jobId"] == completed["jobId"]


@pytest.mark.unit
def test_failing_telemetry_never_breaks_a_run() -> None:
    """Telemetry sink failures are swallowed."""

    class _BrokenTelemetry(RecordingTelemetry):
        def track_event(self, name: str, properties: object = None) -> None:
            raise OSError("disk full")

    pipeline = _pipeline(
        Platform.WINDOWS, [FakeProvider("msix")], telemetry=_BrokenTelemetry()
    )

    result = pipeline.execute(make_request())

    assert result.success is True


@pytest.mark.unit
def test_execution_scope_exposes_agent_during_provider_run() -> None:
    """Providers observe the leased agent through the run's execution scope."""
    seen: list[PackageFormatContext] = []
    current: list[BuildAgentHandle | None] = []

    def record(context: PackageFormatContext) -> None:
        seen.append(context)
        current.append(context.execution_scope.current)

    pipeline = _pipeline(Platform.WINDOWS, [FakeProvider("msix", on_package=record)])

    result = pipeline.execute(make_request())

    assert result.success is True
    assert current[0] is not None
    assert current[0].name == "agent-0"
    assert current[0] is seen[0].agent
    assert seen[0].execution_scope.current is None


@pytest.mark.unit
def test_concurrent_runs_each_see_only_their_own_agent() -> None:
    """Overlapping runs on one pipeline never observe each other's agent."""
    # Arrange
    barrier = threading.Barrier(2, timeout=5)
    observed: list[tuple[str, str | None]] = []
    scopes: list[AgentExecutionScope] = []
    lock = threading.Lock()

    def record(context: PackageFormatContext) -> None:
        barrier.wait()
        current = context.execution_scope.current
        with lock:
            scopes.append(context.execution_scope)
            observed.append(
                (
                    context.agent.name if context.agent else "",
                    current.name if current else None,
                )
            )
        barrier.wait()

    broker = AgentPoolBroker(
        [
            AgentDefinition(name="a1", platforms=frozenset({Platform.LINUX})),
            AgentDefinition(name="a2", platforms=frozenset({Platform.LINUX})),
        ]
    )
    pipeline = _pipeline(
        Platform.LINUX, [FakeProvider("deb", on_package=record)], broker=broker
    )
    results: list[bool] = []

    def run() -> None:
        outcome = pipeline.execute(make_request(Platform.LINUX, ("deb",)))
        with lock:
            results.append(outcome.success)

    workers = [threading.Thread(target=run) for _ in range(2)]

    # Act
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join(timeout=10)

    # Assert
    assert results == [True, True]
    assert sorted(observed) == [("a1", "a1"), ("a2", "a2")]
    assert scopes[0] is not scopes[1]
    assert broker.busy_agents == frozenset()


@pytest.mark.unit
def test_verification_runs_only_when_enabled() -> None:
    """Verifiers run when verify.enabled is truthy and errors are converted."""
    pipeline = _pipeline(
        Platform.WINDOWS,
        [FakeProvider("msix")],
        verifiers=[_ExtensionVerifier(), _RaisingVerifier()],
    )

    skipped = pipeline.execute(make_request())
    verified = pipeline.execute(make_request(properties={"verify.enabled": "true"}))

    assert skipped.issues == ()
    assert [issue.code for issue in verified.issues] == [
        "verify.checked",
        "windows.verify.exception",
    ]
    assert verified.success is False


@pytest.mark.unit
def test_audit_pass_captures_snapshot_when_enabled() -> None:
    """audit.enabled captures one configuration snapshot per run."""
    service = ConfigurationAuditService()
    pipeline = _pipeline(
        Platform.LINUX,
        [FakeProvider("deb")],
        auditors=[SnapshotRunAuditor(service, author="ci")],
    )

    result = pipeline.execute(
        make_request(
            Platform.LINUX, ("deb",), properties={"linux.audit.enabled": "1"}
        )
    )

    assert [issue.code for issue in result.issues] == ["audit.snapshot.captured"]
    assert result.success is True
    snapshot = service.latest_snapshot()
    assert snapshot is not None
    assert snapshot.author == "ci"
    assert snapshot.comment == "linux run succeeded with 1 artifact(s)"
