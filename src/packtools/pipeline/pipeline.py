"""Platform-bound packaging pipeline orchestrating one run end to end."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import uuid4

from packtools.agents.broker import BuildAgentBroker
from packtools.agents.scope import AgentExecutionScope
from packtools.errors import CancellationToken, PackagingCancelledError, PackagingError
from packtools.identity.context import IdentityContextAccessor
from packtools.models import (
    PackagingArtifact,
    PackagingIssue,
    PackagingProject,
    PackagingRequest,
    PackagingResult,
    Platform,
)
from packtools.pipeline.project_store import ProjectStore
from packtools.pipeline.providers import (
    ArtifactVerifier,
    PackageFormatContext,
    PackageFormatProvider,
    RunAuditor,
)
from packtools.pipeline.workspace import temporary_directory
from packtools.policy.evaluator import PolicyEvaluator
from packtools.policy.models import PolicyEvaluationContext
from packtools.telemetry.channel import (
    NullTelemetryChannel,
    TelemetryChannel,
    TelemetryProperties,
)

_LOGGER = logging.getLogger(__name__)

DEFAULT_CHANNEL = "default"


class PackagingPipeline:
    """Run packaging requests for exactly one platform.

    Providers run one at a time in registration order. A provider exception
    becomes one Error issue and never aborts its siblings. The only exception
    ``execute`` raises is an honored cancellation.
    """

    def __init__(
        self,
        platform: Platform,
        *,
        project_store: ProjectStore,
        providers: Iterable[PackageFormatProvider],
        policy_evaluator: PolicyEvaluator,
        agent_broker: BuildAgentBroker,
        telemetry: TelemetryChannel | None = None,
        identity_accessor: IdentityContextAccessor | None = None,
        verifiers: Iterable[ArtifactVerifier] = (),
        auditors: Iterable[RunAuditor] = (),
        warn_on_unmatched_formats: bool = False,
        working_root: Path | None = None,
    ) -> None:
        """Store pipeline collaborators.

        Args:
            platform: Platform this pipeline serves.
            project_store: Project lookup.
            providers: Format providers in registration order.
            policy_evaluator: Gatekeeper consulted before resources are taken.
            agent_broker: Build agent broker.
            telemetry: Telemetry sink; defaults to a null channel.
            identity_accessor: Identity attached to the invocation.
            verifiers: Per-artifact verification passes.
            auditors: Whole-run audit passes.
            warn_on_unmatched_formats: Emit a warning per unmatched format.
            working_root: Parent for run working directories.
        """
        self._platform = platform
        self._project_store = project_store
        self._providers = tuple(providers)
        self._policy_evaluator = policy_evaluator
        self._agent_broker = agent_broker
        self._telemetry = telemetry or NullTelemetryChannel()
        self._identity_accessor = identity_accessor or IdentityContextAccessor()
        self._verifiers = tuple(verifiers)
        self._auditors = tuple(auditors)
        self._warn_on_unmatched_formats = warn_on_unmatched_formats
        self._working_root = working_root

    @property
    def platform(self) -> Platform:
        """Platform this pipeline serves."""
        return self._platform

    @property
    def providers(self) -> tuple[PackageFormatProvider, ...]:
        """Registered providers in registration order."""
        return self._providers

    def execute(
        self,
        request: PackagingRequest,
        *,
        cancellation: CancellationToken | None = None,
    ) -> PackagingResult:
        """Run one packaging request to completion.

        Args:
            request: Packaging request.
            cancellation: Optional cancellation token.

        Returns:
            Packaging result; issues carry every expected failure.

        Raises:
            PackagingCancelledError: If cancellation was requested and honored.
        """
        token = cancellation or CancellationToken.none()
        prefix = self._platform.code_prefix
        if request.platform != self._platform:
            return PackagingResult.failed(
                [
                    PackagingIssue.error(
                        f"{prefix}.platform_mismatch",
                        f"Pipeline only supports {self._platform.value} requests "
                        f"but received '{request.platform.value}'.",
                    )
                ]
            )
        try:
            return self._execute(request, token)
        except PackagingCancelledError:
            _LOGGER.debug(
                "pipeline.cancelled platform=%s project=%s",
                self._platform.value,
                request.project_id,
            )
            raise
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning(
                "pipeline.unexpected_failure platform=%s project=%s",
                self._platform.value,
                request.project_id,
                exc_info=True,
            )
            return PackagingResult.failed(
                [PackagingIssue.error(f"{prefix}.pipeline.exception", _describe(exc))]
            )

    def _execute(
        self, request: PackagingRequest, token: CancellationToken
    ) -> PackagingResult:
        prefix = self._platform.code_prefix
        started = time.monotonic()
        token.raise_if_cancelled()
        try:
            project = self._project_store.try_load(
                request.project_id, cancellation=token
            )
        except PackagingCancelledError:
            raise
        except PackagingError as exc:
            return PackagingResult.failed(
                [PackagingIssue.error(f"{prefix}.project_invalid", str(exc))]
            )
        if project is None:
            return PackagingResult.failed(
                [
                    PackagingIssue.error(
                        f"{prefix}.project_not_found",
                        f"Project '{request.project_id}' could not be located.",
                    )
                ]
            )

        policy = self._policy_evaluator.evaluate(
            PolicyEvaluationContext(
                project=project,
                request=request,
                identity=self._identity_accessor.identity,
            ),
            cancellation=token,
        )
        if not policy.is_allowed:
            return PackagingResult.failed(policy.issues)

        token.raise_if_cancelled()
        with temporary_directory(self._working_root) as working_directory:
            try:
                agent = self._agent_broker.acquire(self._platform, cancellation=token)
            except PackagingCancelledError:
                raise
            except PackagingError as exc:
                return PackagingResult.failed(
                    [PackagingIssue.error(f"{prefix}.{exc.code.value}", str(exc))]
                )
            scope = AgentExecutionScope()
            try:
                with scope.push(agent):
                    selected = self._resolve_providers(request.formats)
                    if not selected:
                        return PackagingResult.failed(
                            [
                                PackagingIssue.error(
                                    f"{prefix}.no_providers",
                                    f"No {self._platform.value} packaging providers "
                                    "matched the requested formats.",
                                )
                            ]
                        )
                    context = PackageFormatContext(
                        project=project,
                        request=request,
                        working_directory=working_directory,
                        agent=agent,
                        execution_scope=scope,
                    )
                    result = self._run_providers(
                        context, selected, policy.issues, token
                    )
            finally:
                agent.release()

        self._publish_completion(project, request, result, started)
        return result

    def _run_providers(
        self,
        context: PackageFormatContext,
        selected: Sequence[PackageFormatProvider],
        policy_issues: Sequence[PackagingIssue],
        token: CancellationToken,
    ) -> PackagingResult:
        prefix = self._platform.code_prefix
        request = context.request
        artifacts: list[PackagingArtifact] = []
        issues: list[PackagingIssue] = list(policy_issues)
        if self._warn_on_unmatched_formats:
            issues.extend(self._unmatched_format_warnings(request.formats))

        for provider in selected:
            token.raise_if_cancelled()
            self._track_event(
                f"{prefix}.provider.start",
                {"provider": provider.format, "projectId": request.project_id},
            )
            start = time.monotonic()
            try:
                outcome = provider.package(context, cancellation=token)
            except PackagingCancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                _LOGGER.warning(
                    "pipeline.provider_failed platform=%s format=%s",
                    self._platform.value,
                    provider.format,
                    exc_info=True,
                )
                issues.append(
                    PackagingIssue.error(
                        f"{prefix}.{provider.format}.exception", _describe(exc)
                    )
                )
                self._track_dependency(
                    provider.format,
                    _elapsed(start),
                    False,
                    {"exception": type(exc).__qualname__},
                )
                continue
            artifacts.extend(outcome.artifacts)
            issues.extend(outcome.issues)
            self._track_dependency(
                provider.format,
                _elapsed(start),
                True,
                {
                    "artifactCount": len(outcome.artifacts),
                    "issueCount": len(outcome.issues),
                },
            )

        token.raise_if_cancelled()
        verify = request.flag("verify.enabled", f"{prefix}.verify.enabled")
        if self._verifiers and verify:
            issues.extend(self._verify(context, artifacts))
        result = PackagingResult(artifacts=tuple(artifacts), issues=tuple(issues))
        audit = request.flag("audit.enabled", f"{prefix}.audit.enabled")
        if self._auditors and audit:
            result = result.merged(self._audit(context, result))
        return result

    def _resolve_providers(
        self, requested: Iterable[str]
    ) -> list[PackageFormatProvider]:
        wanted = {item.casefold() for item in requested}
        return [
            provider
            for provider in self._providers
            if provider.format.casefold() in wanted
        ]

    def _unmatched_format_warnings(
        self, requested: Iterable[str]
    ) -> list[PackagingIssue]:
        prefix = self._platform.code_prefix
        registered = {provider.format.casefold() for provider in self._providers}
        return [
            PackagingIssue.warning(
                f"{prefix}.format_unmatched",
                f"No provider is registered for requested format '{item}'.",
            )
            for item in sorted(requested, key=str.casefold)
            if item.casefold() not in registered
        ]

    def _verify(
        self, context: PackageFormatContext, artifacts: Sequence[PackagingArtifact]
    ) -> list[PackagingIssue]:
        prefix = self._platform.code_prefix
        issues: list[PackagingIssue] = []
        for artifact in artifacts:
            for verifier in self._verifiers:
                try:
                    issues.extend(verifier.verify(context, artifact))
                except PackagingCancelledError:
                    raise
                except Exception as exc:  # noqa: BLE001
                    _LOGGER.warning(
                        "pipeline.verify_failed platform=%s path=%s",
                        self._platform.value,
                        artifact.path,
                        exc_info=True,
                    )
                    issues.append(
                        PackagingIssue.error(
                            f"{prefix}.verify.exception", _describe(exc)
                        )
                    )
        return issues

    def _audit(
        self, context: PackageFormatContext, result: PackagingResult
    ) -> list[PackagingIssue]:
        prefix = self._platform.code_prefix
        issues: list[PackagingIssue] = []
        for auditor in self._auditors:
            try:
                issues.extend(auditor.audit(context, result))
            except PackagingCancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                _LOGGER.warning(
                    "pipeline.audit_failed platform=%s",
                    self._platform.value,
                    exc_info=True,
                )
                issues.append(
                    PackagingIssue.error(f"{prefix}.audit.exception", _describe(exc))
                )
        return issues

    def _publish_completion(
        self,
        project: PackagingProject,
        request: PackagingRequest,
        result: PackagingResult,
        started: float,
    ) -> None:
        job_id = uuid4().hex
        channel = request.configuration or DEFAULT_CHANNEL
        self._track_event(
            "pipeline.completed",
            {
                "jobId": job_id,
                "projectId": project.id,
                "displayName": f"{project.name} ({request.platform.value})",
                "channel": channel,
                "platform": request.platform.value,
                "status": "succeeded" if result.success else "failed",
                "durationSeconds": max(0.0, time.monotonic() - started),
                "completedAt": datetime.now(UTC).isoformat(),
                "blockingIssues": len(result.blocking_issues),
            },
        )
        for artifact in result.artifacts:
            self._track_event(
                "pipeline.artifact",
                {
                    "jobId": job_id,
                    "projectId": project.id,
                    "format": artifact.format,
                    "path": artifact.path,
                    "platform": request.platform.value,
                    "channel": channel,
                },
            )

    def _track_event(self, name: str, properties: TelemetryProperties) -> None:
        try:
            self._telemetry.track_event(name, properties)
        except Exception:  # noqa: BLE001
            _LOGGER.debug("pipeline.telemetry_dropped event=%s", name, exc_info=True)

    def _track_dependency(
        self,
        name: str,
        duration: timedelta,
        success: bool,
        properties: TelemetryProperties,
    ) -> None:
        try:
            self._telemetry.track_dependency(name, duration, success, properties)
        except Exception:  # noqa: BLE001
            _LOGGER.debug(
                "pipeline.telemetry_dropped dependency=%s", name, exc_info=True
            )


def _elapsed(start: float) -> timedelta:
    return timedelta(seconds=max(0.0, time.monotonic() - start))


def _describe(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or type(exc).__name__
