"""Default policy engine enforcing signing, approval, retention, and identity rules."""

from __future__ import annotations

from typing import Protocol

from packtools.errors import CancellationToken
from packtools.models import (
    PackagingIssue,
    PackagingProject,
    PackagingRequest,
    Platform,
    lookup_ignore_case,
    resolve_setting,
)
from packtools.policy.configuration import PolicyConfiguration
from packtools.policy.models import PolicyEvaluationContext, PolicyEvaluationResult

_SIGNING_KEYS: dict[Platform, tuple[str, ...]] = {
    Platform.WINDOWS: (
        "windows.signing.certificatePath",
        "windows.signing.certificateThumbprint",
        "windows.signing.azureKeyVaultCertificate",
    ),
    Platform.MACOS: ("mac.signing.identity",),
    Platform.LINUX: ("linux.signing.keyId", "linux.signing.gpgKeyPath"),
}
_TIMESTAMP_KEYS: dict[Platform, tuple[str, ...]] = {
    Platform.WINDOWS: ("windows.signing.timestampUrl",),
    Platform.MACOS: (
        "mac.notarization.required",
        "mac.notarization.profile",
        "mac.notarytool.profile",
    ),
    Platform.LINUX: ("linux.signing.timestampService",),
}


class PolicyEvaluator(Protocol):
    """Gatekeeper consulted before any run resource is allocated."""

    def evaluate(
        self,
        context: PolicyEvaluationContext,
        *,
        cancellation: CancellationToken | None = None,
    ) -> PolicyEvaluationResult:
        """Decide whether a run may proceed.

        Args:
            context: Project, request, and optional identity.
            cancellation: Optional cancellation token.
        """


class PolicyEngineEvaluator:
    """Evaluate every policy rule and report all violations at once."""

    def evaluate(
        self,
        context: PolicyEvaluationContext,
        *,
        cancellation: CancellationToken | None = None,
    ) -> PolicyEvaluationResult:
        """Evaluate policy rules for one run.

        Rules never short-circuit each other. Warnings are returned even when
        the run is allowed.

        Args:
            context: Project, request, and optional identity.
            cancellation: Optional cancellation token.

        Returns:
            Allow/block decision.
        """
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        configuration = PolicyConfiguration.from_metadata(context.project.metadata)
        issues: list[PackagingIssue] = []
        _evaluate_configuration(configuration, issues)
        _evaluate_signing(configuration, context, issues)
        _evaluate_timestamp(configuration, context, issues)
        _evaluate_approval(configuration, context, issues)
        _evaluate_retention(configuration, context, issues)
        _evaluate_identity(configuration, context, issues)
        if any(issue.is_blocking for issue in issues):
            return PolicyEvaluationResult.blocked(issues)
        return PolicyEvaluationResult.allowed(issues)


def _evaluate_configuration(
    configuration: PolicyConfiguration, issues: list[PackagingIssue]
) -> None:
    if not configuration.fail_closed:
        return
    for key in configuration.invalid_keys:
        issues.append(
            PackagingIssue.error(
                "policy.configuration.invalid",
                f"Policy key '{key}' has a value that cannot be parsed.",
            )
        )


def _evaluate_signing(
    configuration: PolicyConfiguration,
    context: PolicyEvaluationContext,
    issues: list[PackagingIssue],
) -> None:
    if not configuration.require_signing:
        return
    if not _has_any_setting(context.project, context.request, _SIGNING_KEYS):
        issues.append(
            PackagingIssue.error(
                "policy.signing.required",
                "Signing is required by policy but no signing material was "
                "configured for this run.",
            )
        )
        return
    if configuration.require_timestamp:
        return
    if not _has_any_setting(context.project, context.request, _TIMESTAMP_KEYS):
        issues.append(
            PackagingIssue.warning(
                "policy.signing.timestamp_recommended",
                "Signing is configured without a timestamp service; signatures "
                "will not outlive the certificate.",
            )
        )


def _evaluate_timestamp(
    configuration: PolicyConfiguration,
    context: PolicyEvaluationContext,
    issues: list[PackagingIssue],
) -> None:
    if not configuration.require_timestamp:
        return
    if not _has_any_setting(context.project, context.request, _TIMESTAMP_KEYS):
        issues.append(
            PackagingIssue.error(
                "policy.signing.timestamp_missing",
                "Timestamping is required by policy but no timestamp "
                "configuration was provided.",
            )
        )


def _evaluate_approval(
    configuration: PolicyConfiguration,
    context: PolicyEvaluationContext,
    issues: list[PackagingIssue],
) -> None:
    if not configuration.require_approval:
        return
    token = lookup_ignore_case(
        context.request.properties, configuration.approval_property
    )
    if token is None or not token.strip():
        issues.append(
            PackagingIssue.error(
                "policy.approval.missing_token",
                "Packaging requires an approval token "
                f"('{configuration.approval_property}') but none was supplied.",
            )
        )


def _evaluate_retention(
    configuration: PolicyConfiguration,
    context: PolicyEvaluationContext,
    issues: list[PackagingIssue],
) -> None:
    limit = configuration.max_retention_days
    if limit is None:
        return
    raw = resolve_setting(
        context.project, context.request, configuration.retention_metadata_key
    )
    if raw is None:
        return
    try:
        requested = int(raw.strip())
    except ValueError:
        return
    if requested > limit:
        issues.append(
            PackagingIssue.error(
                "policy.retention.exceeds_limit",
                f"Retention of {requested} days exceeds the policy maximum of "
                f"{limit} days.",
            )
        )


def _evaluate_identity(
    configuration: PolicyConfiguration,
    context: PolicyEvaluationContext,
    issues: list[PackagingIssue],
) -> None:
    identity = context.identity
    if configuration.require_identity and identity is None:
        issues.append(
            PackagingIssue.error(
                "policy.identity.required",
                "Authenticated identity is required by policy but none was "
                "provided.",
            )
        )
        return
    if not configuration.required_roles or identity is None:
        return
    held = {role.casefold() for role in identity.principal.roles}
    missing = [
        role for role in configuration.required_roles if role.casefold() not in held
    ]
    if len(missing) == len(configuration.required_roles):
        issues.append(
            PackagingIssue.error(
                "policy.identity.missing_roles",
                f"Identity is missing required roles: {', '.join(missing)}.",
            )
        )


def _has_any_setting(
    project: PackagingProject,
    request: PackagingRequest,
    keys_by_platform: dict[Platform, tuple[str, ...]],
) -> bool:
    for key in keys_by_platform.get(request.platform, ()):
        value = resolve_setting(project, request, key)
        if value is not None and value.strip():
            return True
    return False
