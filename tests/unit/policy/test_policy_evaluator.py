"""Unit tests for the default policy engine."""

from __future__ import annotations

import pytest

from packtools.errors import CancellationToken, PackagingCancelledError
from packtools.identity.models import IdentityPrincipal, IdentityResult
from packtools.models import IssueSeverity, PackagingIssue, Platform, PlatformConfig
from packtools.policy.configuration import PolicyConfiguration, parse_bool
from packtools.policy.evaluator import PolicyEngineEvaluator
from packtools.policy.models import PolicyEvaluationContext, PolicyEvaluationResult
from tests.unit.doubles import make_project, make_request


def _evaluate(
    metadata: dict[str, str],
    *,
    platform: Platform = Platform.WINDOWS,
    properties: dict[str, str] | None = None,
    identity: IdentityResult | None = None,
    platforms: dict[Platform, PlatformConfig] | None = None,
) -> PolicyEvaluationResult:
    context = PolicyEvaluationContext(
        project=make_project(metadata=metadata, platforms=platforms),
        request=make_request(platform, ("msix",), properties=properties),
        identity=identity,
    )
    return PolicyEngineEvaluator().evaluate(context)


def _identity(*roles: str) -> IdentityResult:
    principal = IdentityPrincipal(
        id="user-1", display_name="Release Manager", roles=frozenset(roles)
    )
    return IdentityResult(principal=principal)


def _codes(result: PolicyEvaluationResult) -> list[str]:
    return [issue.code for issue in result.issues]


@pytest.mark.unit
def test_empty_metadata_allows_everything() -> None:
    """Absent policy keys mean nothing is required."""
    result = _evaluate({})

    assert result.is_allowed is True
    assert result.issues == ()


@pytest.mark.unit
def test_signing_required_without_material_blocks() -> None:
    """Required signing with no signing key for the platform blocks the run."""
    result = _evaluate({"policy.signing.required": "true"})

    assert result.is_allowed is False
    assert _codes(result) == ["policy.signing.required"]
    assert result.issues[0].severity == IssueSeverity.ERROR


@pytest.mark.unit
@pytest.mark.parametrize(
    "platform,key",
    [
        (Platform.WINDOWS, "windows.signing.azureKeyVaultCertificate"),
        (Platform.MACOS, "mac.signing.identity"),
        (Platform.LINUX, "linux.signing.gpgKeyPath"),
    ],
    ids=["windows", "mac", "linux"],
)
def test_signing_material_from_request_satisfies_rule(
    platform: Platform, key: str
) -> None:
    """Each platform's signing keys satisfy the rule; timestamp is only advised."""
    result = _evaluate(
        {"POLICY.SIGNING.REQUIRED": "True"},
        platform=platform,
        properties={key: "configured"},
    )

    assert result.is_allowed is True
    assert _codes(result) == ["policy.signing.timestamp_recommended"]
    assert result.issues[0].severity == IssueSeverity.WARNING


@pytest.mark.unit
def test_signing_material_from_platform_properties_satisfies_rule() -> None:
    """Platform properties are consulted after request and metadata."""
    platforms = {
        Platform.WINDOWS: PlatformConfig(
            formats=frozenset({"msix"}),
            properties={
                "windows.signing.certificatePath": "cert.pfx",
                "windows.signing.timestampUrl": "http://tsa.example",
            },
        )
    }

    result = _evaluate({"policy.signing.required": "true"}, platforms=platforms)

    assert result.is_allowed is True
    assert result.issues == ()


@pytest.mark.unit
def test_timestamp_rule_runs_even_without_signing_rule() -> None:
    """Required timestamping is enforced independently of required signing."""
    result = _evaluate({"policy.signing.timestampRequired": "true"})

    assert _codes(result) == ["policy.signing.timestamp_missing"]
    assert result.is_allowed is False


@pytest.mark.unit
def test_all_violations_are_reported_together() -> None:
    """Rules never short-circuit each other."""
    result = _evaluate(
        {
            "policy.signing.required": "true",
            "policy.signing.timestampRequired": "true",
            "policy.approval.required": "true",
            "policy.retention.maxDays": "30",
            "retention.days": "90",
            "policy.identity.required": "true",
        }
    )

    assert _codes(result) == [
        "policy.signing.required",
        "policy.signing.timestamp_missing",
        "policy.approval.missing_token",
        "policy.retention.exceeds_limit",
        "policy.identity.required",
    ]


@pytest.mark.unit
def test_approval_token_is_read_from_request_properties_only() -> None:
    """A token in project metadata does not satisfy approval."""
    metadata = {"policy.approval.required": "true", "policy.approvalToken": "abc"}

    from_metadata = _evaluate(metadata)
    from_request = _evaluate(metadata, properties={"policy.approvalToken": "abc"})

    assert _codes(from_metadata) == ["policy.approval.missing_token"]
    assert from_request.is_allowed is True


@pytest.mark.unit
def test_custom_approval_property_is_honored() -> None:
    """policy.approval.tokenProperty renames the expected request property."""
    metadata = {
        "policy.approval.required": "true",
        "policy.approval.tokenProperty": "change.ticket",
    }

    result = _evaluate(metadata, properties={"Change.Ticket": "CHG-42"})

    assert result.is_allowed is True


@pytest.mark.unit
@pytest.mark.parametrize(
    "requested,allowed",
    [("30", True), ("31", False), ("not-a-number", True)],
    ids=["at_limit", "over_limit", "unparseable"],
)
def test_retention_limit(requested: str, allowed: bool) -> None:
    """Retention above the maximum blocks; unparseable values are skipped."""
    result = _evaluate(
        {"policy.retention.maxDays": "30"},
        properties={"retention.days": requested},
    )

    assert result.is_allowed is allowed


@pytest.mark.unit
def test_identity_roles_pass_on_any_overlap() -> None:
    """Holding any one of the required roles satisfies the role rule."""
    metadata = {"policy.identity.requiredRoles": "release-manager; security"}

    granted = _evaluate(metadata, identity=_identity("Security"))
    denied = _evaluate(metadata, identity=_identity("developer"))
    anonymous = _evaluate(metadata)

    assert granted.is_allowed is True
    assert _codes(denied) == ["policy.identity.missing_roles"]
    assert anonymous.is_allowed is True


@pytest.mark.unit
def test_unparseable_policy_values_fail_open_by_default() -> None:
    """Garbage policy values are ignored unless the project opts into fail-closed."""
    metadata = {"policy.signing.required": "maybe"}

    open_result = _evaluate(metadata)
    closed_result = _evaluate({**metadata, "policy.failClosed": "true"})

    assert open_result.is_allowed is True
    assert _codes(closed_result) == ["policy.configuration.invalid"]


@pytest.mark.unit
def test_cancelled_token_is_honored() -> None:
    """Evaluation raises when cancellation was requested."""
    token = CancellationToken()
    token.cancel()
    context = PolicyEvaluationContext(project=make_project(), request=make_request())

    with pytest.raises(PackagingCancelledError):
        PolicyEngineEvaluator().evaluate(context, cancellation=token)


@pytest.mark.unit
def test_configuration_records_invalid_keys() -> None:
    """from_metadata parses known keys and remembers unparseable ones."""
    configuration = PolicyConfiguration.from_metadata(
        {
            "policy.retention.maxDays": "-4",
            "policy.identity.required": "yes",
            "policy.identity.requiredRoles": "a, b;;c",
        }
    )

    assert configuration.max_retention_days is None
    assert configuration.require_identity is False
    assert configuration.required_roles == ("a", "b", "c")
    assert configuration.invalid_keys == (
        "policy.retention.maxDays",
        "policy.identity.required",
    )


@pytest.mark.unit
def test_parse_bool_is_strict() -> None:
    """Only true/false (any case) parse."""
    assert parse_bool(" TRUE ") is True
    assert parse_bool("False") is False
    assert parse_bool("1") is None


@pytest.mark.unit
def test_blocked_result_requires_an_error() -> None:
    """blocked() refuses warning-only issue sets."""
    with pytest.raises(ValueError, match="needs an error issue"):
        PolicyEvaluationResult.blocked([PackagingIssue.warning("w", "warning only")])
