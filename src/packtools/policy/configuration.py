"""Governance policy settings resolved from project metadata."""

from __future__ import annotations

import re
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict

from packtools.models import lookup_ignore_case

SIGNING_REQUIRED_KEY = "policy.signing.required"
TIMESTAMP_REQUIRED_KEY = "policy.signing.timestampRequired"
APPROVAL_REQUIRED_KEY = "policy.approval.required"
APPROVAL_PROPERTY_KEY = "policy.approval.tokenProperty"
RETENTION_MAX_DAYS_KEY = "policy.retention.maxDays"
RETENTION_METADATA_KEY = "policy.retention.metadataKey"
IDENTITY_REQUIRED_KEY = "policy.identity.required"
REQUIRED_ROLES_KEY = "policy.identity.requiredRoles"
FAIL_CLOSED_KEY = "policy.failClosed"

DEFAULT_APPROVAL_PROPERTY = "policy.approvalToken"
DEFAULT_RETENTION_METADATA_KEY = "retention.days"

_LIST_SPLIT = re.compile(r"[,;]")


class PolicyConfiguration(BaseModel):
    """Typed policy switches; absent or unparseable keys mean "not required"."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    require_signing: bool = False
    require_timestamp: bool = False
    require_approval: bool = False
    approval_property: str = DEFAULT_APPROVAL_PROPERTY
    max_retention_days: int | None = None
    retention_metadata_key: str = DEFAULT_RETENTION_METADATA_KEY
    require_identity: bool = False
    required_roles: tuple[str, ...] = ()
    fail_closed: bool = False
    invalid_keys: tuple[str, ...] = ()

    @classmethod
    def from_metadata(cls, metadata: Mapping[str, str] | None) -> PolicyConfiguration:
        """Resolve policy configuration from project metadata.

        Keys are matched case-insensitively. Present keys whose values do not
        parse are recorded in ``invalid_keys`` and otherwise ignored.

        Args:
            metadata: Project metadata mapping.

        Returns:
            Resolved policy configuration.
        """
        source = metadata or {}
        invalid: list[str] = []
        return cls(
            require_signing=_resolve_bool(source, SIGNING_REQUIRED_KEY, invalid),
            require_timestamp=_resolve_bool(source, TIMESTAMP_REQUIRED_KEY, invalid),
            require_approval=_resolve_bool(source, APPROVAL_REQUIRED_KEY, invalid),
            approval_property=_resolve_string(
                source, APPROVAL_PROPERTY_KEY, DEFAULT_APPROVAL_PROPERTY
            ),
            max_retention_days=_resolve_positive_int(
                source, RETENTION_MAX_DAYS_KEY, invalid
            ),
            retention_metadata_key=_resolve_string(
                source, RETENTION_METADATA_KEY, DEFAULT_RETENTION_METADATA_KEY
            ),
            require_identity=_resolve_bool(source, IDENTITY_REQUIRED_KEY, invalid),
            required_roles=_resolve_list(source, REQUIRED_ROLES_KEY),
            fail_closed=_resolve_bool(source, FAIL_CLOSED_KEY, invalid),
            invalid_keys=tuple(invalid),
        )


def parse_bool(value: str) -> bool | None:
    """Parse ``true``/``false`` case-insensitively.

    Args:
        value: Raw text.

    Returns:
        Parsed flag, or None when the text is not a boolean.
    """
    normalized = value.strip().lower()
    if normalized == "true":
        return True
    if normalized == "false":
        return False
    return None


def _resolve_bool(source: Mapping[str, str], key: str, invalid: list[str]) -> bool:
    value = lookup_ignore_case(source, key)
    if value is None:
        return False
    parsed = parse_bool(value)
    if parsed is None:
        invalid.append(key)
        return False
    return parsed


def _resolve_string(source: Mapping[str, str], key: str, fallback: str) -> str:
    value = lookup_ignore_case(source, key)
    if value is None or not value.strip():
        return fallback
    return value


def _resolve_positive_int(
    source: Mapping[str, str], key: str, invalid: list[str]
) -> int | None:
    value = lookup_ignore_case(source, key)
    if value is None:
        return None
    try:
        parsed = int(value.strip())
    except ValueError:
        invalid.append(key)
        return None
    if parsed <= 0:
        invalid.append(key)
        return None
    return parsed


def _resolve_list(source: Mapping[str, str], key: str) -> tuple[str, ...]:
    value = lookup_ignore_case(source, key)
    if value is None or not value.strip():
        return ()
    return tuple(item.strip() for item in _LIST_SPLIT.split(value) if item.strip())
