"""Packaging project, request, and result value models."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import StrEnum
from types import MappingProxyType
from typing import Annotated, Any

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    computed_field,
)

_TRUTHY_FLAGS = frozenset({"true", "1", "yes", "on"})
EMPTY_MAP: Mapping[Any, Any] = MappingProxyType({})


def _freeze(value: Mapping[Any, Any]) -> Mapping[Any, Any]:
    return MappingProxyType(dict(value))


def _thaw(value: Mapping[Any, Any]) -> dict[Any, Any]:
    return dict(value)


# Read-only copy of the input; dumps back to a plain dict.
StringMap = Annotated[
    Mapping[str, str],
    AfterValidator(_freeze),
    PlainSerializer(_thaw, return_type=dict[str, str]),
]


class Platform(StrEnum):
    """Target platform for a packaging request."""

    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"

    @classmethod
    def _missing_(cls, value: object) -> Platform | None:
        """Resolve case-insensitive names and common aliases.

        Args:
            value: Raw platform token.

        Returns:
            Matching platform, or None when unknown.
        """
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        aliases = {"mac": cls.MACOS, "osx": cls.MACOS, "win": cls.WINDOWS}
        if normalized in aliases:
            return aliases[normalized]
        for member in cls:
            if member.value == normalized:
                return member
        return None

    @property
    def code_prefix(self) -> str:
        """Issue-code prefix used by this platform's pipeline."""
        return "mac" if self is Platform.MACOS else self.value


class IssueSeverity(StrEnum):
    """Severity level for issues raised during packaging."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class PackagingIssue(BaseModel):
    """Machine-readable outcome record raised while packaging."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    code: str = Field(min_length=1)
    message: str
    severity: IssueSeverity

    @classmethod
    def info(cls, code: str, message: str) -> PackagingIssue:
        """Build an informational issue."""
        return cls(code=code, message=message, severity=IssueSeverity.INFO)

    @classmethod
    def warning(cls, code: str, message: str) -> PackagingIssue:
        """Build a warning issue."""
        return cls(code=code, message=message, severity=IssueSeverity.WARNING)

    @classmethod
    def error(cls, code: str, message: str) -> PackagingIssue:
        """Build a blocking error issue."""
        return cls(code=code, message=message, severity=IssueSeverity.ERROR)

    @property
    def is_blocking(self) -> bool:
        """Whether this issue fails the run."""
        return self.severity == IssueSeverity.ERROR


class PackagingArtifact(BaseModel):
    """Artifact produced by exactly one provider invocation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    format: str = Field(min_length=1)
    path: str
    metadata: StringMap = EMPTY_MAP


class PlatformConfig(BaseModel):
    """Per-platform default formats and properties."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    formats: frozenset[str] = frozenset()
    properties: StringMap = EMPTY_MAP


class PackagingProject(BaseModel):
    """Persisted packaging project definition shared by CLI and SDK."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(min_length=1)
    name: str
    version: str
    metadata: StringMap = EMPTY_MAP
    platforms: Annotated[
        Mapping[Platform, PlatformConfig],
        AfterValidator(_freeze),
        PlainSerializer(_thaw, return_type=dict[Platform, PlatformConfig]),
    ] = EMPTY_MAP

    def platform_config(self, platform: Platform) -> PlatformConfig | None:
        """Return configuration block for one platform, if present.

        Args:
            platform: Target platform.

        Returns:
            Platform configuration or None.
        """
        return self.platforms.get(platform)


class PackagingRequest(BaseModel):
    """Describes a single packaging run."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    project_id: str = Field(min_length=1)
    platform: Platform
    formats: frozenset[str]
    configuration: str = "Release"
    output_directory: str
    properties: StringMap = EMPTY_MAP

    def flag(self, *names: str) -> bool:
        """Read a boolean-like request property; absent means off.

        Args:
            names: Candidate property names, checked in order.

        Returns:
            True when the first present property is truthy.
        """
        for name in names:
            value = lookup_ignore_case(self.properties, name)
            if value is not None:
                return value.strip().lower() in _TRUTHY_FLAGS
        return False


class PackagingResult(BaseModel):
    """Outcome of one pipeline run. Success is derived from the issue set."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    artifacts: tuple[PackagingArtifact, ...] = ()
    issues: tuple[PackagingIssue, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        """True iff no issue has Error severity."""
        return not any(issue.is_blocking for issue in self.issues)

    @property
    def blocking_issues(self) -> tuple[PackagingIssue, ...]:
        """Issues that fail the run."""
        return tuple(issue for issue in self.issues if issue.is_blocking)

    @classmethod
    def failed(cls, issues: Iterable[PackagingIssue]) -> PackagingResult:
        """Build an artifact-less result carrying the given issues.

        Args:
            issues: Issues explaining the failure.

        Returns:
            Result with no artifacts.
        """
        return cls(artifacts=(), issues=tuple(issues))

    def merged(self, issues: Iterable[PackagingIssue]) -> PackagingResult:
        """Return a copy with additional issues appended.

        Args:
            issues: Issues to append.

        Returns:
            New result; success is re-derived.
        """
        extra = tuple(issues)
        if not extra:
            return self
        return PackagingResult(artifacts=self.artifacts, issues=(*self.issues, *extra))


def lookup_ignore_case(source: Mapping[str, str] | None, key: str) -> str | None:
    """Look up one key, exact match first, then case-insensitively.

    Args:
        source: Mapping to search.
        key: Key to find.

    Returns:
        Value for the key, or None when absent.
    """
    if not source:
        return None
    if key in source:
        return source[key]
    folded = key.casefold()
    for candidate, value in source.items():
        if candidate.casefold() == folded:
            return value
    return None


def resolve_setting(
    project: PackagingProject, request: PackagingRequest, key: str
) -> str | None:
    """Resolve a setting from request, project metadata, then platform properties.

    Args:
        project: Loaded project.
        request: Packaging request.
        key: Setting key (case-insensitive).

    Returns:
        First value found, or None.
    """
    value = lookup_ignore_case(request.properties, key)
    if value is not None:
        return value
    value = lookup_ignore_case(project.metadata, key)
    if value is not None:
        return value
    platform_config = project.platform_config(request.platform)
    if platform_config is None:
        return None
    return lookup_ignore_case(platform_config.properties, key)
