"""Configuration snapshot and diff models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from packtools.models import PackagingProject, Platform


class ChangeType(StrEnum):
    """Nature of one key-level change."""

    ADDED = "added"
    REMOVED = "removed"
    UPDATED = "updated"


class ValueChange(BaseModel):
    """Key/value change within metadata or platform properties."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    key: str
    type: ChangeType
    before: str | None = None
    after: str | None = None


class PlatformDiff(BaseModel):
    """Format and property deltas for one platform."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    platform: Platform
    added_formats: tuple[str, ...] = ()
    removed_formats: tuple[str, ...] = ()
    property_changes: tuple[ValueChange, ...] = ()


class ConfigurationDiff(BaseModel):
    """Structural delta between two project configurations."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    metadata_changes: tuple[ValueChange, ...] = ()
    platform_diffs: tuple[PlatformDiff, ...] = ()

    @property
    def is_empty(self) -> bool:
        """Whether the two sides are configuration-equivalent."""
        return not self.metadata_changes and not self.platform_diffs


class ConfigurationSnapshot(BaseModel):
    """Immutable capture of one project configuration."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    captured_at: datetime
    author: str | None = None
    comment: str | None = None
    project: PackagingProject
