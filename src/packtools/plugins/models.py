"""Plugin manifest and contribution models."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from packtools.models import Platform
from packtools.pipeline.providers import (
    ArtifactVerifier,
    PackageFormatProvider,
    RunAuditor,
)
from packtools.telemetry.channel import TelemetryChannel

DEFAULT_PLUGIN_ATTRIBUTE = "PLUGIN"


class PluginManifest(BaseModel):
    """JSON manifest naming the module that exports a plugin."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    module: str = Field(min_length=1)
    attribute: str = DEFAULT_PLUGIN_ATTRIBUTE
    path: str | None = None
    disabled: bool = False

    @field_validator("module")
    @classmethod
    def _module_is_dotted_name(cls, value: str) -> str:
        if not all(part.isidentifier() for part in value.split(".")):
            raise ValueError(f"module must be a dotted Python name, got: {value!r}")
        return value


@dataclass(frozen=True)
class PackagingPlugin:
    """Contributions one plugin adds to the host. Import must not cause side effects."""

    name: str
    version: str = "0.0.0"
    format_providers: Mapping[Platform, Sequence[PackageFormatProvider]] = field(
        default_factory=dict
    )
    telemetry_channels: Sequence[TelemetryChannel] = ()
    verifiers: Sequence[ArtifactVerifier] = ()
    auditors: Sequence[RunAuditor] = ()

    def providers_for(self, platform: Platform) -> tuple[PackageFormatProvider, ...]:
        """Return providers contributed for one platform.

        Args:
            platform: Target platform.

        Returns:
            Providers in declaration order.
        """
        return tuple(self.format_providers.get(platform, ()))


@dataclass(frozen=True)
class PluginDescriptor:
    """Loaded plugin together with the manifest it came from."""

    plugin: PackagingPlugin
    manifest: PluginManifest
    manifest_path: Path
