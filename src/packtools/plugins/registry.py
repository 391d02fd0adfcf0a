"""Process-wide plugin registry, built once at startup."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from packtools.models import Platform
from packtools.pipeline.providers import (
    ArtifactVerifier,
    PackageFormatProvider,
    RunAuditor,
)
from packtools.plugins.loader import load_plugins
from packtools.plugins.models import PackagingPlugin, PluginDescriptor
from packtools.telemetry.channel import TelemetryChannel


class PluginRegistry:
    """Immutable view over loaded plugins and their contributions."""

    def __init__(self, descriptors: Iterable[PluginDescriptor] = ()) -> None:
        """Store loaded plugins.

        Args:
            descriptors: Loaded plugin descriptors in load order.
        """
        self._descriptors = tuple(descriptors)

    @classmethod
    def discover(cls, directories: Iterable[Path]) -> PluginRegistry:
        """Load plugins from probe directories, first directory wins on name.

        Args:
            directories: Probe directories in priority order.

        Returns:
            Registry over the loaded plugins.
        """
        seen: set[str] = set()
        descriptors: list[PluginDescriptor] = []
        for directory in directories:
            for descriptor in load_plugins(directory):
                key = descriptor.plugin.name.casefold()
                if key in seen:
                    continue
                seen.add(key)
                descriptors.append(descriptor)
        return cls(descriptors)

    @property
    def descriptors(self) -> tuple[PluginDescriptor, ...]:
        """Loaded plugin descriptors."""
        return self._descriptors

    @property
    def plugins(self) -> tuple[PackagingPlugin, ...]:
        """Loaded plugins."""
        return tuple(descriptor.plugin for descriptor in self._descriptors)

    def providers_for(self, platform: Platform) -> tuple[PackageFormatProvider, ...]:
        """Format providers contributed for a platform, in plugin order."""
        return tuple(
            provider
            for plugin in self.plugins
            for provider in plugin.providers_for(platform)
        )

    def telemetry_channels(self) -> tuple[TelemetryChannel, ...]:
        """Telemetry sinks contributed by plugins."""
        return tuple(
            channel for plugin in self.plugins for channel in plugin.telemetry_channels
        )

    def verifiers(self) -> tuple[ArtifactVerifier, ...]:
        """Artifact verifiers contributed by plugins."""
        return tuple(
            verifier for plugin in self.plugins for verifier in plugin.verifiers
        )

    def auditors(self) -> tuple[RunAuditor, ...]:
        """Run auditors contributed by plugins."""
        return tuple(auditor for plugin in self.plugins for auditor in plugin.auditors)
