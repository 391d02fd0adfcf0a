"""SDK facade for embedding packaging runs in other build tooling."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock

from pydantic import BaseModel, ConfigDict

from packtools.agents.broker import BuildAgentBroker, LocalAgentBroker
from packtools.configuration.serializer import load_project
from packtools.configuration.settings import PacktoolsSettings
from packtools.errors import (
    CancellationToken,
    PackagingCancelledError,
    PackagingError,
    PackagingErrorCode,
)
from packtools.identity.context import IdentityContextAccessor
from packtools.identity.service import (
    IdentityService,
    LocalIdentityService,
    build_identity_request,
)
from packtools.models import (
    EMPTY_MAP,
    PackagingProject,
    PackagingRequest,
    PackagingResult,
    Platform,
    StringMap,
)
from packtools.pipeline.pipeline import PackagingPipeline
from packtools.pipeline.project_store import InMemoryProjectStore
from packtools.pipeline.providers import (
    ArtifactVerifier,
    PackageFormatProvider,
    RunAuditor,
)
from packtools.plugins.probing import resolve_probe_directories
from packtools.plugins.registry import PluginRegistry
from packtools.policy.evaluator import PolicyEngineEvaluator, PolicyEvaluator
from packtools.telemetry.aggregator import DashboardTelemetryAggregator
from packtools.telemetry.channel import CompositeTelemetryChannel, TelemetryChannel
from packtools.telemetry.store import DashboardTelemetryStore

_LOGGER = logging.getLogger(__name__)

DEFAULT_ARTIFACTS_DIR = "artifacts"


class PackagingRunOptions(BaseModel):
    """Parameters for one run driven from a project file."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    project_path: Path
    platform: Platform
    formats: tuple[str, ...] = ()
    configuration: str = "Release"
    output_directory: str | None = None
    properties: StringMap = EMPTY_MAP
    plugin_directories: tuple[str, ...] = ()


@dataclass
class PackagingClientOptions:
    """Collaborator overrides for a ``PackagingClient``."""

    platforms: frozenset[Platform] = frozenset(Platform)
    providers: Mapping[Platform, Sequence[PackageFormatProvider]] = field(
        default_factory=dict
    )
    verifiers: Sequence[ArtifactVerifier] = ()
    auditors: Sequence[RunAuditor] = ()
    telemetry: TelemetryChannel | None = None
    telemetry_store: DashboardTelemetryStore | None = None
    policy_evaluator: PolicyEvaluator | None = None
    agent_broker: BuildAgentBroker | None = None
    identity_service: IdentityService | None = None
    plugin_directories: Sequence[str] = ()
    include_user_plugins: bool = True
    settings: PacktoolsSettings = field(default_factory=PacktoolsSettings)


class PackagingClient:
    """High-level entry point wiring pipelines, plugins, identity and telemetry."""

    def __init__(self, options: PackagingClientOptions | None = None) -> None:
        """Initialize client.

        Args:
            options: Collaborator overrides; defaults wire local services.
        """
        self._options = options or PackagingClientOptions()
        self._identity_service = (
            self._options.identity_service or LocalIdentityService()
        )
        self._registries: dict[tuple[Path, ...], PluginRegistry] = {}
        self._registry_lock = Lock()

    @property
    def options(self) -> PackagingClientOptions:
        """Client options."""
        return self._options

    def pack(
        self,
        run_options: PackagingRunOptions,
        *,
        cancellation: CancellationToken | None = None,
    ) -> PackagingResult:
        """Load a project file and run it for one platform.

        Args:
            run_options: Run parameters.
            cancellation: Optional cancellation token.

        Returns:
            Packaging result.

        Raises:
            PackagingError: If the project cannot be loaded, has no formats for
                the platform, or the platform is not registered.
            PackagingCancelledError: If cancellation was requested and honored.
        """
        project = load_project(run_options.project_path)
        platform_config = project.platform_config(run_options.platform)
        formats = run_options.formats or tuple(
            platform_config.formats if platform_config is not None else ()
        )
        if not formats:
            raise PackagingError(
                PackagingErrorCode.PROJECT_INVALID,
                "Error: no formats specified. Add formats to the project or "
                "pass them on the run.",
                data={"platform": run_options.platform.value},
            )
        output_directory = resolve_output_directory(
            run_options.platform, run_options.output_directory
        )
        output_directory.mkdir(parents=True, exist_ok=True)
        request = PackagingRequest(
            project_id=project.id,
            platform=run_options.platform,
            formats=frozenset(formats),
            configuration=run_options.configuration,
            output_directory=str(output_directory),
            properties=merge_properties(
                platform_config.properties if platform_config is not None else {},
                run_options.properties,
            ),
        )
        return self._execute(
            project,
            request,
            project_path=run_options.project_path,
            plugin_directories=run_options.plugin_directories,
            cancellation=cancellation,
        )

    def pack_project(
        self,
        project: PackagingProject,
        request: PackagingRequest,
        *,
        cancellation: CancellationToken | None = None,
    ) -> PackagingResult:
        """Run a pre-loaded project.

        Args:
            project: Project definition.
            request: Packaging request for that project.
            cancellation: Optional cancellation token.

        Returns:
            Packaging result.

        Raises:
            ValueError: If the request names a different project.
            PackagingError: If the platform is not registered.
            PackagingCancelledError: If cancellation was requested and honored.
        """
        if project.id != request.project_id:
            raise ValueError(
                "Error: request project id does not match the supplied project."
            )
        return self._execute(project, request, cancellation=cancellation)

    def build_pipeline(
        self,
        project: PackagingProject,
        platform: Platform,
        *,
        telemetry: TelemetryChannel,
        identity_accessor: IdentityContextAccessor,
        registry: PluginRegistry | None = None,
    ) -> PackagingPipeline:
        """Build the pipeline for one platform from registered and plugin parts.

        Args:
            project: Project served by the in-memory project store.
            platform: Target platform.
            telemetry: Telemetry sink for the run.
            identity_accessor: Identity attached to the run.
            registry: Plugin registry; defaults to an empty one.

        Returns:
            Configured pipeline.

        Raises:
            PackagingError: If the platform is not registered.
        """
        if platform not in self._options.platforms:
            raise PackagingError(
                PackagingErrorCode.PIPELINE_NOT_REGISTERED,
                f"Error: no packaging pipeline registered for platform "
                f"'{platform.value}'.",
                data={"platform": platform.value},
            )
        plugins = registry or PluginRegistry()
        return PackagingPipeline(
            platform,
            project_store=InMemoryProjectStore([project]),
            providers=[
                *self._options.providers.get(platform, ()),
                *plugins.providers_for(platform),
            ],
            policy_evaluator=self._options.policy_evaluator or PolicyEngineEvaluator(),
            agent_broker=self._options.agent_broker or LocalAgentBroker(),
            telemetry=telemetry,
            identity_accessor=identity_accessor,
            verifiers=[*self._options.verifiers, *plugins.verifiers()],
            auditors=[*self._options.auditors, *plugins.auditors()],
            warn_on_unmatched_formats=(
                self._options.settings.pipeline.warn_on_unmatched_formats
            ),
        )

    def plugin_registry(
        self,
        project: PackagingProject,
        *,
        project_path: Path | None = None,
        plugin_directories: Iterable[str] = (),
    ) -> PluginRegistry:
        """Return the registry for a project's probe directories, loading it once.

        Args:
            project: Project whose metadata may list plugin directories.
            project_path: Project file anchoring relative directories.
            plugin_directories: Run-specific directories.

        Returns:
            Plugin registry.
        """
        directories = tuple(
            resolve_probe_directories(
                project,
                project_path,
                overrides=[*plugin_directories, *self._options.plugin_directories],
                settings_directories=self._options.settings.plugins.directories,
                include_user_directory=self._options.include_user_plugins,
            )
        )
        with self._registry_lock:
            registry = self._registries.get(directories)
            if registry is None:
                registry = PluginRegistry.discover(directories)
                self._registries[directories] = registry
            return registry

    def _execute(
        self,
        project: PackagingProject,
        request: PackagingRequest,
        *,
        project_path: Path | None = None,
        plugin_directories: Iterable[str] = (),
        cancellation: CancellationToken | None = None,
    ) -> PackagingResult:
        registry = self.plugin_registry(
            project, project_path=project_path, plugin_directories=plugin_directories
        )
        aggregator, store = self._dashboard()
        sinks: list[TelemetryChannel] = [*registry.telemetry_channels()]
        if self._options.telemetry is not None:
            sinks.insert(0, self._options.telemetry)
        elif aggregator is not None:
            sinks.insert(0, aggregator)
        identity_accessor = IdentityContextAccessor()
        pipeline = self.build_pipeline(
            project,
            request.platform,
            telemetry=CompositeTelemetryChannel(sinks),
            identity_accessor=identity_accessor,
            registry=registry,
        )
        try:
            self._initialize_identity(
                project, request, identity_accessor, cancellation=cancellation
            )
            return pipeline.execute(request, cancellation=cancellation)
        finally:
            if aggregator is not None and store is not None:
                store.save(aggregator)

    def _dashboard(
        self,
    ) -> tuple[DashboardTelemetryAggregator | None, DashboardTelemetryStore | None]:
        settings = self._options.settings.telemetry
        telemetry = self._options.telemetry
        if telemetry is not None and not isinstance(
            telemetry, DashboardTelemetryAggregator
        ):
            return None, None
        if not settings.persist:
            if telemetry is not None:
                return telemetry, None
            return DashboardTelemetryAggregator(), None
        store = self._options.telemetry_store or DashboardTelemetryStore(
            Path(settings.store_path).expanduser() if settings.store_path else None
        )
        if telemetry is not None:
            return telemetry, store
        return store.create_aggregator(), store

    def _initialize_identity(
        self,
        project: PackagingProject,
        request: PackagingRequest,
        accessor: IdentityContextAccessor,
        *,
        cancellation: CancellationToken | None,
    ) -> None:
        try:
            identity = self._identity_service.acquire(
                build_identity_request(project, request), cancellation=cancellation
            )
        except PackagingCancelledError:
            raise
        except Exception:  # noqa: BLE001
            _LOGGER.debug("client.identity_unavailable", exc_info=True)
            accessor.clear()
            return
        accessor.set_identity(identity)


def resolve_output_directory(platform: Platform, override: str | None) -> Path:
    """Resolve artifact output directory, defaulting to ``./artifacts/<platform>``.

    Args:
        platform: Target platform.
        override: Caller-supplied directory.

    Returns:
        Absolute output directory.
    """
    if override and override.strip():
        return Path(override).expanduser().resolve()
    return (Path.cwd() / DEFAULT_ARTIFACTS_DIR / platform.value).resolve()


def merge_properties(
    base: Mapping[str, str], overrides: Mapping[str, str]
) -> dict[str, str]:
    """Merge properties case-insensitively; overrides win.

    Args:
        base: Platform-level properties.
        overrides: Run-level properties.

    Returns:
        Merged properties keeping the winning key's spelling.
    """
    merged: dict[str, str] = {}
    for source in (base, overrides):
        for key, value in source.items():
            folded = key.casefold()
            for existing in [item for item in merged if item.casefold() == folded]:
                del merged[existing]
            merged[key] = value
    return merged
