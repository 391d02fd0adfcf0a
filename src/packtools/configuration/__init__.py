"""Project document and host settings public surface."""

from packtools.configuration.serializer import (
    dump_project,
    load_project,
    parse_project,
    save_project,
)
from packtools.configuration.settings import (
    LoggingSettings,
    PacktoolsSettings,
    PipelineSettings,
    PluginSettings,
    TelemetrySettings,
    load_settings,
)

__all__ = [
    "LoggingSettings",
    "PacktoolsSettings",
    "PipelineSettings",
    "PluginSettings",
    "TelemetrySettings",
    "dump_project",
    "load_project",
    "load_settings",
    "parse_project",
    "save_project",
]
