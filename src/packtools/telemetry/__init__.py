"""Telemetry channels and dashboard aggregation public surface."""

from packtools.telemetry.aggregator import DashboardTelemetryAggregator, parse_status
from packtools.telemetry.channel import (
    CompositeTelemetryChannel,
    NullTelemetryChannel,
    TelemetryChannel,
    TelemetryProperties,
)
from packtools.telemetry.dashboard_models import (
    DashboardExport,
    DashboardJobStatus,
    DashboardQuery,
    DashboardSnapshot,
    DependencyDashboardSummary,
    JobRunSummary,
    ReleaseChannelSnapshot,
    SigningDashboardSummary,
)
from packtools.telemetry.store import DashboardTelemetryStore

__all__ = [
    "CompositeTelemetryChannel",
    "DashboardExport",
    "DashboardJobStatus",
    "DashboardQuery",
    "DashboardSnapshot",
    "DashboardTelemetryAggregator",
    "DashboardTelemetryStore",
    "DependencyDashboardSummary",
    "JobRunSummary",
    "NullTelemetryChannel",
    "ReleaseChannelSnapshot",
    "SigningDashboardSummary",
    "TelemetryChannel",
    "TelemetryProperties",
    "parse_status",
]
