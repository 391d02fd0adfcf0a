"""Dashboard snapshot models rendered by the CLI dashboard."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from packtools.models import Platform

DEFAULT_MAX_JOBS = 50


class DashboardJobStatus(StrEnum):
    """Execution state of a recent packaging job."""

    UNKNOWN = "unknown"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RUNNING = "running"
    QUEUED = "queued"
    CANCELLED = "cancelled"


FAILURE_STATUSES = frozenset(
    {
        DashboardJobStatus.FAILED,
        DashboardJobStatus.CANCELLED,
        DashboardJobStatus.UNKNOWN,
    }
)


class JobRunSummary(BaseModel):
    """One packaging job as shown in the activity table."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    display_name: str
    platform: Platform
    channel: str
    status: DashboardJobStatus
    duration: timedelta
    completed_at: datetime
    blocking_issue_count: int = 0


class SigningDashboardSummary(BaseModel):
    """Signing estate summary."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    active_certificates: int = 0
    certificates_expiring_soon: int = 0
    failed_signatures_last_7_days: int = 0
    pending_approvals: int = 0


class DependencyDashboardSummary(BaseModel):
    """Dependency and vulnerability posture summary."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    tracked_components: int = 0
    high_severity_findings: int = 0
    medium_severity_findings: int = 0
    low_severity_findings: int = 0
    last_sbom_generated_at: datetime | None = None


class ReleaseChannelSnapshot(BaseModel):
    """Current state of one release channel."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    channel: str
    latest_version: str
    published_at: datetime
    deployments_last_30_days: int = 0
    is_paused: bool = False


class DashboardSnapshot(BaseModel):
    """Point-in-time dashboard view."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    generated_at: datetime
    recent_jobs: tuple[JobRunSummary, ...] = ()
    signing: SigningDashboardSummary = SigningDashboardSummary()
    dependency: DependencyDashboardSummary = DependencyDashboardSummary()
    release_channels: tuple[ReleaseChannelSnapshot, ...] = ()


class DashboardQuery(BaseModel):
    """Optional filters applied when reading dashboard data."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    channel: str | None = None
    failures_only: bool = False
    max_jobs: int = DEFAULT_MAX_JOBS


class DashboardExport(BaseModel):
    """Exported dashboard payload for downstream reporting."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    generated_at: datetime
    jobs: tuple[JobRunSummary, ...] = ()
    release_channels: tuple[ReleaseChannelSnapshot, ...] = ()
