"""Reduce telemetry events into queryable dashboard snapshots."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from threading import Lock
from uuid import uuid4

from packtools.models import Platform
from packtools.telemetry.channel import TelemetryProperties
from packtools.telemetry.dashboard_models import (
    DEFAULT_MAX_JOBS,
    FAILURE_STATUSES,
    DashboardExport,
    DashboardJobStatus,
    DashboardQuery,
    DashboardSnapshot,
    DependencyDashboardSummary,
    JobRunSummary,
    ReleaseChannelSnapshot,
    SigningDashboardSummary,
)

MAX_JOB_HISTORY = 500

_STATUS_ALIASES: dict[str, DashboardJobStatus] = {
    "SUCCEEDED": DashboardJobStatus.SUCCEEDED,
    "SUCCESS": DashboardJobStatus.SUCCEEDED,
    "FAILED": DashboardJobStatus.FAILED,
    "FAILURE": DashboardJobStatus.FAILED,
    "RUNNING": DashboardJobStatus.RUNNING,
    "QUEUED": DashboardJobStatus.QUEUED,
    "CANCELLED": DashboardJobStatus.CANCELLED,
    "CANCELED": DashboardJobStatus.CANCELLED,
}


def _utc_now() -> datetime:
    return datetime.now(UTC)


class DashboardTelemetryAggregator:
    """Telemetry channel that keeps dashboard state.

    Only ``pipeline.completed``, ``signing.summary``, ``dependency.summary``
    and ``release.channel.updated`` change state; other events are accepted
    and ignored. One lock covers ingestion and snapshot construction.
    Job history keeps at most ``max_job_history`` entries; the oldest by
    completion time are dropped first.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utc_now,
        max_job_history: int = MAX_JOB_HISTORY,
    ) -> None:
        """Initialize empty dashboard state.

        Args:
            clock: UTC clock, replaceable in tests.
            max_job_history: Upper bound on retained job entries.

        Raises:
            ValueError: If max_job_history is not positive.
        """
        if max_job_history < 1:
            raise ValueError("Error: max_job_history must be positive.")
        self._lock = Lock()
        self._clock = clock
        self._max_job_history = max_job_history
        self._jobs: dict[str, JobRunSummary] = {}
        self._channels: dict[str, ReleaseChannelSnapshot] = {}
        self._signing = SigningDashboardSummary()
        self._dependency = DependencyDashboardSummary()

    def track_event(
        self, name: str, properties: TelemetryProperties | None = None
    ) -> None:
        """Interpret known dashboard events.

        Args:
            name: Event name, matched case-insensitively.
            properties: Event property bag.
        """
        if not name or not name.strip() or properties is None:
            return
        event = name.strip().lower()
        if event == "pipeline.completed":
            self.record_job(self._parse_job(properties))
        elif event == "signing.summary":
            self.update_signing(_parse_signing(properties))
        elif event == "dependency.summary":
            self.update_dependency(_parse_dependency(properties))
        elif event == "release.channel.updated":
            self.upsert_release_channel(self._parse_channel(properties))

    def track_dependency(
        self,
        name: str,
        duration: timedelta,
        success: bool,
        properties: TelemetryProperties | None = None,
    ) -> None:
        """Count failed dependency calls as high-severity findings.

        Args:
            name: Dependency name.
            duration: Wall-clock duration.
            success: Whether the call completed without exception.
            properties: Extra properties.
        """
        if success:
            return
        with self._lock:
            self._dependency = self._dependency.model_copy(
                update={
                    "high_severity_findings": self._dependency.high_severity_findings
                    + 1
                }
            )

    def record_job(self, summary: JobRunSummary) -> None:
        """Insert or replace a job entry; last write wins by id.

        Args:
            summary: Job summary.
        """
        with self._lock:
            self._jobs[summary.id.lower()] = summary
            self._trim_jobs()

    def update_signing(self, summary: SigningDashboardSummary) -> None:
        """Replace signing summary.

        Args:
            summary: New signing summary.
        """
        with self._lock:
            self._signing = summary

    def update_dependency(self, summary: DependencyDashboardSummary) -> None:
        """Replace dependency summary.

        Args:
            summary: New dependency summary.
        """
        with self._lock:
            self._dependency = summary

    def upsert_release_channel(self, snapshot: ReleaseChannelSnapshot) -> None:
        """Insert or replace one release channel by name.

        Args:
            snapshot: Channel snapshot.
        """
        with self._lock:
            self._channels[snapshot.channel.lower()] = snapshot

    def get_snapshot(self, query: DashboardQuery | None = None) -> DashboardSnapshot:
        """Build a consistent, filtered dashboard snapshot.

        Args:
            query: Optional job filters.

        Returns:
            Dashboard snapshot.
        """
        with self._lock:
            return _apply_query(self._build_snapshot(), query)

    def export(self, query: DashboardQuery | None = None) -> DashboardExport:
        """Build export payload with the same filters as ``get_snapshot``.

        Args:
            query: Optional job filters.

        Returns:
            Dashboard export.
        """
        with self._lock:
            snapshot = _apply_query(self._build_snapshot(), query)
        return DashboardExport(
            generated_at=snapshot.generated_at,
            jobs=snapshot.recent_jobs,
            release_channels=snapshot.release_channels,
        )

    def current_snapshot(self) -> DashboardSnapshot:
        """Return unfiltered snapshot of all state.

        Returns:
            Dashboard snapshot.
        """
        with self._lock:
            return self._build_snapshot()

    def load_snapshot(self, snapshot: DashboardSnapshot) -> None:
        """Replace all state with a previously captured snapshot.

        Args:
            snapshot: Snapshot to restore.
        """
        with self._lock:
            self._jobs = {job.id.lower(): job for job in snapshot.recent_jobs}
            self._trim_jobs()
            self._channels = {
                channel.channel.lower(): channel
                for channel in snapshot.release_channels
            }
            self._signing = snapshot.signing
            self._dependency = snapshot.dependency

    def _trim_jobs(self) -> None:
        """Drop the oldest jobs beyond the history bound. Caller holds the lock."""
        excess = len(self._jobs) - self._max_job_history
        if excess <= 0:
            return
        oldest = sorted(self._jobs.items(), key=lambda item: item[1].completed_at)
        for key, _ in oldest[:excess]:
            del self._jobs[key]

    def _build_snapshot(self) -> DashboardSnapshot:
        """Build unfiltered snapshot. Caller holds the lock."""
        jobs = sorted(
            self._jobs.values(), key=lambda job: job.completed_at, reverse=True
        )
        channels = sorted(self._channels.values(), key=lambda c: c.channel.lower())
        return DashboardSnapshot(
            generated_at=self._clock(),
            recent_jobs=tuple(jobs),
            signing=self._signing,
            dependency=self._dependency,
            release_channels=tuple(channels),
        )

    def _parse_job(self, properties: TelemetryProperties) -> JobRunSummary:
        job_id = _get_string(properties, "jobId") or uuid4().hex
        return JobRunSummary(
            id=job_id,
            display_name=_get_string(properties, "displayName") or job_id,
            platform=_parse_platform(_get_string(properties, "platform")),
            channel=_get_string(properties, "channel") or "default",
            status=parse_status(_get_string(properties, "status")),
            duration=timedelta(
                seconds=_get_float(properties, "durationSeconds") or 0.0
            ),
            completed_at=_parse_datetime(_get_string(properties, "completedAt"))
            or self._clock(),
            blocking_issue_count=_get_int(properties, "blockingIssues") or 0,
        )

    def _parse_channel(self, properties: TelemetryProperties) -> ReleaseChannelSnapshot:
        return ReleaseChannelSnapshot(
            channel=_get_string(properties, "channel") or "unknown",
            latest_version=_get_string(properties, "latestVersion") or "0.0.0",
            published_at=_parse_datetime(_get_string(properties, "publishedAt"))
            or self._clock(),
            deployments_last_30_days=_get_int(properties, "deploymentsLast30Days") or 0,
            is_paused=(_get_string(properties, "isPaused") or "").strip().lower()
            == "true",
        )


def parse_status(value: str | None) -> DashboardJobStatus:
    """Map free-form status text to a dashboard status.

    Args:
        value: Raw status text.

    Returns:
        Dashboard status; unrecognized text maps to ``unknown``.
    """
    if value is None:
        return DashboardJobStatus.UNKNOWN
    return _STATUS_ALIASES.get(value.strip().upper(), DashboardJobStatus.UNKNOWN)


def _apply_query(
    snapshot: DashboardSnapshot, query: DashboardQuery | None
) -> DashboardSnapshot:
    if query is None:
        return snapshot
    jobs = list(snapshot.recent_jobs)
    if query.channel is not None and query.channel.strip():
        wanted = query.channel.lower()
        jobs = [job for job in jobs if job.channel.lower() == wanted]
    if query.failures_only:
        jobs = [job for job in jobs if job.status in FAILURE_STATUSES]
    cap = query.max_jobs if query.max_jobs > 0 else DEFAULT_MAX_JOBS
    jobs.sort(key=lambda job: job.completed_at, reverse=True)
    return snapshot.model_copy(update={"recent_jobs": tuple(jobs[:cap])})


def _parse_signing(properties: TelemetryProperties) -> SigningDashboardSummary:
    return SigningDashboardSummary(
        active_certificates=_get_int(properties, "activeCertificates") or 0,
        certificates_expiring_soon=_get_int(properties, "expiringSoon") or 0,
        failed_signatures_last_7_days=_get_int(properties, "failedLast7Days") or 0,
        pending_approvals=_get_int(properties, "pendingApprovals") or 0,
    )


def _parse_dependency(properties: TelemetryProperties) -> DependencyDashboardSummary:
    return DependencyDashboardSummary(
        tracked_components=_get_int(properties, "trackedComponents") or 0,
        high_severity_findings=_get_int(properties, "highSeverity") or 0,
        medium_severity_findings=_get_int(properties, "mediumSeverity") or 0,
        low_severity_findings=_get_int(properties, "lowSeverity") or 0,
        last_sbom_generated_at=_parse_datetime(
            _get_string(properties, "lastSbomGeneratedAt")
        ),
    )


def _parse_platform(value: str | None) -> Platform:
    if value is None:
        return Platform.LINUX
    try:
        return Platform(value)
    except ValueError:
        return Platform.LINUX


def _parse_datetime(value: str | None) -> datetime | None:
    if value is None or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def _get_string(properties: TelemetryProperties, key: str) -> str | None:
    value = properties.get(key)
    if value is None:
        return None
    return str(value)


def _get_int(properties: TelemetryProperties, key: str) -> int | None:
    value = _get_string(properties, key)
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _get_float(properties: TelemetryProperties, key: str) -> float | None:
    value = _get_string(properties, key)
    if value is None:
        return None
    try:
        return float(value.strip())
    except ValueError:
        return None
