"""Run auditor wiring pipeline audit passes to the snapshot history."""

from __future__ import annotations

from packtools.audit.service import ConfigurationAuditService
from packtools.models import PackagingIssue, PackagingResult
from packtools.pipeline.providers import PackageFormatContext


class SnapshotRunAuditor:
    """Capture the run's project configuration after packaging."""

    def __init__(
        self, service: ConfigurationAuditService, *, author: str | None = None
    ) -> None:
        """Initialize auditor.

        Args:
            service: Snapshot history receiving captures.
            author: Default author recorded on snapshots.
        """
        self._service = service
        self._author = author

    def audit(
        self, context: PackageFormatContext, result: PackagingResult
    ) -> list[PackagingIssue]:
        """Capture snapshot annotated with the run outcome.

        Args:
            context: Run inputs.
            result: Result after providers and verification.

        Returns:
            One informational issue naming the captured snapshot.
        """
        status = "succeeded" if result.success else "failed"
        snapshot = self._service.capture_snapshot(
            context.project,
            author=self._author,
            comment=(
                f"{context.request.platform.value} run {status} with "
                f"{len(result.artifacts)} artifact(s)"
            ),
        )
        return [
            PackagingIssue.info(
                "audit.snapshot.captured",
                f"Configuration snapshot {snapshot.id} captured.",
            )
        ]
