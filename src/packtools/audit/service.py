"""Snapshot history of project configurations with diffing."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from threading import Lock
from uuid import uuid4

from packtools.audit.differ import compute_project_diff
from packtools.audit.models import ConfigurationDiff, ConfigurationSnapshot
from packtools.models import PackagingProject


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _copy_project(project: PackagingProject) -> PackagingProject:
    return PackagingProject.model_validate(project.model_dump())


class ConfigurationAuditService:
    """Thread-safe store of immutable configuration snapshots.

    Snapshots hold re-validated copies with read-only mappings, so neither
    the live project nor a returned snapshot can alter history.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utc_now) -> None:
        """Initialize empty history.

        Args:
            clock: UTC clock, replaceable in tests.
        """
        self._lock = Lock()
        self._clock = clock
        self._snapshots: dict[str, ConfigurationSnapshot] = {}
        self._order: list[str] = []

    def capture_snapshot(
        self,
        project: PackagingProject,
        *,
        author: str | None = None,
        comment: str | None = None,
    ) -> ConfigurationSnapshot:
        """Capture and store a copy of project.

        Args:
            project: Project to capture.
            author: Optional actor identifier.
            comment: Optional change annotation.

        Returns:
            Stored snapshot.
        """
        snapshot = ConfigurationSnapshot(
            id=uuid4().hex,
            captured_at=self._clock(),
            author=author,
            comment=comment,
            project=_copy_project(project),
        )
        with self._lock:
            self._snapshots[snapshot.id] = snapshot
            self._order.append(snapshot.id)
        return snapshot

    def snapshots(self) -> tuple[ConfigurationSnapshot, ...]:
        """Return snapshots ordered by capture time.

        Returns:
            Snapshot history, oldest first.
        """
        with self._lock:
            history = [self._snapshots[snapshot_id] for snapshot_id in self._order]
        return tuple(sorted(history, key=lambda snapshot: snapshot.captured_at))

    def latest_snapshot(self) -> ConfigurationSnapshot | None:
        """Return most recently captured snapshot, if any."""
        with self._lock:
            if not self._order:
                return None
            return self._snapshots[self._order[-1]]

    def get_snapshot(self, snapshot_id: str) -> ConfigurationSnapshot | None:
        """Look up snapshot by id.

        Args:
            snapshot_id: Snapshot identifier.

        Returns:
            Snapshot or None.
        """
        with self._lock:
            return self._snapshots.get(snapshot_id)

    def compute_diff(
        self,
        baseline: ConfigurationSnapshot | str,
        target: ConfigurationSnapshot | str,
    ) -> ConfigurationDiff:
        """Diff two snapshots, given directly or by stored id.

        Args:
            baseline: Earlier snapshot or its id.
            target: Later snapshot or its id.

        Returns:
            Configuration diff.

        Raises:
            KeyError: If an id does not name a stored snapshot.
        """
        before = self._resolve(baseline)
        after = self._resolve(target)
        return compute_project_diff(before.project, after.project)

    def preview_diff(self, project: PackagingProject) -> ConfigurationDiff | None:
        """Diff latest snapshot against a live project.

        Args:
            project: Live project.

        Returns:
            Diff, or None when no snapshot exists yet.
        """
        latest = self.latest_snapshot()
        if latest is None:
            return None
        return compute_project_diff(latest.project, project)

    def restore(self, snapshot_id: str) -> PackagingProject | None:
        """Return an independent copy of a captured project.

        Args:
            snapshot_id: Snapshot identifier.

        Returns:
            Copy of the captured project, or None when unknown.
        """
        snapshot = self.get_snapshot(snapshot_id)
        if snapshot is None:
            return None
        return _copy_project(snapshot.project)

    def clear(self) -> None:
        """Drop all history."""
        with self._lock:
            self._snapshots.clear()
            self._order.clear()

    def _resolve(self, ref: ConfigurationSnapshot | str) -> ConfigurationSnapshot:
        if isinstance(ref, ConfigurationSnapshot):
            return ref
        snapshot = self.get_snapshot(ref)
        if snapshot is None:
            raise KeyError(f"Error: snapshot '{ref}' not found.")
        return snapshot
