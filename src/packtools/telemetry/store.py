"""Best-effort file persistence so several processes share dashboard state."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout
from pydantic import ValidationError

from packtools.atomic_write import atomic_write_json
from packtools.telemetry.aggregator import DashboardTelemetryAggregator
from packtools.telemetry.dashboard_models import DashboardSnapshot

_LOGGER = logging.getLogger(__name__)

DEFAULT_STORE_PATH = Path.home() / ".packtools" / "telemetry" / "dashboard.json"
_LOCK_TIMEOUT_SECONDS = 5.0


class DashboardTelemetryStore:
    """JSON snapshot file guarded by a sibling ``.lock`` file.

    Every failure is logged at debug level and swallowed; persistence never
    affects a packaging run.
    """

    def __init__(self, path: Path | None = None) -> None:
        """Initialize store.

        Args:
            path: Snapshot file path; defaults to the per-user telemetry file.
        """
        self._path = path or DEFAULT_STORE_PATH

    @property
    def path(self) -> Path:
        """Snapshot file path."""
        return self._path

    def create_aggregator(self) -> DashboardTelemetryAggregator:
        """Create aggregator pre-loaded from the store.

        Returns:
            Aggregator holding persisted state, or empty state.
        """
        aggregator = DashboardTelemetryAggregator()
        self.reload(aggregator)
        return aggregator

    def reload(self, aggregator: DashboardTelemetryAggregator) -> bool:
        """Load persisted state into aggregator.

        Args:
            aggregator: Aggregator to overwrite.

        Returns:
            True when state was loaded.
        """
        if not self._path.exists():
            return False
        try:
            with self._locked():
                raw = self._path.read_text(encoding="utf-8")
            snapshot = DashboardSnapshot.model_validate(json.loads(raw))
        except (OSError, Timeout, json.JSONDecodeError, ValidationError) as exc:
            _LOGGER.debug("ignoring unreadable dashboard store %s: %s", self._path, exc)
            return False
        aggregator.load_snapshot(snapshot)
        return True

    def save(self, aggregator: DashboardTelemetryAggregator) -> bool:
        """Persist current aggregator state atomically.

        Args:
            aggregator: Aggregator to persist.

        Returns:
            True when the snapshot was written.
        """
        snapshot = aggregator.current_snapshot()
        try:
            with self._locked():
                atomic_write_json(
                    self._path,
                    snapshot.model_dump(mode="json"),
                    temp_prefix="dashboard",
                )
        except (OSError, Timeout) as exc:
            _LOGGER.debug("could not persist dashboard store %s: %s", self._path, exc)
            return False
        return True

    @contextmanager
    def _locked(self) -> Iterator[None]:
        lock_path = self._path.with_name(f"{self._path.name}.lock")
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        flock = FileLock(str(lock_path), timeout=_LOCK_TIMEOUT_SECONDS)
        flock.acquire()
        try:
            yield
        finally:
            flock.release()
