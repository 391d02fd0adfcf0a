"""Project stores consulted by packaging pipelines."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from threading import Lock
from typing import Protocol

from packtools.configuration.serializer import PROJECT_SUFFIXES, load_project
from packtools.errors import CancellationToken
from packtools.models import PackagingProject

_LOGGER = logging.getLogger(__name__)


class ProjectStore(Protocol):
    """Read access to persisted project definitions."""

    def try_load(
        self,
        project_id: str,
        *,
        cancellation: CancellationToken | None = None,
    ) -> PackagingProject | None:
        """Load project by id.

        Args:
            project_id: Project identifier.
            cancellation: Optional cancellation token.
        """


class InMemoryProjectStore:
    """Thread-safe in-memory project store keyed by id."""

    def __init__(self, projects: Iterable[PackagingProject] = ()) -> None:
        """Initialize store.

        Args:
            projects: Initial projects.
        """
        self._lock = Lock()
        self._projects = {project.id: project for project in projects}

    def add(self, project: PackagingProject) -> None:
        """Insert or replace one project.

        Args:
            project: Project to store.
        """
        with self._lock:
            self._projects[project.id] = project

    def try_load(
        self,
        project_id: str,
        *,
        cancellation: CancellationToken | None = None,
    ) -> PackagingProject | None:
        """Return stored project or None.

        Args:
            project_id: Project identifier.
            cancellation: Optional cancellation token.

        Returns:
            Project or None.
        """
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        with self._lock:
            return self._projects.get(project_id)


class FileProjectStore:
    """Directory of ``<id>.json``/``<id>.yaml``/``<id>.yml`` project documents."""

    def __init__(self, root: Path) -> None:
        """Initialize store.

        Args:
            root: Directory holding project documents.
        """
        self._root = root

    def try_load(
        self,
        project_id: str,
        *,
        cancellation: CancellationToken | None = None,
    ) -> PackagingProject | None:
        """Load project document by id.

        Args:
            project_id: Project identifier.
            cancellation: Optional cancellation token.

        Returns:
            Project, or None when no document exists for the id.

        Raises:
            PackagingError: If a document exists but is invalid.
        """
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        if not project_id or Path(project_id).name != project_id:
            return None
        for suffix in PROJECT_SUFFIXES:
            candidate = self._root / f"{project_id}{suffix}"
            if candidate.is_file():
                _LOGGER.debug("loading project %s from %s", project_id, candidate)
                return load_project(candidate)
        return None
