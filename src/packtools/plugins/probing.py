"""Resolve plugin probe directories from overrides, project metadata, and env."""

from __future__ import annotations

import os
import re
from collections.abc import Iterable, Mapping
from pathlib import Path

from packtools.models import PackagingProject, lookup_ignore_case

PLUGIN_METADATA_KEY = "plugins.directories"
PLUGIN_ENV_VAR = "PACKTOOLS_PLUGIN_PATHS"
DEFAULT_USER_PLUGIN_DIR = Path.home() / ".packtools" / "plugins"

_PATH_SEPARATORS = re.compile(rf"[{re.escape(os.pathsep)};,\r\n]")


def parse_path_list(value: str | None) -> list[str]:
    """Split a path list on os.pathsep, ``;``, ``,`` and newlines.

    Args:
        value: Raw path list.

    Returns:
        Trimmed non-empty entries in order.
    """
    if not value or not value.strip():
        return []
    return [item.strip() for item in _PATH_SEPARATORS.split(value) if item.strip()]


def resolve_probe_directories(
    project: PackagingProject | None = None,
    project_path: Path | None = None,
    *,
    overrides: Iterable[str] = (),
    settings_directories: Iterable[str] = (),
    env: Mapping[str, str] | None = None,
    include_user_directory: bool = True,
) -> list[Path]:
    """Resolve ordered, de-duplicated plugin probe directories.

    Order: explicit overrides, project metadata ``plugins.directories``
    (both relative to the project directory), host settings directories
    (relative to the working directory), ``PACKTOOLS_PLUGIN_PATHS``, then
    the per-user plugin directory.

    Args:
        project: Project whose metadata may list directories.
        project_path: Project file or directory used to anchor relative paths.
        overrides: Caller-supplied directories.
        settings_directories: Directories from host settings.
        env: Environment mapping; defaults to ``os.environ``.
        include_user_directory: Whether to append the per-user directory.

    Returns:
        Absolute directories in probe order.
    """
    environ = os.environ if env is None else env
    project_dir = _project_directory(project_path)
    resolved: list[Path] = []
    seen: set[str] = set()

    def add(candidate: str | Path, base: Path | None) -> None:
        path = Path(candidate).expanduser()
        if not path.is_absolute() and base is not None:
            path = base / path
        absolute = path.resolve()
        key = os.path.normcase(str(absolute))
        if key not in seen:
            seen.add(key)
            resolved.append(absolute)

    for item in overrides:
        if item.strip():
            add(item.strip(), project_dir)
    if project is not None:
        for item in parse_path_list(
            lookup_ignore_case(project.metadata, PLUGIN_METADATA_KEY)
        ):
            add(item, project_dir)
    for item in settings_directories:
        if item.strip():
            add(item.strip(), None)
    for item in parse_path_list(environ.get(PLUGIN_ENV_VAR)):
        add(item, None)
    if include_user_directory:
        add(DEFAULT_USER_PLUGIN_DIR, None)
    return resolved


def _project_directory(project_path: Path | None) -> Path | None:
    if project_path is None:
        return None
    if project_path.is_dir():
        return project_path.resolve()
    return project_path.resolve().parent
