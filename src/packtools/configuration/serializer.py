"""Load and save packaging project documents as JSON or YAML."""

from __future__ import annotations

import json
from pathlib import Path

import yaml
from pydantic import ValidationError

from packtools.atomic_write import atomic_write_text
from packtools.configuration.documents import decode_document, stringify_scalar
from packtools.errors import PackagingError, PackagingErrorCode
from packtools.models import PackagingProject, Platform

PROJECT_SUFFIXES = (".json", ".yaml", ".yml")


def load_project(path: Path) -> PackagingProject:
    """Load a project document.

    Platform keys are case-insensitive; scalar metadata and property values
    are coerced to strings.

    Args:
        path: Project file path.

    Returns:
        Validated project.

    Raises:
        PackagingError: If the file is missing, undecodable, or invalid.
    """
    if not path.exists():
        raise PackagingError(
            PackagingErrorCode.PROJECT_NOT_FOUND,
            f"Error: project file '{path}' does not exist.",
            data={"path": str(path)},
        )
    payload = decode_document(
        path, code=PackagingErrorCode.PROJECT_INVALID, label="project"
    )
    try:
        return parse_project(payload)
    except (ValidationError, ValueError) as exc:
        raise PackagingError(
            PackagingErrorCode.PROJECT_INVALID,
            f"Error: invalid project document '{path}': {exc}",
            data={"path": str(path)},
        ) from exc


def parse_project(payload: dict[str, object]) -> PackagingProject:
    """Validate a decoded project document.

    Args:
        payload: Decoded document mapping.

    Returns:
        Validated project.

    Raises:
        ValueError: If a platform key is unknown.
        ValidationError: If the document shape is invalid.
    """
    normalized: dict[str, object] = dict(payload)
    normalized["metadata"] = _string_map(payload.get("metadata"))
    platforms_raw = payload.get("platforms") or {}
    if not isinstance(platforms_raw, dict):
        raise ValueError("platforms must be an object")
    platforms: dict[str, object] = {}
    for key, block in platforms_raw.items():
        platform = Platform(str(key))
        block_map = block if isinstance(block, dict) else {}
        platforms[platform.value] = {
            "formats": [str(item) for item in block_map.get("formats") or []],
            "properties": _string_map(block_map.get("properties")),
        }
    normalized["platforms"] = platforms
    return PackagingProject.model_validate(normalized)


def dump_project(project: PackagingProject) -> dict[str, object]:
    """Render project as a deterministic document mapping.

    Args:
        project: Project to render.

    Returns:
        JSON/YAML-ready mapping with sorted formats.
    """
    return {
        "id": project.id,
        "name": project.name,
        "version": project.version,
        "metadata": dict(project.metadata),
        "platforms": {
            platform.value: {
                "formats": sorted(config.formats, key=str.casefold),
                "properties": dict(config.properties),
            }
            for platform, config in project.platforms.items()
        },
    }


def save_project(project: PackagingProject, path: Path) -> None:
    """Write project atomically; ``.json`` writes JSON, anything else YAML.

    Args:
        project: Project to persist.
        path: Destination path.
    """
    document = dump_project(project)
    if path.suffix.lower() == ".json":
        content = json.dumps(document, indent=2) + "\n"
    else:
        content = yaml.safe_dump(document, sort_keys=False)
    atomic_write_text(path, content, temp_prefix="project")


def _string_map(raw: object) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError("expected an object of string values")
    return {str(key): stringify_scalar(value) for key, value in raw.items()}
