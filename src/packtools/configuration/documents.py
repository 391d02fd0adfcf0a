"""JSON/YAML document decoding shared by project and settings loaders."""

from __future__ import annotations

import json
from pathlib import Path

import yaml

from packtools.errors import PackagingError, PackagingErrorCode


def decode_document(
    path: Path, *, code: PackagingErrorCode, label: str
) -> dict[str, object]:
    """Decode a JSON or YAML document whose root must be an object.

    Args:
        path: Document path.
        code: Error code raised on failure.
        label: Human label used in error messages, e.g. "project".

    Returns:
        Parsed mapping payload; empty documents decode to ``{}``.

    Raises:
        PackagingError: If the file cannot be read or decoded.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PackagingError(
            code,
            f"Error: unable to read {label} file '{path}': {exc}",
            data={"path": str(path)},
        ) from exc
    if path.suffix.lower() == ".json":
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise PackagingError(
                code,
                f"Error: invalid {label} JSON in '{path}': {exc}",
                data={"path": str(path)},
            ) from exc
    else:
        try:
            payload = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise PackagingError(
                code,
                f"Error: invalid {label} YAML in '{path}': {exc}",
                data={"path": str(path)},
            ) from exc
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise PackagingError(
            code,
            f"Error: invalid {label} payload in '{path}': root must be an object.",
            data={"path": str(path)},
        )
    return payload


def stringify_scalar(value: object) -> str:
    """Render a YAML/JSON scalar as the string form settings use.

    Args:
        value: Decoded scalar.

    Returns:
        ``true``/``false`` for booleans, ``""`` for null, else ``str(value)``.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)
