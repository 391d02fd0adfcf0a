"""Discover and import plugins from JSON manifests."""

from __future__ import annotations

import importlib
import importlib.util
import json
import logging
from pathlib import Path
from types import ModuleType

from pydantic import ValidationError

from packtools.errors import PackagingError, PackagingErrorCode
from packtools.plugins.models import PackagingPlugin, PluginDescriptor, PluginManifest

_LOGGER = logging.getLogger(__name__)

MANIFEST_GLOB = "*.json"


def _fail(manifest_path: Path, message: str) -> PackagingError:
    return PackagingError(
        PackagingErrorCode.PLUGIN_LOAD_FAILED,
        f"Error: plugin manifest '{manifest_path}' {message}",
        data={"manifest": str(manifest_path)},
    )


def read_manifest(manifest_path: Path) -> PluginManifest:
    """Read and validate one manifest file.

    Args:
        manifest_path: Path to the JSON manifest.

    Returns:
        Validated manifest.

    Raises:
        PackagingError: If the file cannot be read or is not a valid manifest.
    """
    try:
        payload = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise _fail(manifest_path, f"could not be read: {exc}") from exc
    try:
        return PluginManifest.model_validate(payload)
    except ValidationError as exc:
        raise _fail(manifest_path, f"is invalid: {exc}") from exc


def load_plugin(manifest: PluginManifest, manifest_path: Path) -> PackagingPlugin:
    """Import the module named by a manifest and resolve its plugin export.

    The export may be a ``PackagingPlugin`` instance or a zero-argument
    callable returning one.

    Args:
        manifest: Validated manifest.
        manifest_path: Manifest location; anchors a relative ``path``.

    Returns:
        Plugin instance.

    Raises:
        PackagingError: If import fails or the export is not a plugin.
    """
    module = _import_module(manifest, manifest_path)
    export = getattr(module, manifest.attribute, None)
    if export is None:
        raise _fail(
            manifest_path,
            f"names missing attribute '{manifest.module}.{manifest.attribute}'.",
        )
    plugin = export if isinstance(export, PackagingPlugin) else None
    if plugin is None and callable(export):
        try:
            plugin = export()
        except Exception as exc:  # noqa: BLE001
            raise _fail(manifest_path, f"factory raised: {exc}") from exc
    if not isinstance(plugin, PackagingPlugin):
        raise _fail(
            manifest_path,
            f"export '{manifest.attribute}' is not a PackagingPlugin.",
        )
    return plugin


def load_plugins(directory: Path) -> list[PluginDescriptor]:
    """Load every enabled plugin whose manifest sits in a directory.

    Only the directory's top level is scanned, in file-name order. Broken
    manifests are logged and skipped.

    Args:
        directory: Probe directory.

    Returns:
        Loaded plugins.
    """
    if not directory.is_dir():
        return []
    descriptors: list[PluginDescriptor] = []
    for manifest_path in sorted(directory.glob(MANIFEST_GLOB)):
        try:
            manifest = read_manifest(manifest_path)
            if manifest.disabled:
                _LOGGER.debug("plugins.disabled manifest=%s", manifest_path)
                continue
            plugin = load_plugin(manifest, manifest_path)
        except PackagingError as exc:
            _LOGGER.warning("%s", exc)
            continue
        _LOGGER.debug(
            "plugins.loaded name=%s version=%s manifest=%s",
            plugin.name,
            plugin.version,
            manifest_path,
        )
        descriptors.append(
            PluginDescriptor(
                plugin=plugin, manifest=manifest, manifest_path=manifest_path
            )
        )
    return descriptors


def _import_module(manifest: PluginManifest, manifest_path: Path) -> ModuleType:
    if manifest.path is None:
        try:
            return importlib.import_module(manifest.module)
        except Exception as exc:  # noqa: BLE001
            raise _fail(
                manifest_path, f"module '{manifest.module}' failed to import: {exc}"
            ) from exc
    source = Path(manifest.path)
    if not source.is_absolute():
        source = manifest_path.parent / source
    if not source.is_file():
        raise _fail(manifest_path, f"path '{source}' does not exist.")
    spec = importlib.util.spec_from_file_location(manifest.module, source)
    if spec is None or spec.loader is None:
        raise _fail(manifest_path, f"path '{source}' is not importable.")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:  # noqa: BLE001
        raise _fail(
            manifest_path, f"module '{manifest.module}' failed to import: {exc}"
        ) from exc
    return module
