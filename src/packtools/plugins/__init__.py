"""Plugin discovery public surface."""

from packtools.plugins.loader import load_plugin, load_plugins, read_manifest
from packtools.plugins.models import (
    DEFAULT_PLUGIN_ATTRIBUTE,
    PackagingPlugin,
    PluginDescriptor,
    PluginManifest,
)
from packtools.plugins.probing import (
    PLUGIN_ENV_VAR,
    PLUGIN_METADATA_KEY,
    parse_path_list,
    resolve_probe_directories,
)
from packtools.plugins.registry import PluginRegistry

__all__ = [
    "DEFAULT_PLUGIN_ATTRIBUTE",
    "PLUGIN_ENV_VAR",
    "PLUGIN_METADATA_KEY",
    "PackagingPlugin",
    "PluginDescriptor",
    "PluginManifest",
    "PluginRegistry",
    "load_plugin",
    "load_plugins",
    "parse_path_list",
    "read_manifest",
    "resolve_probe_directories",
]
