"""Unit tests for host settings loading."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from packtools.configuration.settings import (
    LoggingSettings,
    PacktoolsSettings,
    load_settings,
)
from packtools.errors import PackagingError, PackagingErrorCode


@pytest.mark.unit
def test_missing_settings_file_yields_defaults(tmp_path: Path) -> None:
    """An absent file is not an error."""
    settings = load_settings(tmp_path / "config.yaml")

    assert settings == PacktoolsSettings()
    assert settings.telemetry.persist is True
    assert settings.telemetry.store_path is None
    assert settings.pipeline.warn_on_unmatched_formats is False


@pytest.mark.unit
def test_settings_file_overrides_sections(tmp_path: Path) -> None:
    """Each section is parsed from YAML."""
    # Arrange
    path = tmp_path / "config.yaml"
    path.write_text(
        "telemetry:\n"
        "  store_path: state/dashboard.json\n"
        "  persist: false\n"
        "plugins:\n"
        "  directories: [plugins, /opt/packtools/plugins]\n"
        "pipeline:\n"
        "  warn_on_unmatched_formats: true\n"
        "logging:\n"
        "  level: debug\n",
        encoding="utf-8",
    )

    # Act
    settings = load_settings(path)

    # Assert
    assert settings.telemetry.store_path == "state/dashboard.json"
    assert settings.telemetry.persist is False
    assert settings.plugins.directories == ["plugins", "/opt/packtools/plugins"]
    assert settings.pipeline.warn_on_unmatched_formats is True
    assert settings.logging.resolved_level() == logging.DEBUG


@pytest.mark.unit
def test_empty_settings_file_yields_defaults(tmp_path: Path) -> None:
    """An empty document decodes to defaults."""
    path = tmp_path / "config.yaml"
    path.write_text("", encoding="utf-8")

    assert load_settings(path) == PacktoolsSettings()


@pytest.mark.unit
@pytest.mark.parametrize(
    "content",
    ["telemetry: {unknown: 1}\n", "pipeline: [1, 2]\n", "logging: {level: [\n"],
    ids=["unknown_key", "wrong_shape", "bad_yaml"],
)
def test_invalid_settings_raise_config_invalid(tmp_path: Path, content: str) -> None:
    """Invalid settings report CONFIG_INVALID with the offending path."""
    path = tmp_path / "config.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(PackagingError) as excinfo:
        load_settings(path)

    assert excinfo.value.code == PackagingErrorCode.CONFIG_INVALID
    assert excinfo.value.data == {"path": str(path)}


@pytest.mark.unit
def test_unknown_logging_level_defaults_to_warning() -> None:
    """Unrecognized level names fall back to WARNING."""
    assert LoggingSettings(level="chatty").resolved_level() == logging.WARNING
