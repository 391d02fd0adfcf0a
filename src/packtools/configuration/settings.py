"""Host settings models and loading helpers."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from packtools.configuration.documents import decode_document
from packtools.errors import PackagingError, PackagingErrorCode

DEFAULT_SETTINGS_PATH = Path(".packtools") / "config.yaml"


class TelemetrySettings(BaseModel):
    """Dashboard telemetry persistence settings."""

    model_config = ConfigDict(extra="forbid")

    store_path: str | None = None
    persist: bool = True


class PluginSettings(BaseModel):
    """Plugin probe settings."""

    model_config = ConfigDict(extra="forbid")

    directories: list[str] = []


class PipelineSettings(BaseModel):
    """Pipeline behavior switches."""

    model_config = ConfigDict(extra="forbid")

    warn_on_unmatched_formats: bool = False


class LoggingSettings(BaseModel):
    """Logging verbosity."""

    model_config = ConfigDict(extra="forbid")

    level: str = "WARNING"

    def resolved_level(self) -> int:
        """Return numeric logging level, defaulting to WARNING when unknown."""
        level = logging.getLevelName(self.level.strip().upper())
        return level if isinstance(level, int) else logging.WARNING


class PacktoolsSettings(BaseModel):
    """Root host configuration."""

    model_config = ConfigDict(extra="forbid")

    telemetry: TelemetrySettings = TelemetrySettings()
    plugins: PluginSettings = PluginSettings()
    pipeline: PipelineSettings = PipelineSettings()
    logging: LoggingSettings = LoggingSettings()


def load_settings(path: Path | None = None) -> PacktoolsSettings:
    """Load host settings from disk, defaulting when missing.

    Args:
        path: Settings file path; defaults to ``.packtools/config.yaml``.

    Returns:
        Parsed settings, or defaults when the file does not exist.

    Raises:
        PackagingError: If decode or validation fails.
    """
    target = path or DEFAULT_SETTINGS_PATH
    if not target.exists():
        return PacktoolsSettings()
    payload = decode_document(
        target, code=PackagingErrorCode.CONFIG_INVALID, label="settings"
    )
    try:
        return PacktoolsSettings.model_validate(payload)
    except ValidationError as exc:
        raise PackagingError(
            PackagingErrorCode.CONFIG_INVALID,
            f"Error: invalid settings payload in '{target}': {exc}",
            data={"path": str(target)},
        ) from exc
