"""Telemetry channel contract and fan-out helpers."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import timedelta
from typing import Protocol

_LOGGER = logging.getLogger(__name__)

TelemetryProperties = Mapping[str, object]


class TelemetryChannel(Protocol):
    """Sink for structured packaging events and timed dependencies."""

    def track_event(
        self, name: str, properties: TelemetryProperties | None = None
    ) -> None:
        """Record one named event.

        Args:
            name: Event name.
            properties: Event property bag.
        """

    def track_dependency(
        self,
        name: str,
        duration: timedelta,
        success: bool,
        properties: TelemetryProperties | None = None,
    ) -> None:
        """Record one timed dependency call.

        Args:
            name: Dependency name.
            duration: Wall-clock duration.
            success: Whether the call completed without exception.
            properties: Extra properties.
        """


class NullTelemetryChannel:
    """Channel that drops everything."""

    def track_event(
        self, name: str, properties: TelemetryProperties | None = None
    ) -> None:
        """Drop event."""

    def track_dependency(
        self,
        name: str,
        duration: timedelta,
        success: bool,
        properties: TelemetryProperties | None = None,
    ) -> None:
        """Drop dependency record."""


class CompositeTelemetryChannel:
    """Fan out to several channels; a failing sink is logged and skipped."""

    def __init__(self, channels: Iterable[TelemetryChannel]) -> None:
        """Store sinks in delivery order.

        Args:
            channels: Downstream channels.
        """
        self._channels = tuple(channels)

    @property
    def channels(self) -> tuple[TelemetryChannel, ...]:
        """Downstream channels."""
        return self._channels

    def track_event(
        self, name: str, properties: TelemetryProperties | None = None
    ) -> None:
        """Deliver event to every sink.

        Args:
            name: Event name.
            properties: Event property bag.
        """
        for channel in self._channels:
            try:
                channel.track_event(name, properties)
            except Exception:  # noqa: BLE001
                _LOGGER.debug("telemetry sink %r rejected event %s", channel, name)

    def track_dependency(
        self,
        name: str,
        duration: timedelta,
        success: bool,
        properties: TelemetryProperties | None = None,
    ) -> None:
        """Deliver dependency record to every sink.

        Args:
            name: Dependency name.
            duration: Wall-clock duration.
            success: Whether the call completed without exception.
            properties: Extra properties.
        """
        for channel in self._channels:
            try:
                channel.track_dependency(name, duration, success, properties)
            except Exception:  # noqa: BLE001
                _LOGGER.debug("telemetry sink %r rejected dependency %s", channel, name)
