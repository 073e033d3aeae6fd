"""Exception hierarchy for sensor_hub."""

from __future__ import annotations

from typing import Dict


class SensorHubError(Exception):
    """Base exception for all sensor_hub errors."""


class ConfigError(SensorHubError):
    """Config file missing or unreadable."""


class MalformedReadingError(SensorHubError):
    """A recognized reading field has the wrong shape."""

    def __init__(self, message: str, *, fields: Dict[str, str] | None = None) -> None:
        self.fields = dict(fields or {})
        super().__init__(message)


class DeliveryError(SensorHubError):
    """A subscriber's channel can no longer take messages."""


class RegistryFullError(SensorHubError):
    """No room for another live subscriber."""
