"""Wire models for device readings, snapshots and history points.

Every model inherits from :class:`HubModel`, which maps the device's
camelCase keys (``heartRate``, ``fallDetected``) onto snake_case fields
and is immutable once built.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

# Only these are historized; GPS and fall detection live in the snapshot only.
HISTORY_FIELDS = ("acceleration", "heart_rate", "spo2", "temperature")
HISTORY_METRICS = tuple(to_camel(name) for name in HISTORY_FIELDS)
_METRIC_FIELDS = dict(zip(HISTORY_METRICS, HISTORY_FIELDS))

DEFAULT_ACCELERATION = 0.0
DEFAULT_FALL_DETECTED = False


class HubModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Reading(HubModel):
    """One validated device reading. None means "not reported".

    Strict: booleans are not numbers, numeric strings are not numbers and
    ``fallDetected`` must be a real boolean. NaN and infinities are rejected.
    """

    model_config = ConfigDict(strict=True, allow_inf_nan=False)

    acceleration: float | None = None
    fall_detected: bool | None = None
    heart_rate: float | None = None
    spo2: float | None = None
    temperature: float | None = None
    latitude: float | None = None
    longitude: float | None = None
    satellites: int | None = None

    @field_validator("satellites", mode="before")
    @classmethod
    def satellites_from_integral_float(cls, value: Any) -> Any:
        # some firmware sends satellite counts as 6.0
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value

    def metric(self, name: str) -> float | None:
        return getattr(self, _METRIC_FIELDS[name])


class Snapshot(HubModel):
    acceleration: float = DEFAULT_ACCELERATION
    fall_detected: bool = DEFAULT_FALL_DETECTED
    heart_rate: float | None = None
    spo2: float | None = None
    temperature: float | None = None
    latitude: float | None = None
    longitude: float | None = None
    satellites: int | None = None
    timestamp: int

    @classmethod
    def initial(cls, timestamp: int) -> "Snapshot":
        return cls(timestamp=timestamp)

    @classmethod
    def from_reading(cls, reading: Reading, timestamp: int) -> "Snapshot":
        """Overlay the reading onto field defaults, never onto a previous snapshot."""
        return cls(timestamp=timestamp, **reading.model_dump(exclude_none=True))


class HistoryPoint(HubModel):
    value: float
    timestamp: int
