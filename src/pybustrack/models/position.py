"""Position fix model."""

from __future__ import annotations

from pydantic import Field, field_validator

from pybustrack.models._base import RequiredTimestamp, TelemetryBaseModel, TelemetryTimestamp


class PositionAttributes(TelemetryBaseModel):
    """Typed view of the attribute bag attached to a fix.

    Unrecognised keys stay available through ``raw``; malformed values
    for the known keys fail validation at the ingestion boundary.
    """

    ignition: bool = False
    motion: bool = False
    distance: float = 0.0
    total_distance: float = 0.0


class PositionReport(TelemetryBaseModel):
    """A single GPS fix for a device."""

    id: int | None = None
    device_id: int
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    altitude: float = 0.0
    speed: float = 0.0
    course: float = 0.0
    accuracy: float = 0.0
    valid: bool = True
    fix_time: RequiredTimestamp
    device_time: TelemetryTimestamp = None
    server_time: TelemetryTimestamp = None
    attributes: PositionAttributes = Field(default_factory=PositionAttributes)

    @field_validator("speed")
    @classmethod
    def _clamp_speed(cls, value: float) -> float:
        # Some trackers report -1 when the receiver has no speed.
        return max(value, 0.0)
