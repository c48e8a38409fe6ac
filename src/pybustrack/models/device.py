"""Telemetry device model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator

from pybustrack.ingestion.normalize import safe_str
from pybustrack.models._base import TelemetryBaseModel, TelemetryEnum, TelemetryTimestamp


class DeviceStatus(TelemetryEnum):
    """Connection status reported by the telemetry server."""

    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


class Device(TelemetryBaseModel):
    """A vehicle tracker registered on the telemetry server.

    The ``unique_id`` encodes ``<routeNumber>-<busSequence>``
    (e.g. ``"138-007"``) for buses provisioned by the operator.
    """

    id: int
    """Numeric device id; position fixes reference it as ``deviceId``."""
    name: str = ""
    """Free-text device name (legacy fleets encode ``Bus_<route>_...`` here)."""
    unique_id: str = Field(validation_alias=AliasChoices("uniqueId", "uniqueIdentifier", "unique_id"))
    """Unique tracker identifier."""
    status: DeviceStatus = DeviceStatus.UNKNOWN
    disabled: bool = False
    contact: str | None = None
    """Driver name, when the operator recorded one."""
    phone: str | None = None
    model: str | None = None
    category: str | None = None
    last_update: TelemetryTimestamp = None

    @field_validator("unique_id", "name", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("contact", "phone", "model", "category", mode="before")
    @classmethod
    def _coerce_optional_text(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> DeviceStatus:
        return DeviceStatus(str(value))
