"""Data models for telemetry payloads and persisted records."""

from pybustrack.models._base import (
    DocumentModel,
    DocumentTimestamp,
    RequiredTimestamp,
    TelemetryBaseModel,
    TelemetryEnum,
    TelemetryTimestamp,
)
from pybustrack.models.bus import (
    BusAttributes,
    BusInfo,
    BusLocation,
    BusStatus,
    DriverInfo,
    OperatingHours,
    RouteInfo,
)
from pybustrack.models.device import Device, DeviceStatus
from pybustrack.models.position import PositionAttributes, PositionReport
from pybustrack.models.probe import ConnectionProbe, ProbeStatus
from pybustrack.models.route import CatalogRoute, RouteAggregate
from pybustrack.models.user import TelemetryUser

__all__ = [
    "BusAttributes",
    "BusInfo",
    "BusLocation",
    "BusStatus",
    "CatalogRoute",
    "ConnectionProbe",
    "Device",
    "DeviceStatus",
    "DocumentModel",
    "DocumentTimestamp",
    "DriverInfo",
    "OperatingHours",
    "PositionAttributes",
    "PositionReport",
    "ProbeStatus",
    "RequiredTimestamp",
    "RouteAggregate",
    "RouteInfo",
    "TelemetryBaseModel",
    "TelemetryEnum",
    "TelemetryTimestamp",
    "TelemetryUser",
]
