"""Bus location record persisted for subscribers."""

from __future__ import annotations

import enum

from pydantic import Field

from pybustrack._constants import DEFAULT_BUS_CAPACITY, DEFAULT_BUS_MODEL, DEFAULT_BUS_TYPE
from pybustrack.models._base import DocumentModel, DocumentTimestamp


class BusStatus(enum.StrEnum):
    """Derived operating status of a bus."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"


class OperatingHours(DocumentModel):
    start: str
    end: str


class BusInfo(DocumentModel):
    """Static vehicle details."""

    plate_number: str
    capacity: int = DEFAULT_BUS_CAPACITY
    type: str = DEFAULT_BUS_TYPE
    model: str = DEFAULT_BUS_MODEL


class DriverInfo(DocumentModel):
    name: str
    phone: str = ""


class BusAttributes(DocumentModel):
    """Snapshot of the raw telemetry attributes at the last fix."""

    ignition: bool = False
    motion: bool = False
    distance: float = 0.0
    total_distance: float = 0.0
    accuracy: float = 0.0


class RouteInfo(DocumentModel):
    """Route metadata resolved from the route catalog."""

    route_name: str
    start_location: str
    end_location: str
    distance: float | None = None
    estimated_duration: int | None = None
    fare: float | None = None
    operating_hours: OperatingHours | None = None


class BusLocation(DocumentModel):
    """Authoritative per-device record.

    Keyed by ``id`` (the tracker's unique identifier). ``timestamp`` is the
    fix time of the position the record was built from, ``last_update``
    the time the record was produced. ``is_live_data`` separates real
    telemetry from the demo fleet.
    """

    id: str = Field(min_length=1)
    device_id: int | None = None
    route_number: str
    bus_number: str
    latitude: float
    longitude: float
    speed: float = Field(default=0.0, ge=0.0)
    heading: float = 0.0
    timestamp: DocumentTimestamp
    last_update: DocumentTimestamp
    status: BusStatus
    bus_info: BusInfo
    driver: DriverInfo | None = None
    attributes: BusAttributes = Field(default_factory=BusAttributes)
    route_info: RouteInfo | None = None
    is_live_data: bool = True
