"""Convert telemetry (device, position) pairs into ``BusLocation`` records."""

from __future__ import annotations

import logging
import re
from datetime import datetime

from pybustrack._constants import DEFAULT_BUS_MODEL, UNKNOWN_ROUTE
from pybustrack.catalog import RouteCatalog
from pybustrack.models.bus import BusAttributes, BusInfo, BusLocation, BusStatus, DriverInfo, RouteInfo
from pybustrack.models.device import Device, DeviceStatus
from pybustrack.models.position import PositionReport

_logger = logging.getLogger(__name__)

#: ``<routeNumber>-<sequence>``, e.g. ``"138-007"``.
_IDENTIFIER_RE = re.compile(r"^([^-]+)-\d+$")
#: Numeric bus sequence after the last dash.
_SEQUENCE_RE = re.compile(r"-(\d+)$")
#: Legacy free-text names such as ``"Bus_138_001"``.
_LEGACY_RE = re.compile(r"(?:Bus_|Route_)?(\d+)", re.IGNORECASE)

_DEFAULT_STALE_MINUTES = 10.0


def _match_identifier(value: str | None) -> str | None:
    if not value:
        return None
    match = _IDENTIFIER_RE.match(value.strip())
    return match.group(1) if match else None


def extract_route_number(identifier: str, name: str | None = None) -> str:
    """Resolve the route number a tracker is assigned to.

    The ``<route>-<sequence>`` pattern is tried on *identifier*, then on
    *name*; after that the legacy ``Bus_<n>`` pattern is searched in
    *name*. When *name* is omitted the identifier doubles as the name.

    Returns :data:`UNKNOWN_ROUTE` when nothing matches.

    >>> extract_route_number("138-001")
    '138'
    >>> extract_route_number("Bus_138_0")
    '138'
    >>> extract_route_number("abc")
    'Unknown'
    """
    if name is None:
        name = identifier
    route = _match_identifier(identifier) or _match_identifier(name)
    if route:
        return route
    legacy = _LEGACY_RE.search(name or "")
    return legacy.group(1) if legacy else UNKNOWN_ROUTE


def extract_bus_number(identifier: str, name: str | None = None) -> str:
    """Numeric suffix after the last dash, else the raw identifier."""
    for candidate in (identifier, name):
        if not candidate:
            continue
        match = _SEQUENCE_RE.search(candidate.strip())
        if match:
            return match.group(1)
    return identifier


def derive_status(
    *,
    disabled: bool,
    device_status: DeviceStatus,
    age_minutes: float,
    ignition: bool,
    motion: bool,
    stale_after_minutes: float = _DEFAULT_STALE_MINUTES,
) -> BusStatus:
    """Derive the operating status of a bus.

    First match wins:

    1. disabled tracker -> ``maintenance``
    2. device reported offline -> ``offline``
    3. fix older than *stale_after_minutes* -> ``offline``
    4. moving with ignition on -> ``active``
    5. ignition on, not moving -> ``inactive``
    6. otherwise -> ``offline``
    """
    if disabled:
        return BusStatus.MAINTENANCE
    if device_status is DeviceStatus.OFFLINE:
        return BusStatus.OFFLINE
    if age_minutes > stale_after_minutes:
        return BusStatus.OFFLINE
    if motion and ignition:
        return BusStatus.ACTIVE
    if ignition:
        return BusStatus.INACTIVE
    return BusStatus.OFFLINE


async def _lookup_route_info(catalog: RouteCatalog | None, route_number: str) -> RouteInfo | None:
    if catalog is None or route_number == UNKNOWN_ROUTE:
        return None
    try:
        route = await catalog.get_route_by_number(route_number)
    except Exception:
        _logger.warning("Route catalog lookup failed for route %s", route_number, exc_info=True)
        return None
    if route is None:
        _logger.debug("Route %s not in catalog", route_number)
        return None
    return route.to_route_info()


async def convert(
    device: Device,
    position: PositionReport,
    catalog: RouteCatalog | None,
    *,
    now: datetime,
    is_live_data: bool = True,
    stale_after: float = _DEFAULT_STALE_MINUTES * 60,
) -> BusLocation:
    """Build the enriched ``BusLocation`` for one device and its latest fix.

    Parameters
    ----------
    device : Device
        Tracker the fix belongs to.
    position : PositionReport
        Latest fix for *device*.
    catalog : RouteCatalog or None
        Route metadata source. Lookup failures leave ``route_info`` unset.
    now : datetime
        Reference time for staleness and ``last_update``.
    is_live_data : bool
        ``False`` marks simulated records.
    stale_after : float
        Fix age in seconds after which the bus is reported offline.

    Returns
    -------
    BusLocation
        Record keyed by the device's unique identifier.
    """
    route_number = extract_route_number(device.unique_id, device.name)
    bus_number = extract_bus_number(device.unique_id, device.name)
    route_info = await _lookup_route_info(catalog, route_number)

    attributes = position.attributes
    age_minutes = (now - position.fix_time).total_seconds() / 60.0
    status = derive_status(
        disabled=device.disabled,
        device_status=device.status,
        age_minutes=age_minutes,
        ignition=attributes.ignition,
        motion=attributes.motion,
        stale_after_minutes=stale_after / 60.0,
    )

    driver = DriverInfo(name=device.contact, phone=device.phone or "") if device.contact else None

    return BusLocation(
        id=device.unique_id,
        device_id=device.id,
        route_number=route_number,
        bus_number=bus_number,
        latitude=position.latitude,
        longitude=position.longitude,
        speed=position.speed,
        heading=position.course,
        timestamp=position.fix_time,
        last_update=now,
        status=status,
        bus_info=BusInfo(
            plate_number=device.name or device.unique_id,
            model=device.model or DEFAULT_BUS_MODEL,
        ),
        driver=driver,
        attributes=BusAttributes(
            ignition=attributes.ignition,
            motion=attributes.motion,
            distance=attributes.distance,
            total_distance=attributes.total_distance,
            accuracy=position.accuracy,
        ),
        route_info=route_info,
        is_live_data=is_live_data,
    )
