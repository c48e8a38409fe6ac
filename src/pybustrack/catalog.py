"""Route catalog collaborator.

The sync core only needs two things from the route catalog: resolving a
route number to its metadata, and recording how many buses currently run
on a route. :class:`RouteCatalog` captures that surface;
:class:`InMemoryRouteCatalog` is a self-contained implementation seeded
from static route records.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from pybustrack._constants import (
    DEFAULT_OPERATING_END,
    DEFAULT_OPERATING_START,
    duration_for_distance,
    fare_for_distance,
)
from pybustrack.models._base import TelemetryBaseModel
from pybustrack.models.bus import OperatingHours
from pybustrack.models.route import CatalogRoute

_logger = logging.getLogger(__name__)

_ROUTE_ID_UNSAFE = re.compile(r"[/\-]")


class RouteCatalog(Protocol):
    """Structural interface of the route catalog service."""

    async def get_route_by_number(self, route_number: str) -> CatalogRoute | None: ...

    async def update_active_bus_counts(self, route_number: str, active: int, total: int) -> None: ...


def route_id(route_number: str) -> str:
    """Stable document id for a route number (``"138/1"`` -> ``"route_138_1"``)."""
    return f"route_{_ROUTE_ID_UNSAFE.sub('_', route_number)}"


class RouteRecord(TelemetryBaseModel):
    """Static route record as shipped in the route dataset."""

    route_no: str
    start: str
    destination: str
    name: str | None = None
    distance: float | None = None


def build_catalog_route(record: RouteRecord) -> CatalogRoute:
    """Derive fare, duration and operating hours for a static route record."""
    fare: float | None = None
    duration: int | None = None
    if record.distance is not None:
        fare = fare_for_distance(record.distance)
        duration = duration_for_distance(record.distance)
    return CatalogRoute(
        id=route_id(record.route_no),
        route_no=record.route_no,
        start=record.start,
        destination=record.destination,
        name=record.name or f"{record.start} - {record.destination}",
        distance=record.distance,
        estimated_duration=duration,
        fare=fare,
        operating_hours=OperatingHours(start=DEFAULT_OPERATING_START, end=DEFAULT_OPERATING_END),
    )


class InMemoryRouteCatalog:
    """Route catalog backed by a dict keyed by route number."""

    def __init__(self, routes: Iterable[CatalogRoute] = ()) -> None:
        self._routes: dict[str, CatalogRoute] = {route.route_no: route for route in routes}

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> InMemoryRouteCatalog:
        """Build a catalog from ``{routeNo, start, destination, distance?}`` records."""
        return cls(build_catalog_route(RouteRecord.model_validate(dict(record))) for record in records)

    def __len__(self) -> int:
        return len(self._routes)

    def routes(self) -> list[CatalogRoute]:
        return list(self._routes.values())

    async def get_route_by_number(self, route_number: str) -> CatalogRoute | None:
        return self._routes.get(route_number)

    async def update_active_bus_counts(self, route_number: str, active: int, total: int) -> None:
        """Record bus counts for a route; ``total`` never drops below ``active``."""
        route = self._routes.get(route_number)
        if route is None:
            _logger.debug("Ignoring bus counts for unknown route %s", route_number)
            return
        self._routes[route_number] = route.model_copy(
            update={"active_buses": active, "total_buses": max(total, active)}
        )

    async def reset_bus_counts(self) -> None:
        """Zero the bus counts of every route."""
        for number, route in self._routes.items():
            self._routes[number] = route.model_copy(update={"active_buses": 0, "total_buses": 0})

    def route_statistics(self) -> dict[str, int]:
        routes = self._routes.values()
        return {
            "total_routes": len(self._routes),
            "active_routes": sum(1 for route in routes if route.active_buses > 0),
            "active_buses": sum(route.active_buses for route in routes),
            "total_buses": sum(route.total_buses for route in routes),
        }
