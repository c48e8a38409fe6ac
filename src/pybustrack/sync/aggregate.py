"""Per-route rollups of one tick's bus locations."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from pybustrack.catalog import route_id
from pybustrack.models.bus import BusLocation, BusStatus
from pybustrack.models.route import RouteAggregate


def compute_route_aggregates(
    locations: Iterable[BusLocation],
    *,
    now: datetime,
    is_live_data: bool = True,
) -> list[RouteAggregate]:
    """Group *locations* by route and compute one aggregate per route.

    Only the records passed in are considered, so every average is taken
    over a single tick's batch. Labels come from the first bus on the
    route that carries resolved route info.
    """
    by_route: dict[str, list[BusLocation]] = {}
    for location in locations:
        by_route.setdefault(location.route_number, []).append(location)

    aggregates: list[RouteAggregate] = []
    for route_number, buses in by_route.items():
        labelled = next((bus.route_info for bus in buses if bus.route_info is not None), None)
        active = sum(1 for bus in buses if bus.status is BusStatus.ACTIVE)
        aggregates.append(
            RouteAggregate(
                id=route_id(route_number),
                route_number=route_number,
                route_name=labelled.route_name if labelled else f"Route {route_number}",
                start_location=labelled.start_location if labelled else "Unknown",
                end_location=labelled.end_location if labelled else "Unknown",
                active_buses=active,
                total_buses=len(buses),
                average_speed=sum(bus.speed for bus in buses) / len(buses),
                last_update=now,
                is_live_data=is_live_data,
            )
        )
    return aggregates
