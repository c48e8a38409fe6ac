from __future__ import annotations

from datetime import timedelta

import pytest
from fakes import T0

from pybustrack.models.bus import BusInfo, BusLocation, BusStatus, RouteInfo
from pybustrack.sync.aggregate import compute_route_aggregates


def _bus(bus_id: str, route: str, speed: float, status: BusStatus, route_info: RouteInfo | None = None) -> BusLocation:
    return BusLocation(
        id=bus_id,
        route_number=route,
        bus_number=bus_id.rsplit("-", 1)[-1],
        latitude=6.9,
        longitude=79.8,
        speed=speed,
        timestamp=T0,
        last_update=T0,
        status=status,
        bus_info=BusInfo(plate_number=bus_id),
        route_info=route_info,
    )


_PETTAH = RouteInfo(route_name="Pettah - Kaduwela", start_location="Pettah", end_location="Kaduwela")


def test_aggregates_group_by_route() -> None:
    buses = [
        _bus("138-001", "138", 20.0, BusStatus.ACTIVE),
        _bus("138-002", "138", 30.0, BusStatus.ACTIVE, _PETTAH),
        _bus("138-003", "138", 0.0, BusStatus.INACTIVE),
        _bus("177-001", "177", 12.0, BusStatus.OFFLINE),
    ]

    aggregates = {agg.route_number: agg for agg in compute_route_aggregates(buses, now=T0)}

    route_138 = aggregates["138"]
    assert route_138.id == "route_138"
    assert route_138.active_buses == 2
    assert route_138.total_buses == 3
    assert route_138.average_speed == pytest.approx(50.0 / 3)
    assert route_138.route_name == "Pettah - Kaduwela"
    assert route_138.start_location == "Pettah"
    assert route_138.end_location == "Kaduwela"

    route_177 = aggregates["177"]
    assert route_177.active_buses == 0
    assert route_177.total_buses == 1
    assert route_177.route_name == "Route 177"
    assert route_177.start_location == "Unknown"


def test_aggregate_invariants_hold_for_every_route() -> None:
    buses = [
        _bus(f"{route}-{n:03d}", str(route), float(n * 3), BusStatus.ACTIVE if n % 2 else BusStatus.INACTIVE)
        for route in (1, 2, 3)
        for n in range(1, route + 3)
    ]

    for aggregate in compute_route_aggregates(buses, now=T0):
        mine = [bus for bus in buses if bus.route_number == aggregate.route_number]
        assert aggregate.active_buses <= aggregate.total_buses
        assert aggregate.total_buses == len(mine)
        assert aggregate.average_speed == pytest.approx(sum(bus.speed for bus in mine) / len(mine))


def test_aggregates_carry_tick_time_and_live_flag() -> None:
    later = T0 + timedelta(seconds=10)
    [aggregate] = compute_route_aggregates([_bus("138-001", "138", 10.0, BusStatus.ACTIVE)], now=later, is_live_data=False)

    assert aggregate.last_update == later
    assert aggregate.is_live_data is False
    assert aggregate.to_document()["isLiveData"] is False


def test_no_buses_no_aggregates() -> None:
    assert compute_route_aggregates([], now=T0) == []
