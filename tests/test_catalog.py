from __future__ import annotations

import pytest
from pydantic import ValidationError

from pybustrack.catalog import InMemoryRouteCatalog, route_id


def test_route_id_replaces_separators() -> None:
    assert route_id("138") == "route_138"
    assert route_id("138/1") == "route_138_1"
    assert route_id("EX-1") == "route_EX_1"


@pytest.mark.asyncio
async def test_from_records_derives_tariff_and_hours(catalog: InMemoryRouteCatalog) -> None:
    route = await catalog.get_route_by_number("138")

    assert route is not None
    assert route.id == "route_138"
    assert route.name == "Pettah - Kaduwela"
    assert route.distance == pytest.approx(16.0)
    assert route.fare == 35
    assert route.estimated_duration == 24
    assert route.operating_hours is not None
    assert (route.operating_hours.start, route.operating_hours.end) == ("05:30", "23:00")


@pytest.mark.asyncio
async def test_route_without_distance_has_no_tariff(catalog: InMemoryRouteCatalog) -> None:
    route = await catalog.get_route_by_number("120")

    assert route is not None
    assert route.distance is None
    assert route.fare is None
    assert route.estimated_duration is None


@pytest.mark.asyncio
async def test_missing_route_is_none(catalog: InMemoryRouteCatalog) -> None:
    assert await catalog.get_route_by_number("999") is None


def test_route_info_name_falls_back_to_endpoints() -> None:
    catalog = InMemoryRouteCatalog.from_records([{"routeNo": "1", "start": "Colombo", "destination": "Kandy"}])
    route = catalog.routes()[0]
    assert route.model_copy(update={"name": None}).to_route_info().route_name == "Colombo - Kandy"


def test_explicit_route_name_is_kept() -> None:
    catalog = InMemoryRouteCatalog.from_records(
        [{"routeNo": "1", "start": "Colombo", "destination": "Kandy", "name": "Kandy Express"}]
    )
    assert catalog.routes()[0].to_route_info().route_name == "Kandy Express"


def test_malformed_record_rejected() -> None:
    with pytest.raises(ValidationError):
        InMemoryRouteCatalog.from_records([{"routeNo": "1", "start": "Colombo"}])


@pytest.mark.asyncio
async def test_update_active_bus_counts_keeps_total_at_least_active(catalog: InMemoryRouteCatalog) -> None:
    await catalog.update_active_bus_counts("138", active=3, total=2)
    route = await catalog.get_route_by_number("138")

    assert route is not None
    assert route.active_buses == 3
    assert route.total_buses == 3


@pytest.mark.asyncio
async def test_update_unknown_route_is_ignored(catalog: InMemoryRouteCatalog) -> None:
    await catalog.update_active_bus_counts("999", active=1, total=1)
    assert len(catalog) == 3


@pytest.mark.asyncio
async def test_statistics_and_reset(catalog: InMemoryRouteCatalog) -> None:
    await catalog.update_active_bus_counts("138", active=2, total=3)
    await catalog.update_active_bus_counts("177", active=0, total=1)

    assert catalog.route_statistics() == {
        "total_routes": 3,
        "active_routes": 1,
        "active_buses": 2,
        "total_buses": 4,
    }

    await catalog.reset_bus_counts()
    assert catalog.route_statistics()["total_buses"] == 0
