from __future__ import annotations

from datetime import timedelta
from typing import Any

import pytest
from fakes import T0

from pybustrack.distribution import BusFilter, DistributionHub
from pybustrack.models.bus import BusInfo, BusLocation, BusStatus
from pybustrack.models.route import RouteAggregate
from pybustrack.state.events import Collection, WriteOp
from pybustrack.state.store import MemoryDocumentStore


def _bus(bus_id: str, route: str, seconds: int = 0) -> dict[str, Any]:
    return BusLocation(
        id=bus_id,
        route_number=route,
        bus_number=bus_id.rsplit("-", 1)[-1],
        latitude=6.9,
        longitude=79.8,
        timestamp=T0,
        last_update=T0 + timedelta(seconds=seconds),
        status=BusStatus.ACTIVE,
        bus_info=BusInfo(plate_number=bus_id),
    ).to_document()


async def _put(store: MemoryDocumentStore, *documents: dict[str, Any]) -> None:
    await store.commit([WriteOp.set(Collection.BUS_LOCATIONS, doc["id"], doc) for doc in documents])


@pytest.fixture
def hub(store: MemoryDocumentStore) -> DistributionHub:
    return DistributionHub(store, all_buses_limit=2)


def test_bus_filter_query() -> None:
    query = BusFilter(route_number="138").to_query()
    assert query.where == (("routeNumber", "138"),)
    assert query.order_by == "lastUpdate"
    assert query.descending is True
    assert query.limit is None


@pytest.mark.asyncio
async def test_route_subscription_sees_only_its_route(store: MemoryDocumentStore, hub: DistributionHub) -> None:
    snapshots: list[list[BusLocation]] = []
    hub.subscribe_to_route("138", snapshots.append)

    await _put(store, _bus("138-001", "138"), _bus("177-001", "177"))

    assert snapshots[0] == []
    assert [bus.id for bus in snapshots[-1]] == ["138-001"]
    assert all(isinstance(bus, BusLocation) for bus in snapshots[-1])


@pytest.mark.asyncio
async def test_all_buses_newest_first_and_capped(store: MemoryDocumentStore, hub: DistributionHub) -> None:
    snapshots: list[list[BusLocation]] = []
    hub.subscribe_to_all_buses(snapshots.append)

    await _put(store, _bus("138-001", "138", 1), _bus("177-001", "177", 3), _bus("120-001", "120", 2))

    assert [bus.id for bus in snapshots[-1]] == ["177-001", "120-001"]


@pytest.mark.asyncio
async def test_subscribers_share_one_store_listener(store: MemoryDocumentStore, hub: DistributionHub) -> None:
    await _put(store, _bus("138-001", "138"))
    first: list[list[BusLocation]] = []
    second: list[list[BusLocation]] = []

    sub_a = hub.subscribe_to_route("138", first.append)
    sub_b = hub.subscribe_to_route("138", second.append)
    hub.subscribe_to_route("177", lambda _: None)

    assert hub.listener_count == 2
    assert hub.subscriber_count == 3
    assert store.listener_count == 2
    # The late subscriber gets the current snapshot straight away.
    assert [bus.id for bus in second[0]] == ["138-001"]
    assert first[0] is not second[0]

    sub_a.cancel()
    assert store.listener_count == 2
    sub_b()
    assert store.listener_count == 1
    assert hub.listener_count == 1


@pytest.mark.asyncio
async def test_cancel_is_idempotent_and_stops_delivery(store: MemoryDocumentStore, hub: DistributionHub) -> None:
    snapshots: list[list[BusLocation]] = []
    subscription = hub.subscribe_to_route("138", snapshots.append)

    subscription.cancel()
    subscription.cancel()
    await _put(store, _bus("138-001", "138"))

    assert subscription.active is False
    assert subscription.delivered == 1
    assert len(snapshots) == 1
    assert store.listener_count == 0


@pytest.mark.asyncio
async def test_failing_subscriber_is_isolated(store: MemoryDocumentStore, hub: DistributionHub) -> None:
    received: list[int] = []

    def broken(_: list[BusLocation]) -> None:
        raise RuntimeError("ui crashed")

    hub.subscribe_to_route("138", broken)
    hub.subscribe_to_route("138", lambda buses: received.append(len(buses)))

    await _put(store, _bus("138-001", "138"))

    assert received == [0, 1]


@pytest.mark.asyncio
async def test_malformed_documents_are_dropped(store: MemoryDocumentStore, hub: DistributionHub) -> None:
    snapshots: list[list[BusLocation]] = []
    hub.subscribe_to_route("138", snapshots.append)

    await store.commit(
        [
            WriteOp.set(Collection.BUS_LOCATIONS, "138-001", _bus("138-001", "138")),
            WriteOp.set(Collection.BUS_LOCATIONS, "138-bad", {"id": "138-bad", "routeNumber": "138"}),
        ]
    )

    assert [bus.id for bus in snapshots[-1]] == ["138-001"]


@pytest.mark.asyncio
async def test_cancel_from_inside_callback_releases_listener(
    store: MemoryDocumentStore, hub: DistributionHub
) -> None:
    holder: dict[str, Any] = {}

    def once(buses: list[BusLocation]) -> None:
        if buses:
            holder["subscription"].cancel()

    holder["subscription"] = hub.subscribe_to_route("138", once)
    await _put(store, _bus("138-001", "138"))

    assert hub.listener_count == 0
    assert store.listener_count == 0


@pytest.mark.asyncio
async def test_route_aggregates_ordered_by_route_number(store: MemoryDocumentStore, hub: DistributionHub) -> None:
    snapshots: list[list[RouteAggregate]] = []
    hub.subscribe_to_route_aggregates(snapshots.append)

    aggregates = [
        RouteAggregate(
            id=f"route_{number}",
            route_number=number,
            route_name=f"Route {number}",
            active_buses=1,
            total_buses=1,
            average_speed=10.0,
            last_update=T0,
        )
        for number in ("177", "120", "138")
    ]
    await store.commit([WriteOp.set(Collection.ROUTES, agg.id, agg.to_document()) for agg in aggregates])

    assert [agg.route_number for agg in snapshots[-1]] == ["120", "138", "177"]


@pytest.mark.asyncio
async def test_close_cancels_everything(store: MemoryDocumentStore, hub: DistributionHub) -> None:
    subscriptions = [
        hub.subscribe_to_route("138", lambda _: None),
        hub.subscribe_to_all_buses(lambda _: None),
        hub.subscribe_to_route_aggregates(lambda _: None),
    ]

    hub.close()

    assert hub.listener_count == 0
    assert store.listener_count == 0
    assert not any(subscription.active for subscription in subscriptions)
