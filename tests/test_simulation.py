from __future__ import annotations

import asyncio

import pytest
from fakes import FakeClock, wait_until

from pybustrack.models.bus import BusLocation, BusStatus
from pybustrack.sync.simulation import SimulationGenerator


def test_seeded_fleet_is_reproducible(clock: FakeClock) -> None:
    first = SimulationGenerator(seed=7, clock=clock)
    second = SimulationGenerator(seed=7, clock=clock)

    assert first.current_fleet() == second.current_fleet()
    assert first.step() == second.step()


def test_fleet_is_marked_simulated(clock: FakeClock) -> None:
    fleet = SimulationGenerator(seed=1, clock=clock).current_fleet()

    assert [bus.id for bus in fleet] == ["mock_bus_138_1", "mock_bus_177_1", "mock_bus_120_1"]
    assert all(bus.is_live_data is False for bus in fleet)
    assert all(bus.route_info is not None for bus in fleet)
    assert {bus.route_number for bus in fleet} == {"138", "177", "120"}


def test_step_moves_active_buses_only(clock: FakeClock) -> None:
    generator = SimulationGenerator(seed=3, clock=clock)
    before = {bus.id: bus for bus in generator.current_fleet()}
    clock.advance(5)

    after = {bus.id: bus for bus in generator.step()}

    parked = after["mock_bus_120_1"]
    assert parked.status is BusStatus.INACTIVE
    assert parked.speed == 0.0
    assert (parked.latitude, parked.longitude) == (before["mock_bus_120_1"].latitude, before["mock_bus_120_1"].longitude)
    assert parked.timestamp == clock.now

    moving = after["mock_bus_138_1"]
    assert moving.status is BusStatus.ACTIVE
    assert (moving.latitude, moving.longitude) != (before["mock_bus_138_1"].latitude, before["mock_bus_138_1"].longitude)
    assert abs(moving.latitude - before["mock_bus_138_1"].latitude) <= 0.0005
    assert moving.last_update == clock.now
    assert 0.0 <= moving.heading < 360.0


def test_speed_stays_within_bounds(clock: FakeClock) -> None:
    generator = SimulationGenerator(seed=11, clock=clock)
    for _ in range(200):
        for bus in generator.step():
            assert 0.0 <= bus.speed <= 60.0


def test_invalid_interval(clock: FakeClock) -> None:
    with pytest.raises(ValueError):
        SimulationGenerator(interval=0, clock=clock)


@pytest.mark.asyncio
async def test_timer_feeds_sink_until_stopped(clock: FakeClock) -> None:
    generator = SimulationGenerator(interval=0.01, seed=5, clock=clock)
    received: list[list[BusLocation]] = []

    async def sink(fleet: list[BusLocation]) -> None:
        received.append(fleet)

    generator.start(sink)
    generator.start(sink)
    assert generator.running is True

    await wait_until(lambda: len(received) >= 2)
    generator.stop()
    generator.stop()
    assert generator.running is False

    seen = len(received)
    await asyncio.sleep(0.05)
    assert len(received) == seen
