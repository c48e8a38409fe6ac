"""Synthetic demo fleet used while live telemetry is unavailable."""

from __future__ import annotations

import asyncio
import logging
import math
import random
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import NamedTuple

from pybustrack._constants import DEFAULT_OPERATING_END, DEFAULT_OPERATING_START
from pybustrack.exceptions import BusTrackError
from pybustrack.models.bus import (
    BusAttributes,
    BusInfo,
    BusLocation,
    BusStatus,
    DriverInfo,
    OperatingHours,
    RouteInfo,
)

_logger = logging.getLogger(__name__)

FleetSink = Callable[[list[BusLocation]], Awaitable[None]]

# ~100 m per step at Colombo's latitude.
_POSITION_JITTER = 0.001
_SPEED_JITTER = 10.0
_MAX_SPEED = 60.0


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _bearing(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Initial great-circle bearing in degrees from point 1 to point 2."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    delta = math.radians(lng2 - lng1)
    x = math.sin(delta) * math.cos(phi2)
    y = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(delta)
    return (math.degrees(math.atan2(x, y)) + 360.0) % 360.0


class _DemoBus(NamedTuple):
    id: str
    device_id: int
    route_number: str
    plate: str
    latitude: float
    longitude: float
    base_speed: float
    status: BusStatus
    model: str
    capacity: int
    driver: str
    phone: str
    start: str
    end: str
    distance: float
    total_distance: float
    accuracy: float


_DEMO_FLEET = (
    _DemoBus("mock_bus_138_1", 1, "138", "NB-1234", 6.9271, 79.8612, 25.0, BusStatus.ACTIVE, "Ashok Leyland", 45,
             "Kamal Perera", "+94771234567", "Pettah", "Kaduwela", 156.2, 12453.8, 5.0),
    _DemoBus("mock_bus_177_1", 2, "177", "NC-5678", 6.9200, 79.8500, 15.0, BusStatus.ACTIVE, "Tata", 50,
             "Nimal Silva", "+94771234568", "Fort", "Nugegoda", 89.5, 8765.3, 3.2),
    _DemoBus("mock_bus_120_1", 3, "120", "ND-9012", 6.8700, 79.9000, 0.0, BusStatus.INACTIVE, "Mahindra", 40,
             "Saman Fernando", "+94771234569", "Maharagama", "Colombo", 0.0, 15678.9, 8.1),
)  # fmt: skip


def _seed_fleet(rng: random.Random, now: datetime) -> list[BusLocation]:
    fleet: list[BusLocation] = []
    for demo in _DEMO_FLEET:
        moving = demo.status is BusStatus.ACTIVE
        fleet.append(
            BusLocation(
                id=demo.id,
                device_id=demo.device_id,
                route_number=demo.route_number,
                bus_number=demo.plate,
                latitude=demo.latitude + (rng.random() - 0.5) * 0.01,
                longitude=demo.longitude + (rng.random() - 0.5) * 0.01,
                speed=demo.base_speed + rng.random() * 20 if moving else 0.0,
                heading=rng.random() * 360,
                timestamp=now,
                last_update=now,
                status=demo.status,
                bus_info=BusInfo(plate_number=demo.plate, capacity=demo.capacity, type="Bus", model=demo.model),
                driver=DriverInfo(name=demo.driver, phone=demo.phone),
                attributes=BusAttributes(
                    ignition=moving,
                    motion=moving,
                    distance=demo.distance,
                    total_distance=demo.total_distance,
                    accuracy=demo.accuracy,
                ),
                route_info=RouteInfo(
                    route_name=f"{demo.start} - {demo.end}",
                    start_location=demo.start,
                    end_location=demo.end,
                    operating_hours=OperatingHours(start=DEFAULT_OPERATING_START, end=DEFAULT_OPERATING_END),
                ),
                is_live_data=False,
            )
        )
    return fleet


class SimulationGenerator:
    """Small deterministic fleet that drifts around Colombo.

    The generator owns its own timer task. Every *interval* seconds it
    perturbs the fleet with :meth:`step` and hands the result to the sink
    given to :meth:`start`. With a fixed *seed* the sequence of fleets is
    reproducible, which keeps demo-mode tests deterministic.
    """

    def __init__(
        self,
        *,
        interval: float = 5.0,
        seed: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._interval = interval
        self._rng = random.Random(seed)
        self._clock = clock
        self._fleet = _seed_fleet(self._rng, clock())
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def current_fleet(self) -> list[BusLocation]:
        return list(self._fleet)

    def step(self) -> list[BusLocation]:
        """Advance the simulation by one tick and return the new fleet."""
        now = self._clock()
        updated: list[BusLocation] = []
        for bus in self._fleet:
            if bus.status is not BusStatus.ACTIVE:
                updated.append(bus.model_copy(update={"speed": 0.0, "timestamp": now, "last_update": now}))
                continue
            lat = bus.latitude + (self._rng.random() - 0.5) * _POSITION_JITTER
            lng = bus.longitude + (self._rng.random() - 0.5) * _POSITION_JITTER
            speed = min(_MAX_SPEED, max(0.0, bus.speed + (self._rng.random() - 0.5) * _SPEED_JITTER))
            updated.append(
                bus.model_copy(
                    update={
                        "latitude": lat,
                        "longitude": lng,
                        "speed": speed,
                        "heading": _bearing(bus.latitude, bus.longitude, lat, lng),
                        "timestamp": now,
                        "last_update": now,
                    }
                )
            )
        self._fleet = updated
        return list(updated)

    def start(self, sink: FleetSink) -> None:
        """Start the timer task; a no-op when already running."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(sink), name="pybustrack-simulation")
        _logger.debug("Simulation started (interval=%.1fs)", self._interval)

    def stop(self) -> None:
        """Cancel the timer task; safe to call repeatedly."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            _logger.debug("Simulation stopped")

    async def _run(self, sink: FleetSink) -> None:
        while True:
            await asyncio.sleep(self._interval)
            fleet = self.step()
            try:
                await sink(fleet)
            except BusTrackError:
                _logger.warning("Publishing simulated fleet failed", exc_info=True)
