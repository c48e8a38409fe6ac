from __future__ import annotations

import pytest
from fakes import FakeClock, FakeTelemetryBackend, RecordingStore, device_payload, position_payload

from pybustrack.catalog import InMemoryRouteCatalog
from pybustrack.config import TrackerConfig


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> TrackerConfig:
    # Timers effectively never fire; tests drive ticks directly.
    return TrackerConfig(
        username="ops@example.com",
        password="secret",
        sync_interval=3600.0,
        retry_delay=3600.0,
        demo_interval=3600.0,
        recovery_interval=None,
    )


@pytest.fixture
def backend(clock: FakeClock) -> FakeTelemetryBackend:
    return FakeTelemetryBackend(
        devices=[device_payload(1, "138-007", contact="Kamal Perera", phone="+94771234567")],
        positions=[position_payload(1, clock.now)],
    )


@pytest.fixture
def store(clock: FakeClock) -> RecordingStore:
    return RecordingStore(clock=clock)


@pytest.fixture
def catalog() -> InMemoryRouteCatalog:
    return InMemoryRouteCatalog.from_records(
        [
            {"routeNo": "138", "start": "Pettah", "destination": "Kaduwela", "distance": 16.0},
            {"routeNo": "177", "start": "Fort", "destination": "Nugegoda", "distance": 9.0},
            {"routeNo": "120", "start": "Maharagama", "destination": "Colombo"},
        ]
    )
