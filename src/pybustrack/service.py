"""Bus tracking facade used by presentation code."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pybustrack.catalog import RouteCatalog
from pybustrack.client import TelemetryClient
from pybustrack.config import TrackerConfig
from pybustrack.distribution import DistributionHub, SnapshotCallback, Subscription
from pybustrack.models.bus import BusLocation
from pybustrack.models.probe import ConnectionProbe
from pybustrack.models.route import RouteAggregate
from pybustrack.state.store import DocumentStore, MemoryDocumentStore
from pybustrack.sync.engine import SyncEngine, TelemetryFetcher
from pybustrack.sync.mode import SyncMode

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class BusTrackingService:
    """Wires the telemetry client, sync engine and distribution hub together.

    Usage::

        async with BusTrackingService(TrackerConfig.from_env()) as service:
            sub = service.subscribe_to_route("138", print)
            ...
            sub.cancel()

    When no *fetcher* is given, a :class:`TelemetryClient` is created and
    closed by the service. When no *store* is given, a
    :class:`MemoryDocumentStore` is used.
    """

    def __init__(
        self,
        config: TrackerConfig | None = None,
        *,
        fetcher: TelemetryFetcher | None = None,
        store: DocumentStore | None = None,
        catalog: RouteCatalog | None = None,
        clock: Callable[[], datetime] = _utcnow,
        on_mode_change: Callable[[SyncMode], None] | None = None,
    ) -> None:
        self._config = config or TrackerConfig.from_env()
        self._owned_client: TelemetryClient | None = None
        if fetcher is None:
            self._owned_client = TelemetryClient(self._config)
            fetcher = self._owned_client
        self._store = store if store is not None else MemoryDocumentStore(clock=clock)
        self._engine = SyncEngine(
            fetcher,
            self._store,
            catalog,
            config=self._config,
            clock=clock,
            on_mode_change=on_mode_change,
        )
        self._hub = DistributionHub(self._store, all_buses_limit=self._config.all_buses_limit)
        self._exit_stack: contextlib.AsyncExitStack | None = None

    @property
    def mode(self) -> SyncMode:
        return self._engine.mode

    @property
    def engine(self) -> SyncEngine:
        return self._engine

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def hub(self) -> DistributionHub:
        return self._hub

    async def __aenter__(self) -> BusTrackingService:
        await self.initialize()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.destroy()

    async def initialize(self) -> bool:
        """Start syncing; ``True`` when running in live or demo mode."""
        if self._owned_client is not None and self._exit_stack is None:
            stack = contextlib.AsyncExitStack()
            await stack.enter_async_context(self._owned_client)
            self._exit_stack = stack
        return await self._engine.initialize()

    async def test_connection(self) -> ConnectionProbe:
        return await self._engine.test_connection()

    async def force_sync_now(self) -> bool:
        return await self._engine.force_sync_now()

    def subscribe_to_route(self, route_number: str, callback: SnapshotCallback[BusLocation]) -> Subscription:
        return self._hub.subscribe_to_route(route_number, callback)

    def subscribe_to_all_buses(self, callback: SnapshotCallback[BusLocation]) -> Subscription:
        return self._hub.subscribe_to_all_buses(callback)

    def subscribe_to_route_aggregates(self, callback: SnapshotCallback[RouteAggregate]) -> Subscription:
        return self._hub.subscribe_to_route_aggregates(callback)

    async def destroy(self) -> None:
        """Stop all timers, drop subscriptions and close the owned client."""
        self._engine.stop()
        self._hub.close()
        stack, self._exit_stack = self._exit_stack, None
        if stack is not None:
            await stack.aclose()
        _logger.debug("Bus tracking service destroyed")
