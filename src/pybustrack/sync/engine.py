"""Sync engine: live polling, demo fallback and store writes.

The engine is the only writer of bus locations and route aggregates.
All of its work happens on the running event loop: a periodic task
spawns sync ticks, failed ticks schedule a one-shot retry through
``loop.call_later``, and demo mode runs the simulation generator's own
timer. A single :class:`asyncio.Lock` keeps store writes single-flow; a
tick that finds it held is skipped rather than queued.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Protocol

from pydantic import ValidationError

from pybustrack.catalog import RouteCatalog
from pybustrack.config import TrackerConfig
from pybustrack.exceptions import BusTrackError
from pybustrack.ingestion.convert import convert
from pybustrack.ingestion.normalize import parse_timestamp
from pybustrack.ingestion.positions import latest_positions
from pybustrack.models.bus import BusLocation
from pybustrack.models.device import Device
from pybustrack.models.position import PositionReport
from pybustrack.models.probe import ConnectionProbe
from pybustrack.models.route import RouteAggregate
from pybustrack.state.events import Collection, WriteOp
from pybustrack.state.policy import is_demo_aggregate_document, is_demo_bus_document, should_accept_fix
from pybustrack.state.store import DocumentStore
from pybustrack.sync.aggregate import compute_route_aggregates
from pybustrack.sync.mode import SyncMode
from pybustrack.sync.retry import RetryPolicy
from pybustrack.sync.simulation import SimulationGenerator

_logger = logging.getLogger(__name__)

Snapshot = tuple[list[Device], list[PositionReport]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TelemetryFetcher(Protocol):
    """Read side of the telemetry client used by the engine."""

    async def test_connection(self, timeout: float | None = None) -> ConnectionProbe: ...

    async def get_devices(self) -> list[Device]: ...

    async def get_positions(self) -> list[PositionReport]: ...


class SyncEngine:
    """Drives telemetry into the shared store.

    Parameters
    ----------
    fetcher : TelemetryFetcher
        Source of devices, positions and health probes.
    store : DocumentStore
        Shared store receiving bus and route documents.
    catalog : RouteCatalog or None
        Route metadata used during conversion and told about bus counts.
    config : TrackerConfig
        Intervals, retry budget and limits.
    simulation : SimulationGenerator or None
        Demo fleet; one is built from *config* when omitted.
    retry_policy : RetryPolicy or None
        Failure budget; one is built from *config* when omitted.
    clock : callable
        Returns the current aware UTC time.
    on_mode_change : callable or None
        Called with the new :class:`SyncMode` on every transition.
    """

    def __init__(
        self,
        fetcher: TelemetryFetcher,
        store: DocumentStore,
        catalog: RouteCatalog | None = None,
        *,
        config: TrackerConfig | None = None,
        simulation: SimulationGenerator | None = None,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] = _utcnow,
        on_mode_change: Callable[[SyncMode], None] | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._store = store
        self._catalog = catalog
        self._config = config or TrackerConfig()
        self._clock = clock
        self._simulation = simulation
        self._retry = retry_policy or RetryPolicy(self._config.max_retries, self._config.retry_delay)
        self._on_mode_change = on_mode_change

        self._mode = SyncMode.UNINITIALIZED
        self._lock = asyncio.Lock()
        # Bumped by stop(); work started under an older generation is discarded.
        self._generation = 0
        self._periodic_task: asyncio.Task[None] | None = None
        self._recovery_task: asyncio.Task[None] | None = None
        self._retry_handle: asyncio.TimerHandle | None = None
        self._tick_tasks: set[asyncio.Task[bool]] = set()
        self._fix_ledger: dict[str, datetime] = {}
        self._consecutive_failures = 0
        self.last_sync_at: datetime | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def mode(self) -> SyncMode:
        return self._mode

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    @property
    def simulation(self) -> SimulationGenerator | None:
        return self._simulation

    @property
    def has_pending_retry(self) -> bool:
        return self._retry_handle is not None

    @property
    def periodic_running(self) -> bool:
        return self._periodic_task is not None and not self._periodic_task.done()

    def _set_mode(self, mode: SyncMode) -> None:
        if mode is self._mode:
            return
        _logger.info("Sync mode %s -> %s", self._mode, mode)
        self._mode = mode
        if self._on_mode_change is not None:
            try:
                self._on_mode_change(mode)
            except Exception:
                _logger.warning("Mode change callback raised", exc_info=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """Connect to the telemetry source and start syncing.

        Returns ``True`` once the engine runs in live or demo mode and
        ``False`` when neither could be reached (mode ``ERROR``) or the
        engine was stopped meanwhile. Never raises for telemetry or store
        failures.
        """
        if self._mode.running:
            return True
        generation = self._generation
        self._set_mode(SyncMode.CONNECTING)

        probe = await self.test_connection()
        if generation != self._generation:
            return False
        if not probe.usable:
            _logger.warning("Telemetry server %s: %s", probe.status, probe.message or "no details")
            return await self._enter_demo(f"health check {probe.status}")

        try:
            snapshot = await self._fetch_snapshot()
        except BusTrackError:
            _logger.warning("Initial telemetry fetch failed", exc_info=True)
            return await self._enter_demo("initial fetch failed")
        if generation != self._generation:
            return False
        if not snapshot[0]:
            return await self._enter_demo("no devices registered")
        return await self._enter_live(snapshot)

    async def test_connection(self) -> ConnectionProbe:
        return await self._fetcher.test_connection(self._config.health_timeout)

    async def force_sync_now(self) -> bool:
        """Run a tick now in live mode, or try to recover from demo mode."""
        if self._mode is SyncMode.LIVE:
            return await self.run_tick()
        if self._mode is SyncMode.DEMO:
            return await self.attempt_recovery()
        _logger.debug("force_sync_now ignored in mode %s", self._mode)
        return False

    def stop(self) -> None:
        """Cancel every timer owned by the engine; safe to call repeatedly.

        In-flight network calls are not cancelled; whatever they return
        after this point is discarded.
        """
        if self._mode is SyncMode.STOPPED:
            return
        self._generation += 1
        self._cancel_live_timers()
        self._cancel_recovery()
        if self._simulation is not None:
            self._simulation.stop()
        self._set_mode(SyncMode.STOPPED)

    # ------------------------------------------------------------------
    # Live mode
    # ------------------------------------------------------------------

    async def run_tick(self) -> bool:
        """Run one live sync pass.

        Returns ``False`` when the tick was skipped (not live, or another
        pass holds the write lock) or failed.
        """
        if self._mode is not SyncMode.LIVE:
            _logger.debug("Tick ignored in mode %s", self._mode)
            return False
        if self._lock.locked():
            _logger.warning("Previous sync still running; skipping tick")
            return False
        generation = self._generation
        async with self._lock:
            ok = await self._sync_once(None, generation)
        if generation != self._generation:
            return False
        await self._after_tick(ok)
        return ok

    async def _enter_live(self, snapshot: Snapshot) -> bool:
        generation = self._generation
        if self._simulation is not None:
            self._simulation.stop()
        self._cancel_recovery()
        ok = False
        async with self._lock:
            try:
                purged = await self._purge_demo_data()
                self._fix_ledger = await self._load_fix_ledger()
            except BusTrackError:
                _logger.error("Could not clear demo data; not switching to live", exc_info=True)
                purge_failed = True
            else:
                purge_failed = False
                if purged:
                    _logger.info("Removed %d demo documents", purged)
                if generation == self._generation:
                    self._set_mode(SyncMode.LIVE)
                    ok = await self._sync_once(snapshot, generation)
        if generation != self._generation:
            return False
        if purge_failed:
            return await self._enter_demo("demo data purge failed")
        self._start_periodic()
        await self._after_tick(ok)
        return True

    async def _sync_once(self, snapshot: Snapshot | None, generation: int) -> bool:
        try:
            if snapshot is None:
                snapshot = await self._fetch_snapshot()
            if generation != self._generation:
                _logger.debug("Engine stopped during fetch; discarding snapshot")
                return False
            await self._write_snapshot(*snapshot)
        except BusTrackError:
            _logger.error("Sync tick failed", exc_info=True)
            return False
        return True

    async def _fetch_snapshot(self) -> Snapshot:
        devices, positions = await asyncio.gather(self._fetcher.get_devices(), self._fetcher.get_positions())
        return devices, positions

    async def _write_snapshot(self, devices: Sequence[Device], positions: Sequence[PositionReport]) -> None:
        now = self._clock()
        latest = latest_positions(positions)
        by_id: dict[str, BusLocation] = {}
        for device in devices:
            position = latest.get(device.id)
            if position is None:
                continue
            try:
                location = await convert(
                    device,
                    position,
                    self._catalog,
                    now=now,
                    stale_after=self._config.stale_after,
                )
            except ValidationError:
                _logger.warning("Skipping device %s: cannot build bus record", device.id, exc_info=True)
                continue
            previous = by_id.get(location.id)
            if previous is not None and previous.timestamp > location.timestamp:
                continue
            if not should_accept_fix(
                cached_fix_time=self._fix_ledger.get(location.id),
                incoming_fix_time=location.timestamp,
            ):
                _logger.debug("Discarding out-of-order fix for %s", location.id)
                continue
            by_id[location.id] = location

        locations = list(by_id.values())
        await self._commit_locations(locations)
        aggregates = compute_route_aggregates(locations, now=now, is_live_data=True)
        await self._commit_chunked([WriteOp.set(Collection.ROUTES, agg.id, agg.to_document()) for agg in aggregates])
        await self._report_counts(aggregates)
        self.last_sync_at = now
        _logger.info("Synced %d buses and %d routes", len(locations), len(aggregates))

    async def _commit_locations(self, locations: Sequence[BusLocation]) -> None:
        limit = self._config.write_batch_limit
        for start in range(0, len(locations), limit):
            chunk = locations[start : start + limit]
            await self._store.commit(
                [WriteOp.set(Collection.BUS_LOCATIONS, location.id, location.to_document()) for location in chunk]
            )
            for location in chunk:
                self._fix_ledger[location.id] = location.timestamp

    async def _commit_chunked(self, writes: Sequence[WriteOp]) -> None:
        limit = self._config.write_batch_limit
        for start in range(0, len(writes), limit):
            await self._store.commit(writes[start : start + limit])

    async def _report_counts(self, aggregates: Sequence[RouteAggregate]) -> None:
        if self._catalog is None:
            return
        for aggregate in aggregates:
            try:
                await self._catalog.update_active_bus_counts(
                    aggregate.route_number, aggregate.active_buses, aggregate.total_buses
                )
            except Exception:
                _logger.warning("Could not update bus counts for route %s", aggregate.route_number, exc_info=True)

    async def _purge_demo_data(self) -> int:
        buses = await self._store.delete_where(Collection.BUS_LOCATIONS, is_demo_bus_document)
        routes = await self._store.delete_where(Collection.ROUTES, is_demo_aggregate_document)
        return buses + routes

    async def _purge_live_data(self) -> int:
        buses = await self._store.delete_where(Collection.BUS_LOCATIONS, lambda doc: not is_demo_bus_document(doc))
        routes = await self._store.delete_where(Collection.ROUTES, lambda doc: not is_demo_aggregate_document(doc))
        self._fix_ledger = {}
        return buses + routes

    async def _load_fix_ledger(self) -> dict[str, datetime]:
        ledger: dict[str, datetime] = {}
        for document in await self._store.query(Collection.BUS_LOCATIONS):
            try:
                fix_time = parse_timestamp(document.get("timestamp"))
            except ValueError:
                continue
            if fix_time is not None:
                ledger[str(document.get("id"))] = fix_time
        return ledger

    async def _after_tick(self, ok: bool) -> None:
        if ok:
            if self._retry.count:
                _logger.info("Sync recovered after %d failed attempts", self._retry.count)
            self._retry.record_success()
            self._consecutive_failures = 0
            self._cancel_retry()
            return

        self._consecutive_failures += 1
        fallback_after = self._config.demo_fallback_after
        if fallback_after is not None and self._consecutive_failures >= fallback_after:
            self._retry.record_success()
            self._consecutive_failures = 0
            await self._enter_demo(f"{fallback_after} consecutive sync failures")
            return

        decision = self._retry.record_failure()
        if decision.should_retry:
            _logger.warning(
                "Retrying sync (%d/%d) in %.0fs", decision.attempt, self._retry.max_retries, decision.delay
            )
            self._schedule_retry(decision.delay)
        else:
            self._cancel_retry()
            _logger.error("Sync failed %d times in a row; waiting for the next scheduled tick", decision.attempt)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _start_periodic(self) -> None:
        if self.periodic_running:
            return
        self._periodic_task = asyncio.get_running_loop().create_task(
            self._periodic_loop(), name="pybustrack-sync-periodic"
        )

    async def _periodic_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.sync_interval)
            self._spawn_tick()

    def _spawn_tick(self) -> None:
        if self._mode is not SyncMode.LIVE:
            return
        task = asyncio.get_running_loop().create_task(self.run_tick(), name="pybustrack-sync-tick")
        self._tick_tasks.add(task)
        task.add_done_callback(self._tick_done)

    def _tick_done(self, task: asyncio.Task[bool]) -> None:
        self._tick_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error("Sync tick crashed", exc_info=exc)

    def _schedule_retry(self, delay: float) -> None:
        self._cancel_retry()
        self._retry_handle = asyncio.get_running_loop().call_later(delay, self._fire_retry)

    def _fire_retry(self) -> None:
        self._retry_handle = None
        self._spawn_tick()

    def _cancel_retry(self) -> None:
        handle, self._retry_handle = self._retry_handle, None
        if handle is not None:
            handle.cancel()

    def _cancel_live_timers(self) -> None:
        self._cancel_retry()
        task, self._periodic_task = self._periodic_task, None
        if task is not None and not task.done():
            task.cancel()

    # ------------------------------------------------------------------
    # Demo mode
    # ------------------------------------------------------------------

    async def _enter_demo(self, reason: str) -> bool:
        self._cancel_live_timers()
        if self._simulation is None:
            self._simulation = SimulationGenerator(
                interval=self._config.demo_interval,
                seed=self._config.simulation_seed,
                clock=self._clock,
            )
        _logger.warning("Switching to demo mode: %s", reason)
        generation = self._generation
        was_live = self._mode is SyncMode.LIVE
        try:
            async with self._lock:
                if was_live:
                    purged = await self._purge_live_data()
                    if purged:
                        _logger.info("Removed %d live documents", purged)
                await self._publish_demo(self._simulation.current_fleet())
        except BusTrackError:
            _logger.error("Could not publish the demo fleet", exc_info=True)
            if generation == self._generation:
                self._set_mode(SyncMode.ERROR)
            return False
        if generation != self._generation:
            return False
        self._set_mode(SyncMode.DEMO)
        self._simulation.start(self._on_simulation_step)
        self._start_recovery()
        return True

    async def _publish_demo(self, fleet: Sequence[BusLocation]) -> None:
        now = self._clock()
        await self._commit_chunked(
            [WriteOp.set(Collection.BUS_LOCATIONS, bus.id, bus.to_document()) for bus in fleet]
        )
        aggregates = compute_route_aggregates(fleet, now=now, is_live_data=False)
        await self._commit_chunked([WriteOp.set(Collection.ROUTES, agg.id, agg.to_document()) for agg in aggregates])

    async def _on_simulation_step(self, fleet: list[BusLocation]) -> None:
        if self._mode is not SyncMode.DEMO:
            return
        if self._lock.locked():
            _logger.debug("Store busy; skipping simulation step")
            return
        async with self._lock:
            await self._publish_demo(fleet)

    def _start_recovery(self) -> None:
        if self._config.recovery_interval is None:
            return
        if self._recovery_task is not None and not self._recovery_task.done():
            return
        self._recovery_task = asyncio.get_running_loop().create_task(
            self._recovery_loop(self._config.recovery_interval), name="pybustrack-recovery"
        )

    def _cancel_recovery(self) -> None:
        task, self._recovery_task = self._recovery_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _recovery_loop(self, interval: float) -> None:
        while self._mode is SyncMode.DEMO:
            await asyncio.sleep(interval)
            if await self.attempt_recovery():
                return

    async def attempt_recovery(self) -> bool:
        """Probe the telemetry source from demo mode and go live if it answers."""
        if self._mode is not SyncMode.DEMO:
            return False
        generation = self._generation
        probe = await self.test_connection()
        if not probe.usable:
            _logger.debug("Recovery probe: server %s", probe.status)
            return False
        try:
            snapshot = await self._fetch_snapshot()
        except BusTrackError:
            _logger.debug("Recovery probe: fetch failed", exc_info=True)
            return False
        if generation != self._generation or self._mode is not SyncMode.DEMO:
            return False
        if not snapshot[0]:
            _logger.debug("Recovery probe: no devices yet")
            return False
        _logger.info("Live telemetry is back; leaving demo mode")
        return await self._enter_live(snapshot)
