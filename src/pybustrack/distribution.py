"""Distribution layer: live snapshots for any number of subscribers.

Subscribers with the same filter share one underlying store listener.
Each subscriber still gets its own :class:`Subscription` handle and its
own copy of every snapshot, and an exception in one callback never
reaches the others.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pybustrack.models._base import DocumentModel
from pybustrack.models.bus import BusLocation
from pybustrack.models.route import RouteAggregate
from pybustrack.state.events import Collection, StoreQuery
from pybustrack.state.store import DocumentStore, Unsubscribe

_logger = logging.getLogger(__name__)

M = TypeVar("M", bound=DocumentModel)
SnapshotCallback = Callable[[list[M]], None]

_DEFAULT_ALL_BUSES_LIMIT = 100


class BusFilter(BaseModel):
    """Which bus locations a subscriber wants.

    A ``route_number`` restricts the stream to one route. Without one the
    filter means "all buses", capped at ``limit`` most recently updated.
    """

    model_config = ConfigDict(frozen=True)

    route_number: str | None = None
    limit: int | None = Field(default=None, ge=1)

    def to_query(self) -> StoreQuery:
        where: tuple[tuple[str, Any], ...] = ()
        if self.route_number is not None:
            where = (("routeNumber", self.route_number),)
        return StoreQuery(where=where, order_by="lastUpdate", descending=True, limit=self.limit)


class Subscription:
    """Handle returned by every ``subscribe*`` call.

    Calling :meth:`cancel` (or the handle itself) stops deliveries to this
    subscriber. Repeated calls are no-ops.
    """

    def __init__(self, on_cancel: Callable[[Subscription], None], callback: Callable[[list[Any]], None]) -> None:
        self._on_cancel = on_cancel
        self._callback = callback
        self._active = True
        self.delivered = 0

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._on_cancel(self)

    __call__ = cancel

    def _deliver(self, snapshot: list[Any]) -> None:
        if not self._active:
            return
        self.delivered += 1
        try:
            self._callback(snapshot)
        except Exception:
            _logger.warning("Subscriber callback raised", exc_info=True)


class _SharedListener(Generic[M]):
    """One store listener fanned out to many subscribers."""

    def __init__(self, model: type[M]) -> None:
        self.model = model
        self.subscribers: list[Subscription] = []
        self.last: list[M] | None = None
        self.unsubscribe: Unsubscribe | None = None

    def on_documents(self, documents: list[dict[str, Any]]) -> None:
        snapshot: list[M] = []
        for document in documents:
            try:
                snapshot.append(self.model.from_document(document))
            except ValidationError:
                _logger.warning("Dropping malformed %s document %r", self.model.__name__, document.get("id"))
        self.last = snapshot
        for subscription in list(self.subscribers):
            subscription._deliver(list(snapshot))


class DistributionHub:
    """Fans store changes out to subscribers.

    Parameters
    ----------
    store : DocumentStore
        Store to listen on (read-only use).
    all_buses_limit : int
        Cap applied to "all buses" subscriptions.
    """

    def __init__(self, store: DocumentStore, *, all_buses_limit: int = _DEFAULT_ALL_BUSES_LIMIT) -> None:
        self._store = store
        self._all_buses_limit = all_buses_limit
        self._shared: dict[tuple[Collection, StoreQuery], _SharedListener[Any]] = {}

    @property
    def listener_count(self) -> int:
        """Number of store listeners currently open."""
        return len(self._shared)

    @property
    def subscriber_count(self) -> int:
        return sum(len(shared.subscribers) for shared in self._shared.values())

    def subscribe(self, bus_filter: BusFilter, callback: SnapshotCallback[BusLocation]) -> Subscription:
        """Subscribe to bus locations matching *bus_filter*."""
        if bus_filter.route_number is None and bus_filter.limit is None:
            bus_filter = bus_filter.model_copy(update={"limit": self._all_buses_limit})
        return self._subscribe(Collection.BUS_LOCATIONS, bus_filter.to_query(), BusLocation, callback)

    def subscribe_to_route(self, route_number: str, callback: SnapshotCallback[BusLocation]) -> Subscription:
        return self.subscribe(BusFilter(route_number=route_number), callback)

    def subscribe_to_all_buses(
        self, callback: SnapshotCallback[BusLocation], *, limit: int | None = None
    ) -> Subscription:
        return self.subscribe(BusFilter(limit=limit or self._all_buses_limit), callback)

    def subscribe_to_route_aggregates(self, callback: SnapshotCallback[RouteAggregate]) -> Subscription:
        return self._subscribe(Collection.ROUTES, StoreQuery(order_by="routeNumber"), RouteAggregate, callback)

    def close(self) -> None:
        """Cancel every subscription and release all store listeners."""
        for shared in list(self._shared.values()):
            for subscription in list(shared.subscribers):
                subscription.cancel()

    def _subscribe(
        self,
        collection: Collection,
        query: StoreQuery,
        model: type[M],
        callback: SnapshotCallback[M],
    ) -> Subscription:
        key = (collection, query)
        subscription = Subscription(lambda sub: self._release(key, sub), callback)
        shared = self._shared.get(key)
        if shared is None:
            shared = _SharedListener(model)
            self._shared[key] = shared
            shared.subscribers.append(subscription)
            # The store delivers the initial snapshot synchronously.
            shared.unsubscribe = self._store.on_change(collection, query, shared.on_documents)
            if not shared.subscribers:
                # Cancelled from inside the initial delivery.
                shared.unsubscribe()
                return subscription
            _logger.debug("Opened %s listener for %s", collection, query)
        else:
            shared.subscribers.append(subscription)
            if shared.last is not None:
                subscription._deliver(list(shared.last))
        return subscription

    def _release(self, key: tuple[Collection, StoreQuery], subscription: Subscription) -> None:
        shared = self._shared.get(key)
        if shared is None:
            return
        if subscription in shared.subscribers:
            shared.subscribers.remove(subscription)
        if shared.subscribers:
            return
        del self._shared[key]
        if shared.unsubscribe is not None:
            shared.unsubscribe()
        _logger.debug("Closed %s listener for %s", key[0], key[1])
