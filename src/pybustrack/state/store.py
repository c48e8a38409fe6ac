"""Shared real-time document store.

The sync engine is the only writer; the distribution layer subscribes to
query results through :meth:`DocumentStore.on_change`.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any, Protocol

from pybustrack._constants import MAX_WRITE_BATCH
from pybustrack.exceptions import PersistenceError
from pybustrack.state.events import Collection, StoreQuery, WriteKind, WriteOp

_logger = logging.getLogger(__name__)

Document = dict[str, Any]
SnapshotCallback = Callable[[list[Document]], None]
Unsubscribe = Callable[[], None]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def run_query(documents: Sequence[Document], query: StoreQuery) -> list[Document]:
    """Apply *query* to *documents* without copying them."""
    result = [document for document in documents if query.matches(document)]
    order_by = query.order_by
    if order_by is not None:
        present = [document for document in result if document.get(order_by) is not None]
        missing = [document for document in result if document.get(order_by) is None]
        present.sort(key=lambda document: document[order_by], reverse=query.descending)
        # Documents missing the sort field go last.
        result = present + missing
    if query.limit is not None:
        result = result[: query.limit]
    return result


class DocumentStore(Protocol):
    """Structural interface of the shared store."""

    async def get(self, collection: Collection, doc_id: str) -> Document | None: ...

    async def query(self, collection: Collection, query: StoreQuery | None = None) -> list[Document]: ...

    async def commit(self, writes: Sequence[WriteOp]) -> None: ...

    async def delete_where(self, collection: Collection, predicate: Callable[[Document], bool]) -> int: ...

    def on_change(self, collection: Collection, query: StoreQuery, callback: SnapshotCallback) -> Unsubscribe: ...


class _Listener:
    __slots__ = ("active", "callback", "collection", "last", "query")

    def __init__(self, collection: Collection, query: StoreQuery, callback: SnapshotCallback) -> None:
        self.collection = collection
        self.query = query
        self.callback = callback
        self.last: list[Document] | None = None
        self.active = True


class MemoryDocumentStore:
    """In-process document store with atomic batched commits.

    Documents are deep-copied on the way in and out, so callers can never
    mutate stored state. A commit is validated as a whole before any write
    is applied; change listeners are notified synchronously after each
    commit whose result differs from the snapshot they last received.
    """

    def __init__(
        self,
        *,
        max_batch: int = MAX_WRITE_BATCH,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._max_batch = max_batch
        self._clock = clock
        self._collections: dict[Collection, dict[str, Document]] = {collection: {} for collection in Collection}
        self._listeners: list[_Listener] = []
        self.commit_count = 0
        self.last_commit_at: datetime | None = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, collection: Collection, doc_id: str) -> Document | None:
        document = self._collections[collection].get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def query(self, collection: Collection, query: StoreQuery | None = None) -> list[Document]:
        documents = list(self._collections[collection].values())
        return copy.deepcopy(run_query(documents, query or StoreQuery()))

    def count(self, collection: Collection) -> int:
        return len(self._collections[collection])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def commit(self, writes: Sequence[WriteOp]) -> None:
        """Apply *writes* atomically.

        Raises
        ------
        PersistenceError
            If the batch exceeds the store ceiling or a write is malformed.
            Nothing is applied in that case.
        """
        if not writes:
            return
        if len(writes) > self._max_batch:
            raise PersistenceError(
                f"Batch of {len(writes)} writes exceeds the limit of {self._max_batch}",
                collection=writes[0].collection,
            )
        for op in writes:
            if op.kind is not WriteKind.DELETE and "id" in op.data and op.data["id"] != op.doc_id:
                raise PersistenceError(
                    f"Document id {op.data['id']!r} does not match key {op.doc_id!r}",
                    collection=op.collection,
                )

        touched: set[Collection] = set()
        for op in writes:
            documents = self._collections[op.collection]
            if op.kind is WriteKind.DELETE:
                documents.pop(op.doc_id, None)
            elif op.kind is WriteKind.MERGE and op.doc_id in documents:
                documents[op.doc_id].update(copy.deepcopy(op.data))
            else:
                documents[op.doc_id] = copy.deepcopy(op.data)
            touched.add(op.collection)

        self.commit_count += 1
        self.last_commit_at = self._clock()
        _logger.debug("Committed %d writes to %s", len(writes), sorted(touched))
        self._notify(touched)

    async def delete_where(self, collection: Collection, predicate: Callable[[Document], bool]) -> int:
        """Delete every document of *collection* matching *predicate*."""
        documents = self._collections[collection]
        doomed = [doc_id for doc_id, document in documents.items() if predicate(document)]
        for doc_id in doomed:
            del documents[doc_id]
        if doomed:
            _logger.debug("Deleted %d documents from %s", len(doomed), collection)
            self._notify({collection})
        return len(doomed)

    # ------------------------------------------------------------------
    # Change subscriptions
    # ------------------------------------------------------------------

    def on_change(self, collection: Collection, query: StoreQuery, callback: SnapshotCallback) -> Unsubscribe:
        """Deliver the current result of *query* now and after every change to it."""
        listener = _Listener(collection, query, callback)
        self._listeners.append(listener)
        self._deliver(listener)

        def _unsubscribe() -> None:
            if not listener.active:
                return
            listener.active = False
            self._listeners.remove(listener)

        return _unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _notify(self, collections: set[Collection]) -> None:
        for listener in list(self._listeners):
            if listener.active and listener.collection in collections:
                self._deliver(listener)

    def _deliver(self, listener: _Listener) -> None:
        result = run_query(list(self._collections[listener.collection].values()), listener.query)
        if listener.last is not None and result == listener.last:
            return
        listener.last = copy.deepcopy(result)
        try:
            listener.callback(copy.deepcopy(result))
        except Exception:
            _logger.warning("Store listener on %s raised", listener.collection, exc_info=True)
