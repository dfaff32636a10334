"""
In-process document store.

Behaves like the hosted store as far as the chat engine can tell: ids are
assigned on add, every operation is a suspension point, live queries deliver
asynchronously on the event loop and only when their result set changed.
Index rejection, outages and per-document write failures can be switched on
to exercise the degraded paths.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from shared.time import to_utc
from store.document_store import (
    DESCENDING,
    Document,
    DocumentStore,
    ErrorCallback,
    IndexUnavailableError,
    QuerySpec,
    SnapshotCallback,
    StoreUnavailableError,
    WatchHandle,
)

logger = logging.getLogger(__name__)


def needs_composite_index(spec: QuerySpec) -> bool:
    """Equality filters combined with an ordering field need a composite index."""
    return bool(spec.filters) and spec.order_by is not None


def _sort_key(value: Any):
    if isinstance(value, datetime):
        return (0, to_utc(value))
    return (1, value)


class _MemoryWatch(WatchHandle):
    def __init__(self, store: "MemoryDocumentStore", spec: QuerySpec,
                 on_snapshot: SnapshotCallback, on_error: Optional[ErrorCallback]):
        self.store = store
        self.spec = spec
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.active = True
        self.last: Optional[List[Tuple[str, Dict[str, Any]]]] = None

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self.store._watches.discard(self)


class MemoryDocumentStore(DocumentStore):
    def __init__(self, reject_query: Optional[Callable[[QuerySpec], bool]] = None):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._watches: set[_MemoryWatch] = set()
        self._held: List[Tuple[_MemoryWatch, List[Document]]] = []
        self._scheduled = 0
        self.reject_query = reject_query
        self.unavailable = False
        self.failing_doc_ids: set[str] = set()
        self.holding = False

    @classmethod
    def without_composite_indexes(cls) -> "MemoryDocumentStore":
        return cls(reject_query=needs_composite_index)

    # --- Helpers ----------------------------------------------------------------

    def _check_available(self) -> None:
        if self.unavailable:
            raise StoreUnavailableError("memory store is offline")

    def _check_index(self, spec: QuerySpec) -> None:
        if self.reject_query is not None and self.reject_query(spec):
            raise IndexUnavailableError(f"The query requires an index: {spec.describe()}")

    def _evaluate(self, spec: QuerySpec) -> List[Document]:
        docs = self._collections.get(spec.collection, {})
        matched = [
            (doc_id, data)
            for doc_id, data in docs.items()
            if all(field in data and data[field] == value for field, value in spec.filters)
        ]
        if spec.order_by:
            matched = [m for m in matched if spec.order_by in m[1]]
            matched.sort(
                key=lambda m: _sort_key(m[1][spec.order_by]),
                reverse=spec.direction == DESCENDING,
            )
        if spec.limit:
            matched = matched[: spec.limit]
        return [Document(doc_id, copy.deepcopy(data)) for doc_id, data in matched]

    def documents(self, collection: str) -> Dict[str, Dict[str, Any]]:
        """Raw contents of a collection (copies)."""
        return copy.deepcopy(self._collections.get(collection, {}))

    def put(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Write a document with a caller-chosen id (seeding, buffered writes)."""
        self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        self._notify(collection)

    # --- Delivery ---------------------------------------------------------------

    def _schedule(self, watch: _MemoryWatch, docs: List[Document]) -> None:
        if self.holding:
            self._held.append((watch, docs))
            return
        self._scheduled += 1
        asyncio.get_running_loop().call_soon(self._deliver, watch, docs)

    def _deliver(self, watch: _MemoryWatch, docs: List[Document]) -> None:
        self._scheduled -= 1
        if not watch.active:
            return
        watch.on_snapshot(docs)

    def _refresh(self, watch: _MemoryWatch) -> None:
        try:
            self._check_available()
            self._check_index(watch.spec)
        except Exception as e:
            watch.unsubscribe()
            if watch.on_error is not None:
                self._scheduled += 1
                asyncio.get_running_loop().call_soon(self._deliver_error, watch, e)
            else:
                logger.error("[MEMSTORE] watch %s failed: %s", watch.spec.describe(), e)
            return
        docs = self._evaluate(watch.spec)
        current = [(d.id, d.data) for d in docs]
        if current == watch.last:
            return
        watch.last = current
        self._schedule(watch, docs)

    def _deliver_error(self, watch: _MemoryWatch, exc: Exception) -> None:
        self._scheduled -= 1
        watch.on_error(exc)

    def _notify(self, collection: str) -> None:
        for watch in list(self._watches):
            if watch.spec.collection == collection:
                self._refresh(watch)

    def hold(self) -> None:
        """Queue snapshots instead of delivering them (simulated network delay)."""
        self.holding = True

    def release(self) -> None:
        self.holding = False
        held, self._held = self._held, []
        for watch, docs in held:
            self._schedule(watch, docs)

    async def settle(self, rounds: int = 50) -> None:
        """Let scheduled deliveries and the work they trigger run."""
        idle = 0
        for _ in range(rounds):
            await asyncio.sleep(0)
            idle = idle + 1 if self._scheduled == 0 else 0
            if idle >= 3:
                return

    # --- DocumentStore ----------------------------------------------------------

    async def query(self, spec: QuerySpec) -> List[Document]:
        await asyncio.sleep(0)
        self._check_available()
        self._check_index(spec)
        return self._evaluate(spec)

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        await asyncio.sleep(0)
        self._check_available()
        doc_id = uuid.uuid4().hex[:20]
        self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        self._notify(collection)
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        await asyncio.sleep(0)
        self._check_available()
        if doc_id in self.failing_doc_ids:
            raise StoreUnavailableError(f"write to {collection}/{doc_id} failed")
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            raise StoreUnavailableError(f"No document to update: {collection}/{doc_id}")
        docs[doc_id].update(copy.deepcopy(fields))
        self._notify(collection)

    def watch(
        self,
        spec: QuerySpec,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> WatchHandle:
        handle = _MemoryWatch(self, spec, on_snapshot, on_error)
        self._watches.add(handle)
        self._refresh(handle)
        return handle
