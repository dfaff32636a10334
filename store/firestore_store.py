from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from firebase_admin import firestore
from google.api_core import exceptions as gexc
from google.cloud.firestore_v1 import FieldFilter  # Firestore filter objects

from db.base import get_db
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


def _is_missing_index(e: Exception) -> bool:
    return isinstance(e, gexc.FailedPrecondition) or "requires an index" in str(e).lower()


def _translate(e: Exception) -> Exception:
    """Map client errors onto the store error taxonomy."""
    if _is_missing_index(e):
        return IndexUnavailableError(str(e))
    return StoreUnavailableError(str(e))


def _may_need_index(spec: QuerySpec) -> bool:
    return len(spec.filters) > 1 or (bool(spec.filters) and spec.order_by is not None)


class _FirestoreWatch(WatchHandle):
    def __init__(self, watch):
        self._watch = watch
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        try:
            self._watch.unsubscribe()
        except Exception:
            logger.exception("[FIRESTORE] unsubscribe failed")


class FirestoreDocumentStore(DocumentStore):
    """
    Cloud Firestore backend. Client calls are blocking, so one-shot operations
    run in a worker thread; on_snapshot callbacks arrive on the watch thread and
    are handed to the event loop that opened the watch.
    """

    def __init__(self, client=None):
        if client is None:
            client = get_db()
        self.db = client
        self._probes: set[asyncio.Task] = set()

    def _build(self, spec: QuerySpec):
        q = self.db.collection(spec.collection)
        for field_name, value in spec.filters:
            q = q.where(filter=FieldFilter(field_name, "==", value))
        if spec.order_by:
            direction = (
                firestore.Query.DESCENDING if spec.direction == DESCENDING else firestore.Query.ASCENDING
            )
            q = q.order_by(spec.order_by, direction=direction)
        if spec.limit:
            q = q.limit(spec.limit)
        return q

    async def query(self, spec: QuerySpec) -> List[Document]:
        q = self._build(spec)
        try:
            snaps = await asyncio.to_thread(lambda: list(q.stream()))
        except Exception as e:
            raise _translate(e) from e
        return [Document(s.id, s.to_dict() or {}) for s in snaps]

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_ref = self.db.collection(collection).document()
        try:
            await asyncio.to_thread(doc_ref.set, data)
        except Exception as e:
            raise _translate(e) from e
        return doc_ref.id

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        doc_ref = self.db.collection(collection).document(doc_id)
        try:
            await asyncio.to_thread(doc_ref.update, fields)
        except Exception as e:
            raise _translate(e) from e

    def watch(
        self,
        spec: QuerySpec,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> WatchHandle:
        loop = asyncio.get_running_loop()
        handle: Optional[_FirestoreWatch] = None

        def _deliver(docs: List[Document]) -> None:
            # unsubscribe() may have run while this was queued on the loop
            if handle is not None and handle.active:
                on_snapshot(docs)

        def _callback(snaps, changes, read_time) -> None:
            docs = [Document(s.id, s.to_dict() or {}) for s in snaps]
            loop.call_soon_threadsafe(_deliver, docs)

        try:
            handle = _FirestoreWatch(self._build(spec).on_snapshot(_callback))
        except Exception as e:
            err = _translate(e)
            if on_error is None:
                raise err from e
            loop.call_soon(on_error, err)
            handle = _FirestoreWatch(_NoWatch())
            handle.active = False
            return handle

        # The watch thread does not report query errors to the caller, so
        # index-dependent queries are checked with a one-shot read.
        if on_error is not None and _may_need_index(spec):
            task = loop.create_task(self._probe_watch(spec, handle, on_error))
            self._probes.add(task)
            task.add_done_callback(self._probes.discard)
        return handle

    async def _probe_watch(self, spec: QuerySpec, handle: "_FirestoreWatch", on_error: ErrorCallback) -> None:
        try:
            await self.probe(spec)
        except IndexUnavailableError as e:
            if handle.active:
                handle.unsubscribe()
                on_error(e)
        except Exception:
            logger.warning("[FIRESTORE] probe of %s failed", spec.describe(), exc_info=True)

    def server_timestamp(self) -> Any:
        return firestore.SERVER_TIMESTAMP


class _NoWatch:
    def unsubscribe(self) -> None:
        return
