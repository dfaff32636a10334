from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Set

from observability.obs import instrument_io
from store.document_store import DocumentStore
from store.message_store import MessageStore

logger = logging.getLogger(__name__)


class ReadReconciler:
    """
    Marks viewed visitor messages as read.

    `mark_read` returns immediately with a detached task. Each id is written
    on its own; a failed id is logged and neither retried nor allowed to stop
    the rest of the batch.
    """

    def __init__(self, store: DocumentStore):
        self.messages = MessageStore(store)
        self._tasks: Set[asyncio.Task] = set()
        self._in_flight: Set[str] = set()

    def mark_read(self, message_ids: Iterable[str]) -> asyncio.Task:
        ids: List[str] = []
        for message_id in message_ids:
            if not message_id:
                logger.warning("[READ] empty message id, skipping")
                continue
            if message_id in self._in_flight or message_id in ids:
                continue
            ids.append(message_id)
        self._in_flight.update(ids)

        task = asyncio.get_running_loop().create_task(self._mark_all(ids))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @instrument_io(
        name="chat.mark_read",
        meta={"component": "read_reconciler"},
        input_fn=lambda self, ids: {"count": len(ids)},
        output_fn=lambda marked: {"marked": marked},
    )
    async def _mark_all(self, ids: List[str]) -> int:
        if not ids:
            return 0
        results = await asyncio.gather(*(self._mark_one(i) for i in ids))
        marked = sum(results)
        if marked < len(ids):
            logger.warning("[READ] marked %d/%d messages as read", marked, len(ids))
        else:
            logger.info("[READ] marked %d messages as read", marked)
        return marked

    async def _mark_one(self, message_id: str) -> bool:
        try:
            await self.messages.set_read(message_id)
            return True
        except Exception:
            logger.exception("[READ] failed to mark %s as read", message_id)
            return False
        finally:
            self._in_flight.discard(message_id)

    async def mark_conversation_read(self, conversation_id: str) -> int:
        """Mark every unread message of a conversation, looked up in one query."""
        try:
            unread = await self.messages.find(self.messages.unread_in(conversation_id))
        except Exception:
            logger.exception("[READ] lookup of unread messages failed for %s", conversation_id)
            return 0
        return await self.mark_read([m.id for m in unread if m.id])

    async def drain(self) -> None:
        """Wait for every detached batch, including ones started while waiting."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
