"""Live, timestamp-ordered message list of one conversation."""

from __future__ import annotations

import logging
from typing import Callable, List

from models.message import Message
from store.document_store import Document, DocumentStore, IndexUnavailableError
from store.message_store import MessageStore, to_messages
from chat.live_query import LiveQuery

logger = logging.getLogger(__name__)


def sort_messages(messages: List[Message]) -> List[Message]:
    """Ascending logical time. Stable, so equal timestamps keep store order."""
    return sorted(messages, key=lambda m: m.sort_key)


def watch_messages(
    store: DocumentStore,
    conversation_id: str,
    on_update: Callable[[List[Message]], None],
) -> LiveQuery:
    """
    Subscribe to one conversation. Snapshots are re-sorted client-side on both
    tiers since buffered writes can land out of logical order. Cancel with
    `.cancel()`.
    """
    messages = MessageStore(store)

    def on_docs(docs: List[Document]) -> None:
        batch = sort_messages(to_messages(docs))
        logger.debug("[STREAM] %s: %d messages", conversation_id, len(batch))
        on_update(batch)

    def on_failure() -> None:
        on_update([])

    return LiveQuery(
        store,
        name=f"messages:{conversation_id}",
        primary=messages.timeline(conversation_id),
        degraded=messages.for_conversation(conversation_id),
        on_docs=on_docs,
        on_failure=on_failure,
    ).start()


async def load_messages(store: DocumentStore, conversation_id: str) -> List[Message]:
    """One-shot ordered read with the same ordering fallback. Returns [] on failure."""
    messages = MessageStore(store)
    try:
        try:
            found = await messages.find(messages.timeline(conversation_id))
        except IndexUnavailableError:
            logger.warning("[STREAM] ordered read rejected for %s, sorting locally", conversation_id)
            found = await messages.find(messages.for_conversation(conversation_id))
    except Exception:
        logger.exception("[STREAM] load_messages failed for %s", conversation_id)
        return []
    return sort_messages(found)
