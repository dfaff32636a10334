"""Live unread counts of visitor messages, per conversation."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Callable, Dict, List

from models.message import Message, MessageSender
from store.document_store import Document, DocumentStore, IndexUnavailableError
from store.message_store import MessageStore, to_messages
from chat.live_query import LiveQuery

logger = logging.getLogger(__name__)


def count_unread(messages: List[Message]) -> Dict[str, int]:
    """Counts per conversation. The degraded query also returns non-visitor messages; they are dropped here."""
    counts = Counter(
        m.conversation_id
        for m in messages
        if m.sender == MessageSender.VISITOR and not m.read and m.conversation_id
    )
    return dict(counts)


def watch_unread_counts(
    store: DocumentStore,
    on_update: Callable[[Dict[str, int]], None],
) -> LiveQuery:
    """Conversations with nothing unread are omitted; read a missing key as 0."""
    messages = MessageStore(store)

    def on_docs(docs: List[Document]) -> None:
        on_update(count_unread(to_messages(docs)))

    def on_failure() -> None:
        on_update({})

    return LiveQuery(
        store,
        name="unread",
        primary=messages.unread_from_visitors(),
        degraded=messages.unread(),
        on_docs=on_docs,
        on_failure=on_failure,
    ).start()


async def unread_count(store: DocumentStore, conversation_id: str) -> int:
    messages = MessageStore(store)
    spec = messages.unread_in(conversation_id).where("sender", MessageSender.VISITOR.value)
    try:
        try:
            found = await messages.find(spec)
        except IndexUnavailableError:
            found = await messages.find(spec.without("sender"))
    except Exception:
        logger.exception("[UNREAD] count failed for %s", conversation_id)
        return 0
    return count_unread(found).get(conversation_id, 0)
