"""Live list of every conversation for the agent console, newest activity first."""

from __future__ import annotations

import logging
from typing import Callable, List

from models.conversation import Conversation
from shared.time import epoch_ms
from store.conversation_store import ConversationStore, to_conversations
from store.document_store import Document, DocumentStore
from chat.live_query import LiveQuery

logger = logging.getLogger(__name__)


def order_by_activity(conversations: List[Conversation]) -> List[Conversation]:
    return sorted(conversations, key=lambda c: epoch_ms(c.updated_at), reverse=True)


def watch_conversations(
    store: DocumentStore,
    on_update: Callable[[List[Conversation]], None],
) -> LiveQuery:
    """
    Deliver the full ordered conversation list on every change. Knows nothing
    about which conversation is selected.
    """
    conversations = ConversationStore(store)

    def on_docs(docs: List[Document]) -> None:
        on_update(order_by_activity(to_conversations(docs)))

    def on_failure() -> None:
        on_update([])

    return LiveQuery(
        store,
        name="conversations",
        primary=conversations.by_recent_activity(),
        degraded=None,
        on_docs=on_docs,
        on_failure=on_failure,
    ).start()
