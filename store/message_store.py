from __future__ import annotations

import logging
from typing import List, Optional

from models.message import MESSAGES, Message, MessageSender
from shared.time import utcnow
from store.document_store import ASCENDING, Document, DocumentStore, QuerySpec

logger = logging.getLogger(__name__)


class MessageStore:
    """
    Store-backed access to the `messages` collection.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    # --- Query specs ----------------------------------------------------------

    def for_conversation(self, conversation_id: str) -> QuerySpec:
        return QuerySpec(MESSAGES).where("conversationId", conversation_id)

    def timeline(self, conversation_id: str) -> QuerySpec:
        # NOTE: needs a composite index (conversationId, timestamp asc)
        return self.for_conversation(conversation_id).ordered("timestamp", ASCENDING)

    def unread(self) -> QuerySpec:
        return QuerySpec(MESSAGES).where("read", False)

    def unread_from_visitors(self) -> QuerySpec:
        return self.unread().where("sender", MessageSender.VISITOR.value)

    def unread_in(self, conversation_id: str) -> QuerySpec:
        return self.for_conversation(conversation_id).where("read", False)

    # --- Reads ----------------------------------------------------------------

    async def find(self, spec: QuerySpec) -> List[Message]:
        docs = await self.store.query(spec)
        return to_messages(docs)

    # --- Mutations ------------------------------------------------------------

    async def add_visitor_message(self, text: str, conversation_id: str, participant_id: Optional[str]) -> str:
        return await self.store.add(
            MESSAGES,
            {
                "text": text,
                "timestamp": utcnow(),
                "sender": MessageSender.VISITOR.value,
                "userId": participant_id or "anonymous",
                "conversationId": conversation_id,
                "read": False,
            },
        )

    async def add_agent_message(self, text: str, conversation_id: str, agent_id: str, agent_name: str) -> str:
        return await self.store.add(
            MESSAGES,
            {
                "text": text,
                "timestamp": utcnow(),
                "sender": MessageSender.AGENT.value,
                "agentId": agent_id,
                "agentName": agent_name,
                "conversationId": conversation_id,
                "read": False,
            },
        )

    async def set_read(self, message_id: str) -> None:
        await self.store.update(MESSAGES, message_id, {"read": True})


def to_messages(docs: List[Document]) -> List[Message]:
    messages: List[Message] = []
    for doc in docs:
        try:
            messages.append(Message.from_doc(doc.id, doc.data))
        except Exception:
            logger.exception("[MESSAGES] skipping malformed document %s", doc.id)
    return messages
