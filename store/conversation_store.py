from __future__ import annotations

import logging
from typing import List, Optional

from models.conversation import CONVERSATIONS, Conversation, ConversationStatus
from store.document_store import DESCENDING, Document, DocumentStore, QuerySpec

logger = logging.getLogger(__name__)


class ConversationStore:
    """
    Store-backed access to the `conversations` collection.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    # --- Query specs ----------------------------------------------------------

    def active_for(self, participant_id: str) -> QuerySpec:
        return (
            QuerySpec(CONVERSATIONS)
            .where("userId", participant_id)
            .where("status", ConversationStatus.ACTIVE.value)
        )

    def latest_active_for(self, participant_id: str) -> QuerySpec:
        # NOTE: needs a composite index (userId, status, createdAt desc)
        return self.active_for(participant_id).ordered("createdAt", DESCENDING).limited(1)

    def by_recent_activity(self) -> QuerySpec:
        return QuerySpec(CONVERSATIONS).ordered("updatedAt", DESCENDING)

    # --- Reads ----------------------------------------------------------------

    async def find(self, spec: QuerySpec) -> List[Conversation]:
        docs = await self.store.query(spec)
        return to_conversations(docs)

    # --- Mutations ------------------------------------------------------------

    async def create_active(self, participant_id: str) -> str:
        now = self.store.server_timestamp()
        conversation_id = await self.store.add(
            CONVERSATIONS,
            {
                "userId": participant_id,
                "status": ConversationStatus.ACTIVE.value,
                "createdAt": now,
                "updatedAt": now,
            },
        )
        logger.info("[CONVERSATIONS] Created conversation %s for %s", conversation_id, participant_id)
        return conversation_id

    async def touch(
        self,
        conversation_id: str,
        agent_id: Optional[str] = None,
        agent_name: Optional[str] = None,
    ) -> None:
        updates: dict = {"updatedAt": self.store.server_timestamp()}
        if agent_id:
            updates["assignedAgentId"] = agent_id
            updates["assignedAgentName"] = agent_name
        await self.store.update(CONVERSATIONS, conversation_id, updates)


def to_conversations(docs: List[Document]) -> List[Conversation]:
    conversations: List[Conversation] = []
    for doc in docs:
        try:
            conversations.append(Conversation.from_doc(doc.id, doc.data))
        except Exception:
            logger.exception("[CONVERSATIONS] skipping malformed document %s", doc.id)
    return conversations
