from __future__ import annotations

import logging
from typing import List, Optional

from models.message import Message
from observability.obs import instrument_io
from store.conversation_store import ConversationStore
from store.document_store import DocumentStore
from store.message_store import MessageStore
from chat.conversation_resolver import is_placeholder
from chat.errors import EmptyMessageError, PlaceholderConversationError, SendError
from chat.message_stream import load_messages

logger = logging.getLogger(__name__)


def _check(text: str, conversation_id: str) -> str:
    if not text or not text.strip():
        raise EmptyMessageError("message text is empty")
    if is_placeholder(conversation_id):
        raise PlaceholderConversationError(conversation_id)
    return text


class MessagingService:
    """
    Writes visitor and agent messages. The message itself must land; the
    follow-up conversation update (updatedAt, agent assignment) is best effort
    because the message is already visible by then.
    """

    def __init__(self, store: DocumentStore):
        self.messages = MessageStore(store)
        self.conversations = ConversationStore(store)
        self.store = store

    @instrument_io(
        name="chat.send_visitor_message",
        input_fn=lambda self, text, conversation_id, participant_id=None: {
            "conversation_id": conversation_id, "text": text,
        },
        redact=True,
    )
    async def send_visitor_message(
        self,
        text: str,
        conversation_id: str,
        participant_id: Optional[str] = None,
    ) -> str:
        _check(text, conversation_id)
        try:
            message_id = await self.messages.add_visitor_message(text, conversation_id, participant_id)
        except Exception as e:
            logger.exception("[SEND] visitor message to %s failed", conversation_id)
            raise SendError(str(e)) from e
        await self._touch(conversation_id)
        return message_id

    @instrument_io(
        name="chat.send_agent_message",
        input_fn=lambda self, text, conversation_id, agent_id, agent_name: {
            "conversation_id": conversation_id, "agent_id": agent_id, "text": text,
        },
        redact=True,
    )
    async def send_agent_message(
        self,
        text: str,
        conversation_id: str,
        agent_id: str,
        agent_name: str,
    ) -> str:
        _check(text, conversation_id)
        try:
            message_id = await self.messages.add_agent_message(text, conversation_id, agent_id, agent_name)
        except Exception as e:
            logger.exception("[SEND] agent message to %s failed", conversation_id)
            raise SendError(str(e)) from e
        await self._touch(conversation_id, agent_id=agent_id, agent_name=agent_name)
        return message_id

    async def _touch(self, conversation_id: str, **assignment) -> None:
        try:
            await self.conversations.touch(conversation_id, **assignment)
        except Exception:
            logger.exception("[SEND] conversation %s not updated after send", conversation_id)

    async def get_messages(self, conversation_id: str) -> List[Message]:
        if is_placeholder(conversation_id):
            return []
        return await load_messages(self.store, conversation_id)
