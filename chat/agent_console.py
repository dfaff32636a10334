from __future__ import annotations

import functools
import logging
from typing import Callable, Dict, List, Optional

from models.conversation import Conversation
from models.message import Message
from store.document_store import DocumentStore
from chat.conversation_registry import watch_conversations
from chat.live_query import LiveQuery
from chat.message_stream import watch_messages
from chat.messaging import MessagingService
from chat.read_reconciler import ReadReconciler
from chat.selection import SelectionGuard
from chat.unread_counter import watch_unread_counts

logger = logging.getLogger(__name__)


class AgentConsole:
    """
    Agent-side view: every conversation, unread badges and the transcript of
    the one conversation the agent picked.

    The conversation list and the unread counts are subscribed for the whole
    life of the console. The message stream follows the selection, which only
    changes through `select`; list updates never move it.
    """

    def __init__(
        self,
        store: DocumentStore,
        agent_id: str,
        agent_name: str,
        on_change: Optional[Callable[[str], None]] = None,
    ):
        self.store = store
        self.agent_id = agent_id
        self.agent_name = agent_name
        self.on_change = on_change
        self.guard = SelectionGuard()
        self.reconciler = ReadReconciler(store)
        self.messaging = MessagingService(store)

        self.conversations: List[Conversation] = []
        self.unread_counts: Dict[str, int] = {}
        self.messages: List[Message] = []

        self._registry: Optional[LiveQuery] = None
        self._counter: Optional[LiveQuery] = None
        self._stream: Optional[LiveQuery] = None

    # --- Lifecycle --------------------------------------------------------------

    def start(self) -> "AgentConsole":
        if self._registry is None:
            self._registry = watch_conversations(self.store, self._on_conversations)
        if self._counter is None:
            self._counter = watch_unread_counts(self.store, self._on_unread_counts)
        return self

    def stop(self) -> None:
        self.select(None)
        for sub in (self._registry, self._counter):
            if sub is not None:
                sub.cancel()
        self._registry = None
        self._counter = None

    # --- Selection --------------------------------------------------------------

    @property
    def selected(self) -> Optional[str]:
        return self.guard.conversation_id

    def select(self, conversation_id: Optional[str]) -> None:
        if conversation_id == self.guard.conversation_id:
            # a stream that ended in failure can be reopened by selecting again
            if conversation_id is None or (self._stream is not None and self._stream.active):
                return

        # live selection first, so anything still in flight for the old id is dropped
        if conversation_id:
            self.guard.subscribe(conversation_id)
        else:
            self.guard.idle()

        if self._stream is not None:
            self._stream.cancel()
            self._stream = None
        self.messages = []

        if conversation_id:
            self._stream = watch_messages(
                self.store,
                conversation_id,
                self.guard.gate(conversation_id, functools.partial(self._on_messages, conversation_id)),
            )
        logger.info("[CONSOLE] %s selected %s", self.agent_id, conversation_id)
        self._emit("messages")

    # --- Subscription callbacks -------------------------------------------------

    def _on_conversations(self, conversations: List[Conversation]) -> None:
        self.conversations = conversations
        self._emit("conversations")

    def _on_unread_counts(self, counts: Dict[str, int]) -> None:
        self.unread_counts = counts
        self._emit("unread")

    def _on_messages(self, conversation_id: str, messages: List[Message]) -> None:
        self.messages = messages
        self._emit("messages")

        unread = [
            m.id
            for m in messages
            if m.id and m.is_unread_visitor_message and m.conversation_id == conversation_id
        ]
        if unread:
            logger.info("[CONSOLE] marking %d messages read in %s", len(unread), conversation_id)
            self.reconciler.mark_read(unread)

    def _emit(self, kind: str) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(kind)
        except Exception:
            logger.exception("[CONSOLE] change listener failed for %s", kind)

    # --- Queries / actions ------------------------------------------------------

    def unread_count(self, conversation_id: str) -> int:
        return max(0, self.unread_counts.get(conversation_id, 0))

    def total_unread(self) -> int:
        return sum(max(0, c) for c in self.unread_counts.values())

    def set_agent_name(self, name: str) -> None:
        self.agent_name = name

    async def send(self, text: str) -> Optional[str]:
        """Reply in the selected conversation. Returns None when there is nothing to send."""
        conversation_id = self.selected
        if not text or not text.strip() or not conversation_id:
            return None
        return await self.messaging.send_agent_message(text, conversation_id, self.agent_id, self.agent_name)
