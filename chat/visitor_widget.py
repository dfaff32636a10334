from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from models.faq import FAQ
from models.message import Message
from shared.time import now_ms, utcnow
from store.document_store import DocumentStore
from store.faq_store import FAQStore
from chat.conversation_resolver import ConversationResolver, is_placeholder
from chat.live_query import LiveQuery
from chat.message_stream import sort_messages, watch_messages
from chat.messaging import MessagingService
from chat.selection import Phase, SelectionGuard

logger = logging.getLogger(__name__)

WELCOME_TEXT = "You're now connected to our support team. How can we help you today?"
SEND_ERROR_TEXT = "Sorry, there was an error sending your message. Please try again."


class VisitorWidget:
    """
    Visitor-side chat: FAQ browsing, then a live conversation.

    The conversation id is resolved in the background when the widget opens.
    Until a durable id exists the widget stays in the resolving phase and no
    stream is open; sends re-resolve first.
    """

    def __init__(
        self,
        store: DocumentStore,
        participant_id: str,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self.store = store
        self.participant_id = participant_id
        self.on_change = on_change
        self.resolver = ConversationResolver(store)
        self.messaging = MessagingService(store)
        self.faq_store = FAQStore(store)
        self.guard = SelectionGuard()

        self.conversation_id: Optional[str] = None
        self.is_open = False
        self.chatting = False
        self.faqs: List[FAQ] = []

        self._stored: List[Message] = []
        self._notices: List[Message] = []
        self._stream: Optional[LiveQuery] = None
        self._resolving: Optional[asyncio.Task] = None
        self._disposed = False

    # --- View ---------------------------------------------------------------------

    @property
    def phase(self) -> Phase:
        return self.guard.phase

    @property
    def messages(self) -> List[Message]:
        """Stored transcript plus local notices newer than the last stored message."""
        if not self._stored:
            return sort_messages(self._notices)
        last = self._stored[-1].sort_key
        kept = [n for n in self._notices if n.sort_key >= last]
        return sort_messages(self._stored + kept)

    # --- Lifecycle ------------------------------------------------------------------

    async def open(self) -> None:
        self.is_open = True
        self.chatting = False
        if is_placeholder(self.conversation_id):
            self._start_resolving()
        self.faqs = await self.faq_store.get_all_faqs()
        self._changed()

    def close(self) -> None:
        self.is_open = False
        self._changed()

    def dispose(self) -> None:
        self._disposed = True
        if self._resolving is not None and not self._resolving.done():
            self._resolving.cancel()
        if self._stream is not None:
            self._stream.cancel()
            self._stream = None
        self.guard.idle()

    # --- Conversation -------------------------------------------------------------

    def _start_resolving(self) -> asyncio.Task:
        if self._resolving is None or self._resolving.done():
            self.guard.resolving()
            self._resolving = asyncio.get_running_loop().create_task(self._resolve())
        return self._resolving

    async def _resolve(self) -> str:
        conversation_id = await self.resolver.resolve_conversation(self.participant_id)
        self._adopt(conversation_id)
        return conversation_id

    def _adopt(self, conversation_id: str) -> None:
        if self._disposed:
            return
        self.conversation_id = conversation_id
        if is_placeholder(conversation_id):
            logger.warning("[WIDGET] %s has no durable conversation yet (%s)", self.participant_id, conversation_id)
            return
        if self.guard.is_current(conversation_id):
            return
        if self._stream is not None:
            self._stream.cancel()
        self.guard.subscribe(conversation_id)
        self._stream = watch_messages(self.store, conversation_id, self.guard.gate(conversation_id, self._on_messages))
        self._changed()

    async def ensure_conversation(self) -> str:
        """Durable conversation id, or a placeholder if the store is still unreachable."""
        if not is_placeholder(self.conversation_id):
            return self.conversation_id
        # shared with a resolution that is already running, e.g. the one open() started
        return await asyncio.shield(self._start_resolving())

    def _on_messages(self, messages: List[Message]) -> None:
        self._stored = messages
        self._changed()

    # --- Actions ------------------------------------------------------------------

    async def start_chat(self) -> str:
        self.chatting = True
        conversation_id = await self.ensure_conversation()
        current = self.messages
        if not (current and current[-1].id and current[-1].id.startswith("welcome_")):
            self._add_notice("welcome", WELCOME_TEXT, conversation_id)
        return conversation_id

    async def back_to_faqs(self) -> None:
        self.chatting = False
        self.faqs = await self.faq_store.get_all_faqs()
        self._changed()

    async def search_faqs(self, question: str) -> List[FAQ]:
        return await self.faq_store.search_faqs(question)

    async def send(self, text: str) -> Optional[str]:
        """
        Send a visitor message. Returns the stored message id, or None when the
        text was blank or the send failed (a system notice is shown instead).
        """
        if not text or not text.strip():
            return None
        if not self.chatting:
            await self.start_chat()

        conversation_id = await self.ensure_conversation()
        if is_placeholder(conversation_id):
            logger.error("[WIDGET] cannot send for %s: conversation not created", self.participant_id)
            self._add_notice("error", SEND_ERROR_TEXT, conversation_id)
            return None

        try:
            return await self.messaging.send_visitor_message(text, conversation_id, self.participant_id)
        except Exception:
            logger.exception("[WIDGET] send failed in %s", conversation_id)
            self._add_notice("error", SEND_ERROR_TEXT, conversation_id)
            return None

    def _add_notice(self, kind: str, text: str, conversation_id: Optional[str]) -> None:
        notice = Message.notice(f"{kind}_{now_ms()}", text, conversation_id or "temp", utcnow())
        self._notices.append(notice)
        self._changed()

    def _changed(self) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change()
        except Exception:
            logger.exception("[WIDGET] change listener failed")
