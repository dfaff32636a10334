from __future__ import annotations

import logging
from typing import Optional

from models.conversation import Conversation
from observability.obs import instrument_io, span_attrs
from shared.settings import RESOLVE_FALLBACK_WINDOW
from shared.time import now_ms
from store.conversation_store import ConversationStore
from store.document_store import DocumentStore, IndexUnavailableError

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "temp_"


def make_placeholder_id() -> str:
    return f"{PLACEHOLDER_PREFIX}{now_ms()}"


def is_placeholder(conversation_id: Optional[str]) -> bool:
    """True for ids that were never written to the store (or no id at all)."""
    return not conversation_id or conversation_id.startswith(PLACEHOLDER_PREFIX)


class ConversationResolver:
    """
    Get-or-create of the single active conversation of a participant.

    Two near-simultaneous first resolutions for the same participant can both
    miss and both create; that window is accepted here.
    """

    def __init__(self, store: DocumentStore, fallback_window: int = RESOLVE_FALLBACK_WINDOW):
        self.conversations = ConversationStore(store)
        self.fallback_window = fallback_window

    @instrument_io(
        name="chat.resolve_conversation",
        input_fn=lambda self, participant_id: {"participant_id": participant_id},
        output_fn=lambda cid: {"conversation_id": cid, "placeholder": is_placeholder(cid)},
    )
    async def resolve_conversation(self, participant_id: str) -> str:
        if not participant_id:
            raise ValueError("participant_id is required")
        try:
            existing = await self.find_active(participant_id)
            if existing is not None:
                return existing.id
            with span_attrs("chat.resolve.create", participant_id=participant_id):
                return await self.conversations.create_active(participant_id)
        except Exception:
            placeholder = make_placeholder_id()
            logger.exception("[RESOLVER] resolve failed for %s, using placeholder %s", participant_id, placeholder)
            return placeholder

    async def find_active(self, participant_id: str) -> Optional[Conversation]:
        try:
            found = await self.conversations.find(self.conversations.latest_active_for(participant_id))
            return found[0] if found else None
        except IndexUnavailableError as e:
            logger.warning("[RESOLVER] sorted lookup rejected (%s), scanning up to %d", e, self.fallback_window)

        with span_attrs("chat.resolve.fallback_scan", window=self.fallback_window):
            candidates = await self.conversations.find(
                self.conversations.active_for(participant_id).limited(self.fallback_window)
            )
        return max(candidates, key=lambda c: c.created_at, default=None)
