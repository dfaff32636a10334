"""
Selection state and the guard that keeps stale stream deliveries out.

Subscription teardown is not synchronous with a user switching
conversations, so a snapshot for the previous conversation can still arrive.
Every delivery is checked against the live state here, never against a value
captured when the subscription was opened.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    SUBSCRIBED = "subscribed"


class SelectionGuard:
    """Idle -> Resolving -> Subscribed(conversation_id) -> Idle."""

    def __init__(self) -> None:
        self.phase = Phase.IDLE
        self.conversation_id: Optional[str] = None

    def idle(self) -> None:
        self.phase = Phase.IDLE
        self.conversation_id = None

    def resolving(self) -> None:
        self.phase = Phase.RESOLVING
        self.conversation_id = None

    def subscribe(self, conversation_id: str) -> None:
        self.phase = Phase.SUBSCRIBED
        self.conversation_id = conversation_id

    def is_current(self, conversation_id: str) -> bool:
        return self.phase is Phase.SUBSCRIBED and self.conversation_id == conversation_id

    def gate(self, conversation_id: str, fn: Callable[..., Any]) -> Callable[..., None]:
        """Wrap `fn` so it only runs while `conversation_id` is still selected."""
        def gated(*args: Any) -> None:
            if not self.is_current(conversation_id):
                logger.debug("[GUARD] dropping update for %s (selected: %s)", conversation_id, self.conversation_id)
                return
            fn(*args)
        return gated
