from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from shared.time import epoch_ms, to_utc

MESSAGES = "messages"


class MessageSender(str, Enum):
    # persisted as "user" for compatibility with existing documents
    VISITOR = "user"
    AGENT = "agent"
    SYSTEM = "system"


class Message(BaseModel):
    id: Optional[str] = None
    text: str
    timestamp: datetime = Field(default=None, validate_default=True)
    sender: MessageSender
    conversation_id: str = Field(alias="conversationId")
    read: bool = False
    user_id: Optional[str] = Field(default=None, alias="userId")
    agent_id: Optional[str] = Field(default=None, alias="agentId")
    agent_name: Optional[str] = Field(default=None, alias="agentName")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("timestamp", mode="before")
    @classmethod
    def _normalize_ts(cls, v: Any) -> datetime:
        return to_utc(v)

    @field_validator("read", mode="before")
    @classmethod
    def _default_unread(cls, v: Any) -> bool:
        return bool(v)

    @property
    def sort_key(self) -> int:
        return epoch_ms(self.timestamp)

    @property
    def is_unread_visitor_message(self) -> bool:
        return self.sender == MessageSender.VISITOR and not self.read

    @classmethod
    def from_doc(cls, doc_id: str, data: Dict[str, Any]) -> "Message":
        fields = {k: v for k, v in data.items() if k != "id"}
        return cls(id=doc_id, **{"text": "", "conversationId": "", "sender": MessageSender.SYSTEM, **fields})

    @classmethod
    def notice(cls, notice_id: str, text: str, conversation_id: str, at: datetime) -> "Message":
        """Locally generated system message; never written to the store."""
        return cls(id=notice_id, text=text, timestamp=at, sender=MessageSender.SYSTEM,
                   conversation_id=conversation_id, read=True)
