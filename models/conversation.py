from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from shared.time import to_utc

CONVERSATIONS = "conversations"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class Conversation(BaseModel):
    id: str
    participant_id: str = Field(alias="userId")
    status: ConversationStatus = ConversationStatus.ACTIVE
    assigned_agent_id: Optional[str] = Field(default=None, alias="assignedAgentId")
    assigned_agent_name: Optional[str] = Field(default=None, alias="assignedAgentName")
    created_at: datetime = Field(default=None, alias="createdAt", validate_default=True)
    updated_at: datetime = Field(default=None, alias="updatedAt", validate_default=True)

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _normalize_ts(cls, v: Any) -> datetime:
        return to_utc(v)

    @classmethod
    def from_doc(cls, doc_id: str, data: Dict[str, Any]) -> "Conversation":
        fields = {k: v for k, v in data.items() if k != "id"}
        return cls(id=doc_id, **{"userId": "", **fields})
