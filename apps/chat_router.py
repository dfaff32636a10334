import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from chat.conversation_resolver import ConversationResolver, is_placeholder
from chat.errors import EmptyMessageError, PlaceholderConversationError, SendError
from chat.messaging import MessagingService
from chat.read_reconciler import ReadReconciler
from chat.unread_counter import unread_count
from store.backend import get_store
from store.document_store import DocumentStore
from store.faq_store import FAQStore

logger = logging.getLogger(__name__)

chat_router = APIRouter()

# Error codes
ERROR_PLACEHOLDER = "PLACEHOLDER_CONVERSATION"
ERROR_EMPTY_MESSAGE = "EMPTY_MESSAGE"
ERROR_SEND = "SEND_ERROR"
ERROR_INVALID_PARTICIPANT = "INVALID_PARTICIPANT_ID"


def _err(status: int, code: str, message: str, extra: dict | None = None) -> JSONResponse:
    payload = {"ok": False, "error": {"code": code, "message": message}}
    if extra:
        payload["error"].update(extra)
    return JSONResponse(status_code=status, content=payload)


def store_dep() -> DocumentStore:
    return get_store()


def reconciler_dep(request: Request, store: DocumentStore = Depends(store_dep)) -> ReadReconciler:
    # one reconciler per app so in-flight marks can be drained on shutdown
    reconciler = getattr(request.app.state, "reconciler", None)
    if reconciler is None or reconciler.messages.store is not store:
        reconciler = ReadReconciler(store)
        request.app.state.reconciler = reconciler
    return reconciler


# --- Payloads --------------------------------------------------------------------

class ResolveRequest(BaseModel):
    participant_id: str = ""


class VisitorMessageRequest(BaseModel):
    text: str = ""
    participant_id: Optional[str] = None


class AgentMessageRequest(BaseModel):
    text: str = ""
    agent_id: str
    agent_name: str = "Support Agent"


class MarkReadRequest(BaseModel):
    message_ids: List[str] = Field(default_factory=list)


# --- FAQs ------------------------------------------------------------------------

@chat_router.get("/faqs")
async def list_faqs(store: DocumentStore = Depends(store_dep)):
    faqs = await FAQStore(store).get_all_faqs()
    return {"faqs": [f.model_dump() for f in faqs]}


@chat_router.get("/faqs/search")
async def search_faqs(q: str = "", store: DocumentStore = Depends(store_dep)):
    faqs = await FAQStore(store).search_faqs(q)
    return {"faqs": [f.model_dump() for f in faqs]}


# --- Conversations -----------------------------------------------------------------

@chat_router.post("/conversations/resolve")
async def resolve_conversation(body: ResolveRequest, store: DocumentStore = Depends(store_dep)):
    if not body.participant_id.strip():
        return _err(422, ERROR_INVALID_PARTICIPANT, "participant_id is required")
    conversation_id = await ConversationResolver(store).resolve_conversation(body.participant_id)
    return {"conversation_id": conversation_id, "placeholder": is_placeholder(conversation_id)}


@chat_router.get("/conversations/{conversation_id}/messages")
async def get_messages(conversation_id: str, store: DocumentStore = Depends(store_dep)):
    messages = await MessagingService(store).get_messages(conversation_id)
    return {
        "conversation_id": conversation_id,
        "messages": [m.model_dump(mode="json") for m in messages],
    }


@chat_router.get("/conversations/{conversation_id}/unread")
async def get_unread(conversation_id: str, store: DocumentStore = Depends(store_dep)):
    return {"conversation_id": conversation_id, "unread": await unread_count(store, conversation_id)}


async def _send(send, conversation_id: str):
    try:
        message_id = await send()
    except PlaceholderConversationError:
        return _err(409, ERROR_PLACEHOLDER, "conversation is not created yet, resolve it again",
                    {"conversation_id": conversation_id})
    except EmptyMessageError:
        return _err(422, ERROR_EMPTY_MESSAGE, "message text is empty")
    except SendError as e:
        return _err(502, ERROR_SEND, str(e), {"conversation_id": conversation_id})
    return {"message_id": message_id}


@chat_router.post("/conversations/{conversation_id}/messages")
async def send_visitor_message(
    conversation_id: str,
    body: VisitorMessageRequest,
    store: DocumentStore = Depends(store_dep),
):
    messaging = MessagingService(store)
    return await _send(
        lambda: messaging.send_visitor_message(body.text, conversation_id, body.participant_id),
        conversation_id,
    )


@chat_router.post("/conversations/{conversation_id}/agent-messages")
async def send_agent_message(
    conversation_id: str,
    body: AgentMessageRequest,
    store: DocumentStore = Depends(store_dep),
):
    messaging = MessagingService(store)
    return await _send(
        lambda: messaging.send_agent_message(body.text, conversation_id, body.agent_id, body.agent_name),
        conversation_id,
    )


# --- Read state ------------------------------------------------------------------

@chat_router.post("/messages/read", status_code=202)
async def mark_read(body: MarkReadRequest, reconciler: ReadReconciler = Depends(reconciler_dep)):
    reconciler.mark_read(body.message_ids)
    return {"accepted": len([i for i in body.message_ids if i])}
