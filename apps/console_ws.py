import asyncio
import logging
from contextlib import suppress
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from apps.chat_router import store_dep
from chat.agent_console import AgentConsole
from chat.errors import ChatError
from chat.identity import ParticipantKind, device_identity
from store.document_store import DocumentStore

logger = logging.getLogger(__name__)

console_router = APIRouter()


def console_payload(console: AgentConsole, kind: str) -> Dict[str, Any]:
    if kind == "conversations":
        return {
            "type": "conversations",
            "conversations": [c.model_dump(mode="json") for c in console.conversations],
        }
    if kind == "unread":
        return {
            "type": "unread",
            "counts": {cid: console.unread_count(cid) for cid in console.unread_counts},
            "total": console.total_unread(),
        }
    return {
        "type": "messages",
        "conversation_id": console.selected,
        "messages": [m.model_dump(mode="json") for m in console.messages],
    }


async def _handle(console: AgentConsole, msg: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    kind = msg.get("type")
    if kind == "select":
        console.select(msg.get("conversation_id") or None)
        return None
    if kind == "send":
        if msg.get("agent_name"):
            console.set_agent_name(msg["agent_name"])
        try:
            message_id = await console.send(msg.get("text") or "")
        except ChatError as e:
            return {"type": "error", "code": type(e).__name__, "message": str(e)}
        return {"type": "sent", "message_id": message_id}
    return {"type": "error", "code": "UNKNOWN_TYPE", "message": f"unknown message type {kind!r}"}


@console_router.websocket("/ws/console")
async def console_socket(
    websocket: WebSocket,
    agent_id: Optional[str] = None,
    agent_name: Optional[str] = None,
    store: DocumentStore = Depends(store_dep),
):
    await websocket.accept()
    if not agent_id or not agent_name:
        identity = device_identity()
        agent_id = agent_id or identity.resolve(ParticipantKind.AGENT)
        agent_name = agent_name or identity.display_name()
    changes: asyncio.Queue = asyncio.Queue()
    console = AgentConsole(store, agent_id, agent_name, on_change=changes.put_nowait)
    logger.info("[CONSOLE] agent %s connected", agent_id)

    async def pump() -> None:
        while True:
            kind = await changes.get()
            await websocket.send_json(console_payload(console, kind))

    pump_task = asyncio.create_task(pump(), name=f"console_pump:{agent_id}")
    console.start()
    try:
        while True:
            msg = await websocket.receive_json()
            if not isinstance(msg, dict):
                continue
            reply = await _handle(console, msg)
            if reply is not None:
                await websocket.send_json(reply)
    except WebSocketDisconnect:
        logger.info("[CONSOLE] agent %s disconnected", agent_id)
    finally:
        try:
            console.stop()
            pump_task.cancel()
            with suppress(asyncio.CancelledError):
                await pump_task
        except Exception:
            # the pump dies with the send error when the client left mid-push
            logger.warning("[CONSOLE] push to agent %s failed", agent_id, exc_info=True)
        finally:
            await console.reconciler.drain()
