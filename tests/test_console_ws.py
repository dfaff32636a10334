import asyncio

import pytest
from fastapi import WebSocketDisconnect

from apps.console_ws import console_socket
from chat.read_reconciler import ReadReconciler


class ClosedMidPushSocket:
    """Client that is already gone: pushes fail and the next receive reports the disconnect."""

    def __init__(self):
        self.accepted = False

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        raise RuntimeError("Cannot call send once a close message has been sent")

    async def receive_json(self):
        await asyncio.sleep(0.01)
        raise WebSocketDisconnect()


@pytest.mark.asyncio
async def test_failed_push_still_drains_read_marks(store, seed_conversation, monkeypatch):
    seed_conversation(store, "c1")
    drained = []

    async def recording_drain(self):
        drained.append(self)

    monkeypatch.setattr(ReadReconciler, "drain", recording_drain)
    socket = ClosedMidPushSocket()

    await console_socket(socket, agent_id="agent_1", agent_name="Dana", store=store)

    assert socket.accepted
    assert len(drained) == 1
    assert store._watches == set()
