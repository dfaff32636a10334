from datetime import timedelta

import pytest

from chat.errors import EmptyMessageError, PlaceholderConversationError, SendError
from chat.messaging import MessagingService
from models.conversation import CONVERSATIONS
from models.message import MESSAGES
from shared.time import EPOCH, set_fake_utcnow


@pytest.mark.asyncio
async def test_visitor_message_is_stored_unread(store, seed_conversation):
    seed_conversation(store, "c1", created=1_000)
    set_fake_utcnow(EPOCH + timedelta(milliseconds=9_000))

    message_id = await MessagingService(store).send_visitor_message("hello", "c1", "user_1")

    doc = store.documents(MESSAGES)[message_id]
    assert doc["text"] == "hello"
    assert doc["sender"] == "user"
    assert doc["userId"] == "user_1"
    assert doc["conversationId"] == "c1"
    assert doc["read"] is False
    assert store.documents(CONVERSATIONS)["c1"]["updatedAt"] == EPOCH + timedelta(milliseconds=9_000)


@pytest.mark.asyncio
async def test_anonymous_visitor(store, seed_conversation):
    seed_conversation(store, "c1")
    message_id = await MessagingService(store).send_visitor_message("hello", "c1")
    assert store.documents(MESSAGES)[message_id]["userId"] == "anonymous"


@pytest.mark.asyncio
async def test_agent_message_assigns_the_conversation(store, seed_conversation):
    seed_conversation(store, "c1")

    message_id = await MessagingService(store).send_agent_message("How can I help?", "c1", "agent_7", "Dana")

    doc = store.documents(MESSAGES)[message_id]
    assert doc["sender"] == "agent"
    assert doc["agentId"] == "agent_7"
    assert doc["agentName"] == "Dana"
    conversation = store.documents(CONVERSATIONS)["c1"]
    assert conversation["assignedAgentId"] == "agent_7"
    assert conversation["assignedAgentName"] == "Dana"


@pytest.mark.asyncio
async def test_placeholder_conversation_is_refused(store):
    with pytest.raises(PlaceholderConversationError):
        await MessagingService(store).send_visitor_message("hello", "temp_123")
    with pytest.raises(PlaceholderConversationError):
        await MessagingService(store).send_agent_message("hello", "", "agent_1", "Dana")
    assert store.documents(MESSAGES) == {}


@pytest.mark.asyncio
async def test_blank_text_is_refused(store, seed_conversation):
    seed_conversation(store, "c1")
    with pytest.raises(EmptyMessageError):
        await MessagingService(store).send_visitor_message("   ", "c1")
    assert store.documents(MESSAGES) == {}


@pytest.mark.asyncio
async def test_store_failure_becomes_send_error(store, seed_conversation):
    seed_conversation(store, "c1")
    store.unavailable = True
    with pytest.raises(SendError):
        await MessagingService(store).send_visitor_message("hello", "c1")


@pytest.mark.asyncio
async def test_message_survives_failed_conversation_update(store):
    # no conversation document, so the follow-up update fails
    message_id = await MessagingService(store).send_visitor_message("hello", "c-missing")
    assert message_id in store.documents(MESSAGES)


@pytest.mark.asyncio
async def test_get_messages(indexless_store, seed_message):
    seed_message(indexless_store, "m2", "c1", "second", 2)
    seed_message(indexless_store, "m1", "c1", "first", 1)
    service = MessagingService(indexless_store)

    assert [m.text for m in await service.get_messages("c1")] == ["first", "second"]
    assert await service.get_messages("temp_1") == []
