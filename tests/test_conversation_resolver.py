import pytest

from chat.conversation_resolver import ConversationResolver, is_placeholder, make_placeholder_id
from models.conversation import CONVERSATIONS


def test_placeholder_ids():
    assert is_placeholder(make_placeholder_id())
    assert is_placeholder(None)
    assert is_placeholder("")
    assert not is_placeholder("abc123")


@pytest.mark.asyncio
async def test_creates_once_then_reuses(store):
    resolver = ConversationResolver(store)

    first = await resolver.resolve_conversation("user_1")
    second = await resolver.resolve_conversation("user_1")

    assert first == second
    assert not is_placeholder(first)
    docs = store.documents(CONVERSATIONS)
    assert list(docs) == [first]
    assert docs[first]["userId"] == "user_1"
    assert docs[first]["status"] == "active"
    assert docs[first]["createdAt"] == docs[first]["updatedAt"]


@pytest.mark.asyncio
async def test_picks_newest_active_conversation(store, seed_conversation):
    seed_conversation(store, "old", created=1_000)
    seed_conversation(store, "new", created=5_000)
    seed_conversation(store, "closed", status="closed", created=9_000)
    seed_conversation(store, "other", participant_id="user_2", created=9_000)

    assert await ConversationResolver(store).resolve_conversation("user_1") == "new"


@pytest.mark.asyncio
async def test_falls_back_when_sorted_lookup_needs_an_index(indexless_store, seed_conversation):
    seed_conversation(indexless_store, "old", created=1_000)
    seed_conversation(indexless_store, "new", created=5_000)

    resolver = ConversationResolver(indexless_store)

    assert await resolver.resolve_conversation("user_1") == "new"
    assert len(indexless_store.documents(CONVERSATIONS)) == 2


@pytest.mark.asyncio
async def test_fallback_creates_when_nothing_found(indexless_store):
    conversation_id = await ConversationResolver(indexless_store).resolve_conversation("user_9")
    assert not is_placeholder(conversation_id)
    assert indexless_store.documents(CONVERSATIONS)[conversation_id]["userId"] == "user_9"


@pytest.mark.asyncio
async def test_outage_yields_placeholder(store):
    store.unavailable = True

    conversation_id = await ConversationResolver(store).resolve_conversation("user_1")

    assert is_placeholder(conversation_id)
    assert conversation_id.startswith("temp_")
    store.unavailable = False
    assert store.documents(CONVERSATIONS) == {}


@pytest.mark.asyncio
async def test_participant_is_required(store):
    with pytest.raises(ValueError):
        await ConversationResolver(store).resolve_conversation("")
