import pytest

from chat.live_query import Tier
from chat.message_stream import load_messages, sort_messages, watch_messages
from models.message import Message, MessageSender


def _texts(messages):
    return [m.text for m in messages]


def test_sort_is_ascending_and_stable():
    def msg(text, ts):
        return Message(text=text, timestamp=ts, sender=MessageSender.VISITOR, conversation_id="c1")

    ordered = sort_messages([msg("three", 3), msg("one", 1), msg("two", 2), msg("two-bis", 2)])
    assert _texts(ordered) == ["one", "two", "two-bis", "three"]


@pytest.mark.asyncio
async def test_snapshot_is_delivered_sorted(store, seed_message):
    seed_message(store, "m3", "c1", "3", 3)
    seed_message(store, "m1", "c1", "1", 1)
    seed_message(store, "m2", "c1", "2", 2)
    seed_message(store, "x", "c2", "elsewhere", 0)
    deliveries = []

    live = watch_messages(store, "c1", deliveries.append)
    await store.settle()

    assert live.tier is Tier.PRIMARY
    assert _texts(deliveries[-1]) == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_late_write_lands_in_logical_order(store, seed_message):
    deliveries = []
    watch_messages(store, "c1", deliveries.append)

    seed_message(store, "a", "c1", "hello", 100)
    seed_message(store, "c", "c1", "anyone there?", 300)
    await store.settle()
    seed_message(store, "b", "c1", "hi", 200)
    await store.settle()

    assert _texts(deliveries[-1]) == ["hello", "hi", "anyone there?"]


@pytest.mark.asyncio
async def test_degraded_tier_still_sorts(indexless_store, seed_message):
    seed_message(indexless_store, "m2", "c1", "second", 20)
    seed_message(indexless_store, "m1", "c1", "first", 10)
    deliveries = []

    live = watch_messages(indexless_store, "c1", deliveries.append)
    await indexless_store.settle()

    assert live.tier is Tier.DEGRADED
    assert _texts(deliveries[-1]) == ["first", "second"]


@pytest.mark.asyncio
async def test_failure_delivers_empty_list(store, seed_message):
    seed_message(store, "m1", "c1", "hello", 1)
    store.unavailable = True
    deliveries = []

    live = watch_messages(store, "c1", deliveries.append)
    await store.settle()

    assert live.tier is Tier.FAILED
    assert deliveries == [[]]


@pytest.mark.asyncio
async def test_nothing_arrives_after_cancel(store, seed_message):
    deliveries = []
    live = watch_messages(store, "c1", deliveries.append)
    await store.settle()
    count = len(deliveries)

    # a snapshot already queued when cancel() runs must not get through either
    store.hold()
    seed_message(store, "m1", "c1", "queued", 1)
    live.cancel()
    store.release()
    seed_message(store, "m2", "c1", "after", 2)
    await store.settle()

    assert len(deliveries) == count
    assert not live.active


@pytest.mark.asyncio
async def test_load_messages_uses_fallback_and_swallows_outage(indexless_store, seed_message):
    seed_message(indexless_store, "m2", "c1", "b", 2)
    seed_message(indexless_store, "m1", "c1", "a", 1)

    assert _texts(await load_messages(indexless_store, "c1")) == ["a", "b"]

    indexless_store.unavailable = True
    assert await load_messages(indexless_store, "c1") == []
