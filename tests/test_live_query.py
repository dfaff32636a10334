import pytest

from chat.live_query import LiveQuery, Tier
from store.document_store import QuerySpec
from store.memory_store import MemoryDocumentStore


def _live(store, calls, degraded=True):
    spec = QuerySpec("items").where("kind", "a").ordered("rank")
    return LiveQuery(
        store,
        name="items",
        primary=spec,
        degraded=spec.unordered() if degraded else None,
        on_docs=lambda docs: calls.append(sorted(d.id for d in docs)),
        on_failure=lambda: calls.append("failed"),
    )


@pytest.mark.asyncio
async def test_primary_tier_when_query_is_served():
    store = MemoryDocumentStore()
    store.put("items", "i1", {"kind": "a", "rank": 1})
    calls = []

    live = _live(store, calls).start()
    await store.settle()

    assert live.tier is Tier.PRIMARY
    assert live.active
    assert calls == [["i1"]]


@pytest.mark.asyncio
async def test_switches_to_degraded_tier_once():
    store = MemoryDocumentStore.without_composite_indexes()
    store.put("items", "i1", {"kind": "a", "rank": 1})
    calls = []

    live = _live(store, calls).start()
    await store.settle()

    assert live.tier is Tier.DEGRADED
    assert calls == [["i1"]]

    store.put("items", "i2", {"kind": "a"})
    await store.settle()
    assert calls[-1] == ["i1", "i2"]


@pytest.mark.asyncio
async def test_index_error_without_degraded_tier_fails():
    store = MemoryDocumentStore.without_composite_indexes()
    calls = []

    live = _live(store, calls, degraded=False).start()
    await store.settle()

    assert live.tier is Tier.FAILED
    assert calls == ["failed"]


@pytest.mark.asyncio
async def test_degraded_tier_failure_ends_subscription():
    store = MemoryDocumentStore(reject_query=lambda spec: bool(spec.filters))
    calls = []

    live = _live(store, calls).start()
    await store.settle()

    assert live.tier is Tier.FAILED
    assert calls == ["failed"]
    assert not live.active


@pytest.mark.asyncio
async def test_start_twice_is_an_error():
    live = _live(MemoryDocumentStore(), []).start()
    with pytest.raises(RuntimeError):
        live.start()
    live.cancel()
