import os

# must be set before shared.settings / the langfuse client are imported
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LANGFUSE_TRACING_ENABLED", "false")

from datetime import datetime, timedelta

import pytest

from models.conversation import CONVERSATIONS
from models.faq import FAQS
from models.message import MESSAGES
from shared.time import EPOCH, clear_fake_utcnow
from store.memory_store import MemoryDocumentStore


def at_ms(ms: int) -> datetime:
    return EPOCH + timedelta(milliseconds=ms)


@pytest.fixture(autouse=True)
def _real_clock():
    yield
    clear_fake_utcnow()


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def indexless_store():
    """Rejects every query that combines equality filters with an ordering."""
    return MemoryDocumentStore.without_composite_indexes()


@pytest.fixture
def seed_conversation():
    def _seed(store, conversation_id, participant_id="user_1", *, status="active", created=1_000, updated=None):
        store.put(CONVERSATIONS, conversation_id, {
            "userId": participant_id,
            "status": status,
            "createdAt": at_ms(created),
            "updatedAt": at_ms(updated if updated is not None else created),
        })
        return conversation_id
    return _seed


@pytest.fixture
def seed_message():
    def _seed(store, message_id, conversation_id, text, ts, *, sender="user", read=False, **extra):
        store.put(MESSAGES, message_id, {
            "text": text,
            "timestamp": at_ms(ts),
            "sender": sender,
            "conversationId": conversation_id,
            "read": read,
            **extra,
        })
        return message_id
    return _seed


@pytest.fixture
def seed_faqs():
    def _seed(store):
        rows = [
            ("f1", "How do I reset my password?", "Use the forgot password link on the login page.", ["password", "login"]),
            ("f2", "What are your opening hours?", "We are open 9 to 5 on weekdays.", ["hours", "schedule"]),
            ("f3", "Can I get a refund?", "Refunds are available within 30 days.", ["refund", "money"]),
            ("f4", "Do you ship abroad?", "We ship to most countries.", ["shipping", "international"]),
        ]
        for faq_id, question, answer, keywords in rows:
            store.put(FAQS, faq_id, {"question": question, "answer": answer, "keywords": keywords})
    return _seed
