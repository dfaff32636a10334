import logging

from shared.settings import STORE_BACKEND
from store.document_store import DocumentStore

logger = logging.getLogger(__name__)

_store: DocumentStore | None = None


def get_store() -> DocumentStore:
    """Process-wide store selected by STORE_BACKEND."""
    global _store
    if _store is not None:
        return _store
    if STORE_BACKEND == "memory":
        from store.memory_store import MemoryDocumentStore
        _store = MemoryDocumentStore()
    elif STORE_BACKEND == "firestore":
        from store.firestore_store import FirestoreDocumentStore
        _store = FirestoreDocumentStore()
    else:
        raise ValueError(f"Unknown STORE_BACKEND: {STORE_BACKEND}")
    logger.info("[STORE] using %s backend", STORE_BACKEND)
    return _store


def set_store(store: DocumentStore | None) -> None:
    global _store
    _store = store
