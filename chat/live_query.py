"""
Two-tier live subscriptions.

A LiveQuery declares a primary query and, optionally, a degraded one that
needs no composite index. It starts on the primary tier; if the store reports
the index as unavailable it switches to the degraded tier once. Any other
failure, or a failure of the degraded tier, ends the subscription and calls
`on_failure` so the consumer can publish an empty view.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List, Optional

from store.document_store import (
    Document,
    DocumentStore,
    IndexUnavailableError,
    QuerySpec,
    WatchHandle,
)

logger = logging.getLogger(__name__)


class Tier(str, Enum):
    PRIMARY = "primary"
    DEGRADED = "degraded"
    FAILED = "failed"


class LiveQuery:
    def __init__(
        self,
        store: DocumentStore,
        *,
        name: str,
        primary: QuerySpec,
        degraded: Optional[QuerySpec],
        on_docs: Callable[[List[Document]], None],
        on_failure: Callable[[], None],
    ):
        self.store = store
        self.name = name
        self.primary = primary
        self.degraded = degraded
        self.on_docs = on_docs
        self.on_failure = on_failure
        self.tier: Optional[Tier] = None
        self.cancelled = False
        self._handle: Optional[WatchHandle] = None

    def start(self) -> "LiveQuery":
        if self.tier is not None:
            raise RuntimeError(f"{self.name} already started")
        self._open(Tier.PRIMARY, self.primary)
        return self

    def cancel(self) -> None:
        """Detach now; nothing is delivered after this returns."""
        self.cancelled = True
        if self._handle is not None:
            self._handle.unsubscribe()
            self._handle = None

    @property
    def active(self) -> bool:
        return not self.cancelled and self.tier in (Tier.PRIMARY, Tier.DEGRADED)

    def _open(self, tier: Tier, spec: QuerySpec) -> None:
        self.tier = tier
        logger.debug("[LIVE] %s subscribing on %s tier: %s", self.name, tier.value, spec.describe())
        self._handle = self.store.watch(spec, self._snapshot_cb(tier), self._error_cb(tier))

    def _snapshot_cb(self, tier: Tier) -> Callable[[List[Document]], None]:
        def on_snapshot(docs: List[Document]) -> None:
            if self.cancelled or self.tier is not tier:
                return
            self.on_docs(docs)
        return on_snapshot

    def _error_cb(self, tier: Tier) -> Callable[[Exception], None]:
        def on_error(exc: Exception) -> None:
            if self.cancelled or self.tier is not tier:
                return
            if self._handle is not None:
                self._handle.unsubscribe()
                self._handle = None

            if tier is Tier.PRIMARY and isinstance(exc, IndexUnavailableError) and self.degraded is not None:
                logger.warning("[LIVE] %s: index unavailable, falling back to %s", self.name, self.degraded.describe())
                self._open(Tier.DEGRADED, self.degraded)
                return

            logger.error("[LIVE] %s subscription failed on %s tier: %s", self.name, tier.value, exc)
            self.tier = Tier.FAILED
            self.on_failure()
        return on_error
