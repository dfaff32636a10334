"""
Document store capability surface consumed by the chat engine.

Only what the engine needs is modelled: equality filters, one ordering
field, a limit, one-shot reads, adds with a store-assigned id, field updates
and live queries that re-deliver the full result set on every change.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from shared.time import utcnow

ASCENDING = "ASCENDING"
DESCENDING = "DESCENDING"


class StoreError(Exception):
    """Base class for document store failures."""


class IndexUnavailableError(StoreError):
    """The store rejected a query because a composite index is missing."""


class StoreUnavailableError(StoreError):
    """The store could not be reached or refused the operation."""


@dataclass(frozen=True)
class QuerySpec:
    collection: str
    filters: Tuple[Tuple[str, Any], ...] = ()  # equality only
    order_by: Optional[str] = None
    direction: str = ASCENDING
    limit: Optional[int] = None

    def where(self, field_name: str, value: Any) -> "QuerySpec":
        return QuerySpec(
            self.collection,
            self.filters + ((field_name, value),),
            self.order_by,
            self.direction,
            self.limit,
        )

    def ordered(self, field_name: str, direction: str = ASCENDING) -> "QuerySpec":
        return QuerySpec(self.collection, self.filters, field_name, direction, self.limit)

    def unordered(self) -> "QuerySpec":
        return QuerySpec(self.collection, self.filters, None, ASCENDING, self.limit)

    def limited(self, limit: Optional[int]) -> "QuerySpec":
        return QuerySpec(self.collection, self.filters, self.order_by, self.direction, limit)

    def without(self, field_name: str) -> "QuerySpec":
        filters = tuple(f for f in self.filters if f[0] != field_name)
        return QuerySpec(self.collection, filters, self.order_by, self.direction, self.limit)

    def describe(self) -> str:
        parts = [f"{k}=={v!r}" for k, v in self.filters]
        if self.order_by:
            parts.append(f"order_by {self.order_by} {self.direction.lower()}")
        if self.limit:
            parts.append(f"limit {self.limit}")
        return f"{self.collection}[{', '.join(parts)}]"


@dataclass
class Document:
    id: str
    data: Dict[str, Any] = field(default_factory=dict)


SnapshotCallback = Callable[[List[Document]], None]
ErrorCallback = Callable[[Exception], None]


class WatchHandle(ABC):
    @abstractmethod
    def unsubscribe(self) -> None:
        """Stop delivery. Must be safe to call more than once."""
        ...


class DocumentStore(ABC):
    """Contract for store backends. Callbacks of `watch` run on the event loop thread."""

    @abstractmethod
    async def query(self, spec: QuerySpec) -> List[Document]:
        """One-shot read. Raise IndexUnavailableError or StoreUnavailableError."""
        ...

    @abstractmethod
    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Create a document with a store-assigned id and return the id."""
        ...

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Update fields of an existing document."""
        ...

    @abstractmethod
    def watch(
        self,
        spec: QuerySpec,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> WatchHandle:
        """Live query delivering the full matching set on every change."""
        ...

    async def probe(self, spec: QuerySpec) -> None:
        """Raise IndexUnavailableError if `spec` cannot be served."""
        await self.query(spec.limited(1))

    def server_timestamp(self) -> Any:
        """Value that the store replaces with its own commit time."""
        return utcnow()
