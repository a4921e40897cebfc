"""
Base protocol and types for the document store abstraction.

This module defines the StoreAdapter protocol that all backends must
implement, along with the store error hierarchy and the sort spec types.

The engine only ever talks to a store through this protocol. Raw driver
exceptions must be translated into StoreError subclasses by the backend
so the lifecycle engine can turn them into structured outcomes.

Invariants:
    - insert() returns the stored document including its _id
    - update_by_query()/update_many() never receive two empty field sets
    - atomic_remove_matching() removes at most one document in one request
    - fetch() respects sort order and limit

How to change safely:
    - Protocol changes require updating all implementations
    - Keep error translation in the backends, never in the engine
"""

from __future__ import annotations

from abc import abstractmethod
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)
import logging

if TYPE_CHECKING:
    from ..config import RecordsConfig

logger = logging.getLogger(__name__)

ASCENDING = 1
DESCENDING = -1

Document = Dict[str, Any]
Predicate = Mapping[str, Any]
SortSpec = Sequence[Tuple[str, int]]


class StoreError(Exception):
    """Base exception for store operations."""
    pass


class StoreConnectionError(StoreError):
    """Connection to the store backend failed."""
    pass


class StoreWriteError(StoreError):
    """The store rejected a write."""
    pass


class DuplicateKeyError(StoreWriteError):
    """A write violated a unique index."""
    pass


def update_operators(
    set_fields: Mapping[str, Any],
    unset_fields: Sequence[str],
) -> Dict[str, Any]:
    """Build update operators, omitting whichever side is empty.

    Raises:
        ValueError: If both field sets are empty
    """
    ops: Dict[str, Any] = {}
    if set_fields:
        ops["$set"] = dict(set_fields)
    if unset_fields:
        ops["$unset"] = {name: "" for name in unset_fields}
    if not ops:
        raise ValueError("An update needs at least one field to set or unset")
    return ops


@runtime_checkable
class StoreAdapter(Protocol):
    """Protocol for document store backends.

    Example:
        >>> store = MongoStore(config.mongo)
        >>> await store.connect()
        >>> doc = await store.insert("books", {"isbn": "978-3-16-148410-1"})
        >>> await store.fetch_one("books", {"_id": doc["_id"]})
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the backend.

        Raises:
            StoreConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the backend."""
        ...

    @abstractmethod
    async def insert(self, collection: str, doc: Mapping[str, Any]) -> Document:
        """Insert one document.

        Returns:
            The inserted document with its generated _id

        Raises:
            DuplicateKeyError: If a unique index is violated
            StoreError: For other failures
        """
        ...

    @abstractmethod
    async def fetch_one(self, collection: str, predicate: Predicate) -> Optional[Document]:
        """Return one matching document in natural order, or None."""
        ...

    @abstractmethod
    async def fetch(
        self,
        collection: str,
        predicate: Predicate,
        sort: Optional[SortSpec] = None,
        limit: int = 0,
    ) -> List[Document]:
        """Return matching documents in sort order (limit 0 means no limit)."""
        ...

    @abstractmethod
    async def count(self, collection: str, predicate: Predicate) -> int:
        """Count matching documents."""
        ...

    @abstractmethod
    async def update_by_query(
        self,
        collection: str,
        match: Predicate,
        set_fields: Mapping[str, Any],
        unset_fields: Sequence[str] = (),
    ) -> int:
        """Update the first matching document.

        Returns:
            Number of matched documents (0 or 1)

        Raises:
            ValueError: If both set_fields and unset_fields are empty
            StoreWriteError: If the store rejects the write
        """
        ...

    @abstractmethod
    async def update_many(
        self,
        collection: str,
        match: Predicate,
        set_fields: Mapping[str, Any],
        unset_fields: Sequence[str] = (),
    ) -> int:
        """Update every matching document, returning the modified count."""
        ...

    @abstractmethod
    async def atomic_remove_matching(
        self, collection: str, predicate: Predicate
    ) -> Optional[Document]:
        """Find and remove one matching document in a single atomic request."""
        ...

    @abstractmethod
    async def remove_many(self, collection: str, predicate: Predicate) -> int:
        """Remove every matching document, returning the deleted count."""
        ...


def create_store(config: "RecordsConfig") -> StoreAdapter:
    """Factory function to create a store from configuration.

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .memory import InMemoryStore
    from .mongo import MongoStore

    if config.store_backend == StoreBackend.MONGO:
        return MongoStore(config.mongo)
    elif config.store_backend == StoreBackend.MEMORY:
        return InMemoryStore()
    else:
        raise ValueError(f"Unsupported store backend: {config.store_backend}")
