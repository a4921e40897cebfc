"""
In-memory document store implementation for testing.

This module provides a simple in-memory store backend for:
- Unit tests
- Integration tests
- Local development without a MongoDB server

Invariants:
    - All data is lost on process exit
    - _id is unique per collection, compared field-order sensitively
    - Every call is atomic with respect to other coroutines
    - Returned documents are copies; callers cannot mutate stored state

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with StoreAdapter protocol
    - Keep query semantics aligned with MongoDB (see matching.py)
"""

from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
import logging

from bson import ObjectId

from .base import (
    Document,
    DuplicateKeyError,
    Predicate,
    SortSpec,
    StoreConnectionError,
    StoreError,
    StoreWriteError,
    update_operators,
)
from .matching import compare_values, get_path, matches, set_path, sort_documents, unset_path

logger = logging.getLogger(__name__)


class InMemoryStore:
    """In-memory implementation of StoreAdapter for testing.

    Attributes:
        write_count: Number of successful writes (inserts, updates, removals)

    Thread safety:
        Uses an asyncio lock. Safe to use from multiple coroutines.

    Example:
        >>> store = InMemoryStore()
        >>> await store.connect()
        >>> store.add_unique_index("books", ["isbn"])
        >>> await store.insert("books", {"isbn": "978-3-16-148410-1"})
    """

    def __init__(self) -> None:
        self._collections: Dict[str, List[Document]] = defaultdict(list)
        self._unique_indexes: Dict[str, List[Tuple[str, ...]]] = defaultdict(list)
        self._connected = False
        self._lock = asyncio.Lock()
        self._pending_failure: Optional[StoreError] = None
        self.write_count = 0

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryStore connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._collections.clear()
        self._unique_indexes.clear()
        logger.debug("InMemoryStore closed")

    async def insert(self, collection: str, doc: Mapping[str, Any]) -> Document:
        """Insert a copy of the document, generating an ObjectId _id if absent."""
        async with self._lock:
            self._check_write()
            stored = copy.deepcopy(dict(doc))
            if "_id" not in stored:
                stored = {"_id": ObjectId(), **stored}
            self._check_unique(collection, stored)
            self._collections[collection].append(stored)
            self.write_count += 1
            return copy.deepcopy(stored)

    async def fetch_one(self, collection: str, predicate: Predicate) -> Optional[Document]:
        """Return the first matching document in insertion order."""
        self._check_connected()
        for doc in self._collections.get(collection, []):
            if matches(doc, predicate):
                return copy.deepcopy(doc)
        return None

    async def fetch(
        self,
        collection: str,
        predicate: Predicate,
        sort: Optional[SortSpec] = None,
        limit: int = 0,
    ) -> List[Document]:
        """Return matching documents in sort order."""
        self._check_connected()
        found = [doc for doc in self._collections.get(collection, []) if matches(doc, predicate)]
        if sort:
            found = sort_documents(found, sort)
        if limit:
            found = found[:limit]
        return [copy.deepcopy(doc) for doc in found]

    async def count(self, collection: str, predicate: Predicate) -> int:
        """Count matching documents."""
        self._check_connected()
        return sum(1 for doc in self._collections.get(collection, []) if matches(doc, predicate))

    async def update_by_query(
        self,
        collection: str,
        match: Predicate,
        set_fields: Mapping[str, Any],
        unset_fields: Sequence[str] = (),
    ) -> int:
        """Update the first matching document."""
        ops = update_operators(set_fields, unset_fields)
        async with self._lock:
            self._check_write()
            docs = self._collections.get(collection, [])
            for index, doc in enumerate(docs):
                if matches(doc, match):
                    updated = self._apply_update(doc, ops)
                    self._check_unique(collection, updated, skip=index)
                    docs[index] = updated
                    self.write_count += 1
                    return 1
            return 0

    async def update_many(
        self,
        collection: str,
        match: Predicate,
        set_fields: Mapping[str, Any],
        unset_fields: Sequence[str] = (),
    ) -> int:
        """Update every matching document, returning how many changed."""
        ops = update_operators(set_fields, unset_fields)
        async with self._lock:
            self._check_write()
            docs = self._collections.get(collection, [])
            modified = 0
            for index, doc in enumerate(docs):
                if not matches(doc, match):
                    continue
                updated = self._apply_update(doc, ops)
                self._check_unique(collection, updated, skip=index)
                if updated != doc:
                    docs[index] = updated
                    modified += 1
            self.write_count += 1
            return modified

    async def atomic_remove_matching(
        self, collection: str, predicate: Predicate
    ) -> Optional[Document]:
        """Find and remove the first matching document."""
        async with self._lock:
            self._check_write()
            docs = self._collections.get(collection, [])
            for index, doc in enumerate(docs):
                if matches(doc, predicate):
                    del docs[index]
                    self.write_count += 1
                    return doc
            return None

    async def remove_many(self, collection: str, predicate: Predicate) -> int:
        """Remove every matching document."""
        async with self._lock:
            self._check_write()
            docs = self._collections.get(collection, [])
            kept = [doc for doc in docs if not matches(doc, predicate)]
            removed = len(docs) - len(kept)
            self._collections[collection] = kept
            self.write_count += 1
            return removed

    # =========================================================================
    # Testing helpers
    # =========================================================================

    def add_unique_index(self, collection: str, fields: Sequence[str]) -> None:
        """Declare a unique index over one or more fields.

        Raises:
            DuplicateKeyError: If existing documents already violate it
        """
        key = tuple(fields)
        docs = self._collections[collection]
        for index, doc in enumerate(docs):
            for other in docs[index + 1:]:
                if self._same_key(doc, other, key):
                    raise DuplicateKeyError(
                        f"Cannot build unique index {key} on {collection}: duplicate values"
                    )
        self._unique_indexes[collection].append(key)

    def fail_next_write(self, error: Optional[StoreError] = None) -> None:
        """Make the next write raise the given error (a StoreWriteError by default)."""
        self._pending_failure = error or StoreWriteError("Injected write failure")

    def documents(self, collection: str) -> List[Document]:
        """Copies of all documents in a collection, in insertion order."""
        return copy.deepcopy(self._collections.get(collection, []))

    # =========================================================================
    # Internals
    # =========================================================================

    def _check_connected(self) -> None:
        if not self._connected:
            raise StoreConnectionError("Not connected")

    def _check_write(self) -> None:
        self._check_connected()
        if self._pending_failure is not None:
            error, self._pending_failure = self._pending_failure, None
            raise error

    @staticmethod
    def _same_key(a: Mapping[str, Any], b: Mapping[str, Any], key: Tuple[str, ...]) -> bool:
        return all(compare_values(get_path(a, name), get_path(b, name)) == 0 for name in key)

    def _check_unique(self, collection: str, candidate: Document, skip: int = -1) -> None:
        indexes = [("_id",)] + self._unique_indexes[collection]
        for index, existing in enumerate(self._collections[collection]):
            if index == skip:
                continue
            for key in indexes:
                if self._same_key(existing, candidate, key):
                    raise DuplicateKeyError(
                        f"E11000 duplicate key error collection: {collection} index: {'_'.join(key)}"
                    )

    @staticmethod
    def _apply_update(doc: Document, ops: Mapping[str, Any]) -> Document:
        updated = copy.deepcopy(doc)
        for path, value in ops.get("$set", {}).items():
            if path == "_id" and compare_values(value, doc["_id"]) != 0:
                raise StoreWriteError(
                    "Performing an update on the path '_id' would modify the immutable field '_id'"
                )
            set_path(updated, path, copy.deepcopy(value))
        for path in ops.get("$unset", {}):
            unset_path(updated, path)
        return updated
