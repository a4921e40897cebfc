"""
MongoDB document store implementation.

This module provides the production store backend on top of PyMongo's
native asyncio client. It works with:
- MongoDB (standalone, replica set or sharded)
- Any server speaking the MongoDB wire protocol

Invariants:
    - The client is tz-aware, so dates come back as UTC datetimes
    - Driver exceptions never leave this module untranslated
    - atomic_remove_matching() maps to a single findAndModify command

How to change safely:
    - Test with an actual MongoDB server before deploying (tests/e2e)
    - Keep error translation in _translate_errors()
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping, Optional, Sequence

from pymongo import AsyncMongoClient
from pymongo.errors import (
    ConnectionFailure,
    PyMongoError,
    ServerSelectionTimeoutError,
)
from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError
from pymongo.errors import WriteError as MongoWriteError

from ..config import MongoConfig
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

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors(operation: str, collection: str) -> Iterator[None]:
    """Convert PyMongo exceptions into the store error hierarchy."""
    try:
        yield
    except MongoDuplicateKeyError as e:
        raise DuplicateKeyError(f"{operation} on {collection} violated a unique index: {e}") from e
    except MongoWriteError as e:
        raise StoreWriteError(f"{operation} on {collection} was rejected: {e}") from e
    except (ConnectionFailure, ServerSelectionTimeoutError) as e:
        raise StoreConnectionError(f"{operation} on {collection} could not reach MongoDB: {e}") from e
    except PyMongoError as e:
        raise StoreError(f"{operation} on {collection} failed: {e}") from e


class MongoStore:
    """MongoDB implementation of StoreAdapter protocol.

    Attributes:
        config: MongoDB configuration

    Example:
        >>> store = MongoStore(MongoConfig(uri="mongodb://localhost:27017"))
        >>> await store.connect()
        >>> await store.insert("books", {"isbn": "978-3-16-148410-1"})
    """

    def __init__(self, config: MongoConfig) -> None:
        self.config = config
        self._client: Optional[AsyncMongoClient] = None
        self._db: Any = None

    @property
    def is_connected(self) -> bool:
        """Whether connect() succeeded and close() has not been called."""
        return self._client is not None

    async def connect(self) -> None:
        """Create the client and verify the server answers a ping.

        Raises:
            StoreConnectionError: If the server cannot be reached
        """
        if self._client is not None:
            return

        client: AsyncMongoClient = AsyncMongoClient(
            self.config.uri,
            tz_aware=True,
            serverSelectionTimeoutMS=self.config.server_selection_timeout_ms,
            appname=self.config.app_name,
        )
        try:
            await client.admin.command("ping")
        except PyMongoError as e:
            await client.close()
            raise StoreConnectionError(f"Failed to connect to MongoDB: {e}") from e

        self._client = client
        self._db = client[self.config.database]
        logger.info(
            "Connected to MongoDB",
            extra={"uri": self.config.redacted_uri, "database": self.config.database},
        )

    async def close(self) -> None:
        """Close the client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._db = None
            logger.info("MongoDB connection closed")

    def _collection(self, name: str) -> Any:
        if self._db is None:
            raise StoreConnectionError("Not connected")
        return self._db[name]

    async def insert(self, collection: str, doc: Mapping[str, Any]) -> Document:
        """Insert one document, returning it with its _id."""
        stored = dict(doc)
        with _translate_errors("insert", collection):
            result = await self._collection(collection).insert_one(stored)
        stored["_id"] = result.inserted_id
        return stored

    async def fetch_one(self, collection: str, predicate: Predicate) -> Optional[Document]:
        """Return one matching document in natural order."""
        with _translate_errors("fetch_one", collection):
            return await self._collection(collection).find_one(dict(predicate))

    async def fetch(
        self,
        collection: str,
        predicate: Predicate,
        sort: Optional[SortSpec] = None,
        limit: int = 0,
    ) -> List[Document]:
        """Return matching documents in sort order."""
        with _translate_errors("fetch", collection):
            cursor = self._collection(collection).find(
                dict(predicate),
                sort=list(sort) if sort else None,
                limit=limit,
            )
            return [doc async for doc in cursor]

    async def count(self, collection: str, predicate: Predicate) -> int:
        """Count matching documents."""
        with _translate_errors("count", collection):
            return await self._collection(collection).count_documents(dict(predicate))

    async def update_by_query(
        self,
        collection: str,
        match: Predicate,
        set_fields: Mapping[str, Any],
        unset_fields: Sequence[str] = (),
    ) -> int:
        """Update the first matching document, returning the matched count."""
        ops = update_operators(set_fields, unset_fields)
        with _translate_errors("update", collection):
            result = await self._collection(collection).update_one(dict(match), ops)
        return result.matched_count

    async def update_many(
        self,
        collection: str,
        match: Predicate,
        set_fields: Mapping[str, Any],
        unset_fields: Sequence[str] = (),
    ) -> int:
        """Update every matching document, returning the modified count."""
        ops = update_operators(set_fields, unset_fields)
        with _translate_errors("update_many", collection):
            result = await self._collection(collection).update_many(dict(match), ops)
        return result.modified_count

    async def atomic_remove_matching(
        self, collection: str, predicate: Predicate
    ) -> Optional[Document]:
        """Find and remove one matching document with findAndModify."""
        with _translate_errors("find_one_and_delete", collection):
            return await self._collection(collection).find_one_and_delete(dict(predicate))

    async def remove_many(self, collection: str, predicate: Predicate) -> int:
        """Remove every matching document."""
        with _translate_errors("delete_many", collection):
            result = await self._collection(collection).delete_many(dict(predicate))
        return result.deleted_count
