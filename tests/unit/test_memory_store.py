"""
Unit tests for the in-memory document store.

Tests cover:
- Connection lifecycle
- Insert, fetch and count
- Single and bulk updates
- Atomic removal
- Unique indexes and injected failures
"""

import asyncio

import pytest
from bson import ObjectId

from docrecords.store.base import (
    DuplicateKeyError,
    StoreAdapter,
    StoreConnectionError,
    StoreWriteError,
    update_operators,
)
from docrecords.store.memory import InMemoryStore


class TestUpdateOperators:
    """Tests for update_operators."""

    def test_omits_empty_unset(self):
        assert update_operators({"a": 1}, []) == {"$set": {"a": 1}}

    def test_omits_empty_set(self):
        assert update_operators({}, ["a"]) == {"$unset": {"a": ""}}

    def test_rejects_empty_update(self):
        with pytest.raises(ValueError):
            update_operators({}, [])


class TestInMemoryStore:
    """Tests for InMemoryStore."""

    @pytest.mark.asyncio
    async def test_connect_close(self):
        """Test connection lifecycle."""
        store = InMemoryStore()
        assert not store.is_connected
        await store.connect()
        assert store.is_connected
        await store.close()
        assert not store.is_connected

    @pytest.mark.asyncio
    async def test_requires_connection(self):
        store = InMemoryStore()
        with pytest.raises(StoreConnectionError):
            await store.insert("books", {"title": "x"})
        with pytest.raises(StoreConnectionError):
            await store.fetch_one("books", {})

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryStore(), StoreAdapter)

    @pytest.mark.asyncio
    async def test_insert_generates_id_first(self, store):
        """Generated _id is the first field of the stored document."""
        doc = await store.insert("books", {"title": "Dune"})
        assert isinstance(doc["_id"], ObjectId)
        assert list(doc) == ["_id", "title"]

    @pytest.mark.asyncio
    async def test_insert_keeps_given_id(self, store):
        oid = ObjectId()
        doc = await store.insert("books", {"_id": oid, "title": "Dune"})
        assert doc["_id"] == oid

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, store):
        oid = ObjectId()
        await store.insert("books", {"_id": oid})
        with pytest.raises(DuplicateKeyError):
            await store.insert("books", {"_id": oid})

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, store):
        doc = await store.insert("books", {"tags": ["a"]})
        doc["tags"].append("b")
        fetched = await store.fetch_one("books", {"_id": doc["_id"]})
        fetched["tags"].append("c")
        assert store.documents("books")[0]["tags"] == ["a"]

    @pytest.mark.asyncio
    async def test_fetch_sort_and_limit(self, store):
        for rank in (3, 1, 2):
            await store.insert("books", {"rank": rank})

        docs = await store.fetch("books", {}, sort=[("rank", -1)], limit=2)

        assert [d["rank"] for d in docs] == [3, 2]

    @pytest.mark.asyncio
    async def test_count(self, store):
        await store.insert("books", {"genre": "sf"})
        await store.insert("books", {"genre": "sf"})
        await store.insert("books", {"genre": "crime"})
        assert await store.count("books", {"genre": "sf"}) == 2
        assert await store.count("other", {}) == 0

    @pytest.mark.asyncio
    async def test_update_by_query_returns_matched(self, store):
        doc = await store.insert("books", {"title": "a", "draft": True})

        matched = await store.update_by_query(
            "books", {"_id": doc["_id"]}, {"title": "b"}, ["draft"]
        )

        assert matched == 1
        assert store.documents("books") == [{"_id": doc["_id"], "title": "b"}]
        assert await store.update_by_query("books", {"title": "zzz"}, {"title": "c"}) == 0

    @pytest.mark.asyncio
    async def test_update_cannot_change_id(self, store):
        doc = await store.insert("books", {"title": "a"})
        with pytest.raises(StoreWriteError):
            await store.update_by_query("books", {"_id": doc["_id"]}, {"_id": ObjectId()})

    @pytest.mark.asyncio
    async def test_update_many_counts_modified(self, store):
        await store.insert("books", {"genre": "sf", "shelf": 1})
        await store.insert("books", {"genre": "sf", "shelf": 2})
        await store.insert("books", {"genre": "crime", "shelf": 1})

        modified = await store.update_many("books", {"genre": "sf"}, {"shelf": 2})

        assert modified == 1
        assert await store.count("books", {"shelf": 2}) == 2

    @pytest.mark.asyncio
    async def test_atomic_remove_matching(self, store):
        doc = await store.insert("books", {"title": "a"})

        removed = await store.atomic_remove_matching("books", {"_id": doc["_id"]})
        again = await store.atomic_remove_matching("books", {"_id": doc["_id"]})

        assert removed == doc
        assert again is None

    @pytest.mark.asyncio
    async def test_concurrent_removal_removes_once(self, store):
        doc = await store.insert("books", {"title": "a"})

        results = await asyncio.gather(
            store.atomic_remove_matching("books", {"_id": doc["_id"]}),
            store.atomic_remove_matching("books", {"_id": doc["_id"]}),
        )

        assert sum(1 for r in results if r is not None) == 1

    @pytest.mark.asyncio
    async def test_remove_many(self, store):
        await store.insert("books", {"genre": "sf"})
        await store.insert("books", {"genre": "sf"})
        await store.insert("books", {"genre": "crime"})

        assert await store.remove_many("books", {"genre": "sf"}) == 2
        assert await store.count("books", {}) == 1


class TestTestingHelpers:
    """Tests for in-memory testing helpers."""

    @pytest.mark.asyncio
    async def test_unique_index(self, store):
        store.add_unique_index("books", ["isbn"])
        await store.insert("books", {"isbn": "1"})
        with pytest.raises(DuplicateKeyError):
            await store.insert("books", {"isbn": "1"})

    @pytest.mark.asyncio
    async def test_unique_index_on_update(self, store):
        store.add_unique_index("books", ["isbn"])
        await store.insert("books", {"isbn": "1"})
        doc = await store.insert("books", {"isbn": "2"})
        with pytest.raises(DuplicateKeyError):
            await store.update_by_query("books", {"_id": doc["_id"]}, {"isbn": "1"})

    @pytest.mark.asyncio
    async def test_unique_index_rejects_existing_duplicates(self, store):
        await store.insert("books", {"isbn": "1"})
        await store.insert("books", {"isbn": "1"})
        with pytest.raises(DuplicateKeyError):
            store.add_unique_index("books", ["isbn"])

    @pytest.mark.asyncio
    async def test_fail_next_write(self, store):
        store.fail_next_write()
        with pytest.raises(StoreWriteError):
            await store.insert("books", {"title": "a"})
        await store.insert("books", {"title": "a"})
        assert len(store.documents("books")) == 1

    @pytest.mark.asyncio
    async def test_write_count(self, store):
        doc = await store.insert("books", {"title": "a"})
        await store.update_by_query("books", {"_id": doc["_id"]}, {"title": "b"})
        await store.atomic_remove_matching("books", {"_id": doc["_id"]})
        assert store.write_count == 3

    @pytest.mark.asyncio
    async def test_close_clears_data(self, store):
        await store.insert("books", {"title": "a"})
        await store.close()
        await store.connect()
        assert store.documents("books") == []
