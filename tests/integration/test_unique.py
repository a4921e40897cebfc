"""
Integration tests for uniqueness checks.
"""

import pytest
from bson import ObjectId

from docrecords.lifecycle import create, is_unique, unique_validator, update
from docrecords.model import EntityDescriptor, ModelComponent

ISBN_1 = "978-3-16-148410-1"
ISBN_2 = "978-3-16-148410-2"


def make_model(store, clock, **entity_options):
    return ModelComponent(
        store=store,
        entity=EntityDescriptor(collection="books", **entity_options),
        clock=clock,
    )


class TestIsUnique:
    """Tests for is_unique()."""

    @pytest.mark.asyncio
    async def test_existing_value_is_not_unique(self, store, clock):
        model = make_model(store, clock)
        _, book = await create(model, {"isbn": ISBN_1})

        assert not await is_unique(model, {"isbn": ISBN_1}, ["isbn"])
        assert await is_unique(model, {"isbn": ISBN_2}, ["isbn"])

    @pytest.mark.asyncio
    async def test_record_does_not_conflict_with_itself(self, store, clock):
        model = make_model(store, clock)
        _, book = await create(model, {"isbn": ISBN_1})

        assert await is_unique(model, book, ["isbn"])
        assert await is_unique(model, {**book, "_id": str(book["_id"])}, ["isbn"])
        assert not await is_unique(model, {**book, "_id": ObjectId()}, ["isbn"])

    @pytest.mark.asyncio
    async def test_all_fields_must_match(self, store, clock):
        model = make_model(store, clock)
        await create(model, {"isbn": ISBN_1, "edition": 1})

        assert await is_unique(model, {"isbn": ISBN_1, "edition": 2}, ["isbn", "edition"])
        assert not await is_unique(model, {"isbn": ISBN_1, "edition": 1}, ["isbn", "edition"])

    @pytest.mark.asyncio
    async def test_missing_field_matches_missing(self, store, clock):
        model = make_model(store, clock)
        await create(model, {"title": "Dune"})

        assert not await is_unique(model, {"title": "Emma"}, ["isbn"])


class TestUniqueValidator:
    """Tests for unique_validator()."""

    def test_requires_fields(self):
        with pytest.raises(ValueError):
            unique_validator()

    @pytest.mark.asyncio
    async def test_create_reports_taken(self, store, clock):
        model = make_model(store, clock, validator=unique_validator("isbn"))

        first = await create(model, {"isbn": ISBN_1})
        second = await create(model, {"isbn": ISBN_1})

        assert first.ok
        assert second == (False, {"isbn": ["taken"]})

    @pytest.mark.asyncio
    async def test_update_ignores_own_record(self, store, clock):
        model = make_model(store, clock, validator=unique_validator("isbn", message="in use"))
        _, book1 = await create(model, {"isbn": ISBN_1, "title": "a"})
        await create(model, {"isbn": ISBN_2})

        assert (await update(model, book1["_id"], {"title": "b"})).ok
        assert await update(model, book1["_id"], {"isbn": ISBN_2}) == (
            False,
            {"isbn": ["in use"]},
        )
