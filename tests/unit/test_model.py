"""
Unit tests for entity descriptors and model components.
"""

import copy
from dataclasses import FrozenInstanceError

import pytest

from docrecords.model import (
    HOOK_STAGES,
    UNSET,
    EntityBuilder,
    EntityDescriptor,
    ModelComponent,
    Outcome,
    utc_now,
)


def noop(model, record):
    return record


def other(model, record):
    return record


class TestEntityDescriptor:
    """Tests for EntityDescriptor."""

    def test_defaults(self):
        entity = EntityDescriptor(collection="books")
        assert entity.history_collection == "books.history"
        assert entity.optimistic_concurrency is True
        assert entity.validator is None
        for stage in HOOK_STAGES:
            assert entity.hooks(stage) == ()

    def test_single_hook_normalized_to_chain(self):
        entity = EntityDescriptor(collection="books", before_save=noop)
        assert entity.before_save == (noop,)

    def test_hook_list_keeps_order(self):
        entity = EntityDescriptor(collection="books", after_update=[noop, other])
        assert entity.hooks("after_update") == (noop, other)

    def test_non_callable_hook_rejected(self):
        with pytest.raises(TypeError):
            EntityDescriptor(collection="books", before_save=[noop, "nope"])

    def test_requires_collection(self):
        with pytest.raises(ValueError):
            EntityDescriptor(collection="")

    def test_unknown_stage(self):
        with pytest.raises(ValueError):
            EntityDescriptor(collection="books").hooks("after_save")

    def test_frozen(self):
        entity = EntityDescriptor(collection="books")
        with pytest.raises(FrozenInstanceError):
            entity.before_save = (noop,)


class TestEntityBuilder:
    """Tests for EntityBuilder."""

    def test_build(self):
        entity = (
            EntityBuilder("books", history_collection="books_versions")
            .on("before_save", noop)
            .on("before_save", other)
            .validate_with(noop)
            .build()
        )
        assert entity.collection == "books"
        assert entity.history_collection == "books_versions"
        assert entity.before_save == (noop, other)
        assert entity.validator is noop

    def test_stage_options_become_hooks(self):
        entity = EntityBuilder("books", after_create=noop).on("after_create", other).build()
        assert entity.after_create == (noop, other)

    def test_unknown_stage(self):
        with pytest.raises(ValueError):
            EntityBuilder("books").on("before_everything", noop)

    def test_from_descriptor_extends(self):
        base = EntityDescriptor(
            collection="books", optimistic_concurrency=False, before_delete=noop
        )
        extended = EntityBuilder.from_descriptor(base).on("before_delete", other).build()
        assert extended.before_delete == (noop, other)
        assert extended.optimistic_concurrency is False
        assert extended.history_collection == "books.history"
        assert base.before_delete == (noop,)


class TestModelComponent:
    """Tests for ModelComponent."""

    def test_for_collection_drops_hooks(self):
        model = ModelComponent(
            store=object(),
            entity=EntityDescriptor(collection="books", before_save=noop),
            clock=utc_now,
        )
        history = model.for_collection("books.history")
        assert history.collection == "books.history"
        assert history.entity.before_save == ()
        assert history.store is model.store
        assert history.clock is model.clock
        assert model.collection == "books"


class TestValues:
    """Tests for Outcome, UNSET and utc_now."""

    def test_outcome_unpacks(self):
        ok, value = Outcome(True, {"a": 1})
        assert ok is True
        assert value == {"a": 1}

    def test_unset_survives_copy(self):
        assert copy.deepcopy({"a": UNSET})["a"] is UNSET
        assert repr(UNSET) == "UNSET"

    def test_utc_now_is_millisecond_precision(self):
        now = utc_now()
        assert now.tzinfo is not None
        assert now.microsecond % 1000 == 0
