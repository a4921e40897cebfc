"""
Lifecycle engine for docrecords.

The engine is the single entry point for writing records. It orchestrates
the callback pipeline, the entity validator and the store adapter:

    create:  before_validation -> before_validation_on_create -> validator
             -> before_save -> before_create -> default timestamps
             -> insert -> after_create
    update:  load -> merge/unset -> before_validation -> validator
             -> before_save -> (no-op check) -> before_update
             -> conditional update -> reload -> after_update
    delete:  load -> before_delete -> atomic remove -> after_delete

Invariants:
    - Store write failures are returned as Outcome(False, {"base": [...]})
    - A no-op update performs no write and leaves updated_at unchanged
    - _id is never changed by an update
    - created_at/updated_at given by the caller (even None) are kept on create
    - The engine never writes history; hooks call docrecords.history for that

How to change safely:
    - Keep hook order stable; applications depend on it
    - Every new store call must go through the StoreError boundary
    - Bulk operations (update_all/delete_all) bypass hooks by contract
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from ..ids import to_object_id
from ..model import (
    INSERT_ERROR,
    STALE_ERROR,
    UNSET,
    UPDATE_ERROR,
    ModelComponent,
    Outcome,
    Record,
)
from ..store.base import Predicate, SortSpec, StoreError
from .callbacks import run_chain, run_triggers, run_validator

logger = logging.getLogger(__name__)


def combine_predicates(*clauses: Optional[Mapping[str, Any]]) -> dict:
    """AND together predicates, dropping empty ones."""
    parts = [dict(clause) for clause in clauses if clause]
    if not parts:
        return {}
    if len(parts) == 1:
        return parts[0]
    return {"$and": parts}


def split_unset(attributes: Mapping[str, Any]) -> Tuple[dict, List[str]]:
    """Separate assignments from fields whose value is the UNSET marker."""
    assignments = {name: value for name, value in attributes.items() if value is not UNSET}
    removals = [name for name, value in attributes.items() if value is UNSET]
    return assignments, removals


def _require_predicate(where: Optional[Predicate], all_records: bool, operation: str) -> dict:
    if not where and not all_records:
        raise ValueError(
            f"{operation} needs a non-empty predicate; pass all_records=True to touch every record"
        )
    return dict(where or {})


# =============================================================================
# Reads
# =============================================================================


async def find(
    model: ModelComponent,
    where: Optional[Predicate] = None,
    sort: Optional[SortSpec] = None,
    limit: int = 0,
) -> List[Record]:
    """Records matching a predicate, in sort order."""
    return await model.store.fetch(model.collection, dict(where or {}), sort=sort, limit=limit)


async def find_one(model: ModelComponent, where: Optional[Predicate] = None) -> Optional[Record]:
    """One record matching a predicate, or None."""
    return await model.store.fetch_one(model.collection, dict(where or {}))


async def find_by_id(model: ModelComponent, id: Any) -> Optional[Record]:
    """The record with the given identifier (ObjectId or its hex string), or None.

    Raises:
        InvalidIdentifierError: If id is malformed
    """
    return await find_one(model, {"_id": to_object_id(id)})


async def count(model: ModelComponent, where: Optional[Predicate] = None) -> int:
    """Number of records matching a predicate."""
    return await model.store.count(model.collection, dict(where or {}))


# =============================================================================
# Writes
# =============================================================================


async def create(model: ModelComponent, attributes: Mapping[str, Any]) -> Outcome:
    """Validate, run hooks and insert a new record.

    Returns:
        - Outcome(False, errors) if the validator reports errors
        - Outcome(False, {"base": ["insert-error"]}) if the store rejects the insert
        - Outcome(True, record) with _id and timestamps otherwise
    """
    entity = model.entity

    record = dict(attributes)
    record = await run_chain(entity.before_validation, model, record)
    record = await run_chain(entity.before_validation_on_create, model, record)

    errors = await run_validator(entity.validator, model, record)
    if errors:
        logger.debug(
            "Create rejected by validator",
            extra={"collection": entity.collection, "errors": errors},
        )
        return Outcome(False, errors)

    record = await run_chain(entity.before_save, model, record)
    record = dict(await run_chain(entity.before_create, model, record))

    # Explicit timestamps win, even None, so backfills stay deterministic.
    now = model.clock()
    record.setdefault("created_at", now)
    record.setdefault("updated_at", now)

    try:
        created = await model.store.insert(entity.collection, record)
    except StoreError as e:
        logger.warning(
            "Insert failed",
            extra={"collection": entity.collection, "error": str(e)},
        )
        return Outcome(False, {"base": [INSERT_ERROR]})

    logger.debug(
        "Created record",
        extra={"collection": entity.collection, "record_id": str(created["_id"])},
    )

    created = await run_chain(entity.after_create, model, created)
    return Outcome(True, created)


async def update(
    model: ModelComponent,
    id: Any,
    attributes: Mapping[str, Any],
    skip_validations: bool = False,
) -> Outcome:
    """Apply attribute changes to an existing record.

    Attributes set to UNSET are removed from the stored record. If the
    prepared record equals the stored one nothing is written and
    before_update/after_update are not called.

    Returns:
        - Outcome(False, None) if no record has the given id
        - Outcome(False, errors) if the validator reports errors
        - Outcome(False, {"base": ["update-error"]}) if the store rejects the write
        - Outcome(False, {"base": ["stale-error"]}) if the record changed concurrently,
          or was removed before it could be reloaded (after_update is not called)
        - Outcome(True, record) otherwise

    Raises:
        InvalidIdentifierError: If id is malformed
    """
    entity = model.entity

    old_record = await find_by_id(model, id)
    if old_record is None:
        return Outcome(False, None)

    assignments, removals = split_unset(attributes)
    record = {name: value for name, value in old_record.items() if name not in removals}
    record.update(assignments)
    record["_id"] = old_record["_id"]

    record = await run_chain(entity.before_validation, model, record)
    if not skip_validations:
        errors = await run_validator(entity.validator, model, record)
        if errors:
            logger.debug(
                "Update rejected by validator",
                extra={"collection": entity.collection, "errors": errors},
            )
            return Outcome(False, errors)

    record = await run_chain(entity.before_save, model, record)
    if record == old_record:
        logger.debug(
            "Update is a no-op",
            extra={"collection": entity.collection, "record_id": str(old_record["_id"])},
        )
        return Outcome(True, old_record)

    record = dict(await run_chain(entity.before_update, model, record))

    if "updated_at" in record and record["updated_at"] != old_record.get("updated_at"):
        updated_at = record["updated_at"]
    else:
        updated_at = model.clock()

    set_fields = {name: value for name, value in record.items() if name != "_id"}
    set_fields["updated_at"] = updated_at
    unset_fields = [name for name in removals if name not in record]

    match: dict = {"_id": old_record["_id"]}
    if entity.optimistic_concurrency:
        match["updated_at"] = old_record.get("updated_at")

    try:
        matched = await model.store.update_by_query(
            entity.collection, match, set_fields, unset_fields
        )
    except StoreError as e:
        logger.warning(
            "Update failed",
            extra={
                "collection": entity.collection,
                "record_id": str(old_record["_id"]),
                "error": str(e),
            },
        )
        await run_triggers(entity.on_update_errors, model, record)
        return Outcome(False, {"base": [UPDATE_ERROR]})

    if not matched:
        logger.warning(
            "Update matched no record; it was changed or removed concurrently",
            extra={"collection": entity.collection, "record_id": str(old_record["_id"])},
        )
        await run_triggers(entity.on_update_errors, model, record)
        return Outcome(False, {"base": [STALE_ERROR]})

    # The update acknowledgment does not carry the new document.
    current = await find_by_id(model, old_record["_id"])
    if current is None:
        # The write landed, so the snapshot taken by before_update stays.
        logger.warning(
            "Updated record was removed before it could be reloaded",
            extra={"collection": entity.collection, "record_id": str(old_record["_id"])},
        )
        return Outcome(False, {"base": [STALE_ERROR]})

    result = await run_chain(entity.after_update, model, current, old_record)
    return Outcome(True, result)


async def delete(model: ModelComponent, id: Any) -> int:
    """Delete a record, running before_delete and after_delete.

    The removal itself is a single atomic find-and-remove, so the returned
    count is exactly what the store deleted even under concurrent deletes.

    Returns:
        Number of records removed (0 or 1)

    Raises:
        InvalidIdentifierError: If id is malformed
    """
    entity = model.entity
    record_id = to_object_id(id)

    record = await model.store.fetch_one(entity.collection, {"_id": record_id})
    if record is None:
        return 0

    await run_triggers(entity.before_delete, model, record)

    try:
        removed = await model.store.atomic_remove_matching(entity.collection, {"_id": record_id})
    except StoreError as e:
        logger.warning(
            "Delete failed",
            extra={"collection": entity.collection, "record_id": str(record_id), "error": str(e)},
        )
        return 0

    if removed is None:
        logger.debug(
            "Record already removed",
            extra={"collection": entity.collection, "record_id": str(record_id)},
        )
        return 0

    await run_chain(entity.after_delete, model, record)
    return 1


async def update_all(
    model: ModelComponent,
    where: Optional[Predicate],
    updates: Mapping[str, Any],
    *,
    all_records: bool = False,
) -> int:
    """Update every matching record directly, bypassing hooks and validation.

    An empty predicate is refused unless all_records=True.

    Returns:
        Number of modified records

    Raises:
        ValueError: If where is empty without all_records, or updates is empty
    """
    predicate = _require_predicate(where, all_records, "update_all")
    assignments, removals = split_unset(updates)
    modified = await model.store.update_many(model.collection, predicate, assignments, removals)
    logger.info(
        "Bulk update",
        extra={"collection": model.collection, "modified": modified},
    )
    return modified


async def delete_all(
    model: ModelComponent,
    where: Optional[Predicate],
    *,
    all_records: bool = False,
) -> int:
    """Delete every matching record directly, bypassing hooks.

    An empty predicate is refused unless all_records=True.

    Returns:
        Number of deleted records

    Raises:
        ValueError: If where is empty without all_records
    """
    predicate = _require_predicate(where, all_records, "delete_all")
    removed = await model.store.remove_many(model.collection, predicate)
    logger.info(
        "Bulk delete",
        extra={"collection": model.collection, "removed": removed},
    )
    return removed
