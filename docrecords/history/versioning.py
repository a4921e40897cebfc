"""
Point-in-time versioning of records.

Versions live in a secondary collection (EntityDescriptor.history_collection)
and are keyed by a compound _id of the live record id and its updated_at:

    {"_id": {"_id": <record id>, "updated_at": <datetime>}, ...record fields}

The store indexes and compares the whole compound value by its raw field
order, so {_id, updated_at} and {updated_at, _id} never match each other.
compound_id() always builds the record id first and the timestamp second;
never build history identifiers by hand.

A deletion is recorded as a tombstone version carrying deleted_at, with
created_at, updated_at and the compound timestamp all set to the same time.

The lifecycle engine never writes history. Applications opt in by calling
save()/save_delete() from their hooks, typically before_update and
before_delete (see snapshot_before_update and snapshot_before_delete).

Invariants:
    - No two versions of one record share an updated_at
    - Versions of one record are totally ordered by their compound _id
    - A history lookup never returns a version of another record
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from ..ids import compound_id, record_id_of, to_object_id
from ..lifecycle import engine
from ..model import ModelComponent, Outcome, Record
from ..store.base import DESCENDING

logger = logging.getLogger(__name__)


def history_model(model: ModelComponent) -> ModelComponent:
    """Component for the history collection of a model."""
    return model.for_collection(model.entity.history_collection)


async def save(model: ModelComponent, record_id: Any) -> Outcome:
    """Save the current version of a record in the history.

    Returns:
        - Outcome(False, None) if the record was not found
        - Outcome(False, {"base": ["insert-error"]}) if the insert fails
        - Outcome(True, history_record) otherwise
    """
    record = await engine.find_by_id(model, record_id)
    if record is None:
        return Outcome(False, None)

    snapshot = dict(record)
    snapshot["_id"] = compound_id(record["_id"], record.get("updated_at"))
    outcome = await engine.create(history_model(model), snapshot)
    if outcome.ok:
        logger.debug(
            "Saved record version",
            extra={
                "collection": model.collection,
                "record_id": str(record["_id"]),
                "updated_at": str(record.get("updated_at")),
            },
        )
    return outcome


async def delete(model: ModelComponent, record_id: Any) -> int:
    """Delete the history version matching the record's current state.

    Used to clean up after a failed update whose before_update hook already
    saved the current version, which would otherwise look like the latest
    version of a write that never happened.

    Returns:
        Number of history records deleted
    """
    record = await engine.find_by_id(model, record_id)
    if record is None:
        return 0
    return await engine.delete(
        history_model(model),
        compound_id(record["_id"], record.get("updated_at")),
    )


async def save_delete(model: ModelComponent, record_id: Any) -> Outcome:
    """Save the deletion of a record in the history.

    Two history records are created: the current version of the record,
    and a tombstone whose deleted_at, created_at and updated_at all hold the
    deletion time.

    Returns:
        - Outcome(False, None) if the record was not found
        - Outcome(False, {"base": ["insert-error"]}) if an insert fails
        - Outcome(True, tombstone) otherwise
    """
    result = await save(model, record_id)
    if not result.ok:
        return result

    deleted_at = model.clock()
    # Timestamps are explicit so they cannot drift from deleted_at.
    return await engine.create(
        history_model(model),
        {
            "_id": compound_id(record_id, deleted_at),
            "created_at": deleted_at,
            "updated_at": deleted_at,
            "deleted_at": deleted_at,
        },
    )


async def find_latest_matching_record_at(
    model: ModelComponent,
    id: Any,
    at: datetime,
    conditions: Optional[Mapping[str, Any]] = None,
) -> Optional[Record]:
    """The latest version of a record, as of `at`, that matches `conditions`.

    Returns:
        - the live record if it matches and was not updated after `at`
        - otherwise the matching history version (a tombstone has deleted_at)
          with its _id replaced by the record id
        - None if no version of the record matches
    """
    record_id = to_object_id(id)
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)

    record = await engine.find_one(
        model, engine.combine_predicates({"_id": record_id}, conditions)
    )
    if record is not None:
        updated_at = record.get("updated_at")
        # Stores without tz_aware hand back naive UTC datetimes.
        if isinstance(updated_at, datetime) and updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        if updated_at is not None and updated_at <= at:
            return record

    candidates = await engine.find(
        history_model(model),
        engine.combine_predicates(
            {"_id": {"$lte": compound_id(record_id, at)}},
            conditions,
        ),
        sort=[("_id", DESCENDING)],
        limit=1,
    )
    if not candidates:
        return None

    version = candidates[0]
    # $lte on the compound _id can reach versions of a record with a lower id.
    if record_id_of(version["_id"]) != record_id:
        return None

    version["_id"] = record_id
    return version


async def find_record_at(model: ModelComponent, id: Any, at: datetime) -> Optional[Record]:
    """The record as it was at `at`, a tombstone if deleted by then, or None."""
    return await find_latest_matching_record_at(model, id, at)


async def find_all_by_record_id(model: ModelComponent, id: Any) -> List[Record]:
    """All history versions of a record, most recent first."""
    # Dot notation matches the embedded record id; {"_id": {"_id": id}} would
    # only match a compound id with no other fields.
    return await engine.find(
        history_model(model),
        {"_id._id": to_object_id(id)},
        sort=[("_id", DESCENDING)],
    )


# =============================================================================
# Hook helpers
# =============================================================================


async def snapshot_before_update(model: ModelComponent, record: Record) -> Record:
    """before_update hook saving the stored version before it is overwritten."""
    await save(model, record["_id"])
    return record


async def snapshot_before_delete(model: ModelComponent, record: Record) -> None:
    """before_delete hook recording the deletion in the history."""
    await save_delete(model, record["_id"])


async def discard_failed_snapshot(model: ModelComponent, record: Record) -> None:
    """on_update_errors hook removing the version saved by snapshot_before_update."""
    await delete(model, record["_id"])
