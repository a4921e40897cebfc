"""
History module for docrecords - point-in-time record versions.

Invariants:
    - History ids are compound {_id, updated_at} values built by compound_id()
    - Only application hooks write history, never the lifecycle engine

How to change safely:
    - Changing the compound id layout changes the on-disk history format
"""

from .versioning import (
    delete,
    discard_failed_snapshot,
    find_all_by_record_id,
    find_latest_matching_record_at,
    find_record_at,
    history_model,
    save,
    save_delete,
    snapshot_before_delete,
    snapshot_before_update,
)

__all__ = [
    "save",
    "delete",
    "save_delete",
    "find_latest_matching_record_at",
    "find_record_at",
    "find_all_by_record_id",
    "history_model",
    "snapshot_before_update",
    "snapshot_before_delete",
    "discard_failed_snapshot",
]
