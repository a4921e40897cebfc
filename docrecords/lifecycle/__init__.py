"""
Lifecycle module for docrecords - validated, hooked record writes.

This module handles:
- create/update/delete with callback pipelines
- No-op update detection and timestamp policy
- Bulk update/delete that bypass callbacks
- Uniqueness checks for validators

Invariants:
    - Store write failures become Outcome values, never raw exceptions
    - Hooks run in a fixed order; a raising hook aborts the operation

How to change safely:
    - Add tests for hook order whenever a stage is added
"""

from .callbacks import run_chain, run_triggers, run_validator
from .engine import (
    combine_predicates,
    count,
    create,
    delete,
    delete_all,
    find,
    find_by_id,
    find_one,
    split_unset,
    update,
    update_all,
)
from .unique import is_unique, unique_validator

__all__ = [
    "create",
    "update",
    "delete",
    "update_all",
    "delete_all",
    "find",
    "find_one",
    "find_by_id",
    "count",
    "combine_predicates",
    "split_unset",
    "run_chain",
    "run_triggers",
    "run_validator",
    "is_unique",
    "unique_validator",
]
