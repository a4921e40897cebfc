"""
docrecords - record lifecycle, pagination and versioning for document stores.

This package adds the record-level logic that raw document store operations
(insert, fetch, conditional update, atomic remove) do not provide:
- Lifecycle callbacks around create/update/delete, with validation
- No-op update detection and created_at/updated_at policy
- Uniqueness checks usable from validators
- Range-based (cursor) pagination without offsets
- Point-in-time versions of records in a history collection

Architecture:
    ┌──────────────┐     ┌──────────────────┐     ┌──────────────────┐
    │   History    │────▶│ Lifecycle Engine │────▶│   StoreAdapter   │
    │  (versions)  │     │ create/update/.. │     │ Mongo / InMemory │
    └──────────────┘     └────────▲─────────┘     └────────▲─────────┘
                                  │                        │
                         ┌────────┴─────────┐     ┌────────┴─────────┐
                         │  ModelComponent  │     │    Pagination    │
                         │ (hooks, clock)   │     │  (page starts)   │
                         └──────────────────┘     └──────────────────┘

Invariants:
    - Public mutations return Outcome(ok, value); store faults never escape
      the lifecycle engine as exceptions
    - Every record has a unique _id plus created_at and updated_at
    - History is only written by application hooks

How to change safely:
    - Hook order and Outcome payloads are part of the public contract
    - Compound history ids must be built with ids.compound_id()
"""

from ._version import __version__
from .errors import DocRecordsError, InvalidIdentifierError, InvalidPageStartError, PaginationError
from .ids import compound_id, to_object_id
from .model import (
    INSERT_ERROR,
    STALE_ERROR,
    UNSET,
    UPDATE_ERROR,
    EntityBuilder,
    EntityDescriptor,
    ModelComponent,
    Outcome,
    utc_now,
)

__all__ = [
    "__version__",
    "DocRecordsError",
    "InvalidIdentifierError",
    "InvalidPageStartError",
    "PaginationError",
    "compound_id",
    "to_object_id",
    "EntityBuilder",
    "EntityDescriptor",
    "ModelComponent",
    "Outcome",
    "UNSET",
    "INSERT_ERROR",
    "UPDATE_ERROR",
    "STALE_ERROR",
    "utc_now",
]
