"""
Document store abstraction for docrecords.

This module provides a pluggable store interface supporting:
- MongoDB (production)
- In-memory (for testing)

The lifecycle engine, pagination and history modules only use the
StoreAdapter protocol; they never import a driver directly.

Invariants:
    - Backends translate driver faults into StoreError subclasses
    - Compound _id values keep their field order end to end

How to change safely:
    - New backends must implement the StoreAdapter protocol
    - Run tests/e2e against a real server when touching MongoStore
"""

from .base import (
    ASCENDING,
    DESCENDING,
    Document,
    DuplicateKeyError,
    Predicate,
    SortSpec,
    StoreAdapter,
    StoreConnectionError,
    StoreError,
    StoreWriteError,
    create_store,
)
from .memory import InMemoryStore
from .mongo import MongoStore

__all__ = [
    # Protocol and types
    "StoreAdapter",
    "Document",
    "Predicate",
    "SortSpec",
    "ASCENDING",
    "DESCENDING",
    "StoreError",
    "StoreConnectionError",
    "StoreWriteError",
    "DuplicateKeyError",
    # Factory
    "create_store",
    # Implementations
    "MongoStore",
    "InMemoryStore",
]
