"""
Identifier coercion at the store boundary.

Public operations accept a record identifier either as a native store value
(an ObjectId, or a compound SON identifier for history records) or as the
canonical 24-character hex string encoding of an ObjectId.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from bson import ObjectId
from bson.son import SON

from .errors import InvalidIdentifierError


def to_object_id(value: Any) -> Any:
    """Coerce a public identifier into the value stored in _id.

    Raises:
        InvalidIdentifierError: For None, empty or malformed strings
    """
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str):
        if not ObjectId.is_valid(value):
            raise InvalidIdentifierError(value)
        return ObjectId(value)
    if value is None or isinstance(value, bool):
        raise InvalidIdentifierError(value)
    # Compound identifiers and other native _id types pass through untouched.
    return value


def compound_id(record_id: Any, updated_at: Optional[datetime]) -> SON:
    """History identifier of a record version.

    The store compares embedded documents by their raw field order, so the
    record id must always come first and the timestamp second.
    """
    return SON([("_id", to_object_id(record_id)), ("updated_at", updated_at)])


def record_id_of(history_id: Any) -> Any:
    """The live record id embedded in a history identifier, or None."""
    if isinstance(history_id, Mapping):
        return history_id.get("_id")
    return None
