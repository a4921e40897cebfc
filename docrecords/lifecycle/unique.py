"""
Uniqueness checks built on the store's fetch_one.

The store may also enforce unique indexes; these checks exist so validators
can report duplicates as regular validation errors instead of insert errors.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Sequence

from ..ids import to_object_id
from ..model import ModelComponent


async def is_unique(model: ModelComponent, record: Mapping[str, Any], fields: Sequence[str]) -> bool:
    """Whether no other record shares the record's values for all fields.

    The record itself (its _id, when present) is excluded from the search.
    """
    predicate: dict = {name: record.get(name) for name in fields}
    if record.get("_id") is not None:
        predicate["_id"] = {"$ne": to_object_id(record["_id"])}
    return await model.store.fetch_one(model.collection, predicate) is None


def unique_validator(*fields: str, message: str = "taken") -> Callable[..., Any]:
    """Build a validator reporting {first_field: [message]} on duplicates.

    Example:
        >>> books = EntityDescriptor("books", validator=unique_validator("isbn"))
    """
    if not fields:
        raise ValueError("unique_validator needs at least one field")

    async def validate(model: ModelComponent, record: Mapping[str, Any]) -> Optional[dict]:
        if await is_unique(model, record, fields):
            return None
        return {fields[0]: [message]}

    return validate
