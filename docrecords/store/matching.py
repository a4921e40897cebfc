"""
Query matching and ordering for the in-memory store.

Implements the subset of MongoDB query semantics the engine relies on:
- Logical operators: $and, $or, $nor
- Field operators: $eq, $ne, $gt, $gte, $lt, $lte, $in, $nin, $exists
- Dotted paths into embedded documents
- A null equality condition also matches a missing field
- BSON comparison order across types, with embedded documents compared
  pair by pair in field order ({a, b} and {b, a} are different values)

Invariants:
    - Range operators only match values of the same BSON type bracket
    - compare_values() is a total order over supported values
"""

from __future__ import annotations

from datetime import datetime, timezone
from functools import cmp_to_key
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from bson import ObjectId
from bson.max_key import MaxKey
from bson.min_key import MinKey
from bson.timestamp import Timestamp


class _Missing:
    """Marker for a path that is absent from a document."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()

_RANGE_OPERATORS = {
    "$gt": lambda c: c > 0,
    "$gte": lambda c: c >= 0,
    "$lt": lambda c: c < 0,
    "$lte": lambda c: c <= 0,
}


def type_rank(value: Any) -> int:
    """Position of the value's type in the BSON comparison order."""
    if isinstance(value, MinKey):
        return 1
    if value is None or value is MISSING:
        return 2
    if isinstance(value, bool):
        return 9
    if isinstance(value, (int, float)):
        return 3
    if isinstance(value, str):
        return 4
    if isinstance(value, Mapping):
        return 5
    if isinstance(value, (list, tuple)):
        return 6
    if isinstance(value, bytes):
        return 7
    if isinstance(value, ObjectId):
        return 8
    if isinstance(value, datetime):
        return 10
    if isinstance(value, Timestamp):
        return 11
    if isinstance(value, MaxKey):
        return 13
    raise TypeError(f"Unsupported value type: {type(value).__name__}")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _sign(a: Any, b: Any) -> int:
    return (a > b) - (a < b)


def compare_values(a: Any, b: Any) -> int:
    """Compare two values in BSON order, returning -1, 0 or 1."""
    rank_a, rank_b = type_rank(a), type_rank(b)
    if rank_a != rank_b:
        return -1 if rank_a < rank_b else 1
    if rank_a in (1, 2, 13):
        return 0
    if rank_a == 5:
        return _compare_documents(a, b)
    if rank_a == 6:
        return _compare_arrays(a, b)
    if rank_a == 10:
        return _sign(_as_utc(a), _as_utc(b))
    return _sign(a, b)


def _compare_documents(a: Mapping[str, Any], b: Mapping[str, Any]) -> int:
    for (key_a, value_a), (key_b, value_b) in zip(a.items(), b.items()):
        rank_a, rank_b = type_rank(value_a), type_rank(value_b)
        if rank_a != rank_b:
            return -1 if rank_a < rank_b else 1
        if key_a != key_b:
            return -1 if key_a < key_b else 1
        result = compare_values(value_a, value_b)
        if result:
            return result
    return _sign(len(a), len(b))


def _compare_arrays(a: Sequence[Any], b: Sequence[Any]) -> int:
    for item_a, item_b in zip(a, b):
        result = compare_values(item_a, item_b)
        if result:
            return result
    return _sign(len(a), len(b))


def get_path(doc: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted path, returning MISSING when any step is absent."""
    current: Any = doc
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return MISSING
    return current


def set_path(doc: dict, path: str, value: Any) -> None:
    """Assign a value at a dotted path, creating embedded documents."""
    parts = path.split(".")
    current = doc
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def unset_path(doc: dict, path: str) -> None:
    """Remove the value at a dotted path if present."""
    parts = path.split(".")
    current: Any = doc
    for part in parts[:-1]:
        if not isinstance(current, dict) or part not in current:
            return
        current = current[part]
    if isinstance(current, dict):
        current.pop(parts[-1], None)


def _equals(value: Any, target: Any) -> bool:
    if target is None:
        return value is MISSING or value is None
    if value is MISSING:
        return False
    if isinstance(value, list) and not isinstance(target, list):
        return any(type_rank(item) == type_rank(target) and compare_values(item, target) == 0
                   for item in value)
    return compare_values(value, target) == 0


def _range_matches(value: Any, operator: str, target: Any) -> bool:
    if target is None:
        return operator in ("$gte", "$lte") and _equals(value, None)
    if value is MISSING:
        return False
    candidates: List[Any] = [value]
    if isinstance(value, list):
        candidates.extend(value)
    accept = _RANGE_OPERATORS[operator]
    return any(
        type_rank(candidate) == type_rank(target) and accept(compare_values(candidate, target))
        for candidate in candidates
    )


def _apply_operator(value: Any, operator: str, argument: Any) -> bool:
    if operator == "$eq":
        return _equals(value, argument)
    if operator == "$ne":
        return not _equals(value, argument)
    if operator in _RANGE_OPERATORS:
        return _range_matches(value, operator, argument)
    if operator == "$in":
        return any(_equals(value, target) for target in argument)
    if operator == "$nin":
        return not any(_equals(value, target) for target in argument)
    if operator == "$exists":
        return (value is not MISSING) == bool(argument)
    raise ValueError(f"Unsupported query operator: {operator}")


def _is_operator_document(condition: Any) -> bool:
    return (
        isinstance(condition, Mapping)
        and len(condition) > 0
        and all(str(key).startswith("$") for key in condition)
    )


def matches(doc: Mapping[str, Any], predicate: Optional[Mapping[str, Any]]) -> bool:
    """Whether a document satisfies a query predicate.

    Raises:
        ValueError: For operators outside the supported subset
    """
    if not predicate:
        return True
    for key, condition in predicate.items():
        if key == "$and":
            if not all(matches(doc, clause) for clause in condition):
                return False
        elif key == "$or":
            if not any(matches(doc, clause) for clause in condition):
                return False
        elif key == "$nor":
            if any(matches(doc, clause) for clause in condition):
                return False
        elif key.startswith("$"):
            raise ValueError(f"Unsupported top-level operator: {key}")
        else:
            value = get_path(doc, key)
            if _is_operator_document(condition):
                if not all(_apply_operator(value, op, arg) for op, arg in condition.items()):
                    return False
            elif not _equals(value, condition):
                return False
    return True


def sort_documents(
    docs: Iterable[Mapping[str, Any]],
    sort: Sequence[Tuple[str, int]],
) -> List[Mapping[str, Any]]:
    """Stable sort by several (field, direction) pairs, missing sorting as null."""

    def compare(a: Mapping[str, Any], b: Mapping[str, Any]) -> int:
        for field_name, direction in sort:
            value_a = get_path(a, field_name)
            value_b = get_path(b, field_name)
            result = compare_values(value_a, value_b)
            if result:
                return result * direction
        return 0

    return sorted(docs, key=cmp_to_key(compare))
