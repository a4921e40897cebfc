"""
Range-based pagination for docrecords.

Instead of skipping an offset, each page starts at a "page start": the
values of the sort fields plus the _id of the first record of the page.
The engine turns that position into a predicate selecting the records at
or after it (or at or before it, for the previous page), which keeps
pages stable under concurrent inserts and cheap on large collections.

Sort specs always end with _id so the order is total; ties on the primary
sort field are broken by _id.

Invariants:
    - No page start means the first page, which has no previous page
    - Walking next_page_start to exhaustion visits every record once
    - Walking previous_page_start from the last page visits them in reverse

Known limitations:
    - Only one sort field besides _id is supported
    - Apart from null/missing, the sort field must hold one BSON type
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass, field
from datetime import timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from bson import json_util
from bson.son import SON

from ..errors import InvalidPageStartError, PaginationError
from ..lifecycle.engine import combine_predicates
from ..model import ModelComponent, Record
from ..store.base import ASCENDING, DESCENDING, Predicate

logger = logging.getLogger(__name__)

ID_FIELD = "_id"
DEFAULT_PAGE_SIZE = 20

_TOKEN_JSON_OPTIONS = json_util.JSONOptions(
    json_mode=json_util.JSONMode.CANONICAL,
    tz_aware=True,
    tzinfo=timezone.utc,
)

SortInput = Union[None, str, Mapping[str, int], Sequence[Tuple[str, int]]]


@dataclass
class Page:
    """One page of records.

    Attributes:
        items: Records of the page, in sort order
        previous_page_start: Page start of the previous page, or None
        next_page_start: Page start of the next page, or None
    """

    items: List[Record] = field(default_factory=list)
    previous_page_start: Optional[Dict[str, Any]] = None
    next_page_start: Optional[Dict[str, Any]] = None


def normalize_sort(sort: SortInput) -> List[Tuple[str, int]]:
    """Turn a sort spec into (field, direction) pairs ending with _id.

    Accepts a field name, a mapping of field to direction or a sequence of
    pairs.

    Raises:
        PaginationError: For unknown directions or more than one sort field besides _id
    """
    if sort is None:
        pairs: List[Tuple[str, int]] = []
    elif isinstance(sort, str):
        pairs = [(sort, ASCENDING)]
    elif isinstance(sort, Mapping):
        pairs = list(sort.items())
    else:
        pairs = [tuple(pair) for pair in sort]  # type: ignore[misc]

    for name, direction in pairs:
        if direction not in (ASCENDING, DESCENDING):
            raise PaginationError(f"Invalid sort direction {direction!r} for {name}", sort=sort)

    if not any(name == ID_FIELD for name, _ in pairs):
        pairs.append((ID_FIELD, ASCENDING))

    if len(pairs) > 2 or pairs[-1][0] != ID_FIELD:
        raise PaginationError(
            "Pagination supports a single sort field followed by _id", sort=sort
        )
    return pairs


def reverse_sort(sort: Sequence[Tuple[str, int]]) -> List[Tuple[str, int]]:
    """The same fields with every direction flipped."""
    return [(name, -direction) for name, direction in sort]


def paging_predicate(
    sort: Sequence[Tuple[str, int]],
    start: Optional[Mapping[str, Any]],
) -> dict:
    """Predicate selecting records at or after a page start in sort order.

    For a primary field f sorted in direction d and _id sorted in direction
    e, the predicate is:

        f (> if d asc, < if d desc) start.f
        OR (f == start.f AND _id (>= if e asc, <= if e desc) start._id)

    Records without f (or with a null f) sort first ascending and last
    descending, so a null start.f selects every non-null value ascending,
    and a descending walk from a non-null start.f also reaches the nulls.
    """
    if not start:
        return {}

    id_direction = sort[-1][1]
    id_condition = {"$gte" if id_direction == ASCENDING else "$lte": start[ID_FIELD]}

    if len(sort) == 1:
        return {ID_FIELD: id_condition}

    primary, direction = sort[0]
    value = start.get(primary)
    tie = {"$and": [{primary: value}, {ID_FIELD: id_condition}]}

    # Null and missing sort below every other value, and range operators
    # never cross type brackets, so null needs its own clauses.
    if value is None:
        if direction == DESCENDING:
            return tie
        return {"$or": [{primary: {"$ne": None}}, tie]}

    beyond = "$gt" if direction == ASCENDING else "$lt"
    clauses: List[dict] = [{primary: {beyond: value}}]
    if direction == DESCENDING:
        clauses.append({primary: None})
    clauses.append(tie)
    return {"$or": clauses}


def page_start_of(record: Mapping[str, Any], sort: Sequence[Tuple[str, int]]) -> Dict[str, Any]:
    """Page start of a record: its sort field values in sort order."""
    return {name: record.get(name) for name, _ in sort}


async def page(
    model: ModelComponent,
    where: Optional[Predicate] = None,
    sort: SortInput = None,
    start: Optional[Mapping[str, Any]] = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Page:
    """Fetch one page of records.

    Args:
        model: Model component of the collection
        where: Optional predicate restricting the records
        sort: Sort spec with at most one field besides _id
        start: Page start returned by a previous call, None for the first page
        page_size: Number of records per page

    Returns:
        Page with items and the page starts of its neighbours

    Raises:
        PaginationError: If page_size < 1 or the sort spec is unsupported
    """
    if page_size < 1:
        raise PaginationError(f"page_size must be at least 1, got {page_size}")

    order = normalize_sort(sort)
    store = model.store

    forward = await store.fetch(
        model.collection,
        combine_predicates(where, paging_predicate(order, start)),
        sort=order,
        limit=page_size + 1,
    )

    result = Page(items=forward[:page_size])
    if len(forward) == page_size + 1:
        result.next_page_start = page_start_of(forward[page_size], order)

    if start:
        backward_order = reverse_sort(order)
        backward = await store.fetch(
            model.collection,
            combine_predicates(where, paging_predicate(backward_order, start)),
            sort=backward_order,
            limit=page_size + 1,
        )
        if len(backward) > 1:
            result.previous_page_start = page_start_of(backward[-1], order)

    logger.debug(
        "Fetched page",
        extra={
            "collection": model.collection,
            "items": len(result.items),
            "has_next": result.next_page_start is not None,
            "has_previous": result.previous_page_start is not None,
        },
    )
    return result


def encode_page_start(start: Mapping[str, Any]) -> str:
    """Encode a page start as an opaque URL-safe token."""
    payload = json_util.dumps(SON(start.items()), json_options=_TOKEN_JSON_OPTIONS)
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_page_start(token: str) -> Dict[str, Any]:
    """Decode a token produced by encode_page_start.

    Raises:
        InvalidPageStartError: If the token is not a valid page start
    """
    try:
        payload = base64.urlsafe_b64decode(token.encode("ascii")).decode("utf-8")
        start = json_util.loads(payload, json_options=_TOKEN_JSON_OPTIONS)
    except (binascii.Error, UnicodeError, TypeError, ValueError) as e:
        raise InvalidPageStartError(token, str(e)) from e
    if not isinstance(start, Mapping) or ID_FIELD not in start:
        raise InvalidPageStartError(token, "missing _id")
    return dict(start)
