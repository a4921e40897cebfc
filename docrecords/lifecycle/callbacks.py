"""
Callback pipeline for the lifecycle engine.

Hook chains are plain tuples of callables. Transforming stages thread the
record through the chain left to right; trigger stages call every hook with
the same record and ignore what they return. Hooks may be synchronous or
coroutine functions; any awaitable result is awaited before moving on.

The pipeline does no I/O of its own and does not catch hook exceptions: a
failing hook aborts the operation that ran it.
"""

from __future__ import annotations

import inspect
from typing import Any, Optional

from ..model import HookChain, Record


async def _call(hook: Any, *args: Any) -> Any:
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


async def run_chain(chain: HookChain, model: Any, record: Record, *extra: Any) -> Record:
    """Thread a record through a chain of transforming hooks.

    Each hook receives ``(model, record, *extra)`` where ``record`` is the
    previous hook's output. An empty chain returns the record unchanged.
    """
    for hook in chain:
        record = await _call(hook, model, record, *extra)
    return record


async def run_triggers(chain: HookChain, model: Any, record: Optional[Record]) -> None:
    """Call every hook with the same record, discarding return values."""
    for hook in chain:
        await _call(hook, model, record)


async def run_validator(validator: Any, model: Any, record: Record) -> Any:
    """Run the entity validator, returning its errors or None when valid."""
    if validator is None:
        return None
    errors = await _call(validator, model, record)
    return errors or None
