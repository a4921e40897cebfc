"""
Model descriptors for docrecords.

A ModelComponent bundles everything an engine operation needs: the store
handle, the EntityDescriptor of the collection (hooks and validator) and
the clock used for timestamps. Components are passed by value to every
operation and never mutated by the engine.

Hook stages and signatures:
    before_validation, before_validation_on_create, before_save,
    before_create, before_update:   (model, record) -> record
    after_create, after_delete:     (model, record) -> record
    after_update:                   (model, record, old_record) -> record
    before_delete, on_update_errors: (model, record) -> ignored
    validator:                      (model, record) -> errors or None

Any hook or validator may be a coroutine function.

Invariants:
    - Hook slots are immutable tuples, fixed when the descriptor is built
    - The engine reads descriptors, it never writes to them

How to change safely:
    - New stages must be added to HOOK_STAGES and to the engine together
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

Record = Dict[str, Any]
Hook = Callable[..., Any]
HookChain = Tuple[Hook, ...]

HOOK_STAGES = (
    "before_validation",
    "before_validation_on_create",
    "before_save",
    "before_create",
    "after_create",
    "before_update",
    "on_update_errors",
    "after_update",
    "before_delete",
    "after_delete",
)

INSERT_ERROR = "insert-error"
UPDATE_ERROR = "update-error"
STALE_ERROR = "stale-error"


class _Unset:
    """Sentinel type for fields scheduled for removal in an update."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __copy__(self) -> "_Unset":
        return self

    def __deepcopy__(self, memo: Dict[int, Any]) -> "_Unset":
        return self


UNSET = _Unset()


class Outcome(NamedTuple):
    """Result of a public mutation.

    Unpacks like a pair: ``ok, record = await create(model, attrs)``.
    On failure ``value`` holds validation errors, a ``{"base": [...]}``
    store error payload, or None when the record was not found.
    """

    ok: bool
    value: Any


def utc_now() -> datetime:
    """Current UTC time truncated to what a BSON date can hold (milliseconds)."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def _as_chain(value: Union[None, Hook, Sequence[Hook]]) -> HookChain:
    if value is None:
        return ()
    if callable(value):
        return (value,)
    chain = tuple(value)
    for hook in chain:
        if not callable(hook):
            raise TypeError(f"Hook {hook!r} is not callable")
    return chain


@dataclass(frozen=True)
class EntityDescriptor:
    """Describes one record collection and its lifecycle hooks.

    Hook slots accept a single callable or a sequence of callables at
    construction time and always hold a tuple afterwards.

    Attributes:
        collection: Name of the live collection
        history_collection: Collection holding versions (default "<collection>.history")
        validator: Callable returning errors (falsy when the record is valid)
        optimistic_concurrency: Match updates on _id and the previously read updated_at

    Example:
        >>> books = EntityDescriptor(
        ...     collection="books",
        ...     validator=unique_validator("isbn"),
        ...     before_save=strip_title,
        ... )
    """

    collection: str
    history_collection: Optional[str] = None
    validator: Optional[Hook] = None
    optimistic_concurrency: bool = True
    before_validation: HookChain = ()
    before_validation_on_create: HookChain = ()
    before_save: HookChain = ()
    before_create: HookChain = ()
    after_create: HookChain = ()
    before_update: HookChain = ()
    on_update_errors: HookChain = ()
    after_update: HookChain = ()
    before_delete: HookChain = ()
    after_delete: HookChain = ()

    def __post_init__(self) -> None:
        if not self.collection:
            raise ValueError("EntityDescriptor requires a collection name")
        if self.history_collection is None:
            object.__setattr__(self, "history_collection", f"{self.collection}.history")
        for stage in HOOK_STAGES:
            object.__setattr__(self, stage, _as_chain(getattr(self, stage)))

    def hooks(self, stage: str) -> HookChain:
        """Hooks registered for a lifecycle stage."""
        if stage not in HOOK_STAGES:
            raise ValueError(f"Unknown lifecycle stage: {stage}")
        return getattr(self, stage)


class EntityBuilder:
    """Explicit registration API for EntityDescriptor hooks.

    Hooks are collected here and frozen into a descriptor by build(), which
    must happen before the descriptor is shared with concurrent callers.

    Example:
        >>> builder = EntityBuilder("articles")
        >>> builder.on("before_update", history.snapshot_before_update)
        >>> builder.on("before_delete", history.snapshot_before_delete)
        >>> articles = builder.build()
    """

    def __init__(self, collection: str, **options: Any) -> None:
        self._collection = collection
        self._options = dict(options)
        self._hooks: Dict[str, List[Hook]] = {stage: [] for stage in HOOK_STAGES}
        for stage in HOOK_STAGES:
            if stage in self._options:
                self._hooks[stage].extend(_as_chain(self._options.pop(stage)))

    def on(self, stage: str, *hooks: Hook) -> EntityBuilder:
        """Append hooks to a stage, keeping registration order."""
        if stage not in self._hooks:
            raise ValueError(f"Unknown lifecycle stage: {stage}")
        self._hooks[stage].extend(_as_chain(list(hooks)))
        return self

    def validate_with(self, validator: Hook) -> EntityBuilder:
        """Set the validator."""
        self._options["validator"] = validator
        return self

    def build(self) -> EntityDescriptor:
        """Freeze the registered hooks into a descriptor."""
        chains = {stage: tuple(hooks) for stage, hooks in self._hooks.items() if hooks}
        return EntityDescriptor(collection=self._collection, **self._options, **chains)

    @classmethod
    def from_descriptor(cls, entity: EntityDescriptor) -> EntityBuilder:
        """Start a builder that extends an existing descriptor."""
        options = {
            f.name: getattr(entity, f.name)
            for f in fields(entity)
            if f.name not in HOOK_STAGES and f.name != "collection"
        }
        builder = cls(entity.collection, **options)
        for stage in HOOK_STAGES:
            builder.on(stage, *entity.hooks(stage))
        return builder


@dataclass(frozen=True)
class ModelComponent:
    """Store handle plus entity descriptor, passed to every operation.

    Attributes:
        store: StoreAdapter implementation
        entity: Descriptor of the collection being operated on
        clock: Zero-argument callable returning the current UTC datetime
    """

    store: Any
    entity: EntityDescriptor
    clock: Callable[[], datetime] = field(default=utc_now)

    @property
    def collection(self) -> str:
        return self.entity.collection

    def for_collection(self, collection: str) -> ModelComponent:
        """A hook-free component over another collection sharing store and clock."""
        return replace(
            self,
            entity=EntityDescriptor(
                collection=collection,
                optimistic_concurrency=self.entity.optimistic_concurrency,
            ),
        )
