"""
Lazy reference collection.

LazyList is an ordered, indexable, mutable sequence whose elements are
loaded from the store only when asked for. Each position holds a slot:

- Unresolved(identity, source, join_id): a placeholder produced by load
- Resolved(value): a loaded or application-supplied value

Resolution is explicit and asynchronous (``await lazy.get(i)``,
``async for item in lazy``). The resolved value replaces the slot, so a
position is fetched at most once. Plain ``lazy[i]`` never performs I/O and
raises UnresolvedReferenceError for a placeholder.

Thread safety:
    None. Resolution mutates the slot list without locking; do not share
    one instance between concurrent tasks.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from .errors import UnresolvedReferenceError

T = TypeVar("T")

Resolver = Callable[[str, uuid.UUID], Awaitable[Any]]


@dataclass(frozen=True)
class Unresolved:
    """Placeholder for an element not yet loaded.

    Attributes:
        identity: Identity of the referenced entity
        source: Collection the entity is loaded from
        join_id: Join-row identity for shared relations
    """

    identity: uuid.UUID
    source: str
    join_id: uuid.UUID | None = None


@dataclass(frozen=True)
class Resolved:
    """Slot holding a loaded value."""

    value: Any


Slot = Unresolved | Resolved


class LazyList(Generic[T]):
    """Sequence of entity references resolved on access.

    Example:
        >>> project = await db.load(Project, project_id)
        >>> first = await project.tasks.get(0)   # one fetch
        >>> again = await project.tasks.get(0)   # cached
        >>> async for task in project.tasks:     # fetches the rest
        ...     print(task.title)
    """

    def __init__(self, values: Iterable[T] = (), *, resolver: Resolver | None = None) -> None:
        self._slots: list[Slot] = [Resolved(v) for v in values]
        self._resolver = resolver

    @classmethod
    def of_references(
        cls,
        references: Iterable[Unresolved],
        resolver: Resolver,
    ) -> LazyList[Any]:
        """Build a list of placeholders bound to a resolver."""
        lazy: LazyList[Any] = cls(resolver=resolver)
        lazy._slots = list(references)
        return lazy

    def bind(self, resolver: Resolver) -> None:
        """Attach the loader used to resolve placeholders."""
        self._resolver = resolver

    # --- slot inspection ---

    def slot(self, index: int) -> Slot:
        return self._slots[index]

    def slots(self) -> tuple[Slot, ...]:
        return tuple(self._slots)

    def is_resolved(self, index: int) -> bool:
        return isinstance(self._slots[index], Resolved)

    def identity_at(self, index: int) -> uuid.UUID | None:
        """Identity at a position without resolving it."""
        slot = self._slots[index]
        if isinstance(slot, Unresolved):
            return slot.identity
        return getattr(slot.value, "id", None)

    # --- resolution ---

    async def _resolve(self, index: int) -> T:
        slot = self._slots[index]
        if isinstance(slot, Resolved):
            return slot.value
        if self._resolver is None:
            raise UnresolvedReferenceError(index, slot.source, slot.identity)
        value = await self._resolver(slot.source, slot.identity)
        if slot.join_id is not None:
            value.join_id = slot.join_id
        self._slots[index] = Resolved(value)
        return value

    async def get(self, index: int) -> T:
        """Resolve (if needed) and return the element at ``index``."""
        if index < 0:
            index += len(self._slots)
        if not 0 <= index < len(self._slots):
            raise IndexError("LazyList index out of range")
        return await self._resolve(index)

    async def resolve_all(self) -> list[T]:
        """Resolve every slot in order and return the values."""
        return [await self._resolve(i) for i in range(len(self._slots))]

    async def __aiter__(self) -> AsyncIterator[T]:
        i = 0
        while i < len(self._slots):
            yield await self._resolve(i)
            i += 1

    async def remove(self, value: T) -> None:
        """Remove the first element equal to ``value``.

        Placeholders before the match are resolved during the scan.

        Raises:
            ValueError: If no element matches
        """
        for i in range(len(self._slots)):
            current = await self._resolve(i)
            if current is value or current == value:
                del self._slots[i]
                return
        raise ValueError("LazyList.remove(x): x not in list")

    # --- synchronous sequence protocol (no I/O) ---

    def __len__(self) -> int:
        return len(self._slots)

    def __getitem__(self, index: int) -> T:
        slot = self._slots[index]
        if isinstance(slot, Unresolved):
            raise UnresolvedReferenceError(index, slot.source, slot.identity)
        return slot.value

    def __setitem__(self, index: int, value: T) -> None:
        self._slots[index] = Resolved(value)

    def __delitem__(self, index: int) -> None:
        del self._slots[index]

    def __iter__(self) -> Iterator[T]:
        for i in range(len(self._slots)):
            yield self[i]

    def __contains__(self, value: object) -> bool:
        return any(
            isinstance(s, Resolved) and (s.value is value or s.value == value)
            for s in self._slots
        )

    def index(self, value: T) -> int:
        """Position of the first resolved element equal to ``value``."""
        for i, s in enumerate(self._slots):
            if isinstance(s, Resolved) and (s.value is value or s.value == value):
                return i
        raise ValueError("LazyList.index(x): x not in list")

    def append(self, value: T) -> None:
        self._slots.append(Resolved(value))

    def insert(self, index: int, value: T) -> None:
        self._slots.insert(index, Resolved(value))

    def extend(self, values: Iterable[T]) -> None:
        self._slots.extend(Resolved(v) for v in values)

    def clear(self) -> None:
        self._slots.clear()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, LazyList):
            return self._slots == other._slots
        if isinstance(other, list):
            if not all(isinstance(s, Resolved) for s in self._slots):
                return False
            return [s.value for s in self._slots] == other  # type: ignore[union-attr]
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        parts = [
            repr(s.value) if isinstance(s, Resolved) else f"<unresolved {s.source}/{s.identity}>"
            for s in self._slots
        ]
        return f"LazyList([{', '.join(parts)}])"
