"""
Field metadata markers for entity dataclasses.

Each helper returns a ``dataclasses.field`` whose metadata tells the
introspector how the field participates in persistence:

- reference(): owned single child entity
- reference_list(): owned ordered sequence of child entities
- reference_list(shared=True): shared many-to-many sequence via join relation
- indexed(): scalar with a secondary store index
- excluded(): never serialized, loaded or walked

Example:
    >>> @dataclass
    ... class Project(Entity):
    ...     name: str = indexed(default="")
    ...     owner: User | None = reference(no_cascade=True)
    ...     tasks: list[Task] = reference_list()
    ...     tags: LazyList[Tag] = reference_list(shared=True)
"""

from __future__ import annotations

import dataclasses
from typing import Any

REFERENCE = "docgraph.reference"
SHARED = "docgraph.shared"
INDEXED = "docgraph.indexed"
EXCLUDED = "docgraph.excluded"
NO_CASCADE = "docgraph.no_cascade"

_MISSING = dataclasses.MISSING


def _field(metadata: dict[str, Any], default: Any, default_factory: Any, **kwargs: Any) -> Any:
    if default is not _MISSING:
        return dataclasses.field(default=default, metadata=metadata, **kwargs)
    if default_factory is not _MISSING:
        return dataclasses.field(default_factory=default_factory, metadata=metadata, **kwargs)
    return dataclasses.field(metadata=metadata, **kwargs)


def reference(*, no_cascade: bool = False, default: Any = None) -> Any:
    """Owned single reference.

    Args:
        no_cascade: Keep the child when the parent is trashed
        default: Default child (None)
    """
    return _field({REFERENCE: True, NO_CASCADE: no_cascade}, default, _MISSING)


def reference_list(*, shared: bool = False, default_factory: Any = list) -> Any:
    """Owned (or shared) reference sequence.

    The container is taken from the annotation: ``list[T]`` loads eagerly,
    ``LazyList[T]`` loads placeholders resolved on access. Entity
    construction turns whatever ``default_factory`` builds for a
    ``LazyList[T]`` field into a LazyList.
    """
    return _field({REFERENCE: True, SHARED: shared}, _MISSING, default_factory)


def indexed(*, default: Any = _MISSING, default_factory: Any = _MISSING) -> Any:
    """Scalar with a secondary index named after the field."""
    return _field({INDEXED: True}, default, default_factory)


def excluded(*, default: Any = None, default_factory: Any = _MISSING, **kwargs: Any) -> Any:
    """Field that never leaves the process."""
    if default_factory is not _MISSING:
        return _field({EXCLUDED: True}, _MISSING, default_factory, **kwargs)
    return _field({EXCLUDED: True}, default, _MISSING, **kwargs)
