"""
Metadata introspector.

Classifies every field of an entity dataclass into a FieldDef, producing
the EntityTypeDef capability table the engine walks. This is the only
place that reads annotations and field metadata; the engine itself never
inspects classes at runtime.

Invariants:
    - Pure: no I/O, no registry access
    - Field order follows dataclass declaration order
    - Excluded and underscore-prefixed fields never appear in the table
"""

from __future__ import annotations

import collections.abc
import dataclasses
import functools
import types
import typing
import uuid
from datetime import datetime
from typing import Any

from ..errors import SchemaError
from ..lazy import LazyList
from .markers import EXCLUDED, INDEXED, NO_CASCADE, REFERENCE, SHARED
from .types import (
    ID_KEY,
    Container,
    EntityTypeDef,
    FieldDef,
    FieldKind,
    ScalarType,
    collection_name,
)

_EAGER_ORIGINS = (
    list,
    tuple,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
)


def _strip_optional(annotation: Any) -> Any:
    """``X | None`` -> ``X``."""
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _scalar_type(annotation: Any) -> ScalarType:
    annotation = _strip_optional(annotation)
    if not isinstance(annotation, type):
        return ScalarType.ANY
    if issubclass(annotation, uuid.UUID):
        return ScalarType.UUID
    if issubclass(annotation, datetime):
        return ScalarType.TIMESTAMP
    return ScalarType.ANY


def is_entity_class(candidate: Any) -> bool:
    """Whether a class can be persisted (dataclass with an ``id`` field)."""
    if not isinstance(candidate, type) or not dataclasses.is_dataclass(candidate):
        return False
    return any(f.name == ID_KEY for f in dataclasses.fields(candidate))


def _child_type(owner: type, name: str, annotation: Any) -> type:
    child = _strip_optional(annotation)
    if not is_entity_class(child):
        raise SchemaError(
            f"Reference field '{name}' of {owner.__name__} must point at an entity "
            f"dataclass, got {child!r}",
            type_name=owner.__name__,
            field_name=name,
        )
    return child


def _type_hints(cls: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(cls)
    except (NameError, TypeError) as e:
        raise SchemaError(
            f"Cannot resolve annotations of {cls.__name__}: {e}",
            type_name=cls.__name__,
        ) from e


def _classify_field(owner: type, f: dataclasses.Field, annotation: Any) -> FieldDef:
    meta = f.metadata

    if f.name == ID_KEY:
        if meta.get(REFERENCE):
            raise SchemaError(
                "Identity field cannot be a reference",
                type_name=owner.__name__,
                field_name=f.name,
            )
        return FieldDef(
            name=f.name,
            kind=FieldKind.IDENTITY,
            scalar_type=_scalar_type(annotation),
            init=f.init,
        )

    if not meta.get(REFERENCE):
        return FieldDef(
            name=f.name,
            kind=FieldKind.SCALAR,
            scalar_type=_scalar_type(annotation),
            indexed=bool(meta.get(INDEXED)),
            init=f.init,
        )

    origin = typing.get_origin(_strip_optional(annotation))
    if origin is LazyList or origin in _EAGER_ORIGINS:
        args = typing.get_args(_strip_optional(annotation))
        if not args:
            raise SchemaError(
                f"Sequence field '{f.name}' needs an element type",
                type_name=owner.__name__,
                field_name=f.name,
            )
        return FieldDef(
            name=f.name,
            kind=FieldKind.SHARED_SEQUENCE if meta.get(SHARED) else FieldKind.OWNED_SEQUENCE,
            child_type=_child_type(owner, f.name, args[0]),
            container=Container.LAZY if origin is LazyList else Container.EAGER,
            init=f.init,
        )

    if meta.get(SHARED):
        raise SchemaError(
            f"Shared reference '{f.name}' must be declared as a sequence",
            type_name=owner.__name__,
            field_name=f.name,
        )

    return FieldDef(
        name=f.name,
        kind=FieldKind.OWNED_SINGLE,
        child_type=_child_type(owner, f.name, annotation),
        no_cascade=bool(meta.get(NO_CASCADE)),
        init=f.init,
    )


def classify(cls: type) -> EntityTypeDef:
    """Build the capability table for an entity class.

    Args:
        cls: Entity dataclass

    Returns:
        EntityTypeDef with participating fields in declaration order

    Raises:
        SchemaError: If the class cannot be persisted
    """
    if not isinstance(cls, type) or not dataclasses.is_dataclass(cls):
        raise SchemaError(f"{cls!r} is not a dataclass", type_name=getattr(cls, "__name__", None))

    hints = _type_hints(cls)

    fields = tuple(
        _classify_field(cls, f, hints.get(f.name, Any))
        for f in dataclasses.fields(cls)
        if not f.metadata.get(EXCLUDED) and not f.name.startswith("_")
    )

    if not any(f.kind is FieldKind.IDENTITY for f in fields):
        raise SchemaError(f"{cls.__name__} has no '{ID_KEY}' field", type_name=cls.__name__)

    return EntityTypeDef(cls=cls, name=collection_name(cls), fields=fields)


@functools.lru_cache(maxsize=None)
def lazy_fields(cls: type) -> frozenset[str]:
    """Names of the reference sequences of ``cls`` declared as ``LazyList[...]``."""
    hints = _type_hints(cls)
    return frozenset(
        f.name
        for f in dataclasses.fields(cls)
        if f.metadata.get(REFERENCE)
        and typing.get_origin(_strip_optional(hints.get(f.name, Any))) is LazyList
    )
