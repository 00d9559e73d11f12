"""
Capability table types for DocGraph.

This module provides the per-type capability table the engine walks:
- FieldKind: Tagged variant of how a field participates
- ScalarType: Wire conversion rule for scalar fields
- FieldDef: One classified field (kind, accessor, mutator, child type)
- EntityTypeDef: Ordered capability table for an entity class
- JoinRelation: Auxiliary collection for a shared-sequence field
- Entity: Base dataclass supplying identity and the hidden join-row identity

Invariants:
    - A FieldDef never changes after classification
    - Identity is the reserved ``id`` wire key, present only once assigned
    - Owned-single writes ``<field>_id``, owned-sequence writes ``<field>_list``
    - Shared-sequence contributes no key to the parent document

How to change safely:
    - New kinds need serializer, deserializer and trash support together
    - Wire key naming is persistent data; never rename existing keys
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar

from ..lazy import LazyList
from .markers import excluded

ID_KEY = "id"


class FieldKind(Enum):
    """How a field participates in persistence."""

    SCALAR = "scalar"
    IDENTITY = "identity"
    OWNED_SINGLE = "owned_single"
    OWNED_SEQUENCE = "owned_sequence"
    SHARED_SEQUENCE = "shared_sequence"

    @property
    def is_reference(self) -> bool:
        return self in (
            FieldKind.OWNED_SINGLE,
            FieldKind.OWNED_SEQUENCE,
            FieldKind.SHARED_SEQUENCE,
        )

    @property
    def is_sequence(self) -> bool:
        return self in (FieldKind.OWNED_SEQUENCE, FieldKind.SHARED_SEQUENCE)


class ScalarType(Enum):
    """Wire conversion rule for scalar values."""

    ANY = "any"
    UUID = "uuid"
    TIMESTAMP = "timestamp"

    def encode(self, value: Any) -> Any:
        """Convert an in-memory value to its wire form."""
        if value is None:
            return None
        if self is ScalarType.UUID:
            return str(value)
        if self is ScalarType.TIMESTAMP:
            return value.isoformat()
        return value

    def decode(self, raw: Any) -> Any:
        """Convert a wire value back. Raises ValueError/TypeError on bad input."""
        if raw is None:
            return None
        if self is ScalarType.UUID:
            return raw if isinstance(raw, uuid.UUID) else uuid.UUID(raw)
        if self is ScalarType.TIMESTAMP:
            return raw if isinstance(raw, datetime) else datetime.fromisoformat(raw)
        return raw


class Container(Enum):
    """Declared container of a sequence field."""

    EAGER = "list"
    LAZY = "lazy"


def collection_name(cls: type) -> str:
    """Collection backing an entity class."""
    return getattr(cls, "__collection__", None) or cls.__name__


@dataclass(frozen=True)
class FieldDef:
    """A classified entity field.

    Attributes:
        name: Attribute name on the entity
        kind: Participation kind
        scalar_type: Conversion rule (scalars and identity)
        child_type: Entity class referenced (reference kinds only)
        container: Eager or lazy (sequence kinds only)
        indexed: Create a secondary index on this field
        no_cascade: Keep the child when the parent is trashed
        init: Whether the dataclass constructor accepts this field
    """

    name: str
    kind: FieldKind
    scalar_type: ScalarType = ScalarType.ANY
    child_type: type | None = None
    container: Container | None = None
    indexed: bool = False
    no_cascade: bool = False
    init: bool = True

    @property
    def wire_key(self) -> str | None:
        """Key written into the parent document (None for shared sequences)."""
        if self.kind is FieldKind.IDENTITY:
            return ID_KEY
        if self.kind is FieldKind.OWNED_SINGLE:
            return f"{self.name}_id"
        if self.kind is FieldKind.OWNED_SEQUENCE:
            return f"{self.name}_list"
        if self.kind is FieldKind.SHARED_SEQUENCE:
            return None
        return self.name

    @property
    def lazy(self) -> bool:
        return self.container is Container.LAZY

    def get(self, entity: Any) -> Any:
        """Read this field from an entity."""
        return getattr(entity, self.name)

    def set(self, entity: Any, value: Any) -> None:
        """Write this field on an entity."""
        setattr(entity, self.name, value)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {"name": self.name, "kind": self.kind.value}
        if self.kind in (FieldKind.SCALAR, FieldKind.IDENTITY):
            result["scalar_type"] = self.scalar_type.value
        if self.child_type is not None:
            result["child_type"] = collection_name(self.child_type)
        if self.container is not None:
            result["container"] = self.container.value
        if self.indexed:
            result["indexed"] = True
        if self.no_cascade:
            result["no_cascade"] = True
        return result


@dataclass(frozen=True)
class JoinRelation:
    """Join relation recording a shared-sequence field.

    Rows: ``{id, parent_id, child_id, field, position}``.
    """

    PARENT_KEY: ClassVar[str] = "parent_id"
    CHILD_KEY: ClassVar[str] = "child_id"
    FIELD_KEY: ClassVar[str] = "field"
    POSITION_KEY: ClassVar[str] = "position"

    parent: str
    child: str

    @property
    def name(self) -> str:
        return f"{self.parent}_{self.child}"

    @property
    def indexes(self) -> tuple[str, str]:
        return (self.PARENT_KEY, self.CHILD_KEY)


@dataclass(frozen=True)
class EntityTypeDef:
    """Capability table of an entity class.

    Built once per class by the introspector and cached by the registry.

    Attributes:
        cls: The entity dataclass
        name: Backing collection name
        fields: Participating fields in declaration order
    """

    cls: type
    name: str
    fields: tuple[FieldDef, ...]

    def field(self, name: str) -> FieldDef | None:
        """Get a field by name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def identity(self) -> FieldDef:
        for f in self.fields:
            if f.kind is FieldKind.IDENTITY:
                return f
        raise LookupError(f"{self.name} has no identity field")

    def fields_of(self, *kinds: FieldKind) -> tuple[FieldDef, ...]:
        return tuple(f for f in self.fields if f.kind in kinds)

    @property
    def indexed_fields(self) -> tuple[FieldDef, ...]:
        return tuple(f for f in self.fields if f.indexed)

    @property
    def index_keys(self) -> tuple[str, ...]:
        """Wire keys indexed on the type's own collection.

        Secondary-indexed scalars by name, then every owned-single reference
        by its ``<field>_id`` key.
        """
        keys = [f.name for f in self.indexed_fields]
        keys.extend(f.wire_key for f in self.fields_of(FieldKind.OWNED_SINGLE))
        return tuple(keys)

    def join_relation(self, field_def: FieldDef) -> JoinRelation:
        """Join relation backing a shared-sequence field."""
        assert field_def.child_type is not None
        return JoinRelation(parent=self.name, child=collection_name(field_def.child_type))

    @property
    def join_relations(self) -> tuple[JoinRelation, ...]:
        seen: dict[str, JoinRelation] = {}
        for f in self.fields_of(FieldKind.SHARED_SEQUENCE):
            relation = self.join_relation(f)
            seen.setdefault(relation.name, relation)
        return tuple(seen.values())

    def instantiate(self, values: dict[str, Any]) -> Any:
        """Build an instance from field values.

        Constructor fields go through ``__init__`` so that defaults for
        non-participating fields apply; the rest are set afterwards.
        """
        init_args = {}
        late = {}
        for name, value in values.items():
            f = self.field(name)
            if f is not None and f.init:
                init_args[name] = value
            else:
                late[name] = value
        instance = self.cls(**init_args)
        for name, value in late.items():
            setattr(instance, name, value)
        return instance

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "fields": [f.to_dict() for f in self.fields],
            "join_relations": [r.name for r in self.join_relations],
        }


@dataclass(kw_only=True)
class Entity:
    """Base class for persisted entities.

    ``id`` is empty (None) until the first successful store. ``join_id``
    holds the join-row identity of a shared child as observed on load.
    """

    id: uuid.UUID | None = None
    join_id: uuid.UUID | None = excluded(repr=False, compare=False)

    def __post_init__(self) -> None:
        # Lazy sequences are LazyList whatever the default factory produced
        from .introspect import lazy_fields

        for name in lazy_fields(type(self)):
            value = getattr(self, name)
            if not isinstance(value, LazyList):
                setattr(self, name, LazyList(value or ()))
