"""
Deserializer: stored document -> object graph.

load(type, identity) fetches the document and rebuilds the entity field by
field from its capability table:

- identity from the reserved ``id`` key
- scalars through their ScalarType conversion (UUID, timestamp, pass-through)
- owned-single from ``<field>_id`` (``null`` yields None)
- owned-sequence from ``<field>_list``, in list order
- shared-sequence from the join relation, by ``parent_id``, in ``position``
  order; each child gets the join-row identity stamped on ``join_id``

Fields declared as ``LazyList[...]`` are filled with placeholders instead
of loaded children, whether the relation is owned or shared.

The entity is constructed before its eagerly loaded references, and stays
registered under (collection, id) until they are filled in. A reference
back to an entity still being built in the same load gets that instance,
so shared cycles load as cycles.

Invariants:
    - A missing document raises NotFoundError, never returns None
    - A document that does not fit the type raises SchemaMismatchError
"""

from __future__ import annotations

import logging
import math
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from ..errors import NotFoundError, SchemaError, SchemaMismatchError
from ..lazy import LazyList, Unresolved
from ..schema.registry import SchemaRegistry
from ..schema.types import ID_KEY, EntityTypeDef, FieldDef, FieldKind, JoinRelation
from ..store.base import Document, DocumentStore

logger = logging.getLogger(__name__)

Prepare = Callable[[EntityTypeDef], Awaitable[None]]

# Entities under construction in one load, keyed by (collection, id)
Building = dict[tuple[str, str], Any]

_MISSING = object()


class Deserializer:
    """Loads entity graphs."""

    def __init__(self, store: DocumentStore, registry: SchemaRegistry, prepare: Prepare) -> None:
        self._store = store
        self._registry = registry
        self._prepare = prepare

    async def load(self, cls_or_name: type | str, identity: Any) -> Any:
        """Load an entity (and its eager children) by identity.

        Args:
            cls_or_name: Entity class or collection name
            identity: Identity as UUID or string

        Raises:
            NotFoundError: If no document has this identity
            SchemaMismatchError: If the document does not fit the type
        """
        return await self._load(self._registry.entity_type(cls_or_name), str(identity), {})

    async def _load(self, entity_type: EntityTypeDef, key: str, building: Building) -> Any:
        await self._prepare(entity_type)

        document = await self._store.get(entity_type.name, key)
        if document is None:
            raise NotFoundError(f"{entity_type.name} '{key}' not found", entity_type.name, key)

        values: dict[str, Any] = {}
        pending: list[FieldDef] = []
        for f in entity_type.fields:
            if f.kind is FieldKind.IDENTITY:
                values[f.name] = self._convert(entity_type, f, document, ID_KEY)
            elif f.kind is FieldKind.SCALAR:
                values[f.name] = self._convert(entity_type, f, document, f.name)
            elif f.kind is FieldKind.OWNED_SINGLE:
                values[f.name] = None
                pending.append(f)
            elif f.lazy:
                values[f.name] = await self._load_reference(entity_type, f, document, key, building)
            else:
                values[f.name] = []
                pending.append(f)

        try:
            instance = entity_type.instantiate(values)
        except TypeError as e:
            raise SchemaError(
                f"Cannot construct {entity_type.name}: {e}",
                type_name=entity_type.name,
            ) from e

        building[(entity_type.name, key)] = instance
        try:
            for f in pending:
                f.set(instance, await self._load_reference(entity_type, f, document, key, building))
        finally:
            del building[(entity_type.name, key)]

        logger.debug("Loaded entity", extra={"collection": entity_type.name, "id": key})
        return instance

    def _raw(self, entity_type: EntityTypeDef, document: Document, key: str) -> Any:
        raw = document.get(key, _MISSING)
        if raw is _MISSING:
            raise SchemaMismatchError(
                f"{entity_type.name} document lacks '{key}'",
                entity_type.name,
                key,
            )
        return raw

    def _convert(self, entity_type: EntityTypeDef, f: FieldDef, document: Document, key: str) -> Any:
        raw = self._raw(entity_type, document, key)
        try:
            return f.scalar_type.decode(raw)
        except (ValueError, TypeError) as e:
            raise SchemaMismatchError(
                f"{entity_type.name}.{key}: cannot convert {raw!r} to {f.scalar_type.value}",
                entity_type.name,
                key,
            ) from e

    def _child_identity(self, f: FieldDef, raw: Any) -> Any:
        child_type = self._registry.entity_type(f.child_type)
        try:
            return child_type.identity.scalar_type.decode(raw)
        except (ValueError, TypeError) as e:
            raise SchemaMismatchError(
                f"Invalid {child_type.name} identity {raw!r} in '{f.name}'",
                child_type.name,
                f.name,
            ) from e

    async def _load_child(
        self, child_type: EntityTypeDef, identity: Any, building: Building
    ) -> Any:
        key = str(identity)
        child = building.get((child_type.name, key))
        if child is None:
            child = await self._load(child_type, key, building)
        return child

    async def _load_reference(
        self,
        entity_type: EntityTypeDef,
        f: FieldDef,
        document: Document,
        key: str,
        building: Building,
    ) -> Any:
        if f.kind is FieldKind.OWNED_SINGLE:
            raw = self._raw(entity_type, document, f.wire_key)
            if raw is None:
                return None
            child_type = self._registry.entity_type(f.child_type)
            return await self._load_child(child_type, self._child_identity(f, raw), building)

        if f.kind is FieldKind.OWNED_SEQUENCE:
            raw_ids = self._raw(entity_type, document, f.wire_key)
            if not isinstance(raw_ids, list):
                raise SchemaMismatchError(
                    f"{entity_type.name}.{f.wire_key} is not a list",
                    entity_type.name,
                    f.wire_key,
                )
            references = [(raw, None) for raw in raw_ids]
        else:
            references = await self._shared_references(entity_type, f, key)
        return await self._load_sequence(f, references, building)

    async def _shared_references(
        self,
        entity_type: EntityTypeDef,
        f: FieldDef,
        parent_key: str,
    ) -> list[tuple[Any, uuid.UUID]]:
        relation = entity_type.join_relation(f)
        rows = await self._store.query(relation.name, JoinRelation.PARENT_KEY, parent_key)
        rows = [r for r in rows if r.get(JoinRelation.FIELD_KEY, f.name) == f.name]

        # Rows written without a position keep store order, after positioned ones
        def position(row: Document) -> float:
            value = row.get(JoinRelation.POSITION_KEY)
            return value if isinstance(value, int) else math.inf

        references = []
        for row in sorted(rows, key=position):
            try:
                join_id = uuid.UUID(row[ID_KEY])
            except (KeyError, ValueError, TypeError) as e:
                raise SchemaMismatchError(
                    f"Join row in '{relation.name}' has no valid identity",
                    relation.name,
                    ID_KEY,
                ) from e
            references.append((self._raw(entity_type, row, JoinRelation.CHILD_KEY), join_id))
        return references

    async def _load_sequence(
        self,
        f: FieldDef,
        references: list[tuple[Any, uuid.UUID | None]],
        building: Building,
    ) -> list[Any] | LazyList[Any]:
        child_type = self._registry.entity_type(f.child_type)
        identities = [(self._child_identity(f, raw), join_id) for raw, join_id in references]

        if f.lazy:
            return LazyList.of_references(
                [Unresolved(identity, child_type.name, join_id) for identity, join_id in identities],
                self.load,
            )

        children = []
        for identity, join_id in identities:
            child = await self._load_child(child_type, identity, building)
            if join_id is not None:
                child.join_id = join_id
            children.append(child)
        return children
