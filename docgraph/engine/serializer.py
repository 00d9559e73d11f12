"""
Serializer: object graph -> wire documents.

store(entity) walks the capability table of the entity and writes it with
children first:

1. Owned-single and owned-sequence children are stored before the parent,
   so every identity the parent document references already exists.
2. The parent is upserted (replace on conflict). If it had no identity the
   store generates one and it is written back onto the entity.
3. Shared-sequence children are stored before the parent too, but their
   join rows are written after it, since they need the parent identity.

A consequence of this ordering is that owned references cannot form a
cycle: the ancestor's identity is not final while its children are being
stored. Such a cycle raises CyclicReferenceError.

Shared references may loop back (``a.friends = [b]; b.friends = [a]``). A
shared child that is already being stored further up is not stored again;
its join row references its identity, and when that identity is not known
yet the row is written once the whole graph has been stored.

Join rows are upserted by the join-row identity stamped on the child
(``join_id``), so storing a loaded graph again reuses the same rows. Only rows
the parent already has are reused; an identity observed under another parent
yields a new row. After a re-store, rows of the parent that the sequence no
longer mentions are removed.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ..errors import CyclicReferenceError
from ..lazy import LazyList, Resolved, Unresolved
from ..schema.registry import SchemaRegistry
from ..schema.types import ID_KEY, EntityTypeDef, FieldDef, FieldKind, JoinRelation
from ..store.base import Document, DocumentStore

logger = logging.getLogger(__name__)

Prepare = Callable[[EntityTypeDef], Awaitable[None]]


@dataclass
class _JoinWrite:
    """A join row staged until the parent identity is known."""

    relation: JoinRelation
    field_name: str
    child_id: Any
    join_id: Any
    position: int
    child: Any = None
    parent_id: Any = None


class Serializer:
    """Stores entity graphs.

    Attributes are shared with the owning DocGraph handle; the serializer
    keeps no state between calls.
    """

    def __init__(self, store: DocumentStore, registry: SchemaRegistry, prepare: Prepare) -> None:
        self._store = store
        self._registry = registry
        self._prepare = prepare

    async def store(self, entity: Any) -> Any:
        """Store an entity graph and return the root identity.

        Raises:
            WriteConflictError: If any upsert reports errors
            CyclicReferenceError: If an owned reference loops back
        """
        deferred: list[_JoinWrite] = []
        identity = await self._store_entity(entity, frozenset(), deferred)

        # Shared back-references to entities that had no identity while staged
        for write in deferred:
            child_type = self._registry.entity_type(type(write.child))
            write.child_id = child_type.identity.get(write.child)
            await self._upsert_join_row(write, write.parent_id, None)
        return identity

    async def _store_entity(
        self, entity: Any, ancestors: frozenset[int], deferred: list[_JoinWrite]
    ) -> Any:
        entity_type = self._registry.entity_type(type(entity))
        if id(entity) in ancestors:
            raise CyclicReferenceError(
                f"Owned reference cycle: {entity_type.name} is reached again "
                "while it is being stored",
                type_name=entity_type.name,
            )
        ancestors = ancestors | {id(entity)}
        await self._prepare(entity_type)

        document: Document = {}
        staged: list[_JoinWrite] = []

        for f in entity_type.fields:
            value = f.get(entity)
            if f.kind is FieldKind.IDENTITY:
                # Only send the identity if we have one; the store generates it otherwise
                if value is not None:
                    document[ID_KEY] = str(f.scalar_type.encode(value))
            elif f.kind is FieldKind.SCALAR:
                document[f.name] = f.scalar_type.encode(value)
            elif f.kind is FieldKind.OWNED_SINGLE:
                child_id = None
                if value is not None:
                    child_id = await self._store_entity(value, ancestors, deferred)
                document[f.wire_key] = None if child_id is None else str(child_id)
            elif f.kind is FieldKind.OWNED_SEQUENCE:
                child_ids = await self._store_sequence(value, ancestors, deferred)
                document[f.wire_key] = [str(c) for c in child_ids]
            elif f.kind is FieldKind.SHARED_SEQUENCE:
                staged.extend(await self._stage_shared(entity_type, f, value, ancestors, deferred))

        result = await self._store.upsert(entity_type.name, document)
        result.assert_no_errors(entity_type.name)

        identity_field = entity_type.identity
        if ID_KEY in document:
            identity = identity_field.get(entity)
        else:
            identity = identity_field.scalar_type.decode(result.generated_keys[0])
            identity_field.set(entity, identity)

        if entity_type.join_relations:
            await self._write_join_rows(
                entity_type, identity, staged, deferred, prune=result.replaced > 0
            )

        logger.debug(
            "Stored entity",
            extra={"collection": entity_type.name, "id": str(identity), "replaced": bool(result.replaced)},
        )
        return identity

    async def _store_sequence(
        self, value: Any, ancestors: frozenset[int], deferred: list[_JoinWrite]
    ) -> list[Any]:
        if value is None:
            return []
        if isinstance(value, LazyList):
            identities = []
            for slot in value.slots():
                if isinstance(slot, Unresolved):
                    # Not loaded, so not modified: reference it as is
                    identities.append(slot.identity)
                else:
                    identities.append(await self._store_entity(slot.value, ancestors, deferred))
            return identities
        return [await self._store_entity(child, ancestors, deferred) for child in value]

    async def _stage_shared(
        self,
        entity_type: EntityTypeDef,
        f: FieldDef,
        value: Any,
        ancestors: frozenset[int],
        deferred: list[_JoinWrite],
    ) -> list[_JoinWrite]:
        relation = entity_type.join_relation(f)
        staged: list[_JoinWrite] = []
        used_join_ids: set[Any] = set()

        if isinstance(value, LazyList):
            slots = list(value.slots())
        else:
            slots = [Resolved(child) for child in value or []]

        for position, slot in enumerate(slots):
            if isinstance(slot, Unresolved):
                child, child_id, join_id = None, slot.identity, slot.join_id
            elif id(slot.value) in ancestors:
                # Stored further up the graph; None until its own upsert completes
                child = slot.value
                child_id = self._registry.entity_type(type(child)).identity.get(child)
                join_id = getattr(child, "join_id", None) if child_id is not None else None
            else:
                child = slot.value
                child_id = await self._store_entity(child, ancestors, deferred)
                join_id = getattr(child, "join_id", None)

            # The same child listed twice gets a row per occurrence
            if join_id is not None and join_id in used_join_ids:
                join_id = None
            if join_id is not None:
                used_join_ids.add(join_id)

            staged.append(
                _JoinWrite(
                    relation=relation,
                    field_name=f.name,
                    child_id=child_id,
                    join_id=join_id,
                    position=position,
                    child=child,
                )
            )
        return staged

    async def _write_join_rows(
        self,
        entity_type: EntityTypeDef,
        parent_id: Any,
        staged: list[_JoinWrite],
        deferred: list[_JoinWrite],
        prune: bool,
    ) -> None:
        fields = {f.name for f in entity_type.fields_of(FieldKind.SHARED_SEQUENCE)}

        # Rows this parent already has; a new parent has none
        existing: dict[str, list[Document]] = {}
        if prune:
            for relation in entity_type.join_relations:
                existing[relation.name] = await self._store.query(
                    relation.name, JoinRelation.PARENT_KEY, str(parent_id)
                )
        owned = {
            (row[ID_KEY], row.get(JoinRelation.FIELD_KEY))
            for rows in existing.values()
            for row in rows
            if row.get(JoinRelation.FIELD_KEY) in fields
        }

        kept: set[str] = set()
        for write in staged:
            if write.child_id is None:
                write.parent_id = parent_id
                deferred.append(write)
                continue

            join_id = write.join_id
            # A join identity observed under another parent (or field) is not ours to reuse
            if join_id is not None and (str(join_id), write.field_name) not in owned:
                join_id = None
            kept.add(str(await self._upsert_join_row(write, parent_id, join_id)))

        # Rows this parent owned before the re-store but no longer lists
        for relation_name, rows in existing.items():
            for row in rows:
                if row.get(JoinRelation.FIELD_KEY) in fields and row[ID_KEY] not in kept:
                    await self._store.delete(relation_name, row[ID_KEY])
                    logger.debug(
                        "Removed stale join row",
                        extra={"relation": relation_name, "id": row[ID_KEY]},
                    )

    async def _upsert_join_row(self, write: _JoinWrite, parent_id: Any, join_id: Any) -> Any:
        row: Document = {
            JoinRelation.PARENT_KEY: str(parent_id),
            JoinRelation.CHILD_KEY: str(write.child_id),
            JoinRelation.FIELD_KEY: write.field_name,
            JoinRelation.POSITION_KEY: write.position,
        }
        if join_id is not None:
            row[ID_KEY] = str(join_id)

        result = await self._store.upsert(write.relation.name, row)
        result.assert_no_errors(write.relation.name)

        if join_id is None:
            join_id = uuid.UUID(result.generated_keys[0])
            if write.child is not None:
                write.child.join_id = join_id
        return join_id
