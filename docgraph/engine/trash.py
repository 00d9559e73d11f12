"""
Cascade delete.

trash(entity) removes an entity and everything it owns:

- owned-single children are trashed recursively, unless marked no_cascade
- owned-sequence children are all trashed recursively (lazy placeholders
  are resolved first so their own children can be found)
- join rows whose ``parent_id`` is the entity are deleted; shared children
  themselves are left alone
- finally the entity's own document is deleted

trash(entity, recursive=False) skips the owned children: only the entity's
document and its join rows go.

There is no transaction around the walk. If a delete fails, whatever was
deleted before it stays deleted and the error propagates unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..lazy import LazyList
from ..schema.registry import SchemaRegistry
from ..schema.types import ID_KEY, EntityTypeDef, FieldKind, JoinRelation
from ..store.base import DocumentStore

logger = logging.getLogger(__name__)

Prepare = Callable[[EntityTypeDef], Awaitable[None]]


class CascadeDelete:
    """Deletes entity graphs."""

    def __init__(self, store: DocumentStore, registry: SchemaRegistry, prepare: Prepare) -> None:
        self._store = store
        self._registry = registry
        self._prepare = prepare

    async def trash(self, entity: Any, *, recursive: bool = True) -> None:
        """Delete an entity and, when recursive, its owned descendants."""
        entity_type = self._registry.entity_type(type(entity))
        await self._prepare(entity_type)
        identity = entity_type.identity.get(entity)

        if recursive:
            await self._trash_owned(entity_type, entity)

        if identity is None:
            logger.debug("Skipping never-stored entity", extra={"collection": entity_type.name})
            return

        for relation in entity_type.join_relations:
            await self._unlink(relation, str(identity))

        deleted = await self._store.delete(entity_type.name, str(identity))
        logger.debug(
            "Trashed entity",
            extra={"collection": entity_type.name, "id": str(identity), "deleted": deleted},
        )

    async def _trash_owned(self, entity_type: EntityTypeDef, entity: Any) -> None:
        for f in entity_type.fields:
            if f.kind is FieldKind.OWNED_SINGLE:
                child = f.get(entity)
                if child is not None and not f.no_cascade:
                    await self.trash(child)
            elif f.kind is FieldKind.OWNED_SEQUENCE:
                children = f.get(entity)
                if isinstance(children, LazyList):
                    async for child in children:
                        await self.trash(child)
                else:
                    for child in children or []:
                        await self.trash(child)

    async def _unlink(self, relation: JoinRelation, parent_key: str) -> None:
        rows = await self._store.query(relation.name, JoinRelation.PARENT_KEY, parent_key)
        for row in rows:
            await self._store.delete(relation.name, row[ID_KEY])
