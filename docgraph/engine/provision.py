"""
Schema provisioner.

Ensures the collections and indexes an entity type needs exist before the
engine first touches it:

- the type's own collection
- one index per secondary-indexed field
- one ``<field>_id`` index per owned-single reference
- the join relation of every shared-sequence field, indexed on both keys

Every step is check-then-create, so running it again is a no-op apart from
the existence checks. Two processes provisioning the same type at once can
both decide to create; the bundled backends treat the second create as a
no-op.

Invariants:
    - Nothing is created that already exists
    - Indexes are ready when ensure_schema returns
    - Failures propagate; nothing is retried
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..schema.types import EntityTypeDef
from ..store.base import DocumentStore

logger = logging.getLogger(__name__)


class SchemaProvisioner:
    """Creates missing collections and indexes for entity types.

    Example:
        >>> provisioner = SchemaProvisioner(store)
        >>> await provisioner.ensure_schema(registry.entity_type(Project))
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def ensure_schema(self, entity_type: EntityTypeDef) -> None:
        """Idempotently provision an entity type and its join relations.

        Args:
            entity_type: Capability table of the type
        """
        collections = set(await self._store.list_collections())

        await self._ensure_collection(entity_type.name, collections)
        await self._ensure_indexes(entity_type.name, entity_type.index_keys)

        for relation in entity_type.join_relations:
            await self._ensure_collection(relation.name, collections)
            await self._ensure_indexes(relation.name, relation.indexes)

    async def _ensure_collection(self, name: str, existing: set[str]) -> None:
        if name in existing:
            return
        await self._store.create_collection(name)
        existing.add(name)
        logger.info(f"Created collection: {name}")

    async def _ensure_indexes(self, collection: str, names: Iterable[str]) -> None:
        names = list(names)
        if not names:
            return
        existing = set(await self._store.list_indexes(collection))
        for name in names:
            if name in existing:
                continue
            await self._store.create_index(collection, name)
            logger.info(f"Created index: {collection}.{name}")
        await self._store.wait_for_index(collection, *names)
