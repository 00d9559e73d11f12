"""
DocGraph handle.

The handle ties one document store to one type registry and carries the
frozen flag. Every engine operation goes through it; there is no global
connection.

Example:
    >>> async with await DocGraph.connect(Settings(backend="memory")) as db:
    ...     project_id = await db.store(Project(name="docs"))
    ...     project = await db.load(Project, project_id)
    ...     await db.trash(project)

Invariants:
    - A type is provisioned at most once per handle
    - Once frozen, a handle never provisions again
    - Operations on one entity instance must not run concurrently
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, TypeVar

from .config import Settings
from .engine import CascadeDelete, Deserializer, SchemaProvisioner, Serializer
from .schema.registry import SchemaRegistry, get_registry
from .schema.types import EntityTypeDef
from .store import DocumentStore, create_document_store

logger = logging.getLogger(__name__)

E = TypeVar("E")


class DocGraph:
    """Context handle for storing, loading and trashing entity graphs.

    Attributes:
        backend: Connected document store
        registry: Entity type registry
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        registry: SchemaRegistry | None = None,
        frozen: bool = False,
    ) -> None:
        """Initialize the handle.

        Args:
            store: Connected document store
            registry: Type registry (global registry if not provided)
            frozen: Start with schema provisioning disabled
        """
        self.backend = store
        self.registry = registry if registry is not None else get_registry()
        self._frozen = frozen
        self._provisioned: set[str] = set()
        self._provisioner = SchemaProvisioner(store)
        self._serializer = Serializer(store, self.registry, self._prepare)
        self._deserializer = Deserializer(store, self.registry, self._prepare)
        self._cascade = CascadeDelete(store, self.registry, self._prepare)

    @classmethod
    async def connect(
        cls,
        settings: Settings | None = None,
        *,
        registry: SchemaRegistry | None = None,
    ) -> DocGraph:
        """Create and connect the configured backend.

        Args:
            settings: DocGraph settings (loaded from env if not provided)
            registry: Type registry

        Raises:
            ConnectivityError: If the backend cannot be reached
        """
        settings = settings or Settings()
        store = create_document_store(settings)
        await store.connect()
        logger.info(
            "DocGraph connected",
            extra={"backend": settings.backend.value, "database": settings.database},
        )
        return cls(store, registry=registry, frozen=settings.frozen)

    @property
    def frozen(self) -> bool:
        """Whether schema auto-provisioning is disabled."""
        return self._frozen

    def freeze(self) -> None:
        """Permanently disable schema auto-provisioning for this handle."""
        if not self._frozen:
            self._frozen = True
            logger.info("Schema provisioning frozen")

    async def _prepare(self, entity_type: EntityTypeDef) -> None:
        if self._frozen or entity_type.name in self._provisioned:
            return
        await self._provisioner.ensure_schema(entity_type)
        self._provisioned.add(entity_type.name)

    async def ensure_schema(self, cls: type) -> None:
        """Provision a type now instead of on first use (no-op when frozen)."""
        await self._prepare(self.registry.entity_type(cls))

    async def store(self, entity: Any) -> Any:
        """Store an entity graph; returns (and assigns) the root identity."""
        return await self._serializer.store(entity)

    async def load(self, cls: type[E], identity: uuid.UUID | str) -> E:
        """Load an entity graph by identity."""
        return await self._deserializer.load(cls, identity)

    async def trash(self, entity: Any, *, recursive: bool = True) -> None:
        """Delete an entity and its join rows.

        Args:
            entity: Entity to delete
            recursive: Also delete owned descendants (no_cascade children
                are always kept)
        """
        await self._cascade.trash(entity, recursive=recursive)

    async def close(self) -> None:
        """Close the underlying store."""
        await self.backend.close()

    async def __aenter__(self) -> DocGraph:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
