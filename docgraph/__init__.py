"""
DocGraph - document-graph persistence for Python dataclasses.

This package maps in-memory object graphs to a schemaless document store:
- Entity dataclasses with field markers (reference, reference_list, indexed, excluded)
- Owned single references, owned sequences and shared many-to-many sequences
- Lazy reference collections resolved on access
- Cascade delete that spares shared children
- Automatic, idempotent collection and index provisioning

Example:
    >>> from dataclasses import dataclass
    >>> from docgraph import DocGraph, Entity, LazyList, Settings, reference_list
    >>>
    >>> @dataclass
    ... class Tag(Entity):
    ...     label: str = ""
    >>>
    >>> @dataclass
    ... class Post(Entity):
    ...     title: str = ""
    ...     tags: LazyList[Tag] = reference_list(shared=True)
    >>>
    >>> async with await DocGraph.connect(Settings(backend="memory")) as db:
    ...     post_id = await db.store(Post(title="Hello", tags=LazyList([Tag(label="intro")])))
    ...     post = await db.load(Post, post_id)
    ...     tag = await post.tags.get(0)

Invariants:
    - Identity is assigned once, at first successful store
    - Children are written before the parents that reference them
    - Shared children are never deleted by trash

Version: 1.0.0
"""

__version__ = "1.0.0"

from .config import Settings, StoreBackend
from .errors import (
    ConnectivityError,
    CyclicReferenceError,
    DocGraphError,
    NotFoundError,
    SchemaError,
    SchemaMismatchError,
    UnresolvedReferenceError,
    WriteConflictError,
)
from .lazy import LazyList, Resolved, Unresolved
from .log import setup_logging
from .schema import (
    Entity,
    EntityTypeDef,
    FieldDef,
    FieldKind,
    SchemaRegistry,
    entity,
    excluded,
    get_registry,
    indexed,
    reference,
    reference_list,
)
from .session import DocGraph
from .store import DocumentStore, MemoryDocumentStore, SqliteDocumentStore
from .sync import SyncDocGraph

__all__ = [
    # Version
    "__version__",
    # Handle
    "DocGraph",
    "SyncDocGraph",
    # Entities and markers
    "Entity",
    "entity",
    "reference",
    "reference_list",
    "indexed",
    "excluded",
    "LazyList",
    "Resolved",
    "Unresolved",
    # Schema
    "EntityTypeDef",
    "FieldDef",
    "FieldKind",
    "SchemaRegistry",
    "get_registry",
    # Stores
    "DocumentStore",
    "MemoryDocumentStore",
    "SqliteDocumentStore",
    # Configuration
    "Settings",
    "StoreBackend",
    "setup_logging",
    # Errors
    "DocGraphError",
    "ConnectivityError",
    "WriteConflictError",
    "NotFoundError",
    "SchemaError",
    "SchemaMismatchError",
    "CyclicReferenceError",
    "UnresolvedReferenceError",
]
