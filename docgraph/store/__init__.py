"""
Document store abstraction for DocGraph.

This module provides a pluggable backend interface supporting:
- SQLite (one file per database)
- In-memory (for testing)

Invariants:
    - Backends expose only the primitives in DocumentStore
    - upsert replaces by ``id`` and generates keys when missing
    - Driver errors are translated into DocGraph errors at this boundary

How to change safely:
    - New backends must implement DocumentStore protocol
    - Run the integration suite against every backend
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import Document, DocumentStore, WriteResult, encode_document
from .memory import MemoryDocumentStore, StoreCall
from .sqlite import SqliteDocumentStore

if TYPE_CHECKING:
    from ..config import Settings


def create_document_store(settings: Settings) -> DocumentStore:
    """Factory function to create a document store from configuration.

    Args:
        settings: DocGraph settings

    Returns:
        Appropriate DocumentStore implementation (not yet connected)

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend

    if settings.backend == StoreBackend.SQLITE:
        return SqliteDocumentStore(
            settings.data_dir,
            settings.database,
            wal_mode=settings.wal_mode,
            busy_timeout_ms=settings.busy_timeout_ms,
            cache_size_pages=settings.cache_size_pages,
        )
    elif settings.backend == StoreBackend.MEMORY:
        return MemoryDocumentStore(settings.database)
    else:
        raise ValueError(f"Unsupported store backend: {settings.backend}")


__all__ = [
    # Protocol and types
    "DocumentStore",
    "Document",
    "WriteResult",
    "encode_document",
    # Factory
    "create_document_store",
    # Implementations
    "MemoryDocumentStore",
    "SqliteDocumentStore",
    "StoreCall",
]
