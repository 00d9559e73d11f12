"""
Base protocol and types for the document store abstraction.

This module defines the DocumentStore protocol that every backend must
implement. These are the only primitives the engine consumes; connection
pooling, query execution and transport belong to the backend.

Invariants:
    - Documents are flat JSON objects keyed by the reserved ``id``
    - upsert replaces an existing document with the same ``id``
    - upsert generates a key when the document has none
    - query returns documents in a stable, store-defined order

How to change safely:
    - Protocol changes require updating all implementations
    - Keep primitives idempotent where the engine relies on it
"""

from __future__ import annotations

import json
import logging
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from ..errors import WriteConflictError

logger = logging.getLogger(__name__)

Document = dict[str, Any]


@dataclass
class WriteResult:
    """Outcome of an upsert.

    Attributes:
        inserted: Documents inserted
        replaced: Documents replaced
        generated_keys: Keys generated by the store, in write order
        errors: Number of failed writes
        first_error: Message of the first failure
    """

    inserted: int = 0
    replaced: int = 0
    generated_keys: list[str] = field(default_factory=list)
    errors: int = 0
    first_error: str | None = None

    def assert_no_errors(self, collection: str) -> None:
        """Raise WriteConflictError if the store reported errors."""
        if self.errors:
            raise WriteConflictError(
                f"Write to '{collection}' failed: {self.first_error}",
                collection=collection,
                errors=[self.first_error or "unknown error"],
            )


def encode_document(document: Document) -> str:
    """Serialize a document to its JSON wire form.

    Raises:
        TypeError: If the document holds a value JSON cannot represent
    """
    return json.dumps(document, separators=(",", ":"))


@runtime_checkable
class DocumentStore(Protocol):
    """Protocol for document store backends.

    Example:
        >>> store = SqliteDocumentStore("/var/lib/docgraph", "app")
        >>> await store.connect()
        >>> result = await store.upsert("Task", {"title": "Write docs"})
        >>> task_id = result.generated_keys[0]
    """

    @property
    def is_connected(self) -> bool: ...

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the backend.

        Raises:
            ConnectivityError: If the backend cannot be reached
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        ...

    @abstractmethod
    async def list_collections(self) -> list[str]:
        """Names of existing collections."""
        ...

    @abstractmethod
    async def create_collection(self, name: str) -> None:
        """Create a collection (no-op if it already exists)."""
        ...

    @abstractmethod
    async def list_indexes(self, collection: str) -> list[str]:
        """Names of secondary indexes on a collection."""
        ...

    @abstractmethod
    async def create_index(self, collection: str, field_name: str) -> None:
        """Create a secondary index on a top-level field."""
        ...

    @abstractmethod
    async def wait_for_index(self, collection: str, *field_names: str) -> None:
        """Block until the named indexes (all if none given) are ready."""
        ...

    @abstractmethod
    async def get(self, collection: str, key: str) -> Document | None:
        """Fetch a document by key, None if absent."""
        ...

    @abstractmethod
    async def upsert(self, collection: str, document: Document) -> WriteResult:
        """Insert or replace a document, generating ``id`` when missing."""
        ...

    @abstractmethod
    async def query(self, collection: str, index: str, value: Any) -> list[Document]:
        """Documents whose indexed field equals ``value``.

        Raises:
            NotFoundError: If the collection or index does not exist
        """
        ...

    @abstractmethod
    async def delete(self, collection: str, key: str) -> int:
        """Delete a document by key. Returns the number deleted (0 or 1)."""
        ...
