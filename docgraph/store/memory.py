"""
In-memory document store implementation for testing.

This module provides a simple in-memory backend for:
- Unit tests
- Integration tests
- Local development without a database file

Invariants:
    - All data is lost on process exit
    - Documents go through a JSON round trip, like a real wire
    - Query order is insertion order; a replace keeps the original position
    - Every primitive call is recorded for assertions

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with DocumentStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any

from ..errors import ConnectivityError, NotFoundError
from .base import Document, WriteResult, encode_document

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreCall:
    """One recorded primitive call."""

    op: str
    collection: str | None = None
    key: str | None = None


@dataclass
class _Collection:
    documents: dict[str, str]
    indexes: set[str]


class MemoryDocumentStore:
    """In-memory implementation of DocumentStore for testing.

    Attributes:
        database: Database name (informational)
        calls: Every primitive call in order

    Example:
        >>> store = MemoryDocumentStore()
        >>> await store.connect()
        >>> await store.create_collection("Task")
        >>> result = await store.upsert("Task", {"title": "x"})
        >>> store.count("upsert", "Task")
        1
    """

    def __init__(self, database: str = "docgraph") -> None:
        """Initialize in-memory store.

        Args:
            database: Database name
        """
        self.database = database
        self.calls: list[StoreCall] = []
        self._collections: dict[str, _Collection] = {}
        self._write_errors: dict[str, str] = {}
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("MemoryDocumentStore connected", extra={"database": self.database})

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._collections.clear()
        logger.debug("MemoryDocumentStore closed", extra={"database": self.database})

    def _record(self, op: str, collection: str | None = None, key: str | None = None) -> None:
        if not self._connected:
            raise ConnectivityError("Store not connected", database=self.database)
        self.calls.append(StoreCall(op, collection, key))

    def _collection(self, name: str) -> _Collection:
        found = self._collections.get(name)
        if found is None:
            raise NotFoundError(f"Collection '{name}' does not exist", "collection", name)
        return found

    async def list_collections(self) -> list[str]:
        self._record("list_collections")
        return list(self._collections)

    async def create_collection(self, name: str) -> None:
        self._record("create_collection", name)
        self._collections.setdefault(name, _Collection(documents={}, indexes=set()))

    async def list_indexes(self, collection: str) -> list[str]:
        self._record("list_indexes", collection)
        return sorted(self._collection(collection).indexes)

    async def create_index(self, collection: str, field_name: str) -> None:
        self._record("create_index", collection, field_name)
        self._collection(collection).indexes.add(field_name)

    async def wait_for_index(self, collection: str, *field_names: str) -> None:
        self._record("wait_for_index", collection)
        indexes = self._collection(collection).indexes
        for name in field_names:
            if name not in indexes:
                raise NotFoundError(f"Index '{name}' does not exist on '{collection}'", "index", name)

    async def get(self, collection: str, key: str) -> Document | None:
        self._record("get", collection, key)
        raw = self._collection(collection).documents.get(key)
        return json.loads(raw) if raw is not None else None

    async def upsert(self, collection: str, document: Document) -> WriteResult:
        self._record("upsert", collection, document.get("id"))
        target = self._collection(collection)

        if collection in self._write_errors:
            return WriteResult(errors=1, first_error=self._write_errors[collection])

        doc = dict(document)
        generated = []
        if doc.get("id") is None:
            doc["id"] = str(uuid.uuid4())
            generated.append(doc["id"])
        try:
            raw = encode_document(doc)
        except (TypeError, ValueError) as e:
            return WriteResult(errors=1, first_error=str(e))

        existed = doc["id"] in target.documents
        target.documents[doc["id"]] = raw
        if existed:
            return WriteResult(replaced=1)
        return WriteResult(inserted=1, generated_keys=generated)

    async def query(self, collection: str, index: str, value: Any) -> list[Document]:
        self._record("query", collection, index)
        target = self._collection(collection)
        if index not in target.indexes:
            raise NotFoundError(f"Index '{index}' does not exist on '{collection}'", "index", index)
        docs = (json.loads(raw) for raw in target.documents.values())
        return [d for d in docs if d.get(index) == value]

    async def delete(self, collection: str, key: str) -> int:
        self._record("delete", collection, key)
        target = self._collection(collection)
        return 1 if target.documents.pop(key, None) is not None else 0

    # --- Testing helpers ---

    def count(self, op: str, collection: str | None = None) -> int:
        """Number of recorded calls of ``op`` (optionally on one collection)."""
        return sum(
            1 for c in self.calls if c.op == op and (collection is None or c.collection == collection)
        )

    def reset_calls(self) -> None:
        """Forget recorded calls."""
        self.calls.clear()

    def inject_write_error(self, collection: str, message: str = "injected write error") -> None:
        """Make every upsert to ``collection`` report an error."""
        self._write_errors[collection] = message

    def clear_write_errors(self) -> None:
        self._write_errors.clear()

    def documents(self, collection: str) -> list[Document]:
        """All documents of a collection (no call recorded)."""
        target = self._collections.get(collection)
        if target is None:
            return []
        return [json.loads(raw) for raw in target.documents.values()]
