"""
Unit tests for the in-memory document store.

Tests cover:
- Connection lifecycle
- Collection and index primitives
- Upsert semantics and key generation
- Testing helpers
"""

import pytest

from docgraph import ConnectivityError, DocumentStore, NotFoundError, WriteConflictError
from docgraph.store import MemoryDocumentStore


class TestMemoryDocumentStore:
    """Tests for MemoryDocumentStore."""

    @pytest.fixture
    async def store(self):
        """Create a connected store with one collection."""
        store = MemoryDocumentStore()
        await store.connect()
        await store.create_collection("Task")
        store.reset_calls()
        yield store
        await store.close()

    def test_implements_protocol(self):
        """The store satisfies DocumentStore."""
        assert isinstance(MemoryDocumentStore(), DocumentStore)

    @pytest.mark.asyncio
    async def test_requires_connection(self):
        """Primitives fail before connect()."""
        store = MemoryDocumentStore()
        with pytest.raises(ConnectivityError):
            await store.list_collections()

    @pytest.mark.asyncio
    async def test_upsert_generates_key(self, store):
        """Documents without id get a generated key."""
        result = await store.upsert("Task", {"title": "a"})

        assert result.inserted == 1
        assert len(result.generated_keys) == 1
        doc = await store.get("Task", result.generated_keys[0])
        assert doc == {"title": "a", "id": result.generated_keys[0]}

    @pytest.mark.asyncio
    async def test_upsert_replaces(self, store):
        """Upserting an existing id replaces the document."""
        await store.upsert("Task", {"id": "t1", "title": "a"})
        result = await store.upsert("Task", {"id": "t1", "title": "b"})

        assert result.replaced == 1
        assert result.generated_keys == []
        assert (await store.get("Task", "t1"))["title"] == "b"
        assert len(store.documents("Task")) == 1

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        """Missing documents come back as None."""
        assert await store.get("Task", "nope") is None

    @pytest.mark.asyncio
    async def test_missing_collection(self, store):
        """Unknown collections raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await store.get("Nope", "x")

    @pytest.mark.asyncio
    async def test_documents_are_copies(self, store):
        """Stored documents are detached from the caller's dict."""
        doc = {"id": "t1", "tags": ["a"]}
        await store.upsert("Task", doc)
        doc["tags"].append("b")
        assert (await store.get("Task", "t1"))["tags"] == ["a"]

    @pytest.mark.asyncio
    async def test_unencodable_document(self, store):
        """Values JSON cannot hold are reported as write errors."""
        result = await store.upsert("Task", {"id": "t1", "value": object()})
        assert result.errors == 1
        with pytest.raises(WriteConflictError):
            result.assert_no_errors("Task")

    @pytest.mark.asyncio
    async def test_query_by_index(self, store):
        """Queries need an index and keep insertion order."""
        with pytest.raises(NotFoundError):
            await store.query("Task", "owner", "u1")

        await store.create_index("Task", "owner")
        await store.wait_for_index("Task", "owner")
        await store.upsert("Task", {"id": "t2", "owner": "u1"})
        await store.upsert("Task", {"id": "t1", "owner": "u1"})
        await store.upsert("Task", {"id": "t3", "owner": "u2"})

        rows = await store.query("Task", "owner", "u1")
        assert [r["id"] for r in rows] == ["t2", "t1"]

    @pytest.mark.asyncio
    async def test_wait_for_missing_index(self, store):
        """Waiting on an index that was never created fails."""
        with pytest.raises(NotFoundError):
            await store.wait_for_index("Task", "owner")

    @pytest.mark.asyncio
    async def test_delete(self, store):
        """Delete reports how many documents went away."""
        await store.upsert("Task", {"id": "t1"})
        assert await store.delete("Task", "t1") == 1
        assert await store.delete("Task", "t1") == 0

    @pytest.mark.asyncio
    async def test_call_recording(self, store):
        """Every primitive call is recorded."""
        await store.upsert("Task", {"id": "t1"})
        await store.get("Task", "t1")
        await store.get("Task", "t1")

        assert store.count("get") == 2
        assert store.count("get", "Task") == 2
        assert store.count("upsert", "Other") == 0
        store.reset_calls()
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_injected_write_error(self, store):
        """Injected errors surface through WriteResult."""
        store.inject_write_error("Task", "disk full")
        result = await store.upsert("Task", {"id": "t1"})
        assert result.errors == 1
        assert result.first_error == "disk full"
        assert store.documents("Task") == []

        store.clear_write_errors()
        assert (await store.upsert("Task", {"id": "t1"})).inserted == 1
