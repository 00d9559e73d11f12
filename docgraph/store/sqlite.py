"""
SQLite document store for DocGraph.

This module stores every collection of a database in one SQLite file:
- One table per collection: ``(id TEXT PRIMARY KEY, doc TEXT)``
- Documents are JSON text; ``id`` is duplicated into the key column
- Secondary indexes are expression indexes on ``json_extract(doc, '$.<field>')``

Invariants:
    - One SQLite file per database
    - Every write is a single transaction
    - Query results come back in insertion (rowid) order; replace keeps rowid
    - Index creation is synchronous, so an existing index is always ready

How to change safely:
    - Table layout is persistent; add columns only with defaults
    - Test with large datasets before production
    - Monitor SQLite file size and performance
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..errors import ConnectivityError, NotFoundError
from .base import Document, WriteResult, encode_document

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _check_identifier(name: str) -> str:
    """Collection and field names are interpolated into SQL; allow identifiers only."""
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid collection or field name: {name!r}")
    return name


def _index_name(collection: str, field_name: str) -> str:
    return f"ix_{collection}__{field_name}"


class SqliteDocumentStore:
    """SQLite-backed implementation of DocumentStore.

    Thread safety:
        Each operation opens its own connection.
        SQLite handles concurrent access via WAL mode.

    Example:
        >>> store = SqliteDocumentStore("/var/lib/docgraph", "app")
        >>> await store.connect()
        >>> await store.create_collection("Task")
        >>> await store.create_index("Task", "status")
    """

    def __init__(
        self,
        data_dir: str,
        database: str = "docgraph",
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        cache_size_pages: int = -64000,
    ) -> None:
        """Initialize the store.

        Args:
            data_dir: Directory for SQLite database files
            database: Database name (file stem)
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            cache_size_pages: SQLite cache size (negative = KB)
        """
        self.data_dir = Path(data_dir)
        self.database = database
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def db_path(self) -> Path:
        """Database file path."""
        # Sanitize database name to prevent path traversal
        safe_name = "".join(c for c in self.database if c.isalnum() or c in "-_")
        return self.data_dir / f"{safe_name}.db"

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection.

        Raises:
            ConnectivityError: If not connected, the file cannot be opened, or
                SQLite reports an operational error (locked, I/O)
        """
        if not self._connected:
            raise ConnectivityError("Store not connected", database=self.database)

        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit by default, explicit transactions
            )
        except sqlite3.Error as e:
            raise ConnectivityError(f"Cannot open {self.db_path}: {e}", database=self.database) from e

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute(f"PRAGMA cache_size = {self.cache_size_pages}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        except sqlite3.OperationalError as e:
            # Locked or unreadable database
            raise ConnectivityError(f"SQLite error on {self.db_path}: {e}", database=self.database) from e
        finally:
            conn.close()

    def _require_table(self, conn: sqlite3.Connection, collection: str) -> None:
        cursor = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (collection,),
        )
        if cursor.fetchone() is None:
            raise NotFoundError(f"Collection '{collection}' does not exist", "collection", collection)

    async def connect(self) -> None:
        """Create the data directory and verify the database opens."""
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConnectivityError(f"Cannot create {self.data_dir}: {e}", database=self.database) from e

        self._connected = True
        try:
            with self._get_connection() as conn:
                conn.execute("SELECT 1")
        except ConnectivityError:
            self._connected = False
            raise
        except sqlite3.Error as e:
            self._connected = False
            raise ConnectivityError(f"Cannot open {self.db_path}: {e}", database=self.database) from e

        logger.info(f"Connected to SQLite document store: {self.db_path}")

    async def close(self) -> None:
        self._connected = False

    async def list_collections(self) -> list[str]:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' "
                "AND name NOT LIKE 'sqlite_%' ORDER BY name"
            )
            return [row[0] for row in cursor.fetchall()]

    async def create_collection(self, name: str) -> None:
        _check_identifier(name)
        with self._get_connection() as conn:
            conn.execute(
                f'CREATE TABLE IF NOT EXISTS "{name}" (id TEXT PRIMARY KEY, doc TEXT NOT NULL)'
            )

    async def list_indexes(self, collection: str) -> list[str]:
        _check_identifier(collection)
        prefix = _index_name(collection, "")
        with self._get_connection() as conn:
            self._require_table(conn, collection)
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = ? ORDER BY name",
                (collection,),
            )
            return [row[0][len(prefix):] for row in cursor.fetchall() if row[0].startswith(prefix)]

    async def create_index(self, collection: str, field_name: str) -> None:
        _check_identifier(collection)
        _check_identifier(field_name)
        with self._get_connection() as conn:
            self._require_table(conn, collection)
            conn.execute(
                f'CREATE INDEX IF NOT EXISTS "{_index_name(collection, field_name)}" '
                f"ON \"{collection}\"(json_extract(doc, '$.{field_name}'))"
            )

    async def wait_for_index(self, collection: str, *field_names: str) -> None:
        existing = set(await self.list_indexes(collection))
        for name in field_names:
            if name not in existing:
                raise NotFoundError(f"Index '{name}' does not exist on '{collection}'", "index", name)

    async def get(self, collection: str, key: str) -> Document | None:
        _check_identifier(collection)
        with self._get_connection() as conn:
            self._require_table(conn, collection)
            cursor = conn.execute(f'SELECT doc FROM "{collection}" WHERE id = ?', (key,))
            row = cursor.fetchone()
            return json.loads(row[0]) if row else None

    async def upsert(self, collection: str, document: Document) -> WriteResult:
        _check_identifier(collection)
        doc = dict(document)
        generated = []
        if doc.get("id") is None:
            doc["id"] = str(uuid.uuid4())
            generated.append(doc["id"])
        try:
            raw = encode_document(doc)
        except (TypeError, ValueError) as e:
            return WriteResult(errors=1, first_error=str(e))

        with self._get_connection() as conn:
            self._require_table(conn, collection)
            conn.execute("BEGIN IMMEDIATE")
            try:
                existed = conn.execute(
                    f'SELECT 1 FROM "{collection}" WHERE id = ?', (doc["id"],)
                ).fetchone() is not None
                conn.execute(
                    f'INSERT INTO "{collection}" (id, doc) VALUES (?, ?) '
                    "ON CONFLICT(id) DO UPDATE SET doc = excluded.doc",
                    (doc["id"], raw),
                )
                conn.execute("COMMIT")
            except sqlite3.IntegrityError as e:
                conn.execute("ROLLBACK")
                return WriteResult(errors=1, first_error=str(e))
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.debug(
            "Upserted document",
            extra={"collection": collection, "id": doc["id"], "replaced": existed},
        )
        if existed:
            return WriteResult(replaced=1)
        return WriteResult(inserted=1, generated_keys=generated)

    async def query(self, collection: str, index: str, value: Any) -> list[Document]:
        _check_identifier(collection)
        _check_identifier(index)
        if index not in await self.list_indexes(collection):
            raise NotFoundError(f"Index '{index}' does not exist on '{collection}'", "index", index)
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"SELECT doc FROM \"{collection}\" WHERE json_extract(doc, '$.{index}') = ? "
                "ORDER BY rowid",
                (value,),
            )
            return [json.loads(row[0]) for row in cursor.fetchall()]

    async def delete(self, collection: str, key: str) -> int:
        _check_identifier(collection)
        with self._get_connection() as conn:
            self._require_table(conn, collection)
            cursor = conn.execute(f'DELETE FROM "{collection}" WHERE id = ?', (key,))
            return cursor.rowcount
