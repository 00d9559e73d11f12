"""
Error types for DocGraph.

This module defines all exception types raised by the engine:
- DocGraphError: Base exception
- ConnectivityError: Backend connection issues
- WriteConflictError: Store reported errors for an upsert
- NotFoundError: Missing document, collection or index
- SchemaError: Invalid entity declaration
- SchemaMismatchError: Stored document does not fit the entity type
- CyclicReferenceError: Owned reference cycle during store
- UnresolvedReferenceError: Synchronous access to an unresolved lazy slot

Invariants:
    - All errors inherit from DocGraphError
    - Errors include context for debugging
    - Store driver errors are translated at the store boundary
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class DocGraphError(Exception):
    """Base exception for all DocGraph errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "DOCGRAPH_ERROR"
        self.details = details or {}


class ConnectivityError(DocGraphError):
    """Failed to reach the document store.

    Raised when:
    - Backend is not connected
    - Database file cannot be opened
    - Connection pool is exhausted or closed

    Never retried by the engine.
    """

    def __init__(
        self,
        message: str,
        database: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONNECTIVITY_ERROR",
            details={"database": database},
        )
        self.database = database


class WriteConflictError(DocGraphError):
    """An upsert reported errors.

    Raised immediately, aborting the store call. Children stored before
    the failing write are not rolled back.
    """

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="WRITE_CONFLICT",
            details={"collection": collection, "errors": errors or []},
        )
        self.collection = collection
        self.errors = errors or []


class NotFoundError(DocGraphError):
    """Resource not found.

    Raised when:
    - Document doesn't exist for the requested identity
    - Collection doesn't exist
    - Index doesn't exist for a query
    """

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class SchemaError(DocGraphError):
    """Entity type declaration is invalid.

    Raised when:
    - Entity class is not a dataclass or has no ``id`` field
    - A reference points at a non-entity type
    - Markers are combined in an unsupported way
    """

    def __init__(
        self,
        message: str,
        type_name: Optional[str] = None,
        field_name: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="SCHEMA_ERROR",
            details={"type_name": type_name, "field_name": field_name},
        )
        self.type_name = type_name
        self.field_name = field_name


class SchemaMismatchError(DocGraphError):
    """Stored document does not match the entity type.

    Raised when a document lacks an expected key or holds a value
    that cannot be converted to the declared field type.
    """

    def __init__(
        self,
        message: str,
        collection: str,
        field_name: str,
    ) -> None:
        super().__init__(
            message,
            code="SCHEMA_MISMATCH",
            details={"collection": collection, "field_name": field_name},
        )
        self.collection = collection
        self.field_name = field_name


class CyclicReferenceError(DocGraphError):
    """An owned reference points back at an entity still being stored."""

    def __init__(self, message: str, type_name: str) -> None:
        super().__init__(
            message,
            code="CYCLIC_REFERENCE",
            details={"type_name": type_name},
        )
        self.type_name = type_name


class UnresolvedReferenceError(DocGraphError):
    """A lazy slot was read synchronously before being resolved.

    Use ``await lazy.get(index)`` or ``async for`` to resolve it.
    """

    def __init__(self, index: int, source: str, identity: Any) -> None:
        super().__init__(
            f"Element {index} ({source}/{identity}) is not resolved; use 'await get({index})'",
            code="UNRESOLVED_REFERENCE",
            details={"index": index, "source": source, "identity": str(identity)},
        )
        self.index = index
        self.source = source
        self.identity = identity
