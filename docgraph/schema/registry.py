"""
Type registry for DocGraph.

This module caches one capability table per entity class:
- Registering entity classes (explicitly or on first use)
- Lookup by class or by collection name
- Schema fingerprinting

Child types reachable through reference fields are registered together
with their parent so that lazy placeholders can be resolved by collection
name. The registry can be frozen to prevent further registration.

Example:
    >>> from docgraph import entity, get_registry
    >>>
    >>> @entity
    ... @dataclass
    ... class User(Entity):
    ...     email: str = indexed(default="")
    >>> get_registry().entity_type(User).name
    'User'
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from collections.abc import Iterator
from typing import Any, TypeVar

from ..errors import SchemaError
from .introspect import classify
from .types import EntityTypeDef, collection_name

logger = logging.getLogger(__name__)

_C = TypeVar("_C", bound=type)

# Global registry
_global_registry: SchemaRegistry | None = None
_registry_lock = threading.Lock()


class RegistryFrozenError(Exception):
    """Registry is frozen and cannot be modified."""

    pass


class DuplicateRegistrationError(Exception):
    """Another class already owns this collection name."""

    pass


class SchemaRegistry:
    """Registry of entity capability tables.

    Example:
        >>> registry = SchemaRegistry()
        >>> registry.register(Project)   # also registers Task, Tag, ...
        >>> registry.freeze()
        'sha256:...'
    """

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._by_class: dict[type, EntityTypeDef] = {}
        self._by_name: dict[str, EntityTypeDef] = {}
        self._frozen = False
        self._fingerprint: str | None = None
        self._lock = threading.RLock()

    @property
    def frozen(self) -> bool:
        """Whether registry is frozen."""
        return self._frozen

    @property
    def fingerprint(self) -> str | None:
        """Schema fingerprint (available after freeze)."""
        return self._fingerprint

    def register(self, cls: type) -> EntityTypeDef:
        """Register an entity class and every entity type it references.

        Registering the same class twice returns the cached table.

        Raises:
            RegistryFrozenError: If registry is frozen and cls is new
            DuplicateRegistrationError: If another class uses the same collection
            SchemaError: If cls (or a referenced class) is not a valid entity
        """
        with self._lock:
            existing = self._by_class.get(cls)
            if existing is not None:
                return existing
            if self._frozen:
                raise RegistryFrozenError(f"Cannot register {cls.__name__}: registry is frozen")

            name = collection_name(cls)
            clash = self._by_name.get(name)
            if clash is not None:
                raise DuplicateRegistrationError(
                    f"collection '{name}' already registered for {clash.cls.__qualname__}"
                )

            entity_type = classify(cls)
            self._by_class[cls] = entity_type
            self._by_name[name] = entity_type
            logger.debug(
                "Registered entity type",
                extra={"collection": name, "fields": len(entity_type.fields)},
            )

            for f in entity_type.fields:
                if f.child_type is not None:
                    self.register(f.child_type)
            return entity_type

    def entity_type(self, cls_or_name: type | str) -> EntityTypeDef:
        """Get the capability table for a class or collection name.

        Unknown classes are registered on first use.

        Raises:
            SchemaError: If a collection name is unknown
        """
        if isinstance(cls_or_name, str):
            found = self._by_name.get(cls_or_name)
            if found is None:
                raise SchemaError(f"Unknown collection '{cls_or_name}'", type_name=cls_or_name)
            return found
        found = self._by_class.get(cls_or_name)
        if found is not None:
            return found
        return self.register(cls_or_name)

    def types(self) -> Iterator[EntityTypeDef]:
        """Iterate over all registered types."""
        yield from list(self._by_class.values())

    def freeze(self) -> str:
        """Freeze registry and compute fingerprint.

        Returns:
            Schema fingerprint

        Raises:
            RegistryFrozenError: If already frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")

            self._fingerprint = self._compute_fingerprint()
            self._frozen = True
            return self._fingerprint

    def _compute_fingerprint(self) -> str:
        """Compute SHA-256 fingerprint."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        hash_bytes = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        return f"sha256:{hash_bytes}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "entity_types": [
                self._by_name[name].to_dict() for name in sorted(self._by_name.keys())
            ],
        }

    def to_json(self, indent: int | None = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)


def get_registry() -> SchemaRegistry:
    """Get the global schema registry."""
    global _global_registry
    with _registry_lock:
        if _global_registry is None:
            _global_registry = SchemaRegistry()
        return _global_registry


def entity(cls: _C | None = None, *, collection: str | None = None) -> Any:
    """Class decorator registering an entity in the global registry.

    Apply it above ``@dataclass``. ``collection`` overrides the
    collection name (defaults to the class name).

    Example:
        >>> @entity(collection="people")
        ... @dataclass
        ... class Person(Entity):
        ...     name: str = ""
    """

    def wrap(target: _C) -> _C:
        if collection is not None:
            target.__collection__ = collection  # type: ignore[attr-defined]
        get_registry().register(target)
        return target

    if cls is None:
        return wrap
    return wrap(cls)


def reset_registry() -> None:
    """Reset the global registry (for testing only)."""
    global _global_registry
    with _registry_lock:
        _global_registry = None
