"""
Schema module for DocGraph.

This module provides the metadata side of the engine, including:
- Field markers (reference, reference_list, indexed, excluded)
- Capability table types (FieldDef, EntityTypeDef, JoinRelation)
- The introspector that builds capability tables from dataclasses
- Registry caching one table per entity class

Invariants:
    - Capability tables are built once per class and never mutated
    - Wire key names derived from field names are persistent data

How to change safely:
    - Add new markers with defaults that keep existing tables identical
    - Check registry fingerprints before and after a change
"""

from .introspect import classify, is_entity_class
from .markers import excluded, indexed, reference, reference_list
from .registry import (
    DuplicateRegistrationError,
    RegistryFrozenError,
    SchemaRegistry,
    entity,
    get_registry,
    reset_registry,
)
from .types import (
    Container,
    Entity,
    EntityTypeDef,
    FieldDef,
    FieldKind,
    JoinRelation,
    ScalarType,
    collection_name,
)

__all__ = [
    # Markers
    "reference",
    "reference_list",
    "indexed",
    "excluded",
    # Types
    "Entity",
    "EntityTypeDef",
    "FieldDef",
    "FieldKind",
    "ScalarType",
    "Container",
    "JoinRelation",
    "collection_name",
    # Introspection
    "classify",
    "is_entity_class",
    # Registry
    "SchemaRegistry",
    "RegistryFrozenError",
    "DuplicateRegistrationError",
    "entity",
    "get_registry",
    "reset_registry",
]
