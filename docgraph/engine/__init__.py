"""
Persistence engine for DocGraph.

This module provides the recursive graph walks:
- SchemaProvisioner: idempotent collection/index creation
- Serializer: store an object graph, children first, join rows last
- Deserializer: rebuild an object graph by identity
- CascadeDelete: remove an entity and its owned descendants

All walks are asynchronous and driven by the capability tables in the
schema registry; none of them inspects classes directly.
"""

from .deserializer import Deserializer
from .provision import SchemaProvisioner
from .serializer import Serializer
from .trash import CascadeDelete

__all__ = [
    "SchemaProvisioner",
    "Serializer",
    "Deserializer",
    "CascadeDelete",
]
