"""
Blocking wrapper for DocGraph.

For hosts without an event loop (scripts, WSGI apps). Each call blocks on
the same coroutine the async API runs, on a private event loop owned by
the wrapper, so ordering and semantics are identical.

Must not be used from inside a running event loop.

Example:
    >>> with SyncDocGraph.connect(Settings(backend="memory")) as db:
    ...     project_id = db.store(Project(name="docs"))
    ...     project = db.load(Project, project_id)
    ...     first = db.get(project.tags, 0)
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, TypeVar

from .config import Settings
from .lazy import LazyList
from .schema.registry import SchemaRegistry
from .session import DocGraph

E = TypeVar("E")
T = TypeVar("T")


class SyncDocGraph:
    """Blocking facade over a DocGraph handle."""

    def __init__(self, graph: DocGraph, runner: asyncio.Runner | None = None) -> None:
        self.graph = graph
        self._runner = runner or asyncio.Runner()

    @classmethod
    def connect(
        cls,
        settings: Settings | None = None,
        *,
        registry: SchemaRegistry | None = None,
    ) -> SyncDocGraph:
        """Create and connect the configured backend."""
        runner = asyncio.Runner()
        graph = runner.run(DocGraph.connect(settings, registry=registry))
        return cls(graph, runner)

    @property
    def frozen(self) -> bool:
        return self.graph.frozen

    def freeze(self) -> None:
        self.graph.freeze()

    def ensure_schema(self, cls: type) -> None:
        self._runner.run(self.graph.ensure_schema(cls))

    def store(self, entity: Any) -> Any:
        return self._runner.run(self.graph.store(entity))

    def load(self, cls: type[E], identity: uuid.UUID | str) -> E:
        return self._runner.run(self.graph.load(cls, identity))

    def trash(self, entity: Any, *, recursive: bool = True) -> None:
        self._runner.run(self.graph.trash(entity, recursive=recursive))

    def get(self, lazy: LazyList[T], index: int) -> T:
        """Resolve one element of a lazy list."""
        return self._runner.run(lazy.get(index))

    def resolve_all(self, lazy: LazyList[T]) -> list[T]:
        """Resolve every element of a lazy list."""
        return self._runner.run(lazy.resolve_all())

    def close(self) -> None:
        try:
            self._runner.run(self.graph.close())
        finally:
            self._runner.close()

    def __enter__(self) -> SyncDocGraph:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
