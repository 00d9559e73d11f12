"""
Entity types used across the test suite.

Defined at module level so that annotations resolve during classification.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from docgraph import (
    Entity,
    LazyList,
    SchemaRegistry,
    excluded,
    indexed,
    reference,
    reference_list,
)


@dataclass
class User(Entity):
    email: str = indexed(default="")
    name: str = ""


@dataclass
class Tag(Entity):
    label: str = ""


@dataclass
class Task(Entity):
    title: str = ""
    done: bool = False
    due: datetime | None = None


@dataclass
class Project(Entity):
    name: str = indexed(default="")
    budget: float = 0.0
    external_ref: uuid.UUID | None = None
    created_at: datetime | None = None
    owner: User | None = reference(no_cascade=True)
    lead: User | None = reference()
    tasks: list[Task] = reference_list()
    tags: list[Tag] = reference_list(shared=True)
    scratch: str = excluded(default="")


@dataclass
class Board(Entity):
    title: str = ""
    cards: LazyList[Task] = reference_list(default_factory=LazyList)
    labels: LazyList[Tag] = reference_list(shared=True, default_factory=LazyList)


@dataclass
class Node(Entity):
    label: str = ""
    next: Node | None = reference()


@dataclass
class Person(Entity):
    name: str = ""
    friends: list[Person] = reference_list(shared=True)


@dataclass
class Shelf(Entity):
    title: str = ""
    books: LazyList[Tag] = reference_list(shared=True)


# Registry picked up by ``docgraph-schema --module tests.models``
registry = SchemaRegistry()
for _cls in (Project, Board, Node):
    registry.register(_cls)
