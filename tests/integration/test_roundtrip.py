"""
Integration tests for storing and loading entity graphs.

Tests cover:
- Scalar, owned and shared round trips
- Identity assignment
- Join row reuse, reordering and pruning
- Lazy collections and fetch counts
- Error propagation
"""

import uuid
from datetime import datetime, timezone

import pytest

from docgraph import (
    CyclicReferenceError,
    DocGraph,
    LazyList,
    NotFoundError,
    SchemaMismatchError,
    SchemaRegistry,
    WriteConflictError,
)
from docgraph.store import MemoryDocumentStore
from tests.models import Board, Node, Person, Project, Shelf, Tag, Task, User


@pytest.fixture
async def store():
    """Create a connected in-memory store."""
    store = MemoryDocumentStore()
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def graph(store):
    """Create a handle with a private registry."""
    return DocGraph(store, registry=SchemaRegistry())


def _project():
    return Project(
        name="docs",
        budget=12.5,
        external_ref=uuid.uuid4(),
        created_at=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        owner=User(email="owner@example.com", name="Owner"),
        lead=User(email="lead@example.com", name="Lead"),
        tasks=[Task(title="A"), Task(title="B", done=True), Task(title="C")],
        tags=[Tag(label="x"), Tag(label="y")],
    )


class TestStoreAndLoad:
    """Round trips through store() and load()."""

    @pytest.mark.asyncio
    async def test_full_graph_round_trip(self, graph):
        """A loaded graph equals the stored one."""
        project = _project()
        project_id = await graph.store(project)

        loaded = await graph.load(Project, project_id)

        assert loaded == project
        assert isinstance(loaded.external_ref, uuid.UUID)
        assert loaded.created_at == project.created_at

    @pytest.mark.asyncio
    async def test_owned_sequence_order(self, graph):
        """Owned sequences come back in stored order."""
        project_id = await graph.store(_project())
        loaded = await graph.load(Project, project_id)
        assert [t.title for t in loaded.tasks] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_shared_sequence_order(self, graph):
        """Shared sequences come back in stored order."""
        tags = [Tag(label=label) for label in "dcba"]
        project_id = await graph.store(Project(name="p", tags=tags))
        loaded = await graph.load(Project, project_id)
        assert [t.label for t in loaded.tags] == ["d", "c", "b", "a"]

    @pytest.mark.asyncio
    async def test_wire_format(self, graph, store):
        """Documents use the reserved keys for references."""
        project = _project()
        await graph.store(project)

        doc = store.documents("Project")[0]
        assert doc["id"] == str(project.id)
        assert doc["owner_id"] == str(project.owner.id)
        assert doc["tasks_list"] == [str(t.id) for t in project.tasks]
        assert "tags" not in doc
        assert "scratch" not in doc
        assert "join_id" not in doc

    @pytest.mark.asyncio
    async def test_none_child(self, graph, store):
        """An empty owned-single reference is stored as null."""
        project_id = await graph.store(Project(name="solo"))

        assert store.documents("Project")[0]["owner_id"] is None
        loaded = await graph.load(Project, project_id)
        assert loaded.owner is None
        assert loaded.tasks == []

    @pytest.mark.asyncio
    async def test_excluded_field_not_persisted(self, graph):
        """Excluded fields come back with their default."""
        project_id = await graph.store(Project(name="p", scratch="temp"))
        loaded = await graph.load(Project, project_id)
        assert loaded.scratch == ""

    @pytest.mark.asyncio
    async def test_load_by_string_identity(self, graph):
        """Identities may be passed as strings."""
        project_id = await graph.store(Project(name="p"))
        loaded = await graph.load(Project, str(project_id))
        assert loaded.id == project_id

    @pytest.mark.asyncio
    async def test_children_written_first(self, graph, store):
        """Children are upserted before their parent."""
        await graph.store(_project())
        order = [c.collection for c in store.calls if c.op == "upsert"]
        assert order.index("Project") > max(i for i, c in enumerate(order) if c == "Task")
        assert order.index("Project_Tag") > order.index("Project")


class TestIdentity:
    """Identity assignment."""

    @pytest.mark.asyncio
    async def test_generated_once(self, graph, store):
        """A new entity gets an identity that later stores keep."""
        task = Task(title="t")
        assert task.id is None

        first = await graph.store(task)
        task.title = "renamed"
        second = await graph.store(task)

        assert isinstance(first, uuid.UUID)
        assert first == second == task.id
        assert len(store.documents("Task")) == 1
        assert store.documents("Task")[0]["title"] == "renamed"

    @pytest.mark.asyncio
    async def test_preassigned_kept(self, graph):
        """A caller-supplied identity is used as is."""
        identity = uuid.uuid4()
        task = Task(id=identity, title="t")

        assert await graph.store(task) == identity
        assert task.id == identity

    @pytest.mark.asyncio
    async def test_child_identities_assigned(self, graph):
        """Every stored child receives its identity."""
        project = _project()
        await graph.store(project)
        assert all(t.id is not None for t in project.tasks)
        assert all(t.id is not None for t in project.tags)
        assert project.owner.id is not None


class TestJoinRows:
    """Join relation maintenance."""

    @pytest.mark.asyncio
    async def test_rows_written(self, graph, store):
        """Each shared child gets one positioned join row."""
        project = _project()
        await graph.store(project)

        rows = store.documents("Project_Tag")
        assert [(r["parent_id"], r["child_id"], r["field"], r["position"]) for r in rows] == [
            (str(project.id), str(project.tags[0].id), "tags", 0),
            (str(project.id), str(project.tags[1].id), "tags", 1),
        ]
        assert [t.join_id for t in project.tags] == [uuid.UUID(r["id"]) for r in rows]

    @pytest.mark.asyncio
    async def test_restore_reuses_rows(self, graph, store):
        """Storing the same graph again does not duplicate join rows."""
        project = _project()
        await graph.store(project)
        await graph.store(project)

        loaded = await graph.load(Project, project.id)
        await graph.store(loaded)

        assert len(store.documents("Project_Tag")) == 2

    @pytest.mark.asyncio
    async def test_removed_child_pruned(self, graph, store):
        """Rows of children no longer listed are removed."""
        project = _project()
        await graph.store(project)

        loaded = await graph.load(Project, project.id)
        removed = loaded.tags.pop(0)
        await graph.store(loaded)

        rows = store.documents("Project_Tag")
        assert [r["child_id"] for r in rows] == [str(loaded.tags[0].id)]
        assert str(removed.id) in {d["id"] for d in store.documents("Tag")}

    @pytest.mark.asyncio
    async def test_reorder(self, graph):
        """Reordering a shared sequence is persisted."""
        project_id = await graph.store(Project(name="p", tags=[Tag(label="1"), Tag(label="2")]))

        loaded = await graph.load(Project, project_id)
        loaded.tags.reverse()
        await graph.store(loaded)

        again = await graph.load(Project, project_id)
        assert [t.label for t in again.tags] == ["2", "1"]

    @pytest.mark.asyncio
    async def test_shared_child_in_two_parents(self, graph, store):
        """One child can be shared by several parents."""
        tag = Tag(label="common")
        first = await graph.store(Project(name="a", tags=[tag]))
        second = await graph.store(Project(name="b", tags=[tag]))

        assert len(store.documents("Tag")) == 1
        assert (await graph.load(Project, first)).tags[0].id == tag.id
        assert (await graph.load(Project, second)).tags[0].id == tag.id

    @pytest.mark.asyncio
    async def test_same_child_twice(self, graph, store):
        """Listing a child twice keeps both occurrences."""
        tag = Tag(label="twice")
        project_id = await graph.store(Project(name="p", tags=[tag, tag]))

        loaded = await graph.load(Project, project_id)
        assert [t.id for t in loaded.tags] == [tag.id, tag.id]
        assert len(store.documents("Project_Tag")) == 2

    @pytest.mark.asyncio
    async def test_rows_without_position(self, graph, store):
        """Rows lacking a position load after positioned ones."""
        tag_a, tag_b = Tag(label="a"), Tag(label="b")
        project_id = await graph.store(Project(name="p", tags=[tag_a]))
        await graph.store(tag_b)
        await store.upsert(
            "Project_Tag",
            {"parent_id": str(project_id), "child_id": str(tag_b.id), "field": "tags"},
        )

        loaded = await graph.load(Project, project_id)
        assert [t.label for t in loaded.tags] == ["a", "b"]


class TestLazyLoading:
    """LazyList fields."""

    @pytest.fixture
    async def board_id(self, graph):
        """Store a board with three cards and two labels."""
        board = Board(
            title="b",
            cards=LazyList([Task(title="1"), Task(title="2"), Task(title="3")]),
            labels=LazyList([Tag(label="x"), Tag(label="y")]),
        )
        return await graph.store(board)

    @pytest.mark.asyncio
    async def test_load_fetches_no_children(self, graph, store, board_id):
        """Loading the parent fetches none of the lazy children."""
        store.reset_calls()
        board = await graph.load(Board, board_id)

        assert len(board.cards) == 3
        assert len(board.labels) == 2
        assert store.count("get", "Task") == 0
        assert store.count("get", "Tag") == 0

    @pytest.mark.asyncio
    async def test_each_position_fetched_once(self, graph, store, board_id):
        """Accessing a position fetches exactly that child, once."""
        board = await graph.load(Board, board_id)
        store.reset_calls()

        second = await board.cards.get(1)
        await board.cards.get(1)
        assert second.title == "2"
        assert store.count("get", "Task") == 1

        titles = [t.title async for t in board.cards]
        assert titles == ["1", "2", "3"]
        assert store.count("get", "Task") == 3

    @pytest.mark.asyncio
    async def test_shared_lazy_join_ids(self, graph, store, board_id):
        """Lazily loaded shared children carry their join identity."""
        board = await graph.load(Board, board_id)
        labels = await board.labels.resolve_all()

        rows = store.documents("Board_Tag")
        assert [t.join_id for t in labels] == [uuid.UUID(r["id"]) for r in rows]

    @pytest.mark.asyncio
    async def test_restore_without_resolving(self, graph, store, board_id):
        """Unresolved placeholders are stored by reference without fetching."""
        board = await graph.load(Board, board_id)
        board.cards.append(Task(title="4"))
        store.reset_calls()

        await graph.store(board)

        assert store.count("get") == 0
        assert len(store.documents("Board_Tag")) == 2
        again = await graph.load(Board, board_id)
        assert [t.title for t in await again.cards.resolve_all()] == ["1", "2", "3", "4"]

    @pytest.mark.asyncio
    async def test_round_trip_after_resolve(self, graph, board_id):
        """Resolved lazy lists compare equal to the stored values."""
        first = await graph.load(Board, board_id)
        second = await graph.load(Board, board_id)
        await first.cards.resolve_all()
        await second.cards.resolve_all()
        assert first.cards == second.cards


class TestErrors:
    """Error propagation."""

    @pytest.mark.asyncio
    async def test_not_found(self, graph):
        """Loading an unknown identity raises NotFoundError."""
        await graph.ensure_schema(Task)
        with pytest.raises(NotFoundError) as exc_info:
            await graph.load(Task, uuid.uuid4())
        assert exc_info.value.resource_type == "Task"

    @pytest.mark.asyncio
    async def test_missing_key(self, graph, store):
        """A document without an expected key raises SchemaMismatchError."""
        await graph.ensure_schema(Task)
        await store.upsert("Task", {"id": "00000000-0000-0000-0000-000000000001", "title": "t"})

        with pytest.raises(SchemaMismatchError) as exc_info:
            await graph.load(Task, "00000000-0000-0000-0000-000000000001")
        assert exc_info.value.field_name == "done"

    @pytest.mark.asyncio
    async def test_unconvertible_value(self, graph, store):
        """A value that cannot be converted raises SchemaMismatchError."""
        task = Task(title="t")
        await graph.store(task)
        doc = store.documents("Task")[0]
        doc["due"] = "yesterday"
        await store.upsert("Task", doc)

        with pytest.raises(SchemaMismatchError):
            await graph.load(Task, task.id)

    @pytest.mark.asyncio
    async def test_write_error_aborts(self, graph, store):
        """A failing child write aborts before the parent is written."""
        await graph.ensure_schema(Project)
        await graph.ensure_schema(Task)
        store.inject_write_error("Task", "rejected")

        with pytest.raises(WriteConflictError) as exc_info:
            await graph.store(_project())

        assert exc_info.value.collection == "Task"
        assert store.documents("Project") == []

    @pytest.mark.asyncio
    async def test_owned_cycle(self, graph):
        """An owned reference back to an ancestor is rejected."""
        a = Node(label="a")
        b = Node(label="b", next=a)
        a.next = b

        with pytest.raises(CyclicReferenceError, match="Owned reference cycle: Node"):
            await graph.store(a)

    @pytest.mark.asyncio
    async def test_self_cycle(self, graph):
        """An entity cannot own itself."""
        node = Node(label="loop")
        node.next = node
        with pytest.raises(CyclicReferenceError):
            await graph.store(node)

    @pytest.mark.asyncio
    async def test_chain_is_not_a_cycle(self, graph):
        """A linear owned chain stores fine."""
        head = Node(label="1", next=Node(label="2", next=Node(label="3")))
        head_id = await graph.store(head)

        loaded = await graph.load(Node, head_id)
        assert loaded.next.next.label == "3"
        assert loaded.next.next.next is None


class TestSharedCycles:
    """Shared references that loop back to an entity on the path."""

    @pytest.fixture
    def friends(self):
        """Two people listing each other."""
        a = Person(name="a")
        b = Person(name="b")
        a.friends = [b]
        b.friends = [a]
        return a, b

    @pytest.mark.asyncio
    async def test_mutual_references_store(self, graph, store, friends):
        """Each side gets a join row pointing at the other."""
        a, b = friends

        a_id = await graph.store(a)

        assert a_id == a.id
        assert b.id is not None
        rows = store.documents("Person_Person")
        assert sorted((r["parent_id"], r["child_id"]) for r in rows) == sorted(
            [(str(a.id), str(b.id)), (str(b.id), str(a.id))]
        )
        by_parent = {r["parent_id"]: uuid.UUID(r["id"]) for r in rows}
        assert b.join_id == by_parent[str(a.id)]
        assert a.join_id == by_parent[str(b.id)]

    @pytest.mark.asyncio
    async def test_each_entity_written_once(self, graph, store, friends):
        """An entity on the path is referenced, not stored a second time."""
        await graph.store(friends[0])
        assert store.count("upsert", "Person") == 2

    @pytest.mark.asyncio
    async def test_self_reference(self, graph, store):
        """An entity may list itself as a shared child."""
        loner = Person(name="loner")
        loner.friends = [loner]

        await graph.store(loner)

        rows = store.documents("Person_Person")
        assert [(r["parent_id"], r["child_id"]) for r in rows] == [(str(loner.id), str(loner.id))]

    @pytest.mark.asyncio
    async def test_preassigned_identities(self, graph, store):
        """With identities already set, rows are written while walking."""
        a = Person(id=uuid.uuid4(), name="a")
        b = Person(id=uuid.uuid4(), name="b", friends=[a])
        a.friends = [b]

        await graph.store(a)

        rows = store.documents("Person_Person")
        assert {r["child_id"] for r in rows} == {str(a.id), str(b.id)}

    @pytest.mark.asyncio
    async def test_restore_reuses_rows(self, graph, store, friends):
        """Storing the cycle again keeps the same join rows."""
        a, _ = friends
        await graph.store(a)
        before = sorted(r["id"] for r in store.documents("Person_Person"))

        await graph.store(a)

        assert sorted(r["id"] for r in store.documents("Person_Person")) == before

    @pytest.mark.asyncio
    async def test_load_closes_the_cycle(self, graph, friends):
        """Loading reuses the instance being built instead of recursing."""
        a_id = await graph.store(friends[0])

        loaded = await graph.load(Person, a_id)

        assert loaded.name == "a"
        assert loaded.friends[0].name == "b"
        assert loaded.friends[0].friends[0] is loaded

    @pytest.mark.asyncio
    async def test_loaded_cycle_stores_again(self, graph, store, friends):
        """A loaded cycle can be stored without new rows."""
        a_id = await graph.store(friends[0])
        loaded = await graph.load(Person, a_id)
        before = sorted(r["id"] for r in store.documents("Person_Person"))

        loaded.friends[0].name = "renamed"
        await graph.store(loaded)

        assert sorted(r["id"] for r in store.documents("Person_Person")) == before
        assert (await graph.load(Person, friends[1].id)).name == "renamed"


class TestLazyDefaults:
    """LazyList fields built without an explicit LazyList."""

    def test_default_is_lazy_list(self):
        """A fresh entity gets an empty LazyList."""
        shelf = Shelf()
        assert isinstance(shelf.books, LazyList)
        assert len(shelf.books) == 0

    def test_plain_list_coerced(self):
        """A plain list passed to the constructor becomes a LazyList."""
        shelf = Shelf(books=[Tag(label="x")])
        assert isinstance(shelf.books, LazyList)
        assert shelf.books[0].label == "x"

    @pytest.mark.asyncio
    async def test_get_on_fresh_entity(self):
        """Appended children are reachable through get()."""
        shelf = Shelf()
        shelf.books.append(Tag(label="x"))
        assert (await shelf.books.get(0)).label == "x"

    @pytest.mark.asyncio
    async def test_round_trip(self, graph):
        """A coerced LazyList stores and loads like an explicit one."""
        shelf_id = await graph.store(Shelf(title="s", books=[Tag(label="x"), Tag(label="y")]))

        loaded = await graph.load(Shelf, shelf_id)

        assert not loaded.books.is_resolved(0)
        assert [t.label for t in await loaded.books.resolve_all()] == ["x", "y"]
