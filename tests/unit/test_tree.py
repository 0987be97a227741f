"""Tests for tree search, forest assembly and the plan snapshot."""

from backend.app.models.common import HierarchyLevel
from backend.app.models.document import Chapter
from backend.app.models.task import Task
from backend.app.tree.search import (
    build_forest,
    find_by_id,
    flatten_with_parent,
    iter_breadth_first,
    next_order_index,
)
from backend.app.tree.snapshot import PlanSnapshot


def _chapter(chapter_id: str, parent_id: str | None = None, order_index: int = 0) -> Chapter:
    return Chapter(
        id=chapter_id,
        document_id="doc-1",
        parent_id=parent_id,
        title=chapter_id.upper(),
        order_index=order_index,
    )


def test_iter_breadth_first_visits_levels_in_order(snapshot: PlanSnapshot) -> None:
    """Test that roots come before their children."""
    ids = [chapter.id for chapter in iter_breadth_first(snapshot.chapters)]

    assert ids == ["c1", "c2", "c3"]


def test_find_by_id_reaches_nested_nodes(snapshot: PlanSnapshot) -> None:
    """Test that lookup searches the whole forest."""
    assert find_by_id(snapshot.chapters, "c3").title == "Competitors"
    assert find_by_id(snapshot.tasks, "t2").hierarchy_level == HierarchyLevel.h2
    assert find_by_id(snapshot.chapters, "missing") is None
    assert find_by_id(snapshot.chapters, None) is None


def test_find_by_id_has_no_depth_limit() -> None:
    """Test that a very deep chain is searched without recursion limits."""
    rows = [_chapter("n0")] + [_chapter(f"n{i}", parent_id=f"n{i - 1}") for i in range(1, 2000)]

    forest = build_forest(rows, parent_of=lambda chapter: chapter.parent_id)

    assert find_by_id(forest, "n1999") is not None


def test_build_forest_orders_siblings_and_copies_rows() -> None:
    """Test that children are ordered by order_index and input rows stay untouched."""
    rows = [
        _chapter("b", order_index=1),
        _chapter("a", order_index=0),
        _chapter("a2", parent_id="a", order_index=1),
        _chapter("a1", parent_id="a", order_index=0),
    ]

    forest = build_forest(rows, parent_of=lambda chapter: chapter.parent_id)

    assert [root.id for root in forest] == ["a", "b"]
    assert [child.id for child in forest[0].children] == ["a1", "a2"]
    assert all(row.children == [] for row in rows)


def test_build_forest_drops_orphans_and_cycles() -> None:
    """Test that rows unreachable from a root are not returned."""
    rows = [
        _chapter("root"),
        _chapter("orphan", parent_id="ghost"),
        _chapter("x", parent_id="y"),
        _chapter("y", parent_id="x"),
    ]

    forest = build_forest(rows, parent_of=lambda chapter: chapter.parent_id)

    assert [node.id for node in iter_breadth_first(forest)] == ["root"]


def test_flatten_with_parent_pairs_nodes(snapshot: PlanSnapshot) -> None:
    """Test that every node is paired with its parent."""
    pairs = {
        node.id: parent.id if parent else None
        for node, parent in flatten_with_parent(snapshot.tasks)
    }

    assert pairs == {"t1": None, "t3": None, "t2": "t1"}


def test_next_order_index() -> None:
    """Test that new siblings go after the current maximum."""
    assert next_order_index([]) == 0
    assert next_order_index([_chapter("a", order_index=0), _chapter("b", order_index=4)]) == 5


def test_snapshot_helpers(snapshot: PlanSnapshot) -> None:
    """Test snapshot lookups used by the translator."""
    assert snapshot.plan_id == "doc-1"
    assert snapshot.section("s2").chapter_id == "c1"
    assert [task.id for task in snapshot.h1_tasks()] == ["t1", "t3"]
    assert [task.id for task in snapshot.tasks_flat()] == ["t1", "t3", "t2"]
    assert [chapter.id for chapter in snapshot.siblings_of_chapter(None)] == ["c1", "c2"]
    assert [chapter.id for chapter in snapshot.siblings_of_chapter("c1")] == ["c3"]
    assert snapshot.siblings_of_chapter("missing") == []


def test_build_forest_works_for_tasks() -> None:
    """Test that the same assembly serves the task outline."""
    rows = [
        Task(id="h2", plan_id="p", parent_task_id="h1", title="Child", hierarchy_level="h2"),
        Task(id="h1", plan_id="p", title="Parent"),
    ]

    forest = build_forest(rows, parent_of=lambda task: task.parent_task_id)

    assert forest[0].id == "h1"
    assert forest[0].children[0].id == "h2"
