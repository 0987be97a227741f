"""Tests for task and chapter hierarchy validation."""

import pytest

from backend.app.models.common import HierarchyLevel
from backend.app.models.document import Chapter
from backend.app.proposals.errors import StructuralViolation
from backend.app.proposals.hierarchy import validate_chapter_parent, validate_task_parent
from backend.app.tree.snapshot import PlanSnapshot


def test_h1_without_parent_is_valid(snapshot: PlanSnapshot) -> None:
    """Test that a root H1 task passes."""
    validate_task_parent(None, HierarchyLevel.h1, "doc-1", snapshot.task)


def test_h1_with_parent_is_rejected(snapshot: PlanSnapshot) -> None:
    """Test that H1 tasks cannot hang off another task."""
    with pytest.raises(StructuralViolation) as exc_info:
        validate_task_parent("t1", HierarchyLevel.h1, "doc-1", snapshot.task)

    assert exc_info.value.rule == "h1_has_parent"
    assert exc_info.value.message == "H1 tasks cannot have a parent task"


def test_h2_without_parent_is_rejected(snapshot: PlanSnapshot) -> None:
    """Test that H2 tasks must name a parent."""
    with pytest.raises(StructuralViolation) as exc_info:
        validate_task_parent(None, HierarchyLevel.h2, "doc-1", snapshot.task)

    assert exc_info.value.message == "H2 tasks must reference an H1 parent task"


def test_h2_under_h1_is_valid(snapshot: PlanSnapshot) -> None:
    """Test the happy path for sub-tasks."""
    validate_task_parent("t3", HierarchyLevel.h2, "doc-1", snapshot.task)


@pytest.mark.parametrize(
    ("parent_id", "plan_id", "task_id", "rule"),
    [
        ("t2", "doc-1", None, "parent_not_h1"),
        ("ghost", "doc-1", None, "parent_not_found"),
        ("t1", "other-plan", None, "cross_plan_parent"),
        ("t1", "doc-1", "t1", "self_parent"),
    ],
)
def test_h2_parent_rules(
    snapshot: PlanSnapshot, parent_id: str, plan_id: str, task_id: str | None, rule: str
) -> None:
    """Test each H2 parent rule in isolation."""
    with pytest.raises(StructuralViolation) as exc_info:
        validate_task_parent(parent_id, HierarchyLevel.h2, plan_id, snapshot.task, task_id=task_id)

    assert exc_info.value.rule == rule


def test_root_chapter_is_always_valid(snapshot: PlanSnapshot) -> None:
    """Test that chapters without a parent pass."""
    validate_chapter_parent(None, "doc-1", snapshot.chapter)


def test_chapter_parent_rules(snapshot: PlanSnapshot) -> None:
    """Test self-parent, missing parent and cross-document parent."""
    with pytest.raises(StructuralViolation) as exc_info:
        validate_chapter_parent("c1", "doc-1", snapshot.chapter, chapter_id="c1")
    assert exc_info.value.rule == "self_parent"

    with pytest.raises(StructuralViolation) as exc_info:
        validate_chapter_parent("ghost", "doc-1", snapshot.chapter)
    assert exc_info.value.rule == "parent_not_found"

    with pytest.raises(StructuralViolation) as exc_info:
        validate_chapter_parent("c1", "doc-2", snapshot.chapter)
    assert exc_info.value.rule == "cross_document_parent"


def test_moving_chapter_under_descendant_is_rejected() -> None:
    """Test that a move creating a cycle is caught."""
    rows = {
        "a": Chapter(id="a", document_id="d", title="A"),
        "b": Chapter(id="b", document_id="d", parent_id="a", title="B"),
        "c": Chapter(id="c", document_id="d", parent_id="b", title="C"),
    }

    with pytest.raises(StructuralViolation) as exc_info:
        validate_chapter_parent("c", "d", rows.get, chapter_id="a")

    assert exc_info.value.rule == "cycle"
    # Moving a leaf under a sibling branch is fine
    validate_chapter_parent("a", "d", rows.get, chapter_id="c")
