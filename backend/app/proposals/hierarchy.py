"""Hierarchy rules for the task outline and the chapter tree.

Validation is pure: it only looks nodes up through the provided callable and
never mutates anything.
"""

from collections.abc import Callable

from backend.app.models.common import HierarchyLevel
from backend.app.models.document import Chapter
from backend.app.models.task import Task
from backend.app.proposals.errors import StructuralViolation

TaskLookup = Callable[[str], Task | None]
ChapterLookup = Callable[[str], Chapter | None]


def validate_task_parent(
    parent_id: str | None,
    hierarchy_level: HierarchyLevel,
    plan_id: str,
    lookup: TaskLookup,
    task_id: str | None = None,
) -> None:
    """Check that a task's (level, parent) pair is allowed.

    Rules:
        - h1 tasks have no parent
        - h2 tasks reference an existing h1 task in the same plan
        - a task is never its own parent

    Raises:
        StructuralViolation: On the first broken rule.
    """
    if hierarchy_level == HierarchyLevel.h1:
        if parent_id:
            raise StructuralViolation("h1_has_parent", "H1 tasks cannot have a parent task")
        return

    if not parent_id:
        raise StructuralViolation(
            "h2_missing_parent", "H2 tasks must reference an H1 parent task"
        )

    if task_id is not None and parent_id == task_id:
        raise StructuralViolation("self_parent", "A task cannot be its own parent")

    parent = lookup(parent_id)
    if parent is None:
        raise StructuralViolation("parent_not_found", "Parent task not found")

    if parent.plan_id != plan_id:
        raise StructuralViolation(
            "cross_plan_parent", "Parent task must belong to the same plan"
        )

    if parent.hierarchy_level != HierarchyLevel.h1:
        raise StructuralViolation(
            "parent_not_h1", "Only H1 tasks can be used as parent tasks"
        )


def validate_chapter_parent(
    parent_id: str | None,
    document_id: str,
    lookup: ChapterLookup,
    chapter_id: str | None = None,
) -> None:
    """Check that a chapter may live under ``parent_id``.

    Root chapters (no parent) are always allowed. Moving an existing chapter
    (``chapter_id`` given) under one of its own descendants is rejected.

    Raises:
        StructuralViolation: On the first broken rule.
    """
    if not parent_id:
        return

    if chapter_id is not None and parent_id == chapter_id:
        raise StructuralViolation("self_parent", "A chapter cannot be its own parent")

    parent = lookup(parent_id)
    if parent is None:
        raise StructuralViolation("parent_not_found", "Parent chapter not found")

    if parent.document_id != document_id:
        raise StructuralViolation(
            "cross_document_parent", "Parent chapter must belong to the same document"
        )

    if chapter_id is None:
        return

    # Walk up from the new parent; reaching chapter_id means a cycle
    visited: set[str] = set()
    ancestor: Chapter | None = parent
    while ancestor is not None and ancestor.parent_id and ancestor.id not in visited:
        visited.add(ancestor.id)
        if ancestor.parent_id == chapter_id:
            raise StructuralViolation(
                "cycle", "Moving a chapter under its own descendant would create a cycle"
            )
        ancestor = lookup(ancestor.parent_id)
