"""Tests for default task outline seeding."""

import pytest

from backend.app.db.inmemory import InMemoryTaskStore
from backend.app.models.common import HierarchyLevel
from backend.app.proposals.seeding import (
    H2_PER_H1,
    SeedResult,
    TemplateChapterTask,
    TemplateError,
    TemplateTask,
    ensure_default_tasks,
    load_task_template,
    validate_template,
)


def test_packaged_template_is_valid() -> None:
    """Test that the shipped outline passes its own quality rules."""
    template = load_task_template()

    assert validate_template(template) == len(template) * (1 + H2_PER_H1)
    assert [h1.title for h1 in template][0] == "Business Fundamentals"


def test_seeding_creates_outline_once() -> None:
    """Test that seeding twice creates tasks exactly once."""
    store = InMemoryTaskStore()
    expected = len(load_task_template()) * (1 + H2_PER_H1)

    first = ensure_default_tasks(store, "plan-1")
    second = ensure_default_tasks(store, "plan-1")

    assert first == SeedResult(seeded=True, created_count=expected)
    assert second == SeedResult(seeded=False, created_count=0)
    assert sum(1 + len(h1.children) for h1 in store.load_task_tree("plan-1")) == expected


def test_seeded_outline_shape() -> None:
    """Test that H2 tasks hang off H1 tasks in template order."""
    store = InMemoryTaskStore()
    ensure_default_tasks(store, "plan-1")

    tree = store.load_task_tree("plan-1")

    assert all(h1.hierarchy_level == HierarchyLevel.h1 for h1 in tree)
    assert [h1.order_index for h1 in tree] == list(range(len(tree)))
    first = tree[0]
    assert [h2.title for h2 in first.children] == [
        "The Business Idea",
        "The Problem to Solve",
        "The Relevance of the Problem",
    ]
    assert all(h2.parent_task_id == first.id for h2 in first.children)


class RacingTaskStore(InMemoryTaskStore):
    """Store whose pre-check always reports an empty plan, as if callers raced."""

    def has_tasks(self, plan_id: str) -> bool:
        return False


def test_racing_seeders_create_outline_once() -> None:
    """Test that callers which both pass the pre-check still seed exactly once."""
    store = RacingTaskStore()
    expected = len(load_task_template()) * (1 + H2_PER_H1)

    first = ensure_default_tasks(store, "plan-1")
    second = ensure_default_tasks(store, "plan-1")

    assert first.created_count == expected
    assert second == SeedResult(seeded=False, created_count=0)
    assert len(store.load_task_tree("plan-1")) == len(load_task_template())


def test_seeding_skips_plan_with_any_task() -> None:
    """Test that seeding checks existence, not a flag."""
    store = InMemoryTaskStore()
    store.insert_task("plan-1", title="Mine", hierarchy_level=HierarchyLevel.h1)

    assert ensure_default_tasks(store, "plan-1") == SeedResult(seeded=False, created_count=0)
    assert len(store.load_task_tree("plan-1")) == 1


def test_validate_template_rejects_thin_instructions() -> None:
    """Test that a task with fewer than three instruction lines is rejected."""
    child = TemplateTask(title="Child", instructions="a\nb\nc", ai_prompt="p")
    template = [
        TemplateChapterTask(
            title="Thin", instructions="only one line", ai_prompt="p", children=[child] * 3
        )
    ]

    with pytest.raises(TemplateError, match="Thin"):
        validate_template(template)


def test_validate_template_rejects_wrong_child_count() -> None:
    """Test that every H1 needs exactly three sub-tasks."""
    template = [TemplateChapterTask(title="Lonely", instructions="a\nb\nc", ai_prompt="p")]

    with pytest.raises(TemplateError, match="Lonely"):
        validate_template(template)
