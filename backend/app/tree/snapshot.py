"""Read-only view of both document trees, loaded once per assistant turn."""

from dataclasses import dataclass, field

from backend.app.models.common import HierarchyLevel
from backend.app.models.document import Chapter, Section
from backend.app.models.task import Task
from backend.app.tree.search import find_by_id, find_section, flatten_with_parent


@dataclass(frozen=True)
class PlanSnapshot:
    """Chapter forest and task forest for one document (plan).

    Every intent in a turn is evaluated against the same snapshot; recording a
    proposal never mutates it.
    """

    document_id: str
    chapters: list[Chapter] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)

    @property
    def plan_id(self) -> str:
        return self.document_id

    def chapter(self, chapter_id: str | None) -> Chapter | None:
        return find_by_id(self.chapters, chapter_id)

    def section(self, section_id: str | None) -> Section | None:
        return find_section(self.chapters, section_id)

    def task(self, task_id: str | None) -> Task | None:
        return find_by_id(self.tasks, task_id)

    def chapters_flat(self) -> list[Chapter]:
        """All chapters, breadth-first."""
        return [chapter for chapter, _ in flatten_with_parent(self.chapters)]

    def tasks_flat(self) -> list[Task]:
        """All tasks, breadth-first."""
        return [task for task, _ in flatten_with_parent(self.tasks)]

    def h1_tasks(self) -> list[Task]:
        return [task for task in self.tasks if task.hierarchy_level == HierarchyLevel.h1]

    def siblings_of_chapter(self, parent_id: str | None) -> list[Chapter]:
        """Chapters sharing ``parent_id`` (roots when None), in order."""
        if parent_id is None:
            return list(self.chapters)
        parent = self.chapter(parent_id)
        return list(parent.children) if parent else []
