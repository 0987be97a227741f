"""Two-level task outline (H1 tasks with H2 children)."""

from pydantic import BaseModel, Field

from backend.app.models.common import HierarchyLevel, TaskStatus


class Task(BaseModel):
    """Planning task. H1 tasks are roots; H2 tasks hang off exactly one H1."""

    id: str
    plan_id: str
    parent_task_id: str | None = None
    title: str = Field(..., min_length=1)
    instructions: str = ""
    ai_prompt: str = ""
    hierarchy_level: HierarchyLevel = HierarchyLevel.h1
    status: TaskStatus = TaskStatus.todo
    order_index: int = Field(0, ge=0)
    children: list["Task"] = Field(default_factory=list)


class TaskDraft(BaseModel):
    """Task to create together with its H2 children, used for outline seeding."""

    title: str = Field(..., min_length=1)
    instructions: str = ""
    ai_prompt: str = ""
    children: list["TaskDraft"] = Field(default_factory=list)
