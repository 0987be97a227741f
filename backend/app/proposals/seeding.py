"""Default task outline seeding.

Seeding is idempotent by existence check: a plan that already has any task is
left alone. The store performs the check and the inserts atomically, so
concurrent or repeated calls never duplicate the outline.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from backend.app.db.repositories import TaskStore
from backend.app.models.task import TaskDraft

logger = logging.getLogger(__name__)

MIN_INSTRUCTION_LINES = 3
H2_PER_H1 = 3
TEMPLATE_PATH = Path(__file__).with_name("task_template.yaml")


class TemplateTask(BaseModel):
    """H2 entry of the default outline."""

    title: str = Field(..., min_length=1)
    instructions: str
    ai_prompt: str


class TemplateChapterTask(TemplateTask):
    """H1 entry of the default outline."""

    children: list[TemplateTask] = Field(default_factory=list)


@dataclass
class SeedResult:
    """Outcome of a seeding attempt."""

    seeded: bool
    created_count: int


class TemplateError(ValueError):
    """Default task template failed validation."""

    pass


@lru_cache
def load_task_template() -> list[TemplateChapterTask]:
    """Parse the packaged YAML outline."""
    raw = TEMPLATE_PATH.read_text(encoding="utf-8")
    return [TemplateChapterTask.model_validate(entry) for entry in yaml.safe_load(raw)]


def _meaningful_lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def validate_template(template: list[TemplateChapterTask] | None = None) -> int:
    """Check instruction quality and outline shape.

    Returns:
        Number of validated tasks

    Raises:
        TemplateError: On the first task that breaks a rule
    """
    template = template if template is not None else load_task_template()
    validated = 0

    for h1 in template:
        if len(h1.children) != H2_PER_H1:
            raise TemplateError(
                f'Task template "{h1.title}" has {len(h1.children)} sub-tasks; '
                f"expected {H2_PER_H1}"
            )
        entries = [(h1.title, h1)] + [(f"{h1.title} > {c.title}", c) for c in h1.children]
        for path, task in entries:
            line_count = len(_meaningful_lines(task.instructions))
            if line_count < MIN_INSTRUCTION_LINES:
                raise TemplateError(
                    f'Task template "{path}" has {line_count} instruction lines; '
                    f"minimum required is {MIN_INSTRUCTION_LINES}"
                )
            validated += 1

    return validated


def ensure_default_tasks(
    store: TaskStore, plan_id: str, template: list[TemplateChapterTask] | None = None
) -> SeedResult:
    """Seed the default outline into an empty plan.

    Args:
        store: Task repository
        plan_id: Plan (document) ID
        template: Outline to seed, defaults to the packaged template

    Returns:
        SeedResult(seeded=False, created_count=0) if the plan already had tasks
    """
    if store.has_tasks(plan_id):
        logger.debug(f"Plan {plan_id} already has tasks, skipping default seeding")
        return SeedResult(seeded=False, created_count=0)

    template = template if template is not None else load_task_template()
    outline = [
        TaskDraft(
            title=h1.title,
            instructions=h1.instructions.strip(),
            ai_prompt=h1.ai_prompt.strip(),
            children=[
                TaskDraft(
                    title=h2.title,
                    instructions=h2.instructions.strip(),
                    ai_prompt=h2.ai_prompt.strip(),
                )
                for h2 in h1.children
            ],
        )
        for h1 in template
    ]

    created = len(store.seed_outline(plan_id, outline))
    if not created:
        logger.debug(f"Plan {plan_id} was seeded concurrently, skipping default seeding")
        return SeedResult(seeded=False, created_count=0)

    logger.info(f"Seeded {created} default tasks for plan {plan_id}")
    return SeedResult(seeded=True, created_count=created)
