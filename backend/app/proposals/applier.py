"""Apply approved pending changes to the stores and record audit events.

The order of operations is: re-validate against fresh store state, claim the
change (compare-and-set to ``applied``), mutate, then emit the audit event.
A failed mutation releases the claim so the change stays reviewable.
Audit emission is best-effort and never fails an approval.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from backend.app.db.repositories import AuditLog, DocumentStore, TaskStore
from backend.app.models.changes import AuditEvent, PendingChange
from backend.app.models.common import AuditAction, ChangeStatus, HierarchyLevel, TaskStatus
from backend.app.models.content import coerce_content, normalize_section_type
from backend.app.models.document import Chapter, Section
from backend.app.models.task import Task
from backend.app.proposals.errors import (
    AlreadyResolved,
    MalformedToolCall,
    NotFound,
    StructuralViolation,
)
from backend.app.proposals.hierarchy import validate_chapter_parent, validate_task_parent
from backend.app.proposals.ledger import PendingChangeLedger
from backend.app.tree.search import find_by_id
from backend.app.utils.metrics import PrometheusProposalMetrics

logger = logging.getLogger(__name__)

_TASK_UPDATE_FIELDS = ("title", "instructions", "ai_prompt", "status")


@dataclass
class ApplyResult:
    """Outcome of approving a change."""

    change: PendingChange
    entity: Chapter | Section | Task | None = None
    removed_ids: list[str] = field(default_factory=list)


@dataclass
class _Mutation:
    """Validated mutation, executed only after the change is claimed."""

    action: AuditAction
    entity_type: str
    run: Callable[[], Any]
    entity_id: str | None = None


class ChangeApplier:
    """Applies approved changes; rejection only resolves the record."""

    def __init__(
        self,
        documents: DocumentStore,
        tasks: TaskStore,
        ledger: PendingChangeLedger,
        audit_log: AuditLog,
        metrics: PrometheusProposalMetrics | None = None,
    ) -> None:
        self.documents = documents
        self.tasks = tasks
        self.ledger = ledger
        self.audit_log = audit_log
        self.metrics = metrics or PrometheusProposalMetrics()

    def apply(self, change_id: str) -> ApplyResult:
        """Approve and apply a proposed change.

        Raises:
            NotFound: Change or its target no longer exists
            AlreadyResolved: Change was already applied or rejected
            StructuralViolation: Change is no longer valid against current state
            MalformedToolCall: Stored payload is unusable
        """
        change = self.ledger.get(change_id)
        if change.status != ChangeStatus.proposed:
            raise AlreadyResolved(change.id, change.status.value)

        mutation: _Mutation = getattr(self, f"_prepare_{change.kind.value}")(change)

        applied = self.ledger.transition(change.id, ChangeStatus.applied)
        try:
            outcome = mutation.run()
        except Exception as e:
            logger.error(f"Failed to apply {change.kind.value} change {change.id}: {e}")
            self.ledger.release(change.id)
            raise

        if mutation.action == AuditAction.deleted:
            removed_ids = list(outcome or [])
            entity = None
        else:
            removed_ids = []
            entity = outcome

        if entity is not None and mutation.entity_id is None:
            mutation.entity_id = entity.id

        self._emit_audit(applied, mutation, removed_ids)
        logger.info(f"Applied {change.kind.value} change {change.id}")
        return ApplyResult(change=applied, entity=entity, removed_ids=removed_ids)

    def reject(self, change_id: str) -> PendingChange:
        """Discard a proposed change without touching the document."""
        return self.ledger.transition(change_id, ChangeStatus.rejected)

    # Chapters

    def _prepare_add_chapter(self, change: PendingChange) -> _Mutation:
        title = _require_text(change.payload, "title")
        parent_id = change.payload.get("parent_id")
        validate_chapter_parent(parent_id, change.plan_id, self.documents.get_chapter)
        order_index = _optional_index(change.payload, "order_index")
        return _Mutation(
            AuditAction.created,
            "chapter",
            lambda: self.documents.insert_chapter(change.plan_id, title, parent_id, order_index),
        )

    def _prepare_update_chapter(self, change: PendingChange) -> _Mutation:
        chapter = self._require_chapter(change.target_id)
        title = change.payload.get("title")
        move = "parent_id" in change.payload
        parent_id = change.payload.get("parent_id")
        if move:
            validate_chapter_parent(
                parent_id, chapter.document_id, self.documents.get_chapter, chapter_id=chapter.id
            )
        return _Mutation(
            AuditAction.updated,
            "chapter",
            lambda: self.documents.update_chapter(
                chapter.id, title=title, parent_id=parent_id, move=move
            ),
            entity_id=chapter.id,
        )

    def _prepare_delete_chapter(self, change: PendingChange) -> _Mutation:
        chapter = self._require_chapter(change.target_id)
        return _Mutation(
            AuditAction.deleted,
            "chapter",
            lambda: self.documents.delete_chapter(chapter.id),
            entity_id=chapter.id,
        )

    def _prepare_reorder_chapters(self, change: PendingChange) -> _Mutation:
        ordered_ids = _require_id_list(change.payload, "ordered_chapter_ids")
        chapters = [self._require_chapter(chapter_id) for chapter_id in ordered_ids]
        if len({chapter.parent_id for chapter in chapters}) != 1:
            raise StructuralViolation(
                "mixed_parents", "Only chapters that share a parent can be reordered together"
            )
        return _Mutation(
            AuditAction.reordered,
            "chapter",
            lambda: self.documents.reorder_chapters(ordered_ids),
            entity_id=chapters[0].parent_id,
        )

    # Sections

    def _prepare_add_section(self, change: PendingChange) -> _Mutation:
        chapter = self._require_chapter(change.payload.get("chapter_id") or change.target_id)
        section_type = normalize_section_type(change.payload.get("section_type"))
        content = _validated_content(section_type, change.payload.get("content") or {})
        return _Mutation(
            AuditAction.created,
            "section",
            lambda: self.documents.insert_section(chapter.id, section_type, content),
        )

    def _prepare_update_section(self, change: PendingChange) -> _Mutation:
        section = self._require_section(change.target_id)
        content = _validated_content(section.section_type, change.payload.get("content") or {})
        return _Mutation(
            AuditAction.updated,
            "section",
            lambda: self.documents.update_section(section.id, content),
            entity_id=section.id,
        )

    def _prepare_delete_section(self, change: PendingChange) -> _Mutation:
        section = self._require_section(change.target_id)

        def run() -> list[str]:
            self.documents.delete_section(section.id)
            return [section.id]

        return _Mutation(AuditAction.deleted, "section", run, entity_id=section.id)

    def _prepare_reorder_sections(self, change: PendingChange) -> _Mutation:
        chapter = self._require_chapter(change.payload.get("chapter_id") or change.target_id)
        ordered_ids = _require_id_list(change.payload, "ordered_section_ids")
        for section_id in ordered_ids:
            section = self._require_section(section_id)
            if section.chapter_id != chapter.id:
                raise StructuralViolation(
                    "foreign_section", "Every reordered section must belong to that chapter"
                )
        return _Mutation(
            AuditAction.reordered,
            "section",
            lambda: self.documents.reorder_sections(chapter.id, ordered_ids),
            entity_id=chapter.id,
        )

    # Tasks

    def _prepare_add_task(self, change: PendingChange) -> _Mutation:
        payload = change.payload
        title = _require_text(payload, "title")
        level = _parse_enum(HierarchyLevel, payload.get("hierarchy_level"), HierarchyLevel.h1)
        parent_task_id = payload.get("parent_task_id")
        validate_task_parent(parent_task_id, level, change.plan_id, self.tasks.get_task)
        status = _parse_enum(TaskStatus, payload.get("status"), TaskStatus.todo)
        return _Mutation(
            AuditAction.created,
            "task",
            lambda: self.tasks.insert_task(
                change.plan_id,
                title=title,
                hierarchy_level=level,
                parent_task_id=parent_task_id,
                instructions=payload.get("instructions") or "",
                ai_prompt=payload.get("ai_prompt") or "",
                status=status,
            ),
        )

    def _prepare_update_task(self, change: PendingChange) -> _Mutation:
        task = self._require_task(change.target_id)
        payload = change.payload
        fields: dict[str, Any] = {
            key: payload[key] for key in _TASK_UPDATE_FIELDS if key in payload
        }
        if "status" in fields:
            fields["status"] = _parse_enum(TaskStatus, fields["status"], task.status)

        if "hierarchy_level" in payload or "parent_task_id" in payload:
            level = _parse_enum(
                HierarchyLevel, payload.get("hierarchy_level"), task.hierarchy_level
            )
            parent_task_id = payload.get("parent_task_id", task.parent_task_id)
            if level == HierarchyLevel.h2 and self._has_children(task):
                raise StructuralViolation(
                    "has_children", "An H1 task with sub-tasks cannot become an H2 task"
                )
            validate_task_parent(
                parent_task_id, level, task.plan_id, self.tasks.get_task, task_id=task.id
            )
            fields["hierarchy_level"] = level
            fields["parent_task_id"] = parent_task_id

        if not fields:
            raise MalformedToolCall("The proposed task update has no fields to change.")

        return _Mutation(
            AuditAction.updated,
            "task",
            lambda: self.tasks.update_task(task.id, **fields),
            entity_id=task.id,
        )

    def _prepare_delete_task(self, change: PendingChange) -> _Mutation:
        task = self._require_task(change.target_id)
        return _Mutation(
            AuditAction.deleted,
            "task",
            lambda: self.tasks.delete_task(task.id),
            entity_id=task.id,
        )

    # Helpers

    def _emit_audit(
        self, change: PendingChange, mutation: _Mutation, removed_ids: list[str]
    ) -> None:
        """Record the mutation. Failures are logged, never raised."""
        deleted = mutation.action == AuditAction.deleted
        payload: dict[str, Any] = {"kind": change.kind.value, **change.payload}
        if deleted:
            # Keep the id only as plain data; the entity is gone
            payload["deleted_id"] = mutation.entity_id
            payload["removed_ids"] = removed_ids

        event = AuditEvent(
            id=str(uuid.uuid4()),
            document_id=change.plan_id,
            change_id=change.id,
            action=mutation.action,
            entity_type=mutation.entity_type,
            entity_id=None if deleted else mutation.entity_id,
            payload=payload,
        )

        try:
            for removed_id in removed_ids:
                self.audit_log.detach(removed_id)
            self.audit_log.emit(event)
        except Exception as e:
            logger.error(f"Failed to record audit event for change {change.id}: {e}")
            self.metrics.inc_audit_failure()

    def _has_children(self, task: Task) -> bool:
        node = find_by_id(self.tasks.load_task_tree(task.plan_id), task.id)
        return bool(node and node.children)

    def _require_chapter(self, chapter_id: str | None) -> Chapter:
        chapter = self.documents.get_chapter(chapter_id) if chapter_id else None
        if chapter is None:
            raise NotFound(
                "That chapter no longer exists.", entity_type="chapter", entity_id=chapter_id
            )
        return chapter

    def _require_section(self, section_id: str | None) -> Section:
        section = self.documents.get_section(section_id) if section_id else None
        if section is None:
            raise NotFound(
                "That section no longer exists.", entity_type="section", entity_id=section_id
            )
        return section

    def _require_task(self, task_id: str | None) -> Task:
        task = self.tasks.get_task(task_id) if task_id else None
        if task is None:
            raise NotFound(
                "That task no longer exists.", entity_type="task", entity_id=task_id
            )
        return task


def _require_text(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise MalformedToolCall(f"The proposed change is missing a {key}.")
    return value.strip()


def _require_id_list(payload: dict[str, Any], key: str) -> list[str]:
    value = payload.get(key)
    if not isinstance(value, list) or not value or not all(isinstance(v, str) for v in value):
        raise MalformedToolCall(f"The proposed change is missing {key}.")
    if len(set(value)) != len(value):
        raise MalformedToolCall(f"The proposed change repeats ids in {key}.")
    return value


def _optional_index(payload: dict[str, Any], key: str) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise MalformedToolCall(f"The proposed change has an invalid {key}.")
    return value


def _validated_content(section_type: Any, content: dict[str, Any]) -> dict[str, Any]:
    try:
        return coerce_content(section_type, content)
    except ValidationError as e:
        raise MalformedToolCall("The proposed section content is not valid.") from e


def _parse_enum(enum_cls: Any, value: Any, default: Any) -> Any:
    if value is None:
        return default
    try:
        return enum_cls(value)
    except ValueError as e:
        raise MalformedToolCall(f"Unknown {enum_cls.__name__} value: {value}") from e
