"""Repository protocol interfaces for data access."""

from datetime import datetime
from typing import Any, Protocol

from backend.app.models.changes import AuditEvent, PendingChange
from backend.app.models.common import (
    ChangeStatus,
    HierarchyLevel,
    MessageRole,
    SectionType,
    TaskStatus,
)
from backend.app.models.conversation import Conversation, Message
from backend.app.models.document import Chapter, Document, Section
from backend.app.models.task import Task, TaskDraft


class DocumentStore(Protocol):
    """Repository for the document → chapter → section tree."""

    def get_or_create_document(self, workspace_id: str) -> Document:
        """Return the workspace's document, creating it on first access.

        Args:
            workspace_id: Owning workspace

        Returns:
            Existing or newly created document
        """
        ...

    def get_document(self, document_id: str) -> Document | None:
        """Get document by ID."""
        ...

    def load_chapter_tree(self, document_id: str) -> list[Chapter]:
        """Load all chapters of a document as an ordered forest.

        Args:
            document_id: Document ID

        Returns:
            Root chapters with nested ``children`` and ordered ``sections``
        """
        ...

    def get_chapter(self, chapter_id: str) -> Chapter | None:
        """Get a single chapter (without children) by ID."""
        ...

    def get_section(self, section_id: str) -> Section | None:
        """Get a single section by ID."""
        ...

    def insert_chapter(
        self,
        document_id: str,
        title: str,
        parent_id: str | None = None,
        order_index: int | None = None,
    ) -> Chapter:
        """Insert a chapter, after its last sibling unless a position is given.

        Args:
            document_id: Owning document
            title: Chapter title
            parent_id: Parent chapter, None for a root chapter
            order_index: Position among siblings; siblings at or after it move
                down by one. Clamped to the end of the sibling list.

        Returns:
            Created chapter
        """
        ...

    def update_chapter(
        self,
        chapter_id: str,
        *,
        title: str | None = None,
        parent_id: str | None = None,
        move: bool = False,
    ) -> Chapter:
        """Rename and/or move a chapter.

        Args:
            chapter_id: Chapter ID
            title: New title, unchanged when None
            parent_id: New parent (only used when ``move`` is True)
            move: Re-parent the chapter and append it after the new siblings

        Returns:
            Updated chapter
        """
        ...

    def delete_chapter(self, chapter_id: str) -> list[str]:
        """Delete a chapter with its descendant chapters and their sections.

        Returns:
            IDs of every removed chapter and section
        """
        ...

    def reorder_chapters(self, ordered_ids: list[str]) -> None:
        """Reorder sibling chapters within the positions they already occupy."""
        ...

    def insert_section(
        self, chapter_id: str, section_type: SectionType, content: dict[str, Any]
    ) -> Section:
        """Append a section at the end of a chapter."""
        ...

    def update_section(self, section_id: str, content: dict[str, Any]) -> Section:
        """Replace a section's content."""
        ...

    def delete_section(self, section_id: str) -> None:
        """Delete a section."""
        ...

    def reorder_sections(self, chapter_id: str, ordered_ids: list[str]) -> None:
        """Reorder a chapter's sections within the positions they already occupy."""
        ...


class TaskStore(Protocol):
    """Repository for the two-level task outline."""

    def load_task_tree(self, plan_id: str) -> list[Task]:
        """Load H1 tasks with their ordered H2 children."""
        ...

    def get_task(self, task_id: str) -> Task | None:
        """Get a single task (without children) by ID."""
        ...

    def has_tasks(self, plan_id: str) -> bool:
        """Whether the plan has at least one task."""
        ...

    def insert_task(
        self,
        plan_id: str,
        *,
        title: str,
        hierarchy_level: HierarchyLevel,
        parent_task_id: str | None = None,
        instructions: str = "",
        ai_prompt: str = "",
        status: TaskStatus = TaskStatus.todo,
    ) -> Task:
        """Append a task after its last same-parent sibling."""
        ...

    def seed_outline(self, plan_id: str, outline: list[TaskDraft]) -> list[Task]:
        """Insert H1 drafts with their H2 children unless the plan has any task.

        The existence check and the inserts are one atomic step, so concurrent
        callers cannot both seed the same plan.

        Returns:
            Created tasks in insertion order, empty if the plan already had tasks
        """
        ...

    def update_task(self, task_id: str, **fields: Any) -> Task:
        """Update task fields (title, instructions, ai_prompt, status,
        hierarchy_level, parent_task_id). Re-parenting appends to the end."""
        ...

    def delete_task(self, task_id: str) -> list[str]:
        """Delete a task and its H2 children.

        Returns:
            IDs of every removed task
        """
        ...


class ConversationStore(Protocol):
    """Repository for assistant conversations."""

    def get_or_create_conversation(self, document_id: str) -> Conversation:
        """Return the document's conversation, creating it on first access."""
        ...

    def append_message(self, conversation_id: str, role: MessageRole, content: str) -> Message:
        """Store a new immutable message."""
        ...

    def list_messages(self, conversation_id: str, limit: int | None = None) -> list[Message]:
        """Messages oldest first; with ``limit``, only the most recent ones."""
        ...


class PendingChangeStore(Protocol):
    """Repository for proposed changes awaiting approval."""

    def insert_pending_change(self, change: PendingChange) -> PendingChange:
        """Persist a new change record."""
        ...

    def get_pending_change(self, change_id: str) -> PendingChange | None:
        """Get change by ID."""
        ...

    def compare_and_set_status(
        self,
        change_id: str,
        expected: ChangeStatus,
        new: ChangeStatus,
        reviewed_at: datetime | None,
    ) -> bool:
        """Atomically move a change from ``expected`` to ``new``.

        Returns:
            True if this call performed the transition, False if the stored
            status was not ``expected`` (or the change does not exist)
        """
        ...

    def list_pending_changes(
        self,
        *,
        plan_id: str | None = None,
        status: ChangeStatus | None = None,
        message_id: str | None = None,
    ) -> list[PendingChange]:
        """List changes oldest first, optionally filtered."""
        ...


class AuditLog(Protocol):
    """Append-only log of applied structural mutations."""

    def emit(self, event: AuditEvent) -> None:
        """Store an event."""
        ...

    def detach(self, entity_id: str) -> int:
        """Null ``entity_id`` on events referencing a deleted entity.

        Returns:
            Number of events updated
        """
        ...

    def list_events(self, document_id: str) -> list[AuditEvent]:
        """Events for a document, oldest first."""
        ...
