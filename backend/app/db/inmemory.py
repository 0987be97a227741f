"""In-memory implementations of repository interfaces."""

import threading
import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import Any

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
from backend.app.tree.search import build_forest, next_order_index

_TASK_FIELDS = {"title", "instructions", "ai_prompt", "status", "hierarchy_level", "parent_task_id"}


def _new_id() -> str:
    return str(uuid.uuid4())


def _permute(rows: dict[str, Any], ordered_ids: list[str]) -> None:
    """Place the given siblings, in order, into the positions they already occupy."""
    slots = sorted(rows[row_id].order_index for row_id in ordered_ids)
    for slot, row_id in zip(slots, ordered_ids, strict=True):
        rows[row_id] = rows[row_id].model_copy(update={"order_index": slot})


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStore.

    Chapters and sections are kept as flat rows keyed by id; trees are built
    on read.
    """

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}
        self._chapters: dict[str, Chapter] = {}
        self._sections: dict[str, Section] = {}
        self._lock = threading.Lock()

    def get_or_create_document(self, workspace_id: str) -> Document:
        """Return the workspace's document, creating it on first access."""
        with self._lock:
            for document in self._documents.values():
                if document.workspace_id == workspace_id:
                    return document
            document = Document(id=_new_id(), workspace_id=workspace_id)
            self._documents[document.id] = document
            return document

    def get_document(self, document_id: str) -> Document | None:
        """Get document by ID."""
        return self._documents.get(document_id)

    def load_chapter_tree(self, document_id: str) -> list[Chapter]:
        """Load all chapters of a document as an ordered forest."""
        rows = [
            chapter.model_copy(update={"sections": self._sections_of(chapter.id)})
            for chapter in self._chapters.values()
            if chapter.document_id == document_id
        ]
        return build_forest(rows, parent_of=lambda chapter: chapter.parent_id)

    def get_chapter(self, chapter_id: str) -> Chapter | None:
        """Get a single chapter (without children) by ID."""
        return self._chapters.get(chapter_id)

    def get_section(self, section_id: str) -> Section | None:
        """Get a single section by ID."""
        return self._sections.get(section_id)

    def insert_chapter(
        self,
        document_id: str,
        title: str,
        parent_id: str | None = None,
        order_index: int | None = None,
    ) -> Chapter:
        """Insert a chapter, after its last sibling unless a position is given."""
        with self._lock:
            siblings = self._chapter_siblings(document_id, parent_id)
            position = next_order_index(siblings)
            if order_index is not None and order_index < position:
                position = order_index
                for sibling in siblings:
                    if sibling.order_index >= position:
                        self._chapters[sibling.id] = sibling.model_copy(
                            update={"order_index": sibling.order_index + 1}
                        )
            chapter = Chapter(
                id=_new_id(),
                document_id=document_id,
                parent_id=parent_id,
                title=title,
                order_index=position,
            )
            self._chapters[chapter.id] = chapter
            return chapter

    def update_chapter(
        self,
        chapter_id: str,
        *,
        title: str | None = None,
        parent_id: str | None = None,
        move: bool = False,
    ) -> Chapter:
        """Rename and/or move a chapter."""
        with self._lock:
            chapter = self._require(self._chapters, chapter_id, "chapter")
            update: dict[str, Any] = {}
            if title is not None:
                update["title"] = title
            if move and parent_id != chapter.parent_id:
                siblings = self._chapter_siblings(chapter.document_id, parent_id)
                update["parent_id"] = parent_id
                update["order_index"] = next_order_index(siblings)
            self._chapters[chapter_id] = chapter.model_copy(update=update)
            return self._chapters[chapter_id]

    def delete_chapter(self, chapter_id: str) -> list[str]:
        """Delete a chapter with its descendant chapters and their sections."""
        with self._lock:
            self._require(self._chapters, chapter_id, "chapter")
            doomed = [chapter_id]
            frontier = [chapter_id]
            while frontier:
                parent = frontier.pop()
                kids = [c.id for c in self._chapters.values() if c.parent_id == parent]
                doomed.extend(kids)
                frontier.extend(kids)

            removed: list[str] = []
            for doomed_id in doomed:
                owned = [s.id for s in self._sections.values() if s.chapter_id == doomed_id]
                for section_id in owned:
                    del self._sections[section_id]
                    removed.append(section_id)
                del self._chapters[doomed_id]
                removed.append(doomed_id)
            return removed

    def reorder_chapters(self, ordered_ids: list[str]) -> None:
        """Reorder sibling chapters within the positions they occupy."""
        with self._lock:
            for chapter_id in ordered_ids:
                self._require(self._chapters, chapter_id, "chapter")
            _permute(self._chapters, ordered_ids)

    def insert_section(
        self, chapter_id: str, section_type: SectionType, content: dict[str, Any]
    ) -> Section:
        """Append a section at the end of a chapter."""
        with self._lock:
            self._require(self._chapters, chapter_id, "chapter")
            section = Section(
                id=_new_id(),
                chapter_id=chapter_id,
                section_type=section_type,
                content=content,
                order_index=next_order_index(self._sections_of(chapter_id)),
            )
            self._sections[section.id] = section
            return section

    def update_section(self, section_id: str, content: dict[str, Any]) -> Section:
        """Replace a section's content."""
        with self._lock:
            section = self._require(self._sections, section_id, "section")
            # Re-validate so the content tag is realigned with the section type
            updated = Section.model_validate({**section.model_dump(), "content": content})
            self._sections[section_id] = updated
            return updated

    def delete_section(self, section_id: str) -> None:
        """Delete a section."""
        with self._lock:
            self._require(self._sections, section_id, "section")
            del self._sections[section_id]

    def reorder_sections(self, chapter_id: str, ordered_ids: list[str]) -> None:
        """Reorder a chapter's sections within the positions they occupy."""
        with self._lock:
            for section_id in ordered_ids:
                section = self._require(self._sections, section_id, "section")
                if section.chapter_id != chapter_id:
                    raise KeyError(f"section {section_id} does not belong to chapter {chapter_id}")
            _permute(self._sections, ordered_ids)

    def _sections_of(self, chapter_id: str) -> list[Section]:
        sections = [s for s in self._sections.values() if s.chapter_id == chapter_id]
        return sorted(sections, key=lambda section: section.order_index)

    def _chapter_siblings(self, document_id: str, parent_id: str | None) -> list[Chapter]:
        return [
            chapter
            for chapter in self._chapters.values()
            if chapter.document_id == document_id and chapter.parent_id == parent_id
        ]

    @staticmethod
    def _require(rows: dict[str, Any], row_id: str, label: str) -> Any:
        row = rows.get(row_id)
        if row is None:
            raise KeyError(f"{label} {row_id} not found")
        return row


class InMemoryTaskStore:
    """In-memory implementation of TaskStore."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._lock = threading.Lock()

    def load_task_tree(self, plan_id: str) -> list[Task]:
        """Load H1 tasks with their ordered H2 children."""
        rows = [task for task in self._tasks.values() if task.plan_id == plan_id]
        return build_forest(rows, parent_of=lambda task: task.parent_task_id)

    def get_task(self, task_id: str) -> Task | None:
        """Get a single task (without children) by ID."""
        return self._tasks.get(task_id)

    def has_tasks(self, plan_id: str) -> bool:
        """Whether the plan has at least one task."""
        return self._plan_has_tasks(plan_id)

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
        with self._lock:
            return self._insert(
                plan_id,
                title=title,
                hierarchy_level=hierarchy_level,
                parent_task_id=parent_task_id,
                instructions=instructions,
                ai_prompt=ai_prompt,
                status=status,
            )

    def seed_outline(self, plan_id: str, outline: list[TaskDraft]) -> list[Task]:
        """Insert the outline under one lock hold unless the plan has tasks."""
        with self._lock:
            if self._plan_has_tasks(plan_id):
                return []
            created: list[Task] = []
            for h1 in outline:
                parent = self._insert(
                    plan_id,
                    title=h1.title,
                    hierarchy_level=HierarchyLevel.h1,
                    instructions=h1.instructions,
                    ai_prompt=h1.ai_prompt,
                )
                created.append(parent)
                for h2 in h1.children:
                    created.append(
                        self._insert(
                            plan_id,
                            title=h2.title,
                            hierarchy_level=HierarchyLevel.h2,
                            parent_task_id=parent.id,
                            instructions=h2.instructions,
                            ai_prompt=h2.ai_prompt,
                        )
                    )
            return created

    def update_task(self, task_id: str, **fields: Any) -> Task:
        """Update task fields. Re-parenting appends to the end."""
        unknown = set(fields) - _TASK_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {sorted(unknown)}")

        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise KeyError(f"task {task_id} not found")

            update = dict(fields)
            if "parent_task_id" in update and update["parent_task_id"] != task.parent_task_id:
                siblings = self._siblings(task.plan_id, update["parent_task_id"])
                update["order_index"] = next_order_index(siblings)

            updated = Task.model_validate({**task.model_dump(), **update})
            self._tasks[task_id] = updated
            return updated

    def delete_task(self, task_id: str) -> list[str]:
        """Delete a task and its H2 children."""
        with self._lock:
            if task_id not in self._tasks:
                raise KeyError(f"task {task_id} not found")
            doomed = [task_id] + [t.id for t in self._tasks.values() if t.parent_task_id == task_id]
            for doomed_id in doomed:
                del self._tasks[doomed_id]
            return doomed

    def _plan_has_tasks(self, plan_id: str) -> bool:
        return any(task.plan_id == plan_id for task in self._tasks.values())

    def _insert(
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
        # Caller holds self._lock
        task = Task(
            id=_new_id(),
            plan_id=plan_id,
            parent_task_id=parent_task_id,
            title=title,
            instructions=instructions,
            ai_prompt=ai_prompt,
            hierarchy_level=hierarchy_level,
            status=status,
            order_index=next_order_index(self._siblings(plan_id, parent_task_id)),
        )
        self._tasks[task.id] = task
        return task

    def _siblings(self, plan_id: str, parent_task_id: str | None) -> Iterable[Task]:
        return [
            task
            for task in self._tasks.values()
            if task.plan_id == plan_id and task.parent_task_id == parent_task_id
        ]


class InMemoryConversationStore:
    """In-memory implementation of ConversationStore."""

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._messages: list[Message] = []
        self._lock = threading.Lock()

    def get_or_create_conversation(self, document_id: str) -> Conversation:
        """Return the document's conversation, creating it on first access."""
        with self._lock:
            for conversation in self._conversations.values():
                if conversation.document_id == document_id:
                    return conversation
            conversation = Conversation(id=_new_id(), document_id=document_id)
            self._conversations[conversation.id] = conversation
            return conversation

    def append_message(self, conversation_id: str, role: MessageRole, content: str) -> Message:
        """Store a new immutable message."""
        message = Message(id=_new_id(), conversation_id=conversation_id, role=role, content=content)
        with self._lock:
            self._messages.append(message)
        return message

    def list_messages(self, conversation_id: str, limit: int | None = None) -> list[Message]:
        """Messages oldest first; with ``limit``, only the most recent ones."""
        messages = [m for m in self._messages if m.conversation_id == conversation_id]
        return messages[-limit:] if limit else messages


class InMemoryPendingChangeStore:
    """In-memory implementation of PendingChangeStore.

    Status transitions are compare-and-set under a lock, so concurrent
    approvals of the same change resolve to exactly one winner.
    """

    def __init__(self) -> None:
        self._changes: dict[str, PendingChange] = {}
        self._lock = threading.Lock()

    def insert_pending_change(self, change: PendingChange) -> PendingChange:
        """Persist a new change record."""
        with self._lock:
            if change.id in self._changes:
                raise ValueError(f"Pending change {change.id} already exists")
            self._changes[change.id] = change
        return change

    def get_pending_change(self, change_id: str) -> PendingChange | None:
        """Get change by ID."""
        return self._changes.get(change_id)

    def compare_and_set_status(
        self,
        change_id: str,
        expected: ChangeStatus,
        new: ChangeStatus,
        reviewed_at: datetime | None,
    ) -> bool:
        """Atomically move a change from ``expected`` to ``new``."""
        with self._lock:
            change = self._changes.get(change_id)
            if change is None or change.status != expected:
                return False
            self._changes[change_id] = change.model_copy(
                update={"status": new, "reviewed_at": reviewed_at}
            )
            return True

    def list_pending_changes(
        self,
        *,
        plan_id: str | None = None,
        status: ChangeStatus | None = None,
        message_id: str | None = None,
    ) -> list[PendingChange]:
        """List changes oldest first, optionally filtered."""
        changes = [
            change
            for change in self._changes.values()
            if (plan_id is None or change.plan_id == plan_id)
            and (status is None or change.status == status)
            and (message_id is None or change.message_id == message_id)
        ]
        return sorted(changes, key=lambda change: change.created_at)


class InMemoryAuditLog:
    """In-memory implementation of AuditLog."""

    def __init__(self) -> None:
        self._events: list[AuditEvent] = []
        self._lock = threading.Lock()

    def emit(self, event: AuditEvent) -> None:
        """Store an event."""
        with self._lock:
            self._events.append(event)

    def detach(self, entity_id: str) -> int:
        """Null ``entity_id`` on events referencing a deleted entity."""
        with self._lock:
            updated = 0
            for index, event in enumerate(self._events):
                if event.entity_id == entity_id:
                    self._events[index] = event.model_copy(update={"entity_id": None})
                    updated += 1
            return updated

    def list_events(self, document_id: str) -> list[AuditEvent]:
        """Events for a document, oldest first."""
        return [event for event in self._events if event.document_id == document_id]
