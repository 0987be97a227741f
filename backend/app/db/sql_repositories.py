"""SQL implementations of repository interfaces.

Each store wraps one synchronous Session and commits per operation.
"""

import uuid
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from backend.app.db.models import (
    AuditEventRow,
    ChapterRow,
    ConversationRow,
    DocumentRow,
    MessageRow,
    PendingChangeRow,
    SectionRow,
    TaskRow,
)
from backend.app.models.changes import AuditEvent, PendingChange
from backend.app.models.common import (
    ChangeStatus,
    HierarchyLevel,
    MessageRole,
    SectionType,
    TaskStatus,
    utcnow,
)
from backend.app.models.conversation import Conversation, Message
from backend.app.models.document import Chapter, Document, ExportSettings, Section
from backend.app.models.task import Task, TaskDraft
from backend.app.tree.search import build_forest

_TASK_FIELDS = {"title", "instructions", "ai_prompt", "status", "hierarchy_level", "parent_task_id"}


def _new_id() -> str:
    return str(uuid.uuid4())


def _commit(session: Session) -> None:
    """Commit, rolling back on failure so the session stays usable."""
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise


def _permute(rows: Sequence[Any], ordered_ids: list[str]) -> None:
    """Place the given rows, in ``ordered_ids`` order, into the slots they occupy."""
    by_id = {row.id: row for row in rows}
    slots = sorted(row.order_index for row in rows)
    for slot, row_id in zip(slots, ordered_ids, strict=True):
        by_id[row_id].order_index = slot


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _to_document(row: DocumentRow) -> Document:
    return Document(
        id=row.id,
        workspace_id=row.workspace_id,
        title=row.title,
        status=row.status,
        export_settings=ExportSettings.model_validate(row.export_settings or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_chapter(row: ChapterRow, sections: list[Section] | None = None) -> Chapter:
    return Chapter(
        id=row.id,
        document_id=row.document_id,
        parent_id=row.parent_id,
        title=row.title,
        order_index=row.order_index,
        sections=sections or [],
    )


def _to_section(row: SectionRow) -> Section:
    return Section(
        id=row.id,
        chapter_id=row.chapter_id,
        section_type=row.section_type,
        content=dict(row.content or {}),
        order_index=row.order_index,
    )


def _to_task(row: TaskRow) -> Task:
    return Task(
        id=row.id,
        plan_id=row.plan_id,
        parent_task_id=row.parent_task_id,
        title=row.title,
        instructions=row.instructions,
        ai_prompt=row.ai_prompt,
        hierarchy_level=row.hierarchy_level,
        status=row.status,
        order_index=row.order_index,
    )


def _to_pending_change(row: PendingChangeRow) -> PendingChange:
    return PendingChange(
        id=row.id,
        plan_id=row.plan_id,
        message_id=row.message_id,
        kind=row.kind,
        target_id=row.target_id,
        payload=dict(row.payload or {}),
        status=row.status,
        notes=list(row.notes or []),
        created_at=row.created_at,
        reviewed_at=row.reviewed_at,
    )


def _to_audit_event(row: AuditEventRow) -> AuditEvent:
    return AuditEvent(
        id=row.id,
        document_id=row.document_id,
        change_id=row.change_id,
        action=row.action,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        payload=dict(row.payload or {}),
        created_at=row.created_at,
    )


class SqlDocumentStore:
    """SQL implementation of DocumentStore."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_or_create_document(self, workspace_id: str) -> Document:
        """Return the workspace's document, creating it on first access."""
        row = self._session.scalars(
            select(DocumentRow).where(DocumentRow.workspace_id == workspace_id)
        ).first()
        if row is None:
            document = Document(id=_new_id(), workspace_id=workspace_id)
            row = DocumentRow(
                id=document.id,
                workspace_id=workspace_id,
                title=document.title,
                status=document.status.value,
                export_settings=document.export_settings.model_dump(mode="json"),
                created_at=document.created_at,
                updated_at=document.updated_at,
            )
            self._session.add(row)
            _commit(self._session)
        return _to_document(row)

    def get_document(self, document_id: str) -> Document | None:
        """Get document by ID."""
        row = self._session.get(DocumentRow, document_id)
        return _to_document(row) if row else None

    def load_chapter_tree(self, document_id: str) -> list[Chapter]:
        """Load all chapters of a document as an ordered forest."""
        chapter_rows = self._session.scalars(
            select(ChapterRow).where(ChapterRow.document_id == document_id)
        ).all()
        if not chapter_rows:
            return []

        section_rows = self._session.scalars(
            select(SectionRow)
            .where(SectionRow.chapter_id.in_([row.id for row in chapter_rows]))
            .order_by(SectionRow.order_index)
        ).all()
        sections_by_chapter: dict[str, list[Section]] = {}
        for section_row in section_rows:
            sections_by_chapter.setdefault(section_row.chapter_id, []).append(
                _to_section(section_row)
            )

        chapters = [_to_chapter(row, sections_by_chapter.get(row.id)) for row in chapter_rows]
        return build_forest(chapters, parent_of=lambda chapter: chapter.parent_id)

    def get_chapter(self, chapter_id: str) -> Chapter | None:
        """Get a single chapter (without children) by ID."""
        row = self._session.get(ChapterRow, chapter_id)
        return _to_chapter(row) if row else None

    def get_section(self, section_id: str) -> Section | None:
        """Get a single section by ID."""
        row = self._session.get(SectionRow, section_id)
        return _to_section(row) if row else None

    def insert_chapter(
        self,
        document_id: str,
        title: str,
        parent_id: str | None = None,
        order_index: int | None = None,
    ) -> Chapter:
        """Insert a chapter, after its last sibling unless a position is given."""
        position = self._next_chapter_index(document_id, parent_id)
        if order_index is not None and order_index < position:
            position = order_index
            query = select(ChapterRow).where(
                ChapterRow.document_id == document_id, ChapterRow.order_index >= position
            )
            if parent_id is None:
                query = query.where(ChapterRow.parent_id.is_(None))
            else:
                query = query.where(ChapterRow.parent_id == parent_id)
            for sibling in self._session.scalars(query).all():
                sibling.order_index += 1

        row = ChapterRow(
            id=_new_id(),
            document_id=document_id,
            parent_id=parent_id,
            title=title,
            order_index=position,
        )
        self._session.add(row)
        _commit(self._session)
        return _to_chapter(row)

    def update_chapter(
        self,
        chapter_id: str,
        *,
        title: str | None = None,
        parent_id: str | None = None,
        move: bool = False,
    ) -> Chapter:
        """Rename and/or move a chapter."""
        row = self._require(ChapterRow, chapter_id, "chapter")
        if title is not None:
            row.title = title
        if move and parent_id != row.parent_id:
            row.order_index = self._next_chapter_index(row.document_id, parent_id)
            row.parent_id = parent_id
        _commit(self._session)
        return _to_chapter(row)

    def delete_chapter(self, chapter_id: str) -> list[str]:
        """Delete a chapter with its descendant chapters and their sections."""
        root = self._require(ChapterRow, chapter_id, "chapter")
        doomed = [root]
        frontier = [root.id]
        while frontier:
            kids = self._session.scalars(
                select(ChapterRow).where(ChapterRow.parent_id.in_(frontier))
            ).all()
            doomed.extend(kids)
            frontier = [kid.id for kid in kids]

        removed: list[str] = []
        # Children first so the parent_id foreign key never dangles
        for chapter_row in reversed(doomed):
            section_rows = self._session.scalars(
                select(SectionRow).where(SectionRow.chapter_id == chapter_row.id)
            ).all()
            for section_row in section_rows:
                removed.append(section_row.id)
                self._session.delete(section_row)
            removed.append(chapter_row.id)
            self._session.delete(chapter_row)
            self._session.flush()

        _commit(self._session)
        return removed

    def reorder_chapters(self, ordered_ids: list[str]) -> None:
        """Reorder sibling chapters within the positions they occupy."""
        rows = [self._require(ChapterRow, chapter_id, "chapter") for chapter_id in ordered_ids]
        _permute(rows, ordered_ids)
        _commit(self._session)

    def insert_section(
        self, chapter_id: str, section_type: SectionType, content: dict[str, Any]
    ) -> Section:
        """Append a section at the end of a chapter."""
        self._require(ChapterRow, chapter_id, "chapter")
        last = self._session.scalars(
            select(SectionRow.order_index)
            .where(SectionRow.chapter_id == chapter_id)
            .order_by(SectionRow.order_index.desc())
        ).first()
        section = Section(
            id=_new_id(),
            chapter_id=chapter_id,
            section_type=section_type,
            content=content,
            order_index=0 if last is None else last + 1,
        )
        self._session.add(
            SectionRow(
                id=section.id,
                chapter_id=chapter_id,
                section_type=section.section_type.value,
                content=section.content,
                order_index=section.order_index,
            )
        )
        _commit(self._session)
        return section

    def update_section(self, section_id: str, content: dict[str, Any]) -> Section:
        """Replace a section's content."""
        row = self._require(SectionRow, section_id, "section")
        section = _to_section(row).model_copy(update={"content": content})
        # Re-validate so the content tag is realigned with the section type
        section = Section.model_validate(section.model_dump())
        row.content = section.content
        _commit(self._session)
        return section

    def delete_section(self, section_id: str) -> None:
        """Delete a section."""
        row = self._require(SectionRow, section_id, "section")
        self._session.delete(row)
        _commit(self._session)

    def reorder_sections(self, chapter_id: str, ordered_ids: list[str]) -> None:
        """Reorder a chapter's sections within the positions they occupy."""
        rows = [self._require(SectionRow, section_id, "section") for section_id in ordered_ids]
        for row in rows:
            if row.chapter_id != chapter_id:
                raise KeyError(f"section {row.id} does not belong to chapter {chapter_id}")
        _permute(rows, ordered_ids)
        _commit(self._session)

    def _next_chapter_index(self, document_id: str, parent_id: str | None) -> int:
        query = select(ChapterRow.order_index).where(ChapterRow.document_id == document_id)
        if parent_id is None:
            query = query.where(ChapterRow.parent_id.is_(None))
        else:
            query = query.where(ChapterRow.parent_id == parent_id)
        last = self._session.scalars(query.order_by(ChapterRow.order_index.desc())).first()
        return 0 if last is None else last + 1

    def _require(self, model: Any, row_id: str, label: str) -> Any:
        row = self._session.get(model, row_id)
        if row is None:
            raise KeyError(f"{label} {row_id} not found")
        return row


class SqlTaskStore:
    """SQL implementation of TaskStore."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def load_task_tree(self, plan_id: str) -> list[Task]:
        """Load H1 tasks with their ordered H2 children."""
        rows = self._session.scalars(select(TaskRow).where(TaskRow.plan_id == plan_id)).all()
        return build_forest([_to_task(row) for row in rows], parent_of=lambda t: t.parent_task_id)

    def get_task(self, task_id: str) -> Task | None:
        """Get a single task (without children) by ID."""
        row = self._session.get(TaskRow, task_id)
        return _to_task(row) if row else None

    def has_tasks(self, plan_id: str) -> bool:
        """Whether the plan has at least one task."""
        found = self._session.scalars(
            select(TaskRow.id).where(TaskRow.plan_id == plan_id).limit(1)
        ).first()
        return found is not None

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
        row = self._add_row(
            plan_id,
            title=title,
            hierarchy_level=hierarchy_level,
            parent_task_id=parent_task_id,
            instructions=instructions,
            ai_prompt=ai_prompt,
            status=status,
        )
        _commit(self._session)
        return _to_task(row)

    def seed_outline(self, plan_id: str, outline: list[TaskDraft]) -> list[Task]:
        """Insert the outline in one transaction unless the plan has tasks.

        The owning document row is locked first (``SELECT ... FOR UPDATE``),
        so concurrent seeders of the same plan run one after the other.
        """
        self._session.scalars(
            select(DocumentRow.id).where(DocumentRow.id == plan_id).with_for_update()
        ).first()
        if self.has_tasks(plan_id):
            _commit(self._session)
            return []

        rows: list[TaskRow] = []
        for h1 in outline:
            parent = self._add_row(
                plan_id,
                title=h1.title,
                hierarchy_level=HierarchyLevel.h1,
                instructions=h1.instructions,
                ai_prompt=h1.ai_prompt,
            )
            rows.append(parent)
            for h2 in h1.children:
                rows.append(
                    self._add_row(
                        plan_id,
                        title=h2.title,
                        hierarchy_level=HierarchyLevel.h2,
                        parent_task_id=parent.id,
                        instructions=h2.instructions,
                        ai_prompt=h2.ai_prompt,
                    )
                )
        _commit(self._session)
        return [_to_task(row) for row in rows]

    def update_task(self, task_id: str, **fields: Any) -> Task:
        """Update task fields. Re-parenting appends to the end."""
        unknown = set(fields) - _TASK_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {sorted(unknown)}")

        row = self._session.get(TaskRow, task_id)
        if row is None:
            raise KeyError(f"task {task_id} not found")

        # Validate the merged record before touching the row
        Task.model_validate({**_to_task(row).model_dump(), **fields})

        if "parent_task_id" in fields and fields["parent_task_id"] != row.parent_task_id:
            row.order_index = self._next_index(row.plan_id, fields["parent_task_id"])
        for key, value in fields.items():
            setattr(row, key, _enum_value(value))

        _commit(self._session)
        return _to_task(row)

    def delete_task(self, task_id: str) -> list[str]:
        """Delete a task and its H2 children."""
        row = self._session.get(TaskRow, task_id)
        if row is None:
            raise KeyError(f"task {task_id} not found")

        children = self._session.scalars(
            select(TaskRow).where(TaskRow.parent_task_id == task_id)
        ).all()
        removed = [row.id] + [child.id for child in children]
        for child in children:
            self._session.delete(child)
        self._session.flush()
        self._session.delete(row)
        _commit(self._session)
        return removed

    def _add_row(
        self,
        plan_id: str,
        *,
        title: str,
        hierarchy_level: HierarchyLevel,
        parent_task_id: str | None = None,
        instructions: str = "",
        ai_prompt: str = "",
        status: TaskStatus = TaskStatus.todo,
    ) -> TaskRow:
        row = TaskRow(
            id=_new_id(),
            plan_id=plan_id,
            parent_task_id=parent_task_id,
            title=title,
            instructions=instructions,
            ai_prompt=ai_prompt,
            hierarchy_level=_enum_value(hierarchy_level),
            status=_enum_value(status),
            order_index=self._next_index(plan_id, parent_task_id),
        )
        # Flush so the next sibling index sees this row
        self._session.add(row)
        self._session.flush()
        return row

    def _next_index(self, plan_id: str, parent_task_id: str | None) -> int:
        query = select(TaskRow.order_index).where(TaskRow.plan_id == plan_id)
        if parent_task_id is None:
            query = query.where(TaskRow.parent_task_id.is_(None))
        else:
            query = query.where(TaskRow.parent_task_id == parent_task_id)
        last = self._session.scalars(query.order_by(TaskRow.order_index.desc())).first()
        return 0 if last is None else last + 1


class SqlConversationStore:
    """SQL implementation of ConversationStore."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_or_create_conversation(self, document_id: str) -> Conversation:
        """Return the document's conversation, creating it on first access."""
        row = self._session.scalars(
            select(ConversationRow).where(ConversationRow.document_id == document_id)
        ).first()
        if row is None:
            row = ConversationRow(id=_new_id(), document_id=document_id, created_at=utcnow())
            self._session.add(row)
            _commit(self._session)
        return Conversation(id=row.id, document_id=row.document_id, created_at=row.created_at)

    def append_message(self, conversation_id: str, role: MessageRole, content: str) -> Message:
        """Store a new immutable message."""
        message = Message(id=_new_id(), conversation_id=conversation_id, role=role, content=content)
        self._session.add(
            MessageRow(
                id=message.id,
                conversation_id=conversation_id,
                role=message.role.value,
                content=content,
                created_at=message.created_at,
            )
        )
        _commit(self._session)
        return message

    def list_messages(self, conversation_id: str, limit: int | None = None) -> list[Message]:
        """Messages oldest first; with ``limit``, only the most recent ones."""
        query = (
            select(MessageRow)
            .where(MessageRow.conversation_id == conversation_id)
            .order_by(MessageRow.created_at.desc())
        )
        if limit:
            query = query.limit(limit)
        rows = list(self._session.scalars(query).all())
        rows.reverse()
        return [
            Message(
                id=row.id,
                conversation_id=row.conversation_id,
                role=row.role,
                content=row.content,
                created_at=row.created_at,
            )
            for row in rows
        ]


class SqlPendingChangeStore:
    """SQL implementation of PendingChangeStore.

    Status transitions are a conditional UPDATE on the expected status; the
    row count tells the caller whether it won.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def insert_pending_change(self, change: PendingChange) -> PendingChange:
        """Persist a new change record."""
        self._session.add(
            PendingChangeRow(
                id=change.id,
                plan_id=change.plan_id,
                message_id=change.message_id,
                kind=change.kind.value,
                target_id=change.target_id,
                payload=change.payload,
                status=change.status.value,
                notes=change.notes,
                created_at=change.created_at,
                reviewed_at=change.reviewed_at,
            )
        )
        _commit(self._session)
        return change

    def get_pending_change(self, change_id: str) -> PendingChange | None:
        """Get change by ID."""
        row = self._session.get(PendingChangeRow, change_id, populate_existing=True)
        return _to_pending_change(row) if row else None

    def compare_and_set_status(
        self,
        change_id: str,
        expected: ChangeStatus,
        new: ChangeStatus,
        reviewed_at: datetime | None,
    ) -> bool:
        """Atomically move a change from ``expected`` to ``new``."""
        result = self._session.execute(
            update(PendingChangeRow)
            .where(PendingChangeRow.id == change_id, PendingChangeRow.status == expected.value)
            .values(status=new.value, reviewed_at=reviewed_at)
            .execution_options(synchronize_session="fetch")
        )
        _commit(self._session)
        return result.rowcount == 1

    def list_pending_changes(
        self,
        *,
        plan_id: str | None = None,
        status: ChangeStatus | None = None,
        message_id: str | None = None,
    ) -> list[PendingChange]:
        """List changes oldest first, optionally filtered."""
        query = select(PendingChangeRow)
        if plan_id is not None:
            query = query.where(PendingChangeRow.plan_id == plan_id)
        if status is not None:
            query = query.where(PendingChangeRow.status == status.value)
        if message_id is not None:
            query = query.where(PendingChangeRow.message_id == message_id)
        rows = self._session.scalars(query.order_by(PendingChangeRow.created_at)).all()
        return [_to_pending_change(row) for row in rows]


class SqlAuditLog:
    """SQL implementation of AuditLog."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def emit(self, event: AuditEvent) -> None:
        """Store an event."""
        self._session.add(
            AuditEventRow(
                id=event.id,
                document_id=event.document_id,
                change_id=event.change_id,
                action=event.action.value,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                payload=event.model_dump(mode="json")["payload"],
                created_at=event.created_at,
            )
        )
        _commit(self._session)

    def detach(self, entity_id: str) -> int:
        """Null ``entity_id`` on events referencing a deleted entity."""
        result = self._session.execute(
            update(AuditEventRow)
            .where(AuditEventRow.entity_id == entity_id)
            .values(entity_id=None)
            .execution_options(synchronize_session="fetch")
        )
        _commit(self._session)
        return result.rowcount

    def list_events(self, document_id: str) -> list[AuditEvent]:
        """Events for a document, oldest first."""
        rows = self._session.scalars(
            select(AuditEventRow)
            .where(AuditEventRow.document_id == document_id)
            .order_by(AuditEventRow.created_at)
        ).all()
        return [_to_audit_event(row) for row in rows]
