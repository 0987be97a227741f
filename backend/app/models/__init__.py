"""Models package - re-exports for convenience."""

from backend.app.models.changes import (
    AssistantTurn,
    AuditEvent,
    ChangeIntent,
    Diagnostic,
    PendingChange,
    ToolCall,
    TranslationResult,
)
from backend.app.models.common import (
    AuditAction,
    ChangeKind,
    ChangeStatus,
    DocumentStatus,
    HierarchyLevel,
    MessageRole,
    SectionType,
    TaskStatus,
)
from backend.app.models.content import (
    SECTION_CONTENT_ADAPTER,
    SectionContent,
    coerce_content,
    default_content_for,
    normalize_section_type,
)
from backend.app.models.conversation import Conversation, Message
from backend.app.models.document import Chapter, Document, ExportSettings, Section
from backend.app.models.task import Task, TaskDraft

__all__ = [
    # Common
    "SectionType",
    "DocumentStatus",
    "HierarchyLevel",
    "TaskStatus",
    "MessageRole",
    "ChangeKind",
    "ChangeStatus",
    "AuditAction",
    # Content
    "SectionContent",
    "SECTION_CONTENT_ADAPTER",
    "coerce_content",
    "default_content_for",
    "normalize_section_type",
    # Document
    "Document",
    "ExportSettings",
    "Chapter",
    "Section",
    # Tasks
    "Task",
    "TaskDraft",
    # Conversation
    "Conversation",
    "Message",
    # Changes
    "ToolCall",
    "AssistantTurn",
    "ChangeIntent",
    "Diagnostic",
    "TranslationResult",
    "PendingChange",
    "AuditEvent",
]
