"""Common types and enums shared across all models."""

from datetime import UTC, datetime
from enum import Enum


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp used for created_at/reviewed_at fields."""
    return datetime.now(UTC)


class SectionType(str, Enum):
    """Section content variant tag."""

    section_title = "section_title"
    subsection = "subsection"
    text = "text"
    list = "list"
    table = "table"
    comparison_table = "comparison_table"
    image = "image"
    timeline = "timeline"
    team_grid = "team_grid"
    metrics = "metrics"
    quote = "quote"
    embed = "embed"
    empty_space = "empty_space"
    page_break = "page_break"


class DocumentStatus(str, Enum):
    """Business document lifecycle status."""

    draft = "draft"
    active = "active"
    archived = "archived"


class HierarchyLevel(str, Enum):
    """Task outline level."""

    h1 = "h1"
    h2 = "h2"


class TaskStatus(str, Enum):
    """Task progress status."""

    todo = "todo"
    in_progress = "in_progress"
    done = "done"


class MessageRole(str, Enum):
    """Conversation message author."""

    user = "user"
    assistant = "assistant"


class ChangeKind(str, Enum):
    """Kind of structural edit a pending change proposes."""

    add_chapter = "add_chapter"
    update_chapter = "update_chapter"
    delete_chapter = "delete_chapter"
    add_section = "add_section"
    update_section = "update_section"
    delete_section = "delete_section"
    reorder_chapters = "reorder_chapters"
    reorder_sections = "reorder_sections"
    add_task = "add_task"
    update_task = "update_task"
    delete_task = "delete_task"


class ChangeStatus(str, Enum):
    """Pending change lifecycle state. applied and rejected are terminal."""

    proposed = "proposed"
    applied = "applied"
    rejected = "rejected"


class AuditAction(str, Enum):
    """Mutation recorded by an audit event."""

    created = "created"
    updated = "updated"
    deleted = "deleted"
    reordered = "reordered"
