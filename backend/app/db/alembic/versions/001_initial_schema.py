"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates:
- document, chapter, section
- task
- conversation, message
- pending_change, audit_event
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        "document",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("workspace_id", sa.Text(), nullable=False, unique=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("export_settings", JSON_TYPE, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "chapter",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column(
            "document_id",
            sa.Text(),
            sa.ForeignKey("document.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "parent_id", sa.Text(), sa.ForeignKey("chapter.id", ondelete="CASCADE"), nullable=True
        ),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("idx_chapter_document_parent", "chapter", ["document_id", "parent_id"])

    op.create_table(
        "section",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column(
            "chapter_id",
            sa.Text(),
            sa.ForeignKey("chapter.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("section_type", sa.Text(), nullable=False),
        sa.Column("content", JSON_TYPE, nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("idx_section_chapter", "section", ["chapter_id", "order_index"])

    op.create_table(
        "task",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column(
            "plan_id", sa.Text(), sa.ForeignKey("document.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "parent_task_id",
            sa.Text(),
            sa.ForeignKey("task.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("instructions", sa.Text(), nullable=False, server_default=""),
        sa.Column("ai_prompt", sa.Text(), nullable=False, server_default=""),
        sa.Column("hierarchy_level", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("idx_task_plan_parent", "task", ["plan_id", "parent_task_id"])

    op.create_table(
        "conversation",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column(
            "document_id",
            sa.Text(),
            sa.ForeignKey("document.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "message",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column(
            "conversation_id",
            sa.Text(),
            sa.ForeignKey("conversation.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_message_conversation_ts", "message", ["conversation_id", "created_at"])

    # target_id intentionally has no foreign key
    op.create_table(
        "pending_change",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("plan_id", sa.Text(), nullable=False),
        sa.Column("message_id", sa.Text(), nullable=False),
        sa.Column("kind", sa.Text(), nullable=False),
        sa.Column("target_id", sa.Text(), nullable=True),
        sa.Column("payload", JSON_TYPE, nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("notes", JSON_TYPE, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_pending_change_plan_status", "pending_change", ["plan_id", "status"])
    op.create_index("idx_pending_change_message", "pending_change", ["message_id"])

    op.create_table(
        "audit_event",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("document_id", sa.Text(), nullable=False),
        sa.Column("change_id", sa.Text(), nullable=True),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("entity_type", sa.Text(), nullable=False),
        sa.Column("entity_id", sa.Text(), nullable=True),
        sa.Column("payload", JSON_TYPE, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_audit_event_document_ts", "audit_event", ["document_id", "created_at"])
    op.create_index("idx_audit_event_entity", "audit_event", ["entity_id"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("audit_event")
    op.drop_table("pending_change")
    op.drop_table("message")
    op.drop_table("conversation")
    op.drop_table("task")
    op.drop_table("section")
    op.drop_table("chapter")
    op.drop_table("document")
