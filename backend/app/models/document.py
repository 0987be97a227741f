"""Business document tree: document → chapters → sections."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from backend.app.models.common import DocumentStatus, SectionType, utcnow


class ExportSettings(BaseModel):
    """Rendering options consumed by the export collaborator."""

    page_size: str = "A4"
    include_cover_page: bool = True
    include_table_of_contents: bool = True


class Document(BaseModel):
    """One business document per workspace, created lazily on first access."""

    id: str
    workspace_id: str
    title: str = "Business Plan"
    status: DocumentStatus = DocumentStatus.draft
    export_settings: ExportSettings = Field(default_factory=ExportSettings)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Section(BaseModel):
    """Ordered content block inside a chapter.

    ``content["type"]`` always mirrors ``section_type``; a mismatched tag is
    coerced back to the section's own type on construction.
    """

    id: str
    chapter_id: str
    section_type: SectionType
    content: dict[str, Any] = Field(default_factory=dict)
    order_index: int = Field(0, ge=0)

    @model_validator(mode="after")
    def align_content_tag(self) -> "Section":
        """Keep the content tag equal to the section type."""
        if self.content.get("type") != self.section_type.value:
            self.content = {**self.content, "type": self.section_type.value}
        return self


class Chapter(BaseModel):
    """Chapter node. ``children`` and ``sections`` are ordered by order_index."""

    id: str
    document_id: str
    parent_id: str | None = None
    title: str = Field(..., min_length=1)
    order_index: int = Field(0, ge=0)
    sections: list[Section] = Field(default_factory=list)
    children: list["Chapter"] = Field(default_factory=list)
