"""Section content variants.

Every section stores a JSON object whose ``type`` field tags one of the
variants below. The tag must always equal the owning section's type;
``coerce_content`` forces it before validating the shape.
"""

import copy
import re
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from backend.app.models.common import SectionType


class _Content(BaseModel):
    """Base for content variants. Unknown keys survive round-trips."""

    model_config = ConfigDict(extra="allow")


class SectionTitleContent(_Content):
    """Chapter-level heading."""

    type: Literal["section_title"] = "section_title"
    text: str = ""


class SubsectionContent(_Content):
    """Secondary heading."""

    type: Literal["subsection"] = "subsection"
    text: str = ""


class TextContent(_Content):
    """Prose paragraph(s)."""

    type: Literal["text"] = "text"
    text: str = ""


class ListContent(_Content):
    """Bulleted or numbered list."""

    type: Literal["list"] = "list"
    items: list[str] = Field(default_factory=list)
    ordered: bool = False


class _TabularContent(_Content):
    headers: list[str] = Field(default_factory=list)
    rows: list[list[str]] = Field(default_factory=list)

    @field_validator("headers", mode="before")
    @classmethod
    def stringify_headers(cls, v: Any) -> Any:
        """Accept numeric headers from model output."""
        if isinstance(v, list):
            return [str(cell) if isinstance(cell, int | float) else cell for cell in v]
        return v

    @field_validator("rows", mode="before")
    @classmethod
    def stringify_cells(cls, v: Any) -> Any:
        """Accept numeric cells from model output."""
        if isinstance(v, list):
            return [
                [str(cell) if isinstance(cell, int | float) else cell for cell in row]
                if isinstance(row, list)
                else row
                for row in v
            ]
        return v


class TableContent(_TabularContent):
    """Generic table."""

    type: Literal["table"] = "table"


class ComparisonTableContent(_TabularContent):
    """Side-by-side comparison (e.g. competitors)."""

    type: Literal["comparison_table"] = "comparison_table"


class ImageContent(_Content):
    """Image or chart reference."""

    type: Literal["image"] = "image"
    url: str = ""
    alt_text: str = ""
    caption: str | None = None


class TimelineEntry(BaseModel):
    """Single milestone."""

    date: str = ""
    title: str = ""
    description: str | None = None


class TimelineContent(_Content):
    type: Literal["timeline"] = "timeline"
    entries: list[TimelineEntry] = Field(default_factory=list)


class TeamMember(BaseModel):
    """Team grid card."""

    name: str = ""
    role: str = ""
    bio: str | None = None
    photo_url: str | None = None


class TeamGridContent(_Content):
    type: Literal["team_grid"] = "team_grid"
    members: list[TeamMember] = Field(default_factory=list)


class Metric(BaseModel):
    """Headline figure, e.g. value="12%" label="Monthly growth"."""

    value: str = ""
    label: str = ""
    description: str | None = None

    @field_validator("value", mode="before")
    @classmethod
    def stringify_value(cls, v: Any) -> Any:
        """Numbers are displayed verbatim."""
        if isinstance(v, int | float):
            return str(v)
        return v


class MetricsContent(_Content):
    type: Literal["metrics"] = "metrics"
    metrics: list[Metric] = Field(default_factory=list)


class QuoteContent(_Content):
    type: Literal["quote"] = "quote"
    quote: str = ""
    author: str | None = None
    author_title: str | None = None


class EmbedContent(_Content):
    type: Literal["embed"] = "embed"
    embed_type: str = "html"
    code: str = ""


class EmptySpaceContent(_Content):
    """Vertical spacer."""

    type: Literal["empty_space"] = "empty_space"
    height: int = Field(40, ge=0)


class PageBreakContent(_Content):
    type: Literal["page_break"] = "page_break"


SectionContent = Annotated[
    SectionTitleContent
    | SubsectionContent
    | TextContent
    | ListContent
    | TableContent
    | ComparisonTableContent
    | ImageContent
    | TimelineContent
    | TeamGridContent
    | MetricsContent
    | QuoteContent
    | EmbedContent
    | EmptySpaceContent
    | PageBreakContent,
    Field(discriminator="type"),
]

SECTION_CONTENT_ADAPTER: TypeAdapter[Any] = TypeAdapter(SectionContent)

_DRAFT_TEXT = "Draft content"

_DEFAULT_CONTENT: dict[SectionType, dict[str, Any]] = {
    SectionType.section_title: {"text": _DRAFT_TEXT},
    SectionType.subsection: {"text": _DRAFT_TEXT},
    SectionType.text: {"text": _DRAFT_TEXT},
    SectionType.list: {"items": ["First item", "Second item"], "ordered": False},
    SectionType.table: {"headers": ["Column 1", "Column 2"], "rows": [["Value 1", "Value 2"]]},
    SectionType.comparison_table: {
        "headers": ["Column 1", "Column 2"],
        "rows": [["Value 1", "Value 2"]],
    },
    SectionType.image: {"url": "", "alt_text": ""},
    SectionType.timeline: {"entries": []},
    SectionType.team_grid: {"members": []},
    SectionType.metrics: {"metrics": []},
    SectionType.quote: {"quote": "Draft quote", "author": ""},
    SectionType.embed: {"embed_type": "html", "code": ""},
    SectionType.empty_space: {"height": 40},
    SectionType.page_break: {},
}

# Loose names the assistant (or a user) tends to use for section types
SECTION_TYPE_ALIASES: dict[str, SectionType] = {
    "paragraph": SectionType.text,
    "body": SectionType.text,
    "heading": SectionType.section_title,
    "title": SectionType.section_title,
    "header": SectionType.section_title,
    "subheading": SectionType.subsection,
    "subtitle": SectionType.subsection,
    "bullet_list": SectionType.list,
    "bulleted_list": SectionType.list,
    "unordered_list": SectionType.list,
    "ordered_list": SectionType.list,
    "numbered_list": SectionType.list,
    "bullet_points": SectionType.list,
    "bullets": SectionType.list,
    "compare_table": SectionType.comparison_table,
    "comparison": SectionType.comparison_table,
    "chart": SectionType.image,
    "picture": SectionType.image,
    "photo": SectionType.image,
    "milestones": SectionType.timeline,
    "roadmap": SectionType.timeline,
    "team": SectionType.team_grid,
    "kpi": SectionType.metrics,
    "kpis": SectionType.metrics,
    "stats": SectionType.metrics,
    "quotation": SectionType.quote,
    "testimonial": SectionType.quote,
    "html": SectionType.embed,
    "spacer": SectionType.empty_space,
    "space": SectionType.empty_space,
    "pagebreak": SectionType.page_break,
}

_SEPARATORS = re.compile(r"[\s\-]+")


def parse_section_type(value: object) -> SectionType | None:
    """Resolve a loose type name to a SectionType, or None if unrecognized."""
    if isinstance(value, SectionType):
        return value
    if not isinstance(value, str):
        return None

    key = _SEPARATORS.sub("_", value.strip().lower())
    if not key:
        return None

    try:
        return SectionType(key)
    except ValueError:
        return SECTION_TYPE_ALIASES.get(key)


def normalize_section_type(value: object) -> SectionType:
    """Resolve a loose type name; anything unrecognized becomes text."""
    return parse_section_type(value) or SectionType.text


def default_content_for(section_type: SectionType | str) -> dict[str, Any]:
    """Minimal valid content for a section type.

    Total over its input: unknown tags fall back to the text default.
    Returns a fresh dict on every call.
    """
    resolved = parse_section_type(section_type) or SectionType.text
    body = _DEFAULT_CONTENT[resolved]
    return {"type": resolved.value, **copy.deepcopy(body)}


def coerce_content(section_type: SectionType | str, content: dict[str, Any]) -> dict[str, Any]:
    """Force the type tag onto content and validate its shape.

    Raises:
        pydantic.ValidationError: If content does not fit the variant.
    """
    resolved = normalize_section_type(section_type)
    tagged = {**content, "type": resolved.value}
    model = SECTION_CONTENT_ADAPTER.validate_python(tagged)
    return model.model_dump(mode="json", exclude_none=True)
