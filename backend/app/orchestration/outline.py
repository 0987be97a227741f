"""Plain-text outline of a plan snapshot, given to the model as context."""

from backend.app.models.document import Chapter, Section
from backend.app.tree.snapshot import PlanSnapshot

_PREVIEW_CHARS = 80


def _section_preview(section: Section) -> str:
    for key in ("text", "title", "quote", "caption"):
        value = section.content.get(key)
        if isinstance(value, str) and value.strip():
            text = " ".join(value.split())
            if len(text) > _PREVIEW_CHARS:
                text = text[: _PREVIEW_CHARS - 3] + "..."
            return f': "{text}"'
    return ""


def render_outline(snapshot: PlanSnapshot) -> str:
    """Render chapters, sections and tasks with their ids, indented by depth."""
    lines = ["## Chapters"]
    if not snapshot.chapters:
        lines.append("- (no chapters yet)")

    # Depth-first for readability; explicit stack, no recursion
    stack: list[tuple[Chapter, int]] = [(chapter, 0) for chapter in reversed(snapshot.chapters)]
    while stack:
        chapter, depth = stack.pop()
        indent = "  " * depth
        lines.append(f"{indent}- [chapter {chapter.id}] {chapter.title}")
        for section in chapter.sections:
            lines.append(
                f"{indent}  * [section {section.id}] {section.section_type.value}"
                f"{_section_preview(section)}"
            )
        stack.extend((child, depth + 1) for child in reversed(chapter.children))

    lines.append("")
    lines.append("## Tasks")
    if not snapshot.tasks:
        lines.append("- (no tasks yet)")
    for h1 in snapshot.tasks:
        lines.append(f"- [task {h1.id}] H1 {h1.title} ({h1.status.value})")
        for h2 in h1.children:
            lines.append(f"  - [task {h2.id}] H2 {h2.title} ({h2.status.value})")

    return "\n".join(lines)
