"""Partial section-content merge with no-op detection.

Models often send only the changed field, or a bare string, or nothing at all
while the user's message contains the intended text in quotes. The merge
normalizes these cases, keeps the section's type tag authoritative, and refuses
updates that would not change anything.
"""

import logging
import re
from typing import Any

from pydantic import ValidationError

from backend.app.models.common import SectionType
from backend.app.models.content import coerce_content
from backend.app.proposals.errors import MalformedToolCall, MergeSkipped

logger = logging.getLogger(__name__)

INSUFFICIENT_MATERIAL_MESSAGE = (
    "Please share the exact text you want for that section so I can update it."
)
NO_OP_MESSAGE = "The proposed update matches the current content, so I skipped it."

# Paired straight or curly double quotes
_QUOTED_LITERAL = re.compile(r'"([^"]+)"|“([^”]+)”')


def extract_quoted_literal(message_text: str | None) -> str | None:
    """First non-blank quoted literal in the message, trimmed."""
    if not message_text:
        return None
    for match in _QUOTED_LITERAL.finditer(message_text):
        literal = (match.group(1) or match.group(2) or "").strip()
        if literal:
            return literal
    return None


def normalize_partial_content(proposed: object) -> dict[str, Any] | None:
    """String → ``{"text": ...}``; object as-is; anything else → None."""
    if isinstance(proposed, str):
        text = proposed.strip()
        return {"text": text} if text else None
    if isinstance(proposed, dict):
        return dict(proposed) if proposed else None
    return None


def merge_section_content(
    current: dict[str, Any],
    section_type: SectionType,
    proposed: object,
    message_text: str | None = None,
) -> dict[str, Any]:
    """Merge a partial update into a section's current content.

    Args:
        current: Stored content of the section
        section_type: The section's own type; always wins over any tag in input
        proposed: Raw ``newContent`` from the tool call (string, object or None)
        message_text: User message, mined for a quoted literal on text sections

    Returns:
        Validated merged content whose ``type`` equals ``section_type``

    Raises:
        MergeSkipped: No usable material, or the result equals ``current``
        MalformedToolCall: Merged content does not fit the section's variant
    """
    is_text = section_type == SectionType.text
    quoted = extract_quoted_literal(message_text) if is_text else None

    partial = normalize_partial_content(proposed)
    if partial is None and quoted:
        partial = {"text": quoted}
    if partial is None:
        raise MergeSkipped("insufficient_material", INSUFFICIENT_MATERIAL_MESSAGE)

    merged = {**current, **partial, "type": section_type.value}

    if merged == current and quoted:
        logger.debug("Proposed content is a no-op, retrying with quoted literal")
        merged = {**merged, "text": quoted}

    if merged == current:
        raise MergeSkipped("no_op", NO_OP_MESSAGE)

    try:
        result = coerce_content(section_type, merged)
    except ValidationError as e:
        raise MalformedToolCall(
            f"Proposed content does not fit a {section_type.value} section: "
            f"{e.error_count()} validation error(s)"
        ) from e

    # Filling in variant defaults can make a partial update equal to current
    if result == current:
        raise MergeSkipped("no_op", NO_OP_MESSAGE)
    return result
