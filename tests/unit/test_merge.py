"""Tests for partial section-content merging."""

import pytest

from backend.app.models.common import SectionType
from backend.app.models.content import default_content_for
from backend.app.proposals.errors import MalformedToolCall, MergeSkipped
from backend.app.proposals.merge import (
    INSUFFICIENT_MATERIAL_MESSAGE,
    NO_OP_MESSAGE,
    extract_quoted_literal,
    merge_section_content,
    normalize_partial_content,
)

OLD_TEXT = {"type": "text", "text": "Old"}


def test_string_update_replaces_text() -> None:
    """Test that a bare string becomes the text field."""
    merged = merge_section_content(OLD_TEXT, SectionType.text, "Hello world")

    assert merged == {"type": "text", "text": "Hello world"}


def test_partial_object_keeps_other_fields() -> None:
    """Test that fields not mentioned in the update are preserved."""
    current = {"type": "quote", "quote": "Old", "author": "Ada"}

    merged = merge_section_content(current, SectionType.quote, {"quote": "New"})

    assert merged == {"type": "quote", "quote": "New", "author": "Ada"}


def test_section_type_wins_over_proposed_tag() -> None:
    """Test that a proposed type tag cannot change the section's variant."""
    merged = merge_section_content(OLD_TEXT, SectionType.text, {"type": "list", "text": "New"})

    assert merged["type"] == "text"


def test_quoted_literal_used_when_content_missing() -> None:
    """Test that the user's quoted text is used for text sections."""
    merged = merge_section_content(
        OLD_TEXT, SectionType.text, None, 'Change it to "We sell solar kits."'
    )

    assert merged["text"] == "We sell solar kits."


def test_curly_quotes_are_recognized() -> None:
    """Test that typographic quotes also delimit literals."""
    assert extract_quoted_literal("set it to “Bonjour”") == "Bonjour"
    assert extract_quoted_literal('empty "  " then "x"') == "x"
    assert extract_quoted_literal("no quotes here") is None


def test_quoted_literal_ignored_for_non_text_sections() -> None:
    """Test that only text sections fall back to quoted literals."""
    current = default_content_for(SectionType.list)

    with pytest.raises(MergeSkipped) as exc_info:
        merge_section_content(current, SectionType.list, None, 'add "Item"')

    assert exc_info.value.reason == "insufficient_material"
    assert exc_info.value.message == INSUFFICIENT_MATERIAL_MESSAGE


def test_missing_material_is_skipped() -> None:
    """Test that no content and no quote yields guidance, not a change."""
    with pytest.raises(MergeSkipped) as exc_info:
        merge_section_content(OLD_TEXT, SectionType.text, "   ", "make it better")

    assert exc_info.value.reason == "insufficient_material"


def test_identical_content_is_a_no_op() -> None:
    """Test that re-sending the current content is never recorded."""
    with pytest.raises(MergeSkipped) as exc_info:
        merge_section_content(OLD_TEXT, SectionType.text, {"text": "Old"})

    assert exc_info.value.reason == "no_op"
    assert exc_info.value.message == NO_OP_MESSAGE


def test_no_op_retries_with_quoted_literal() -> None:
    """Test that a no-op proposal is rescued by the quoted text in the message."""
    merged = merge_section_content(OLD_TEXT, SectionType.text, "Old", 'Replace with "Fresh copy"')

    assert merged == {"type": "text", "text": "Fresh copy"}


def test_invalid_shape_is_malformed() -> None:
    """Test that content that does not fit the variant is rejected."""
    current = default_content_for(SectionType.list)

    with pytest.raises(MalformedToolCall):
        merge_section_content(current, SectionType.list, {"items": "one, two"})


def test_normalize_partial_content() -> None:
    """Test normalization of the raw proposed value."""
    assert normalize_partial_content(" Hi ") == {"text": "Hi"}
    assert normalize_partial_content({"items": ["a"]}) == {"items": ["a"]}
    assert normalize_partial_content({}) is None
    assert normalize_partial_content(["a"]) is None
