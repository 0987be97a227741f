"""Tests for translating assistant tool calls into change intents."""

import json

from backend.app.models.changes import Diagnostic, ToolCall, TranslationResult
from backend.app.models.common import ChangeKind, SectionType
from backend.app.models.content import default_content_for
from backend.app.proposals.translator import (
    CHAPTER_FOR_SECTION_MESSAGE,
    MESSAGE_FALLBACK_NOTE,
    SECTION_NOT_FOUND_MESSAGE,
    TASK_AS_CHAPTER_NOTE,
    ToolCallTranslator,
    compose_reply,
    infer_section_type,
    parse_hierarchy_level,
    translate_tool_calls,
)


def _call(name: str, **arguments: object) -> ToolCall:
    return ToolCall(function_name=name, arguments=json.dumps(arguments))


def _translate(make_context, *calls: ToolCall, message: str = "", **context_overrides):
    return translate_tool_calls(list(calls), make_context(message, **context_overrides))


def _from_message(make_context, message: str, *calls: ToolCall, **context_overrides):
    translator = ToolCallTranslator(make_context(message, **context_overrides))
    return translator.propose_from_message(translator.translate_all(list(calls)))


# Chapters


def test_add_chapter_falls_back_to_default_title(make_context) -> None:
    """Test that a chapter proposal always has a non-empty title."""
    result = _translate(make_context, _call("propose_add_chapter", title="   "))

    [intent] = result.intents
    assert intent.kind == ChangeKind.add_chapter
    assert intent.payload["title"] == "New Chapter"
    assert intent.payload["parent_id"] is None
    assert intent.tool_name == "propose_add_chapter"


def test_add_chapter_resolves_parent_by_title(make_context) -> None:
    """Test that a parent chapter named by title is resolved to its id."""
    result = _translate(
        make_context, _call("propose_add_chapter", title="Pricing", parentChapterTitle="market")
    )

    [intent] = result.intents
    assert intent.target_id == "c1"
    assert intent.payload == {
        "title": "Pricing",
        "parent_id": "c1",
        "parent_title": "Market Analysis",
    }


def test_add_chapter_rejects_existing_sibling_title(make_context) -> None:
    """Test that a chapter duplicating a sibling is skipped."""
    result = _translate(make_context, _call("propose_add_chapter", title="team"))

    assert result.intents == []
    assert result.diagnostics[0].code == "duplicate"


def test_add_chapter_twice_in_one_turn_keeps_first(make_context) -> None:
    """Test that the same new chapter proposed twice in a batch is recorded once."""
    result = _translate(
        make_context,
        _call("propose_add_chapter", title="Risks"),
        _call("propose_add_chapter", title="risks"),
    )

    assert len(result.intents) == 1
    assert [d.code for d in result.diagnostics] == ["duplicate"]


def test_add_chapter_keeps_valid_position(make_context) -> None:
    """Test that a valid position is proposed and an invalid one is noted and dropped."""
    result = _translate(
        make_context,
        _call("propose_add_chapter", title="Risks", orderIndex=1),
        _call("propose_add_chapter", title="Exit", position="first"),
    )

    placed, appended = result.intents
    assert placed.payload["order_index"] == 1
    assert "order_index" not in appended.payload
    assert appended.notes == ['Position "first" was ignored; the chapter goes last.']


def test_update_chapter_missing_id_is_not_found(make_context) -> None:
    """Test that an unknown chapter id yields a diagnostic and no intent."""
    result = _translate(
        make_context, _call("propose_update_chapter", chapterId="missing-id", newTitle="X")
    )

    assert result.intents == []
    assert result.diagnostics == [
        Diagnostic(
            code="not_found",
            message="I couldn't find that chapter.",
            tool_name="propose_update_chapter",
        )
    ]


def test_update_chapter_uses_selected_chapter(make_context) -> None:
    """Test that the editor selection is used when no chapter is named."""
    result = _translate(
        make_context,
        _call("propose_update_chapter", newTitle="Our Team"),
        selected_chapter_id="c2",
    )

    [intent] = result.intents
    assert intent.target_id == "c2"
    assert intent.payload == {"title": "Our Team"}


def test_update_chapter_same_title_is_no_op(make_context) -> None:
    """Test that renaming to the current title is skipped."""
    result = _translate(
        make_context, _call("propose_update_chapter", chapterId="c2", newTitle="Team")
    )

    assert result.intents == []
    assert result.diagnostics[0].code == "merge_skipped"


def test_update_chapter_move_under_descendant_is_rejected(make_context) -> None:
    """Test that moving a chapter under its own child is a structural violation."""
    result = _translate(
        make_context, _call("propose_update_chapter", chapterId="c1", parentChapterId="c3")
    )

    assert result.intents == []
    assert result.diagnostics[0].code == "structural_violation"


def test_delete_chapter(make_context) -> None:
    """Test that deleting an existing chapter yields an empty-payload intent."""
    result = _translate(make_context, _call("propose_delete_chapter", chapterId="c2"))

    [intent] = result.intents
    assert (intent.kind, intent.target_id, intent.payload) == (ChangeKind.delete_chapter, "c2", {})


def test_reorder_chapters(make_context) -> None:
    """Test reorder validation: changed order, unchanged order, mixed parents."""
    result = _translate(
        make_context,
        _call("propose_reorder_chapters", orderedChapterIds=["c2", "c1"]),
        _call("propose_reorder_chapters", orderedChapterIds=["c1", "c2"]),
        _call("propose_reorder_chapters", orderedChapterIds=["c1", "c3"]),
    )

    [intent] = result.intents
    assert intent.payload == {"ordered_chapter_ids": ["c2", "c1"]}
    assert intent.target_id is None
    assert [d.code for d in result.diagnostics] == ["merge_skipped", "structural_violation"]


# Sections


def test_add_section_with_loose_type_uses_default_content(make_context) -> None:
    """Test that 'List' resolves to the list variant with its default content."""
    result = _translate(
        make_context, _call("propose_add_section", chapterId="c1", sectionType="List")
    )

    [intent] = result.intents
    assert intent.target_id == "c1"
    assert intent.payload["section_type"] == "list"
    assert intent.payload["content"] == default_content_for("list")


def test_add_section_unknown_type_becomes_text_with_note(make_context) -> None:
    """Test that an unrecognized type is created as text and noted for the reviewer."""
    result = _translate(
        make_context, _call("propose_add_section", chapterId="c2", sectionType="hologram")
    )

    [intent] = result.intents
    assert intent.payload["section_type"] == "text"
    assert intent.notes == ['Unknown section type "hologram" was created as text.']


def test_add_section_infers_type_from_message(make_context) -> None:
    """Test that the user's wording picks the type when none is given."""
    result = _translate(
        make_context,
        _call("propose_add_section", chapterId="c2"),
        message="Add a timeline of our launch milestones",
    )

    assert result.intents[0].payload["section_type"] == "timeline"


def test_add_section_string_content_for_text(make_context) -> None:
    """Test that a string becomes the text of a text section."""
    result = _translate(
        make_context,
        _call("propose_add_section", chapterId="c2", sectionType="text", content="We are five."),
    )

    assert result.intents[0].payload["content"] == {"type": "text", "text": "We are five."}


def test_add_section_object_content_keeps_section_type(make_context) -> None:
    """Test that supplied content is re-tagged with the section type and coerced."""
    result = _translate(
        make_context,
        _call(
            "propose_add_section",
            chapterId="c2",
            sectionType="table",
            content={"type": "text", "headers": [1, 2], "rows": [["a", "b"]]},
        ),
    )

    [intent] = result.intents
    assert intent.payload["section_type"] == "table"
    assert intent.payload["content"]["type"] == "table"
    assert intent.payload["content"]["headers"] == ["1", "2"]
    assert intent.payload["content"]["rows"] == [["a", "b"]]


def test_add_section_misshapen_content_is_dropped_alone(make_context) -> None:
    """Test that content not fitting its type is reported without affecting other calls."""
    result = _translate(
        make_context,
        _call(
            "propose_add_section",
            chapterId="c2",
            sectionType="list",
            content={"items": "not a list"},
        ),
        _call("propose_add_chapter", title="Risks"),
        _call("propose_add_section", chapterId="c2", sectionType="quote"),
    )

    [diagnostic] = result.diagnostics
    assert diagnostic.code == "malformed_tool_call"
    assert diagnostic.tool_name == "propose_add_section"
    assert [intent.kind for intent in result.intents] == [
        ChangeKind.add_chapter,
        ChangeKind.add_section,
    ]
    assert result.intents[1].payload["content"] == default_content_for(SectionType.quote)


def test_add_section_without_resolvable_chapter(make_context) -> None:
    """Test that a section with no chapter hint and several chapters is dropped."""
    result = _translate(make_context, _call("propose_add_section", sectionType="text"))

    assert result.intents == []
    assert result.diagnostics[0].message == CHAPTER_FOR_SECTION_MESSAGE


def test_update_section_replaces_text(make_context) -> None:
    """Test the plain text update scenario."""
    result = _translate(
        make_context, _call("propose_update_section", sectionId="s1", newContent="Hello world")
    )

    [intent] = result.intents
    assert intent.kind == ChangeKind.update_section
    assert intent.target_id == "s1"
    assert intent.payload["content"] == {"type": "text", "text": "Hello world"}


def test_update_section_missing_is_not_found(make_context) -> None:
    """Test that an unknown section id is reported to the user."""
    result = _translate(
        make_context, _call("propose_update_section", sectionId="nope", newContent="Hi")
    )

    assert result.intents == []
    assert result.diagnostics[0].message == SECTION_NOT_FOUND_MESSAGE


def test_update_section_no_op_is_never_recorded(make_context) -> None:
    """Test that content equal to the current content is skipped."""
    result = _translate(
        make_context, _call("propose_update_section", sectionId="s1", newContent="Old")
    )

    assert result.intents == []
    assert result.diagnostics[0].code == "merge_skipped"


def test_reorder_sections(make_context) -> None:
    """Test section reordering and the ownership check."""
    result = _translate(
        make_context,
        _call("propose_reorder_sections", chapterId="c1", orderedSectionIds=["s2", "s1"]),
        _call("propose_reorder_sections", chapterId="c2", orderedSectionIds=["s1"]),
    )

    [intent] = result.intents
    assert intent.payload == {"chapter_id": "c1", "ordered_section_ids": ["s2", "s1"]}
    assert result.diagnostics[0].code == "structural_violation"


# Tasks


def test_add_task_defaults_to_h1(make_context) -> None:
    """Test that a bare task proposal is a root task with the default title."""
    result = _translate(make_context, _call("propose_add_task"))

    [intent] = result.intents
    assert intent.payload["title"] == "New Task"
    assert intent.payload["hierarchy_level"] == "h1"
    assert intent.payload["parent_task_id"] is None
    assert intent.payload["status"] == "todo"


def test_add_h2_task_without_parent_is_rejected(make_context) -> None:
    """Test that an H2 task with no resolvable parent is a structural violation."""
    result = _translate(make_context, _call("propose_add_task", title="Sub", hierarchyLevel="h2"))

    assert result.intents == []
    assert result.diagnostics[0].code == "structural_violation"
    assert result.diagnostics[0].message == "H2 tasks must reference an H1 parent task"


def test_add_task_lifts_h2_parent_to_its_h1(make_context) -> None:
    """Test that naming a sub-task as parent attaches to that sub-task's H1."""
    result = _translate(make_context, _call("propose_add_task", title="Sizing", parentTaskId="t2"))

    [intent] = result.intents
    assert intent.target_id == "t1"
    assert intent.payload["hierarchy_level"] == "h2"
    assert intent.notes == [
        '"The Business Idea" is a sub-task, so its parent task was used instead.'
    ]


def test_add_task_resolves_parent_by_title(make_context) -> None:
    """Test that a parent named by title becomes an H2 under that H1."""
    result = _translate(
        make_context, _call("propose_add_task", title="Deck", parentTaskTitle="pitch")
    )

    assert result.intents[0].payload["parent_task_id"] == "t3"


def test_update_task_status(make_context) -> None:
    """Test that only changed fields are proposed."""
    result = _translate(
        make_context, _call("propose_update_task", taskId="t3", status="Done", title="Pitch")
    )

    [intent] = result.intents
    assert intent.payload == {"status": "done"}


def test_update_task_with_children_cannot_become_h2(make_context) -> None:
    """Test that an H1 with sub-tasks cannot be demoted."""
    result = _translate(
        make_context,
        _call("propose_update_task", taskId="t1", hierarchyLevel="h2", parentTaskId="t3"),
    )

    assert result.intents == []
    assert result.diagnostics[0].code == "structural_violation"


def test_delete_task(make_context) -> None:
    """Test that deleting an existing task is proposed."""
    result = _translate(make_context, _call("propose_delete_task", taskId="t2"))

    assert result.intents[0].target_id == "t2"


# Batch behaviour


def test_malformed_arguments_use_defaults_with_note(make_context) -> None:
    """Test that unreadable JSON does not drop the call."""
    call = ToolCall(function_name="propose_add_chapter", arguments="{title: oops")

    result = translate_tool_calls([call], make_context())

    [intent] = result.intents
    assert intent.payload["title"] == "New Chapter"
    assert intent.notes == ["The assistant's arguments could not be read, so defaults were used."]


def test_unknown_tools_are_ignored(make_context) -> None:
    """Test that non-proposal tool calls produce neither intents nor diagnostics."""
    result = _translate(make_context, _call("web_search", query="solar"))

    assert result.intents == []
    assert result.diagnostics == []


def test_failures_do_not_abort_siblings(make_context) -> None:
    """Test that valid calls survive invalid neighbours and exact duplicates collapse."""
    result = _translate(
        make_context,
        _call("propose_update_chapter", chapterId="missing-id", newTitle="X"),
        _call("propose_delete_section", sectionId="s2"),
        _call("propose_delete_section", sectionId="s2"),
        _call("propose_add_task", title="Sub", hierarchyLevel="h2"),
    )

    assert [intent.kind for intent in result.intents] == [ChangeKind.delete_section]
    assert [d.code for d in result.diagnostics] == ["not_found", "structural_violation"]


def test_snapshot_is_not_mutated(make_context, snapshot) -> None:
    """Test that translation leaves the shared snapshot untouched."""
    before = [chapter.model_dump() for chapter in snapshot.chapters]

    _translate(
        make_context,
        _call("propose_add_section", chapterId="c1", sectionType="text"),
        _call("propose_update_section", sectionId="s1", newContent="New"),
    )

    assert [chapter.model_dump() for chapter in snapshot.chapters] == before


# Message fallbacks


def test_add_task_for_a_chapter_becomes_add_chapter(make_context) -> None:
    """Test that a task call for a chapter request proposes a chapter instead."""
    result = _translate(
        make_context,
        _call("propose_add_task", title="Ignored"),
        message='Create subchapter "Pricing" under "Market Analysis"',
    )

    [intent] = result.intents
    assert intent.kind == ChangeKind.add_chapter
    assert intent.tool_name == "propose_add_task"
    assert intent.target_id == "c1"
    assert intent.payload["title"] == "Pricing"
    assert intent.notes == [TASK_AS_CHAPTER_NOTE]


def test_add_task_with_only_a_chapter_hint_becomes_add_chapter(make_context) -> None:
    """Test that chapter-only arguments without task hints reroute to a root chapter."""
    result = _translate(
        make_context, _call("propose_add_task", title="Risks", chapterTitle="Market Analysis")
    )

    [intent] = result.intents
    assert intent.kind == ChangeKind.add_chapter
    assert intent.payload == {"title": "Risks", "parent_id": None, "parent_title": None}


def test_add_task_mentioning_tasks_stays_a_task(make_context) -> None:
    """Test that a message about tasks keeps the task proposal."""
    result = _translate(
        make_context,
        _call("propose_add_task", title="Deck", chapterTitle="Pitch"),
        message="Add a deck task to the pitch chapter",
    )

    assert result.intents[0].kind == ChangeKind.add_task
    assert result.intents[0].payload["parent_task_id"] == "t3"


def test_chapter_message_without_tool_call_proposes_chapter(make_context) -> None:
    """Test that a quoted chapter request is proposed when the model made no call."""
    result = _from_message(make_context, 'Create subchapter "Pricing" under "Market"')

    [intent] = result.intents
    assert intent.kind == ChangeKind.add_chapter
    assert intent.payload == {
        "title": "Pricing",
        "parent_id": "c1",
        "parent_title": "Market Analysis",
    }
    assert intent.notes == [MESSAGE_FALLBACK_NOTE]


def test_chapter_message_fallback_reports_problems(make_context) -> None:
    """Test that existing titles and unknown parents become diagnostics."""
    duplicate = _from_message(make_context, 'Add chapter "Team"')
    orphan = _from_message(make_context, 'Add chapter "Risks" under "Nowhere"')

    assert duplicate.intents == []
    assert [d.code for d in duplicate.diagnostics] == ["duplicate"]
    assert orphan.intents == []
    assert [d.code for d in orphan.diagnostics] == ["not_found"]


def test_chapter_message_fallback_skipped_when_model_proposed_one(make_context) -> None:
    """Test that the fallback never doubles a chapter the model already proposed."""
    result = _from_message(
        make_context, 'Add chapter "Risks"', _call("propose_add_chapter", title="Exit")
    )

    assert [intent.payload["title"] for intent in result.intents] == ["Exit"]


def test_section_message_uses_selected_chapter_and_quote(make_context) -> None:
    """Test that a list request becomes a list section holding the quoted item."""
    result = _from_message(
        make_context, 'Add a bullet list "Solar kits"', selected_chapter_id="c2"
    )

    [intent] = result.intents
    assert intent.kind == ChangeKind.add_section
    assert intent.payload["chapter_id"] == "c2"
    assert intent.payload["section_type"] == "list"
    assert intent.payload["content"] == {
        "type": "list",
        "items": ["Solar kits"],
        "ordered": False,
    }


def test_section_message_resolves_quoted_chapter(make_context) -> None:
    """Test that a quoted chapter name picks the chapter and is not used as content."""
    result = _from_message(make_context, 'Put a paragraph "We are five." in "Team" chapter')

    [intent] = result.intents
    assert intent.payload["chapter_id"] == "c2"
    assert intent.payload["content"] == {"type": "text", "text": "We are five."}


def test_section_message_without_chapter_is_reported(make_context) -> None:
    """Test that a section request with no resolvable chapter becomes a diagnostic."""
    result = _from_message(make_context, "Add a timeline")

    assert result.intents == []
    assert [d.message for d in result.diagnostics] == [CHAPTER_FOR_SECTION_MESSAGE]


def test_section_message_fallback_skipped_after_section_call(make_context) -> None:
    """Test that an existing section proposal suppresses the fallback."""
    result = _from_message(
        make_context,
        "Add a timeline",
        _call("propose_delete_section", sectionId="s2"),
        selected_chapter_id="c2",
    )

    assert [intent.kind for intent in result.intents] == [ChangeKind.delete_section]


def test_message_without_request_adds_nothing(make_context) -> None:
    """Test that ordinary messages leave the translation untouched."""
    result = TranslationResult()
    translator = ToolCallTranslator(make_context("Make it shorter"))

    assert translator.propose_from_message(result) is result


# Helpers


def test_infer_section_type() -> None:
    """Test the keyword heuristics for section types."""
    assert infer_section_type("add a bullet list of risks") == SectionType.list
    assert infer_section_type("a comparison table of competitors") == SectionType.comparison_table
    assert infer_section_type("our KPIs") == SectionType.metrics
    assert infer_section_type("write something") == SectionType.text
    assert infer_section_type(None) == SectionType.text


def test_parse_hierarchy_level() -> None:
    """Test loose hierarchy level parsing."""
    assert parse_hierarchy_level("H2").value == "h2"
    assert parse_hierarchy_level("level 1").value == "h1"
    assert parse_hierarchy_level("top") is None


def test_compose_reply() -> None:
    """Test that diagnostics are appended to the model's reply."""
    diagnostics = [
        Diagnostic(code="not_found", message="I couldn't find that chapter."),
        Diagnostic(code="no_op", message="Nothing changed."),
    ]

    assert compose_reply("", [], "Default.") == "Default."
    assert compose_reply(" Done. ", diagnostics, "Default.") == (
        "Done.\n\nI couldn't find that chapter. Nothing changed."
    )
