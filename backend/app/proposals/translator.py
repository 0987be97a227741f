"""Translate assistant tool calls into validated change intents.

The translator is tolerant by construction: a tool call never raises out of
``translate_tool_calls``. Each call yields at most one intent; anything that
cannot be turned into a valid proposal becomes a diagnostic instead, and the
other calls in the batch are unaffected.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from backend.app.models.changes import ChangeIntent, Diagnostic, ToolCall, TranslationResult
from backend.app.models.common import ChangeKind, HierarchyLevel, SectionType, TaskStatus
from backend.app.models.content import coerce_content, default_content_for, parse_section_type
from backend.app.models.document import Chapter
from backend.app.models.task import Task
from backend.app.proposals.arguments import (
    parse_tool_arguments,
    read_string_arg,
    read_string_list_arg,
    read_value_arg,
)
from backend.app.proposals.errors import (
    DuplicateProposal,
    MalformedToolCall,
    MergeSkipped,
    NotFound,
    ProposalError,
    StructuralViolation,
)
from backend.app.proposals.hierarchy import validate_chapter_parent, validate_task_parent
from backend.app.proposals.lookup import match_by_title, normalize_lookup_text
from backend.app.proposals.merge import (
    extract_quoted_literal,
    merge_section_content,
    normalize_partial_content,
)
from backend.app.proposals.message_intent import (
    extract_chapter_request,
    extract_quoted_chapter_target,
    extract_quoted_parent_title,
    is_chapter_only_intent,
    is_likely_chapter_creation,
    is_section_only_intent,
)
from backend.app.tree.snapshot import PlanSnapshot
from backend.app.utils.logging import StructuredProposalLogger
from backend.app.utils.metrics import PrometheusProposalMetrics

logger = logging.getLogger(__name__)

TOOL_CHANGE_KINDS: dict[str, ChangeKind] = {
    "propose_add_chapter": ChangeKind.add_chapter,
    "propose_update_chapter": ChangeKind.update_chapter,
    "propose_delete_chapter": ChangeKind.delete_chapter,
    "propose_reorder_chapters": ChangeKind.reorder_chapters,
    "propose_add_section": ChangeKind.add_section,
    "propose_update_section": ChangeKind.update_section,
    "propose_delete_section": ChangeKind.delete_section,
    "propose_reorder_sections": ChangeKind.reorder_sections,
    "propose_add_task": ChangeKind.add_task,
    "propose_update_task": ChangeKind.update_task,
    "propose_delete_task": ChangeKind.delete_task,
}

# Argument key aliases (models alternate between camelCase and snake_case)
CHAPTER_ID_KEYS = ("chapterId", "chapter_id")
CHAPTER_TITLE_KEYS = ("chapterTitle", "chapter_title", "currentTitle", "current_title")
PARENT_CHAPTER_ID_KEYS = ("parentChapterId", "parent_chapter_id", "parentId", "parent_id")
PARENT_CHAPTER_TITLE_KEYS = ("parentChapterTitle", "parent_chapter_title", "parentTitle")
SECTION_ID_KEYS = ("sectionId", "section_id")
TASK_ID_KEYS = ("taskId", "task_id")
TASK_TITLE_KEYS = ("taskTitle", "task_title", "currentTitle", "current_title")
PARENT_TASK_ID_KEYS = ("parentTaskId", "parent_task_id", "parentId", "parent_id")
PARENT_TASK_TITLE_KEYS = ("parentTaskTitle", "parent_task_title", "parentTitle")
LEVEL_KEYS = ("hierarchyLevel", "hierarchy_level", "level")
INSTRUCTIONS_KEYS = ("instructions", "description")
AI_PROMPT_KEYS = ("aiPrompt", "ai_prompt", "prompt")

MESSAGE_FALLBACK_NOTE = "Proposed from your message because the assistant did not suggest it."
TASK_AS_CHAPTER_NOTE = (
    "This looked like a chapter request, so a chapter was proposed instead of a task."
)

SECTION_NOT_FOUND_MESSAGE = "I couldn't find that section to update."
CHAPTER_FOR_SECTION_MESSAGE = "I couldn't determine which chapter should receive the new section."

_TEXT_LIKE_TYPES = {SectionType.text, SectionType.section_title, SectionType.subsection}
_SECTION_KINDS = {ChangeKind.add_section, ChangeKind.update_section, ChangeKind.delete_section}

# Checked in order; first match wins
_SECTION_TYPE_HINTS: list[tuple[re.Pattern[str], SectionType]] = [
    (re.compile(r"\b(bullet|unordered|ordered|numbered)\s+list\b", re.I), SectionType.list),
    (re.compile(r"\b(list|bullet|bullets)\b", re.I), SectionType.list),
    (re.compile(r"\b(comparison|compare)\b", re.I), SectionType.comparison_table),
    (re.compile(r"\btable\b", re.I), SectionType.table),
    (re.compile(r"\b(timeline|milestones?|roadmap)\b", re.I), SectionType.timeline),
    (re.compile(r"\b(team\s+grid|team\s+members?)\b", re.I), SectionType.team_grid),
    (re.compile(r"\b(metrics?|kpis?)\b", re.I), SectionType.metrics),
    (re.compile(r"\b(quote|testimonial)\b", re.I), SectionType.quote),
    (re.compile(r"\b(embed|iframe|video|youtube)\b", re.I), SectionType.embed),
    (re.compile(r"\b(image|illustration|diagram|chart)\b", re.I), SectionType.image),
    (re.compile(r"\bsubsection\b", re.I), SectionType.subsection),
    (re.compile(r"\b(section\s+title|heading)\b", re.I), SectionType.section_title),
    (re.compile(r"\bpage\s*break\b", re.I), SectionType.page_break),
    (re.compile(r"\b(empty\s*space|spacer)\b", re.I), SectionType.empty_space),
]


def infer_section_type(message_text: str | None) -> SectionType:
    """Guess the section type the user asked for; text when nothing matches."""
    if message_text:
        for pattern, section_type in _SECTION_TYPE_HINTS:
            if pattern.search(message_text):
                return section_type
    return SectionType.text


def parse_hierarchy_level(value: str | None) -> HierarchyLevel | None:
    """Accept 'h1', 'H2', '1', 'level 2' and similar."""
    if not value:
        return None
    digits = re.sub(r"[^12]", "", value)
    if digits == "1":
        return HierarchyLevel.h1
    if digits == "2":
        return HierarchyLevel.h2
    return None


def parse_task_status(value: str | None) -> TaskStatus | None:
    if not value:
        return None
    key = re.sub(r"[\s\-]+", "_", value.strip().lower())
    try:
        return TaskStatus(key)
    except ValueError:
        return None


@dataclass
class TranslationContext:
    """Everything a tool call is evaluated against.

    ``snapshot`` is shared by every call of the turn and is never mutated;
    ``planned_chapters`` tracks chapters proposed earlier in the same turn.
    """

    snapshot: PlanSnapshot
    message_text: str = ""
    selected_chapter_id: str | None = None
    selected_task_id: str | None = None
    default_chapter_title: str = "New Chapter"
    default_task_title: str = "New Task"
    planned_chapters: set[tuple[str | None, str]] = field(default_factory=set)


class ToolCallTranslator:
    """Per-kind translation of tool arguments into change intents."""

    def __init__(
        self,
        context: TranslationContext,
        proposal_logger: StructuredProposalLogger | None = None,
        metrics: PrometheusProposalMetrics | None = None,
    ) -> None:
        self.context = context
        self.snapshot = context.snapshot
        self.proposal_logger = proposal_logger or StructuredProposalLogger()
        self.metrics = metrics or PrometheusProposalMetrics()

    def translate_all(self, calls: list[ToolCall]) -> TranslationResult:
        """Translate a batch of tool calls, isolating failures per call."""
        started = time.perf_counter()
        result = TranslationResult()
        seen: set[tuple[str, str | None, str]] = set()

        for call in calls:
            try:
                intent = self.translate(call)
            except ProposalError as e:
                self.proposal_logger.log_dropped(self.snapshot.document_id, call, e)
                self.metrics.inc_drop(call.function_name, e.code)
                result.diagnostics.append(e.to_diagnostic(call.function_name))
                continue

            if intent is None:
                continue

            signature = intent.signature()
            if signature in seen:
                logger.debug(f"Dropping duplicate {intent.kind.value} from {call.function_name}")
                continue
            seen.add(signature)

            self.proposal_logger.log_translated(self.snapshot.document_id, call, intent)
            self.metrics.inc_intent(intent.kind.value)
            result.intents.append(intent)

        self.metrics.record_translation((time.perf_counter() - started) * 1000)
        return result

    def propose_from_message(self, result: TranslationResult) -> TranslationResult:
        """Add the proposal a chapter-only or section-only message asks for.

        Only runs when the translated calls contain nothing of that kind. The
        fallback goes through the same per-kind translation, so duplicates and
        unresolvable targets become diagnostics as usual.
        """
        calls = self._message_fallback_calls(result.intents)
        if not calls:
            return result

        logger.debug(f"Proposing {len(calls)} change(s) straight from the user message")
        extra = self.translate_all(calls)
        intents = [
            intent.model_copy(update={"notes": [*intent.notes, MESSAGE_FALLBACK_NOTE]})
            for intent in extra.intents
        ]
        return TranslationResult(
            intents=result.intents + intents,
            diagnostics=result.diagnostics + extra.diagnostics,
        )

    def translate(self, call: ToolCall) -> ChangeIntent | None:
        """Translate one tool call.

        Returns:
            The intent, or None for functions outside the proposal tool set

        Raises:
            ProposalError: When the call cannot become a valid intent
        """
        kind = TOOL_CHANGE_KINDS.get(call.function_name)
        if kind is None:
            logger.debug(f"Ignoring non-proposal tool call: {call.function_name}")
            return None

        notes: list[str] = []
        try:
            args = parse_tool_arguments(call.arguments)
        except MalformedToolCall as e:
            logger.warning(f"{call.function_name}: {e.message}; continuing without arguments")
            notes.append("The assistant's arguments could not be read, so defaults were used.")
            args = {}

        handler = getattr(self, f"_{kind.value}")
        intent: ChangeIntent = handler(args, notes)
        return intent.model_copy(update={"tool_name": call.function_name, "notes": notes})

    # Chapters

    def _add_chapter(self, args: dict[str, Any], notes: list[str]) -> ChangeIntent:
        title = read_string_arg(args, "title", "chapterTitle", "chapter_title", "name")
        title = title or self.context.default_chapter_title

        parent = self._resolve_parent_chapter(args)
        parent_id = parent.id if parent else None

        key = (parent_id, normalize_lookup_text(title))
        siblings = self.snapshot.siblings_of_chapter(parent_id)
        exists = any(normalize_lookup_text(sibling.title) == key[1] for sibling in siblings)
        if exists or key in self.context.planned_chapters:
            raise DuplicateProposal(f'Chapter "{title}" already exists, so I skipped it.')
        self.context.planned_chapters.add(key)

        payload: dict[str, Any] = {
            "title": title,
            "parent_id": parent_id,
            "parent_title": parent.title if parent else None,
        }
        position = read_value_arg(args, "orderIndex", "order_index", "position")
        if isinstance(position, int) and not isinstance(position, bool) and position >= 0:
            payload["order_index"] = position
        elif position is not None:
            notes.append(f'Position "{position}" was ignored; the chapter goes last.')

        return ChangeIntent(kind=ChangeKind.add_chapter, target_id=parent_id, payload=payload)

    def _update_chapter(self, args: dict[str, Any], notes: list[str]) -> ChangeIntent:
        chapter = self._resolve_chapter(args, use_selection=True)
        payload: dict[str, Any] = {}

        new_title = read_string_arg(args, "newTitle", "new_title", "title")
        if new_title and new_title != chapter.title:
            payload["title"] = new_title

        new_parent_id = read_string_arg(args, *PARENT_CHAPTER_ID_KEYS)
        if new_parent_id and new_parent_id != chapter.parent_id:
            validate_chapter_parent(
                new_parent_id,
                self.snapshot.document_id,
                self.snapshot.chapter,
                chapter_id=chapter.id,
            )
            payload["parent_id"] = new_parent_id

        if not payload:
            if new_title or new_parent_id:
                raise MergeSkipped("no_op", "That chapter already looks like that.")
            raise MergeSkipped("empty_update", "I couldn't tell what to change on that chapter.")

        return ChangeIntent(kind=ChangeKind.update_chapter, target_id=chapter.id, payload=payload)

    def _delete_chapter(self, args: dict[str, Any], notes: list[str]) -> ChangeIntent:
        chapter = self._resolve_chapter(args, use_selection=False)
        return ChangeIntent(kind=ChangeKind.delete_chapter, target_id=chapter.id, payload={})

    def _reorder_chapters(self, args: dict[str, Any], notes: list[str]) -> ChangeIntent:
        ordered_ids = read_string_list_arg(
            args, "orderedChapterIds", "ordered_chapter_ids", "chapterIds"
        )
        if not ordered_ids:
            raise MergeSkipped("empty_update", "I couldn't tell which chapters to reorder.")
        if len(set(ordered_ids)) != len(ordered_ids):
            raise MalformedToolCall("The chapter order lists the same chapter more than once.")

        chapters: list[Chapter] = []
        for chapter_id in ordered_ids:
            chapter = self.snapshot.chapter(chapter_id)
            if chapter is None:
                raise NotFound(
                    "I couldn't find one of the chapters to reorder.",
                    entity_type="chapter",
                    entity_id=chapter_id,
                )
            chapters.append(chapter)

        parent_ids = {chapter.parent_id for chapter in chapters}
        if len(parent_ids) != 1:
            raise StructuralViolation(
                "mixed_parents", "Only chapters that share a parent can be reordered together"
            )
        parent_id = parent_ids.pop()

        siblings = self.snapshot.siblings_of_chapter(parent_id)
        current = [sibling.id for sibling in siblings if sibling.id in ordered_ids]
        if current == ordered_ids:
            raise MergeSkipped("no_op", "Those chapters are already in that order.")

        return ChangeIntent(
            kind=ChangeKind.reorder_chapters,
            target_id=parent_id,
            payload={"ordered_chapter_ids": ordered_ids},
        )

    # Sections

    def _add_section(self, args: dict[str, Any], notes: list[str]) -> ChangeIntent:
        chapter = self._resolve_chapter_for_section(args)

        raw_type = read_string_arg(args, "sectionType", "section_type", "type")
        if raw_type:
            section_type = parse_section_type(raw_type)
            if section_type is None:
                section_type = SectionType.text
                notes.append(f'Unknown section type "{raw_type}" was created as text.')
        else:
            section_type = infer_section_type(self.context.message_text)

        supplied = read_value_arg(args, "content", "newContent", "new_content")
        if isinstance(supplied, dict) and supplied:
            try:
                content = coerce_content(section_type, {**supplied, "type": section_type.value})
            except ValidationError as e:
                raise MalformedToolCall(
                    f"The proposed content does not fit a {section_type.value} section."
                ) from e
        elif isinstance(supplied, str) and section_type in _TEXT_LIKE_TYPES:
            partial = normalize_partial_content(supplied) or {}
            content = {**default_content_for(section_type), **partial}
        else:
            content = default_content_for(section_type)

        return ChangeIntent(
            kind=ChangeKind.add_section,
            target_id=chapter.id,
            payload={
                "chapter_id": chapter.id,
                "chapter_title": chapter.title,
                "section_type": section_type.value,
                "content": content,
            },
        )

    def _update_section(self, args: dict[str, Any], notes: list[str]) -> ChangeIntent:
        section_id = read_string_arg(args, *SECTION_ID_KEYS)
        section = self.snapshot.section(section_id)
        if section is None:
            raise NotFound(SECTION_NOT_FOUND_MESSAGE, entity_type="section", entity_id=section_id)

        proposed = read_value_arg(args, "newContent", "new_content", "content", "text")
        content = merge_section_content(
            section.content, section.section_type, proposed, self.context.message_text
        )

        return ChangeIntent(
            kind=ChangeKind.update_section,
            target_id=section.id,
            payload={"section_type": section.section_type.value, "content": content},
        )

    def _delete_section(self, args: dict[str, Any], notes: list[str]) -> ChangeIntent:
        section_id = read_string_arg(args, *SECTION_ID_KEYS)
        if self.snapshot.section(section_id) is None:
            raise NotFound(
                "I couldn't find that section to delete.",
                entity_type="section",
                entity_id=section_id,
            )
        return ChangeIntent(kind=ChangeKind.delete_section, target_id=section_id, payload={})

    def _reorder_sections(self, args: dict[str, Any], notes: list[str]) -> ChangeIntent:
        chapter_id = read_string_arg(args, *CHAPTER_ID_KEYS)
        chapter = self.snapshot.chapter(chapter_id)
        if chapter is None:
            raise NotFound(
                "I couldn't find the chapter whose sections should be reordered.",
                entity_type="chapter",
                entity_id=chapter_id,
            )

        ordered_ids = read_string_list_arg(
            args, "orderedSectionIds", "ordered_section_ids", "sectionIds"
        )
        if not ordered_ids:
            raise MergeSkipped("empty_update", "I couldn't tell which sections to reorder.")
        if len(set(ordered_ids)) != len(ordered_ids):
            raise MalformedToolCall("The section order lists the same section more than once.")

        owned = [section.id for section in chapter.sections]
        if any(section_id not in owned for section_id in ordered_ids):
            raise StructuralViolation(
                "foreign_section", "Every reordered section must belong to that chapter"
            )
        if [section_id for section_id in owned if section_id in ordered_ids] == ordered_ids:
            raise MergeSkipped("no_op", "Those sections are already in that order.")

        return ChangeIntent(
            kind=ChangeKind.reorder_sections,
            target_id=chapter.id,
            payload={"chapter_id": chapter.id, "ordered_section_ids": ordered_ids},
        )

    # Tasks

    def _add_task(self, args: dict[str, Any], notes: list[str]) -> ChangeIntent:
        if is_likely_chapter_creation(self.context.message_text, args):
            notes.append(TASK_AS_CHAPTER_NOTE)
            return self._add_chapter(self._chapter_args_from_task(args), notes)

        title = read_string_arg(args, "title", "taskTitle", "task_title", "name")
        title = title or self.context.default_task_title

        raw_level = read_string_arg(args, *LEVEL_KEYS)
        level = parse_hierarchy_level(raw_level)
        if raw_level and level is None:
            notes.append(f'Unknown hierarchy level "{raw_level}" was ignored.')

        parent_id_arg = read_string_arg(args, *PARENT_TASK_ID_KEYS)
        parent_title_arg = read_string_arg(args, *PARENT_TASK_TITLE_KEYS)
        chapter_hint = read_string_arg(args, "chapterTitle", "chapter_title")
        chapter_hint = chapter_hint or self._chapter_title_hint(args)
        if level is None:
            has_hint = bool(parent_id_arg or parent_title_arg or chapter_hint)
            level = HierarchyLevel.h2 if has_hint else HierarchyLevel.h1

        parent_task_id: str | None = None
        if level == HierarchyLevel.h2:
            parent_task_id = self._resolve_h1_parent(
                parent_id_arg, parent_title_arg, chapter_hint, notes
            )

        validate_task_parent(parent_task_id, level, self.snapshot.plan_id, self.snapshot.task)

        status = self._read_status(args, notes) or TaskStatus.todo

        return ChangeIntent(
            kind=ChangeKind.add_task,
            target_id=parent_task_id,
            payload={
                "title": title,
                "instructions": read_string_arg(args, *INSTRUCTIONS_KEYS) or "",
                "ai_prompt": read_string_arg(args, *AI_PROMPT_KEYS) or "",
                "hierarchy_level": level.value,
                "parent_task_id": parent_task_id,
                "status": status.value,
            },
        )

    def _update_task(self, args: dict[str, Any], notes: list[str]) -> ChangeIntent:
        task = self._resolve_task(args, use_selection=True)
        payload: dict[str, Any] = {}

        new_title = read_string_arg(args, "newTitle", "new_title", "title")
        if new_title and new_title != task.title:
            payload["title"] = new_title

        instructions = read_string_arg(args, *INSTRUCTIONS_KEYS)
        if instructions and instructions != task.instructions:
            payload["instructions"] = instructions

        ai_prompt = read_string_arg(args, *AI_PROMPT_KEYS)
        if ai_prompt and ai_prompt != task.ai_prompt:
            payload["ai_prompt"] = ai_prompt

        status = self._read_status(args, notes)
        if status and status != task.status:
            payload["status"] = status.value

        raw_level = read_string_arg(args, *LEVEL_KEYS)
        level = parse_hierarchy_level(raw_level) or task.hierarchy_level
        parent_id_arg = read_string_arg(args, *PARENT_TASK_ID_KEYS)

        if parent_id_arg:
            parent_task_id: str | None = parent_id_arg
        elif level == HierarchyLevel.h1:
            parent_task_id = None
        else:
            parent_task_id = task.parent_task_id

        if level != task.hierarchy_level or parent_task_id != task.parent_task_id:
            if level == HierarchyLevel.h2 and task.children:
                raise StructuralViolation(
                    "has_children", "An H1 task with sub-tasks cannot become an H2 task"
                )
            validate_task_parent(
                parent_task_id, level, self.snapshot.plan_id, self.snapshot.task, task_id=task.id
            )
            payload["hierarchy_level"] = level.value
            payload["parent_task_id"] = parent_task_id

        if not payload:
            raise MergeSkipped("empty_update", "I couldn't tell what to change on that task.")

        return ChangeIntent(kind=ChangeKind.update_task, target_id=task.id, payload=payload)

    def _delete_task(self, args: dict[str, Any], notes: list[str]) -> ChangeIntent:
        task = self._resolve_task(args, use_selection=False)
        return ChangeIntent(kind=ChangeKind.delete_task, target_id=task.id, payload={})

    # Message fallbacks

    def _message_fallback_calls(self, intents: list[ChangeIntent]) -> list[ToolCall]:
        message_text = self.context.message_text
        kinds = {intent.kind for intent in intents}
        calls: list[ToolCall] = []

        if is_chapter_only_intent(message_text) and ChangeKind.add_chapter not in kinds:
            request = extract_chapter_request(message_text)
            if request is not None:
                args: dict[str, Any] = {"title": request.title}
                if request.parent_title:
                    args["parentChapterTitle"] = request.parent_title
                calls.append(_tool_call("propose_add_chapter", args))

        if is_section_only_intent(message_text) and not kinds & _SECTION_KINDS:
            calls.append(_tool_call("propose_add_section", self._section_args_from_message()))

        return calls

    def _section_args_from_message(self) -> dict[str, Any]:
        message_text = self.context.message_text
        section_type = infer_section_type(message_text)
        args: dict[str, Any] = {"sectionType": section_type.value}

        target_title = extract_quoted_chapter_target(message_text)
        chapter = self.snapshot.chapter(self.context.selected_chapter_id)
        if chapter is None:
            chapter = match_by_title(self.snapshot.chapters_flat(), target_title, _chapter_title)
        if chapter is not None:
            args["chapterId"] = chapter.id

        quoted = extract_quoted_literal(message_text)
        if quoted and quoted != target_title:
            if section_type == SectionType.text:
                args["content"] = quoted
            elif section_type == SectionType.list:
                args["content"] = {"items": [quoted], "ordered": False}
        return args

    def _chapter_args_from_task(self, args: dict[str, Any]) -> dict[str, Any]:
        """Arguments for an add-chapter built from a misrouted add-task call."""
        message_text = self.context.message_text
        request = extract_chapter_request(message_text)
        title = request.title if request else None
        chapter_args: dict[str, Any] = {
            "title": title or read_string_arg(args, "title", "chapterTitle", "newTitle", "chapter")
        }

        parent_id = read_string_arg(args, "parentChapterId", "parent_chapter_id")
        parent_title = read_string_arg(args, *PARENT_CHAPTER_TITLE_KEYS)
        parent_title = parent_title or (request.parent_title if request else None)
        if parent_id:
            chapter_args["parentChapterId"] = parent_id
        elif parent_title:
            chapter_args["parentChapterTitle"] = parent_title
        else:
            # A quoted "under"/"in" title only counts when it names a chapter
            quoted_parent = match_by_title(
                self.snapshot.chapters_flat(),
                extract_quoted_parent_title(message_text),
                _chapter_title,
            )
            if quoted_parent is not None:
                chapter_args["parentChapterId"] = quoted_parent.id
        return chapter_args

    # Resolution helpers

    def _resolve_chapter(self, args: dict[str, Any], *, use_selection: bool) -> Chapter:
        chapter_id = read_string_arg(args, *CHAPTER_ID_KEYS)
        if chapter_id:
            chapter = self.snapshot.chapter(chapter_id)
        else:
            title = read_string_arg(args, *CHAPTER_TITLE_KEYS)
            chapter = match_by_title(self.snapshot.chapters_flat(), title, _chapter_title)
            if chapter is None and use_selection and not title:
                chapter = self.snapshot.chapter(self.context.selected_chapter_id)

        if chapter is None:
            raise NotFound(
                "I couldn't find that chapter.", entity_type="chapter", entity_id=chapter_id
            )
        return chapter

    def _resolve_parent_chapter(self, args: dict[str, Any]) -> Chapter | None:
        parent_id = read_string_arg(args, *PARENT_CHAPTER_ID_KEYS)
        if parent_id:
            validate_chapter_parent(parent_id, self.snapshot.document_id, self.snapshot.chapter)
            return self.snapshot.chapter(parent_id)

        parent_title = read_string_arg(args, *PARENT_CHAPTER_TITLE_KEYS)
        if not parent_title:
            return None
        parent = match_by_title(self.snapshot.chapters_flat(), parent_title, _chapter_title)
        if parent is None:
            raise NotFound(
                f'I couldn\'t find a parent chapter called "{parent_title}".', entity_type="chapter"
            )
        return parent

    def _resolve_chapter_for_section(self, args: dict[str, Any]) -> Chapter:
        chapter_id = read_string_arg(args, *CHAPTER_ID_KEYS)
        chapter: Chapter | None
        if chapter_id:
            chapter = self.snapshot.chapter(chapter_id)
        else:
            title = read_string_arg(args, *CHAPTER_TITLE_KEYS)
            chapter = match_by_title(self.snapshot.chapters_flat(), title, _chapter_title)
            if chapter is None and not title:
                chapter = self.snapshot.chapter(self.context.selected_chapter_id)
            if chapter is None and not title:
                all_chapters = self.snapshot.chapters_flat()
                chapter = all_chapters[0] if len(all_chapters) == 1 else None

        if chapter is None:
            raise NotFound(CHAPTER_FOR_SECTION_MESSAGE, entity_type="chapter", entity_id=chapter_id)
        return chapter

    def _resolve_task(self, args: dict[str, Any], *, use_selection: bool) -> Task:
        task_id = read_string_arg(args, *TASK_ID_KEYS)
        if task_id:
            task = self.snapshot.task(task_id)
        else:
            title = read_string_arg(args, *TASK_TITLE_KEYS)
            task = match_by_title(self.snapshot.tasks_flat(), title, _task_title)
            if task is None and use_selection and not title:
                task = self.snapshot.task(self.context.selected_task_id)

        if task is None:
            raise NotFound("I couldn't find that task.", entity_type="task", entity_id=task_id)
        return task

    def _resolve_h1_parent(
        self,
        parent_id: str | None,
        parent_title: str | None,
        chapter_hint: str | None,
        notes: list[str],
    ) -> str | None:
        """Pick the H1 task an H2 should hang off; None when nothing fits."""
        if parent_id:
            parent = self.snapshot.task(parent_id)
            if parent is None:
                # Leave the unknown id for the validator to reject
                return parent_id
            return self._lift_to_h1(parent, notes)

        h1_tasks = self.snapshot.h1_tasks()
        for hint in (parent_title, chapter_hint):
            match = match_by_title(h1_tasks, hint, _task_title)
            if match is not None:
                return match.id

        selected = self.snapshot.task(self.context.selected_task_id)
        if selected is not None:
            return self._lift_to_h1(selected, notes)
        return None

    def _lift_to_h1(self, task: Task, notes: list[str]) -> str:
        if task.hierarchy_level == HierarchyLevel.h2 and task.parent_task_id:
            notes.append(f'"{task.title}" is a sub-task, so its parent task was used instead.')
            return task.parent_task_id
        return task.id

    def _chapter_title_hint(self, args: dict[str, Any]) -> str | None:
        chapter = self.snapshot.chapter(read_string_arg(args, *CHAPTER_ID_KEYS))
        return chapter.title if chapter else None

    def _read_status(self, args: dict[str, Any], notes: list[str]) -> TaskStatus | None:
        raw_status = read_string_arg(args, "status")
        status = parse_task_status(raw_status)
        if raw_status and status is None:
            notes.append(f'Unknown task status "{raw_status}" was ignored.')
        return status


def _chapter_title(chapter: Chapter) -> str:
    return chapter.title


def _task_title(task: Task) -> str:
    return task.title


def _tool_call(function_name: str, args: dict[str, Any]) -> ToolCall:
    return ToolCall(function_name=function_name, arguments=json.dumps(args))


def translate_tool_calls(calls: list[ToolCall], context: TranslationContext) -> TranslationResult:
    """Translate a turn's tool calls against ``context.snapshot``."""
    return ToolCallTranslator(context).translate_all(calls)


def compose_reply(reply_text: str, diagnostics: list[Diagnostic], default_reply: str) -> str:
    """Assistant message text: model reply followed by diagnostic messages."""
    base = reply_text.strip() or default_reply
    if not diagnostics:
        return base
    notes = " ".join(diagnostic.message for diagnostic in diagnostics)
    return f"{base}\n\n{notes}"
