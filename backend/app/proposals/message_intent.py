"""Read what the user asked for straight from the message text.

Used when the model's tool calls miss an obvious request: a message that is
only about chapters or only about sections can still produce a proposal.
"""

import re
from dataclasses import dataclass
from typing import Any

from backend.app.proposals.arguments import read_string_arg

_CHAPTER_WORDS = re.compile(r"\b(chapter|subchapter)\b", re.I)
_TASK_WORDS = re.compile(r"\b(task|subtask|h1|h2)\b", re.I)
_SECTION_WORDS = re.compile(r"\b(section|paragraph|text|content)\b", re.I)
_SECTION_KIND_WORDS = re.compile(
    r"\b(section|subsection|paragraph|text|content|list|table|comparison|timeline|embed"
    r"|page break)\b",
    re.I,
)

_ACTIONS = r"(add|create|update|rename|delete|remove|edit|change)"


def _action_patterns(nouns: str) -> tuple[re.Pattern[str], re.Pattern[str]]:
    return (
        re.compile(rf"\b{_ACTIONS}\b[^\n.!?]{{0,40}}\b{nouns}\b", re.I),
        re.compile(rf"\b{nouns}\b[^\n.!?]{{0,30}}\b{_ACTIONS}\b", re.I),
    )


_CHAPTER_ACTIONS = _action_patterns(r"(chapter|subchapter)")
_TASK_ACTIONS = _action_patterns(r"(task|subtask|h1|h2)")

_QUOTE = r"[\"“](.+?)[\"”]"
_SUBCHAPTER_CREATION = re.compile(
    rf"\b(?:add|create)\s+(?:a\s+)?subchapter\s+{_QUOTE}(?:\s+under\s+{_QUOTE})?", re.I
)
_CHAPTER_CREATION = re.compile(
    rf"\b(?:add|create)\s+(?:a\s+)?(?:top[-\s]?level\s+)?chapter\s+{_QUOTE}"
    rf"(?:\s+under\s+{_QUOTE})?",
    re.I,
)
_QUOTED_UNDER = (re.compile(rf"\bunder\s+{_QUOTE}", re.I), re.compile(rf"\bin\s+{_QUOTE}", re.I))
_QUOTED_CHAPTER_TARGET = (
    re.compile(rf"\b(?:to|in|under)\s+{_QUOTE}\s+chapter\b", re.I),
    re.compile(rf"\bchapter\s+{_QUOTE}", re.I),
)

_TASK_HINT_KEYS = ("taskId", "task_id", "parentTaskId", "parent_task_id", "parentId", "parent_id")
_LEVEL_HINT_KEYS = ("hierarchyLevel", "hierarchy_level", "level")
_CHAPTER_HINT_KEYS = (
    "chapterTitle",
    "chapter_title",
    "chapterName",
    "chapter",
    "parentChapterId",
    "parent_chapter_id",
)


@dataclass(frozen=True)
class ChapterRequest:
    """Chapter the user asked to create, e.g. 'add chapter "Risks" under "Market"'."""

    title: str
    parent_title: str | None = None


def _has_explicit_action(patterns: tuple[re.Pattern[str], ...], message_text: str) -> bool:
    return any(pattern.search(message_text) for pattern in patterns)


def is_chapter_only_intent(message_text: str) -> bool:
    """Mentions chapters but neither tasks nor section content."""
    return (
        bool(_CHAPTER_WORDS.search(message_text))
        and not _TASK_WORDS.search(message_text)
        and not _SECTION_WORDS.search(message_text)
    )


def is_section_only_intent(message_text: str) -> bool:
    """Mentions a kind of section without asking for a chapter or task change."""
    return (
        bool(_SECTION_KIND_WORDS.search(message_text))
        and not _TASK_WORDS.search(message_text)
        and not _has_explicit_action(_CHAPTER_ACTIONS, message_text)
        and not _has_explicit_action(_TASK_ACTIONS, message_text)
    )


def is_likely_chapter_creation(message_text: str, args: dict[str, Any]) -> bool:
    """Whether an add-task call was really meant to create a chapter.

    True when the message talks about chapters and not tasks, or when the
    arguments only point at a chapter and carry no task hints.
    """
    if _TASK_WORDS.search(message_text):
        return False
    if _CHAPTER_WORDS.search(message_text):
        return True
    return (
        read_string_arg(args, *_TASK_HINT_KEYS) is None
        and read_string_arg(args, *_LEVEL_HINT_KEYS) is None
        and read_string_arg(args, *_CHAPTER_HINT_KEYS) is not None
    )


def extract_chapter_request(message_text: str) -> ChapterRequest | None:
    """Quoted chapter title (and optional quoted parent) from an add/create request."""
    for pattern in (_SUBCHAPTER_CREATION, _CHAPTER_CREATION):
        match = pattern.search(message_text)
        if match and match.group(1).strip():
            parent_title = (match.group(2) or "").strip() or None
            return ChapterRequest(title=match.group(1).strip(), parent_title=parent_title)
    return None


def extract_quoted_parent_title(message_text: str) -> str | None:
    """Title quoted after 'under' or 'in'."""
    for pattern in _QUOTED_UNDER:
        match = pattern.search(message_text)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def extract_quoted_chapter_target(message_text: str) -> str | None:
    """Chapter named as 'to "X" chapter' or 'chapter "X"'."""
    for pattern in _QUOTED_CHAPTER_TARGET:
        match = pattern.search(message_text)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None
