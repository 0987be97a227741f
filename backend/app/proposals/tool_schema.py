"""Function-calling schema advertised to the language model.

Names here must stay in sync with ``TOOL_CHANGE_KINDS`` in the translator.
"""

from typing import Any

from backend.app.models.common import HierarchyLevel, SectionType, TaskStatus

_SECTION_TYPES = [member.value for member in SectionType]
_LEVELS = [member.value for member in HierarchyLevel]
_STATUSES = [member.value for member in TaskStatus]


def _function(
    name: str, description: str, properties: dict[str, Any], required: list[str]
) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


_STRING = {"type": "string"}

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    _function(
        "propose_add_chapter",
        "Propose a new chapter, optionally nested under a parent chapter.",
        {
            "title": _STRING,
            "parentChapterId": _STRING,
            "parentChapterTitle": _STRING,
            "orderIndex": {
                "type": "integer",
                "minimum": 0,
                "description": "Position among sibling chapters; omit to append",
            },
        },
        ["title"],
    ),
    _function(
        "propose_update_chapter",
        "Propose renaming or moving an existing chapter.",
        {
            "chapterId": _STRING,
            "chapterTitle": {**_STRING, "description": "Current title, if the id is unknown"},
            "newTitle": _STRING,
            "parentChapterId": _STRING,
        },
        ["chapterId"],
    ),
    _function(
        "propose_delete_chapter",
        "Propose deleting a chapter together with its sections and sub-chapters.",
        {"chapterId": _STRING},
        ["chapterId"],
    ),
    _function(
        "propose_reorder_chapters",
        "Propose a new order for sibling chapters.",
        {"orderedChapterIds": {"type": "array", "items": _STRING}},
        ["orderedChapterIds"],
    ),
    _function(
        "propose_add_section",
        "Propose a new content section at the end of a chapter.",
        {
            "chapterId": _STRING,
            "chapterTitle": _STRING,
            "sectionType": {"type": "string", "enum": _SECTION_TYPES},
            "content": {"type": "object"},
        },
        ["chapterId", "sectionType"],
    ),
    _function(
        "propose_update_section",
        "Propose new content for an existing section. Send only the fields that change.",
        {
            "sectionId": _STRING,
            "newContent": {
                "description": "Plain text for text sections, or a partial content object",
                "anyOf": [_STRING, {"type": "object"}],
            },
        },
        ["sectionId", "newContent"],
    ),
    _function(
        "propose_delete_section",
        "Propose deleting a section.",
        {"sectionId": _STRING},
        ["sectionId"],
    ),
    _function(
        "propose_reorder_sections",
        "Propose a new order for the sections of one chapter.",
        {
            "chapterId": _STRING,
            "orderedSectionIds": {"type": "array", "items": _STRING},
        },
        ["chapterId", "orderedSectionIds"],
    ),
    _function(
        "propose_add_task",
        "Propose a planning task. H2 tasks must sit under an H1 task.",
        {
            "title": _STRING,
            "instructions": _STRING,
            "aiPrompt": _STRING,
            "hierarchyLevel": {"type": "string", "enum": _LEVELS},
            "parentTaskId": _STRING,
            "parentTaskTitle": _STRING,
            "status": {"type": "string", "enum": _STATUSES},
        },
        ["title"],
    ),
    _function(
        "propose_update_task",
        "Propose changes to an existing task.",
        {
            "taskId": _STRING,
            "taskTitle": _STRING,
            "title": _STRING,
            "instructions": _STRING,
            "aiPrompt": _STRING,
            "hierarchyLevel": {"type": "string", "enum": _LEVELS},
            "parentTaskId": _STRING,
            "status": {"type": "string", "enum": _STATUSES},
        },
        ["taskId"],
    ),
    _function(
        "propose_delete_task",
        "Propose deleting a task (H1 deletion removes its H2 tasks).",
        {"taskId": _STRING},
        ["taskId"],
    ),
]


def tool_names() -> list[str]:
    return [definition["function"]["name"] for definition in TOOL_DEFINITIONS]
