"""Tolerant readers for model-produced tool arguments.

Models mix camelCase and snake_case and sometimes emit invalid JSON, so every
reader accepts several key aliases and treats blank strings as absent.
"""

import json
import logging
from typing import Any

from backend.app.proposals.errors import MalformedToolCall

logger = logging.getLogger(__name__)


def parse_tool_arguments(raw: str | dict[str, Any] | None) -> dict[str, Any]:
    """Decode the arguments JSON object.

    Raises:
        MalformedToolCall: If the text is not valid JSON or not an object.
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if not raw.strip():
        return {}

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedToolCall(f"Tool arguments are not valid JSON: {e.msg}") from e

    if not isinstance(parsed, dict):
        raise MalformedToolCall(
            f"Tool arguments must be a JSON object, got {type(parsed).__name__}"
        )
    return parsed


def read_string_arg(args: dict[str, Any], *keys: str) -> str | None:
    """First non-blank string among ``keys``, trimmed."""
    for key in keys:
        value = args.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def read_string_list_arg(args: dict[str, Any], *keys: str) -> list[str] | None:
    """First list among ``keys`` with its non-blank string items, trimmed."""
    for key in keys:
        value = args.get(key)
        if isinstance(value, list):
            return [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return None


def read_value_arg(args: dict[str, Any], *keys: str) -> Any:
    """First present (non-None) value among ``keys``."""
    for key in keys:
        if args.get(key) is not None:
            return args[key]
    return None
