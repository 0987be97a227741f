"""LLM client for proposing document and task changes via function calling.

Security: Reads API key from settings only, never hardcoded.
Provides a deterministic stub when no key is present for testing.
"""

import logging
from collections.abc import Iterable
from typing import Any, Protocol

from openai import AsyncOpenAI

from backend.app.config import Settings, get_settings
from backend.app.models.changes import AssistantTurn, ToolCall
from backend.app.models.common import MessageRole
from backend.app.models.conversation import Message
from backend.app.proposals.tool_schema import TOOL_DEFINITIONS

logger = logging.getLogger(__name__)

FALLBACK_REPLY = (
    "Sorry, I couldn't reach the writing assistant just now. "
    "Please try again in a moment."
)


class LLMClient(Protocol):
    """Protocol for LLM client implementations."""

    async def propose_changes(
        self,
        *,
        user_message: str,
        history: list[Message],
        outline: str,
    ) -> AssistantTurn:
        """Ask the model for a reply and proposed edits.

        Args:
            user_message: Latest user message
            history: Earlier conversation messages, oldest first
            outline: Rendered document and task outline with ids

        Returns:
            AssistantTurn with reply text and raw tool calls
        """
        ...


class DeterministicStubClient:
    """Deterministic stub client for testing (no API key required).

    Returns the scripted turns in order, then empty turns.
    """

    def __init__(self, turns: Iterable[AssistantTurn] | None = None) -> None:
        self._turns = list(turns or [])
        self.requests: list[dict[str, Any]] = []

    async def propose_changes(
        self,
        *,
        user_message: str,
        history: list[Message],
        outline: str,
    ) -> AssistantTurn:
        """Return the next scripted turn."""
        self.requests.append(
            {"user_message": user_message, "history": list(history), "outline": outline}
        )
        if self._turns:
            return self._turns.pop(0)
        return AssistantTurn()


class OpenAIClient:
    """OpenAI-backed LLM client using chat completions with tools."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.3,
        max_tokens: int = 1500,
    ):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from settings)
            model: Model name to use
            temperature: Sampling temperature
            max_tokens: Completion token cap
        """
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def propose_changes(
        self,
        *,
        user_message: str,
        history: list[Message],
        outline: str,
    ) -> AssistantTurn:
        """Generate a reply and tool calls using the OpenAI API."""
        messages = self._build_messages(user_message, history, outline)

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                tools=TOOL_DEFINITIONS,
                tool_choice="auto",
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            logger.error(f"OpenAI API call failed: {e}")
            logger.warning("Falling back to an empty assistant turn")
            return AssistantTurn(reply_text=FALLBACK_REPLY)

        message = response.choices[0].message
        tool_calls = [
            ToolCall(
                function_name=call.function.name,
                arguments=call.function.arguments,
                call_id=call.id,
            )
            for call in (message.tool_calls or [])
            if getattr(call, "function", None) is not None
        ]
        logger.info(f"OpenAI proposed {len(tool_calls)} tool call(s)")
        return AssistantTurn(reply_text=message.content or "", tool_calls=tool_calls)

    def _build_messages(
        self, user_message: str, history: list[Message], outline: str
    ) -> list[dict[str, str]]:
        """Build the chat transcript sent to the model."""
        messages = [
            {"role": "system", "content": self._build_system_prompt()},
            {"role": "system", "content": f"Current outline:\n{outline}"},
        ]
        for past in history:
            role = "assistant" if past.role == MessageRole.assistant else "user"
            messages.append({"role": role, "content": past.content})
        messages.append({"role": "user", "content": user_message})
        return messages

    def _build_system_prompt(self) -> str:
        """Build system prompt for change proposals."""
        return """You are a business plan writing assistant. You help the user edit a
document made of chapters and typed sections, and a two-level task outline.

You never edit the document directly. Every edit is a proposal the user reviews,
expressed as a call to one of the propose_* tools.

RULES:
- Reference chapters, sections and tasks by the ids shown in the outline.
- Only propose updates with the exact text the user asked for. If the user did not
  give the new text, ask for it instead of inventing content.
- H1 tasks have no parent. H2 tasks must sit under an H1 task.
- Keep the reply short and explain what you proposed."""


def get_llm_client(settings: Settings | None = None) -> LLMClient:
    """Factory function to get appropriate LLM client based on config.

    Returns:
        OpenAIClient if API key is configured, DeterministicStubClient otherwise
    """
    settings = settings or get_settings()
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI client for change proposals")
        return OpenAIClient(
            api_key=api_key.get_secret_value(),
            model=settings.openai_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )

    logger.warning("No OpenAI API key configured, using deterministic stub client")
    return DeterministicStubClient()
