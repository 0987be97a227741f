"""Assistant tool calls, change intents and the pending-change record."""

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from backend.app.models.common import AuditAction, ChangeKind, ChangeStatus, utcnow


class ToolCall(BaseModel):
    """Function call emitted by the language model.

    ``arguments`` is the raw JSON text exactly as the model produced it and
    may be invalid.
    """

    function_name: str
    arguments: str | None = None
    call_id: str | None = None


class AssistantTurn(BaseModel):
    """Model output for one user message."""

    reply_text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)


class Diagnostic(BaseModel):
    """Why a tool call produced no change (surfaced in the assistant reply)."""

    code: str = Field(..., description="Error code, e.g. 'not_found', 'no_op'")
    message: str = Field(..., description="Human-readable explanation")
    tool_name: str | None = None


class ChangeIntent(BaseModel):
    """Validated, typed edit derived from a single tool call."""

    kind: ChangeKind
    target_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    tool_name: str | None = None
    notes: list[str] = Field(default_factory=list)

    def signature(self) -> tuple[str, str | None, str]:
        """Identity used to drop duplicate intents within one turn."""
        payload_key = json.dumps(self.payload, sort_keys=True, default=str)
        return (self.kind.value, self.target_id, payload_key)


class TranslationResult(BaseModel):
    """Intents and diagnostics for one batch of tool calls."""

    intents: list[ChangeIntent] = Field(default_factory=list)
    diagnostics: list[Diagnostic] = Field(default_factory=list)


class PendingChange(BaseModel):
    """Proposed edit awaiting human approval.

    ``target_id`` is a plain reference without referential integrity: the
    target may be deleted while the change is still pending.
    """

    id: str
    plan_id: str
    message_id: str
    kind: ChangeKind
    target_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    status: ChangeStatus = ChangeStatus.proposed
    notes: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    reviewed_at: datetime | None = None


class AuditEvent(BaseModel):
    """Record of a structural mutation applied from an approved change.

    ``entity_id`` is a weak reference. It is None for deletions and is nulled
    on earlier events once their entity is deleted.
    """

    id: str
    document_id: str
    change_id: str | None = None
    action: AuditAction
    entity_type: str
    entity_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
