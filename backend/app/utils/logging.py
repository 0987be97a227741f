"""Structured logging for change proposals."""

import logging
from typing import Any

from backend.app.config import Settings
from backend.app.models.changes import ChangeIntent, PendingChange, ToolCall
from backend.app.proposals.errors import ProposalError

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings (idempotent)."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


class StructuredProposalLogger:
    """Structured logger for tool call translation and ledger transitions."""

    def log_translated(self, document_id: str, call: ToolCall, intent: ChangeIntent) -> None:
        """Log a tool call that produced a change intent."""
        log_data: dict[str, Any] = {
            "document_id": document_id,
            "tool": call.function_name,
            "call_id": call.call_id,
            "kind": intent.kind.value,
            "target_id": intent.target_id,
            "outcome": "intent",
        }

        if intent.notes:
            log_data["notes"] = intent.notes

        logger.info(
            f"Tool call translated: {call.function_name} -> {intent.kind.value}",
            extra={"structured": log_data},
        )

    def log_dropped(self, document_id: str, call: ToolCall, error: ProposalError) -> None:
        """Log a tool call that produced no change intent."""
        log_data: dict[str, Any] = {
            "document_id": document_id,
            "tool": call.function_name,
            "call_id": call.call_id,
            "outcome": "dropped",
            "code": error.code,
            "reason": error.message,
        }

        logger.warning(
            f"Tool call dropped: {call.function_name} - {error.code}",
            extra={"structured": log_data},
        )

    def log_transition(self, change: PendingChange) -> None:
        """Log a pending change reaching a terminal state."""
        log_data: dict[str, Any] = {
            "change_id": change.id,
            "plan_id": change.plan_id,
            "kind": change.kind.value,
            "status": change.status.value,
        }

        logger.info(
            f"Pending change {change.id} -> {change.status.value}",
            extra={"structured": log_data},
        )
