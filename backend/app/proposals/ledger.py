"""Pending-change ledger: record proposals and resolve them exactly once."""

import logging
import uuid
from typing import Any

from backend.app.db.repositories import PendingChangeStore
from backend.app.models.changes import ChangeIntent, Diagnostic, PendingChange
from backend.app.models.common import ChangeKind, ChangeStatus, utcnow
from backend.app.proposals.errors import AlreadyResolved, NotFound
from backend.app.utils.logging import StructuredProposalLogger
from backend.app.utils.metrics import PrometheusProposalMetrics

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({ChangeStatus.applied, ChangeStatus.rejected})


class PendingChangeLedger:
    """Owns the proposed → applied | rejected lifecycle of change records."""

    def __init__(
        self,
        store: PendingChangeStore,
        proposal_logger: StructuredProposalLogger | None = None,
        metrics: PrometheusProposalMetrics | None = None,
    ) -> None:
        self.store = store
        self.proposal_logger = proposal_logger or StructuredProposalLogger()
        self.metrics = metrics or PrometheusProposalMetrics()

    def record(
        self,
        message_id: str,
        kind: ChangeKind,
        target_id: str | None,
        payload: dict[str, Any],
        *,
        plan_id: str,
        notes: list[str] | None = None,
    ) -> PendingChange:
        """Store one proposal in the ``proposed`` state."""
        change = PendingChange(
            id=str(uuid.uuid4()),
            plan_id=plan_id,
            message_id=message_id,
            kind=kind,
            target_id=target_id,
            payload=payload,
            notes=list(notes or []),
        )
        return self.store.insert_pending_change(change)

    def record_intents(
        self, message_id: str, intents: list[ChangeIntent], *, plan_id: str
    ) -> tuple[list[PendingChange], list[Diagnostic]]:
        """Record every intent independently.

        A storage failure on one intent is logged and reported as a diagnostic;
        the remaining intents are still recorded.
        """
        changes: list[PendingChange] = []
        diagnostics: list[Diagnostic] = []

        for intent in intents:
            try:
                changes.append(
                    self.record(
                        message_id,
                        intent.kind,
                        intent.target_id,
                        intent.payload,
                        plan_id=plan_id,
                        notes=intent.notes,
                    )
                )
            except Exception as e:
                logger.exception(f"Failed to record {intent.kind.value} proposal: {e}")
                self.metrics.inc_drop(intent.tool_name or intent.kind.value, "record_failed")
                diagnostics.append(
                    Diagnostic(
                        code="record_failed",
                        message="One of the proposed changes could not be saved.",
                        tool_name=intent.tool_name,
                    )
                )

        return changes, diagnostics

    def get(self, change_id: str) -> PendingChange:
        """Get a change or raise NotFound."""
        change = self.store.get_pending_change(change_id)
        if change is None:
            raise NotFound(
                "That proposed change no longer exists.",
                entity_type="pending_change",
                entity_id=change_id,
            )
        return change

    def transition(self, change_id: str, next_status: ChangeStatus) -> PendingChange:
        """Move a proposed change to a terminal status.

        Args:
            change_id: Pending change ID
            next_status: ``applied`` or ``rejected``

        Returns:
            The updated change

        Raises:
            ValueError: If ``next_status`` is not terminal
            NotFound: If the change does not exist
            AlreadyResolved: If the change already left ``proposed``; the stored
                record is left untouched
        """
        if next_status not in TERMINAL_STATUSES:
            raise ValueError(f"Cannot transition a change to {next_status.value}")

        swapped = self.store.compare_and_set_status(
            change_id, ChangeStatus.proposed, next_status, utcnow()
        )
        if not swapped:
            current = self.get(change_id)
            raise AlreadyResolved(change_id, current.status.value)

        change = self.get(change_id)
        self.metrics.inc_transition(next_status.value)
        self.proposal_logger.log_transition(change)
        return change

    def release(self, change_id: str) -> bool:
        """Return a claimed change to ``proposed`` after its mutation failed.

        Returns:
            True if the change was released, False if it was not ``applied``
        """
        released = self.store.compare_and_set_status(
            change_id, ChangeStatus.applied, ChangeStatus.proposed, None
        )
        if released:
            logger.warning(f"Released change {change_id} back to proposed")
        return released

    def list_changes(
        self,
        *,
        plan_id: str | None = None,
        status: ChangeStatus | None = None,
        message_id: str | None = None,
    ) -> list[PendingChange]:
        """List changes oldest first, filtered by plan, status and/or message."""
        return self.store.list_pending_changes(
            plan_id=plan_id, status=status, message_id=message_id
        )
