"""Service wiring for the business plan assistant."""

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from backend.app.config import Settings, get_settings
from backend.app.db.inmemory import (
    InMemoryAuditLog,
    InMemoryConversationStore,
    InMemoryDocumentStore,
    InMemoryPendingChangeStore,
    InMemoryTaskStore,
)
from backend.app.db.repositories import (
    AuditLog,
    ConversationStore,
    DocumentStore,
    PendingChangeStore,
    TaskStore,
)
from backend.app.db.sql_repositories import (
    SqlAuditLog,
    SqlConversationStore,
    SqlDocumentStore,
    SqlPendingChangeStore,
    SqlTaskStore,
)
from backend.app.models.document import Document
from backend.app.orchestration.turn import AssistantTurnProcessor
from backend.app.proposals.applier import ChangeApplier
from backend.app.proposals.ledger import PendingChangeLedger
from backend.app.proposals.seeding import ensure_default_tasks
from backend.app.utils.logging import StructuredProposalLogger, configure_logging
from backend.app.utils.metrics import PrometheusProposalMetrics

logger = logging.getLogger(__name__)


@dataclass
class Workspace:
    """Stores and services sharing one backing store."""

    documents: DocumentStore
    tasks: TaskStore
    conversations: ConversationStore
    pending_changes: PendingChangeStore
    audit_log: AuditLog
    ledger: PendingChangeLedger
    applier: ChangeApplier
    turns: AssistantTurnProcessor

    def open_plan(self, workspace_id: str) -> Document:
        """Get or create the workspace's document and seed its default tasks."""
        document = self.documents.get_or_create_document(workspace_id)
        ensure_default_tasks(self.tasks, document.id)
        return document


def build_workspace(settings: Settings | None = None, session: Session | None = None) -> Workspace:
    """Wire stores and services.

    Args:
        settings: Application settings, defaults to the cached settings
        session: SQLAlchemy session; in-memory stores are used when omitted

    Returns:
        Workspace with every service bound to the same stores
    """
    settings = settings or get_settings()
    configure_logging(settings)

    documents: DocumentStore
    tasks: TaskStore
    conversations: ConversationStore
    pending_changes: PendingChangeStore
    audit_log: AuditLog
    if session is not None:
        documents = SqlDocumentStore(session)
        tasks = SqlTaskStore(session)
        conversations = SqlConversationStore(session)
        pending_changes = SqlPendingChangeStore(session)
        audit_log = SqlAuditLog(session)
    else:
        logger.info("No database session given, using in-memory stores")
        documents = InMemoryDocumentStore()
        tasks = InMemoryTaskStore()
        conversations = InMemoryConversationStore()
        pending_changes = InMemoryPendingChangeStore()
        audit_log = InMemoryAuditLog()

    proposal_logger = StructuredProposalLogger()
    metrics = PrometheusProposalMetrics()
    ledger = PendingChangeLedger(pending_changes, proposal_logger, metrics)

    return Workspace(
        documents=documents,
        tasks=tasks,
        conversations=conversations,
        pending_changes=pending_changes,
        audit_log=audit_log,
        ledger=ledger,
        applier=ChangeApplier(documents, tasks, ledger, audit_log, metrics),
        turns=AssistantTurnProcessor(
            documents, tasks, conversations, ledger, settings, proposal_logger, metrics
        ),
    )
