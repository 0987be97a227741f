"""Assistant turn: translate model tool calls into reviewable pending changes."""

import logging
from dataclasses import dataclass, field

from backend.app.config import Settings, get_settings
from backend.app.db.repositories import ConversationStore, DocumentStore, TaskStore
from backend.app.llm.client import LLMClient
from backend.app.models.changes import AssistantTurn, Diagnostic, PendingChange
from backend.app.models.common import MessageRole
from backend.app.models.conversation import Message
from backend.app.orchestration.outline import render_outline
from backend.app.proposals.ledger import PendingChangeLedger
from backend.app.proposals.translator import ToolCallTranslator, TranslationContext, compose_reply
from backend.app.tree.snapshot import PlanSnapshot
from backend.app.utils.logging import StructuredProposalLogger
from backend.app.utils.metrics import PrometheusProposalMetrics

logger = logging.getLogger(__name__)


@dataclass
class TurnOutcome:
    """Result of one assistant turn."""

    assistant_message: Message
    pending_changes: list[PendingChange] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


class AssistantTurnProcessor:
    """Runs one user message through the model and records its proposals.

    Nothing here mutates the document or task outline; changes only take
    effect once approved through the applier.
    """

    def __init__(
        self,
        documents: DocumentStore,
        tasks: TaskStore,
        conversations: ConversationStore,
        ledger: PendingChangeLedger,
        settings: Settings | None = None,
        proposal_logger: StructuredProposalLogger | None = None,
        metrics: PrometheusProposalMetrics | None = None,
    ) -> None:
        self.documents = documents
        self.tasks = tasks
        self.conversations = conversations
        self.ledger = ledger
        self.settings = settings or get_settings()
        self.proposal_logger = proposal_logger or StructuredProposalLogger()
        self.metrics = metrics or PrometheusProposalMetrics()

    def load_snapshot(self, document_id: str) -> PlanSnapshot:
        """Load both trees once for the whole turn."""
        return PlanSnapshot(
            document_id=document_id,
            chapters=self.documents.load_chapter_tree(document_id),
            tasks=self.tasks.load_task_tree(document_id),
        )

    def process(
        self,
        document_id: str,
        user_message: str,
        turn: AssistantTurn,
        selected_chapter_id: str | None = None,
        selected_task_id: str | None = None,
        snapshot: PlanSnapshot | None = None,
    ) -> TurnOutcome:
        """Translate the model's tool calls and record them as pending changes.

        Args:
            document_id: Document (plan) the turn belongs to
            user_message: Text of the user message that triggered the turn
            turn: Model reply and raw tool calls
            selected_chapter_id: Chapter selected in the editor, if any
            selected_task_id: Task selected in the editor, if any
            snapshot: Snapshot already loaded for this turn, if any

        Returns:
            TurnOutcome with the stored assistant message, the recorded
            changes and the diagnostics of dropped calls
        """
        snapshot = snapshot or self.load_snapshot(document_id)
        context = TranslationContext(
            snapshot=snapshot,
            message_text=user_message,
            selected_chapter_id=selected_chapter_id,
            selected_task_id=selected_task_id,
            default_chapter_title=self.settings.default_chapter_title,
            default_task_title=self.settings.default_task_title,
        )
        translator = ToolCallTranslator(context, self.proposal_logger, self.metrics)
        result = translator.propose_from_message(translator.translate_all(turn.tool_calls))

        reply = compose_reply(turn.reply_text, result.diagnostics, self.settings.default_reply_text)
        conversation = self.conversations.get_or_create_conversation(document_id)
        assistant_message = self.conversations.append_message(
            conversation.id, MessageRole.assistant, reply
        )

        changes, record_diagnostics = self.ledger.record_intents(
            assistant_message.id, result.intents, plan_id=snapshot.plan_id
        )

        logger.info(
            f"Turn for document {document_id}: {len(turn.tool_calls)} tool call(s), "
            f"{len(changes)} recorded, {len(result.diagnostics)} dropped"
        )
        return TurnOutcome(
            assistant_message=assistant_message,
            pending_changes=changes,
            diagnostics=result.diagnostics + record_diagnostics,
        )

    async def run(
        self,
        document_id: str,
        user_message: str,
        llm: LLMClient,
        selected_chapter_id: str | None = None,
        selected_task_id: str | None = None,
    ) -> TurnOutcome:
        """Store the user message, ask the model, then process its turn."""
        conversation = self.conversations.get_or_create_conversation(document_id)
        history = self.conversations.list_messages(
            conversation.id, limit=self.settings.llm_history_messages
        )
        self.conversations.append_message(conversation.id, MessageRole.user, user_message)

        snapshot = self.load_snapshot(document_id)
        turn = await llm.propose_changes(
            user_message=user_message, history=history, outline=render_outline(snapshot)
        )

        return self.process(
            document_id,
            user_message,
            turn,
            selected_chapter_id=selected_chapter_id,
            selected_task_id=selected_task_id,
            snapshot=snapshot,
        )
