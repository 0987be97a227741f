"""Error taxonomy for change proposals.

Per-intent errors are caught by the translator and ledger and converted to
diagnostics; they never abort sibling intents in the same turn.
"""

from backend.app.models.changes import Diagnostic


class ProposalError(Exception):
    """Base class for errors that describe why a proposal was not produced."""

    code = "proposal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_diagnostic(self, tool_name: str | None = None) -> Diagnostic:
        return Diagnostic(code=self.code, message=self.message, tool_name=tool_name)


class StructuralViolation(ProposalError):
    """A hierarchy rule was broken (fatal to that intent)."""

    code = "structural_violation"

    def __init__(self, rule: str, message: str) -> None:
        super().__init__(message)
        self.rule = rule


class NotFound(ProposalError):
    """Target id did not resolve in the snapshot or store."""

    code = "not_found"

    def __init__(
        self, message: str, *, entity_type: str | None = None, entity_id: str | None = None
    ) -> None:
        super().__init__(message)
        self.entity_type = entity_type
        self.entity_id = entity_id


class MergeSkipped(ProposalError):
    """Section update had no usable material or would not change anything."""

    code = "merge_skipped"

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class DuplicateProposal(ProposalError):
    """Equivalent node already exists or was already proposed this turn."""

    code = "duplicate"


class MalformedToolCall(ProposalError):
    """Tool arguments could not be parsed or had the wrong shape."""

    code = "malformed_tool_call"


class AlreadyResolved(ProposalError):
    """Second transition attempted on a pending change."""

    code = "already_resolved"

    def __init__(self, change_id: str, status: str) -> None:
        super().__init__(f"Change {change_id} has already been resolved ({status})")
        self.change_id = change_id
        self.status = status
