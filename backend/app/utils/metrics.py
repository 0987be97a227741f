"""Prometheus metrics for change proposals."""

from prometheus_client import Counter, Histogram

# Translation metrics
proposal_intents_total = Counter(
    "proposal_intents_total",
    "Change intents produced from assistant tool calls",
    ["kind"],
)

proposal_drops_total = Counter(
    "proposal_drops_total",
    "Tool calls dropped without producing a change intent",
    ["tool", "code"],
)

turn_translation_ms = Histogram(
    "turn_translation_ms",
    "Time spent translating one assistant turn in milliseconds",
    buckets=[1, 5, 10, 25, 50, 100, 250, 500, 1000],
)

# Ledger metrics
pending_change_transitions_total = Counter(
    "pending_change_transitions_total",
    "Pending change status transitions",
    ["status"],
)

audit_emit_failures_total = Counter(
    "audit_emit_failures_total",
    "Audit events that failed to persist",
)


class PrometheusProposalMetrics:
    """Prometheus-based proposal metrics implementation."""

    def inc_intent(self, kind: str) -> None:
        """Increment produced intent counter."""
        proposal_intents_total.labels(kind=kind).inc()

    def inc_drop(self, tool: str, code: str) -> None:
        """Increment dropped tool call counter."""
        proposal_drops_total.labels(tool=tool, code=code).inc()

    def record_translation(self, latency_ms: float) -> None:
        """Record turn translation latency."""
        turn_translation_ms.observe(latency_ms)

    def inc_transition(self, status: str) -> None:
        """Increment status transition counter."""
        pending_change_transitions_total.labels(status=status).inc()

    def inc_audit_failure(self) -> None:
        """Increment failed audit emission counter."""
        audit_emit_failures_total.inc()
