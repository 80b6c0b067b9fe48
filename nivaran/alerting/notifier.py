"""
Operator notification port.

The orchestrator never talks to a UI directly; it hands a finished summary to
an `OperatorNotifier`. The default implementation writes it to the log.
"""

from typing import Protocol

import structlog

from nivaran.alerting.schemas import EscalationRecord

logger = structlog.get_logger(__name__)


class OperatorNotifier(Protocol):
    """Protocol for operator-facing escalation summaries."""

    def escalation_sent(self, record: EscalationRecord, summary: str) -> None:
        """At least one channel delivered."""
        ...

    def escalation_failed(self, record: EscalationRecord, summary: str) -> None:
        """Every channel failed; `summary` lists the numbers to call by hand."""
        ...


class LogOperatorNotifier:
    """Writes operator summaries to the structured log."""

    def escalation_sent(self, record: EscalationRecord, summary: str) -> None:
        logger.warning(
            "operator_summary",
            escalation_id=record.id,
            status=record.status.value,
            channels=[c.value for c in record.successful_channels()],
            summary=summary,
        )

    def escalation_failed(self, record: EscalationRecord, summary: str) -> None:
        logger.critical(
            "operator_summary",
            escalation_id=record.id,
            status=record.status.value,
            summary=summary,
        )


class CollectingOperatorNotifier:
    """Keeps summaries in memory for callers that print or inspect them."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.failed: list[tuple[str, str]] = []

    def escalation_sent(self, record: EscalationRecord, summary: str) -> None:
        self.sent.append((record.id, summary))

    def escalation_failed(self, record: EscalationRecord, summary: str) -> None:
        self.failed.append((record.id, summary))
