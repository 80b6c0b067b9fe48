"""
Escalation Schemas.

Defines risk events, responder contacts, per-channel delivery attempts and the
escalation record that the ledger stores.
"""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ──────────────────────────────────────────────────────────────


class RiskLevel(StrEnum):
    HIGH = "high"


class Channel(StrEnum):
    SHORT_MESSAGE = "short_message"
    EMAIL = "email"
    CHAT_LINK = "chat_link"
    DEVICE_LOCAL = "device_local"


class AttemptOutcome(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"


class EscalationStatus(StrEnum):
    PENDING = "pending"     # Channel adapters still running
    SENT = "sent"
    FAILED = "failed"


# ── Inputs ─────────────────────────────────────────────────────────────


class AnswerRecord(BaseModel):
    """One recorded assessment answer (question id + selected option index)."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    question_id: int = Field(alias="questionId")
    selected_option: int = Field(alias="selectedOption")


class Contact(BaseModel):
    """A responder reachable by phone. Read-only configuration."""
    model_config = ConfigDict(frozen=True)

    label: str
    phone_number: str
    is_primary: bool = False

    @property
    def digits(self) -> str:
        """Phone number without '+', spaces or dashes (wa.me / gateway format)."""
        return "".join(ch for ch in self.phone_number if ch.isdigit())

    @property
    def e164(self) -> str:
        return f"+{self.digits}"


class RiskEvent(BaseModel):
    """
    A high-risk assessment result handed over by the assessment collaborator.

    Created once per submission that resolves to the highest tier.
    """
    model_config = ConfigDict(frozen=True)

    subject_id: str
    subject_name: str
    risk_level: RiskLevel = RiskLevel.HIGH
    raw_answers: list[AnswerRecord] = Field(default_factory=list)
    captured_at: datetime = Field(default_factory=utcnow)


# ── Message ────────────────────────────────────────────────────────────


class AlertMessage(BaseModel):
    """
    Channel-agnostic alert payload.

    Channel renderers in `templates` turn this into SMS text, email body,
    chat markup, file and print content.
    """
    model_config = ConfigDict(frozen=True)

    subject_id: str
    subject_name: str
    created_at: datetime
    risk_factors: list[str]
    headline_factors: list[str]     # Up to three leading factors
    hotline: str
    text_line: str
    emergency_number: str
    display_time: str
    is_test: bool = False


# ── Attempts ───────────────────────────────────────────────────────────


class ProviderAttempt(BaseModel):
    """One provider call (or one device-local sub-action)."""
    provider: str
    contact_label: Optional[str] = None
    outcome: AttemptOutcome
    detail: str = ""
    attempted_at: datetime = Field(default_factory=utcnow)


class ChannelAttempt(BaseModel):
    """
    Channel-level outcome for one escalation.

    `provider` names the provider that delivered, or the last one tried when
    the whole chain failed. `provider_trail` keeps every individual call.
    """
    channel: Channel
    provider: str
    outcome: AttemptOutcome
    detail: str = ""
    attempted_at: datetime = Field(default_factory=utcnow)
    provider_trail: list[ProviderAttempt] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.outcome == AttemptOutcome.SUCCESS


# ── Escalation Record ──────────────────────────────────────────────────


class EscalationRecord(BaseModel):
    """
    Aggregated result of one `send_emergency_alert` call.

    Appended to the ledger once its status is final and never edited again.
    """
    id: str
    risk_event: RiskEvent
    risk_factors: list[str] = Field(default_factory=list)
    message: str = ""
    target_contacts: list[Contact] = Field(default_factory=list)
    attempts: list[ChannelAttempt] = Field(default_factory=list)
    status: EscalationStatus = EscalationStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def subject_id(self) -> str:
        return self.risk_event.subject_id

    @property
    def subject_name(self) -> str:
        return self.risk_event.subject_name

    def attempt_for(self, channel: Channel) -> Optional[ChannelAttempt]:
        for attempt in self.attempts:
            if attempt.channel == channel:
                return attempt
        return None

    def successful_channels(self) -> list[Channel]:
        return [a.channel for a in self.attempts if a.succeeded]


class EscalationRequest(BaseModel):
    """Inbound escalation request from the assessment collaborator."""
    subject_id: str
    subject_name: str
    answers: list[AnswerRecord] = Field(default_factory=list)


class EscalationListResponse(BaseModel):
    escalations: list[EscalationRecord]
    total: int


class EscalationSummary(BaseModel):
    total: int
    sent: int
    failed: int
    pending: int
