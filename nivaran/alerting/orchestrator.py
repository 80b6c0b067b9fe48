"""
Escalation Orchestrator — one high-risk event, every channel at once.

Flow:
1. Risk factors from the raw answers
2. Channel-agnostic alert message
3. ShortMessage / Email / ChatLink adapters concurrently (join-all, per-channel timeout)
4. DeviceLocal adapter, always, after the network channels
5. Status: sent if any channel delivered, else failed
6. Ledger append (subscribers notified)
7. Operator summary

`send_emergency_alert` never raises; every failure ends up in the record.
"""

import asyncio
import uuid
from typing import Callable, Iterable, Optional, Sequence

import structlog

from nivaran.alerting.channels import ChannelAdapter, DeviceLocalAdapter
from nivaran.alerting.dedup import EscalationCooldown
from nivaran.alerting.extractor import (
    FALLBACK_FACTOR,
    SYNTHETIC_HIGH_RISK_ANSWERS,
    extract_risk_factors,
    normalize_answers,
)
from nivaran.alerting.notifier import LogOperatorNotifier, OperatorNotifier
from nivaran.alerting.schemas import (
    AlertMessage,
    AttemptOutcome,
    Channel,
    ChannelAttempt,
    Contact,
    EscalationRecord,
    EscalationStatus,
    RiskEvent,
)
from nivaran.alerting.templates import (
    build_alert_message,
    render_failure_summary,
    render_generic,
    render_success_summary,
)
from nivaran.common.resilience import call_with_timeout
from nivaran.services.ledger import DeliveryLedger, LedgerListener

logger = structlog.get_logger(__name__)

TEST_SUBJECT_ID = "test-user-123"
TEST_SUBJECT_NAME = "Test User"

# Scheduling headroom on top of a chain's worst case
CHAIN_SLACK_SECONDS = 1.0


def new_escalation_id() -> str:
    return f"emergency-{uuid.uuid4().hex}"


class EscalationOrchestrator:
    """
    Coordinates channel adapters for an emergency escalation.

    Constructed once by the container; the ledger and adapters are injected.
    """

    def __init__(
        self,
        *,
        contacts: Sequence[Contact],
        network_adapters: Sequence[ChannelAdapter],
        device_adapter: DeviceLocalAdapter,
        ledger: DeliveryLedger,
        notifier: Optional[OperatorNotifier] = None,
        cooldown: Optional[EscalationCooldown] = None,
        channel_timeout_seconds: float = 45.0,
        hotline: str = "1800-599-0019",
        text_line: str = "Text HOME to 741741",
        emergency_number: str = "112",
        display_timezone: str = "UTC",
        id_factory: Callable[[], str] = new_escalation_id,
    ):
        self._contacts = list(contacts)
        self._network_adapters = list(network_adapters)
        self._device_adapter = device_adapter
        self._ledger = ledger
        self._notifier = notifier or LogOperatorNotifier()
        self._cooldown = cooldown or EscalationCooldown(0)
        self._channel_timeout = channel_timeout_seconds
        self._hotline = hotline
        self._text_line = text_line
        self._emergency_number = emergency_number
        self._display_timezone = display_timezone
        self._id_factory = id_factory

        for adapter in self._network_adapters:
            deadline = self.channel_deadline(adapter)
            if deadline > self._channel_timeout:
                logger.info(
                    "channel_deadline_extended",
                    channel=adapter.channel.value,
                    configured_seconds=self._channel_timeout,
                    deadline_seconds=round(deadline, 2),
                )

    def channel_deadline(self, adapter: ChannelAdapter) -> float:
        """
        Deadline for one network channel.

        Never shorter than the adapter's full provider chain, so a hanging
        first provider cannot starve the later ones.
        """
        chain_seconds = getattr(adapter, "worst_case_seconds", 0.0)
        if chain_seconds <= 0:
            return self._channel_timeout
        return max(self._channel_timeout, chain_seconds + CHAIN_SLACK_SECONDS)

    @property
    def contacts(self) -> list[Contact]:
        return list(self._contacts)

    @property
    def channels(self) -> list[Channel]:
        return [a.channel for a in self._network_adapters] + [self._device_adapter.channel]

    # ── Escalation ─────────────────────────────────────────────────

    async def send_emergency_alert(
        self,
        subject_id: str,
        subject_name: str,
        answers: Iterable = (),
        *,
        is_test: bool = False,
    ) -> EscalationRecord:
        """
        Escalate a high-risk assessment to every responder channel.

        Returns the finalized record; never raises.
        """
        subject_id = str(subject_id) if subject_id is not None else "unknown"
        subject_name = str(subject_name) if subject_name else "Unknown"

        previous = self._suppressed_by_cooldown(subject_id)
        if previous is not None:
            return previous

        escalation_id = self._id_factory()
        structlog.contextvars.bind_contextvars(escalation_id=escalation_id, subject_id=subject_id)
        try:
            record = await self._escalate(escalation_id, subject_id, subject_name, answers, is_test)
        except Exception as e:
            # Last resort; adapters and the ledger already contain their own failures
            logger.exception("escalation_unexpected_error", error=str(e)[:200])
            record = EscalationRecord(
                id=escalation_id,
                risk_event=RiskEvent(subject_id=subject_id, subject_name=subject_name),
                risk_factors=[FALLBACK_FACTOR],
                target_contacts=self._contacts,
                status=EscalationStatus.FAILED,
            )
            await self._record(record)
        finally:
            structlog.contextvars.unbind_contextvars("escalation_id", "subject_id")

        return record

    async def send_test_alert(self) -> EscalationRecord:
        """Operator test trigger: a full escalation with synthetic high-risk answers."""
        logger.info("test_escalation_triggered", subject_id=TEST_SUBJECT_ID)
        return await self.send_emergency_alert(
            TEST_SUBJECT_ID,
            TEST_SUBJECT_NAME,
            SYNTHETIC_HIGH_RISK_ANSWERS,
        )

    async def _escalate(
        self,
        escalation_id: str,
        subject_id: str,
        subject_name: str,
        answers: Iterable,
        is_test: bool,
    ) -> EscalationRecord:
        raw_answers = normalize_answers(answers)
        event = RiskEvent(subject_id=subject_id, subject_name=subject_name, raw_answers=raw_answers)
        risk_factors = extract_risk_factors(raw_answers)
        message = self._compose(event, risk_factors, is_test=is_test)

        record = EscalationRecord(
            id=escalation_id,
            risk_event=event,
            risk_factors=risk_factors,
            message=render_generic(message),
            target_contacts=self._contacts,
            created_at=event.captured_at,
        )
        logger.warning(
            "escalation_started",
            risk_factors=len(risk_factors),
            contacts=len(self._contacts),
            channels=[c.value for c in self.channels],
        )

        network_attempts = await asyncio.gather(
            *(self._run_network_channel(adapter, message) for adapter in self._network_adapters)
        )
        device_attempt = await self._run_device_channel(message)

        record.attempts = [*network_attempts, device_attempt]
        record.status = (
            EscalationStatus.SENT
            if any(a.succeeded for a in record.attempts)
            else EscalationStatus.FAILED
        )

        logger.warning(
            "escalation_completed",
            status=record.status.value,
            delivered=[c.value for c in record.successful_channels()],
            failed=[a.channel.value for a in record.attempts if not a.succeeded],
        )

        await self._record(record)
        self._cooldown.record_fired(subject_id, escalation_id)

        self._notify_operator(record, message)
        return record

    async def _record(self, record: EscalationRecord) -> None:
        try:
            await self._ledger.append(record)
        except Exception as e:
            logger.error("escalation_not_recorded", error=str(e)[:200])

    def _compose(self, event: RiskEvent, risk_factors: list[str], *, is_test: bool) -> AlertMessage:
        return build_alert_message(
            event,
            risk_factors,
            hotline=self._hotline,
            text_line=self._text_line,
            emergency_number=self._emergency_number,
            tz_name=self._display_timezone,
            is_test=is_test,
        )

    async def _run_network_channel(self, adapter: ChannelAdapter, message: AlertMessage) -> ChannelAttempt:
        try:
            return await call_with_timeout(
                adapter.dispatch(self._contacts, message),
                name=f"channel:{adapter.channel.value}",
                timeout_seconds=self.channel_deadline(adapter),
            )
        except Exception as e:
            logger.error(
                "channel_failed",
                channel=adapter.channel.value,
                error_type=type(e).__name__,
                error=str(e)[:200],
            )
            return ChannelAttempt(
                channel=adapter.channel,
                provider=adapter.chain_label,
                outcome=AttemptOutcome.FAILURE,
                detail=str(e) or type(e).__name__,
            )

    async def _run_device_channel(self, message: AlertMessage) -> ChannelAttempt:
        try:
            return await self._device_adapter.dispatch(self._contacts, message)
        except Exception as e:
            logger.error("channel_failed", channel=Channel.DEVICE_LOCAL.value, error=str(e)[:200])
            return ChannelAttempt(
                channel=Channel.DEVICE_LOCAL,
                provider=self._device_adapter.chain_label,
                outcome=AttemptOutcome.FAILURE,
                detail=str(e) or type(e).__name__,
            )

    def _notify_operator(self, record: EscalationRecord, message: AlertMessage) -> None:
        try:
            if record.status == EscalationStatus.SENT:
                summary = render_success_summary(
                    record.subject_name,
                    {a.channel: a.succeeded for a in record.attempts},
                    self._contacts,
                    message.display_time,
                )
                self._notifier.escalation_sent(record, summary)
            else:
                self._notifier.escalation_failed(
                    record,
                    render_failure_summary(record.subject_name, self._contacts),
                )
        except Exception as e:
            logger.error("operator_notification_failed", error=str(e)[:200])

    def _suppressed_by_cooldown(self, subject_id: str) -> Optional[EscalationRecord]:
        active_id = self._cooldown.active_escalation(subject_id)
        if active_id is None:
            return None
        for record in reversed(self._ledger.list_for_subject(subject_id)):
            if record.id == active_id:
                return record
        return None

    # ── Single-channel test ────────────────────────────────────────

    async def test_channel(self, channel: Channel) -> ChannelAttempt:
        """
        Send a test message through one channel.

        Nothing is recorded in the ledger. Unknown channels yield a failed attempt.
        """
        event = RiskEvent(subject_id=TEST_SUBJECT_ID, subject_name=TEST_SUBJECT_NAME)
        message = self._compose(event, extract_risk_factors(SYNTHETIC_HIGH_RISK_ANSWERS), is_test=True)
        logger.info("channel_test_started", channel=channel.value)

        if channel == Channel.DEVICE_LOCAL:
            return await self._run_device_channel(message)

        for adapter in self._network_adapters:
            if adapter.channel == channel:
                return await self._run_network_channel(adapter, message)

        return ChannelAttempt(
            channel=channel,
            provider="none",
            outcome=AttemptOutcome.FAILURE,
            detail="channel not configured",
        )

    # ── History ────────────────────────────────────────────────────

    def get_all_notifications(self) -> list[EscalationRecord]:
        """Every recorded escalation, oldest first."""
        return self._ledger.list()

    def get_user_notifications(self, subject_id: str) -> list[EscalationRecord]:
        return self._ledger.list_for_subject(subject_id)

    def subscribe(self, callback: LedgerListener) -> Callable[[], None]:
        """Follow ledger changes; returns the unsubscribe function."""
        return self._ledger.subscribe(callback)
