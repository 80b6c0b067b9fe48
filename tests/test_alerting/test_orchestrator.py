"""
Tests for the Escalation Orchestrator.

Covers:
- Ten-answer scenario: ten factors, status sent, one attempt per channel
- All network channels failing: still sent through DeviceLocal
- Total failure: status failed, operator told to call by hand
- Never raises, never leaves a record pending
- Concurrent fan-out and chain-aware channel deadlines
- Ledger append and subscriber notification
- Rapid repeat escalations, optional cooldown
- Single-channel test sends
"""

import asyncio

import pytest

from nivaran.alerting.channels import ChannelAdapter, DeviceLocalAdapter
from nivaran.alerting.dedup import EscalationCooldown
from nivaran.alerting.notifier import CollectingOperatorNotifier
from nivaran.alerting.orchestrator import TEST_SUBJECT_ID, EscalationOrchestrator
from nivaran.alerting.schemas import (
    AttemptOutcome,
    Channel,
    EscalationStatus,
)
from nivaran.services.ledger import DeliveryLedger

ALL_CHANNELS = [Channel.SHORT_MESSAGE, Channel.EMAIL, Channel.CHAT_LINK, Channel.DEVICE_LOCAL]


class BrokenDeviceAdapter:
    channel = Channel.DEVICE_LOCAL
    chain_label = "device_local"

    async def dispatch(self, contacts, message):
        raise RuntimeError("host unavailable")


class StuckAdapter:
    """Network adapter that never returns, whatever its providers do."""

    channel = Channel.SHORT_MESSAGE
    chain_label = "stuck"
    worst_case_seconds = 0.0

    async def dispatch(self, contacts, message):
        await asyncio.sleep(30)


class SlowProvider:
    """Provider that sleeps `delay` seconds, then returns `detail`."""

    retryable = True
    is_configured = True

    def __init__(self, name, delay=5.0, detail="ok"):
        self.name = name
        self.delay = delay
        self.detail = detail
        self.calls = 0

    async def send(self, contact, message):
        self.calls += 1
        await asyncio.sleep(self.delay)
        return self.detail


class BrokenLedger(DeliveryLedger):
    async def append(self, record):
        raise RuntimeError("disk on fire")


# ── Scenarios ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_ten_answer_scenario(orchestrator_factory, provider_factory, high_risk_answers):
    orchestrator = orchestrator_factory(
        short_message=[provider_factory("twilio", "queued")],
        email=[provider_factory("emailjs", "sent")],
        chat_link=[provider_factory("callmebot", "HTTP 200")],
    )

    record = await orchestrator.send_emergency_alert("u1", "Test User", high_risk_answers)

    assert len(record.risk_factors) == 10
    assert record.status == EscalationStatus.SENT
    assert [a.channel for a in record.attempts] == ALL_CHANNELS
    assert all(a.succeeded for a in record.attempts)
    assert record.id.startswith("emergency-")
    assert record.subject_id == "u1"
    assert len(record.target_contacts) == 3
    assert "Test User" in record.message


@pytest.mark.asyncio
async def test_all_network_channels_fail(orchestrator_factory, high_risk_answers):
    orchestrator = orchestrator_factory()

    record = await orchestrator.send_emergency_alert("u1", "Test User", high_risk_answers)

    assert record.status == EscalationStatus.SENT
    by_channel = {a.channel: a for a in record.attempts}
    for channel in (Channel.SHORT_MESSAGE, Channel.EMAIL, Channel.CHAT_LINK):
        assert by_channel[channel].outcome == AttemptOutcome.FAILURE
    assert by_channel[Channel.DEVICE_LOCAL].outcome == AttemptOutcome.SUCCESS
    assert record.successful_channels() == [Channel.DEVICE_LOCAL]


@pytest.mark.asyncio
async def test_total_failure_marks_failed_and_tells_operator(orchestrator_factory, contacts):
    notifier = CollectingOperatorNotifier()
    orchestrator = orchestrator_factory(notifier=notifier)
    orchestrator._device_adapter = BrokenDeviceAdapter()

    record = await orchestrator.send_emergency_alert("u2", "Ravi", [])

    assert record.status == EscalationStatus.FAILED
    assert len(record.attempts) == 4
    assert not any(a.succeeded for a in record.attempts)
    assert notifier.sent == []
    escalation_id, summary = notifier.failed[0]
    assert escalation_id == record.id
    assert contacts[0].phone_number in summary


@pytest.mark.asyncio
async def test_operator_gets_success_summary(orchestrator_factory, provider_factory):
    notifier = CollectingOperatorNotifier()
    orchestrator = orchestrator_factory(short_message=[provider_factory("twilio", "queued")], notifier=notifier)

    record = await orchestrator.send_emergency_alert("u3", "Meera", [])

    assert notifier.sent[0][0] == record.id
    assert "SMS: Sent successfully" in notifier.sent[0][1]


# ── Robustness ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
@pytest.mark.parametrize("answers", [
    None,
    [],
    "garbage",
    12,
    [{"questionId": "x"}],
    [None, {}],
    [{"questionId": 0, "selectedOption": float("inf")}],
    [{"questionId": float("-inf"), "selectedOption": 4}],
])
async def test_never_raises_on_bad_answers(orchestrator_factory, answers):
    orchestrator = orchestrator_factory()
    record = await orchestrator.send_emergency_alert("u4", "Kiran", answers)
    assert record.status == EscalationStatus.SENT
    assert record.risk_factors == ["Multiple high-risk indicators detected"]
    assert [r.id for r in orchestrator.get_all_notifications()] == [record.id]


@pytest.mark.asyncio
async def test_never_raises_on_missing_identity(orchestrator_factory):
    record = await orchestrator_factory().send_emergency_alert(None, None, [])
    assert record.status != EscalationStatus.PENDING
    assert record.subject_id == "unknown"


@pytest.mark.asyncio
async def test_ledger_failure_does_not_raise(orchestrator_factory):
    orchestrator = orchestrator_factory(ledger=BrokenLedger())
    record = await orchestrator.send_emergency_alert("u5", "Dev", [])
    assert record.status == EscalationStatus.SENT


@pytest.mark.asyncio
async def test_unexpected_error_still_recorded_as_failed(orchestrator_factory):
    orchestrator = orchestrator_factory()

    def broken_compose(*args, **kwargs):
        raise RuntimeError("template missing")

    orchestrator._compose = broken_compose
    record = await orchestrator.send_emergency_alert("u5", "Dev", [{"questionId": 0, "selectedOption": 4}])

    assert record.status == EscalationStatus.FAILED
    assert record.risk_factors == ["Multiple high-risk indicators detected"]
    assert [r.id for r in orchestrator.get_all_notifications()] == [record.id]


@pytest.mark.asyncio
async def test_network_channels_run_concurrently(orchestrator_factory, provider_factory):
    orchestrator = orchestrator_factory(
        short_message=[provider_factory("twilio", "queued", delay=0.3)],
        email=[provider_factory("emailjs", "sent", delay=0.3)],
        chat_link=[provider_factory("callmebot", "HTTP 200", delay=0.3)],
    )

    loop = asyncio.get_running_loop()
    started = loop.time()
    record = await orchestrator.send_emergency_alert("u6", "Sana", [])
    elapsed = loop.time() - started

    assert record.status == EscalationStatus.SENT
    assert elapsed < 0.8


@pytest.mark.asyncio
async def test_stuck_channel_times_out_without_blocking_others(orchestrator_factory, provider_factory):
    orchestrator = orchestrator_factory(
        email=[provider_factory("emailjs", "sent")],
        channel_timeout_seconds=0.1,
    )
    orchestrator._network_adapters[0] = StuckAdapter()

    record = await orchestrator.send_emergency_alert("u7", "Arjun", [])

    sms = record.attempt_for(Channel.SHORT_MESSAGE)
    assert sms.outcome == AttemptOutcome.FAILURE
    assert "timed out" in sms.detail
    assert record.attempt_for(Channel.EMAIL).succeeded


# ── Ledger ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_record_appended_and_subscribers_notified(orchestrator_factory):
    orchestrator = orchestrator_factory()
    seen = []
    unsubscribe = orchestrator.subscribe(lambda records: seen.append([r.id for r in records]))

    first = await orchestrator.send_emergency_alert("u8", "Nila", [])
    second = await orchestrator.send_emergency_alert("u9", "Omar", [])
    unsubscribe()
    await orchestrator.send_emergency_alert("u8", "Nila", [])

    assert seen == [[first.id], [first.id, second.id]]
    assert len(orchestrator.get_all_notifications()) == 3
    assert [r.id for r in orchestrator.get_user_notifications("u9")] == [second.id]


@pytest.mark.asyncio
async def test_two_rapid_calls_create_two_records(orchestrator_factory, high_risk_answers):
    orchestrator = orchestrator_factory()

    first, second = await asyncio.gather(
        orchestrator.send_emergency_alert("u1", "Test User", high_risk_answers),
        orchestrator.send_emergency_alert("u1", "Test User", high_risk_answers),
    )

    assert first.id != second.id
    assert len(orchestrator.get_user_notifications("u1")) == 2


@pytest.mark.asyncio
async def test_cooldown_returns_previous_record(orchestrator_factory, provider_factory):
    sms = provider_factory("twilio", "queued")
    orchestrator = orchestrator_factory(short_message=[sms], cooldown=EscalationCooldown(600))

    first = await orchestrator.send_emergency_alert("u1", "Test User", [])
    again = await orchestrator.send_emergency_alert("u1", "Test User", [])
    other = await orchestrator.send_emergency_alert("u2", "Other", [])

    assert again.id == first.id
    assert other.id != first.id
    assert len(sms.calls) == 6  # three contacts, two escalations
    assert len(orchestrator.get_all_notifications()) == 2


# ── Test sends ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_send_test_alert_uses_synthetic_answers(orchestrator_factory):
    record = await orchestrator_factory().send_test_alert()
    assert record.subject_id == TEST_SUBJECT_ID
    assert len(record.risk_factors) == 10


@pytest.mark.asyncio
async def test_channel_test_is_not_recorded(orchestrator_factory, provider_factory):
    sms = provider_factory("twilio", "queued")
    orchestrator = orchestrator_factory(short_message=[sms])

    attempt = await orchestrator.test_channel(Channel.SHORT_MESSAGE)

    assert attempt.succeeded
    assert sms.calls[0][1].is_test is True
    assert orchestrator.get_all_notifications() == []


@pytest.mark.asyncio
async def test_channel_test_device_local(orchestrator_factory, device_host):
    attempt = await orchestrator_factory().test_channel(Channel.DEVICE_LOCAL)
    assert attempt.succeeded
    assert device_host.notifications


@pytest.mark.asyncio
async def test_channel_test_email_failure_reported(orchestrator_factory):
    attempt = await orchestrator_factory(
        email=[]
    ).test_channel(Channel.EMAIL)
    assert attempt.outcome == AttemptOutcome.FAILURE


# ── Channel deadline ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_last_provider_reached_when_earlier_ones_hang(contacts, device_host):
    # Same ratios as the defaults: 10s provider timeout, one retry, 45s channel deadline
    twilio = SlowProvider("twilio")
    textbelt = SlowProvider("textbelt")
    gateway = SlowProvider("sms_gateway_center", delay=0.09, detail="gateway accepted")
    adapter = ChannelAdapter(
        Channel.SHORT_MESSAGE,
        [twilio, textbelt, gateway],
        provider_timeout_seconds=0.1,
        max_retries=1,
        retry_base_delay=0.005,
    )
    orchestrator = EscalationOrchestrator(
        contacts=contacts[:1],
        network_adapters=[adapter],
        device_adapter=DeviceLocalAdapter(device_host, stagger_seconds=0),
        ledger=DeliveryLedger(),
        notifier=CollectingOperatorNotifier(),
        channel_timeout_seconds=0.45,
    )

    assert orchestrator.channel_deadline(adapter) > adapter.worst_case_seconds > 0.45

    record = await orchestrator.send_emergency_alert("u1", "Test User", [])

    sms = record.attempt_for(Channel.SHORT_MESSAGE)
    assert sms.succeeded
    assert sms.provider == "sms_gateway_center"
    assert [step.provider for step in sms.provider_trail] == [
        "twilio", "textbelt", "sms_gateway_center",
    ]
    assert twilio.calls == 2
    assert textbelt.calls == 2


def test_channel_deadline_keeps_longer_configured_value(orchestrator_factory):
    orchestrator = orchestrator_factory(channel_timeout_seconds=60.0, provider_timeout_seconds=2.0)
    for adapter in orchestrator._network_adapters:
        assert orchestrator.channel_deadline(adapter) == 60.0
