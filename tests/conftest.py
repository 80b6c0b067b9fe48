"""
Pytest Configuration and Fixtures.

Provides:
- Responder contacts and a ready-made alert message
- A recording device host (no browser, clipboard or desktop needed)
- Scripted providers for channel-chain tests
- Orchestrator / container factories with an in-memory or SQLite ledger
"""

import asyncio
from pathlib import Path
from typing import Callable, Optional

import httpx
import pytest
from hypothesis import HealthCheck, settings as hypothesis_settings

from nivaran.alerting.channels import ChannelAdapter, DeviceLocalAdapter
from nivaran.alerting.extractor import SYNTHETIC_HIGH_RISK_ANSWERS, extract_risk_factors
from nivaran.alerting.notifier import CollectingOperatorNotifier
from nivaran.alerting.orchestrator import EscalationOrchestrator
from nivaran.alerting.schemas import AlertMessage, Channel, Contact, RiskEvent
from nivaran.alerting.templates import build_alert_message
from nivaran.common.exceptions import DeviceActionError, ProviderError
from nivaran.config import Settings
from nivaran.services.ledger import DeliveryLedger

# Hypothesis builds its unicode charmap on the first text draw of a fresh
# checkout, which can trip the input-generation speed health check.
hypothesis_settings.register_profile("nivaran", suppress_health_check=[HealthCheck.too_slow])
hypothesis_settings.load_profile("nivaran")


# ============================================================================
# TEST DOUBLES
# ============================================================================


class RecordingDeviceHost:
    """DeviceHost that records every action and writes files under a temp dir."""

    def __init__(
        self,
        export_dir: Path,
        open_links: bool = True,
        clipboard_available: bool = True,
        fail_writes: bool = False,
        fail_notify: bool = False,
    ):
        self.export_dir = export_dir
        self.open_links = open_links
        self.clipboard_available = clipboard_available
        self.fail_writes = fail_writes
        self.fail_notify = fail_notify
        self.opened: list[str] = []
        self.clipboard: list[str] = []
        self.files: dict[str, str] = {}
        self.notifications: list[tuple[str, str]] = []

    def open_url(self, url: str) -> bool:
        self.opened.append(url)
        return self.open_links

    def copy_to_clipboard(self, text: str) -> None:
        if not self.clipboard_available:
            raise DeviceActionError("clipboard", "no clipboard command available")
        self.clipboard.append(text)

    def write_file(self, filename: str, content: str) -> Path:
        if self.fail_writes:
            raise DeviceActionError("write_file", "disk full")
        self.export_dir.mkdir(parents=True, exist_ok=True)
        path = self.export_dir / filename
        path.write_text(content, encoding="utf-8")
        self.files[filename] = content
        return path

    def notify(self, title: str, body: str) -> None:
        if self.fail_notify:
            raise DeviceActionError("notify", "no display")
        self.notifications.append((title, body))


class ScriptedProvider:
    """
    Provider whose outcomes are scripted per call.

    Each entry of `script` is either a detail string (success) or an
    exception instance (raised). The last entry repeats.
    """

    def __init__(self, name: str, *script, delay: float = 0.0, configured: bool = True, retryable: bool = True):
        self.name = name
        self.script = list(script) or ["ok"]
        self.delay = delay
        self.is_configured = configured
        self.retryable = retryable
        self.calls: list[tuple[str, AlertMessage]] = []

    async def send(self, contact: Contact, message: AlertMessage) -> str:
        index = min(len(self.calls), len(self.script) - 1)
        self.calls.append((contact.label, message))
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.script[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


# ============================================================================
# DATA FIXTURES
# ============================================================================


@pytest.fixture
def contacts() -> list[Contact]:
    return [
        Contact(label="Primary Contact", phone_number="+91 98765 43210", is_primary=True),
        Contact(label="Secondary Contact", phone_number="+91-98765-43211"),
        Contact(label="Backup Contact", phone_number="+15550100003"),
    ]


@pytest.fixture
def high_risk_answers():
    return list(SYNTHETIC_HIGH_RISK_ANSWERS)


@pytest.fixture
def alert_message(high_risk_answers) -> AlertMessage:
    event = RiskEvent(subject_id="user-42", subject_name="Asha Verma", raw_answers=high_risk_answers)
    return build_alert_message(
        event,
        extract_risk_factors(high_risk_answers),
        hotline="1800-599-0019",
        text_line="Text HOME to 741741",
        emergency_number="112",
        tz_name="Asia/Kolkata",
    )


# ============================================================================
# DOUBLES FIXTURES
# ============================================================================


@pytest.fixture
def device_host(tmp_path) -> RecordingDeviceHost:
    return RecordingDeviceHost(tmp_path / "exports")


@pytest.fixture
def device_host_factory(tmp_path) -> Callable[..., RecordingDeviceHost]:
    def _make(**kwargs) -> RecordingDeviceHost:
        return RecordingDeviceHost(tmp_path / "exports", **kwargs)
    return _make


@pytest.fixture
def provider_factory() -> Callable[..., ScriptedProvider]:
    return ScriptedProvider


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def http_client_factory():
    """Build an httpx.AsyncClient answering through a handler function."""
    return mock_client


# ============================================================================
# ORCHESTRATOR FIXTURES
# ============================================================================


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        export_dir=str(tmp_path / "exports"),
        open_local_links=False,
        device_stagger_seconds=0,
        provider_retry_base_delay=0,
        provider_max_retries=0,
        log_level="WARNING",
    )


@pytest.fixture
def orchestrator_factory(contacts, device_host):
    """
    Build an orchestrator from per-channel provider lists.

    Channels left out get a single always-failing provider.
    """

    def _make(
        short_message: Optional[list] = None,
        email: Optional[list] = None,
        chat_link: Optional[list] = None,
        *,
        ledger: Optional[DeliveryLedger] = None,
        host=None,
        notifier=None,
        channel_timeout_seconds: float = 5.0,
        provider_timeout_seconds: float = 2.0,
        **kwargs,
    ) -> EscalationOrchestrator:
        def chain(providers, name):
            return providers if providers is not None else [
                ScriptedProvider(name, ProviderError(name, "down"))
            ]

        options = {
            "provider_timeout_seconds": provider_timeout_seconds,
            "max_retries": 0,
            "retry_base_delay": 0,
        }
        adapters = [
            ChannelAdapter(Channel.SHORT_MESSAGE, chain(short_message, "sms"), **options),
            ChannelAdapter(Channel.EMAIL, chain(email, "mail"), fan_out=False, **options),
            ChannelAdapter(Channel.CHAT_LINK, chain(chat_link, "chat"), **options),
        ]
        return EscalationOrchestrator(
            contacts=contacts,
            network_adapters=adapters,
            device_adapter=DeviceLocalAdapter(host or device_host, stagger_seconds=0),
            ledger=ledger if ledger is not None else DeliveryLedger(),
            notifier=notifier if notifier is not None else CollectingOperatorNotifier(),
            channel_timeout_seconds=channel_timeout_seconds,
            **kwargs,
        )

    return _make
