"""
Service wiring.

Builds the object graph once per process: shared HTTP client, provider
chains, channel adapters, the delivery ledger and the orchestrator.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from nivaran.alerting.channels import ChannelAdapter, DeviceLocalAdapter
from nivaran.alerting.dedup import EscalationCooldown
from nivaran.alerting.notifier import OperatorNotifier
from nivaran.alerting.orchestrator import EscalationOrchestrator
from nivaran.alerting.providers.chat import CallMeBotProvider, WhatsAppDeepLinkProvider
from nivaran.alerting.providers.device import DeviceHost, LocalDeviceHost
from nivaran.alerting.providers.email import EmailJSProvider, MailtoComposeProvider
from nivaran.alerting.providers.sms import (
    GatewayCenterSMSProvider,
    TextBeltSMSProvider,
    TwilioSMSProvider,
)
from nivaran.alerting.schemas import Channel
from nivaran.config import Settings
from nivaran.db.engine import create_engine, create_session_factory, init_db
from nivaran.services.ledger import DeliveryLedger

logger = structlog.get_logger(__name__)


@dataclass
class Container:
    settings: Settings
    http_client: httpx.AsyncClient
    engine: Optional[AsyncEngine]
    ledger: DeliveryLedger
    orchestrator: EscalationOrchestrator

    async def start(self) -> None:
        """Create tables and load the stored history."""
        if self.engine is not None:
            await init_db(self.engine)
        await self.ledger.load()
        logger.info("container_started", records=len(self.ledger))

    async def aclose(self) -> None:
        await self.http_client.aclose()
        if self.engine is not None:
            await self.engine.dispose()
        logger.info("container_closed")


def build_network_adapters(
    settings: Settings,
    client: httpx.AsyncClient,
    host: DeviceHost,
) -> list[ChannelAdapter]:
    """ShortMessage, Email and ChatLink adapters with their provider chains."""
    timeout = settings.provider_timeout_seconds
    resilience = {
        "provider_timeout_seconds": timeout,
        "max_retries": settings.provider_max_retries,
        "retry_base_delay": settings.provider_retry_base_delay,
    }

    short_message = ChannelAdapter(
        Channel.SHORT_MESSAGE,
        [
            TwilioSMSProvider(
                settings.twilio_account_sid,
                settings.twilio_auth_token,
                settings.twilio_from_number,
                client=client,
                timeout_seconds=timeout,
            ),
            TextBeltSMSProvider(
                settings.textbelt_api_key,
                url=settings.textbelt_url,
                client=client,
                timeout_seconds=timeout,
            ),
            GatewayCenterSMSProvider(
                settings.sms_gateway_user,
                settings.sms_gateway_password,
                url=settings.sms_gateway_url,
                sender_mask=settings.sms_gateway_mask,
                client=client,
                timeout_seconds=timeout,
            ),
        ],
        **resilience,
    )

    email = ChannelAdapter(
        Channel.EMAIL,
        [
            EmailJSProvider(
                settings.emailjs_service_id,
                settings.emailjs_template_id,
                settings.emailjs_user_id,
                to_email=settings.alert_email,
                url=settings.emailjs_url,
                client=client,
                timeout_seconds=timeout,
            ),
            MailtoComposeProvider(host, settings.alert_email),
        ],
        fan_out=False,
        **resilience,
    )

    chat_link = ChannelAdapter(
        Channel.CHAT_LINK,
        [
            CallMeBotProvider(
                settings.callmebot_api_key,
                url=settings.callmebot_url,
                client=client,
                timeout_seconds=timeout,
            ),
            WhatsAppDeepLinkProvider(host),
        ],
        **resilience,
    )

    return [short_message, email, chat_link]


def build_container(
    settings: Settings,
    *,
    device_host: Optional[DeviceHost] = None,
    notifier: Optional[OperatorNotifier] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    durable: bool = True,
) -> Container:
    """
    Build the service graph.

    Args:
        settings: Loaded settings
        device_host: Override the local device (tests, headless runs)
        notifier: Operator summary sink (defaults to the log)
        http_client: Shared client; created from settings when omitted
        durable: Back the ledger with the database (False keeps it in memory)
    """
    client = http_client or httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
    host = device_host or LocalDeviceHost(
        export_dir=settings.export_dir,
        open_links=settings.open_local_links,
    )

    engine = create_engine(settings.database_url, echo=settings.debug) if durable else None
    ledger = DeliveryLedger(create_session_factory(engine) if engine is not None else None)

    orchestrator = EscalationOrchestrator(
        contacts=settings.emergency_contacts,
        network_adapters=build_network_adapters(settings, client, host),
        device_adapter=DeviceLocalAdapter(host, stagger_seconds=settings.device_stagger_seconds),
        ledger=ledger,
        notifier=notifier,
        cooldown=EscalationCooldown(settings.escalation_cooldown_seconds),
        channel_timeout_seconds=settings.channel_timeout_seconds,
        hotline=settings.crisis_hotline,
        text_line=settings.crisis_text_line,
        emergency_number=settings.emergency_services_number,
        display_timezone=settings.display_timezone,
    )

    logger.info(
        "container_built",
        channels=[c.value for c in orchestrator.channels],
        contacts=len(settings.emergency_contacts),
        durable=engine is not None,
    )
    return Container(
        settings=settings,
        http_client=client,
        engine=engine,
        ledger=ledger,
        orchestrator=orchestrator,
    )
