"""
ChatLink providers (WhatsApp).

Priority order:
1. CallMeBot API (programmatic send)
2. `wa.me` deep link with the message pre-filled, for a manual send
"""

import asyncio
from typing import Optional
from urllib.parse import quote

import httpx
import structlog

from nivaran.alerting.providers.base import HttpProvider
from nivaran.alerting.providers.device import DeviceHost
from nivaran.alerting.schemas import AlertMessage, Contact
from nivaran.alerting.templates import render_chat
from nivaran.common.exceptions import ProviderError

logger = structlog.get_logger(__name__)


class CallMeBotProvider(HttpProvider):
    """WhatsApp send through the CallMeBot HTTP API."""

    name = "callmebot"

    def __init__(
        self,
        api_key: str,
        url: str = "https://api.callmebot.com/whatsapp.php",
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
    ):
        super().__init__(client, timeout_seconds)
        self._api_key = api_key
        self._url = url

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def _deliver(
        self,
        client: httpx.AsyncClient,
        contact: Contact,
        message: AlertMessage,
    ) -> str:
        response = await client.get(
            self._url,
            params={
                "phone": contact.digits,
                "text": render_chat(message),
                "apikey": self._api_key,
            },
        )

        if not response.is_success:
            raise ProviderError(self.name, f"HTTP {response.status_code}")

        # CallMeBot answers 200 with an HTML page; errors are reported inline
        if "error" in response.text.lower()[:500]:
            raise ProviderError(self.name, "API reported an error")

        logger.info("callmebot_sent", to=contact.label)
        return f"HTTP {response.status_code}"


def whatsapp_link(contact: Contact, text: str) -> str:
    return f"https://wa.me/{contact.digits}?text={quote(text)}"


class WhatsAppDeepLinkProvider:
    """Open WhatsApp with the alert pre-filled; the operator presses send."""

    name = "whatsapp_link"
    retryable = False

    def __init__(self, host: DeviceHost):
        self._host = host

    async def send(self, contact: Contact, message: AlertMessage) -> str:
        url = whatsapp_link(contact, render_chat(message))
        # webbrowser may wait on a console browser; keep the loop free
        if not await asyncio.to_thread(self._host.open_url, url):
            raise ProviderError(self.name, "chat app could not be opened")
        return "deep link opened for manual send"
