"""
Email providers.

Priority order:
1. EmailJS templated transactional API
2. Pre-filled `mailto:` compose on the local mail client
"""

import asyncio
from typing import Optional
from urllib.parse import quote

import httpx
import structlog

from nivaran.alerting.providers.base import HttpProvider
from nivaran.alerting.providers.device import DeviceHost
from nivaran.alerting.schemas import AlertMessage, Contact
from nivaran.alerting.templates import render_email
from nivaran.common.exceptions import ProviderError

logger = structlog.get_logger(__name__)


class EmailJSProvider(HttpProvider):
    """Email via the EmailJS REST API (service + template + user id)."""

    name = "emailjs"

    def __init__(
        self,
        service_id: str,
        template_id: str,
        user_id: str,
        to_email: str,
        url: str = "https://api.emailjs.com/api/v1.0/email/send",
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
    ):
        super().__init__(client, timeout_seconds)
        self._service_id = service_id
        self._template_id = template_id
        self._user_id = user_id
        self._to_email = to_email
        self._url = url

    @property
    def is_configured(self) -> bool:
        return bool(self._service_id and self._template_id and self._user_id and self._to_email)

    async def _deliver(
        self,
        client: httpx.AsyncClient,
        contact: Contact,
        message: AlertMessage,
    ) -> str:
        subject, body = render_email(message, contact)
        response = await client.post(
            self._url,
            json={
                "service_id": self._service_id,
                "template_id": self._template_id,
                "user_id": self._user_id,
                "template_params": {
                    "to_email": self._to_email,
                    "subject": subject,
                    "message": body,
                    "from_name": "Nivaran Emergency System",
                },
            },
        )

        if not response.is_success:
            raise ProviderError(self.name, f"HTTP {response.status_code}: {response.text[:120]}")

        logger.info("emailjs_sent", to=self._to_email)
        return f"sent to {self._to_email}"


class MailtoComposeProvider:
    """Open a pre-filled compose window on the operator's mail client."""

    name = "mailto"
    retryable = False

    def __init__(self, host: DeviceHost, to_email: str):
        self._host = host
        self._to_email = to_email

    def compose_url(self, contact: Contact, message: AlertMessage) -> str:
        subject, body = render_email(message, contact)
        return f"mailto:{self._to_email}?subject={quote(subject)}&body={quote(body)}"

    async def send(self, contact: Contact, message: AlertMessage) -> str:
        url = self.compose_url(contact, message)
        if not await asyncio.to_thread(self._host.open_url, url):
            raise ProviderError(self.name, "mail client could not be opened")
        return f"compose opened for {self._to_email}"
