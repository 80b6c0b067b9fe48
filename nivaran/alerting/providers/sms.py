"""
ShortMessage providers.

Priority order:
1. Twilio Messages API (primary transactional SMS)
2. TextBelt (alternate gateway)
3. SMS Gateway Center (regional gateway)
"""

from typing import Optional

import httpx
import structlog

from nivaran.alerting.providers.base import HttpProvider
from nivaran.alerting.schemas import AlertMessage, Contact
from nivaran.alerting.templates import SMS_SEGMENT_LIMIT, render_sms
from nivaran.common.exceptions import ProviderError

logger = structlog.get_logger(__name__)


class TwilioSMSProvider(HttpProvider):
    """
    SMS via the Twilio Messages API.

    Authenticates with Account SID + Auth Token (HTTP Basic).
    """

    name = "twilio"
    TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
        api_base: str = TWILIO_API_BASE,
    ):
        super().__init__(client, timeout_seconds)
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._api_base = api_base.rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self._account_sid and self._auth_token and self._from_number)

    async def _deliver(
        self,
        client: httpx.AsyncClient,
        contact: Contact,
        message: AlertMessage,
    ) -> str:
        response = await client.post(
            f"{self._api_base}/Accounts/{self._account_sid}/Messages.json",
            data={
                "From": self._from_number,
                "To": contact.e164,
                "Body": render_sms(message),
            },
            auth=(self._account_sid, self._auth_token),
        )

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.is_success:
            logger.warning(
                "twilio_send_failed",
                status=response.status_code,
                error_code=data.get("code"),
                to=contact.label,
            )
            raise ProviderError(
                self.name,
                f"HTTP {response.status_code}: {data.get('message') or 'request rejected'}",
            )

        sid = data.get("sid") or "unknown"
        logger.info("twilio_sms_sent", message_sid=sid, to=contact.label, status=data.get("status"))
        return f"queued as {sid}"


class TextBeltSMSProvider(HttpProvider):
    """SMS via the TextBelt JSON API."""

    name = "textbelt"

    def __init__(
        self,
        api_key: str,
        url: str = "https://textbelt.com/text",
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
        response = await client.post(
            self._url,
            json={
                "phone": contact.e164,
                "message": render_sms(message, limit=SMS_SEGMENT_LIMIT),
                "key": self._api_key,
            },
        )

        try:
            data = response.json()
        except ValueError:
            raise ProviderError(self.name, f"malformed response (HTTP {response.status_code})")

        if not data.get("success"):
            raise ProviderError(self.name, data.get("error") or f"HTTP {response.status_code}")

        text_id = data.get("textId") or "unknown"
        logger.info("textbelt_sms_sent", text_id=text_id, to=contact.label)
        return f"text id {text_id}"


class GatewayCenterSMSProvider(HttpProvider):
    """
    SMS via SMS Gateway Center (form-encoded, plain-text response).

    Accepts national numbers only; the country code is stripped.
    """

    name = "sms_gateway_center"
    SUCCESS_MARKERS = ("Sent", "Success")

    def __init__(
        self,
        user_id: str,
        password: str,
        url: str,
        sender_mask: str = "NIVARAN",
        country_code: str = "91",
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
    ):
        super().__init__(client, timeout_seconds)
        self._user_id = user_id
        self._password = password
        self._url = url
        self._sender_mask = sender_mask
        self._country_code = country_code

    @property
    def is_configured(self) -> bool:
        return bool(self._user_id and self._password)

    def _national_number(self, contact: Contact) -> str:
        digits = contact.digits
        if self._country_code and digits.startswith(self._country_code) and len(digits) > 10:
            return digits[len(self._country_code):]
        return digits

    async def _deliver(
        self,
        client: httpx.AsyncClient,
        contact: Contact,
        message: AlertMessage,
    ) -> str:
        response = await client.post(
            self._url,
            data={
                "UserID": self._user_id,
                "Password": self._password,
                "Type": "1",
                "To": self._national_number(contact),
                "Mask": self._sender_mask,
                "Message": render_sms(message, limit=SMS_SEGMENT_LIMIT),
            },
        )

        if not response.is_success:
            raise ProviderError(self.name, f"HTTP {response.status_code}")

        body = response.text.strip()
        if not any(marker in body for marker in self.SUCCESS_MARKERS):
            raise ProviderError(self.name, f"gateway rejected: {body[:120]}")

        logger.info("sms_gateway_sent", to=contact.label)
        return body[:120]
