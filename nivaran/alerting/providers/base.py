"""
Provider contracts.

A provider is one concrete backend able to carry an alert for a channel.
`send` returns a short delivery detail on success and raises on failure; the
channel adapter turns either into a ProviderAttempt.

Providers that act on the local device set `retryable = False`; opening the
same compose window twice helps nobody.
"""

from typing import Optional, Protocol

import httpx
import structlog

from nivaran.alerting.schemas import AlertMessage, Contact
from nivaran.common.exceptions import ProviderError, ProviderNotConfiguredError

logger = structlog.get_logger(__name__)


class Provider(Protocol):
    """Protocol for channel providers."""

    name: str

    async def send(self, contact: Contact, message: AlertMessage) -> str:
        """
        Deliver `message` to `contact`.

        Returns:
            Delivery detail (message id, HTTP status, ...)

        Raises:
            ProviderError (or any exception) when delivery failed
        """
        ...


class HttpProvider:
    """
    Base for network-backed providers.

    Uses the shared `httpx.AsyncClient` when one is injected (connection
    reuse, test transports); otherwise opens a short-lived client per call.
    """

    name = "http"
    retryable = True

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
    ):
        self._client = client
        self._timeout_seconds = timeout_seconds

    @property
    def is_configured(self) -> bool:
        return True

    async def send(self, contact: Contact, message: AlertMessage) -> str:
        if not self.is_configured:
            raise ProviderNotConfiguredError(self.name)

        try:
            if self._client is not None:
                return await self._deliver(self._client, contact, message)
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                return await self._deliver(client, contact, message)
        except httpx.HTTPError as e:
            logger.warning(
                "provider_http_error",
                provider=self.name,
                error_type=type(e).__name__,
                error=str(e)[:200],
            )
            raise ProviderError(self.name, f"HTTP error: {type(e).__name__}: {e}") from e

    async def _deliver(
        self,
        client: httpx.AsyncClient,
        contact: Contact,
        message: AlertMessage,
    ) -> str:
        raise NotImplementedError
