"""
Escalation Exceptions.

Provider and device failures are raised inside a channel chain and turned
into failed attempts by the adapter; they never reach the caller of
`send_emergency_alert`.
"""

from typing import Any, Dict, Optional


class NivaranError(Exception):
    """Base exception for the escalation service."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ProviderError(NivaranError):
    """A single provider failed to deliver."""

    def __init__(self, provider: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.provider = provider
        super().__init__(f"{provider}: {message}", details)


class ProviderNotConfiguredError(ProviderError):
    """Provider has no credentials configured."""

    def __init__(self, provider: str):
        super().__init__(provider, "credentials not configured")


class ProviderTimeoutError(ProviderError):
    """Provider did not answer within its timeout."""

    def __init__(self, provider: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(provider, f"timed out after {timeout_seconds:.1f}s")


class DeviceActionError(NivaranError):
    """A device-local sub-action (dialer, clipboard, file, print) failed."""

    def __init__(self, action: str, message: str):
        self.action = action
        super().__init__(f"{action}: {message}")


class LedgerError(NivaranError):
    """The delivery ledger could not persist or load records."""
