"""
Channel Adapters — ordered provider chains per delivery channel.

Each adapter is independent and fault-tolerant:
- Providers are tried in priority order; the first success stops the chain
- Every provider call is bounded by a timeout and a small number of retries
- Any exception becomes a failed ProviderAttempt and the chain moves on

`DeviceLocalAdapter` is the last line of defence: it needs no network and
always leaves something the operator can act on.
"""

import asyncio
import re
from typing import Callable, Optional, Sequence

import structlog

from nivaran.alerting.providers.base import Provider
from nivaran.alerting.providers.device import DeviceHost
from nivaran.alerting.schemas import (
    AlertMessage,
    AttemptOutcome,
    Channel,
    ChannelAttempt,
    Contact,
    ProviderAttempt,
)
from nivaran.alerting.templates import (
    render_alert_file,
    render_contact_sheet,
    render_generic,
    render_print_document,
)
from nivaran.common.exceptions import DeviceActionError
from nivaran.common.resilience import backoff_delay_ceiling, call_with_retry, call_with_timeout

logger = structlog.get_logger(__name__)


def primary_contact(contacts: Sequence[Contact]) -> Optional[Contact]:
    """First contact flagged primary, else the first contact."""
    for contact in contacts:
        if contact.is_primary:
            return contact
    return contacts[0] if contacts else None


# ============================================================================
# NETWORK CHANNELS
# ============================================================================


class ChannelAdapter:
    """
    Delivers an alert over one channel through an ordered provider chain.

    With `fan_out=True` every contact is targeted; otherwise only the primary
    contact (one email to the responder mailbox).
    """

    def __init__(
        self,
        channel: Channel,
        providers: Sequence[Provider],
        *,
        fan_out: bool = True,
        provider_timeout_seconds: float = 10.0,
        max_retries: int = 1,
        retry_base_delay: float = 0.5,
    ):
        self.channel = channel
        self.providers = list(providers)
        self.fan_out = fan_out
        self._provider_timeout = provider_timeout_seconds
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay

    @property
    def chain_label(self) -> str:
        return ">".join(p.name for p in self.providers) or "none"

    @property
    def worst_case_seconds(self) -> float:
        """
        Longest one contact can spend in the chain.

        Every configured provider used up: each try hits the provider timeout,
        plus the largest backoff between retries.
        """
        total = 0.0
        for provider in self.providers:
            if not getattr(provider, "is_configured", True):
                continue
            retries = max(0, self._max_retries) if getattr(provider, "retryable", True) else 0
            total += (retries + 1) * self._provider_timeout
            total += sum(backoff_delay_ceiling(i, self._retry_base_delay) for i in range(retries))
        return total

    def targets(self, contacts: Sequence[Contact]) -> list[Contact]:
        if self.fan_out:
            return list(contacts)
        primary = primary_contact(contacts)
        return [primary] if primary else []

    async def attempt(self, contact: Contact, message: AlertMessage) -> ChannelAttempt:
        """Walk the provider chain for one contact."""
        trail: list[ProviderAttempt] = []

        for provider in self.providers:
            if not getattr(provider, "is_configured", True):
                logger.debug("provider_skipped", channel=self.channel.value, provider=provider.name)
                trail.append(ProviderAttempt(
                    provider=provider.name,
                    contact_label=contact.label,
                    outcome=AttemptOutcome.FAILURE,
                    detail="credentials not configured",
                ))
                continue

            retries = self._max_retries if getattr(provider, "retryable", True) else 0
            try:
                detail = await call_with_retry(
                    lambda p=provider: call_with_timeout(
                        p.send(contact, message),
                        name=p.name,
                        timeout_seconds=self._provider_timeout,
                    ),
                    name=provider.name,
                    max_retries=retries,
                    base_delay=self._retry_base_delay,
                )
            except Exception as e:
                logger.warning(
                    "provider_failed",
                    channel=self.channel.value,
                    provider=provider.name,
                    contact=contact.label,
                    error_type=type(e).__name__,
                    error=str(e)[:200],
                )
                trail.append(ProviderAttempt(
                    provider=provider.name,
                    contact_label=contact.label,
                    outcome=AttemptOutcome.FAILURE,
                    detail=str(e) or type(e).__name__,
                ))
                continue

            trail.append(ProviderAttempt(
                provider=provider.name,
                contact_label=contact.label,
                outcome=AttemptOutcome.SUCCESS,
                detail=detail,
            ))
            logger.info(
                "provider_delivered",
                channel=self.channel.value,
                provider=provider.name,
                contact=contact.label,
            )
            return ChannelAttempt(
                channel=self.channel,
                provider=provider.name,
                outcome=AttemptOutcome.SUCCESS,
                detail=detail,
                provider_trail=trail,
            )

        last = trail[-1] if trail else None
        return ChannelAttempt(
            channel=self.channel,
            provider=last.provider if last else "none",
            outcome=AttemptOutcome.FAILURE,
            detail=last.detail if last else "no providers configured",
            provider_trail=trail,
        )

    async def dispatch(self, contacts: Sequence[Contact], message: AlertMessage) -> ChannelAttempt:
        """Attempt every targeted contact and fold the results into one attempt."""
        targets = self.targets(contacts)
        if not targets:
            return ChannelAttempt(
                channel=self.channel,
                provider=self.chain_label,
                outcome=AttemptOutcome.FAILURE,
                detail="no contacts configured",
            )

        per_contact = await asyncio.gather(*(self.attempt(c, message) for c in targets))
        result = fold_attempts(self.channel, targets, per_contact)

        logger.info(
            "channel_attempt_completed",
            channel=self.channel.value,
            outcome=result.outcome.value,
            provider=result.provider,
            contacts=len(targets),
        )
        return result


def fold_attempts(
    channel: Channel,
    contacts: Sequence[Contact],
    attempts: Sequence[ChannelAttempt],
) -> ChannelAttempt:
    """One channel-level attempt: success if any contact was reached."""
    trail = [pa for attempt in attempts for pa in attempt.provider_trail]
    delivered = [(c, a) for c, a in zip(contacts, attempts) if a.succeeded]

    if delivered:
        first = delivered[0][1]
        if len(attempts) == 1:
            detail = first.detail
        else:
            reached = "; ".join(f"{c.label} via {a.provider}" for c, a in delivered)
            detail = f"delivered to {len(delivered)}/{len(attempts)} contacts ({reached})"
        return ChannelAttempt(
            channel=channel,
            provider=first.provider,
            outcome=AttemptOutcome.SUCCESS,
            detail=detail,
            provider_trail=trail,
        )

    last = attempts[-1]
    return ChannelAttempt(
        channel=channel,
        provider=last.provider,
        outcome=AttemptOutcome.FAILURE,
        detail=last.detail,
        provider_trail=trail,
    )


# ============================================================================
# DEVICE-LOCAL CHANNEL
# ============================================================================


def _safe_filename_part(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]+", "_", value).strip("_") or "user"


class DeviceLocalAdapter:
    """
    Device-local actions on the operator's machine.

    Sub-actions run in a fixed order and are wrapped individually:
    log record, staggered dialer per contact, clipboard (file fallback),
    local notification, alert-summary file, print document.
    The log record cannot fail, so this channel always reports success.
    """

    channel = Channel.DEVICE_LOCAL
    chain_label = "device_local"

    def __init__(self, host: DeviceHost, *, stagger_seconds: float = 1.0):
        self._host = host
        self._stagger_seconds = stagger_seconds

    async def dispatch(self, contacts: Sequence[Contact], message: AlertMessage) -> ChannelAttempt:
        trail: list[ProviderAttempt] = []
        stamp = message.created_at.strftime("%Y%m%d_%H%M%S")
        name_part = _safe_filename_part(message.subject_name)

        # ── 1. Log record ──────────────────────────────────────────────
        logger.critical(
            "emergency_alert_logged",
            subject_id=message.subject_id,
            subject_name=message.subject_name,
            risk_factors=message.risk_factors,
            contacts=[c.label for c in contacts],
            is_test=message.is_test,
        )
        trail.append(ProviderAttempt(
            provider="log_record",
            outcome=AttemptOutcome.SUCCESS,
            detail="alert written to the operator log",
        ))

        # ── 2. Dialer intents, staggered ──────────────────────────────
        for index, contact in enumerate(contacts):
            if index and self._stagger_seconds > 0:
                await asyncio.sleep(self._stagger_seconds)
            trail.append(await self._run(
                "dialer",
                lambda c=contact: self._open(f"tel:{c.e164}"),
                contact_label=contact.label,
            ))

        # ── 3. Clipboard, with a scratch-file fallback ────────────────
        sheet = render_contact_sheet(message, contacts)
        clipboard = await self._run("clipboard", lambda: self._copy(sheet))
        if clipboard.outcome == AttemptOutcome.FAILURE:
            trail.append(clipboard)
            clipboard = await self._run(
                "clipboard_file",
                lambda: self._save(f"EMERGENCY_CONTACTS_{name_part}_{stamp}.txt", sheet),
            )
        trail.append(clipboard)

        # ── 4. Local notification ─────────────────────────────────────
        trail.append(await self._run(
            "notification",
            lambda: self._notify("EMERGENCY ALERT", render_generic(message)),
        ))

        # ── 5. Alert summary file ─────────────────────────────────────
        trail.append(await self._run(
            "alert_file",
            lambda: self._save(
                f"EMERGENCY_ALERT_{name_part}_{stamp}.txt",
                render_alert_file(message, contacts),
            ),
        ))

        # ── 6. Print document ─────────────────────────────────────────
        trail.append(await self._run(
            "print_document",
            lambda: self._print_document(
                f"EMERGENCY_ALERT_{name_part}_{stamp}.html",
                render_print_document(message, contacts),
            ),
        ))

        completed = [a for a in trail if a.outcome == AttemptOutcome.SUCCESS]
        logger.info(
            "device_local_completed",
            completed=len(completed),
            total=len(trail),
            failed=[a.provider for a in trail if a.outcome == AttemptOutcome.FAILURE],
        )
        return ChannelAttempt(
            channel=self.channel,
            provider=self.chain_label,
            outcome=AttemptOutcome.SUCCESS if completed else AttemptOutcome.FAILURE,
            detail=f"{len(completed)}/{len(trail)} local actions completed",
            provider_trail=trail,
        )

    # ── Sub-actions ────────────────────────────────────────────────

    def _open(self, url: str) -> str:
        if not self._host.open_url(url):
            raise DeviceActionError("open_url", f"{url.split(':', 1)[0]} link not opened")
        return f"opened {url}"

    def _copy(self, text: str) -> str:
        self._host.copy_to_clipboard(text)
        return "contact sheet copied"

    def _notify(self, title: str, body: str) -> str:
        self._host.notify(title, body)
        return "notification raised"

    def _save(self, filename: str, content: str) -> str:
        return f"saved to {self._host.write_file(filename, content)}"

    def _print_document(self, filename: str, document: str) -> str:
        path = self._host.write_file(filename, document)
        # The saved document is the artifact; failing to open it is not fatal
        try:
            self._host.open_url(path.resolve().as_uri())
        except DeviceActionError as e:
            logger.debug("print_document_not_opened", error=str(e))
        return f"saved to {path}"

    async def _run(
        self,
        action: str,
        func: Callable[[], str],
        contact_label: Optional[str] = None,
    ) -> ProviderAttempt:
        try:
            detail = await asyncio.to_thread(func)
        except Exception as e:
            logger.warning("device_action_failed", action=action, error=str(e)[:200])
            return ProviderAttempt(
                provider=action,
                contact_label=contact_label,
                outcome=AttemptOutcome.FAILURE,
                detail=str(e) or type(e).__name__,
            )
        return ProviderAttempt(
            provider=action,
            contact_label=contact_label,
            outcome=AttemptOutcome.SUCCESS,
            detail=detail,
        )

