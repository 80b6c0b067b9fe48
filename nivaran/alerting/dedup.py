"""
Escalation Cooldown — suppress repeat escalations for the same subject.

Off by default (`escalation_cooldown_seconds = 0`): every high-risk
submission then produces its own record. When enabled, a second escalation
for a subject inside the window is answered with the previous record.

State is in-memory; the ledger remains the durable history.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog

from nivaran.alerting.schemas import utcnow

logger = structlog.get_logger(__name__)


class EscalationCooldown:
    """Tracks the last escalation per subject."""

    def __init__(
        self,
        cooldown_seconds: int = 0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._cooldown = timedelta(seconds=max(0, cooldown_seconds))
        self._clock = clock
        # subject_id → (escalation_id, fired_at)
        self._last_fired: dict[str, tuple[str, datetime]] = {}

    @property
    def enabled(self) -> bool:
        return self._cooldown > timedelta(0)

    def active_escalation(self, subject_id: str) -> Optional[str]:
        """
        Escalation id still inside the cooldown window for `subject_id`.

        Returns None when the guard is disabled or the window has passed.
        """
        if not self.enabled:
            return None

        entry = self._last_fired.get(subject_id)
        if entry is None:
            return None

        escalation_id, fired_at = entry
        elapsed = self._clock() - fired_at
        if elapsed >= self._cooldown:
            return None

        logger.info(
            "escalation_suppressed_cooldown",
            subject_id=subject_id,
            previous_escalation_id=escalation_id,
            elapsed_seconds=round(elapsed.total_seconds(), 1),
            cooldown_seconds=self._cooldown.total_seconds(),
        )
        return escalation_id

    def record_fired(self, subject_id: str, escalation_id: str) -> None:
        if self.enabled:
            self._last_fired[subject_id] = (escalation_id, self._clock())

    def reset(self) -> None:
        """Reset all state (for testing)."""
        self._last_fired.clear()
