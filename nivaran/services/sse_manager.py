"""
SSE Manager — Server-Sent Events fan-out of ledger changes.

The ledger calls `ledger_listener` synchronously after every append; the
manager turns that into one event per connected operator console.

Usage:
- Subscribe: GET /api/v1/events/stream
- Publish: ledger.subscribe(sse_manager.ledger_listener)
"""

import asyncio
import json
from typing import AsyncGenerator, List

import structlog

from nivaran.alerting.schemas import EscalationRecord

logger = structlog.get_logger(__name__)


class SSEManager:
    """
    SSE pub/sub manager.

    Each connected client owns a bounded queue. Publishing never blocks;
    a client that stops reading loses events rather than stalling the ledger.
    """

    def __init__(self, queue_size: int = 100, keepalive_seconds: float = 30.0):
        self._subscribers: set[asyncio.Queue] = set()
        self._queue_size = queue_size
        self._keepalive_seconds = keepalive_seconds

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def subscribe(self) -> AsyncGenerator[str, None]:
        """
        Yield SSE-formatted strings until the client disconnects.

        Sends a keepalive comment when idle to prevent connection timeout.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        logger.info("sse_subscriber_added", total=len(self._subscribers))

        try:
            while True:
                try:
                    data = await asyncio.wait_for(queue.get(), timeout=self._keepalive_seconds)
                    yield format_event(data)
                except asyncio.TimeoutError:
                    # SSE comment = keepalive (not data, won't trigger onmessage)
                    yield ": keepalive\n\n"
        finally:
            self._subscribers.discard(queue)
            logger.info("sse_subscriber_removed", remaining=len(self._subscribers))

    def publish(self, event: dict) -> None:
        """Send an event to all subscribers."""
        if not self._subscribers:
            return

        for queue in self._subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("sse_queue_full", event_type=event.get("type"))

        logger.debug(
            "sse_broadcast",
            event_type=event.get("type"),
            recipients=len(self._subscribers),
        )

    def ledger_listener(self, records: List[EscalationRecord]) -> None:
        """Ledger subscription callback: announce the newest record."""
        if not records:
            return
        latest = records[-1]
        self.publish({
            "type": "escalation_recorded",
            "total": len(records),
            "escalation": latest.model_dump(mode="json"),
        })


def format_event(data: dict) -> str:
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"
