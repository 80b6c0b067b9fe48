"""
Delivery Ledger — append-only history of escalation records.

DESIGN:
  1. A record is appended once, after its status is final (sent | failed).
  2. Rows are never modified or deleted; a retried escalation is a new record.
  3. The store is written first; subscribers are told only about persisted records.
  4. Every subscriber gets the complete current list after each append.

Records handed out are deep copies, so callers cannot edit the history.
"""

import asyncio
from typing import Callable, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nivaran.alerting.schemas import EscalationRecord, EscalationStatus
from nivaran.common.exceptions import LedgerError
from nivaran.db.engine import session_scope
from nivaran.db.models import EscalationLedgerEntry

logger = structlog.get_logger(__name__)

LedgerListener = Callable[[List[EscalationRecord]], None]


class DeliveryLedger:
    """
    Escalation history backed by the `escalation_ledger` table.

    Without a session factory the ledger lives in memory only (dry runs).
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory
        self._records: List[EscalationRecord] = []
        self._ids: set[str] = set()
        self._listeners: List[LedgerListener] = []
        self._lock = asyncio.Lock()

    @property
    def durable(self) -> bool:
        return self._session_factory is not None

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def __len__(self) -> int:
        return len(self._records)

    async def load(self) -> List[EscalationRecord]:
        """Read every stored record (startup). Replaces the in-memory view."""
        if self._session_factory is None:
            return self.list()

        try:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    select(EscalationLedgerEntry).order_by(
                        EscalationLedgerEntry.created_at.asc(),
                        EscalationLedgerEntry.id.asc(),
                    )
                )
                rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("ledger_load_failed", error=str(e)[:200])
            raise LedgerError("could not load ledger", {"error": str(e)}) from e

        records: List[EscalationRecord] = []
        for row in rows:
            try:
                records.append(EscalationRecord.model_validate(row.payload))
            except ValueError as e:
                # A corrupt row must not hide the rest of the history
                logger.error("ledger_row_invalid", escalation_id=row.id, error=str(e)[:200])

        async with self._lock:
            self._records = records
            self._ids = {r.id for r in records}

        logger.info("ledger_loaded", records=len(records))
        return self.list()

    async def append(self, record: EscalationRecord) -> None:
        """Persist a finalized record, then notify subscribers."""
        if record.status == EscalationStatus.PENDING:
            raise LedgerError("cannot append a pending escalation", {"escalation_id": record.id})

        snapshot = record.model_copy(deep=True)

        async with self._lock:
            if snapshot.id in self._ids:
                raise LedgerError("escalation already recorded", {"escalation_id": snapshot.id})

            if self._session_factory is not None:
                try:
                    async with session_scope(self._session_factory) as session:
                        session.add(EscalationLedgerEntry(
                            id=snapshot.id,
                            subject_id=snapshot.subject_id,
                            status=snapshot.status.value,
                            payload=snapshot,
                            created_at=snapshot.created_at,
                        ))
                except SQLAlchemyError as e:
                    logger.error("ledger_append_failed", escalation_id=snapshot.id, error=str(e)[:200])
                    raise LedgerError("could not persist escalation", {"escalation_id": snapshot.id}) from e

            self._records.append(snapshot)
            self._ids.add(snapshot.id)

        logger.info(
            "ledger_recorded",
            escalation_id=snapshot.id,
            subject_id=snapshot.subject_id,
            status=snapshot.status.value,
            total=len(self._records),
        )
        self._notify()

    def list(self) -> List[EscalationRecord]:
        """Every record, oldest first."""
        return [r.model_copy(deep=True) for r in self._records]

    def list_for_subject(self, subject_id: str) -> List[EscalationRecord]:
        return [r.model_copy(deep=True) for r in self._records if r.subject_id == subject_id]

    def subscribe(self, callback: LedgerListener) -> Callable[[], None]:
        """
        Register `callback`; it is called with the full list after every append.

        Returns a function that removes the subscription (idempotent).
        """
        self._listeners.append(callback)
        logger.debug("ledger_subscriber_added", total=len(self._listeners))

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)
                logger.debug("ledger_subscriber_removed", total=len(self._listeners))

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self.list())
            except Exception as e:
                logger.error(
                    "ledger_subscriber_failed",
                    callback=getattr(callback, "__name__", repr(callback)),
                    error=str(e)[:200],
                )
