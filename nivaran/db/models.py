"""
SQLAlchemy models.

The ledger table stores each escalation record as a full JSON snapshot;
subject and status are lifted into columns for filtering.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, String, TypeDecorator
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Mapped, mapped_column

from nivaran.alerting.schemas import EscalationRecord
from nivaran.db.engine import Base


class RecordSnapshot(TypeDecorator):
    """
    EscalationRecord stored as JSON (JSONB on PostgreSQL).

    Binds a record or an already-dumped dict; loads back a plain dict so the
    ledger can validate rows one by one.
    """

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.JSONB)
        return dialect.type_descriptor(JSON)

    def process_bind_param(self, value, dialect):
        if isinstance(value, EscalationRecord):
            return value.model_dump(mode="json")
        return value


class EscalationLedgerEntry(Base):
    """
    Append-only escalation ledger.

    Rows are inserted once, after the record's status is final, and never
    updated or deleted.
    """

    __tablename__ = "escalation_ledger"
    __table_args__ = (
        Index("ix_escalation_ledger_created_at", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    subject_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    payload: Mapped[dict] = mapped_column(RecordSnapshot(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
