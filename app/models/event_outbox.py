from __future__ import annotations

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, false, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.schema import Index, UniqueConstraint

from app.database import Base


class EventOutbox(Base):
    __tablename__ = "event_outbox"

    id = Column(Integer, primary_key=True)

    job_id = Column(String, nullable=True, index=True)

    event_type = Column(String, nullable=False, index=True)
    idempotency_key = Column(String, nullable=False)

    payload = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)

    processed = Column(Boolean, nullable=False, default=False, server_default=false())
    processed_at = Column(DateTime(timezone=True), nullable=True)

    retry_count = Column(Integer, nullable=False, default=0, server_default="0")

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint(
            "event_type",
            "idempotency_key",
            name="uq_event_outbox_idempotency",
        ),
        Index("ix_event_outbox_job_event", "job_id", "event_type"),
        Index("ix_event_outbox_processed", "processed", "created_at"),
    )
