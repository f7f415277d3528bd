from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint

from app.database import Base


class AuditLog(Base):
    """Append-only. Database triggers reject UPDATE and DELETE."""

    __tablename__ = "audit_log"

    __table_args__ = (
        UniqueConstraint("job_id", "sequence", name="uq_audit_log_job_sequence"),
    )

    id = Column(String(36), primary_key=True)

    job_id = Column(String, index=True, nullable=False)
    sequence = Column(Integer, nullable=False)
    mutation_id = Column(String, index=True, nullable=False)

    timestamp = Column(DateTime, index=True, nullable=False)
    actor_id = Column(String, nullable=False)
    actor_role = Column(String, nullable=False)

    field = Column(String, nullable=False)
    old_value = Column(Text, nullable=False)
    new_value = Column(Text, nullable=False)
    reason = Column(Text, nullable=True)
    admin_override = Column(Boolean, nullable=False, default=False)

    prev_hash = Column(String(64), nullable=True)
    entry_hash = Column(String(64), nullable=False)
