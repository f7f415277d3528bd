from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Integer, String

from app.database import Base


class JobMutation(Base):
    """One row per committed mutation; mutation_id is the client idempotency key."""

    __tablename__ = "job_mutations"

    mutation_id = Column(String, primary_key=True)

    job_id = Column(String, index=True, nullable=False)
    actor_id = Column(String, nullable=False)
    base_version = Column(Integer, nullable=False)
    result_version = Column(Integer, nullable=False)

    # sha256 of the request, so a reused id with a different payload is refused
    request_digest = Column(String(64), nullable=True)
    # job as this mutation committed it, returned on replay
    result_snapshot = Column(JSON, nullable=True)

    committed_at = Column(DateTime, nullable=False, default=datetime.utcnow)
