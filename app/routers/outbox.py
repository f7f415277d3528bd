from typing import Optional, Tuple

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.authorization import require_role
from app.core.roles import Role
from app.database import SessionLocal
from app.models.event_outbox import EventOutbox
from app.services.lifecycle_facts import enqueue_pending_completion_reminders

router = APIRouter(prefix="/outbox", tags=["Outbox"])


class OutboxRow(BaseModel):
    id: int
    job_id: Optional[str]
    event_type: str
    idempotency_key: str
    processed: bool
    retry_count: int
    created_at: str
    processed_at: Optional[str]


class OutboxListResponse(BaseModel):
    limit: int
    offset: int
    rows: list[OutboxRow]


class ReminderScanResponse(BaseModel):
    enqueued: int


@router.get("", response_model=OutboxListResponse)
def list_outbox(
    processed: Optional[bool] = None,
    event_type: Optional[str] = None,
    job_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=1_000_000),
    _auth: Tuple[str, Role] = Depends(require_role(Role.ADMIN, Role.ACCOUNTANT)),
):
    db: Session = SessionLocal()
    try:
        q = db.query(EventOutbox)

        if processed is not None:
            q = q.filter(EventOutbox.processed == bool(processed))
        if event_type is not None:
            q = q.filter(EventOutbox.event_type == event_type)
        if job_id is not None:
            q = q.filter(EventOutbox.job_id == job_id)

        rows = (
            q.order_by(EventOutbox.id.asc())
            .limit(int(limit))
            .offset(int(offset))
            .all()
        )

        return {
            "limit": int(limit),
            "offset": int(offset),
            "rows": [
                {
                    "id": r.id,
                    "job_id": r.job_id,
                    "event_type": r.event_type,
                    "idempotency_key": r.idempotency_key,
                    "processed": r.processed,
                    "retry_count": r.retry_count,
                    "created_at": r.created_at.isoformat(),
                    "processed_at": None if r.processed_at is None else r.processed_at.isoformat(),
                }
                for r in rows
            ],
        }
    finally:
        db.close()


@router.post("/reminders/scan", response_model=ReminderScanResponse)
def scan_pending_completion(
    _auth: Tuple[str, Role] = Depends(require_role(Role.ADMIN, Role.DISPATCHER)),
):
    return {"enqueued": enqueue_pending_completion_reminders()}
