import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.timeutils import to_utc_naive, utc_now
from app.database import SessionLocal
from app.models.event_outbox import EventOutbox
from app.models.job import Job
from app.models.job_snapshot import JobSnapshot, OperationalStatus
from app.services.audit_log_generator import format_amount

logger = logging.getLogger(__name__)

BILLING_ELIGIBLE = "BILLING_ELIGIBLE"
PENDING_COMPLETION_REMINDER = "PENDING_COMPLETION_REMINDER"


def _enqueue(
    db: Session,
    *,
    event_type: str,
    idempotency_key: str,
    job_id: str,
    payload: Dict[str, Any],
) -> bool:
    exists = (
        db.query(EventOutbox.id)
        .filter(
            EventOutbox.event_type == event_type,
            EventOutbox.idempotency_key == idempotency_key,
        )
        .first()
    )
    if exists is not None:
        return False

    db.add(
        EventOutbox(
            job_id=job_id,
            event_type=event_type,
            idempotency_key=idempotency_key,
            payload=payload,
        )
    )
    db.flush()
    return True


def billing_eligible_key(job_id: str) -> str:
    return f"job:{job_id}:billing_eligible"


def pending_completion_key(job_id: str, day: datetime) -> str:
    return f"job:{job_id}:pending_completion:{day.date().isoformat()}"


def enqueue_billing_eligible(db: Session, job: JobSnapshot) -> bool:
    """Called inside the transaction that commits the job to BILLED."""
    return _enqueue(
        db,
        event_type=BILLING_ELIGIBLE,
        idempotency_key=billing_eligible_key(job.id),
        job_id=job.id,
        payload={
            "job_id": job.id,
            "subcontractor": job.subcontractor,
            "cost": format_amount(job.cost),
            "selling_price": format_amount(job.selling_price),
            "extra_charge": format_amount(job.extra_charge),
            "billing_date": job.billing_date.isoformat() if job.billing_date else None,
            "billing_doc_no": job.billing_doc_no,
        },
    )


def enqueue_pending_completion_reminders(
    *,
    db: Optional[Session] = None,
    now: Optional[datetime] = None,
    cutoff: Optional[timedelta] = None,
) -> int:
    """One reminder per day for each ASSIGNED job assigned before ``now - cutoff``."""
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = to_utc_naive(now or utc_now())
    if cutoff is None:
        cutoff = timedelta(hours=get_settings().pending_completion_cutoff_hours)

    try:
        jobs = (
            db.query(Job)
            .filter(Job.status == OperationalStatus.ASSIGNED.value)
            .filter(Job.assigned_at.isnot(None))
            .filter(Job.assigned_at <= now - cutoff)
            .order_by(Job.id.asc())
            .all()
        )

        created = 0
        for job in jobs:
            inserted = _enqueue(
                db,
                event_type=PENDING_COMPLETION_REMINDER,
                idempotency_key=pending_completion_key(job.id, now),
                job_id=job.id,
                payload={
                    "job_id": job.id,
                    "subcontractor": job.subcontractor,
                    "driver_name": job.driver_name,
                    "assigned_at": job.assigned_at.isoformat(),
                },
            )
            if inserted:
                created += 1

        if owns_db:
            db.commit()

        if created:
            logger.info(
                "Pending completion reminders enqueued",
                extra={"count": created, "cutoff_hours": cutoff.total_seconds() / 3600},
            )
        return created

    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()
