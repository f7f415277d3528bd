import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.models.event_outbox import EventOutbox
from app.models.job import Job
from app.models.job_snapshot import OperationalStatus

logger = logging.getLogger(__name__)


def _job_id(row: EventOutbox) -> Optional[str]:
    payload: Any = row.payload or {}
    if isinstance(payload, dict) and payload.get("job_id"):
        return str(payload["job_id"])
    return row.job_id


def handle_billing_eligible(row: EventOutbox, db: Session) -> None:
    job_id = _job_id(row)
    if not job_id:
        logger.info(
            "BILLING_ELIGIBLE missing job_id; skipping",
            extra={"event_outbox_id": row.id},
        )
        return

    job = db.query(Job).filter(Job.id == job_id).first()
    if job is None:
        raise ValueError(f"Job not found: {job_id}")

    if job.status != OperationalStatus.BILLED.value:
        logger.info(
            "BILLING_ELIGIBLE for job that is not billed; skipping",
            extra={"event_outbox_id": row.id, "job_id": job_id, "status": job.status},
        )
        return

    # Document generation picks these up from the log stream.
    logger.info(
        "Billing eligible",
        extra={
            "event_outbox_id": row.id,
            "job_id": job_id,
            "subcontractor": job.subcontractor,
            "billing_doc_no": job.billing_doc_no,
            "payload": row.payload,
        },
    )


def handle_pending_completion_reminder(row: EventOutbox, db: Session) -> None:
    job_id = _job_id(row)
    if not job_id:
        logger.info(
            "PENDING_COMPLETION_REMINDER missing job_id; skipping",
            extra={"event_outbox_id": row.id},
        )
        return

    job = db.query(Job).filter(Job.id == job_id).first()
    if job is None or job.status != OperationalStatus.ASSIGNED.value:
        logger.info(
            "Job no longer awaiting completion; skipping reminder",
            extra={"event_outbox_id": row.id, "job_id": job_id},
        )
        return

    logger.info(
        "Pending completion reminder",
        extra={
            "event_outbox_id": row.id,
            "job_id": job_id,
            "subcontractor": job.subcontractor,
            "driver_name": job.driver_name,
            "driver_phone": job.driver_phone,
        },
    )
