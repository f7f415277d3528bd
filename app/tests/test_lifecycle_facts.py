from datetime import datetime, timedelta

from app.database import SessionLocal
from app.models.event_outbox import EventOutbox
from app.models.job import Job
from app.services.lifecycle_facts import (
    BILLING_ELIGIBLE,
    PENDING_COMPLETION_REMINDER,
    enqueue_billing_eligible,
    enqueue_pending_completion_reminders,
)
from app.services.outbox_processor import process_outbox_batch

NOW = datetime(2026, 10, 19, 12, 0)


def _rows(event_type):
    db = SessionLocal()
    try:
        return db.query(EventOutbox).filter(EventOutbox.event_type == event_type).all()
    finally:
        db.close()


def test_billing_eligible_fact_is_enqueued_once(job_factory):
    job = job_factory(status="BILLED", accounting_status="APPROVED", cost="3400", subcontractor="Acme")

    db = SessionLocal()
    try:
        assert enqueue_billing_eligible(db, job) is True
        assert enqueue_billing_eligible(db, job) is False
        db.commit()
    finally:
        db.close()

    rows = _rows(BILLING_ELIGIBLE)
    assert len(rows) == 1
    assert rows[0].job_id == job.id
    assert rows[0].payload["cost"] == "3400"


def test_reminders_cover_only_overdue_assigned_jobs(job_factory):
    overdue = job_factory(status="ASSIGNED", cost="3400", assigned_at=NOW - timedelta(hours=30))
    job_factory(status="ASSIGNED", cost="3400", assigned_at=NOW - timedelta(hours=2))
    job_factory(status="COMPLETED", cost="3400", assigned_at=NOW - timedelta(hours=30))

    created = enqueue_pending_completion_reminders(now=NOW, cutoff=timedelta(hours=24))

    assert created == 1
    rows = _rows(PENDING_COMPLETION_REMINDER)
    assert [r.job_id for r in rows] == [overdue.id]


def test_reminders_are_daily(job_factory):
    job_factory(status="ASSIGNED", cost="3400", assigned_at=NOW - timedelta(hours=30))

    assert enqueue_pending_completion_reminders(now=NOW, cutoff=timedelta(hours=24)) == 1
    assert enqueue_pending_completion_reminders(now=NOW + timedelta(hours=1), cutoff=timedelta(hours=24)) == 0
    assert enqueue_pending_completion_reminders(now=NOW + timedelta(days=1), cutoff=timedelta(hours=24)) == 1


def test_reminder_for_job_completed_meanwhile_is_drained(job_factory):
    job = job_factory(status="ASSIGNED", cost="3400", assigned_at=NOW - timedelta(hours=30))
    enqueue_pending_completion_reminders(now=NOW, cutoff=timedelta(hours=24))

    db = SessionLocal()
    try:
        db.query(Job).filter(Job.id == job.id).update({"status": "COMPLETED"})
        db.commit()

        result = process_outbox_batch(db=db, now=datetime.utcnow() + timedelta(seconds=5))
        db.commit()

        assert result.processed == 1
        assert result.failed == 0
    finally:
        db.close()


def test_default_handlers_drain_lifecycle_facts(job_factory):
    job = job_factory(status="BILLED", accounting_status="APPROVED", cost="3400", subcontractor="Acme")

    db = SessionLocal()
    try:
        enqueue_billing_eligible(db, job)
        db.commit()

        result = process_outbox_batch(db=db, now=datetime.utcnow() + timedelta(seconds=5))
        db.commit()

        assert result.processed == 1
        assert result.failed == 0
        assert db.query(EventOutbox).filter(EventOutbox.processed.is_(False)).count() == 0
    finally:
        db.close()
