import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy import case, func, text
from sqlalchemy.orm import Session

from app.core.timeutils import to_utc_aware, utc_now
from app.database import SessionLocal
from app.models.event_outbox import EventOutbox

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutboxProcessResult:
    processed: int
    failed: int


OutboxHandler = Callable[[EventOutbox, Session], None]


def _retry_wait(retry_count: int) -> timedelta:
    """Exponential backoff for outbox retries.

    0 retries => 0s, then 2s, 4s, 8s, ... capped at 60s.
    """
    n = int(retry_count) if retry_count is not None else 0
    if n <= 0:
        return timedelta(seconds=0)

    seconds = 2**n
    if seconds > 60:
        seconds = 60
    return timedelta(seconds=seconds)


def _due(created_at: datetime, retry_count: int, now: datetime) -> bool:
    """Naive datetimes are treated as UTC."""
    return to_utc_aware(now) >= (to_utc_aware(created_at) + _retry_wait(retry_count))


def _default_handlers() -> Dict[str, OutboxHandler]:
    from app.services.lifecycle_facts import BILLING_ELIGIBLE, PENDING_COMPLETION_REMINDER
    from app.services.outbox_handlers import (
        handle_billing_eligible,
        handle_pending_completion_reminder,
    )

    return {
        BILLING_ELIGIBLE: handle_billing_eligible,
        PENDING_COMPLETION_REMINDER: handle_pending_completion_reminder,
    }


def is_postgres(db: Session) -> bool:
    bind = db.get_bind()
    return bind is not None and bind.dialect.name == "postgresql"


def _is_due_clause(now: datetime):
    """
    SQL-side due filter (Postgres).

    Applied before LIMIT so rows still backing off don't starve due rows.
      due_at := created_at + least(60, 2^retry_count) seconds  (0 when never retried)
    """
    retry_count = func.coalesce(EventOutbox.retry_count, 0)

    wait_seconds = case(
        (retry_count <= 0, 0),
        else_=func.least(60, func.power(2, retry_count)),
    )

    due_at = EventOutbox.created_at + (wait_seconds * text("interval '1 second'"))
    return due_at <= now


def process_outbox_batch(
    *,
    db: Optional[Session] = None,
    now: Optional[datetime] = None,
    batch_size: int = 50,
    max_retries: int = 10,
    handlers: Optional[Dict[str, OutboxHandler]] = None,
) -> OutboxProcessResult:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    if now is None:
        now = utc_now()

    if handlers is None:
        handlers = _default_handlers()

    processed = 0
    failed = 0

    try:
        q = db.query(EventOutbox).filter(EventOutbox.processed.is_(False))
        if is_postgres(db):
            q = q.filter(_is_due_clause(now))

        rows = (
            q.order_by(EventOutbox.id.asc())
            .with_for_update(skip_locked=True)
            .limit(int(batch_size))
            .all()
        )

        for row in rows:
            # SQLite has no SQL-side due filter, so this is the only check there.
            if not _due(row.created_at, row.retry_count, now):
                continue

            handler = handlers.get(row.event_type)

            try:
                if handler is None:
                    raise ValueError(f"Unknown event_type: {row.event_type}")

                handler(row, db)

                row.processed = True
                row.processed_at = now
                db.flush()
                processed += 1

            except Exception:
                row.retry_count = int(row.retry_count or 0) + 1

                if int(row.retry_count) >= int(max_retries):
                    row.processed = True
                    row.processed_at = now

                db.flush()
                failed += 1
                logger.exception(
                    "Outbox row processing failed",
                    extra={
                        "event_outbox_id": row.id,
                        "event_type": row.event_type,
                        "job_id": row.job_id,
                        "retry_count": int(row.retry_count),
                        "max_retries": int(max_retries),
                    },
                )

        if owns_db:
            db.commit()

        return OutboxProcessResult(processed=processed, failed=failed)

    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def try_acquire_outbox_lock(db: Session) -> bool:
    if not is_postgres(db):
        return True
    res = db.execute(text("select pg_try_advisory_lock(4242, 4243)")).scalar()
    return bool(res)


def release_outbox_lock(db: Session) -> None:
    if not is_postgres(db):
        return
    db.execute(text("select pg_advisory_unlock(4242, 4243)"))
