import asyncio
import logging
import os
from datetime import timedelta

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.timeutils import utc_now
from app.database import SessionLocal
from app.services.lifecycle_facts import enqueue_pending_completion_reminders
from app.services.outbox_processor import (
    is_postgres,
    process_outbox_batch,
    release_outbox_lock,
    try_acquire_outbox_lock,
)

logger = logging.getLogger(__name__)


def outbox_worker_enabled() -> bool:
    # Disable by default under pytest to keep tests deterministic.
    if os.getenv("PYTEST_CURRENT_TEST"):
        return False
    return get_settings().outbox_worker_enabled


def _tag_connection(db: Session, name: str) -> None:
    if not is_postgres(db):
        return
    try:
        db.execute(text(f"set application_name = '{name}'"))
    except DBAPIError:
        db.rollback()


def _dispose_engine(db: Session) -> None:
    engine = db.get_bind()
    if engine is not None and hasattr(engine, "dispose"):
        engine.dispose()


def run_worker_tick(
    db: Session,
    *,
    batch_size: int,
    max_retries: int,
    reminder_cutoff: timedelta,
) -> None:
    """One pass: sweep for overdue assignments, then dispatch due outbox rows."""
    now = utc_now()
    enqueue_pending_completion_reminders(db=db, now=now, cutoff=reminder_cutoff)
    db.flush()
    process_outbox_batch(db=db, now=now, batch_size=batch_size, max_retries=max_retries)
    db.commit()


async def outbox_worker_loop(
    *,
    poll_seconds: float = 1.0,
    batch_size: int = 50,
    max_retries: int = 10,
    reminder_cutoff: timedelta = timedelta(hours=24),
) -> None:
    """
    Single-worker loop.

      - Never crash the server on transient DB failures.
      - One active worker across processes via a PG advisory lock.
      - Recover if Postgres restarts or connections are terminated.
    """
    logger.info(
        "Outbox worker started",
        extra={"poll_seconds": float(poll_seconds), "batch_size": int(batch_size)},
    )

    while True:
        lock_db: Session = SessionLocal()
        have_lock = False

        try:
            _tag_connection(lock_db, "trucking_outbox_worker_lock")

            have_lock = try_acquire_outbox_lock(lock_db)
            if not have_lock:
                lock_db.close()
                await asyncio.sleep(poll_seconds)
                continue

            # The advisory lock lives as long as lock_db's connection does.
            while True:
                work_db: Session = SessionLocal()
                try:
                    _tag_connection(work_db, "trucking_outbox_worker_tick")
                    run_worker_tick(
                        work_db,
                        batch_size=batch_size,
                        max_retries=max_retries,
                        reminder_cutoff=reminder_cutoff,
                    )

                except asyncio.CancelledError:
                    raise

                except (OperationalError, DBAPIError):
                    work_db.rollback()
                    _dispose_engine(work_db)
                    logger.exception(
                        "Outbox worker tick failed",
                        extra={"component": "outbox_worker", "reason": "dbapi_error"},
                    )
                    await asyncio.sleep(poll_seconds)

                except Exception:
                    work_db.rollback()
                    logger.exception(
                        "Outbox worker tick failed",
                        extra={"component": "outbox_worker", "reason": "unexpected"},
                    )
                    await asyncio.sleep(poll_seconds)

                finally:
                    work_db.close()

                await asyncio.sleep(poll_seconds)

        except asyncio.CancelledError:
            logger.info("Outbox worker cancelled; shutting down")
            raise

        except (OperationalError, DBAPIError):
            logger.exception(
                "Outbox worker lock connection failed",
                extra={"component": "outbox_worker", "reason": "lock_dbapi_error"},
            )
            _dispose_engine(lock_db)
            await asyncio.sleep(poll_seconds)

        except Exception:
            logger.exception(
                "Outbox worker crashed",
                extra={"component": "outbox_worker", "reason": "outer_unexpected"},
            )
            await asyncio.sleep(poll_seconds)

        finally:
            if have_lock:
                try:
                    release_outbox_lock(lock_db)
                except DBAPIError:
                    logger.warning("Outbox worker could not release its advisory lock")
            lock_db.close()


def start_outbox_worker_task() -> asyncio.Task | None:
    if not outbox_worker_enabled():
        logger.info("Outbox worker disabled")
        return None

    settings = get_settings()
    return asyncio.create_task(
        outbox_worker_loop(
            poll_seconds=settings.outbox_poll_seconds,
            batch_size=settings.outbox_batch_size,
            max_retries=settings.outbox_max_retries,
            reminder_cutoff=timedelta(hours=settings.pending_completion_cutoff_hours),
        )
    )
