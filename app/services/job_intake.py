from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import DenialKind, MutationDenied, MutationValidationError
from app.core.roles import Role
from app.core.timeutils import to_utc_naive, utc_now
from app.database import SessionLocal
from app.models.job import Job
from app.models.job_snapshot import JobSnapshot, OperationalStatus
from app.services import job_store
from app.services.mutation_guard import REQUEST_FIELDS
from app.services.price_resolver import has_route_rate

logger = logging.getLogger(__name__)

JOB_ID_PREFIX = "JRS"
CREATOR_ROLES = frozenset({Role.BOOKING_OFFICER, Role.DISPATCHER, Role.ADMIN})
INTAKE_FIELDS = REQUEST_FIELDS | {"requested_by"}
MAX_ID_ATTEMPTS = 5


def _next_job_id(db: Session, year: int) -> str:
    prefix = f"{JOB_ID_PREFIX}-{year}-"
    ids = db.query(Job.id).filter(Job.id.like(f"{prefix}%")).all()
    highest = 0
    for (job_id,) in ids:
        suffix = job_id[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:04d}"


def _draft(payload: Mapping[str, Any], actor_id: str) -> JobSnapshot:
    unknown = sorted(set(payload) - INTAKE_FIELDS)
    if unknown:
        raise MutationValidationError({name: "Not accepted on job creation" for name in unknown})

    blank = JobSnapshot(
        id="",
        version=1,
        origin="",
        destination="",
        truck_type="",
        status=OperationalStatus.NEW_REQUEST,
    )
    values = {k: v for k, v in payload.items() if k != "requested_by"}
    try:
        draft = blank.with_changes(values)
    except (TypeError, ValueError) as exc:
        raise MutationValidationError({"job": str(exc)}) from exc

    errors: Dict[str, str] = {}
    required = (("origin", "Origin"), ("destination", "Destination"), ("truck_type", "Truck type"))
    for name, label in required:
        if not getattr(draft, name):
            errors[name] = f"{label} is required"
    if errors:
        raise MutationValidationError(errors)

    requested_by = (payload.get("requested_by") or "").strip() or actor_id
    return replace(draft, requested_by=requested_by)


def create_job(
    payload: Mapping[str, Any],
    *,
    actor_id: str,
    actor_role: Role,
    db: Optional[Session] = None,
    now: Optional[datetime] = None,
) -> JobSnapshot:
    """Create a job in NEW_REQUEST, or PENDING_PRICING when no contract covers the route."""
    if actor_role not in CREATOR_ROLES:
        raise MutationDenied(DenialKind.WRONG_ROLE, f"{actor_role.value} cannot create jobs")

    draft = _draft(payload, actor_id)
    now = to_utc_naive(now or utc_now())

    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        snapshot = job_store.read_price_matrix_snapshot(db)
        status = (
            OperationalStatus.NEW_REQUEST
            if has_route_rate(snapshot, draft.origin, draft.destination, draft.truck_type)
            else OperationalStatus.PENDING_PRICING
        )

        for attempt in range(1, MAX_ID_ATTEMPTS + 1):
            job_id = _next_job_id(db, now.year)
            values = draft.to_column_values()
            values.update(
                status=status.value,
                version=1,
                created_at=now,
                updated_at=now,
            )
            db.add(Job(id=job_id, **values))
            try:
                db.commit()
                break
            except IntegrityError:
                db.rollback()
                logger.warning(
                    "Job id collision; retrying",
                    extra={"job_id": job_id, "attempt": attempt},
                )
        else:
            raise RuntimeError("Could not allocate a job id")

        logger.info(
            "Job created",
            extra={"job_id": job_id, "status": status.value, "actor_role": actor_role.value},
        )
        return job_store.read_job(db, job_id)

    except Exception:
        db.rollback()
        raise
    finally:
        if owns_db:
            db.close()
