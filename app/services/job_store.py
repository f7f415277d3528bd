from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.errors import JobNotFound
from app.models.audit_log import AuditLog
from app.models.job import Job
from app.models.job_mutation import JobMutation
from app.models.job_snapshot import JobSnapshot
from app.models.price_matrix import PriceMatrixEntry
from app.services.audit_log_generator import AuditEntryDraft, compute_entry_hash
from app.services.price_resolver import PriceMatrixSnapshot, freeze_snapshot


def read_job(db: Session, job_id: str) -> JobSnapshot:
    row = db.query(Job).populate_existing().filter(Job.id == job_id).first()
    if row is None:
        raise JobNotFound(job_id)
    return JobSnapshot.from_row(row)


def current_version(db: Session, job_id: str) -> Optional[int]:
    return db.query(Job.version).filter(Job.id == job_id).scalar()


def compare_and_swap_job(
    db: Session,
    job_id: str,
    expected_version: int,
    new_job: JobSnapshot,
    *,
    now: datetime,
) -> bool:
    """Write ``new_job`` only if the stored row is still at ``expected_version``.

    Bumps the version by one. Returns False when another writer got there first.
    """
    values = new_job.to_column_values()
    values["version"] = int(expected_version) + 1
    values["updated_at"] = now

    updated = (
        db.query(Job)
        .filter(Job.id == job_id, Job.version == int(expected_version))
        .update(values, synchronize_session=False)
    )
    return updated == 1


def append_audit_entries(db: Session, entries: Sequence[AuditEntryDraft]) -> List[AuditLog]:
    """Insert entries at the tail of each job's hash chain."""
    rows: List[AuditLog] = []
    tails = {}

    for entry in entries:
        if entry.job_id not in tails:
            last = (
                db.query(AuditLog)
                .filter(AuditLog.job_id == entry.job_id)
                .order_by(AuditLog.sequence.desc())
                .first()
            )
            tails[entry.job_id] = (last.sequence, last.entry_hash) if last else (0, None)

        sequence, prev_hash = tails[entry.job_id]
        sequence += 1
        entry_hash = compute_entry_hash(entry, sequence, prev_hash)

        row = AuditLog(
            id=entry.id,
            job_id=entry.job_id,
            sequence=sequence,
            mutation_id=entry.mutation_id,
            timestamp=entry.timestamp,
            actor_id=entry.actor_id,
            actor_role=entry.actor_role,
            field=entry.field,
            old_value=entry.old_value,
            new_value=entry.new_value,
            reason=entry.reason,
            admin_override=entry.admin_override,
            prev_hash=prev_hash,
            entry_hash=entry_hash,
        )
        db.add(row)
        rows.append(row)
        tails[entry.job_id] = (sequence, entry_hash)

    db.flush()
    return rows


def list_audit_entries(db: Session, job_id: str) -> List[AuditLog]:
    return (
        db.query(AuditLog)
        .filter(AuditLog.job_id == job_id)
        .order_by(AuditLog.sequence.asc())
        .all()
    )


def audit_entries_for_mutation(db: Session, mutation_id: str) -> List[AuditLog]:
    return (
        db.query(AuditLog)
        .filter(AuditLog.mutation_id == mutation_id)
        .order_by(AuditLog.sequence.asc())
        .all()
    )


def read_price_matrix_snapshot(db: Session) -> PriceMatrixSnapshot:
    rows = db.query(PriceMatrixEntry).order_by(PriceMatrixEntry.id.asc()).all()
    return freeze_snapshot(rows)


def find_mutation(db: Session, mutation_id: str) -> Optional[JobMutation]:
    return db.query(JobMutation).filter(JobMutation.mutation_id == mutation_id).first()


def record_mutation(
    db: Session,
    *,
    mutation_id: str,
    job_id: str,
    actor_id: str,
    base_version: int,
    result_version: int,
    committed_at: datetime,
    request_digest: Optional[str] = None,
    result: Optional[JobSnapshot] = None,
) -> JobMutation:
    row = JobMutation(
        mutation_id=mutation_id,
        job_id=job_id,
        actor_id=actor_id,
        base_version=int(base_version),
        result_version=int(result_version),
        request_digest=request_digest,
        result_snapshot=None if result is None else result.to_json(),
        committed_at=committed_at,
    )
    db.add(row)
    db.flush()
    return row
