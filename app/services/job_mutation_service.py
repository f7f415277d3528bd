from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import (
    DenialKind,
    DuplicateContractRateError,
    MutationDenied,
    MutationValidationError,
    VersionConflict,
)
from app.core.roles import Role
from app.core.timeutils import to_utc_naive, utc_now
from app.database import SessionLocal
from app.models.audit_log import AuditLog
from app.models.job_snapshot import JobSnapshot
from app.services import job_store
from app.services.audit_log_generator import diff
from app.services.job_state_machine import RESUBMISSION_REASON, apply_lifecycle
from app.services.lifecycle_facts import enqueue_billing_eligible
from app.services.mutation_guard import MUTABLE_FIELDS, authorize, changed_fields
from app.services.price_resolver import has_route_rate, resolve

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProposeMutation:
    job_id: str
    base_version: int
    changes: Mapping[str, Any]
    actor_role: Role
    actor_id: str
    reason: Optional[str] = None
    mutation_id: Optional[str] = None


@dataclass(frozen=True)
class Committed:
    job: JobSnapshot
    audit_entries: Tuple[AuditLog, ...]
    replayed: bool = False


@dataclass(frozen=True)
class Denied:
    kind: DenialKind
    detail: str


@dataclass(frozen=True)
class Conflict:
    job_id: str
    expected_version: int
    current_version: Optional[int]


@dataclass(frozen=True)
class ValidationFailed:
    fields: Dict[str, str]


MutationResult = Union[Committed, Denied, Conflict, ValidationFailed]


def _apply_changes(old: JobSnapshot, changes: Mapping[str, Any]) -> JobSnapshot:
    errors: Dict[str, str] = {}
    for name in sorted(set(changes) - MUTABLE_FIELDS):
        errors[name] = "Unknown or read-only field"
    if errors:
        raise MutationValidationError(errors)

    for name, value in changes.items():
        try:
            old.with_changes({name: value})
        except (TypeError, ValueError) as exc:
            errors[name] = str(exc)
    if errors:
        raise MutationValidationError(errors)

    return old.with_changes(changes)


def request_digest(command: ProposeMutation) -> str:
    """Fingerprint of what a mutation id was first used for."""
    body = json.dumps(
        {
            "job_id": command.job_id,
            "base_version": int(command.base_version),
            "changes": dict(command.changes),
            "reason": (command.reason or "").strip() or None,
        },
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def _replay(db: Session, command: ProposeMutation, mutation_id: str) -> Optional[Committed]:
    existing = job_store.find_mutation(db, mutation_id)
    if existing is None:
        return None
    if existing.job_id != command.job_id:
        raise MutationValidationError({"mutationId": "Mutation id was already used for another job"})
    if existing.request_digest and existing.request_digest != request_digest(command):
        raise MutationValidationError(
            {"mutationId": "Mutation id was already used with a different request"}
        )

    if existing.result_snapshot:
        job = JobSnapshot.from_json(existing.result_snapshot)
    else:
        job = replace(job_store.read_job(db, command.job_id), version=existing.result_version)
    return Committed(
        job=job,
        audit_entries=tuple(job_store.audit_entries_for_mutation(db, mutation_id)),
        replayed=True,
    )


def _propose(db: Session, command: ProposeMutation, mutation_id: str, now: datetime) -> Committed:
    replayed = _replay(db, command, mutation_id)
    if replayed is not None:
        return replayed

    old = job_store.read_job(db, command.job_id)
    if old.version != int(command.base_version):
        raise VersionConflict(command.job_id, int(command.base_version), old.version)

    proposed = _apply_changes(old, command.changes)
    effective = changed_fields(old, proposed)
    if not effective:
        raise MutationValidationError({"changes": "No effective changes"})

    snapshot = job_store.read_price_matrix_snapshot(db)
    decision = authorize(
        old,
        effective,
        command.actor_role,
        has_contract_rate=has_route_rate(snapshot, old.origin, old.destination, old.truck_type),
    )
    if not decision.allowed:
        raise MutationDenied(decision.kind, decision.detail)

    reason = (command.reason or "").strip() or None
    if decision.requires_reason and reason is None:
        raise MutationValidationError(
            {"reason": f"A reason is required to change {', '.join(decision.reason_fields)}"}
        )

    try:
        contract = resolve(
            snapshot,
            proposed.origin,
            proposed.destination,
            proposed.truck_type,
            proposed.subcontractor,
            proposed.drop_count,
        )
    except DuplicateContractRateError as exc:
        raise MutationValidationError({"priceMatrix": str(exc)}) from exc

    outcome = apply_lifecycle(
        old,
        proposed,
        supplied=frozenset(command.changes),
        actor_role=command.actor_role,
        reason=reason,
        contract=contract,
        now=now,
        lock_on_contract_assignment=get_settings().lock_on_contract_assignment,
    )
    new = outcome.job

    entries = diff(
        old,
        new,
        command.actor_id,
        command.actor_role,
        reason or (RESUBMISSION_REASON if outcome.resubmitted else None),
        mutation_id=mutation_id,
        timestamp=now,
        contract_price=contract,
        admin_override=decision.admin_override,
    )

    base_version = int(command.base_version)
    if not job_store.compare_and_swap_job(db, command.job_id, base_version, new, now=now):
        raise VersionConflict(
            command.job_id, base_version, job_store.current_version(db, command.job_id)
        )

    committed = replace(new, version=base_version + 1, updated_at=now)
    rows = job_store.append_audit_entries(db, entries)
    job_store.record_mutation(
        db,
        mutation_id=mutation_id,
        job_id=command.job_id,
        actor_id=command.actor_id,
        base_version=base_version,
        result_version=committed.version,
        committed_at=now,
        request_digest=request_digest(command),
        result=committed,
    )

    if outcome.billing_eligible:
        enqueue_billing_eligible(db, committed)

    return Committed(job=committed, audit_entries=tuple(rows))


def propose_mutation(
    command: ProposeMutation,
    *,
    db: Optional[Session] = None,
    now: Optional[datetime] = None,
) -> MutationResult:
    """Authorize, apply and commit one job mutation.

    The single entry point for changing a job. Commits the job row, its audit
    entries, the idempotency record and any lifecycle facts together, or
    nothing. Policy and validation rejections come back as result values;
    store failures propagate.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = to_utc_naive(now or utc_now())
    mutation_id = command.mutation_id or str(uuid.uuid4())
    log_extra = {
        "job_id": command.job_id,
        "mutation_id": mutation_id,
        "actor_id": command.actor_id,
        "actor_role": command.actor_role.value,
        "base_version": int(command.base_version),
    }

    try:
        try:
            result = _propose(db, command, mutation_id, now)
            db.commit()
        except MutationValidationError as exc:
            db.rollback()
            logger.info(
                "Job mutation rejected",
                extra={**log_extra, "outcome": "validation", "fields": exc.fields},
            )
            return ValidationFailed(fields=exc.fields)
        except MutationDenied as exc:
            db.rollback()
            logger.info(
                "Job mutation denied",
                extra={**log_extra, "outcome": exc.kind.value, "detail": exc.detail},
            )
            return Denied(kind=exc.kind, detail=exc.detail)
        except VersionConflict as exc:
            db.rollback()
            logger.info(
                "Job mutation conflict",
                extra={**log_extra, "outcome": "conflict", "current_version": exc.current_version},
            )
            return Conflict(
                job_id=exc.job_id,
                expected_version=exc.expected_version,
                current_version=exc.current_version,
            )
        except IntegrityError:
            # A concurrent retry of the same mutation id committed first.
            db.rollback()
            replayed = _replay(db, command, mutation_id)
            if replayed is None:
                raise
            db.commit()
            result = replayed
        except Exception:
            db.rollback()
            raise

        logger.info(
            "Job mutation committed",
            extra={
                **log_extra,
                "outcome": "replayed" if result.replayed else "committed",
                "version": result.job.version,
                "audit_entries": len(result.audit_entries),
            },
        )
        return result

    finally:
        if owns_db:
            db.close()
