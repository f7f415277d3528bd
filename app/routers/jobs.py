from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_snake

from app.core.errors import JobMutationError, JobNotFound, MutationDenied, MutationValidationError
from app.core.roles import Role
from app.database import SessionLocal
from app.deps.auth import require_auth
from app.models.job import Job
from app.models.job_snapshot import AccountingStatus, JobSnapshot, OperationalStatus
from app.schemas.job import (
    AuditChainResponse,
    AuditEntryResponse,
    ConflictResponse,
    DeniedResponse,
    JobCreate,
    JobResponse,
    MutationCommittedResponse,
    MutationRequest,
    ValidationFailedResponse,
)
from app.services import job_store
from app.services.audit_log_generator import verify_chain
from app.services.job_intake import create_job as create_job_record
from app.services.job_mutation_service import (
    Conflict,
    Denied,
    ProposeMutation,
    ValidationFailed,
    propose_mutation,
)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


def _json(model, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=model.model_dump(mode="json", by_alias=True),
    )


@router.post("", response_model=JobResponse, status_code=201)
def create_job(
    payload: JobCreate,
    auth: Tuple[str, Role] = Depends(require_auth),
):
    user_id, role = auth
    try:
        job = create_job_record(
            payload.model_dump(exclude_unset=True),
            actor_id=user_id,
            actor_role=role,
        )
    except MutationDenied as exc:
        raise HTTPException(status_code=403, detail=exc.detail) from exc
    except MutationValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.fields) from exc
    return JobResponse.model_validate(job)


@router.get("", response_model=List[JobResponse])
def list_jobs(
    status: Optional[OperationalStatus] = None,
    accounting_status: Optional[AccountingStatus] = Query(default=None, alias="accountingStatus"),
    subcontractor: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    _auth: Tuple[str, Role] = Depends(require_auth),
):
    db = SessionLocal()
    try:
        q = db.query(Job)
        if status is not None:
            q = q.filter(Job.status == status.value)
        if accounting_status is not None:
            q = q.filter(Job.accounting_status == accounting_status.value)
        if subcontractor is not None:
            q = q.filter(Job.subcontractor == subcontractor.strip())

        rows = (
            q.order_by(Job.created_at.desc(), Job.id.desc())
            .offset(int(offset))
            .limit(int(limit))
            .all()
        )
        return [JobResponse.model_validate(JobSnapshot.from_row(r)) for r in rows]
    finally:
        db.close()


@router.get("/{job_id}", response_model=JobResponse)
def get_job(
    job_id: str,
    _auth: Tuple[str, Role] = Depends(require_auth),
):
    db = SessionLocal()
    try:
        return JobResponse.model_validate(job_store.read_job(db, job_id))
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    finally:
        db.close()


@router.post(
    "/{job_id}/mutations",
    response_model=MutationCommittedResponse,
    responses={
        403: {"model": DeniedResponse},
        409: {"model": ConflictResponse},
        422: {"model": ValidationFailedResponse},
    },
)
def mutate_job(
    job_id: str,
    payload: MutationRequest,
    auth: Tuple[str, Role] = Depends(require_auth),
):
    user_id, role = auth
    command = ProposeMutation(
        job_id=job_id,
        base_version=payload.base_version,
        changes={to_snake(k): v for k, v in payload.changes.items()},
        actor_role=role,
        actor_id=user_id,
        reason=payload.reason,
        mutation_id=payload.mutation_id,
    )

    try:
        result = propose_mutation(command)
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except JobMutationError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    if isinstance(result, Denied):
        return _json(DeniedResponse(kind=result.kind, detail=result.detail), 403)
    if isinstance(result, Conflict):
        return _json(
            ConflictResponse(
                job_id=result.job_id,
                expected_version=result.expected_version,
                current_version=result.current_version,
            ),
            409,
        )
    if isinstance(result, ValidationFailed):
        return _json(ValidationFailedResponse(fields=result.fields), 422)

    return MutationCommittedResponse(
        replayed=result.replayed,
        job=JobResponse.model_validate(result.job),
        audit_entries=[AuditEntryResponse.model_validate(e) for e in result.audit_entries],
    )


@router.get("/{job_id}/audit", response_model=List[AuditEntryResponse])
def get_job_audit(
    job_id: str,
    _auth: Tuple[str, Role] = Depends(require_auth),
):
    db = SessionLocal()
    try:
        if job_store.current_version(db, job_id) is None:
            raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
        return [AuditEntryResponse.model_validate(r) for r in job_store.list_audit_entries(db, job_id)]
    finally:
        db.close()


@router.get("/{job_id}/audit/verify", response_model=AuditChainResponse)
def verify_job_audit(
    job_id: str,
    _auth: Tuple[str, Role] = Depends(require_auth),
):
    db = SessionLocal()
    try:
        if job_store.current_version(db, job_id) is None:
            raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
        result = verify_chain(job_store.list_audit_entries(db, job_id))
        return AuditChainResponse(
            job_id=job_id,
            ok=result.ok,
            checked=result.checked,
            broken_at_sequence=result.broken_at_sequence,
        )
    finally:
        db.close()
