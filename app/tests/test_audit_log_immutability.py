import pytest
from sqlalchemy.exc import DBAPIError

from app.core.roles import Role
from app.database import SessionLocal
from app.models.audit_log import AuditLog
from app.services.job_mutation_service import Committed, ProposeMutation, propose_mutation


def _audited_job(job_factory) -> str:
    job = job_factory(status="ASSIGNED", cost="3400", subcontractor="Acme")
    result = propose_mutation(
        ProposeMutation(
            job_id=job.id,
            base_version=job.version,
            changes={"subcontractor": "Beta"},
            actor_role=Role.DISPATCHER,
            actor_id="d-1",
            reason="Acme had no truck",
        )
    )
    assert isinstance(result, Committed)
    return job.id


def test_audit_log_update_is_blocked(job_factory):
    job_id = _audited_job(job_factory)

    db = SessionLocal()
    try:
        row = db.query(AuditLog).filter(AuditLog.job_id == job_id).one()
        assert row.field == "Subcontractor"
        assert row.reason == "Acme had no truck"

        row.new_value = "Gamma"
        with pytest.raises(DBAPIError):
            db.commit()
    finally:
        db.rollback()
        db.close()


def test_audit_log_delete_is_blocked(job_factory):
    job_id = _audited_job(job_factory)

    db = SessionLocal()
    try:
        row = db.query(AuditLog).filter(AuditLog.job_id == job_id).one()
        db.delete(row)
        with pytest.raises(DBAPIError):
            db.commit()
    finally:
        db.rollback()
        db.close()
