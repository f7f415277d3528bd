from app.models.audit_log import AuditLog
from app.models.event_outbox import EventOutbox
from app.models.job import Job
from app.models.job_mutation import JobMutation
from app.models.price_matrix import PriceMatrixEntry

__all__ = [
    "AuditLog",
    "EventOutbox",
    "Job",
    "JobMutation",
    "PriceMatrixEntry",
]
