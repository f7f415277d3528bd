from enum import Enum
from typing import Mapping, Optional


class DenialKind(str, Enum):
    LOCKED = "Locked"
    WRONG_ROLE = "WrongRole"
    PENDING_PRICING_REVIEW = "PendingPricingReview"


class JobMutationError(ValueError):
    """Base for every rejection the job core raises on purpose."""


class JobNotFound(JobMutationError):
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class MutationValidationError(JobMutationError):
    def __init__(self, fields: Mapping[str, str]):
        self.fields = dict(fields)
        summary = "; ".join(f"{k}: {v}" for k, v in sorted(self.fields.items()))
        super().__init__(f"Validation failed: {summary}")


class MutationDenied(JobMutationError):
    def __init__(self, kind: DenialKind, detail: str):
        super().__init__(f"{kind.value}: {detail}")
        self.kind = kind
        self.detail = detail


class VersionConflict(JobMutationError):
    def __init__(self, job_id: str, expected_version: int, current_version: Optional[int]):
        super().__init__(
            f"Job {job_id} changed since version {expected_version} "
            f"(current version {current_version})"
        )
        self.job_id = job_id
        self.expected_version = expected_version
        self.current_version = current_version


class DuplicateContractRateError(ValueError):
    """More than one price matrix row shares the same lookup key."""
