from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import AbstractSet, Dict, FrozenSet, Optional

from app.core.errors import MutationValidationError
from app.core.roles import Role
from app.models.job_snapshot import ZERO, AccountingStatus, JobSnapshot, OperationalStatus
from app.services.price_resolver import ContractPrice

OS = OperationalStatus
AS = AccountingStatus

OPERATIONAL_TRANSITIONS: Dict[OperationalStatus, FrozenSet[OperationalStatus]] = {
    OS.NEW_REQUEST: frozenset({OS.PENDING_PRICING, OS.ASSIGNED, OS.CANCELLED}),
    OS.PENDING_PRICING: frozenset({OS.ASSIGNED, OS.CANCELLED}),
    OS.ASSIGNED: frozenset({OS.COMPLETED, OS.CANCELLED}),
    OS.COMPLETED: frozenset({OS.BILLED}),
    OS.BILLED: frozenset(),
    OS.CANCELLED: frozenset(),
}

ACCOUNTING_TRANSITIONS: Dict[Optional[AccountingStatus], FrozenSet[AccountingStatus]] = {
    None: frozenset({AS.PENDING_REVIEW}),
    AS.PENDING_REVIEW: frozenset({AS.APPROVED, AS.REJECTED}),
    AS.REJECTED: frozenset({AS.PENDING_REVIEW}),
    AS.APPROVED: frozenset({AS.PAID}),
    AS.PAID: frozenset({AS.LOCKED}),
    AS.LOCKED: frozenset(),
}

TERMINAL_STATUSES = frozenset({OS.BILLED, OS.CANCELLED})
PRE_ASSIGNMENT_STATUSES = frozenset({OS.NEW_REQUEST, OS.PENDING_PRICING})
LOCKABLE_STATUSES = frozenset({OS.ASSIGNED, OS.COMPLETED, OS.BILLED})
REJECTABLE_STATUSES = frozenset({OS.ASSIGNED, OS.COMPLETED})

RESUBMISSION_REASON = "Corrected and resubmitted for review"

_AMOUNTS = (("cost", "Cost"), ("selling_price", "Selling price"), ("extra_charge", "Extra charge"))

_ASSIGNMENT_REQUIRED = (
    ("subcontractor", "Subcontractor is required"),
    ("truck_type", "Truck type is required"),
    ("driver_name", "Driver name is required"),
    ("driver_phone", "Driver phone is required"),
    ("license_plate", "License plate is required"),
)

# Fleet details an assigned job needs before it goes to accounting review.
_CONFIRM_REQUIRED = _ASSIGNMENT_REQUIRED[2:]


@dataclass(frozen=True)
class LifecycleOutcome:
    job: JobSnapshot
    first_assignment: bool = False
    billing_eligible: bool = False
    resubmitted: bool = False


def can_transition_operational(old: OperationalStatus, new: OperationalStatus) -> bool:
    return old == new or new in OPERATIONAL_TRANSITIONS[old]


def can_transition_accounting(old: Optional[AccountingStatus], new: Optional[AccountingStatus]) -> bool:
    return old == new or new in ACCOUNTING_TRANSITIONS[old]


def is_first_assignment(old: JobSnapshot, new: JobSnapshot) -> bool:
    return old.status in PRE_ASSIGNMENT_STATUSES and new.status == OS.ASSIGNED


def check_invariants(job: JobSnapshot) -> Dict[str, str]:
    violations: Dict[str, str] = {}
    for name, label in _AMOUNTS:
        if getattr(job, name) < ZERO:
            violations[name] = f"{label} cannot be negative"
    if job.is_base_cost_locked and job.status not in LOCKABLE_STATUSES:
        violations["isBaseCostLocked"] = f"A {job.status.value} job cannot carry the base cost lock"
    if job.accounting_status in (AS.PAID, AS.LOCKED) and job.status != OS.BILLED:
        violations["accountingStatus"] = f"{job.accounting_status.value} requires a BILLED job"
    if job.accounting_status == AS.REJECTED and job.status not in REJECTABLE_STATUSES:
        violations["accountingStatus"] = "REJECTED requires an ASSIGNED or COMPLETED job"
    if job.accounting_status is not None and job.status in PRE_ASSIGNMENT_STATUSES:
        violations["accountingStatus"] = (
            f"Accounting status cannot be set on a {job.status.value} job"
        )
    return violations


def _require_transitions(old: JobSnapshot, proposed: JobSnapshot) -> None:
    errors: Dict[str, str] = {}
    if not can_transition_operational(old.status, proposed.status):
        errors["status"] = f"Cannot move from {old.status.value} to {proposed.status.value}"
    if not can_transition_accounting(old.accounting_status, proposed.accounting_status):
        before = old.accounting_status.value if old.accounting_status else "unset"
        after = proposed.accounting_status.value if proposed.accounting_status else "unset"
        errors["accountingStatus"] = f"Cannot move accounting status from {before} to {after}"
    if errors:
        raise MutationValidationError(errors)


def _assign(
    job: JobSnapshot,
    *,
    reason: Optional[str],
    contract: Optional[ContractPrice],
    now: datetime,
    lock_on_contract_assignment: bool,
) -> JobSnapshot:
    if contract is not None:
        if job.cost == ZERO:
            job = replace(job, cost=contract.cost)
        if job.selling_price == ZERO:
            job = replace(job, selling_price=contract.revenue)

    errors = {name: msg for name, msg in _ASSIGNMENT_REQUIRED if not getattr(job, name)}
    if job.cost <= ZERO:
        errors["cost"] = "Cost must be greater than 0"

    contract_cost = contract.cost if contract is not None else ZERO
    if job.cost != contract_cost and not reason:
        errors["reason"] = "A reason is required when the price differs from the contract price"
    if errors:
        raise MutationValidationError(errors)

    locked = job.is_base_cost_locked or (
        lock_on_contract_assignment and contract is not None and job.cost == contract.cost
    )
    return replace(job, is_base_cost_locked=locked, assigned_at=now)


def _confirm_for_review(job: JobSnapshot) -> JobSnapshot:
    errors = {name: msg for name, msg in _CONFIRM_REQUIRED if not getattr(job, name)}
    if errors:
        raise MutationValidationError(errors)
    return replace(job, is_base_cost_locked=True)


def _complete(job: JobSnapshot, now: datetime) -> JobSnapshot:
    errors: Dict[str, str] = {}
    if job.actual_arrival_time is None:
        errors["actualArrivalTime"] = "Actual arrival time is required"
    if not job.proof_of_delivery_refs:
        errors["proofOfDeliveryRefs"] = "At least one proof of delivery is required"
    if errors:
        raise MutationValidationError(errors)
    # Remark stays for history until the next verdict replaces it.
    return replace(job, accounting_status=AS.PENDING_REVIEW, completed_at=now)


def _review(
    job: JobSnapshot,
    *,
    supplied: AbstractSet[str],
    reason: Optional[str],
    now: datetime,
) -> JobSnapshot:
    target = job.accounting_status

    if target == AS.APPROVED:
        errors: Dict[str, str] = {}
        if job.status != OS.COMPLETED:
            errors["status"] = "Only COMPLETED jobs can be approved"
        if not job.proof_of_delivery_refs:
            errors["proofOfDeliveryRefs"] = "Cannot approve without proof of delivery"
        if errors:
            raise MutationValidationError(errors)
        remark = job.accounting_remark if "accounting_remark" in supplied else None
        return replace(job, is_base_cost_locked=True, accounting_remark=remark)

    if target == AS.REJECTED:
        remark = job.accounting_remark if "accounting_remark" in supplied else None
        remark = remark or reason
        if not remark:
            raise MutationValidationError({"accountingRemark": "A rejection remark is required"})
        status = OS.ASSIGNED if job.status == OS.COMPLETED else job.status
        return replace(job, accounting_remark=remark, status=status)

    if target == AS.PAID:
        if job.status != OS.BILLED:
            raise MutationValidationError({"status": "Only BILLED jobs can be marked paid"})
        return replace(job, is_base_cost_locked=True, payment_date=job.payment_date or now)

    if target == AS.LOCKED:
        return replace(job, is_base_cost_locked=True)

    return job


def apply_lifecycle(
    old: JobSnapshot,
    proposed: JobSnapshot,
    *,
    supplied: AbstractSet[str],
    actor_role: Role,
    reason: Optional[str],
    contract: Optional[ContractPrice],
    now: datetime,
    lock_on_contract_assignment: bool = True,
) -> LifecycleOutcome:
    """Validate the requested status moves and apply their side effects.

    ``supplied`` names the fields the caller set explicitly. Raises
    MutationValidationError when a transition is illegal or incomplete.
    """
    _require_transitions(old, proposed)

    job = proposed
    first_assignment = is_first_assignment(old, job)
    billing_eligible = False
    resubmitted = False

    if first_assignment:
        job = _assign(
            job,
            reason=reason,
            contract=contract,
            now=now,
            lock_on_contract_assignment=lock_on_contract_assignment,
        )

    if old.status == OS.ASSIGNED and job.status == OS.COMPLETED:
        job = _complete(job, now)

    if (
        job.status == OS.ASSIGNED
        and old.accounting_status is None
        and job.accounting_status == AS.PENDING_REVIEW
    ):
        job = _confirm_for_review(job)

    if job.status == OS.CANCELLED and old.status != OS.CANCELLED:
        if not reason:
            raise MutationValidationError({"reason": "A reason is required to cancel a job"})
        job = replace(job, is_base_cost_locked=False)

    if job.status == OS.BILLED and old.status != OS.BILLED:
        if old.accounting_status != AS.APPROVED:
            raise MutationValidationError({"status": "Billing requires an APPROVED job"})
        job = replace(job, billing_date=job.billing_date or now)
        billing_eligible = True

    if job.accounting_status != old.accounting_status and actor_role == Role.ACCOUNTANT:
        job = _review(job, supplied=supplied, reason=reason, now=now)

    if old.accounting_status == AS.REJECTED and actor_role != Role.ACCOUNTANT:
        if job.accounting_status == AS.REJECTED:
            job = replace(job, accounting_status=AS.PENDING_REVIEW)
        resubmitted = True

    violations = check_invariants(job)
    if violations:
        raise MutationValidationError(violations)

    return LifecycleOutcome(
        job=job,
        first_assignment=first_assignment,
        billing_eligible=billing_eligible,
        resubmitted=resubmitted,
    )

