from datetime import datetime
from decimal import Decimal

import pytest

from app.core.errors import MutationValidationError
from app.core.roles import Role
from app.models.job_snapshot import AccountingStatus, JobSnapshot, OperationalStatus
from app.services.job_state_machine import (
    apply_lifecycle,
    can_transition_accounting,
    can_transition_operational,
    check_invariants,
)
from app.services.price_resolver import ContractPrice, PriceMatrixRow

NOW = datetime(2026, 10, 19, 8, 30)

OS = OperationalStatus
AS = AccountingStatus


def _job(**overrides) -> JobSnapshot:
    values = {
        "id": "JRS-2026-0001",
        "version": 1,
        "origin": "Bangkok",
        "destination": "Chonburi",
        "truck_type": "4Wheel",
        "status": OS.NEW_REQUEST,
    }
    values.update(overrides)
    return JobSnapshot(**values)


def _contract(cost="3400", revenue="3900") -> ContractPrice:
    row = PriceMatrixRow(
        origin="Bangkok",
        destination="Chonburi",
        truck_type="4Wheel",
        subcontractor="Acme",
        base_price=Decimal("3000"),
        selling_base_price=Decimal("3500"),
        drop_off_fee=Decimal("200"),
    )
    return ContractPrice(cost=Decimal(cost), revenue=Decimal(revenue), entry=row)


FLEET = {
    "subcontractor": "Acme",
    "driver_name": "Somchai",
    "driver_phone": "081-000-0000",
    "license_plate": "70-1234",
}


def _apply(old, changes, *, role=Role.DISPATCHER, reason=None, contract=None, lock=True):
    return apply_lifecycle(
        old,
        old.with_changes(changes),
        supplied=frozenset(changes),
        actor_role=role,
        reason=reason,
        contract=contract,
        now=NOW,
        lock_on_contract_assignment=lock,
    )


@pytest.mark.parametrize(
    "old,new,allowed",
    [
        (OS.NEW_REQUEST, OS.PENDING_PRICING, True),
        (OS.NEW_REQUEST, OS.ASSIGNED, True),
        (OS.PENDING_PRICING, OS.ASSIGNED, True),
        (OS.ASSIGNED, OS.COMPLETED, True),
        (OS.COMPLETED, OS.BILLED, True),
        (OS.COMPLETED, OS.CANCELLED, False),
        (OS.NEW_REQUEST, OS.COMPLETED, False),
        (OS.BILLED, OS.CANCELLED, False),
        (OS.CANCELLED, OS.NEW_REQUEST, False),
    ],
)
def test_operational_transition_table(old, new, allowed):
    assert can_transition_operational(old, new) is allowed


@pytest.mark.parametrize(
    "old,new,allowed",
    [
        (None, AS.PENDING_REVIEW, True),
        (AS.PENDING_REVIEW, AS.APPROVED, True),
        (AS.PENDING_REVIEW, AS.REJECTED, True),
        (AS.REJECTED, AS.PENDING_REVIEW, True),
        (AS.REJECTED, AS.APPROVED, False),
        (AS.APPROVED, AS.PAID, True),
        (AS.PAID, AS.LOCKED, True),
        (AS.LOCKED, AS.PAID, False),
        (None, AS.APPROVED, False),
    ],
)
def test_accounting_transition_table(old, new, allowed):
    assert can_transition_accounting(old, new) is allowed


def test_invariants_flag_lock_before_assignment():
    violations = check_invariants(_job(is_base_cost_locked=True))
    assert "isBaseCostLocked" in violations


def test_invariants_flag_paid_without_billing():
    violations = check_invariants(_job(status=OS.COMPLETED, accounting_status=AS.PAID))
    assert "accountingStatus" in violations


def test_invariants_flag_rejected_outside_assigned_or_completed():
    assert check_invariants(_job(status=OS.ASSIGNED, accounting_status=AS.REJECTED)) == {}
    assert "accountingStatus" in check_invariants(
        _job(status=OS.NEW_REQUEST, accounting_status=AS.REJECTED)
    )


def test_assignment_fills_contract_price_and_engages_lock():
    outcome = _apply(_job(), {**FLEET, "status": "ASSIGNED"}, contract=_contract())

    assert outcome.first_assignment is True
    assert outcome.job.cost == Decimal("3400")
    assert outcome.job.selling_price == Decimal("3900")
    assert outcome.job.is_base_cost_locked is True
    assert outcome.job.assigned_at == NOW


def test_assignment_lock_can_be_switched_off():
    outcome = _apply(_job(), {**FLEET, "status": "ASSIGNED"}, contract=_contract(), lock=False)
    assert outcome.job.is_base_cost_locked is False


def test_assignment_requires_complete_fleet_and_positive_cost():
    with pytest.raises(MutationValidationError) as exc:
        _apply(_job(), {"subcontractor": "Acme", "status": "ASSIGNED"})

    assert set(exc.value.fields) >= {"driver_name", "driver_phone", "license_plate", "cost"}


def test_assignment_at_negotiated_price_requires_reason():
    changes = {**FLEET, "status": "ASSIGNED", "cost": "5000"}

    with pytest.raises(MutationValidationError) as exc:
        _apply(_job(), changes)
    assert "reason" in exc.value.fields

    outcome = _apply(_job(), changes, reason="negotiated rate")
    assert outcome.job.cost == Decimal("5000")
    assert outcome.job.is_base_cost_locked is False


def test_completion_requires_arrival_and_proof_of_delivery():
    assigned = _job(status=OS.ASSIGNED, **FLEET, cost=Decimal("3400"))

    with pytest.raises(MutationValidationError) as exc:
        _apply(assigned, {"status": "COMPLETED"})

    assert set(exc.value.fields) == {"actualArrivalTime", "proofOfDeliveryRefs"}


def test_completion_sets_pending_review_and_keeps_remark():
    assigned = _job(
        status=OS.ASSIGNED,
        accounting_status=AS.REJECTED,
        accounting_remark="Wrong plate on POD",
        **FLEET,
        cost=Decimal("3400"),
    )

    outcome = _apply(
        assigned,
        {
            "status": "COMPLETED",
            "actual_arrival_time": "2026-10-19T07:00:00Z",
            "proof_of_delivery_refs": ["pod/1.jpg"],
        },
        role=Role.FIELD_OFFICER,
    )

    assert outcome.job.status == OS.COMPLETED
    assert outcome.job.accounting_status == AS.PENDING_REVIEW
    assert outcome.job.accounting_remark == "Wrong plate on POD"
    assert outcome.job.completed_at == NOW


def test_cancel_needs_reason_and_clears_lock():
    assigned = _job(status=OS.ASSIGNED, is_base_cost_locked=True, **FLEET, cost=Decimal("3400"))

    with pytest.raises(MutationValidationError):
        _apply(assigned, {"status": "CANCELLED"})

    outcome = _apply(assigned, {"status": "CANCELLED"}, reason="Customer cancelled")
    assert outcome.job.status == OS.CANCELLED
    assert outcome.job.is_base_cost_locked is False


def test_completed_job_cannot_be_cancelled():
    completed = _job(status=OS.COMPLETED, accounting_status=AS.PENDING_REVIEW)

    with pytest.raises(MutationValidationError) as exc:
        _apply(completed, {"status": "CANCELLED"}, reason="too late")
    assert "status" in exc.value.fields


def test_approve_requires_completed_job_and_locks():
    completed = _job(
        status=OS.COMPLETED,
        accounting_status=AS.PENDING_REVIEW,
        accounting_remark="old remark",
        proof_of_delivery_refs=("pod/1.jpg",),
    )

    outcome = _apply(completed, {"accounting_status": "APPROVED"}, role=Role.ACCOUNTANT)

    assert outcome.job.accounting_status == AS.APPROVED
    assert outcome.job.is_base_cost_locked is True
    assert outcome.job.accounting_remark is None


def test_reject_requires_remark_and_returns_job_to_dispatch():
    completed = _job(
        status=OS.COMPLETED,
        accounting_status=AS.PENDING_REVIEW,
        proof_of_delivery_refs=("pod/1.jpg",),
    )

    with pytest.raises(MutationValidationError) as exc:
        _apply(completed, {"accounting_status": "REJECTED"}, role=Role.ACCOUNTANT)
    assert "accountingRemark" in exc.value.fields

    outcome = _apply(
        completed,
        {"accounting_status": "REJECTED"},
        role=Role.ACCOUNTANT,
        reason="POD is blurry",
    )
    assert outcome.job.accounting_status == AS.REJECTED
    assert outcome.job.accounting_remark == "POD is blurry"
    assert outcome.job.status == OS.ASSIGNED


def test_billing_requires_approval_and_is_flagged_eligible():
    approved = _job(status=OS.COMPLETED, accounting_status=AS.APPROVED, is_base_cost_locked=True)

    outcome = _apply(approved, {"status": "BILLED", "billing_doc_no": "INV-001"}, role=Role.ACCOUNTANT)

    assert outcome.billing_eligible is True
    assert outcome.job.billing_date == NOW

    pending = _job(status=OS.COMPLETED, accounting_status=AS.PENDING_REVIEW)
    with pytest.raises(MutationValidationError):
        _apply(pending, {"status": "BILLED"}, role=Role.ACCOUNTANT)


def test_paid_requires_billed_job():
    billed = _job(status=OS.BILLED, accounting_status=AS.APPROVED, is_base_cost_locked=True)

    outcome = _apply(billed, {"accounting_status": "PAID"}, role=Role.ACCOUNTANT)

    assert outcome.job.accounting_status == AS.PAID
    assert outcome.job.payment_date == NOW


def test_non_accountant_edit_resubmits_rejected_job():
    rejected = _job(
        status=OS.ASSIGNED,
        accounting_status=AS.REJECTED,
        accounting_remark="Fix driver",
        **FLEET,
        cost=Decimal("3400"),
    )

    outcome = _apply(rejected, {"driver_name": "Anan"})

    assert outcome.resubmitted is True
    assert outcome.job.accounting_status == AS.PENDING_REVIEW
    assert outcome.job.accounting_remark == "Fix driver"


def test_invariants_reject_negative_amounts():
    violations = check_invariants(_job(extra_charge=Decimal("-1")))
    assert violations == {"extra_charge": "Extra charge cannot be negative"}


@pytest.mark.parametrize("status", [OS.NEW_REQUEST, OS.PENDING_PRICING])
def test_invariants_keep_accounting_unset_before_assignment(status):
    violations = check_invariants(_job(status=status, accounting_status=AS.PENDING_REVIEW))
    assert "accountingStatus" in violations


def test_accounting_review_cannot_start_before_assignment():
    with pytest.raises(MutationValidationError) as exc:
        _apply(_job(), {"accounting_status": "PENDING_REVIEW"}, role=Role.ACCOUNTANT)
    assert "accountingStatus" in exc.value.fields


def test_confirming_assigned_job_locks_and_sends_to_review():
    assigned = _job(status=OS.ASSIGNED, **FLEET, cost=Decimal("5000"))

    outcome = _apply(assigned, {"accounting_status": "PENDING_REVIEW"})

    assert outcome.job.status == OS.ASSIGNED
    assert outcome.job.accounting_status == AS.PENDING_REVIEW
    assert outcome.job.is_base_cost_locked is True


def test_confirming_requires_complete_fleet_details():
    assigned = _job(status=OS.ASSIGNED, **{**FLEET, "driver_phone": None}, cost=Decimal("5000"))

    with pytest.raises(MutationValidationError) as exc:
        _apply(assigned, {"accounting_status": "PENDING_REVIEW"})

    assert set(exc.value.fields) == {"driver_phone"}
