from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from app.core.errors import DenialKind
from app.core.roles import Role
from app.models.job_snapshot import ZERO, AccountingStatus, JobSnapshot, OperationalStatus

OS = OperationalStatus
AS = AccountingStatus

# "drops" covers the list of stops; "drop_progress" covers per-stop delivery state.
REQUEST_FIELDS = frozenset(
    {
        "date_of_service", "origin", "destination", "truck_type", "drops",
        "product_detail", "weight_volume", "remark", "reference_no",
    }
)
FLEET_FIELDS = frozenset(
    {"subcontractor", "truck_type", "driver_name", "driver_phone", "license_plate"}
)
PRICE_FIELDS = frozenset({"cost", "selling_price"})
COMPLETION_FIELDS = frozenset(
    {"actual_arrival_time", "proof_of_delivery_refs", "drop_progress", "mileage", "extra_charge"}
)
ACCOUNTING_FIELDS = frozenset(
    {"accounting_status", "accounting_remark", "billing_date", "billing_doc_no", "payment_date"}
)
ADMIN_ONLY_FIELDS = frozenset({"is_base_cost_locked"})

OPERATIONAL_FIELDS = REQUEST_FIELDS | FLEET_FIELDS | PRICE_FIELDS | COMPLETION_FIELDS

# Fields a caller may put in a mutation. "drop_progress" is derived from "drops".
MUTABLE_FIELDS = (
    (OPERATIONAL_FIELDS | ACCOUNTING_FIELDS | ADMIN_ONLY_FIELDS | {"status"}) - {"drop_progress"}
)

LOCK_PROTECTED_FIELDS = frozenset(
    {
        "origin", "destination", "drops", "subcontractor", "truck_type",
        "driver_name", "driver_phone", "license_plate", "cost", "selling_price",
    }
)
REASON_REQUIRED_FIELDS = frozenset(
    {"subcontractor", "truck_type", "license_plate", "origin", "destination", "cost"}
)

ROLE_FIELDS: Dict[Role, FrozenSet[str]] = {
    Role.BOOKING_OFFICER: REQUEST_FIELDS,
    Role.DISPATCHER: OPERATIONAL_FIELDS,
    Role.FIELD_OFFICER: COMPLETION_FIELDS,
    Role.ACCOUNTANT: ACCOUNTING_FIELDS,
    Role.ADMIN: (
        OPERATIONAL_FIELDS
        | ADMIN_ONLY_FIELDS
        | (ACCOUNTING_FIELDS - {"accounting_status", "accounting_remark"})
    ),
}

ROLE_TARGET_STATUSES: Dict[Role, FrozenSet[OperationalStatus]] = {
    Role.BOOKING_OFFICER: frozenset({OS.CANCELLED}),
    Role.DISPATCHER: frozenset({OS.PENDING_PRICING, OS.ASSIGNED, OS.COMPLETED, OS.CANCELLED}),
    Role.FIELD_OFFICER: frozenset({OS.COMPLETED}),
    Role.ACCOUNTANT: frozenset({OS.BILLED}),
    Role.ADMIN: frozenset(OS),
}

# Roles that may hand an assigned job to accounting by setting PENDING_REVIEW.
REVIEW_SUBMITTERS = frozenset({Role.DISPATCHER})

LOCK_EXEMPT_ACCOUNTING = frozenset({AS.REJECTED, AS.PENDING_REVIEW})
FINALISED_ACCOUNTING = frozenset({AS.APPROVED, AS.PAID, AS.LOCKED})
FINALISED_EDITORS = frozenset({Role.ADMIN, Role.ACCOUNTANT})


class GuardOutcome(str, Enum):
    ALLOWED = "Allowed"
    ALLOWED_WITH_REASON = "AllowedWithReason"
    DENIED = "Denied"


@dataclass(frozen=True)
class GuardDecision:
    outcome: GuardOutcome
    kind: Optional[DenialKind] = None
    detail: Optional[str] = None
    admin_override: bool = False
    reason_fields: Tuple[str, ...] = ()

    @property
    def allowed(self) -> bool:
        return self.outcome != GuardOutcome.DENIED

    @property
    def requires_reason(self) -> bool:
        return self.outcome == GuardOutcome.ALLOWED_WITH_REASON


def _deny(kind: DenialKind, detail: str) -> GuardDecision:
    return GuardDecision(outcome=GuardOutcome.DENIED, kind=kind, detail=detail)


def changed_fields(old: JobSnapshot, new: JobSnapshot) -> Dict[str, Any]:
    """Fields whose values differ, keyed the way the guard sees them.

    Drop edits are split: moving, adding or removing stops is "drops";
    marking stops delivered is "drop_progress".
    """
    changes: Dict[str, Any] = {}
    for name in MUTABLE_FIELDS:
        if name == "drops":
            continue
        after = getattr(new, name)
        if getattr(old, name) != after:
            changes[name] = after

    if old.drops != new.drops:
        old_locations = tuple(d.location for d in old.drops)
        new_locations = tuple(d.location for d in new.drops)
        if old_locations != new_locations:
            changes["drops"] = new.drops
        else:
            changes["drop_progress"] = new.drops
    return changes


def authorize(
    job: JobSnapshot,
    changes: Mapping[str, Any],
    actor_role: Role,
    *,
    has_contract_rate: bool = False,
) -> GuardDecision:
    """Decide whether ``actor_role`` may apply ``changes`` to ``job``.

    ``changes`` holds only fields whose values differ (see ``changed_fields``).
    ``has_contract_rate`` says whether the matrix now prices the job's route,
    which lifts the pending-pricing block.
    """
    fields = frozenset(changes)
    target_status = changes.get("status")
    cancelling = target_status == OS.CANCELLED

    if job.status == OS.CANCELLED:
        return _deny(DenialKind.LOCKED, "Cancelled jobs cannot be changed")
    if job.status == OS.BILLED and not fields <= ACCOUNTING_FIELDS:
        return _deny(DenialKind.LOCKED, "Billed jobs only accept accounting updates")

    checked = fields - {"status"}
    if actor_role in REVIEW_SUBMITTERS and changes.get("accounting_status") == AS.PENDING_REVIEW:
        checked = checked - {"accounting_status"}

    not_permitted = sorted(checked - ROLE_FIELDS[actor_role])
    if not_permitted:
        return _deny(
            DenialKind.WRONG_ROLE,
            f"{actor_role.value} cannot change {', '.join(not_permitted)}",
        )
    if target_status is not None and target_status not in ROLE_TARGET_STATUSES[actor_role]:
        return _deny(
            DenialKind.WRONG_ROLE,
            f"{actor_role.value} cannot move a job to {target_status.value}",
        )

    if actor_role == Role.BOOKING_OFFICER and job.status != OS.NEW_REQUEST:
        return _deny(DenialKind.LOCKED, "Booking officers can only edit new requests")

    if (
        job.status == OS.PENDING_PRICING
        and actor_role in (Role.DISPATCHER, Role.FIELD_OFFICER)
        and not cancelling
        and not has_contract_rate
    ):
        return _deny(
            DenialKind.PENDING_PRICING_REVIEW,
            "No contract rate for this route; an admin or accountant must price it first",
        )

    if job.accounting_status in FINALISED_ACCOUNTING and actor_role not in FINALISED_EDITORS:
        return _deny(
            DenialKind.LOCKED,
            f"Accounting status is {job.accounting_status.value}",
        )

    admin_override = False
    locked_fields = fields & LOCK_PROTECTED_FIELDS
    if (
        job.is_base_cost_locked
        and locked_fields
        and job.accounting_status not in LOCK_EXEMPT_ACCOUNTING
    ):
        if actor_role != Role.ADMIN:
            return _deny(
                DenialKind.LOCKED,
                f"Base cost is locked: {', '.join(sorted(locked_fields))}",
            )
        admin_override = True

    reason_fields = set()
    if job.status != OS.NEW_REQUEST:
        reason_fields |= fields & REASON_REQUIRED_FIELDS
    if cancelling:
        reason_fields.add("status")
    extra_charge = changes.get("extra_charge")
    if extra_charge is not None and extra_charge > ZERO:
        reason_fields.add("extra_charge")
    if admin_override:
        reason_fields |= locked_fields

    if reason_fields or admin_override:
        return GuardDecision(
            outcome=GuardOutcome.ALLOWED_WITH_REASON,
            admin_override=admin_override,
            reason_fields=tuple(sorted(reason_fields)),
        )
    return GuardDecision(outcome=GuardOutcome.ALLOWED)
