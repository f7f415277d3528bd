from __future__ import annotations

import hashlib
import json
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, List, Optional

from app.core.roles import Role
from app.core.timeutils import to_utc_naive
from app.models.job_snapshot import JobSnapshot
from app.services.job_state_machine import is_first_assignment
from app.services.price_resolver import ContractPrice

AUDIT_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "trucking-job-core/audit-log")

UNASSIGNED = "Unassigned"

# (label, snapshot attribute), in the order entries are emitted.
AUDITED_FIELDS = (
    ("Status", "status"),
    ("Subcontractor", "subcontractor"),
    ("Truck Type", "truck_type"),
    ("License Plate", "license_plate"),
    ("Origin", "origin"),
    ("Destination", "destination"),
    ("Cost (Price)", "cost"),
    ("Selling Price", "selling_price"),
    ("Extra Charge", "extra_charge"),
    ("Accounting Status", "accounting_status"),
    ("Base Cost Lock", "is_base_cost_locked"),
)

OVERRIDE_LABELS = frozenset(
    {
        "Assignment", "Subcontractor", "Truck Type", "License Plate", "Origin",
        "Destination", "Cost (Price)", "Price Override", "Selling Price",
    }
)


@dataclass(frozen=True)
class AuditEntryDraft:
    id: str
    job_id: str
    mutation_id: str
    timestamp: datetime
    actor_id: str
    actor_role: str
    field: str
    old_value: str
    new_value: str
    reason: Optional[str]
    admin_override: bool = False


@dataclass(frozen=True)
class ChainVerification:
    ok: bool
    checked: int
    broken_at_sequence: Optional[int] = None


def format_amount(value: Optional[Decimal]) -> str:
    """Canonical decimal text: no exponent, no trailing zeros ("5000", "24046.5")."""
    if value is None:
        return "0"
    text = format(Decimal(value).normalize(), "f")
    return "0" if text in ("-0", "") else text


def stringify(value: Any) -> str:
    if value is None:
        return "None"
    if isinstance(value, bool):
        return "Locked" if value else "Unlocked"
    if isinstance(value, Decimal):
        return format_amount(value)
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _entry_id(job_id: str, mutation_id: str, index: int) -> str:
    return str(uuid.uuid5(AUDIT_NAMESPACE, f"{job_id}:{mutation_id}:{index}"))


def diff(
    old: JobSnapshot,
    new: JobSnapshot,
    actor_id: str,
    actor_role: Role,
    reason: Optional[str],
    *,
    mutation_id: str,
    timestamp: datetime,
    contract_price: Optional[ContractPrice] = None,
    admin_override: bool = False,
) -> List[AuditEntryDraft]:
    """Field-level audit entries for one committed mutation.

    Output depends only on the arguments, so a retried mutation yields the same
    entry ids.
    """
    first_assignment = is_first_assignment(old, new)
    rows = []

    for label, attr in AUDITED_FIELDS:
        before = getattr(old, attr)
        after = getattr(new, attr)

        if first_assignment and attr == "subcontractor":
            rows.append(
                ("Assignment", UNASSIGNED, f"{new.subcontractor} ({new.truck_type})", "New Job Assignment")
            )
            continue

        if first_assignment and attr == "cost":
            rows.append((label, "0", stringify(after), "Initial Pricing"))
            contract_cost = contract_price.cost if contract_price is not None else Decimal("0")
            if after != contract_cost:
                rows.append(
                    ("Price Override", stringify(contract_cost), stringify(after), "Price Negotiation")
                )
            continue

        if before == after:
            continue

        default_reason = None
        if attr == "accounting_status":
            default_reason = f"Updated to {stringify(after)}"
        rows.append((label, stringify(before), stringify(after), default_reason))

    when = to_utc_naive(timestamp)
    return [
        AuditEntryDraft(
            id=_entry_id(new.id, mutation_id, index),
            job_id=new.id,
            mutation_id=mutation_id,
            timestamp=when,
            actor_id=actor_id,
            actor_role=actor_role.value,
            field=label,
            old_value=before,
            new_value=after,
            reason=reason or default_reason,
            admin_override=admin_override and label in OVERRIDE_LABELS,
        )
        for index, (label, before, after, default_reason) in enumerate(rows)
    ]


def _canonical(entry, sequence: int) -> str:
    timestamp = to_utc_naive(entry.timestamp)
    return json.dumps(
        [
            entry.id,
            entry.job_id,
            sequence,
            entry.mutation_id,
            timestamp.isoformat(timespec="microseconds"),
            entry.actor_id,
            entry.actor_role,
            entry.field,
            entry.old_value,
            entry.new_value,
            entry.reason,
            bool(entry.admin_override),
        ],
        ensure_ascii=False,
        separators=(",", ":"),
    )


def compute_entry_hash(entry, sequence: int, prev_hash: Optional[str]) -> str:
    digest = hashlib.sha256()
    digest.update((prev_hash or "").encode("utf-8"))
    digest.update(_canonical(entry, sequence).encode("utf-8"))
    return digest.hexdigest()


def verify_chain(entries: Iterable) -> ChainVerification:
    """Recompute the hash chain over stored rows ordered by sequence."""
    prev_hash = None
    checked = 0
    for expected_sequence, row in enumerate(entries, start=1):
        if row.sequence != expected_sequence or row.prev_hash != prev_hash:
            return ChainVerification(ok=False, checked=checked, broken_at_sequence=row.sequence)
        if compute_entry_hash(row, row.sequence, prev_hash) != row.entry_hash:
            return ChainVerification(ok=False, checked=checked, broken_at_sequence=row.sequence)
        prev_hash = row.entry_hash
        checked += 1
    return ChainVerification(ok=True, checked=checked)
