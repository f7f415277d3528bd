from dataclasses import replace
from datetime import datetime
from decimal import Decimal

from app.core.roles import Role
from app.models.job_snapshot import AccountingStatus, JobSnapshot, OperationalStatus
from app.services.audit_log_generator import (
    compute_entry_hash,
    diff,
    format_amount,
    stringify,
    verify_chain,
)
from app.services.price_resolver import ContractPrice, PriceMatrixRow

NOW = datetime(2026, 10, 19, 9, 0)


def _job(**overrides) -> JobSnapshot:
    values = {
        "id": "JRS-2026-0007",
        "version": 1,
        "origin": "Bangkok",
        "destination": "Chonburi",
        "truck_type": "4Wheel",
        "status": OperationalStatus.NEW_REQUEST,
    }
    values.update(overrides)
    return JobSnapshot(**values)


def _assigned(old: JobSnapshot, cost: str) -> JobSnapshot:
    return replace(
        old,
        status=OperationalStatus.ASSIGNED,
        subcontractor="Acme",
        driver_name="Somchai",
        driver_phone="081-000-0000",
        license_plate="70-1234",
        cost=Decimal(cost),
    )


def _contract(cost: str) -> ContractPrice:
    row = PriceMatrixRow(
        origin="Bangkok",
        destination="Chonburi",
        truck_type="4Wheel",
        subcontractor="Acme",
        base_price=Decimal(cost),
        selling_base_price=Decimal(cost),
        drop_off_fee=Decimal("0"),
    )
    return ContractPrice(cost=Decimal(cost), revenue=Decimal(cost), entry=row)


def _by_field(entries):
    return {e.field: e for e in entries}


def test_format_amount_is_canonical():
    assert format_amount(Decimal("5000.00")) == "5000"
    assert format_amount(Decimal("24046.50")) == "24046.5"
    assert format_amount(Decimal("0.00")) == "0"
    assert format_amount(None) == "0"


def test_stringify_renders_lock_and_missing_values():
    assert stringify(True) == "Locked"
    assert stringify(False) == "Unlocked"
    assert stringify(None) == "None"
    assert stringify(AccountingStatus.APPROVED) == "APPROVED"


def test_first_assignment_without_contract_records_price_override():
    old = _job()
    new = _assigned(old, "5000")

    entries = diff(
        old, new, "u-1", Role.DISPATCHER, "negotiated rate",
        mutation_id="m-1", timestamp=NOW,
    )
    fields = _by_field(entries)

    assert fields["Assignment"].old_value == "Unassigned"
    assert fields["Assignment"].new_value == "Acme (4Wheel)"
    assert fields["Cost (Price)"].old_value == "0"
    assert fields["Price Override"].old_value == "0"
    assert fields["Price Override"].new_value == "5000"
    assert fields["Price Override"].reason == "negotiated rate"
    assert "Subcontractor" not in fields


def test_first_assignment_at_contract_price_uses_default_reasons():
    old = _job()
    new = _assigned(old, "3400")

    entries = diff(
        old, new, "u-1", Role.DISPATCHER, None,
        mutation_id="m-2", timestamp=NOW, contract_price=_contract("3400"),
    )
    fields = _by_field(entries)

    assert fields["Assignment"].reason == "New Job Assignment"
    assert fields["Cost (Price)"].reason == "Initial Pricing"
    assert "Price Override" not in fields
    assert [e.field for e in entries][:2] == ["Status", "Assignment"]


def test_accounting_status_change_defaults_reason():
    old = _job(status=OperationalStatus.COMPLETED, accounting_status=AccountingStatus.PENDING_REVIEW)
    new = replace(old, accounting_status=AccountingStatus.APPROVED, is_base_cost_locked=True)

    entries = diff(old, new, "acc-1", Role.ACCOUNTANT, None, mutation_id="m-3", timestamp=NOW)

    assert [(e.field, e.old_value, e.new_value, e.reason) for e in entries] == [
        ("Accounting Status", "PENDING_REVIEW", "APPROVED", "Updated to APPROVED"),
        ("Base Cost Lock", "Unlocked", "Locked", None),
    ]


def test_unaudited_fields_produce_no_entries():
    old = _assigned(_job(), "3400")
    new = replace(old, driver_name="Anan", mileage="120")

    assert diff(old, new, "u-1", Role.DISPATCHER, None, mutation_id="m-4", timestamp=NOW) == []


def test_admin_override_flags_only_protected_labels():
    old = replace(_assigned(_job(), "3400"), is_base_cost_locked=True)
    new = replace(old, cost=Decimal("3600"), accounting_status=AccountingStatus.PENDING_REVIEW)

    entries = diff(
        old, new, "admin-1", Role.ADMIN, "fuel surcharge",
        mutation_id="m-5", timestamp=NOW, admin_override=True,
    )
    fields = _by_field(entries)

    assert fields["Cost (Price)"].admin_override is True
    assert fields["Accounting Status"].admin_override is False


def test_entry_ids_are_deterministic_per_mutation():
    old = _job()
    new = _assigned(old, "5000")

    first = diff(old, new, "u-1", Role.DISPATCHER, "x", mutation_id="m-6", timestamp=NOW)
    again = diff(old, new, "u-1", Role.DISPATCHER, "x", mutation_id="m-6", timestamp=NOW)
    other = diff(old, new, "u-1", Role.DISPATCHER, "x", mutation_id="m-7", timestamp=NOW)

    assert [e.id for e in first] == [e.id for e in again]
    assert len({e.id for e in first}) == len(first)
    assert not {e.id for e in first} & {e.id for e in other}


class _Row:
    def __init__(self, draft, sequence, prev_hash):
        self.__dict__.update(draft.__dict__)
        self.sequence = sequence
        self.prev_hash = prev_hash
        self.entry_hash = compute_entry_hash(draft, sequence, prev_hash)


def _chain(drafts):
    rows, prev = [], None
    for sequence, draft in enumerate(drafts, start=1):
        row = _Row(draft, sequence, prev)
        rows.append(row)
        prev = row.entry_hash
    return rows


def test_verify_chain_detects_tampering():
    old = _job()
    rows = _chain(diff(old, _assigned(old, "5000"), "u-1", Role.DISPATCHER, "x", mutation_id="m-8", timestamp=NOW))

    assert verify_chain(rows).ok
    assert verify_chain(rows).checked == len(rows)

    rows[1].new_value = "1"
    result = verify_chain(rows)
    assert result.ok is False
    assert result.broken_at_sequence == 2
