from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from app.core.timeutils import to_utc_naive


class OperationalStatus(str, Enum):
    NEW_REQUEST = "NEW_REQUEST"
    PENDING_PRICING = "PENDING_PRICING"
    ASSIGNED = "ASSIGNED"
    COMPLETED = "COMPLETED"
    BILLED = "BILLED"
    CANCELLED = "CANCELLED"


class AccountingStatus(str, Enum):
    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"
    LOCKED = "LOCKED"


class DropStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


ZERO = Decimal("0")
CENTS = Decimal("0.01")


def to_amount(value: Any) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount.quantize(CENTS)


def _to_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = f"{text[:-1]}+00:00"
        value = datetime.fromisoformat(text)
    return to_utc_naive(value)


def _to_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class Drop:
    location: str
    status: DropStatus = DropStatus.PENDING
    proof_of_delivery_ref: Optional[str] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def coerce(cls, value: Any) -> "Drop":
        if isinstance(value, Drop):
            return value
        if hasattr(value, "model_dump"):
            value = value.model_dump()
        data = dict(value)
        location = _blank_to_none(data.get("location"))
        if location is None:
            raise ValueError("Drop location is required")
        return cls(
            location=location,
            status=DropStatus(data.get("status") or DropStatus.PENDING),
            proof_of_delivery_ref=_blank_to_none(
                data.get("proof_of_delivery_ref", data.get("proofOfDeliveryRef"))
            ),
            completed_at=_to_datetime(data.get("completed_at", data.get("completedAt"))),
        )

    def to_json(self) -> dict:
        return {
            "location": self.location,
            "status": self.status.value,
            "proof_of_delivery_ref": self.proof_of_delivery_ref,
            "completed_at": None if self.completed_at is None else self.completed_at.isoformat(),
        }


@dataclass(frozen=True)
class JobSnapshot:
    """Immutable view of a job that the pure policy code works on."""

    id: str
    version: int
    origin: str
    destination: str
    truck_type: str
    status: OperationalStatus
    drops: Tuple[Drop, ...] = ()
    date_of_service: Optional[date] = None
    product_detail: Optional[str] = None
    weight_volume: Optional[str] = None
    remark: Optional[str] = None
    reference_no: Optional[str] = None
    requested_by: Optional[str] = None
    subcontractor: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    license_plate: Optional[str] = None
    cost: Decimal = ZERO
    selling_price: Decimal = ZERO
    extra_charge: Decimal = ZERO
    actual_arrival_time: Optional[datetime] = None
    mileage: Optional[str] = None
    proof_of_delivery_refs: Tuple[str, ...] = ()
    accounting_status: Optional[AccountingStatus] = None
    accounting_remark: Optional[str] = None
    is_base_cost_locked: bool = False
    billing_date: Optional[datetime] = None
    billing_doc_no: Optional[str] = None
    payment_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = field(default=None, compare=False)

    @property
    def drop_count(self) -> int:
        return len(self.drops)

    @classmethod
    def from_row(cls, row) -> "JobSnapshot":
        values = {f.name: getattr(row, f.name) for f in fields(cls)}
        values["status"] = OperationalStatus(row.status)
        values["accounting_status"] = (
            None if row.accounting_status is None else AccountingStatus(row.accounting_status)
        )
        values["drops"] = tuple(Drop.coerce(d) for d in (row.drops or []))
        values["proof_of_delivery_refs"] = tuple(row.proof_of_delivery_refs or [])
        values["cost"] = to_amount(row.cost)
        values["selling_price"] = to_amount(row.selling_price)
        values["extra_charge"] = to_amount(row.extra_charge)
        values["is_base_cost_locked"] = bool(row.is_base_cost_locked)
        return cls(**values)

    def with_changes(self, changes: Mapping[str, Any]) -> "JobSnapshot":
        coerced = {name: _coerce_field(name, value) for name, value in changes.items()}
        return replace(self, **coerced)

    def to_column_values(self) -> dict:
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.pop("id")
        values["status"] = self.status.value
        values["accounting_status"] = (
            None if self.accounting_status is None else self.accounting_status.value
        )
        values["drops"] = [d.to_json() for d in self.drops]
        values["proof_of_delivery_refs"] = list(self.proof_of_delivery_refs)
        return values

    def to_json(self) -> dict:
        values = self.to_column_values()
        values["id"] = self.id
        for name, value in values.items():
            if isinstance(value, Decimal):
                values[name] = format(value, "f")
            elif isinstance(value, (datetime, date)):
                values[name] = value.isoformat()
        return values

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "JobSnapshot":
        base = cls(
            id=data["id"],
            version=int(data["version"]),
            origin="",
            destination="",
            truck_type="",
            status=OperationalStatus(data["status"]),
            requested_by=data.get("requested_by"),
            **{name: _to_datetime(data.get(name)) for name in _STAMP_FIELDS},
        )
        skip = {"id", "version", "requested_by"} | _STAMP_FIELDS
        return base.with_changes({k: v for k, v in data.items() if k not in skip})


_AMOUNT_FIELDS = {"cost", "selling_price", "extra_charge"}
_STAMP_FIELDS = {"created_at", "assigned_at", "completed_at", "updated_at"}
_DATETIME_FIELDS = {"actual_arrival_time", "billing_date", "payment_date"}
_TEXT_FIELDS = {
    "origin", "destination", "truck_type", "product_detail", "weight_volume", "remark",
    "reference_no", "subcontractor", "driver_name", "driver_phone", "license_plate",
    "mileage", "accounting_remark", "billing_doc_no",
}


def _coerce_field(name: str, value: Any) -> Any:
    if name in _AMOUNT_FIELDS:
        return to_amount(value)
    if name in _DATETIME_FIELDS:
        return _to_datetime(value)
    if name in _TEXT_FIELDS:
        return _blank_to_none(value)
    if name == "date_of_service":
        return _to_date(value)
    if name == "status":
        return OperationalStatus(value)
    if name == "accounting_status":
        return None if value is None else AccountingStatus(value)
    if name == "drops":
        return tuple(Drop.coerce(d) for d in (value or []))
    if name == "proof_of_delivery_refs":
        return tuple(r for r in (_blank_to_none(v) for v in (value or [])) if r)
    if name == "is_base_cost_locked":
        return bool(value)
    raise ValueError(f"Field is not mutable: {name}")
