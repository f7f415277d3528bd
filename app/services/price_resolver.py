from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Tuple

from app.core.errors import DuplicateContractRateError
from app.models.job_snapshot import to_amount


@dataclass(frozen=True)
class PriceMatrixRow:
    origin: str
    destination: str
    truck_type: str
    subcontractor: str
    base_price: Decimal
    selling_base_price: Decimal
    drop_off_fee: Decimal

    @classmethod
    def from_entry(cls, entry) -> "PriceMatrixRow":
        return cls(
            origin=entry.origin,
            destination=entry.destination,
            truck_type=entry.truck_type,
            subcontractor=entry.subcontractor,
            base_price=to_amount(entry.base_price),
            selling_base_price=to_amount(entry.selling_base_price),
            drop_off_fee=to_amount(entry.drop_off_fee),
        )

    @property
    def key(self) -> Tuple[str, str, str, str]:
        return _key(self.origin, self.destination, self.truck_type, self.subcontractor)


@dataclass(frozen=True)
class ContractPrice:
    cost: Decimal
    revenue: Decimal
    entry: PriceMatrixRow


PriceMatrixSnapshot = Tuple[PriceMatrixRow, ...]


def _norm(value: Optional[str]) -> str:
    return (value or "").strip()


def _key(origin, destination, truck_type, subcontractor) -> Tuple[str, str, str, str]:
    return (_norm(origin), _norm(destination), _norm(truck_type), _norm(subcontractor))


def freeze_snapshot(rows: Iterable) -> PriceMatrixSnapshot:
    return tuple(r if isinstance(r, PriceMatrixRow) else PriceMatrixRow.from_entry(r) for r in rows)


def resolve(
    snapshot: PriceMatrixSnapshot,
    origin: Optional[str],
    destination: Optional[str],
    truck_type: Optional[str],
    subcontractor: Optional[str],
    drop_count: int,
) -> Optional[ContractPrice]:
    """Contract price for a route/fleet assignment, or None when uncontracted.

    cost    = base_price + drop_count * drop_off_fee
    revenue = selling_base_price + drop_count * drop_off_fee

    Raises DuplicateContractRateError when the snapshot holds more than one row
    for the same key.
    """
    if drop_count < 0:
        raise ValueError("drop_count must be >= 0")

    wanted = _key(origin, destination, truck_type, subcontractor)
    if not all(wanted):
        return None

    matches = [row for row in snapshot if row.key == wanted]
    if not matches:
        return None
    if len(matches) > 1:
        raise DuplicateContractRateError(
            f"{len(matches)} price matrix rows for {' / '.join(wanted)}"
        )

    row = matches[0]
    fees = row.drop_off_fee * drop_count
    return ContractPrice(
        cost=row.base_price + fees,
        revenue=row.selling_base_price + fees,
        entry=row,
    )


def has_route_rate(
    snapshot: PriceMatrixSnapshot,
    origin: Optional[str],
    destination: Optional[str],
    truck_type: Optional[str],
) -> bool:
    wanted = (_norm(origin), _norm(destination), _norm(truck_type))
    if not all(wanted):
        return False
    return any(row.key[:3] == wanted for row in snapshot)
