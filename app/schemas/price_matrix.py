from decimal import Decimal
from typing import Optional

from app.schemas.job import CamelModel


class PriceMatrixEntryResponse(CamelModel):
    origin: str
    destination: str
    truck_type: str
    subcontractor: str
    base_price: Decimal
    selling_base_price: Decimal
    drop_off_fee: Decimal


class ContractPriceResponse(CamelModel):
    contracted: bool
    cost: Optional[Decimal] = None
    revenue: Optional[Decimal] = None
    entry: Optional[PriceMatrixEntryResponse] = None
