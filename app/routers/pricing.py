from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.errors import DuplicateContractRateError
from app.core.roles import Role
from app.database import SessionLocal
from app.deps.auth import require_auth
from app.schemas.price_matrix import ContractPriceResponse, PriceMatrixEntryResponse
from app.services import job_store
from app.services.price_resolver import resolve

router = APIRouter(prefix="/pricing", tags=["Pricing"])


@router.get("/matrix", response_model=List[PriceMatrixEntryResponse])
def list_price_matrix(
    origin: Optional[str] = None,
    destination: Optional[str] = None,
    _auth: Tuple[str, Role] = Depends(require_auth),
):
    db = SessionLocal()
    try:
        rows = job_store.read_price_matrix_snapshot(db)
    finally:
        db.close()

    if origin is not None:
        rows = tuple(r for r in rows if r.key[0] == origin.strip())
    if destination is not None:
        rows = tuple(r for r in rows if r.key[1] == destination.strip())
    return [PriceMatrixEntryResponse.model_validate(r) for r in rows]


@router.get("/resolve", response_model=ContractPriceResponse)
def resolve_contract_price(
    origin: str,
    destination: str,
    truck_type: str = Query(..., alias="truckType"),
    subcontractor: str = Query(...),
    drop_count: int = Query(default=0, ge=0, alias="dropCount"),
    _auth: Tuple[str, Role] = Depends(require_auth),
):
    db = SessionLocal()
    try:
        snapshot = job_store.read_price_matrix_snapshot(db)
    finally:
        db.close()

    try:
        price = resolve(snapshot, origin, destination, truck_type, subcontractor, drop_count)
    except DuplicateContractRateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    if price is None:
        return ContractPriceResponse(contracted=False)
    return ContractPriceResponse(
        contracted=True,
        cost=price.cost,
        revenue=price.revenue,
        entry=PriceMatrixEntryResponse.model_validate(price.entry),
    )
