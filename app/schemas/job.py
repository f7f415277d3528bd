from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.core.errors import DenialKind
from app.models.job_snapshot import AccountingStatus, DropStatus, OperationalStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class DropSchema(CamelModel):
    location: str
    status: DropStatus = DropStatus.PENDING
    proof_of_delivery_ref: Optional[str] = None
    completed_at: Optional[datetime] = None


class JobCreate(CamelModel):
    origin: str
    destination: str
    truck_type: str
    date_of_service: Optional[date] = None
    drops: List[DropSchema] = Field(default_factory=list)
    product_detail: Optional[str] = None
    weight_volume: Optional[str] = None
    remark: Optional[str] = None
    reference_no: Optional[str] = None
    requested_by: Optional[str] = None


class JobResponse(CamelModel):
    id: str
    version: int
    status: OperationalStatus
    accounting_status: Optional[AccountingStatus] = None

    date_of_service: Optional[date] = None
    origin: str
    destination: str
    truck_type: str
    drops: List[DropSchema]
    product_detail: Optional[str] = None
    weight_volume: Optional[str] = None
    remark: Optional[str] = None
    reference_no: Optional[str] = None
    requested_by: Optional[str] = None

    subcontractor: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    license_plate: Optional[str] = None

    cost: Decimal
    selling_price: Decimal
    extra_charge: Decimal

    actual_arrival_time: Optional[datetime] = None
    mileage: Optional[str] = None
    proof_of_delivery_refs: List[str]

    accounting_remark: Optional[str] = None
    is_base_cost_locked: bool
    billing_date: Optional[datetime] = None
    billing_doc_no: Optional[str] = None
    payment_date: Optional[datetime] = None

    created_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MutationRequest(CamelModel):
    base_version: int
    changes: Dict[str, Any]
    reason: Optional[str] = None
    mutation_id: Optional[str] = Field(default=None, max_length=128)


class AuditEntryResponse(CamelModel):
    id: str
    job_id: str
    sequence: int
    mutation_id: str
    timestamp: datetime
    user_id: str = Field(
        validation_alias=AliasChoices("userId", "actor_id"), serialization_alias="userId"
    )
    user_role: str = Field(
        validation_alias=AliasChoices("userRole", "actor_role"), serialization_alias="userRole"
    )
    field: str
    old_value: str
    new_value: str
    reason: Optional[str] = None
    admin_override: bool
    prev_hash: Optional[str] = None
    entry_hash: str


class MutationCommittedResponse(CamelModel):
    outcome: str = "Committed"
    replayed: bool
    job: JobResponse
    audit_entries: List[AuditEntryResponse]


class DeniedResponse(CamelModel):
    outcome: str = "Denied"
    kind: DenialKind
    detail: str


class ConflictResponse(CamelModel):
    outcome: str = "Conflict"
    job_id: str
    expected_version: int
    current_version: Optional[int] = None


class ValidationFailedResponse(CamelModel):
    outcome: str = "ValidationError"
    fields: Dict[str, str]


class AuditChainResponse(CamelModel):
    job_id: str
    ok: bool
    checked: int
    broken_at_sequence: Optional[int] = None
