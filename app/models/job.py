from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.ext.mutable import MutableList

from app.database import Base


class Job(Base):
    __tablename__ = "jobs"

    __table_args__ = (
        CheckConstraint("version >= 1", name="ck_jobs_version_positive"),
        CheckConstraint("cost >= 0", name="ck_jobs_cost_nonnegative"),
        CheckConstraint("selling_price >= 0", name="ck_jobs_selling_price_nonnegative"),
        CheckConstraint("extra_charge >= 0", name="ck_jobs_extra_charge_nonnegative"),
        Index("ix_jobs_status_assigned_at", "status", "assigned_at"),
    )

    id = Column(String, primary_key=True, index=True)  # JRS-<year>-<seq>
    version = Column(Integer, nullable=False, default=1)

    date_of_service = Column(Date, nullable=True, index=True)
    origin = Column(String, nullable=False)
    destination = Column(String, nullable=False)
    truck_type = Column(String, nullable=False)
    drops = Column(MutableList.as_mutable(JSON), nullable=False, default=list)

    product_detail = Column(String, nullable=True)
    weight_volume = Column(String, nullable=True)
    remark = Column(Text, nullable=True)
    reference_no = Column(String, nullable=True)
    requested_by = Column(String, nullable=True)

    status = Column(String, nullable=False, index=True)

    subcontractor = Column(String, nullable=True, index=True)
    driver_name = Column(String, nullable=True)
    driver_phone = Column(String, nullable=True)
    license_plate = Column(String, nullable=True)

    cost = Column(Numeric(12, 2), nullable=False, default=0)
    selling_price = Column(Numeric(12, 2), nullable=False, default=0)
    extra_charge = Column(Numeric(12, 2), nullable=False, default=0)

    actual_arrival_time = Column(DateTime, nullable=True)
    mileage = Column(String, nullable=True)
    proof_of_delivery_refs = Column(MutableList.as_mutable(JSON), nullable=False, default=list)

    accounting_status = Column(String, nullable=True, index=True)
    accounting_remark = Column(Text, nullable=True)
    is_base_cost_locked = Column(Boolean, nullable=False, default=False)

    billing_date = Column(DateTime, nullable=True)
    billing_doc_no = Column(String, nullable=True)
    payment_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    assigned_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
