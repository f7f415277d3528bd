from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String, UniqueConstraint

from app.database import Base


class PriceMatrixEntry(Base):
    __tablename__ = "price_matrix"

    __table_args__ = (
        UniqueConstraint(
            "origin",
            "destination",
            "truck_type",
            "subcontractor",
            name="uq_price_matrix_route_key",
        ),
        CheckConstraint("base_price >= 0", name="ck_price_matrix_base_price_nonnegative"),
        CheckConstraint(
            "selling_base_price >= 0", name="ck_price_matrix_selling_base_price_nonnegative"
        ),
        CheckConstraint("drop_off_fee >= 0", name="ck_price_matrix_drop_off_fee_nonnegative"),
    )

    id = Column(Integer, primary_key=True, index=True)

    origin = Column(String, nullable=False, index=True)
    destination = Column(String, nullable=False, index=True)
    truck_type = Column(String, nullable=False)
    subcontractor = Column(String, nullable=False)

    base_price = Column(Numeric(12, 2), nullable=False)
    selling_base_price = Column(Numeric(12, 2), nullable=False)
    drop_off_fee = Column(Numeric(12, 2), nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
