"""create jobs and price_matrix

Revision ID: 3f1c2a9b7d10
Revises:
Create Date: 2026-10-12 09:14:52.381044

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c2a9b7d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "jobs",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("date_of_service", sa.Date(), nullable=True),
        sa.Column("origin", sa.String(), nullable=False),
        sa.Column("destination", sa.String(), nullable=False),
        sa.Column("truck_type", sa.String(), nullable=False),
        sa.Column("drops", sa.JSON(), nullable=False),
        sa.Column("product_detail", sa.String(), nullable=True),
        sa.Column("weight_volume", sa.String(), nullable=True),
        sa.Column("remark", sa.Text(), nullable=True),
        sa.Column("reference_no", sa.String(), nullable=True),
        sa.Column("requested_by", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("subcontractor", sa.String(), nullable=True),
        sa.Column("driver_name", sa.String(), nullable=True),
        sa.Column("driver_phone", sa.String(), nullable=True),
        sa.Column("license_plate", sa.String(), nullable=True),
        sa.Column("cost", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("selling_price", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("extra_charge", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("actual_arrival_time", sa.DateTime(), nullable=True),
        sa.Column("mileage", sa.String(), nullable=True),
        sa.Column("proof_of_delivery_refs", sa.JSON(), nullable=False),
        sa.Column("accounting_status", sa.String(), nullable=True),
        sa.Column("accounting_remark", sa.Text(), nullable=True),
        sa.Column("is_base_cost_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("billing_date", sa.DateTime(), nullable=True),
        sa.Column("billing_doc_no", sa.String(), nullable=True),
        sa.Column("payment_date", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("assigned_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("version >= 1", name="ck_jobs_version_positive"),
        sa.CheckConstraint("cost >= 0", name="ck_jobs_cost_nonnegative"),
        sa.CheckConstraint("selling_price >= 0", name="ck_jobs_selling_price_nonnegative"),
        sa.CheckConstraint("extra_charge >= 0", name="ck_jobs_extra_charge_nonnegative"),
    )
    op.create_index(op.f("ix_jobs_id"), "jobs", ["id"], unique=False)
    op.create_index(op.f("ix_jobs_date_of_service"), "jobs", ["date_of_service"], unique=False)
    op.create_index(op.f("ix_jobs_status"), "jobs", ["status"], unique=False)
    op.create_index(op.f("ix_jobs_subcontractor"), "jobs", ["subcontractor"], unique=False)
    op.create_index(op.f("ix_jobs_accounting_status"), "jobs", ["accounting_status"], unique=False)
    op.create_index("ix_jobs_status_assigned_at", "jobs", ["status", "assigned_at"], unique=False)

    op.create_table(
        "price_matrix",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("origin", sa.String(), nullable=False),
        sa.Column("destination", sa.String(), nullable=False),
        sa.Column("truck_type", sa.String(), nullable=False),
        sa.Column("subcontractor", sa.String(), nullable=False),
        sa.Column("base_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("selling_base_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("drop_off_fee", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint(
            "origin", "destination", "truck_type", "subcontractor",
            name="uq_price_matrix_route_key",
        ),
        sa.CheckConstraint("base_price >= 0", name="ck_price_matrix_base_price_nonnegative"),
        sa.CheckConstraint(
            "selling_base_price >= 0", name="ck_price_matrix_selling_base_price_nonnegative"
        ),
        sa.CheckConstraint("drop_off_fee >= 0", name="ck_price_matrix_drop_off_fee_nonnegative"),
    )
    op.create_index(op.f("ix_price_matrix_id"), "price_matrix", ["id"], unique=False)
    op.create_index(op.f("ix_price_matrix_origin"), "price_matrix", ["origin"], unique=False)
    op.create_index(op.f("ix_price_matrix_destination"), "price_matrix", ["destination"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f("ix_price_matrix_destination"), table_name="price_matrix")
    op.drop_index(op.f("ix_price_matrix_origin"), table_name="price_matrix")
    op.drop_index(op.f("ix_price_matrix_id"), table_name="price_matrix")
    op.drop_table("price_matrix")

    op.drop_index("ix_jobs_status_assigned_at", table_name="jobs")
    op.drop_index(op.f("ix_jobs_accounting_status"), table_name="jobs")
    op.drop_index(op.f("ix_jobs_subcontractor"), table_name="jobs")
    op.drop_index(op.f("ix_jobs_status"), table_name="jobs")
    op.drop_index(op.f("ix_jobs_date_of_service"), table_name="jobs")
    op.drop_index(op.f("ix_jobs_id"), table_name="jobs")
    op.drop_table("jobs")
