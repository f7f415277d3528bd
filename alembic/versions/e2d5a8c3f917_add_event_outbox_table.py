"""add event_outbox table

Revision ID: e2d5a8c3f917
Revises: c7b9e1f04a62
Create Date: 2026-10-13 08:26:45.660931
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "e2d5a8c3f917"
down_revision: Union[str, Sequence[str], None] = "c7b9e1f04a62"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "event_outbox",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("job_id", sa.String(), nullable=True),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("idempotency_key", sa.String(), nullable=False),
        sa.Column(
            "payload",
            sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql"),
            nullable=False,
        ),
        sa.Column("processed", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retry_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("event_type", "idempotency_key", name="uq_event_outbox_idempotency"),
    )

    op.create_index("ix_event_outbox_job_event", "event_outbox", ["job_id", "event_type"], unique=False)
    op.create_index("ix_event_outbox_processed", "event_outbox", ["processed", "created_at"], unique=False)
    op.create_index(op.f("ix_event_outbox_job_id"), "event_outbox", ["job_id"], unique=False)
    op.create_index(op.f("ix_event_outbox_event_type"), "event_outbox", ["event_type"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_event_outbox_event_type"), table_name="event_outbox")
    op.drop_index(op.f("ix_event_outbox_job_id"), table_name="event_outbox")
    op.drop_index("ix_event_outbox_processed", table_name="event_outbox")
    op.drop_index("ix_event_outbox_job_event", table_name="event_outbox")
    op.drop_table("event_outbox")
