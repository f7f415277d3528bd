"""add request digest and result snapshot to job_mutations

Revision ID: f4a7c2d81b05
Revises: e2d5a8c3f917
Create Date: 2026-10-20 09:14:03.118204
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "f4a7c2d81b05"
down_revision: Union[str, Sequence[str], None] = "e2d5a8c3f917"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table("job_mutations") as batch:
        batch.add_column(sa.Column("request_digest", sa.String(length=64), nullable=True))
        batch.add_column(sa.Column("result_snapshot", sa.JSON(), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("job_mutations") as batch:
        batch.drop_column("result_snapshot")
        batch.drop_column("request_digest")
