"""audit_log immutability triggers

Revision ID: c7b9e1f04a62
Revises: 8a4e6d2c5b31
Create Date: 2026-10-12 11:40:03.118270

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c7b9e1f04a62'
down_revision: Union[str, Sequence[str], None] = '8a4e6d2c5b31'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    if op.get_bind().dialect.name == "sqlite":
        op.execute(
            """
            CREATE TRIGGER IF NOT EXISTS trg_audit_log_block_update
            BEFORE UPDATE ON audit_log
            BEGIN
                SELECT RAISE(ABORT, 'audit_log is immutable');
            END
            """
        )
        op.execute(
            """
            CREATE TRIGGER IF NOT EXISTS trg_audit_log_block_delete
            BEFORE DELETE ON audit_log
            BEGIN
                SELECT RAISE(ABORT, 'audit_log is immutable');
            END
            """
        )
        return

    op.execute(
        """
        CREATE OR REPLACE FUNCTION audit_log_block_mutation()
        RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'audit_log is immutable';
        END;
        $$ LANGUAGE plpgsql;

        DROP TRIGGER IF EXISTS trg_audit_log_block_update ON audit_log;
        CREATE TRIGGER trg_audit_log_block_update
        BEFORE UPDATE ON audit_log
        FOR EACH ROW
        EXECUTE FUNCTION audit_log_block_mutation();

        DROP TRIGGER IF EXISTS trg_audit_log_block_delete ON audit_log;
        CREATE TRIGGER trg_audit_log_block_delete
        BEFORE DELETE ON audit_log
        FOR EACH ROW
        EXECUTE FUNCTION audit_log_block_mutation();
        """
    )


def downgrade() -> None:
    """Downgrade schema."""
    if op.get_bind().dialect.name == "sqlite":
        op.execute("DROP TRIGGER IF EXISTS trg_audit_log_block_update")
        op.execute("DROP TRIGGER IF EXISTS trg_audit_log_block_delete")
        return

    op.execute(
        """
        DROP TRIGGER IF EXISTS trg_audit_log_block_update ON audit_log;
        DROP TRIGGER IF EXISTS trg_audit_log_block_delete ON audit_log;
        DROP FUNCTION IF EXISTS audit_log_block_mutation();
        """
    )
