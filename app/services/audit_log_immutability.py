from sqlalchemy import inspect, text

AUDIT_TABLE = "audit_log"

_POSTGRES_INSTALL = """
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

_POSTGRES_UNINSTALL = """
DROP TRIGGER IF EXISTS trg_audit_log_block_update ON audit_log;
DROP TRIGGER IF EXISTS trg_audit_log_block_delete ON audit_log;
DROP FUNCTION IF EXISTS audit_log_block_mutation();
"""

# SQLite runs one statement per execute().
_SQLITE_INSTALL = (
    """
    CREATE TRIGGER IF NOT EXISTS trg_audit_log_block_update
    BEFORE UPDATE ON audit_log
    BEGIN
        SELECT RAISE(ABORT, 'audit_log is immutable');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_audit_log_block_delete
    BEFORE DELETE ON audit_log
    BEGIN
        SELECT RAISE(ABORT, 'audit_log is immutable');
    END
    """,
)

_SQLITE_UNINSTALL = (
    "DROP TRIGGER IF EXISTS trg_audit_log_block_update",
    "DROP TRIGGER IF EXISTS trg_audit_log_block_delete",
)


def table_exists(engine, table_name: str) -> bool:
    if engine is None:
        return False
    return inspect(engine).has_table(table_name)


def _dialect_name(engine) -> str:
    dialect = getattr(engine, "dialect", None)
    return getattr(dialect, "name", "") if dialect is not None else ""


def install_audit_log_immutability(engine) -> None:
    """
    Install triggers that block UPDATE/DELETE on audit_log (PostgreSQL, SQLite).
    Idempotent.
    """
    if engine is None or not table_exists(engine, AUDIT_TABLE):
        return

    name = _dialect_name(engine)
    with engine.begin() as conn:
        if name == "postgresql":
            conn.execute(text(_POSTGRES_INSTALL))
        elif name == "sqlite":
            for ddl in _SQLITE_INSTALL:
                conn.execute(text(ddl))


def uninstall_audit_log_immutability(engine) -> None:
    """Drop the triggers. Only for test database cleanup."""
    if engine is None or not table_exists(engine, AUDIT_TABLE):
        return

    name = _dialect_name(engine)
    with engine.begin() as conn:
        if name == "postgresql":
            conn.execute(text(_POSTGRES_UNINSTALL))
        elif name == "sqlite":
            for ddl in _SQLITE_UNINSTALL:
                conn.execute(text(ddl))
