import os
_default_test_secret = "test-jwt-secret-for-pytest-only-0000000000000000"
if len(os.environ.get("JWT_SECRET", "")) < 32:
    os.environ["JWT_SECRET"] = _default_test_secret
os.environ.setdefault("ENV", "test")

import subprocess
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url

REPO_ROOT = Path(__file__).resolve().parents[2]
TEST_DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{REPO_ROOT / 'test_trucking.db'}")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

from app import database
from app.models.job import Job
from app.models.job_snapshot import JobSnapshot
from app.models.price_matrix import PriceMatrixEntry
from app.services.audit_log_immutability import (
    install_audit_log_immutability,
    uninstall_audit_log_immutability,
)

_TABLES = ("event_outbox", "job_mutations", "audit_log", "price_matrix", "jobs")


def _ensure_database_exists(database_url: str) -> None:
    url = make_url(database_url)

    if url.drivername.startswith("sqlite"):
        if url.database and Path(url.database).exists():
            Path(url.database).unlink()
        return

    if not url.drivername.startswith("postgresql"):
        return

    db_name = url.database
    admin_url = url.set(database="postgres")
    admin_engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")

    try:
        with admin_engine.connect() as conn:
            exists = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": db_name},
            ).scalar()
            if not exists:
                safe_db_name = db_name.replace('"', '""')
                conn.execute(text(f'CREATE DATABASE "{safe_db_name}"'))
    finally:
        admin_engine.dispose()


def _clear_tables() -> None:
    engine = database.engine
    if engine.dialect.name == "postgresql":
        quoted = ", ".join(f'"public"."{name}"' for name in _TABLES)
        with engine.begin() as conn:
            conn.execute(text(f"TRUNCATE TABLE {quoted} RESTART IDENTITY CASCADE"))
        return

    # SQLite has no TRUNCATE; DELETE would trip the audit triggers.
    uninstall_audit_log_immutability(engine)
    try:
        with engine.begin() as conn:
            for name in _TABLES:
                conn.execute(text(f"DELETE FROM {name}"))
    finally:
        install_audit_log_immutability(engine)


@pytest.fixture(scope="session", autouse=True)
def _prepare_test_database() -> None:
    _ensure_database_exists(TEST_DATABASE_URL)

    env = os.environ.copy()
    env["DATABASE_URL"] = TEST_DATABASE_URL

    subprocess.run(
        ["alembic", "upgrade", "head"],
        check=True,
        cwd=REPO_ROOT,
        env=env,
    )

    database.configure_database()


@pytest.fixture(scope="function", autouse=True)
def _clear_tables_between_tests():
    _clear_tables()
    yield
    _clear_tables()


@pytest.fixture
def price_matrix_factory():
    def _create(
        origin: str = "Bangkok",
        destination: str = "Chonburi",
        truck_type: str = "4Wheel",
        subcontractor: str = "Acme",
        base_price="3000",
        selling_base_price="3500",
        drop_off_fee="200",
    ) -> PriceMatrixEntry:
        db = database.SessionLocal()
        try:
            row = PriceMatrixEntry(
                origin=origin,
                destination=destination,
                truck_type=truck_type,
                subcontractor=subcontractor,
                base_price=Decimal(str(base_price)),
                selling_base_price=Decimal(str(selling_base_price)),
                drop_off_fee=Decimal(str(drop_off_fee)),
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return row
        finally:
            db.close()

    return _create


@pytest.fixture
def job_factory():
    """Insert a job row directly, bypassing the mutation pipeline."""
    counter = {"n": 0}

    def _create(**overrides) -> JobSnapshot:
        counter["n"] += 1
        now = datetime.utcnow()
        values = {
            "id": f"JRS-2026-{9000 + counter['n']:04d}",
            "version": 1,
            "origin": "Bangkok",
            "destination": "Chonburi",
            "truck_type": "4Wheel",
            "drops": [],
            "status": "NEW_REQUEST",
            "cost": Decimal("0"),
            "selling_price": Decimal("0"),
            "extra_charge": Decimal("0"),
            "proof_of_delivery_refs": [],
            "is_base_cost_locked": False,
            "created_at": now,
            "updated_at": now,
        }
        values.update(overrides)
        for key in ("cost", "selling_price", "extra_charge"):
            values[key] = Decimal(str(values[key]))

        db = database.SessionLocal()
        try:
            row = Job(**values)
            db.add(row)
            db.commit()
            db.refresh(row)
            return JobSnapshot.from_row(row)
        finally:
            db.close()

    return _create
