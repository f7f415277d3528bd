from datetime import datetime

import pytest

from app.core.errors import MutationDenied, MutationValidationError
from app.core.roles import Role
from app.models.job_snapshot import OperationalStatus
from app.services.job_intake import create_job

NOW = datetime(2026, 10, 19, 8, 0)

ROUTE = {"origin": "Bangkok", "destination": "Chonburi", "truck_type": "4Wheel"}


def test_job_ids_are_sequential_per_year(price_matrix_factory):
    price_matrix_factory()

    first = create_job(ROUTE, actor_id="b-1", actor_role=Role.BOOKING_OFFICER, now=NOW)
    second = create_job(ROUTE, actor_id="b-1", actor_role=Role.BOOKING_OFFICER, now=NOW)

    assert first.id == "JRS-2026-0001"
    assert second.id == "JRS-2026-0002"
    assert first.status == OperationalStatus.NEW_REQUEST
    assert first.version == 1
    assert first.requested_by == "b-1"


def test_uncontracted_route_needs_pricing_review():
    job = create_job(ROUTE, actor_id="b-1", actor_role=Role.BOOKING_OFFICER, now=NOW)
    assert job.status == OperationalStatus.PENDING_PRICING


def test_intake_rejects_fleet_or_price_fields():
    with pytest.raises(MutationValidationError) as exc:
        create_job({**ROUTE, "cost": "100"}, actor_id="b-1", actor_role=Role.DISPATCHER, now=NOW)
    assert "cost" in exc.value.fields


def test_intake_requires_route():
    with pytest.raises(MutationValidationError) as exc:
        create_job({"origin": " "}, actor_id="b-1", actor_role=Role.ADMIN, now=NOW)
    assert set(exc.value.fields) == {"origin", "destination", "truck_type"}


@pytest.mark.parametrize("role", [Role.FIELD_OFFICER, Role.ACCOUNTANT])
def test_only_request_roles_create_jobs(role):
    with pytest.raises(MutationDenied):
        create_job(ROUTE, actor_id="x", actor_role=role, now=NOW)
