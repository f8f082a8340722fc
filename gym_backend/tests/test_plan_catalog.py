from __future__ import annotations

from decimal import Decimal

import pytest

from conftest import signup_member
from gym_backend.app.membership import (
    ConflictError,
    MembershipAuditEventType,
    NotFoundError,
    ValidationError,
)


def test_create_plan_normalizes_fields(service, event_logger):
    plan = service.create_plan(
        "gym-1",
        name="  Monthly ",
        duration_months="1",
        price="1500.50",
        description=" Basic access ",
        features=["Gym floor", " ", "Lockers "],
        actor_id="admin-1",
    )

    assert plan.name == "Monthly"
    assert plan.duration_months == 1
    assert plan.price == Decimal("1500.50")
    assert plan.description == "Basic access"
    assert plan.features == ["Gym floor", "Lockers"]
    assert event_logger.events[-1].event_type == MembershipAuditEventType.PLAN_CREATED
    assert event_logger.events[-1].actor_id == "admin-1"


@pytest.mark.parametrize(
    "fields",
    [
        {"name": "", "duration_months": 1, "price": 10},
        {"name": "Monthly", "duration_months": 0, "price": 10},
        {"name": "Monthly", "duration_months": 1.5, "price": 10},
        {"name": "Monthly", "duration_months": None, "price": 10},
        {"name": "Monthly", "duration_months": 1, "price": -5},
        {"name": "Monthly", "duration_months": 1, "price": None},
    ],
)
def test_create_plan_validation(service, fields):
    with pytest.raises(ValidationError):
        service.create_plan("gym-1", **fields)


def test_plan_names_are_unique_per_gym(service):
    service.create_plan("gym-1", name="Monthly", duration_months=1, price=10)

    with pytest.raises(ConflictError):
        service.create_plan("gym-1", name="Monthly", duration_months=2, price=20)

    other = service.create_plan("gym-2", name="Monthly", duration_months=1, price=10)
    assert [plan.name for plan in service.list_plans("gym-2")] == ["Monthly"]
    assert other.gym_id == "gym-2"


def test_update_plan(service, gym_plans):
    monthly = gym_plans["Monthly"]

    updated = service.update_plan(
        "gym-1",
        monthly.id,
        name="Monthly Plus",
        duration_months=1,
        price=1200,
        features=[" Sauna ", "", "  "],
    )

    assert updated.id == monthly.id
    assert updated.name == "Monthly Plus"
    assert updated.price == Decimal("1200")
    assert updated.features == ["Sauna"]
    assert service.find_plan("gym-1", "Monthly Plus") == updated
    with pytest.raises(NotFoundError):
        service.find_plan("gym-1", "Monthly")


def test_update_plan_rejects_name_clash_and_unknown_id(service, gym_plans):
    with pytest.raises(ConflictError):
        service.update_plan("gym-1", gym_plans["Monthly"].id, name="Yearly", duration_months=1, price=1)
    with pytest.raises(NotFoundError):
        service.update_plan("gym-1", "plan_missing", name="Weekly", duration_months=1, price=1)
    with pytest.raises(NotFoundError):
        service.update_plan("gym-2", gym_plans["Monthly"].id, name="Monthly", duration_months=1, price=1)


def test_catalog_edits_do_not_change_existing_members(service, gym_plans):
    member = signup_member(service)

    service.update_plan("gym-1", gym_plans["Monthly"].id, name="Monthly", duration_months=2, price=5000)
    unchanged = service.get_member("gym-1", member.number)

    assert unchanged.membership_amount == member.membership_amount
    assert unchanged.duration_months == 1
    assert unchanged.end_date == member.end_date


def test_delete_plan_keeps_member_snapshot(service, gym_plans, event_logger):
    member = signup_member(service)

    service.delete_plan("gym-1", gym_plans["Monthly"].id)
    orphan = service.get_member("gym-1", member.number)

    assert orphan.plan_id is None
    assert orphan.membership_type == "Monthly"
    assert orphan.membership_amount == member.membership_amount
    assert event_logger.events[-1].event_type == MembershipAuditEventType.PLAN_DELETED
    with pytest.raises(NotFoundError):
        service.delete_plan("gym-1", gym_plans["Monthly"].id)
