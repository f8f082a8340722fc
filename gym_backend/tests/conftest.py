"""Shared in-memory fakes for membership tests."""
from __future__ import annotations

import copy
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import pytest

from gym_backend.app.membership import (
    Member,
    MembershipAuditEvent,
    MembershipEventLogger,
    MembershipPlan,
    MembershipRepository,
    MembershipService,
    MemberStatus,
    RenewalRecord,
)

FIXED_NOW = datetime(2024, 1, 31, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class InMemoryMembershipRepository(MembershipRepository):
    """Dictionary backed repository; ``atomic`` restores a snapshot on error."""

    def __init__(self) -> None:
        self.plans: Dict[str, MembershipPlan] = {}
        self.members: Dict[Tuple[str, str], Member] = {}
        self.counters: Dict[str, int] = {}
        self.records: Dict[str, RenewalRecord] = {}
        self.locked: List[Tuple[str, str]] = []
        self.fail_on: Optional[str] = None
        self.fail_expire_for: set[str] = set()

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise RuntimeError(f"storage failure during {operation}")

    @contextmanager
    def atomic(self) -> Iterator["InMemoryMembershipRepository"]:
        snapshot = (
            dict(self.plans),
            dict(self.members),
            dict(self.counters),
            dict(self.records),
        )
        try:
            yield self
        except Exception:
            self.plans, self.members, self.counters, self.records = (copy.copy(part) for part in snapshot)
            raise

    def list_gym_ids(self) -> Sequence[str]:
        return sorted({gym_id for gym_id, _ in self.members})

    # plans
    def get_plan(self, gym_id: str, plan_id: str) -> Optional[MembershipPlan]:
        plan = self.plans.get(plan_id)
        return plan if plan is not None and plan.gym_id == gym_id else None

    def find_plan_by_name(self, gym_id: str, name: str) -> Optional[MembershipPlan]:
        for plan in self.plans.values():
            if plan.gym_id == gym_id and plan.name == name:
                return plan
        return None

    def list_plans(self, gym_id: str) -> Sequence[MembershipPlan]:
        return sorted((plan for plan in self.plans.values() if plan.gym_id == gym_id), key=lambda plan: plan.name)

    def insert_plan(self, plan: MembershipPlan) -> MembershipPlan:
        self.plans[plan.id] = plan
        return plan

    def update_plan(self, plan: MembershipPlan) -> MembershipPlan:
        self.plans[plan.id] = plan
        return plan

    def delete_plan(self, gym_id: str, plan_id: str) -> bool:
        if self.get_plan(gym_id, plan_id) is None:
            return False
        del self.plans[plan_id]
        for key, member in list(self.members.items()):
            if member.plan_id == plan_id:
                self.members[key] = member.model_copy(update={"plan_id": None})
        return True

    # members
    def next_member_sequence(self, gym_id: str) -> int:
        self.counters[gym_id] = self.counters.get(gym_id, 0) + 1
        return self.counters[gym_id]

    def get_member(self, gym_id: str, number: str, *, for_update: bool = False) -> Optional[Member]:
        if for_update:
            self.locked.append((gym_id, number))
        return self.members.get((gym_id, number))

    def list_members(self, gym_id: str, *, offset: int, limit: int) -> Sequence[Member]:
        rows = [member for (gym, _), member in self.members.items() if gym == gym_id]
        rows.sort(key=lambda member: member.created_at, reverse=True)
        return rows[offset : offset + limit]

    def count_members(self, gym_id: str) -> int:
        return sum(1 for gym, _ in self.members if gym == gym_id)

    def search_members(self, gym_id: str, term: str, *, limit: int) -> Sequence[Member]:
        needle = term.lower()
        rows = [
            member
            for (gym, _), member in self.members.items()
            if gym == gym_id
            and (
                needle in member.name.lower()
                or needle in (member.email or "").lower()
                or needle in member.number
            )
        ]
        return sorted(rows, key=lambda member: member.name)[:limit]

    def insert_member(self, member: Member) -> Member:
        self._maybe_fail("insert_member")
        self.members[(member.gym_id, member.number)] = member
        return member

    def save_member(self, member: Member) -> Member:
        self._maybe_fail("save_member")
        self.members[(member.gym_id, member.number)] = member
        return member

    def delete_member(self, gym_id: str, number: str) -> bool:
        return self.members.pop((gym_id, number), None) is not None

    def list_expired_active_members(self, gym_id: str, now: datetime) -> Sequence[Member]:
        return [
            member
            for (gym, _), member in self.members.items()
            if gym == gym_id and member.status == MemberStatus.ACTIVE and member.end_date < now
        ]

    def mark_member_expired(self, gym_id: str, member_id: str, now: datetime) -> bool:
        if member_id in self.fail_expire_for:
            raise RuntimeError(f"storage failure expiring {member_id}")
        for key, member in self.members.items():
            if key[0] == gym_id and member.id == member_id:
                if member.status != MemberStatus.ACTIVE or member.end_date >= now:
                    return False
                self.members[key] = member.model_copy(update={"status": MemberStatus.EXPIRED, "updated_at": now})
                return True
        return False

    # journal
    def append_record(self, record: RenewalRecord) -> RenewalRecord:
        self._maybe_fail("append_record")
        self.records[record.id] = record
        return record

    def get_record(self, gym_id: str, record_id: str) -> Optional[RenewalRecord]:
        record = self.records.get(record_id)
        return record if record is not None and record.gym_id == gym_id else None

    def latest_record(self, gym_id: str, member_number: str) -> Optional[RenewalRecord]:
        records = self.list_member_records(gym_id, member_number)
        return records[0] if records else None

    def save_record(self, record: RenewalRecord) -> RenewalRecord:
        self.records[record.id] = record
        return record

    def list_records(self, gym_id: str) -> Sequence[RenewalRecord]:
        return sorted(
            (record for record in self.records.values() if record.gym_id == gym_id),
            key=lambda record: record.created_at,
            reverse=True,
        )

    def list_member_records(self, gym_id: str, member_number: str) -> Sequence[RenewalRecord]:
        return [record for record in self.list_records(gym_id) if record.member_number == member_number]

    def delete_record(self, gym_id: str, record_id: str) -> bool:
        if self.get_record(gym_id, record_id) is None:
            return False
        del self.records[record_id]
        return True


class FakeEventLogger(MembershipEventLogger):
    def __init__(self) -> None:
        self.events: List[MembershipAuditEvent] = []

    def log(self, event: MembershipAuditEvent) -> None:
        self.events.append(event)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository() -> InMemoryMembershipRepository:
    return InMemoryMembershipRepository()


@pytest.fixture
def event_logger() -> FakeEventLogger:
    return FakeEventLogger()


@pytest.fixture
def service(repository, event_logger, clock) -> MembershipService:
    return MembershipService(repository=repository, event_logger=event_logger, clock=clock)


@pytest.fixture
def gym_plans(service):
    """Monthly, Quarterly and Yearly plans for gym ``gym-1``."""

    return {
        "Monthly": service.create_plan("gym-1", name="Monthly", duration_months=1, price=Decimal("1000")),
        "Quarterly": service.create_plan("gym-1", name="Quarterly", duration_months=3, price=Decimal("2700")),
        "Yearly": service.create_plan("gym-1", name="Yearly", duration_months=12, price=Decimal("9000")),
    }


def signup_member(service: MembershipService, **overrides) -> Member:
    params = dict(
        name="Asha",
        number="9000000001",
        gender="Female",
        age=25,
        email="asha@example.com",
        membership_type="Monthly",
        membership_amount=Decimal("1000"),
        membership_due_amount=Decimal("0"),
        payment_status="Paid",
        payment_mode="Cash",
    )
    params.update(overrides)
    gym_id = params.pop("gym_id", "gym-1")
    return service.signup(gym_id, **params)
