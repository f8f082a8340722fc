from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from conftest import FIXED_NOW, signup_member
from gym_backend import sweeper
from gym_backend.app.membership import MemberStatus, SweepSummary


def _backdate(repository, member, days: int):
    expired = member.model_copy(update={"end_date": FIXED_NOW - timedelta(days=days)})
    repository.members[(member.gym_id, member.number)] = expired
    return expired


def test_sweep_expires_lapsed_active_members(service, repository, gym_plans):
    lapsed = _backdate(repository, signup_member(service, number="1"), days=1)
    current = signup_member(service, number="2")

    summary = service.expire_memberships()

    assert summary == SweepSummary(examined=1, expired=1, failures=0)
    assert repository.members[("gym-1", lapsed.number)].status == MemberStatus.EXPIRED
    assert repository.members[("gym-1", current.number)].status == MemberStatus.ACTIVE


def test_sweep_is_idempotent(service, repository, gym_plans):
    _backdate(repository, signup_member(service, number="1"), days=3)

    service.expire_memberships()
    state_after_first = dict(repository.members)
    second = service.expire_memberships()

    assert second == SweepSummary(examined=0, expired=0, failures=0)
    assert repository.members == state_after_first


def test_sweep_leaves_inactive_members_alone(service, repository, gym_plans):
    member = _backdate(repository, signup_member(service, number="1"), days=3)
    repository.members[("gym-1", member.number)] = member.model_copy(update={"status": MemberStatus.INACTIVE})

    summary = service.expire_memberships()

    assert summary.expired == 0
    assert repository.members[("gym-1", member.number)].status == MemberStatus.INACTIVE


def test_sweep_continues_after_member_failure(service, repository, gym_plans, caplog):
    broken = _backdate(repository, signup_member(service, number="1"), days=2)
    healthy = _backdate(repository, signup_member(service, number="2"), days=2)
    repository.fail_expire_for.add(broken.id)

    with caplog.at_level("ERROR", logger="membership"):
        summary = service.expire_memberships()

    assert summary == SweepSummary(examined=2, expired=1, failures=1)
    assert repository.members[("gym-1", healthy.number)].status == MemberStatus.EXPIRED
    assert repository.members[("gym-1", broken.number)].status == MemberStatus.ACTIVE
    assert "Failed to update membership status" in caplog.text


def test_sweep_covers_every_gym(service, repository, gym_plans):
    service.create_plan("gym-2", name="Monthly", duration_months=1, price=10)
    _backdate(repository, signup_member(service, number="1"), days=1)
    _backdate(repository, signup_member(service, gym_id="gym-2", number="1"), days=1)

    summary = service.expire_memberships()

    assert summary.expired == 2


def test_run_sweep_job_updates_metrics(monkeypatch):
    sweeper._reset_metrics_for_testing()

    summary = SweepSummary(examined=4, expired=3, failures=1)
    captured = {}

    class FakeService:
        def expire_memberships(self, *, now=None):
            captured["now"] = now
            return summary

    monkeypatch.setattr(sweeper, "get_membership_service", lambda: FakeService())

    run_time = datetime(2024, 8, 1, 9, tzinfo=timezone.utc)
    result = sweeper.run_sweep_job(now=run_time)

    assert result == summary
    assert captured["now"] == run_time

    metrics = sweeper.get_sweeper_metrics()
    assert metrics["runs"] == 1
    assert metrics["examined"] == 4
    assert metrics["expired"] == 3
    assert metrics["failures"] == 1
    assert metrics["last_run_at"] == run_time.isoformat()
    assert metrics["last_success_at"] == run_time.isoformat()
    assert metrics["last_error"] is None


def test_run_sweep_job_records_failure(monkeypatch):
    sweeper._reset_metrics_for_testing()

    class BrokenService:
        def expire_memberships(self, *, now=None):
            raise RuntimeError("database unavailable")

    monkeypatch.setattr(sweeper, "get_membership_service", lambda: BrokenService())

    with pytest.raises(RuntimeError):
        sweeper.run_sweep_job(now=datetime(2024, 8, 1, 9))

    metrics = sweeper.get_sweeper_metrics()
    assert metrics["failures"] == 1
    assert metrics["last_error"] == "RuntimeError: database unavailable"
    assert metrics["last_run_at"] == "2024-08-01T09:00:00+00:00"
    assert metrics["last_success_at"] is None


def test_sweeper_start_and_shutdown(monkeypatch):
    runs = []
    monkeypatch.setattr(sweeper, "run_sweep_job", lambda: runs.append(True))

    sweeper.start_expiry_sweeper(interval_seconds=3600, initial_delay=3600)
    try:
        assert sweeper.is_sweeper_running()
        sweeper.start_expiry_sweeper(interval_seconds=3600)
    finally:
        sweeper.shutdown_expiry_sweeper()

    assert not sweeper.is_sweeper_running()
    assert runs == []


def test_sweeper_runs_once_at_start_and_can_restart(monkeypatch):
    first_run = threading.Event()
    runs = []

    def fake_job():
        runs.append(True)
        first_run.set()

    monkeypatch.setattr(sweeper, "run_sweep_job", fake_job)

    sweeper.start_expiry_sweeper(interval_seconds=3600, initial_delay=0)
    try:
        assert first_run.wait(timeout=5)
    finally:
        sweeper.shutdown_expiry_sweeper()

    assert runs == [True]
    assert not sweeper.is_sweeper_running()

    first_run.clear()
    sweeper.start_expiry_sweeper(interval_seconds=3600, initial_delay=0)
    try:
        assert sweeper.is_sweeper_running() or first_run.is_set()
        assert first_run.wait(timeout=5)
    finally:
        sweeper.shutdown_expiry_sweeper()

    assert runs == [True, True]
    assert not sweeper.is_sweeper_running()
