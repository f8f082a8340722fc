"""PostgreSQL repository behaviour against a scripted psycopg2 connection."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import psycopg2.errors
import pytest

from gym_backend.app.membership import ConflictError, Gender, MemberStatus, PaymentStatus
from gym_backend.app.membership import repository as repository_module
from gym_backend.app.membership import schema as schema_module
from gym_backend.app.membership.repository import PostgresMembershipRepository

NOW = datetime(2024, 1, 31, 12, tzinfo=timezone.utc)


class FakeCursor:
    def __init__(self, connection: "FakeConnection") -> None:
        self.connection = connection
        self.rowcount = 0

    def execute(self, sql: str, params: Any = None) -> None:
        self.connection.statements.append((" ".join(sql.split()), params))
        if self.connection.raise_on_execute is not None:
            raise self.connection.raise_on_execute
        self.rowcount = self.connection.rowcount

    def fetchone(self) -> Optional[Dict[str, Any]]:
        return self.connection.rows.pop(0) if self.connection.rows else None

    def fetchall(self) -> List[Dict[str, Any]]:
        rows, self.connection.rows = self.connection.rows, []
        return rows

    def close(self) -> None:
        pass

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class FakeConnection:
    def __init__(self) -> None:
        self.statements: List[tuple] = []
        self.rows: List[Dict[str, Any]] = []
        self.rowcount = 0
        self.raise_on_execute: Optional[Exception] = None
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self, cursor_factory=None) -> FakeCursor:
        return FakeCursor(self)

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def connections(monkeypatch) -> List[FakeConnection]:
    opened: List[FakeConnection] = []

    def fake_get_conn() -> FakeConnection:
        connection = FakeConnection()
        opened.append(connection)
        return connection

    monkeypatch.setattr(repository_module, "get_conn", fake_get_conn)
    return opened


def _member_row(**overrides) -> Dict[str, Any]:
    row = {
        "id": "KN1",
        "gym_id": "gym-1",
        "name": "Asha",
        "gender": "Female",
        "age": 25,
        "email": None,
        "number": "9000000001",
        "plan_id": "plan_1",
        "membership_type": "Monthly",
        "membership_amount": Decimal("1000.00"),
        "duration_months": 1,
        "total_paid": Decimal("700.00"),
        "total_due": Decimal("300.00"),
        "payment_status": "Pending",
        "payment_mode": "Cash",
        "payment_date": NOW,
        "start_date": NOW,
        "end_date": NOW,
        "status": "Active",
        "last_due_payment_date": None,
        "last_due_payment_amount": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


def test_get_member_maps_row_and_scopes_query(connections):
    repository = PostgresMembershipRepository()

    with repository.atomic() as repo:
        connections[0].rows.append(_member_row())
        member = repo.get_member("gym-1", "9000000001", for_update=True)

    assert member.gender == Gender.FEMALE
    assert member.status == MemberStatus.ACTIVE
    assert member.payment_status == PaymentStatus.PENDING
    assert member.total_due == Decimal("300.00")
    sql, params = connections[0].statements[0]
    assert "WHERE gym_id = %s AND number = %s" in sql
    assert sql.endswith("FOR UPDATE")
    assert params == ("gym-1", "9000000001")


def test_atomic_shares_one_connection_and_commits_once(connections):
    repository = PostgresMembershipRepository()

    with repository.atomic() as repo:
        repo.count_members("gym-1")
        repo.list_records("gym-1")

    assert len(connections) == 1
    assert len(connections[0].statements) == 2
    assert connections[0].commits == 1
    assert connections[0].rollbacks == 0
    assert connections[0].closed


def test_atomic_rolls_back_on_error(connections):
    repository = PostgresMembershipRepository()

    with pytest.raises(RuntimeError):
        with repository.atomic() as repo:
            repo.count_members("gym-1")
            raise RuntimeError("boom")

    assert connections[0].commits == 0
    assert connections[0].rollbacks == 1
    assert connections[0].closed


def test_calls_outside_atomic_use_their_own_transaction(connections):
    repository = PostgresMembershipRepository()

    repository.count_members("gym-1")
    repository.count_members("gym-2")

    assert len(connections) == 2
    assert all(connection.commits >= 1 for connection in connections)


def test_mark_member_expired_is_conditional(connections):
    repository = PostgresMembershipRepository()

    with repository.atomic() as repo:
        connections[0].rowcount = 0
        changed = repo.mark_member_expired("gym-1", "KN1", NOW)

    sql, params = connections[0].statements[0]
    assert "AND status = %(active)s" in sql
    assert "AND end_date < %(now)s" in sql
    assert params["gym_id"] == "gym-1"
    assert changed is False


def test_unique_violation_maps_to_conflict(connections):
    repository = PostgresMembershipRepository()
    member = repository_module._row_to_member(_member_row())

    with pytest.raises(ConflictError):
        with repository.atomic() as repo:
            connections[0].raise_on_execute = psycopg2.errors.UniqueViolation("duplicate key")
            repo.insert_member(member)

    assert connections[0].rollbacks == 1


def test_search_escapes_like_wildcards():
    assert repository_module._like_pattern("50%_off") == "%50\\%\\_off%"


def test_initialize_schema_runs_every_statement(connections):
    schema_module.initialize_schema()

    executed = [sql for sql, _ in connections[0].statements]
    assert len(executed) == len(schema_module.SCHEMA_STATEMENTS)
    assert any("CREATE TABLE IF NOT EXISTS renewal_records" in sql for sql in executed)
    assert connections[0].commits == 1
