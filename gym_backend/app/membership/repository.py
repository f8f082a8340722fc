"""Persistence layer for plans, members and the renewal journal."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Iterator, List, Optional, Sequence

import psycopg2
import psycopg2.errors
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...app_context import get_conn
from .errors import ConflictError
from .models import (
    Gender,
    Member,
    MemberStatus,
    MembershipPlan,
    PaymentMode,
    PaymentStatus,
    PaymentType,
    RenewalRecord,
)

_MEMBER_COLUMNS = (
    "id",
    "gym_id",
    "name",
    "gender",
    "age",
    "email",
    "number",
    "plan_id",
    "membership_type",
    "membership_amount",
    "duration_months",
    "total_paid",
    "total_due",
    "payment_status",
    "payment_mode",
    "payment_date",
    "start_date",
    "end_date",
    "status",
    "last_due_payment_date",
    "last_due_payment_amount",
    "created_at",
    "updated_at",
)

_RECORD_COLUMNS = (
    "id",
    "gym_id",
    "member_id",
    "member_number",
    "member_name",
    "membership_type",
    "amount",
    "due_amount",
    "payment_status",
    "payment_mode",
    "end_date",
    "is_due_payment",
    "payment_type",
    "created_at",
)


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def _money(value: object) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value or 0))


def _row_to_plan(row: dict) -> MembershipPlan:
    return MembershipPlan(
        id=row["id"],
        gym_id=row["gym_id"],
        name=row["name"],
        duration_months=int(row["duration_months"]),
        price=_money(row["price"]),
        description=row.get("description") or "",
        features=list(row.get("features") or []),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_member(row: dict) -> Member:
    return Member(
        id=row["id"],
        gym_id=row["gym_id"],
        name=row["name"],
        gender=Gender(row["gender"]),
        age=int(row["age"]),
        email=row.get("email"),
        number=row["number"],
        plan_id=row.get("plan_id"),
        membership_type=row["membership_type"],
        membership_amount=_money(row["membership_amount"]),
        duration_months=int(row["duration_months"]),
        total_paid=_money(row["total_paid"]),
        total_due=_money(row["total_due"]),
        payment_status=PaymentStatus(row["payment_status"]),
        payment_mode=PaymentMode(row["payment_mode"]) if row.get("payment_mode") else None,
        payment_date=row.get("payment_date"),
        start_date=row["start_date"],
        end_date=row["end_date"],
        status=MemberStatus(row["status"]),
        last_due_payment_date=row.get("last_due_payment_date"),
        last_due_payment_amount=(
            _money(row["last_due_payment_amount"]) if row.get("last_due_payment_amount") is not None else None
        ),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_record(row: dict) -> RenewalRecord:
    return RenewalRecord(
        id=row["id"],
        gym_id=row["gym_id"],
        member_id=row["member_id"],
        member_number=row["member_number"],
        member_name=row["member_name"],
        membership_type=row["membership_type"],
        amount=_money(row["amount"]),
        due_amount=_money(row["due_amount"]),
        payment_status=PaymentStatus(row["payment_status"]),
        payment_mode=PaymentMode(row["payment_mode"]) if row.get("payment_mode") else None,
        end_date=row["end_date"],
        is_due_payment=bool(row["is_due_payment"]),
        payment_type=PaymentType(row["payment_type"]),
        created_at=row["created_at"],
    )


def _member_params(member: Member) -> dict:
    params = member.model_dump()
    params["gender"] = member.gender.value
    params["payment_status"] = member.payment_status.value
    params["payment_mode"] = member.payment_mode.value if member.payment_mode else None
    params["status"] = member.status.value
    return params


def _record_params(record: RenewalRecord) -> dict:
    params = record.model_dump()
    params["payment_status"] = record.payment_status.value
    params["payment_mode"] = record.payment_mode.value if record.payment_mode else None
    params["payment_type"] = record.payment_type.value
    return params


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class PostgresMembershipRepository:
    """Concrete repository persisting the membership ledger in PostgreSQL.

    Without a bound connection every call runs in its own short transaction.
    ``atomic()`` opens one connection and yields a repository bound to it, so
    all calls made through that repository commit or roll back together.
    """

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def atomic(self) -> Iterator["PostgresMembershipRepository"]:
        if self._conn is not None:
            yield self
            return
        with managed_connection() as (connection, _managed):
            yield PostgresMembershipRepository(conn=connection)

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()

    # -- gyms -----------------------------------------------------------
    def list_gym_ids(self) -> Sequence[str]:
        with self._cursor() as cursor:
            cursor.execute("SELECT DISTINCT gym_id FROM members ORDER BY gym_id")
            return [row["gym_id"] for row in cursor.fetchall()]

    # -- plans ----------------------------------------------------------
    def get_plan(self, gym_id: str, plan_id: str) -> Optional[MembershipPlan]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT * FROM membership_plans WHERE gym_id = %s AND id = %s LIMIT 1",
                (gym_id, plan_id),
            )
            row = cursor.fetchone()
            return _row_to_plan(row) if row else None

    def find_plan_by_name(self, gym_id: str, name: str) -> Optional[MembershipPlan]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT * FROM membership_plans WHERE gym_id = %s AND name = %s LIMIT 1",
                (gym_id, name),
            )
            row = cursor.fetchone()
            return _row_to_plan(row) if row else None

    def list_plans(self, gym_id: str) -> Sequence[MembershipPlan]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT * FROM membership_plans WHERE gym_id = %s ORDER BY name",
                (gym_id,),
            )
            return [_row_to_plan(row) for row in cursor.fetchall()]

    def insert_plan(self, plan: MembershipPlan) -> MembershipPlan:
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    """
                    INSERT INTO membership_plans (
                        id, gym_id, name, duration_months, price,
                        description, features, created_at, updated_at
                    )
                    VALUES (%(id)s, %(gym_id)s, %(name)s, %(duration_months)s, %(price)s,
                            %(description)s, %(features)s, %(created_at)s, %(updated_at)s)
                    RETURNING *
                    """,
                    {**plan.model_dump(), "features": psycopg2.extras.Json(plan.features)},
                )
                row = cursor.fetchone()
        except psycopg2.errors.UniqueViolation as exc:
            raise ConflictError("A plan with this name already exists") from exc
        if not row:
            raise RuntimeError("Failed to persist membership plan")
        return _row_to_plan(row)

    def update_plan(self, plan: MembershipPlan) -> MembershipPlan:
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    """
                    UPDATE membership_plans SET
                        name = %(name)s,
                        duration_months = %(duration_months)s,
                        price = %(price)s,
                        description = %(description)s,
                        features = %(features)s,
                        updated_at = %(updated_at)s
                    WHERE gym_id = %(gym_id)s AND id = %(id)s
                    RETURNING *
                    """,
                    {**plan.model_dump(), "features": psycopg2.extras.Json(plan.features)},
                )
                row = cursor.fetchone()
        except psycopg2.errors.UniqueViolation as exc:
            raise ConflictError("Another plan with this name already exists") from exc
        if not row:
            raise RuntimeError("Failed to update membership plan")
        return _row_to_plan(row)

    def delete_plan(self, gym_id: str, plan_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                "DELETE FROM membership_plans WHERE gym_id = %s AND id = %s",
                (gym_id, plan_id),
            )
            return cursor.rowcount > 0

    # -- members --------------------------------------------------------
    def next_member_sequence(self, gym_id: str) -> int:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO member_counters (gym_id, seq)
                VALUES (%s, 1)
                ON CONFLICT (gym_id) DO UPDATE SET seq = member_counters.seq + 1
                RETURNING seq
                """,
                (gym_id,),
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to allocate member id")
            return int(row["seq"])

    def get_member(self, gym_id: str, number: str, *, for_update: bool = False) -> Optional[Member]:
        lock = " FOR UPDATE" if for_update else ""
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT * FROM members WHERE gym_id = %s AND number = %s LIMIT 1{lock}",
                (gym_id, number),
            )
            row = cursor.fetchone()
            return _row_to_member(row) if row else None

    def list_members(self, gym_id: str, *, offset: int, limit: int) -> Sequence[Member]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM members
                WHERE gym_id = %s
                ORDER BY created_at DESC, id
                OFFSET %s
                LIMIT %s
                """,
                (gym_id, offset, limit),
            )
            return [_row_to_member(row) for row in cursor.fetchall()]

    def count_members(self, gym_id: str) -> int:
        with self._cursor() as cursor:
            cursor.execute("SELECT COUNT(*) AS total FROM members WHERE gym_id = %s", (gym_id,))
            row = cursor.fetchone()
            return int(row["total"]) if row else 0

    def search_members(self, gym_id: str, term: str, *, limit: int) -> Sequence[Member]:
        pattern = _like_pattern(term)
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM members
                WHERE gym_id = %(gym_id)s
                  AND (
                        number = %(term)s
                        OR name ILIKE %(pattern)s
                        OR email ILIKE %(pattern)s
                        OR number ILIKE %(pattern)s
                  )
                ORDER BY name
                LIMIT %(limit)s
                """,
                {"gym_id": gym_id, "term": term, "pattern": pattern, "limit": limit},
            )
            return [_row_to_member(row) for row in cursor.fetchall()]

    def insert_member(self, member: Member) -> Member:
        columns = ", ".join(_MEMBER_COLUMNS)
        values = ", ".join(f"%({column})s" for column in _MEMBER_COLUMNS)
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    f"INSERT INTO members ({columns}) VALUES ({values}) RETURNING *",
                    _member_params(member),
                )
                row = cursor.fetchone()
        except psycopg2.errors.UniqueViolation as exc:
            raise ConflictError("Member already exists") from exc
        if not row:
            raise RuntimeError("Failed to persist member")
        return _row_to_member(row)

    def save_member(self, member: Member) -> Member:
        assignments = ", ".join(
            f"{column} = %({column})s" for column in _MEMBER_COLUMNS if column not in {"id", "gym_id", "created_at"}
        )
        with self._cursor() as cursor:
            cursor.execute(
                f"UPDATE members SET {assignments} WHERE gym_id = %(gym_id)s AND id = %(id)s RETURNING *",
                _member_params(member),
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to update member")
            return _row_to_member(row)

    def delete_member(self, gym_id: str, number: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM members WHERE gym_id = %s AND number = %s", (gym_id, number))
            return cursor.rowcount > 0

    def list_expired_active_members(self, gym_id: str, now: datetime) -> Sequence[Member]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM members
                WHERE gym_id = %s AND status = %s AND end_date < %s
                ORDER BY end_date
                """,
                (gym_id, MemberStatus.ACTIVE.value, now),
            )
            return [_row_to_member(row) for row in cursor.fetchall()]

    def mark_member_expired(self, gym_id: str, member_id: str, now: datetime) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE members
                SET status = %(expired)s, updated_at = %(now)s
                WHERE gym_id = %(gym_id)s
                  AND id = %(member_id)s
                  AND status = %(active)s
                  AND end_date < %(now)s
                """,
                {
                    "expired": MemberStatus.EXPIRED.value,
                    "active": MemberStatus.ACTIVE.value,
                    "gym_id": gym_id,
                    "member_id": member_id,
                    "now": now,
                },
            )
            return cursor.rowcount == 1

    # -- journal --------------------------------------------------------
    def append_record(self, record: RenewalRecord) -> RenewalRecord:
        columns = ", ".join(_RECORD_COLUMNS)
        values = ", ".join(f"%({column})s" for column in _RECORD_COLUMNS)
        with self._cursor() as cursor:
            cursor.execute(
                f"INSERT INTO renewal_records ({columns}) VALUES ({values}) RETURNING *",
                _record_params(record),
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist renewal record")
            return _row_to_record(row)

    def get_record(self, gym_id: str, record_id: str) -> Optional[RenewalRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT * FROM renewal_records WHERE gym_id = %s AND id = %s LIMIT 1",
                (gym_id, record_id),
            )
            row = cursor.fetchone()
            return _row_to_record(row) if row else None

    def latest_record(self, gym_id: str, member_number: str) -> Optional[RenewalRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM renewal_records
                WHERE gym_id = %s AND member_number = %s
                ORDER BY created_at DESC
                LIMIT 1
                """,
                (gym_id, member_number),
            )
            row = cursor.fetchone()
            return _row_to_record(row) if row else None

    def save_record(self, record: RenewalRecord) -> RenewalRecord:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE renewal_records SET
                    membership_type = %(membership_type)s,
                    amount = %(amount)s,
                    due_amount = %(due_amount)s,
                    payment_status = %(payment_status)s,
                    payment_mode = %(payment_mode)s
                WHERE gym_id = %(gym_id)s AND id = %(id)s
                RETURNING *
                """,
                _record_params(record),
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to update renewal record")
            return _row_to_record(row)

    def list_records(self, gym_id: str) -> Sequence[RenewalRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT * FROM renewal_records WHERE gym_id = %s ORDER BY created_at DESC",
                (gym_id,),
            )
            return [_row_to_record(row) for row in cursor.fetchall()]

    def list_member_records(self, gym_id: str, member_number: str) -> Sequence[RenewalRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM renewal_records
                WHERE gym_id = %s AND member_number = %s
                ORDER BY created_at DESC
                """,
                (gym_id, member_number),
            )
            records: List[RenewalRecord] = [_row_to_record(row) for row in cursor.fetchall()]
            return records

    def delete_record(self, gym_id: str, record_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                "DELETE FROM renewal_records WHERE gym_id = %s AND id = %s",
                (gym_id, record_id),
            )
            return cursor.rowcount > 0


__all__ = ["PostgresMembershipRepository", "managed_connection"]
