"""PostgreSQL table definitions for the membership ledger."""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from psycopg2.extensions import connection as PgConnection

from .repository import managed_connection

logger = logging.getLogger("membership")

SCHEMA_STATEMENTS: Sequence[str] = (
    """
    CREATE TABLE IF NOT EXISTS membership_plans (
        id TEXT PRIMARY KEY,
        gym_id TEXT NOT NULL,
        name TEXT NOT NULL,
        duration_months INTEGER NOT NULL CHECK (duration_months > 0),
        price NUMERIC(12, 2) NOT NULL CHECK (price >= 0),
        description TEXT NOT NULL DEFAULT '',
        features JSONB NOT NULL DEFAULT '[]'::jsonb,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL,
        UNIQUE (gym_id, name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS members (
        gym_id TEXT NOT NULL,
        id TEXT NOT NULL,
        name TEXT NOT NULL,
        gender TEXT NOT NULL CHECK (gender IN ('Male', 'Female', 'Other')),
        age INTEGER NOT NULL CHECK (age >= 14),
        email TEXT,
        number TEXT NOT NULL,
        plan_id TEXT REFERENCES membership_plans (id) ON DELETE SET NULL,
        membership_type TEXT NOT NULL,
        membership_amount NUMERIC(12, 2) NOT NULL CHECK (membership_amount >= 0),
        duration_months INTEGER NOT NULL CHECK (duration_months > 0),
        total_paid NUMERIC(12, 2) NOT NULL DEFAULT 0,
        total_due NUMERIC(12, 2) NOT NULL DEFAULT 0 CHECK (total_due >= 0),
        payment_status TEXT NOT NULL CHECK (payment_status IN ('Pending', 'Paid', 'Failed')),
        payment_mode TEXT CHECK (payment_mode IN ('Cash', 'Card', 'Online')),
        payment_date TIMESTAMPTZ,
        start_date TIMESTAMPTZ NOT NULL,
        end_date TIMESTAMPTZ NOT NULL,
        status TEXT NOT NULL CHECK (status IN ('Active', 'Inactive', 'Expired')),
        last_due_payment_date TIMESTAMPTZ,
        last_due_payment_amount NUMERIC(12, 2),
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL,
        PRIMARY KEY (gym_id, id),
        UNIQUE (gym_id, number)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_members_expiry ON members (gym_id, status, end_date)",
    """
    CREATE TABLE IF NOT EXISTS member_counters (
        gym_id TEXT PRIMARY KEY,
        seq BIGINT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS renewal_records (
        id TEXT PRIMARY KEY,
        gym_id TEXT NOT NULL,
        member_id TEXT NOT NULL,
        member_number TEXT NOT NULL,
        member_name TEXT NOT NULL,
        membership_type TEXT NOT NULL,
        amount NUMERIC(12, 2) NOT NULL CHECK (amount >= 0),
        due_amount NUMERIC(12, 2) NOT NULL DEFAULT 0 CHECK (due_amount >= 0),
        payment_status TEXT NOT NULL,
        payment_mode TEXT,
        end_date TIMESTAMPTZ NOT NULL,
        is_due_payment BOOLEAN NOT NULL DEFAULT FALSE,
        payment_type TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_renewal_records_member ON renewal_records (gym_id, member_number, created_at DESC)",
)


def initialize_schema(conn: Optional[PgConnection] = None) -> None:
    """Create the membership tables when they do not exist yet."""

    with managed_connection(conn) as (connection, _managed):
        with connection.cursor() as cursor:
            for statement in SCHEMA_STATEMENTS:
                cursor.execute(statement)
    logger.info("Membership schema ensured")


__all__ = ["SCHEMA_STATEMENTS", "initialize_schema"]
