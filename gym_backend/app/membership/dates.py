"""Calendar helpers for membership periods."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from dateutil.relativedelta import relativedelta

SECONDS_PER_DAY = 24 * 60 * 60


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, letting the day of month overflow into the next month.

    ``relativedelta`` alone clamps Jan 31 + 1 month to Feb 28. Membership
    periods instead keep the original day offset, so Jan 31 + 1 month lands on
    Mar 3 (Mar 2 in a leap year).
    """

    first_of_month = value.replace(day=1) + relativedelta(months=months)
    return first_of_month + timedelta(days=value.day - 1)


def add_days(value: datetime, days: float) -> datetime:
    return value + timedelta(days=days)


def days_between(start: datetime, end: datetime) -> float:
    """Fractional number of days from ``start`` to ``end`` (negative when end is earlier)."""

    return (ensure_aware(end) - ensure_aware(start)).total_seconds() / SECONDS_PER_DAY


def later_of(value: Optional[datetime], now: datetime) -> datetime:
    if value is None:
        return now
    value = ensure_aware(value)
    return value if value > now else now


__all__ = ["add_days", "add_months", "days_between", "ensure_aware", "later_of"]
