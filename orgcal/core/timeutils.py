# orgcal/core/timeutils.py
"""
Time normalization.

Event timestamps are stored as naive local wall-clock values (what the user typed),
while the store and the scheduler reason in UTC. Every comparison with "now" and
every delta goes through :func:`stored_to_utc`, which subtracts ``LOCAL_UTC_OFFSET``.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from orgcal.config import settings

LOCAL_UTC_OFFSET: timedelta = settings.local_utc_offset


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def stored_to_utc(value: datetime) -> datetime:
    """Naive stored wall-clock → aware UTC instant."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc)
    return value.replace(tzinfo=timezone.utc) - LOCAL_UTC_OFFSET


def utc_to_stored(value: datetime) -> datetime:
    """Aware UTC instant → naive stored wall-clock (inverse of :func:`stored_to_utc`)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value.astimezone(timezone.utc) + LOCAL_UTC_OFFSET).replace(tzinfo=None)


def naive_utc_now() -> datetime:
    """UTC without tzinfo, for bookkeeping columns compared in SQL."""
    return utc_now().replace(tzinfo=None)


def local_now() -> datetime:
    """Current wall-clock in the stored (naive local) representation."""
    return utc_to_stored(utc_now())


def local_today() -> date:
    return local_now().date()


def combine(day: date, at: time) -> datetime:
    return datetime.combine(day, at.replace(tzinfo=None))


def is_overdue(end_at: datetime | None, status: str, now: datetime | None = None) -> bool:
    if end_at is None or status == "DONE":
        return False
    now = now or utc_now()
    return stored_to_utc(end_at) < now


def is_due_soon(
    end_at: datetime | None,
    status: str,
    threshold_minutes: int,
    now: datetime | None = None,
) -> bool:
    if end_at is None or status == "DONE" or threshold_minutes <= 0:
        return False
    now = now or utc_now()
    end_utc = stored_to_utc(end_at)
    return now < end_utc and (end_utc - now) <= timedelta(minutes=threshold_minutes)


def effective_status(end_at: datetime | None, status: str, now: datetime | None = None) -> str:
    return "OVERDUE" if is_overdue(end_at, status, now) else status


def format_naive(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.replace(tzinfo=None, microsecond=0).isoformat()


__all__ = [
    "LOCAL_UTC_OFFSET", "utc_now", "naive_utc_now", "stored_to_utc", "utc_to_stored",
    "local_now", "local_today", "combine",
    "is_overdue", "is_due_soon", "effective_status", "format_naive",
]
