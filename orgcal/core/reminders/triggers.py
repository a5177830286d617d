# orgcal/core/reminders/triggers.py
"""
Trigger computation for reminder jobs. Pure: every input, "now" included, is an argument.

Keys are built so that every job of an entity shares a prefix:

    event:<id>:<TRIGGER>:<offset>
    series:<id>:<YYYY-MM-DD>:<TRIGGER>:<offset>

``series:<id>:`` therefore covers every occurrence of a series.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from orgcal.core.calendar.refs import EntityRef, EventRef, OccurrenceRef
from orgcal.core.timeutils import stored_to_utc

REMINDER = "REMINDER"
DUE_SOON = "DUE_SOON"
OVERDUE = "OVERDUE"
TRIGGER_TYPES = (REMINDER, DUE_SOON, OVERDUE)


@dataclass(frozen=True)
class Trigger:
    trigger_type: str
    offset_minutes: int
    fire_at: datetime  # aware UTC
    target_at: datetime  # stored naive start/end the trigger refers to


@dataclass(frozen=True)
class PlannedJob:
    key: str
    ref: EntityRef
    trigger: Trigger


def entity_prefix(ref: EntityRef) -> str:
    if isinstance(ref, EventRef):
        return f"event:{ref.event_id}:"
    return f"series:{ref.series_id}:{ref.occurrence_date.isoformat()}:"


def series_prefix(series_id: int) -> str:
    return f"series:{series_id}:"


def job_key(ref: EntityRef, trigger_type: str, offset_minutes: int) -> str:
    return f"{entity_prefix(ref)}{trigger_type}:{offset_minutes}"


def dedup_key(key: str, target_at: datetime) -> str:
    """Job key plus the wall-clock it refers to: a moved event is a new reminder."""
    return f"{key}@{target_at.replace(second=0, microsecond=0).isoformat(timespec='minutes')}"


def _offset_triggers(
    trigger_type: str,
    target_at: datetime,
    offsets: Iterable[int],
    now: datetime,
    delay: timedelta,
) -> List[Trigger]:
    target_utc = stored_to_utc(target_at)
    if target_utc <= now:
        return []
    triggers: List[Trigger] = []
    late: Optional[int] = None
    for offset in sorted(set(offsets)):
        fire_at = target_utc - timedelta(minutes=offset)
        if fire_at <= now:
            # a passed offset is not dropped: the nearest one fires at now + delay under its own
            # key, and farther passed offsets are folded into that single firing
            if late is None:
                late = offset
            continue
        triggers.append(Trigger(trigger_type, offset, fire_at, target_at))
    if late is not None:
        triggers.insert(0, Trigger(trigger_type, late, now + delay, target_at))
    return triggers


def compute_triggers(
    start_at: datetime,
    end_at: datetime,
    reminder_offsets: Iterable[int],
    due_soon_offsets: Iterable[int],
    overdue_enabled: bool,
    now: datetime,
    immediate_delay: timedelta,
) -> List[Trigger]:
    """
    REMINDER before start, DUE_SOON before end, OVERDUE at end.

    ``start_at``/``end_at`` are stored naive values; ``now`` is aware UTC. A fire time
    already behind ``now`` is moved to ``now + immediate_delay``.
    """
    triggers = _offset_triggers(REMINDER, start_at, reminder_offsets, now, immediate_delay)
    triggers += _offset_triggers(DUE_SOON, end_at, due_soon_offsets, now, immediate_delay)
    if overdue_enabled:
        fire_at = stored_to_utc(end_at)
        if fire_at <= now:
            fire_at = now + immediate_delay
        triggers.append(Trigger(OVERDUE, 0, fire_at, end_at))
    return triggers


def planned_jobs(ref: EntityRef, triggers: Iterable[Trigger]) -> List[PlannedJob]:
    return [PlannedJob(job_key(ref, t.trigger_type, t.offset_minutes), ref, t) for t in triggers]


def parse_job_key(key: str) -> tuple[EntityRef, str, int]:
    """Inverse of :func:`job_key`."""
    parts = key.split(":")
    if parts[0] == "event" and len(parts) == 4:
        return EventRef(int(parts[1])), parts[2], int(parts[3])
    if parts[0] == "series" and len(parts) == 5:
        return OccurrenceRef(int(parts[1]), date.fromisoformat(parts[2])), parts[3], int(parts[4])
    raise ValueError(f"Malformed job key: {key!r}")


def humanize_minutes(minutes: int) -> str:
    if minutes >= 60:
        hours = round(minutes / 60)
        return "1 hour" if hours == 1 else f"{hours} hours"
    minutes = max(minutes, 1)
    return "1 minute" if minutes == 1 else f"{minutes} minutes"


__all__ = [
    "REMINDER", "DUE_SOON", "OVERDUE", "TRIGGER_TYPES", "Trigger", "PlannedJob",
    "entity_prefix", "series_prefix", "job_key", "dedup_key", "compute_triggers",
    "planned_jobs", "parse_job_key", "humanize_minutes",
]
