from datetime import date, datetime, timedelta, timezone

import pytest

from orgcal.core.calendar.refs import EventRef, OccurrenceRef
from orgcal.core.reminders.triggers import (
    DUE_SOON,
    OVERDUE,
    REMINDER,
    compute_triggers,
    dedup_key,
    humanize_minutes,
    job_key,
    parse_job_key,
)

NOW = datetime(2024, 5, 1, 0, 0, tzinfo=timezone.utc)  # 09:00 stored
DELAY = timedelta(seconds=5)


def triggers(start, end, reminders=(60,), due_soon=(60,), overdue=True, now=NOW):
    return compute_triggers(start, end, reminders, due_soon, overdue, now=now, immediate_delay=DELAY)


def test_future_event_gets_all_three_triggers():
    start, end = datetime(2024, 5, 1, 12, 0), datetime(2024, 5, 1, 14, 0)
    result = {t.trigger_type: t for t in triggers(start, end)}
    assert result[REMINDER].fire_at == datetime(2024, 5, 1, 2, 0, tzinfo=timezone.utc)
    assert result[DUE_SOON].fire_at == datetime(2024, 5, 1, 4, 0, tzinfo=timezone.utc)
    assert result[OVERDUE].fire_at == datetime(2024, 5, 1, 5, 0, tzinfo=timezone.utc)
    assert result[REMINDER].target_at == start
    assert result[OVERDUE].target_at == end


def test_passed_fire_time_is_moved_just_ahead_of_now():
    # starts in 30 minutes: the 60-minute reminder fires immediately
    start, end = datetime(2024, 5, 1, 9, 30), datetime(2024, 5, 1, 12, 0)
    reminder = [t for t in triggers(start, end) if t.trigger_type == REMINDER]
    assert len(reminder) == 1
    assert reminder[0].fire_at == NOW + DELAY


def test_passed_offsets_collapse_into_nearest_one():
    start, end = datetime(2024, 5, 1, 9, 45), datetime(2024, 5, 1, 12, 0)
    reminder = [t for t in triggers(start, end, reminders=(30, 60, 180)) if t.trigger_type == REMINDER]
    assert [(t.offset_minutes, t.fire_at) for t in reminder] == [
        (60, NOW + DELAY),
        (30, NOW + timedelta(minutes=15)),
    ]


def test_started_event_skips_reminder_and_ended_event_only_overdue():
    started = triggers(datetime(2024, 5, 1, 8, 0), datetime(2024, 5, 1, 11, 0))
    assert {t.trigger_type for t in started} == {DUE_SOON, OVERDUE}

    ended = triggers(datetime(2024, 5, 1, 6, 0), datetime(2024, 5, 1, 8, 0))
    assert [(t.trigger_type, t.fire_at) for t in ended] == [(OVERDUE, NOW + DELAY)]


def test_overdue_disabled():
    ended = triggers(datetime(2024, 5, 1, 6, 0), datetime(2024, 5, 1, 8, 0), overdue=False)
    assert ended == []


@pytest.mark.parametrize(
    "ref, key",
    [
        (EventRef(42), "event:42:REMINDER:30"),
        (OccurrenceRef(7, date(2024, 1, 8)), "series:7:2024-01-08:REMINDER:30"),
    ],
)
def test_job_key_parses_back(ref, key):
    assert job_key(ref, REMINDER, 30) == key
    assert parse_job_key(key) == (ref, REMINDER, 30)


def test_malformed_job_key():
    with pytest.raises(ValueError):
        parse_job_key("event:abc")


def test_dedup_key_changes_with_target_time():
    key = "event:1:REMINDER:60"
    assert dedup_key(key, datetime(2024, 5, 1, 12, 0, 31)) == "event:1:REMINDER:60@2024-05-01T12:00"
    assert dedup_key(key, datetime(2024, 5, 1, 12, 0)) != dedup_key(key, datetime(2024, 5, 1, 13, 0))


@pytest.mark.parametrize("minutes, text", [(0, "1 minute"), (1, "1 minute"), (45, "45 minutes"), (60, "1 hour"), (180, "3 hours")])
def test_humanize_minutes(minutes, text):
    assert humanize_minutes(minutes) == text
