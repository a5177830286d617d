from datetime import datetime, timedelta, timezone

from orgcal.core.timeutils import (
    LOCAL_UTC_OFFSET,
    effective_status,
    is_due_soon,
    is_overdue,
    stored_to_utc,
    utc_to_stored,
)

# stored wall-clock 2024-05-01 18:00 is 09:00 UTC
END = datetime(2024, 5, 1, 18, 0)
END_UTC = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def test_offset_is_nine_hours_by_default():
    assert LOCAL_UTC_OFFSET == timedelta(hours=9)
    assert stored_to_utc(END) == END_UTC
    assert utc_to_stored(END_UTC) == END


def test_due_soon_thirty_minutes_before_end():
    now = END_UTC - timedelta(minutes=30)
    assert is_due_soon(END, "PENDING", 60, now)
    assert not is_overdue(END, "PENDING", now)
    assert effective_status(END, "PENDING", now) == "PENDING"


def test_overdue_one_minute_after_end():
    now = END_UTC + timedelta(minutes=1)
    assert is_overdue(END, "PENDING", now)
    assert not is_due_soon(END, "PENDING", 60, now)
    assert effective_status(END, "PENDING", now) == "OVERDUE"


def test_done_is_never_overdue_or_due_soon():
    now = END_UTC + timedelta(hours=3)
    assert not is_overdue(END, "DONE", now)
    assert not is_due_soon(END, "DONE", 60, END_UTC - timedelta(minutes=5))
    assert effective_status(END, "DONE", now) == "DONE"
