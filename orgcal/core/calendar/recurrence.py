# orgcal/core/calendar/recurrence.py
"""
Occurrence expansion.

``expand`` turns a series template into the dated occurrences that fall inside a
window. It is a pure function of its arguments: no I/O, no state kept between calls.
Candidates are computed from the anchor date by index, so month steps never drift
after a clamped short month (Jan 31 -> Feb 29 -> Mar 31).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Collection, Iterator, List, Optional

from dateutil.relativedelta import relativedelta

from orgcal.core.calendar.refs import OccurrenceRef
from orgcal.core.timeutils import combine


@dataclass(frozen=True)
class Occurrence:
    series_id: int
    occurrence_date: date
    start_at: datetime
    end_at: datetime
    is_generated: bool = True

    @property
    def ref(self) -> OccurrenceRef:
        return OccurrenceRef(self.series_id, self.occurrence_date)


def add_months(anchor: date, months: int) -> date:
    """Shift by whole months, clamping the anchor's day to the target month's last day."""
    return anchor + relativedelta(months=months)


_STEPS = {"day": "days", "week": "weeks", "month": "months"}


def nth_date(first: date, unit: str, interval: int, n: int) -> date:
    """The n-th candidate, always measured from ``first`` so clamping never accumulates."""
    try:
        step = _STEPS[unit]
    except KeyError:
        raise ValueError(f"Unknown recurrence unit: {unit!r}") from None
    return first + relativedelta(**{step: n * interval})


def _first_index(first: date, unit: str, interval: int, window_start: date) -> int:
    # largest index whose candidate cannot be after window_start; earlier ones are all before it
    if window_start <= first:
        return 0
    if unit == "day":
        return (window_start - first).days // interval
    if unit == "week":
        return (window_start - first).days // (7 * interval)
    elapsed = relativedelta(window_start, first)
    return (elapsed.years * 12 + elapsed.months) // interval


def iter_dates(
    first: date,
    unit: str,
    interval: int,
    window_start: date,
    last: date,
) -> Iterator[date]:
    """Candidate dates in ``[window_start, last]``, ascending."""
    if interval < 1:
        raise ValueError("Recurrence interval must be >= 1")
    n = _first_index(first, unit, interval, window_start)
    while True:
        candidate = nth_date(first, unit, interval, n)
        if candidate > last:
            return
        if candidate >= window_start:
            yield candidate
        n += 1


def is_occurrence_date(series, day: date) -> bool:
    if day < series.first_occurrence_date:
        return False
    if series.recurrence_end_date is not None and day > series.recurrence_end_date:
        return False
    return any(True for _ in iter_dates(
        series.first_occurrence_date, series.recurrence_type, series.recurrence_interval, day, day
    ))


def occurrence_times(series, day: date) -> tuple[datetime, datetime]:
    start_at = combine(day, series.start_time)
    end_at = combine(day + timedelta(days=series.duration_days or 0), series.end_time)
    return start_at, end_at


def expand(
    series,
    window_start: date,
    window_end: date,
    exceptions: Optional[Collection[date]] = None,
) -> List[Occurrence]:
    """
    Expand ``series`` into the virtual occurrences starting within ``[window_start, window_end]``.

    Args:
        series: anything with the EventSeries recurrence attributes.
        window_start / window_end: inclusive date bounds.
        exceptions: dates on which the series produces nothing.

    Returns:
        Occurrences ordered by date. An empty window, a series that ended before the
        window, or a window covered by exceptions all give ``[]``.
    """
    if window_end < window_start:
        return []
    last = window_end
    if series.recurrence_end_date is not None:
        last = min(last, series.recurrence_end_date)
    if last < series.first_occurrence_date or last < window_start:
        return []

    skip = set(exceptions or ())
    result: List[Occurrence] = []
    for day in iter_dates(
        series.first_occurrence_date,
        series.recurrence_type,
        series.recurrence_interval,
        window_start,
        last,
    ):
        if day in skip:
            continue
        start_at, end_at = occurrence_times(series, day)
        result.append(Occurrence(series.id, day, start_at, end_at))
    return result


__all__ = ["Occurrence", "add_months", "nth_date", "iter_dates", "is_occurrence_date", "occurrence_times", "expand"]
