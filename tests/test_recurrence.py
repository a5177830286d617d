from datetime import date, datetime, time
from types import SimpleNamespace

import pytest

from orgcal.core.calendar.recurrence import add_months, expand, is_occurrence_date, iter_dates, nth_date


def make_series(first, unit="week", interval=1, end=None, start=time(9, 0), finish=time(10, 0), days=0):
    return SimpleNamespace(
        id=7,
        first_occurrence_date=first,
        recurrence_type=unit,
        recurrence_interval=interval,
        recurrence_end_date=end,
        start_time=start,
        end_time=finish,
        duration_days=days,
    )


def test_weekly_series_in_january_window():
    series = make_series(date(2024, 1, 1))
    result = expand(series, date(2024, 1, 1), date(2024, 1, 31))
    assert [o.occurrence_date for o in result] == [
        date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22), date(2024, 1, 29),
    ]
    assert all(o.is_generated for o in result)
    assert result[0].start_at == datetime(2024, 1, 1, 9, 0)
    assert result[0].ref.composite_id == "series-7-2024-01-01"


def test_weekly_series_three_week_window_and_exception():
    series = make_series(date(2024, 1, 1))
    window = (date(2024, 1, 1), date(2024, 1, 22))
    assert [o.occurrence_date for o in expand(series, *window)] == [
        date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22),
    ]
    remaining = [o.occurrence_date for o in expand(series, *window, exceptions={date(2024, 1, 8)})]
    assert remaining == [date(2024, 1, 1), date(2024, 1, 15), date(2024, 1, 22)]


def test_end_date_and_exception_are_honored():
    series = make_series(date(2024, 1, 1), end=date(2024, 1, 28))
    result = expand(series, date(2024, 1, 1), date(2024, 1, 31), exceptions={date(2024, 1, 8)})
    assert [o.occurrence_date for o in result] == [date(2024, 1, 1), date(2024, 1, 15), date(2024, 1, 22)]


def test_monthly_clamps_to_last_day_without_drifting():
    series = make_series(date(2024, 1, 31), unit="month")
    days = [o.occurrence_date for o in expand(series, date(2024, 1, 1), date(2024, 5, 31))]
    assert days == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30), date(2024, 5, 31)]


def test_add_months_crosses_year():
    assert add_months(date(2023, 11, 30), 3) == date(2024, 2, 29)


@pytest.mark.parametrize(
    "unit, interval, n, expected",
    [
        ("day", 3, 2, date(2024, 1, 7)),
        ("week", 2, 1, date(2024, 1, 15)),
        ("month", 1, 1, date(2024, 2, 1)),
    ],
)
def test_nth_date_steps(unit, interval, n, expected):
    assert nth_date(date(2024, 1, 1), unit, interval, n) == expected


def test_monthly_window_starting_after_a_clamped_month():
    series = make_series(date(2024, 1, 31), unit="month")
    days = [o.occurrence_date for o in expand(series, date(2024, 3, 1), date(2024, 4, 30))]
    assert days == [date(2024, 3, 31), date(2024, 4, 30)]


def test_unknown_unit_is_rejected():
    with pytest.raises(ValueError):
        nth_date(date(2024, 1, 1), "year", 1, 1)


def test_every_third_day_starting_mid_window():
    series = make_series(date(2024, 1, 1), unit="day", interval=3)
    days = [o.occurrence_date for o in expand(series, date(2024, 1, 5), date(2024, 1, 12))]
    assert days == [date(2024, 1, 7), date(2024, 1, 10)]


def test_multi_day_span_extends_end():
    series = make_series(date(2024, 1, 1), unit="week", start=time(22, 0), finish=time(2, 0), days=1)
    first = expand(series, date(2024, 1, 1), date(2024, 1, 1))[0]
    assert first.start_at == datetime(2024, 1, 1, 22, 0)
    assert first.end_at == datetime(2024, 1, 2, 2, 0)


@pytest.mark.parametrize(
    "window",
    [
        (date(2024, 1, 10), date(2024, 1, 9)),  # empty window
        (date(2024, 3, 1), date(2024, 3, 31)),  # series ended before it
    ],
)
def test_empty_results(window):
    series = make_series(date(2024, 1, 1), end=date(2024, 2, 1))
    assert expand(series, *window) == []


def test_window_fully_covered_by_exceptions():
    series = make_series(date(2024, 1, 1))
    assert expand(series, date(2024, 1, 1), date(2024, 1, 14), {date(2024, 1, 1), date(2024, 1, 8)}) == []


def test_expansion_is_restartable():
    series = make_series(date(2024, 1, 1), unit="day", interval=2)
    whole = expand(series, date(2024, 1, 1), date(2024, 1, 20))
    halves = expand(series, date(2024, 1, 1), date(2024, 1, 10)) + expand(series, date(2024, 1, 11), date(2024, 1, 20))
    assert whole == halves


def test_is_occurrence_date():
    series = make_series(date(2024, 1, 1), interval=2)
    assert is_occurrence_date(series, date(2024, 1, 15))
    assert not is_occurrence_date(series, date(2024, 1, 8))
    assert not is_occurrence_date(series, date(2023, 12, 18))


def test_zero_interval_is_rejected():
    with pytest.raises(ValueError):
        list(iter_dates(date(2024, 1, 1), "day", 0, date(2024, 1, 1), date(2024, 1, 5)))
