import datetime as dt

from date_utils import (
    DAY_MS,
    HOUR_MS,
    days_in_month,
    duration_ms,
    effective_end,
    is_all_day,
    iso_week_number,
    year_bounds,
)


def make_event(start: dt.datetime, end: dt.datetime, all_day: bool = False) -> dict:
    return {"start": start, "end": end, "allDay": all_day}


def test_all_day_duration_counts_whole_days() -> None:
    event = make_event(dt.datetime(2026, 3, 4), dt.datetime(2026, 3, 8), all_day=True)
    assert duration_ms(event) == 4 * DAY_MS


def test_timed_duration_is_wall_clock() -> None:
    event = make_event(dt.datetime(2026, 3, 4, 9, 0), dt.datetime(2026, 3, 4, 10, 30))
    assert duration_ms(event) == 90 * 60 * 1000
    assert duration_ms(event) < 2 * HOUR_MS


def test_unparsed_bounds_have_no_duration() -> None:
    assert duration_ms({"start": "20260304", "end": None}) == 0


def test_midnight_span_is_all_day_without_flag() -> None:
    assert is_all_day(make_event(dt.datetime(2026, 5, 1), dt.datetime(2026, 5, 3)))
    assert not is_all_day(make_event(dt.datetime(2026, 5, 1), dt.datetime(2026, 5, 1, 12)))
    assert not is_all_day(make_event(dt.datetime(2026, 5, 1, 8), dt.datetime(2026, 5, 2, 8)))


def test_all_day_flag_wins() -> None:
    event = make_event(dt.datetime(2026, 5, 1, 8), dt.datetime(2026, 5, 1, 9), all_day=True)
    assert is_all_day(event)


def test_effective_end_of_all_day_is_last_included_day() -> None:
    event = make_event(dt.datetime(2026, 3, 4), dt.datetime(2026, 3, 8), all_day=True)
    assert effective_end(event) == dt.datetime(2026, 3, 7)


def test_effective_end_of_timed_event_is_unchanged() -> None:
    end = dt.datetime(2026, 3, 2, 8, 0)
    assert effective_end(make_event(dt.datetime(2026, 3, 1, 8, 0), end)) == end


def test_iso_week_numbers_at_year_edges() -> None:
    assert iso_week_number(dt.date(2026, 1, 1)) == 1
    assert iso_week_number(dt.date(2025, 12, 29)) == 1
    assert iso_week_number(dt.date(2024, 1, 1)) == 1
    assert iso_week_number(dt.date(2020, 12, 31)) == 53
    assert iso_week_number(dt.date(2021, 1, 1)) == 53


def test_iso_week_number_accepts_datetimes() -> None:
    assert iso_week_number(dt.datetime(2026, 1, 5, 23, 30)) == 2


def test_calendar_helpers() -> None:
    assert days_in_month(2024, 2) == 29
    assert days_in_month(2026, 2) == 28
    start, end = year_bounds(2026)
    assert start == dt.datetime(2026, 1, 1)
    assert end.date() == dt.date(2026, 12, 31)
    assert end.hour == 23 and end.minute == 59
