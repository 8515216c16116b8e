"""Date and duration helpers shared by the year layout engine."""

from __future__ import annotations

import calendar
import datetime as dt
import math
from collections.abc import Mapping
from typing import Any

ONE_DAY = dt.timedelta(days=1)
DAY_MS = 24 * 60 * 60 * 1000
HOUR_MS = 60 * 60 * 1000


def _field(event: Any, *names: str) -> Any:
    for name in names:
        if isinstance(event, Mapping):
            value = event.get(name)
        else:
            value = getattr(event, name, None)
        if value is not None:
            return value
    return None


def _bounds(event: Any) -> tuple[dt.datetime | None, dt.datetime | None]:
    start = _field(event, "start")
    end = _field(event, "end")
    if not isinstance(start, dt.datetime) or not isinstance(end, dt.datetime):
        return None, None
    return start, end


def to_ms(delta: dt.timedelta) -> int:
    return delta // dt.timedelta(milliseconds=1)


def is_midnight(value: dt.datetime) -> bool:
    return value.hour == 0 and value.minute == 0 and value.second == 0


def is_all_day(event: Any) -> bool:
    """True when the event is flagged all-day or spans whole local days.

    Works on ``CalendarEvent`` values and on raw mappings; missing or
    unparsed bounds simply yield False.
    """
    if _field(event, "is_all_day", "isAllDay", "allDay") is True:
        return True
    start, end = _bounds(event)
    if start is None or end is None:
        return False
    if not (is_midnight(start) and is_midnight(end)):
        return False
    return to_ms(end - start) % DAY_MS == 0


def inclusive_end(end: dt.datetime) -> dt.datetime:
    """Turn an exclusive midnight end into the last included day."""
    if is_midnight(end):
        return end - ONE_DAY
    return end


def effective_end(event: Any) -> dt.datetime | None:
    _, end = _bounds(event)
    if end is None:
        return None
    return inclusive_end(end) if is_all_day(event) else end


def duration_ms(event: Any) -> int:
    start, end = _bounds(event)
    if start is None or end is None:
        return 0
    if is_all_day(event):
        return to_ms(inclusive_end(end) + ONE_DAY - start)
    return to_ms(end - start)


def iso_week_number(day: dt.date) -> int:
    """ISO-8601 week number: move to the Thursday of the week, count from Jan 1."""
    day = dt.date(day.year, day.month, day.day)
    thursday = day + dt.timedelta(days=4 - day.isoweekday())
    year_start = dt.date(thursday.year, 1, 1)
    return math.ceil(((thursday - year_start).days + 1) / 7)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def year_bounds(year: int) -> tuple[dt.datetime, dt.datetime]:
    return (
        dt.datetime(year, 1, 1),
        dt.datetime(year, 12, 31, 23, 59, 59, 999000),
    )
