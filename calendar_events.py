"""Canonical calendar events and the normalizer for raw event records."""

from __future__ import annotations

import datetime as dt
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

DATE_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
DATETIME_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})$")
FILL_CHECK_DEFAULTS = (dt.datetime(1901, 1, 1), dt.datetime(1902, 2, 2))


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    title: str
    start: dt.datetime
    end: dt.datetime
    is_all_day: bool = False
    calendar_id: str | None = None
    calendar_name: str | None = None
    calendar_color: str | None = None
    description: str = ""
    location: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "isAllDay": self.is_all_day,
            "calendarId": self.calendar_id,
            "calendarName": self.calendar_name,
            "calendarColor": self.calendar_color,
            "description": self.description,
            "location": self.location,
        }


def to_local_naive(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def parse_calendar_date(value: Any) -> dt.datetime | None:
    """Parse a date field into a naive local datetime.

    Accepts native datetimes and dates, ``YYYYMMDD`` (local midnight),
    ``YYYYMMDDTHHMMSS`` (local wall time) and any dateutil-readable string
    that names a full date.
    Returns None when the value cannot be read.
    """
    if isinstance(value, dt.datetime):
        return to_local_naive(value)
    if isinstance(value, dt.date):
        return dt.datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None

    try:
        match = DATE_RE.match(text)
        if match:
            year, month, day = (int(part) for part in match.groups())
            return dt.datetime(year, month, day)
        match = DATETIME_RE.match(text)
        if match:
            return dt.datetime(*(int(part) for part in match.groups()))
        # dateutil fills missing fields from its default; two defaults expose that
        first = date_parser.parse(text, default=FILL_CHECK_DEFAULTS[0])
        second = date_parser.parse(text, default=FILL_CHECK_DEFAULTS[1])
        if first != second:
            return None
        return to_local_naive(first)
    except (ValueError, OverflowError):
        return None


def _optional_text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def normalize_event(record: Any) -> CalendarEvent | None:
    if isinstance(record, CalendarEvent):
        return record
    if not isinstance(record, Mapping):
        return None

    start = parse_calendar_date(record.get("start") or record.get("startDate"))
    end = parse_calendar_date(record.get("end") or record.get("endDate"))
    if start is None or end is None or end < start:
        return None

    return CalendarEvent(
        id=str(record.get("id") or ""),
        title=str(record.get("title") or ""),
        start=start,
        end=end,
        is_all_day=record.get("allDay") is True or record.get("isAllDay") is True,
        calendar_id=_optional_text(record.get("calendarId")),
        calendar_name=_optional_text(record.get("calendarName")),
        calendar_color=_optional_text(record.get("calendarColor") or record.get("color")),
        description=str(record.get("description") or ""),
        location=str(record.get("location") or ""),
    )


def normalize_events(records: Iterable[Any]) -> list[CalendarEvent]:
    events: list[CalendarEvent] = []
    dropped = 0
    for record in records:
        event = normalize_event(record)
        if event is None:
            dropped += 1
            continue
        events.append(event)
    if dropped:
        logger.debug(f"Dropped {dropped} malformed event records")
    return events
