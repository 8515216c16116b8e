"""SQLite-backed calendar event source, with iCalendar and JSON import."""

from __future__ import annotations

import asyncio
import datetime as dt
import json
import logging
import sqlite3
from collections.abc import Iterable, Sequence
from contextlib import closing
from pathlib import Path
from typing import Any

from icalendar import Calendar

from calendar_events import normalize_event

logger = logging.getLogger(__name__)

SAMPLE_CALENDARS = [
    {"id": "sample-work", "name": "Work", "color": "#0ea5e9"},
    {"id": "sample-personal", "name": "Personal", "color": "#22c55e"},
    {"id": "sample-project", "name": "Project X", "color": "#f97316"},
    {"id": "sample-holidays", "name": "Holidays", "color": "#ef4444"},
]

# (calendar, title, start (year offset, month, day[, hour, minute]), end, all day)
SAMPLE_EVENTS = [
    ("sample-work", "Design review", (0, 2, 12, 9, 0), (0, 2, 12, 13, 30), False),
    ("sample-work", "Release freeze", (0, 3, 4), (0, 3, 8), True),
    ("sample-personal", "Summer vacation", (0, 7, 8), (0, 7, 23), True),
    ("sample-project", "Project rollout window", (0, 10, 3), (0, 10, 29), True),
    ("sample-project", "Incident response drill", (0, 11, 20, 18, 0), (0, 11, 21, 2, 0), False),
    ("sample-personal", "Year handover", (-1, 12, 29), (0, 1, 10), True),
    ("sample-work", "Team building", (0, 3, 15), (0, 3, 18), True),
    ("sample-personal", "Family reunion", (0, 4, 20), (0, 4, 23), True),
    ("sample-project", "Beta testing", (0, 5, 10), (0, 5, 16), True),
    ("sample-holidays", "Christmas break", (0, 12, 24), (0, 12, 27), True),
    ("sample-holidays", "New Year", (0, 12, 31), (1, 1, 3), True),
    ("sample-work", "Quarterly planning", (0, 5, 5), (0, 5, 20), True),
    ("sample-work", "Client workshops", (0, 7, 7), (0, 7, 22), True),
    ("sample-work", "Performance reviews", (0, 9, 1), (0, 9, 16), True),
    ("sample-personal", "Extended family visit", (0, 5, 10), (0, 5, 25), True),
    ("sample-personal", "Home renovation", (0, 8, 1), (0, 8, 16), True),
    ("sample-personal", "Thanksgiving prep", (0, 11, 1), (0, 11, 16), True),
    ("sample-project", "Development sprint", (0, 6, 1), (0, 6, 16), True),
    ("sample-project", "User testing phase", (0, 5, 15), (0, 5, 30), True),
    ("sample-project", "Launch preparation", (0, 10, 1), (0, 10, 16), True),
    ("sample-holidays", "Spring break", (0, 4, 1), (0, 4, 16), True),
    ("sample-holidays", "Memorial Day weekend", (0, 5, 20), (0, 6, 4), True),
    ("sample-holidays", "Thanksgiving week", (0, 11, 20), (0, 12, 1), True),
]


def init_db(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path))
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS calendars (
            id TEXT PRIMARY KEY,
            name TEXT,
            color TEXT
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS events (
            id TEXT PRIMARY KEY,
            calendar_id TEXT NOT NULL,
            title TEXT,
            start_at TEXT NOT NULL,
            end_at TEXT NOT NULL,
            all_day INTEGER NOT NULL DEFAULT 0,
            description TEXT,
            location TEXT
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT
        )
        """
    )
    return conn


def format_calendar_date(value: dt.datetime, all_day: bool) -> str:
    if all_day and value.hour == 0 and value.minute == 0 and value.second == 0:
        return value.strftime("%Y%m%d")
    return value.strftime("%Y%m%dT%H%M%S")


def store_calendars(conn: sqlite3.Connection, calendars: Iterable[dict]) -> int:
    rows = [
        (str(cal["id"]), cal.get("name") or "(unnamed)", cal.get("color"))
        for cal in calendars
        if cal.get("id")
    ]
    conn.executemany(
        "INSERT OR REPLACE INTO calendars (id, name, color) VALUES (?, ?, ?)",
        rows,
    )
    conn.commit()
    return len(rows)


def store_events(
    conn: sqlite3.Connection, records: Iterable[Any], source: str, calendar_id: str | None = None
) -> int:
    """Replace the stored events of every calendar present in ``records``.

    Records are raw event mappings; ``calendar_id`` fills in records that
    carry none. Records that do not normalize are skipped.
    """
    rows = []
    for index, record in enumerate(records):
        event = normalize_event(record)
        if event is None:
            continue
        owner = event.calendar_id or calendar_id
        if not owner:
            continue
        event_id = event.id or f"{owner}-{index}"
        rows.append(
            (
                event_id,
                owner,
                event.title,
                format_calendar_date(event.start, event.is_all_day),
                format_calendar_date(event.end, event.is_all_day),
                int(event.is_all_day),
                event.description,
                event.location,
            )
        )

    owners = sorted({row[1] for row in rows})
    conn.executemany("DELETE FROM events WHERE calendar_id = ?", [(owner,) for owner in owners])
    conn.executemany(
        """
        INSERT OR REPLACE INTO events (
            id,
            calendar_id,
            title,
            start_at,
            end_at,
            all_day,
            description,
            location
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        rows,
    )
    conn.execute(
        "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)",
        ("last_source", source),
    )
    conn.execute(
        "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)",
        ("generated_at", dt.datetime.now(dt.timezone.utc).isoformat()),
    )
    conn.commit()
    return len(rows)


def load_calendars(conn: sqlite3.Connection) -> list[dict]:
    rows = conn.execute("SELECT id, name, color FROM calendars ORDER BY rowid").fetchall()
    return [{"id": row[0], "name": row[1] or "(unnamed)", "color": row[2]} for row in rows]


def query_events(
    conn: sqlite3.Connection,
    year: int,
    calendar_ids: Sequence[str] | None = None,
    all_day_only: bool = False,
) -> list[dict]:
    """Raw event records that start in, end in, or span ``year``."""
    year_text = f"{year:04d}"
    sql = """
        SELECT e.id, e.calendar_id, c.name, c.color, e.title, e.start_at, e.end_at,
               e.all_day, e.description, e.location
        FROM events e
        LEFT JOIN calendars c ON c.id = e.calendar_id
        WHERE substr(e.start_at, 1, 4) <= ? AND substr(e.end_at, 1, 4) >= ?
    """
    params: list[Any] = [year_text, year_text]
    if calendar_ids is not None:
        if not calendar_ids:
            return []
        sql += f" AND e.calendar_id IN ({', '.join('?' for _ in calendar_ids)})"
        params.extend(calendar_ids)
    if all_day_only:
        sql += " AND e.all_day = 1"
    sql += " ORDER BY e.start_at, e.end_at, e.id"

    events = []
    for row in conn.execute(sql, params).fetchall():
        events.append(
            {
                "id": row[0],
                "calendarId": row[1],
                "calendarName": row[2] or "(unnamed)",
                "calendarColor": row[3],
                "title": row[4] or "",
                "start": row[5],
                "end": row[6],
                "allDay": bool(row[7]),
                "description": row[8] or "",
                "location": row[9] or "",
            }
        )
    return events


def parse_ics_events(text: str, calendar_id: str) -> list[dict]:
    """Read VEVENTs from iCalendar text into raw event records.

    DATE values become all-day events; a missing DTEND means one day for
    all-day events and zero length otherwise. Recurrence rules are not
    expanded.
    """
    try:
        cal = Calendar.from_ical(text)
    except ValueError as e:
        raise ValueError(f"Invalid iCalendar data: {e}") from e

    records = []
    for component in cal.walk("VEVENT"):
        dtstart = component.get("dtstart")
        if dtstart is None:
            continue
        start = dtstart.dt
        all_day = not isinstance(start, dt.datetime)
        dtend = component.get("dtend")
        if dtend is not None:
            end = dtend.dt
        elif all_day:
            end = start + dt.timedelta(days=1)
        else:
            end = start
        uid = component.get("uid")
        records.append(
            {
                "id": str(uid) if uid else None,
                "calendarId": calendar_id,
                "title": str(component.get("summary") or ""),
                "start": start,
                "end": end,
                "allDay": all_day,
                "description": str(component.get("description") or ""),
                "location": str(component.get("location") or ""),
            }
        )
    return records


def load_json_events(path: Path) -> list[dict]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("events", [])
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of events in {path}")
    return [record for record in data if isinstance(record, dict)]


def _sample_datetime(year: int, parts: tuple) -> dt.datetime:
    offset, month, day, *clock = parts
    return dt.datetime(year + offset, month, day, *clock)


def sample_events(year: int) -> list[dict]:
    return [
        {
            "id": f"sample-{year}-{index}",
            "calendarId": calendar_id,
            "title": title,
            "start": _sample_datetime(year, start),
            "end": _sample_datetime(year, end),
            "allDay": all_day,
        }
        for index, (calendar_id, title, start, end, all_day) in enumerate(SAMPLE_EVENTS, start=1)
    ]


class SqliteEventSource:
    """Async event source over the SQLite store; each call opens its own connection."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        if not self.db_path.exists():
            raise FileNotFoundError(f"Event database not found: {self.db_path}")
        return sqlite3.connect(str(self.db_path))

    def _calendars(self) -> list[dict]:
        with closing(self._connect()) as conn:
            return load_calendars(conn)

    def _events(self, year: int, calendar_ids: Sequence[str] | None, all_day_only: bool) -> list[dict]:
        with closing(self._connect()) as conn:
            return query_events(conn, year, calendar_ids, all_day_only)

    async def fetch_calendars(self) -> list[dict]:
        try:
            return await asyncio.to_thread(self._calendars)
        except (OSError, sqlite3.Error) as e:
            logger.warning(f"Failed to read calendars: {e}")
            return []

    async def fetch_events(
        self,
        year: int,
        calendar_ids: Sequence[str] | None = None,
        all_day_only: bool = False,
    ) -> list[dict]:
        return await asyncio.to_thread(self._events, year, calendar_ids, all_day_only)
