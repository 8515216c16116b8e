import asyncio
import datetime as dt
import json

import pytest

from event_store import (
    SAMPLE_CALENDARS,
    SqliteEventSource,
    init_db,
    load_calendars,
    load_json_events,
    parse_ics_events,
    query_events,
    sample_events,
    store_calendars,
    store_events,
)
from year_layout import compute_layout, run_layout_pass

ICS_TEXT = "\r\n".join(
    [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//year-view//tests//EN",
        "BEGIN:VEVENT",
        "UID:freeze@example.com",
        "SUMMARY:Release freeze",
        "DTSTART;VALUE=DATE:20260304",
        "DTEND;VALUE=DATE:20260308",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:standup@example.com",
        "SUMMARY:Standup",
        "LOCATION:Room 4",
        "DTSTART:20260310T090000",
        "END:VEVENT",
        "END:VCALENDAR",
        "",
    ]
)


@pytest.fixture
def seeded_db(tmp_path):
    db_path = tmp_path / "calendar.db"
    conn = init_db(db_path)
    store_calendars(conn, SAMPLE_CALENDARS)
    store_events(conn, sample_events(2026), "samples")
    yield db_path, conn
    conn.close()


def test_samples_cover_the_year(seeded_db) -> None:
    _, conn = seeded_db
    assert len(query_events(conn, 2026)) == len(sample_events(2026))
    assert [event["title"] for event in query_events(conn, 2025)] == ["Year handover"]
    assert [event["title"] for event in query_events(conn, 2027)] == ["New Year"]


def test_query_filters(seeded_db) -> None:
    _, conn = seeded_db
    holidays = query_events(conn, 2026, calendar_ids=["sample-holidays"])
    assert len(holidays) == 5
    assert {event["calendarName"] for event in holidays} == {"Holidays"}
    assert query_events(conn, 2026, calendar_ids=[]) == []
    timed = {"Design review", "Incident response drill"}
    all_day = query_events(conn, 2026, all_day_only=True)
    assert not timed & {event["title"] for event in all_day}
    assert len(all_day) == len(sample_events(2026)) - len(timed)


def test_stored_records_feed_the_layout(seeded_db) -> None:
    _, conn = seeded_db
    records = query_events(conn, 2026)
    freeze = next(event for event in records if event["title"] == "Release freeze")
    assert (freeze["start"], freeze["end"], freeze["allDay"]) == ("20260304", "20260308", True)
    drill = next(event for event in records if event["title"] == "Incident response drill")
    assert drill["start"] == "20261120T180000"
    result = compute_layout(2026, "linear", records)
    assert {p.event.id for p in result.segments} == {event["id"] for event in records}


def test_store_replaces_calendar_contents(seeded_db) -> None:
    _, conn = seeded_db
    store_events(
        conn,
        [{"id": "w1", "calendarId": "sample-work", "title": "Only", "start": "20260601", "end": "20260602"}],
        "update",
    )
    work = query_events(conn, 2026, calendar_ids=["sample-work"])
    assert [event["id"] for event in work] == ["w1"]
    assert query_events(conn, 2026, calendar_ids=["sample-personal"])


def test_parse_ics_events() -> None:
    records = parse_ics_events(ICS_TEXT, "ics")
    freeze, standup = records
    assert freeze["id"] == "freeze@example.com"
    assert freeze["allDay"] is True
    assert (freeze["start"], freeze["end"]) == (dt.date(2026, 3, 4), dt.date(2026, 3, 8))
    assert standup["allDay"] is False
    assert standup["end"] == standup["start"] == dt.datetime(2026, 3, 10, 9, 0)
    assert standup["location"] == "Room 4"


def test_imported_ics_round_trips_through_store(tmp_path) -> None:
    conn = init_db(tmp_path / "calendar.db")
    count = store_events(conn, parse_ics_events(ICS_TEXT, "ics"), "team.ics", calendar_id="ics")
    assert count == 2
    events = query_events(conn, 2026)
    assert [(event["start"], event["end"]) for event in events] == [
        ("20260304", "20260308"),
        ("20260310T090000", "20260310T090000"),
    ]
    conn.close()


def test_load_json_events(tmp_path) -> None:
    path = tmp_path / "events.json"
    path.write_text(json.dumps({"events": [{"id": "a"}, "junk"]}), encoding="utf-8")
    assert load_json_events(path) == [{"id": "a"}]
    path.write_text(json.dumps("nope"), encoding="utf-8")
    with pytest.raises(ValueError):
        load_json_events(path)


def test_sqlite_source(seeded_db) -> None:
    db_path, conn = seeded_db
    source = SqliteEventSource(db_path)
    calendars = asyncio.run(source.fetch_calendars())
    assert [cal["id"] for cal in calendars] == [cal["id"] for cal in SAMPLE_CALENDARS]
    records = asyncio.run(source.fetch_events(2026, calendar_ids=["sample-project"]))
    assert {event["calendarId"] for event in records} == {"sample-project"}
    assert load_calendars(conn)[0]["name"] == "Work"


def test_missing_database(tmp_path) -> None:
    source = SqliteEventSource(tmp_path / "missing.db")
    assert asyncio.run(source.fetch_calendars()) == []
    with pytest.raises(FileNotFoundError):
        asyncio.run(source.fetch_events(2026))
    result = asyncio.run(run_layout_pass(2026, "linear", source))
    assert result.segments == []
    assert not (tmp_path / "missing.db").exists()
