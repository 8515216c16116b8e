import datetime as dt
import logging

from calendar_events import CalendarEvent
from lane_packer import (
    RowSizing,
    assign_lanes,
    compute_row_heights,
    find_lane,
    row_height,
    sort_events,
)
from row_topology import HighWaterOccupancy, LinearTopology, Segment


def make_event(
    event_id: str, start: dt.datetime, end: dt.datetime, all_day: bool = False, title: str | None = None
) -> CalendarEvent:
    return CalendarEvent(
        id=event_id, title=title or event_id, start=start, end=end, is_all_day=all_day
    )


def pack(events: list[CalendarEvent], max_lanes: int = 50):
    topology = LinearTopology()
    split = [(event, topology.split(2026, event)) for event in sort_events(events)]
    return assign_lanes(split, topology.new_occupancy(2026), max_lanes)


def lanes_by_event(assignment) -> dict[str, set[int]]:
    lanes: dict[str, set[int]] = {}
    for placed in assignment.placed:
        lanes.setdefault(placed.event.id, set()).add(placed.lane_index)
    return lanes


def test_overnight_event_pushes_overlap_to_second_lane() -> None:
    assignment = pack(
        [
            make_event("short", dt.datetime(2026, 3, 1, 9), dt.datetime(2026, 3, 1, 10)),
            make_event("overnight", dt.datetime(2026, 3, 1, 8), dt.datetime(2026, 3, 2, 8)),
        ]
    )
    assert lanes_by_event(assignment) == {"overnight": {0}, "short": {1}}
    assert assignment.lane_counts[2] == 2
    assert compute_row_heights(assignment.lane_counts)[2] == 81
    assert not assignment.degraded


def test_sort_prefers_earlier_then_longer_then_title() -> None:
    start = dt.datetime(2026, 6, 1, 9)
    events = [
        make_event("b", start, start + dt.timedelta(hours=1), title="Beta"),
        make_event("long", start, start + dt.timedelta(hours=3), title="Zulu"),
        make_event("a", start, start + dt.timedelta(hours=1), title="Alpha"),
        make_event("early", start - dt.timedelta(hours=1), start, title="Zulu"),
    ]
    assert [event.id for event in sort_events(events)] == ["early", "long", "a", "b"]


def test_event_keeps_one_lane_across_rows() -> None:
    assignment = pack(
        [
            make_event("end-of-january", dt.datetime(2026, 1, 29), dt.datetime(2026, 2, 1), all_day=True),
            make_event("crossing", dt.datetime(2026, 1, 30), dt.datetime(2026, 2, 3), all_day=True),
        ]
    )
    assert lanes_by_event(assignment) == {"end-of-january": {0}, "crossing": {1}}
    # February has nothing in lane 0 but still reserves it
    assert assignment.lane_counts[1] == 2


def test_no_overlap_within_a_lane() -> None:
    events = [
        make_event(f"e{i}", dt.datetime(2026, 5, 1 + i), dt.datetime(2026, 5, 4 + i), all_day=True)
        for i in range(6)
    ]
    assignment = pack(events)
    taken: dict[tuple[int, int], set[int]] = {}
    for placed in assignment.placed:
        units = set(placed.segment.units())
        key = (placed.segment.row_index, placed.lane_index)
        assert not taken.get(key, set()) & units
        taken.setdefault(key, set()).update(units)
    assert assignment.lane_counts[4] == 3


def test_clamps_to_last_lane_when_full(caplog) -> None:
    day = dt.datetime(2026, 4, 10)
    events = [
        make_event(f"e{i}", day, day + dt.timedelta(days=1), all_day=True)
        for i in range(3)
    ]
    with caplog.at_level(logging.WARNING, logger="lane_packer"):
        assignment = pack(events, max_lanes=2)
    assert assignment.degraded
    assert assignment.clamped_event_ids == ["e2"]
    assert lanes_by_event(assignment)["e2"] == {1}
    assert "No free lane" in caplog.text


def test_find_lane_returns_none_when_nothing_fits() -> None:
    occupancy = HighWaterOccupancy(1)
    occupancy.mark(0, Segment(0, 1, 5, "a"))
    assert find_lane(occupancy, [Segment(0, 3, 4, "b")], max_lanes=1) is None
    assert find_lane(occupancy, [Segment(0, 3, 4, "b")], max_lanes=2) == 1


def test_row_heights() -> None:
    sizing = RowSizing()
    assert row_height(0, sizing) == 72
    assert row_height(1, sizing) == 72
    assert row_height(2, sizing) == 81
    assert row_height(3, sizing) == 107
    assert compute_row_heights([0, 4], RowSizing(base_unit=40, first_lane_offset=20, lane_spacing=10)) == [40, 50]


def test_placed_segment_serializes() -> None:
    assignment = pack(
        [make_event("x", dt.datetime(2026, 1, 30), dt.datetime(2026, 2, 2), all_day=True)]
    )
    data = [placed.to_dict() for placed in assignment.placed]
    assert data[0]["sourceEventId"] == "x"
    assert data[0]["continuesToNextRow"] is True
    assert data[1]["rowIndex"] == 1
    assert data[1]["laneIndex"] == 0
