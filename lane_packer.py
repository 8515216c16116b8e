"""Greedy lane assignment for row segments and the row heights that follow from it."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from calendar_events import CalendarEvent
from date_utils import duration_ms
from row_topology import Segment

logger = logging.getLogger(__name__)

DEFAULT_MAX_LANES = 50


class Occupancy(Protocol):
    def fits(self, lane: int, segment: Segment) -> bool: ...

    def mark(self, lane: int, segment: Segment) -> None: ...

    def lane_counts(self) -> list[int]: ...


@dataclass(frozen=True)
class PlacedSegment:
    segment: Segment
    lane_index: int
    event: CalendarEvent

    def to_dict(self) -> dict:
        return {
            "rowIndex": self.segment.row_index,
            "startUnit": self.segment.start_unit,
            "endUnit": self.segment.end_unit,
            "sourceEventId": self.segment.event_id,
            "laneIndex": self.lane_index,
            "continuesFromPriorRow": self.segment.continues_from_prior_row,
            "continuesToNextRow": self.segment.continues_to_next_row,
            "title": self.event.title,
            "calendarId": self.event.calendar_id,
            "calendarColor": self.event.calendar_color,
        }


@dataclass
class LaneAssignment:
    placed: list[PlacedSegment] = field(default_factory=list)
    lane_counts: list[int] = field(default_factory=list)
    clamped_event_ids: list[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.clamped_event_ids)


@dataclass(frozen=True)
class RowSizing:
    base_unit: int = 72
    first_lane_offset: int = 55
    lane_spacing: int = 26


def event_sort_key(event: CalendarEvent) -> tuple:
    # start, then longer first, then title; id keeps the order total
    return (event.start, -duration_ms(event), event.title, event.id)


def sort_events(events: Sequence[CalendarEvent]) -> list[CalendarEvent]:
    return sorted(events, key=event_sort_key)


def find_lane(
    occupancy: Occupancy, segments: Sequence[Segment], max_lanes: int = DEFAULT_MAX_LANES
) -> int | None:
    """Lowest lane in which every segment fits, or None past ``max_lanes``."""
    for lane in range(max_lanes):
        if all(occupancy.fits(lane, segment) for segment in segments):
            return lane
    return None


def assign_lanes(
    split_events: Sequence[tuple[CalendarEvent, list[Segment]]],
    occupancy: Occupancy,
    max_lanes: int = DEFAULT_MAX_LANES,
) -> LaneAssignment:
    """Give each event one lane shared by all of its segments.

    ``split_events`` must already be in packing order. An event that finds
    no free lane below ``max_lanes`` is clamped onto the last lane and
    reported in ``clamped_event_ids``.
    """
    result = LaneAssignment()
    for event, segments in split_events:
        if not segments:
            continue
        lane = find_lane(occupancy, segments, max_lanes)
        if lane is None:
            lane = max_lanes - 1
            result.clamped_event_ids.append(event.id)
            logger.warning(
                f"No free lane for event {event.id!r} within {max_lanes} lanes; clamping to lane {lane}"
            )
        for segment in segments:
            occupancy.mark(lane, segment)
            result.placed.append(PlacedSegment(segment=segment, lane_index=lane, event=event))
    result.lane_counts = occupancy.lane_counts()
    return result


def row_height(lane_count: int, sizing: RowSizing) -> int:
    if lane_count <= 0:
        return sizing.base_unit
    needed = sizing.first_lane_offset + max(0, lane_count - 1) * sizing.lane_spacing
    return max(sizing.base_unit, needed)


def compute_row_heights(lane_counts: Sequence[int], sizing: RowSizing | None = None) -> list[int]:
    sizing = sizing or RowSizing()
    return [row_height(count, sizing) for count in lane_counts]
