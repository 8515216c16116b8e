"""Year layout pass: normalize, filter, split, pack lanes and size rows for one view mode."""

from __future__ import annotations

import calendar
import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from calendar_events import CalendarEvent, normalize_events
from date_utils import HOUR_MS, duration_ms, is_all_day
from lane_packer import (
    DEFAULT_MAX_LANES,
    PlacedSegment,
    RowSizing,
    assign_lanes,
    compute_row_heights,
    sort_events,
)
from row_topology import RowTopology, WeekMarker, get_topology

logger = logging.getLogger(__name__)

YEAR_MIN = 1900
YEAR_MAX = 2999


class EventSource(Protocol):
    async def fetch_events(
        self,
        year: int,
        calendar_ids: Sequence[str] | None = None,
        all_day_only: bool = False,
    ) -> list[dict]: ...


@dataclass(frozen=True)
class LayoutOptions:
    show_week_numbers: bool = True
    calendar_ids: frozenset[str] | None = None
    all_day_only: bool = False
    min_duration_hours: float = 0
    max_lanes: int = DEFAULT_MAX_LANES
    week_row_cap: int = 14
    first_weekday: int = calendar.MONDAY
    sizing: RowSizing = field(default_factory=RowSizing)


@dataclass(frozen=True)
class FilterStats:
    filtered_out: int = 0
    total: int = 0
    threshold_hours: float = 0
    active: bool = False


@dataclass
class LayoutResult:
    year: int
    topology: str
    segments: list[PlacedSegment]
    row_heights: list[int]
    lane_counts: list[int]
    row_width: int
    header_row: str | None = None
    week_markers: list[WeekMarker] = field(default_factory=list)
    filter_stats: FilterStats = field(default_factory=FilterStats)
    clamped_event_ids: list[str] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.row_heights)

    @property
    def degraded(self) -> bool:
        return bool(self.clamped_event_ids)

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "topology": self.topology,
            "rowWidth": self.row_width,
            "headerRow": self.header_row,
            "rowHeights": list(self.row_heights),
            "laneCounts": list(self.lane_counts),
            "segments": [placed.to_dict() for placed in self.segments],
            "weekMarkers": [
                {"rowIndex": m.row_index, "unit": m.unit, "label": m.label}
                for m in self.week_markers
            ],
            "filterSummary": format_filter_summary(self.filter_stats),
            "degraded": self.degraded,
        }


def clamp_year(value: Any, fallback: int | None = None) -> int:
    try:
        year = int(value)
    except (TypeError, ValueError):
        if fallback is None:
            raise
        year = fallback
    return min(YEAR_MAX, max(YEAR_MIN, year))


def min_duration_ms(hours: Any) -> int:
    try:
        value = float(hours)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(value) or value < 0:
        return 0
    return int(value * HOUR_MS)


def filter_events(
    events: Iterable[CalendarEvent], options: LayoutOptions
) -> tuple[list[CalendarEvent], FilterStats]:
    """Apply calendar selection, all-day-only and the minimum duration.

    The stats count only what the minimum-duration threshold removed.
    """
    selected = [
        event
        for event in events
        if (options.calendar_ids is None or event.calendar_id in options.calendar_ids)
        and (not options.all_day_only or is_all_day(event))
    ]
    threshold = min_duration_ms(options.min_duration_hours)
    if threshold <= 0:
        return selected, FilterStats(total=len(selected))
    kept = [event for event in selected if duration_ms(event) >= threshold]
    stats = FilterStats(
        filtered_out=len(selected) - len(kept),
        total=len(selected),
        threshold_hours=threshold / HOUR_MS,
        active=bool(selected),
    )
    return kept, stats


def format_filter_summary(stats: FilterStats) -> str:
    if not stats.active or not stats.total:
        return ""
    hours = f"{stats.threshold_hours:.2f}".rstrip("0").rstrip(".")
    if stats.filtered_out > 0:
        return f"Filtered out {stats.filtered_out} of {stats.total} events under {hours}h"
    return f"No events under {hours}h"


def resolve_topology(topology: str | RowTopology, options: LayoutOptions) -> RowTopology:
    if isinstance(topology, RowTopology):
        return topology
    return get_topology(
        topology,
        first_weekday=options.first_weekday,
        row_cap=options.week_row_cap,
    )


def compute_layout(
    year: int,
    topology: str | RowTopology,
    events: Iterable[Any],
    options: LayoutOptions | None = None,
) -> LayoutResult:
    """Lay out one year of events for a view mode.

    ``events`` may hold raw event records or ``CalendarEvent`` values. An
    unknown view mode raises ``UnknownTopologyError`` before any event is
    touched. The result depends only on the arguments.
    """
    options = options or LayoutOptions()
    row_topology = resolve_topology(topology, options)

    kept, stats = filter_events(normalize_events(events), options)
    split = [(event, row_topology.split(year, event)) for event in sort_events(kept)]
    assignment = assign_lanes(split, row_topology.new_occupancy(year), options.max_lanes)

    return LayoutResult(
        year=year,
        topology=row_topology.name,
        segments=assignment.placed,
        row_heights=compute_row_heights(assignment.lane_counts, options.sizing),
        lane_counts=assignment.lane_counts,
        row_width=row_topology.row_width(year),
        header_row="auto" if row_topology.has_header_row else None,
        week_markers=row_topology.week_markers(year) if options.show_week_numbers else [],
        filter_stats=stats,
        clamped_event_ids=assignment.clamped_event_ids,
    )


async def fetch_year_events(source: EventSource, year: int, options: LayoutOptions) -> list:
    if options.calendar_ids is not None and not options.calendar_ids:
        return []
    calendar_ids = sorted(options.calendar_ids) if options.calendar_ids is not None else None
    try:
        records = await source.fetch_events(
            year, calendar_ids=calendar_ids, all_day_only=options.all_day_only
        )
    except Exception as e:
        logger.warning(f"Event fetch for {year} failed: {e}")
        return []
    return list(records or [])


async def run_layout_pass(
    year: int,
    topology: str | RowTopology,
    source: EventSource,
    options: LayoutOptions | None = None,
) -> LayoutResult:
    options = options or LayoutOptions()
    resolve_topology(topology, options)
    records = await fetch_year_events(source, year, options)
    return compute_layout(year, topology, records, options)


class LayoutSession:
    """Runs layout passes for one view; a pass overtaken by a newer one is discarded."""

    def __init__(self, source: EventSource) -> None:
        self.source = source
        self.current: LayoutResult | None = None
        self._generation = 0

    async def refresh(
        self,
        year: int,
        topology: str | RowTopology,
        options: LayoutOptions | None = None,
    ) -> LayoutResult | None:
        options = options or LayoutOptions()
        resolve_topology(topology, options)
        self._generation += 1
        generation = self._generation
        records = await fetch_year_events(self.source, year, options)
        if generation != self._generation:
            logger.debug(f"Discarding stale layout pass for {year}")
            return None
        self.current = compute_layout(year, topology, records, options)
        return self.current
