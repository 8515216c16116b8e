"""Row topologies for the year grid: clipping events to a year and splitting them into row segments."""

from __future__ import annotations

import calendar
import datetime as dt
from dataclasses import dataclass, fields
from typing import Any, ClassVar

from date_utils import (
    days_in_month,
    effective_end,
    is_all_day,
    iso_week_number,
    year_bounds,
)

MONTH_NAMES = list(calendar.month_name)[1:]


class UnknownTopologyError(ValueError):
    pass


@dataclass(frozen=True)
class Segment:
    row_index: int
    start_unit: int
    end_unit: int
    event_id: str
    continues_from_prior_row: bool = False
    continues_to_next_row: bool = False

    def units(self) -> range:
        return range(self.start_unit, self.end_unit + 1)


@dataclass(frozen=True)
class WeekMarker:
    row_index: int
    unit: int
    week: int

    @property
    def label(self) -> str:
        return f"W{self.week}"


def clip_to_year(event: Any, year: int) -> tuple[dt.datetime, dt.datetime] | None:
    """Clip ``[start, effective end]`` to the year; None when nothing is left."""
    start = getattr(event, "start", None)
    end = effective_end(event)
    if start is None or end is None:
        return None
    year_start, year_end = year_bounds(year)
    clipped_start = max(start, year_start)
    clipped_end = min(end, year_end)
    if clipped_end < clipped_start:
        return None
    return clipped_start, clipped_end


class HighWaterOccupancy:
    """Per row, per lane: the highest unit taken so far."""

    def __init__(self, row_count: int) -> None:
        self.rows: list[list[int | None]] = [[] for _ in range(row_count)]

    def fits(self, lane: int, segment: Segment) -> bool:
        lanes = self.rows[segment.row_index]
        if lane >= len(lanes) or lanes[lane] is None:
            return True
        return lanes[lane] < segment.start_unit

    def mark(self, lane: int, segment: Segment) -> None:
        lanes = self.rows[segment.row_index]
        while len(lanes) <= lane:
            lanes.append(None)
        current = lanes[lane]
        lanes[lane] = segment.end_unit if current is None else max(current, segment.end_unit)

    def lane_counts(self) -> list[int]:
        return [len(lanes) for lanes in self.rows]


class UnitSetOccupancy:
    """Per row, per lane: the explicit set of units taken."""

    def __init__(self, row_count: int) -> None:
        self.rows: list[list[set[int]]] = [[] for _ in range(row_count)]

    def fits(self, lane: int, segment: Segment) -> bool:
        lanes = self.rows[segment.row_index]
        if lane >= len(lanes):
            return True
        return lanes[lane].isdisjoint(segment.units())

    def mark(self, lane: int, segment: Segment) -> None:
        lanes = self.rows[segment.row_index]
        while len(lanes) <= lane:
            lanes.append(set())
        lanes[lane].update(segment.units())

    def lane_counts(self) -> list[int]:
        return [len(lanes) for lanes in self.rows]


class RowTopology:
    name: ClassVar[str] = ""
    has_header_row: ClassVar[bool] = False
    first_unit: ClassVar[int] = 1

    def row_count(self, year: int) -> int:
        raise NotImplementedError

    def row_width(self, year: int) -> int:
        raise NotImplementedError

    def split(self, year: int, event: Any) -> list[Segment]:
        raise NotImplementedError

    def new_occupancy(self, year: int) -> HighWaterOccupancy | UnitSetOccupancy:
        raise NotImplementedError

    def unit_date(self, year: int, row: int, unit: int) -> dt.date | None:
        raise NotImplementedError

    def row_label(self, year: int, row: int) -> str:
        raise NotImplementedError

    def week_markers(self, year: int) -> list[WeekMarker]:
        raise NotImplementedError

    def weekday_headers(self, year: int) -> list[str]:
        return []


@dataclass(frozen=True)
class MonthRowsTopology(RowTopology):
    """One row per month; subclasses decide where day 1 sits."""

    def column_offset(self, year: int, month: int) -> int:
        return 0

    def row_count(self, year: int) -> int:
        return 12

    def new_occupancy(self, year: int) -> HighWaterOccupancy:
        return HighWaterOccupancy(self.row_count(year))

    def split(self, year: int, event: Any) -> list[Segment]:
        clipped = clip_to_year(event, year)
        if clipped is None:
            return []
        start, end = clipped
        same_day_timed = not is_all_day(event) and start.date() == end.date()
        absolute_end = effective_end(event)
        first_month = (event.start.year, event.start.month)
        last_month = (absolute_end.year, absolute_end.month)

        segments: list[Segment] = []
        for month in range(start.month, end.month + 1):
            first_day = start.day if month == start.month else 1
            last_day = end.day if month == end.month else days_in_month(year, month)
            if same_day_timed:
                last_day = first_day
            offset = self.column_offset(year, month)
            segments.append(
                Segment(
                    row_index=month - 1,
                    start_unit=offset + first_day,
                    end_unit=offset + last_day,
                    event_id=event.id,
                    continues_from_prior_row=(year, month) > first_month,
                    continues_to_next_row=(year, month) < last_month,
                )
            )
        return segments

    def unit_date(self, year: int, row: int, unit: int) -> dt.date | None:
        if not 0 <= row < 12:
            return None
        month = row + 1
        day = unit - self.column_offset(year, month)
        if 1 <= day <= days_in_month(year, month):
            return dt.date(year, month, day)
        return None

    def row_label(self, year: int, row: int) -> str:
        return MONTH_NAMES[row]

    def week_markers(self, year: int) -> list[WeekMarker]:
        markers: list[WeekMarker] = []
        for month in range(1, 13):
            offset = self.column_offset(year, month)
            for day in range(1, days_in_month(year, month) + 1):
                date = dt.date(year, month, day)
                if date.weekday() == calendar.MONDAY:
                    markers.append(WeekMarker(month - 1, offset + day, iso_week_number(date)))
        return markers


@dataclass(frozen=True)
class LinearTopology(MonthRowsTopology):
    name: ClassVar[str] = "linear"

    def row_width(self, year: int) -> int:
        return 31


@dataclass(frozen=True)
class DayAlignedTopology(MonthRowsTopology):
    name: ClassVar[str] = "day-aligned"
    has_header_row: ClassVar[bool] = True

    first_weekday: int = calendar.MONDAY

    def column_offset(self, year: int, month: int) -> int:
        return (dt.date(year, month, 1).weekday() - self.first_weekday) % 7

    def row_width(self, year: int) -> int:
        return max(
            self.column_offset(year, month) + days_in_month(year, month)
            for month in range(1, 13)
        )

    def weekday_headers(self, year: int) -> list[str]:
        names = list(calendar.day_abbr)
        return [
            names[(self.first_weekday + column) % 7]
            for column in range(self.row_width(year))
        ]


@dataclass(frozen=True)
class WeekRowsTopology(RowTopology):
    name: ClassVar[str] = "week-rows"
    has_header_row: ClassVar[bool] = True
    first_unit: ClassVar[int] = 0

    row_days: int = 28
    row_cap: int = 14

    def grid_start(self, year: int) -> dt.date:
        jan_first = dt.date(year, 1, 1)
        return jan_first - dt.timedelta(days=jan_first.weekday())

    def row_count(self, year: int) -> int:
        total_days = (dt.date(year, 12, 31) - self.grid_start(year)).days + 1
        return min(self.row_cap, -(-total_days // self.row_days))

    def row_width(self, year: int) -> int:
        return self.row_days

    def new_occupancy(self, year: int) -> UnitSetOccupancy:
        return UnitSetOccupancy(self.row_count(year))

    def split(self, year: int, event: Any) -> list[Segment]:
        clipped = clip_to_year(event, year)
        if clipped is None:
            return []
        start, end = clipped
        origin = self.grid_start(year)
        first_index = (start.date() - origin).days
        last_index = (end.date() - origin).days
        if not is_all_day(event) and start.date() == end.date():
            last_index = first_index

        start_row = first_index // self.row_days
        end_row = last_index // self.row_days
        last_row = min(end_row, self.row_count(year) - 1)
        pieces = []
        for row in range(start_row, last_row + 1):
            first_unit = first_index % self.row_days if row == start_row else 0
            last_unit = last_index % self.row_days if row == end_row else self.row_days - 1
            pieces.append((row, first_unit, last_unit))

        return [
            Segment(
                row_index=row,
                start_unit=first_unit,
                end_unit=last_unit,
                event_id=event.id,
                continues_from_prior_row=ordinal > 0,
                continues_to_next_row=ordinal < len(pieces) - 1,
            )
            for ordinal, (row, first_unit, last_unit) in enumerate(pieces)
        ]

    def unit_date(self, year: int, row: int, unit: int) -> dt.date | None:
        if not 0 <= unit < self.row_days:
            return None
        date = self.grid_start(year) + dt.timedelta(days=row * self.row_days + unit)
        return date if date.year == year else None

    def weekday_headers(self, year: int) -> list[str]:
        names = list(calendar.day_abbr)
        return [names[unit % 7] for unit in range(self.row_days)]

    def row_label(self, year: int, row: int) -> str:
        first = self.grid_start(year) + dt.timedelta(days=row * self.row_days)
        last = first + dt.timedelta(days=self.row_days - 1)
        return f"W{iso_week_number(first)}-W{iso_week_number(last)}"

    def week_markers(self, year: int) -> list[WeekMarker]:
        origin = self.grid_start(year)
        markers: list[WeekMarker] = []
        for row in range(self.row_count(year)):
            for unit in range(0, self.row_days, 7):
                date = origin + dt.timedelta(days=row * self.row_days + unit)
                markers.append(WeekMarker(row, unit, iso_week_number(date)))
        return markers


TOPOLOGIES: dict[str, type[RowTopology]] = {
    LinearTopology.name: LinearTopology,
    DayAlignedTopology.name: DayAlignedTopology,
    WeekRowsTopology.name: WeekRowsTopology,
}


def get_topology(name: str, **options: Any) -> RowTopology:
    try:
        topology_cls = TOPOLOGIES[name]
    except (KeyError, TypeError):
        raise UnknownTopologyError(
            f"Unknown view mode {name!r}; expected one of {', '.join(TOPOLOGIES)}"
        ) from None
    accepted = {field.name for field in fields(topology_cls)}
    return topology_cls(**{key: value for key, value in options.items() if key in accepted})
