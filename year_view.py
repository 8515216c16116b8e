#!/usr/bin/env python3
"""Import calendar events into SQLite and render year-view layouts."""

from __future__ import annotations

import argparse
import asyncio
import datetime as dt
import html
import json
import logging
import re
from pathlib import Path

from event_store import (
    SAMPLE_CALENDARS,
    SqliteEventSource,
    init_db,
    load_calendars,
    load_json_events,
    parse_ics_events,
    sample_events,
    store_calendars,
    store_events,
)
from lane_packer import RowSizing
from preferences import PreferenceStore, layout_options_from_preferences
from row_topology import TOPOLOGIES, RowTopology
from year_layout import LayoutResult, clamp_year, format_filter_summary, resolve_topology, run_layout_pass

logger = logging.getLogger(__name__)

DEFAULT_EVENT_COLOR = "#38bdf8"
DEFAULT_TITLE_MAX_LENGTH = 40
HEX_COLOR_RE = re.compile(r"^#([0-9a-fA-F]{6})$")
BAR_HEIGHT = 22


def truncate_text(text: str, max_length: int | None) -> str:
    if not text:
        return ""
    if not max_length or max_length <= 0:
        return text
    if len(text) <= max_length:
        return text
    suffix = "..."
    if max_length <= len(suffix):
        return text[:max_length]
    trimmed = text[: max_length - len(suffix)].rstrip()
    if not trimmed:
        return text[:max_length]
    return trimmed + suffix


def alpha_from_hex(color: str | None, alpha: float) -> str | None:
    if not isinstance(color, str):
        return None
    match = HEX_COLOR_RE.match(color)
    if not match:
        return None
    value = match.group(1)
    red, green, blue = (int(value[i : i + 2], 16) for i in (0, 2, 4))
    return f"rgba({red}, {green}, {blue}, {alpha})"


def grid_column(topology: RowTopology, unit: int) -> int:
    # column 1 holds the row labels
    return unit - topology.first_unit + 2


async def build_layout(
    db_path: Path, prefs_path: Path, year: int, mode: str | None = None
) -> tuple[LayoutResult, RowTopology, dict]:
    store = PreferenceStore(prefs_path)
    prefs = await store.load_all()
    source = SqliteEventSource(db_path)
    calendars = await source.fetch_calendars()
    options = layout_options_from_preferences(prefs, [cal["id"] for cal in calendars])
    topology = resolve_topology(mode or prefs["view_mode"], options)
    result = await run_layout_pass(year, topology, source, options)
    return result, topology, prefs


def render_year_html(
    result: LayoutResult,
    topology: RowTopology,
    prefs: dict | None = None,
    today: dt.date | None = None,
    title_max_length: int | None = DEFAULT_TITLE_MAX_LENGTH,
    sizing: RowSizing | None = None,
) -> str:
    prefs = prefs or {}
    today = today or dt.date.today()
    year = result.year
    gray_past = bool(prefs.get("gray_past_days"))
    highlight_today = bool(prefs.get("highlight_current_day"))
    sizing = sizing or RowSizing()

    header_offset = 1 if result.header_row else 0
    row_sizes = ["auto"] if result.header_row else []
    row_sizes.extend(f"{height}px" for height in result.row_heights)
    markers = {(m.row_index, m.unit): m.label for m in result.week_markers}
    units = range(topology.first_unit, topology.first_unit + result.row_width)

    css = """
:root {
  --paper: #f5f0e6;
  --ink: #1c1b1a;
  --muted: #6b665f;
  --grid: rgba(46, 42, 37, 0.12);
  --weekend: #ece4d4;
  --disabled: #ddd5c6;
}
* { box-sizing: border-box; }
body {
  margin: 0;
  background: var(--paper);
  color: var(--ink);
  font-family: 'Space Grotesk', 'Avenir Next', 'Segoe UI', sans-serif;
}
.page {
  margin: 24px;
}
header h1 {
  font-family: 'Fraunces', 'Georgia', serif;
  font-size: 30px;
  margin: 0 0 4px;
}
header .subtitle {
  font-size: 13px;
  letter-spacing: 1.4px;
  text-transform: uppercase;
  color: var(--muted);
}
.year-grid {
  display: grid;
  margin-top: 18px;
  border-top: 1px solid var(--grid);
  border-left: 1px solid var(--grid);
}
.cell {
  border-right: 1px solid var(--grid);
  border-bottom: 1px solid var(--grid);
  padding: 3px 4px;
  font-size: 11px;
  position: relative;
}
.cell.row-label {
  font-weight: 600;
  font-size: 12px;
}
.cell.weekday {
  text-align: center;
  color: var(--muted);
}
.cell.weekend { background: var(--weekend); }
.cell.disabled { background: var(--disabled); }
.cell.past { opacity: 0.55; }
.cell.today { outline: 2px solid #c86b2d; outline-offset: -2px; }
.cell .week-number {
  position: absolute;
  right: 4px;
  top: 3px;
  font-size: 9px;
  color: var(--muted);
}
.event {
  align-self: start;
  height: var(--bar-height);
  margin-top: calc(var(--lane-top) + var(--lane) * var(--lane-spacing));
  border: 1px solid rgba(46, 42, 37, 0.3);
  border-radius: 6px;
  padding: 2px 6px;
  font-size: 11px;
  white-space: nowrap;
  overflow: hidden;
  text-overflow: ellipsis;
  z-index: 1;
}
.event.continues-prev { border-top-left-radius: 0; border-bottom-left-radius: 0; border-left-style: dashed; }
.event.continues-next { border-top-right-radius: 0; border-bottom-right-radius: 0; border-right-style: dashed; }
"""

    summary = format_filter_summary(result.filter_stats)
    html_parts = [
        "<!DOCTYPE html>",
        "<html lang=\"en\">",
        "<head>",
        "<meta charset=\"utf-8\">",
        f"<title>{year} year view</title>",
        "<meta name=\"viewport\" content=\"width=device-width, initial-scale=1\">",
        f"<style>{css}</style>",
        "</head>",
        "<body>",
        "<div class=\"page\">",
        "<header>",
        f"<div class=\"subtitle\">{html.escape(topology.name)}</div>",
        f"<h1>{year}</h1>",
        f"<div class=\"subtitle\">{html.escape(summary)}</div>",
        "</header>",
        (
            f"<div class=\"year-grid\" style=\"grid-template-columns: 110px repeat({result.row_width}, minmax(26px, 1fr));"
            f" grid-template-rows: {' '.join(row_sizes)};"
            f" --lane-top: {sizing.first_lane_offset - BAR_HEIGHT}px; --bar-height: {BAR_HEIGHT}px; --lane-spacing: {sizing.lane_spacing}px;\">"
        ),
    ]

    if result.header_row:
        html_parts.append("<div class=\"cell row-label\" style=\"grid-row:1; grid-column:1;\"></div>")
        for unit, name in zip(units, topology.weekday_headers(year)):
            html_parts.append(
                f"<div class=\"cell weekday\" style=\"grid-row:1; grid-column:{grid_column(topology, unit)};\">"
                f"{html.escape(name)}</div>"
            )

    for row in range(result.row_count):
        grid_row = row + 1 + header_offset
        html_parts.append(
            f"<div class=\"cell row-label\" style=\"grid-row:{grid_row}; grid-column:1;\">"
            f"{html.escape(topology.row_label(year, row))}</div>"
        )
        for unit in units:
            date = topology.unit_date(year, row, unit)
            classes = ["cell"]
            label = ""
            if date is None:
                classes.append("disabled")
            else:
                label = f"<span class=\"day-number\">{date.day}</span>"
                if date.weekday() >= 5:
                    classes.append("weekend")
                if gray_past and date < today:
                    classes.append("past")
                if highlight_today and date == today:
                    classes.append("today")
            week = markers.get((row, unit))
            if week:
                label += f"<span class=\"week-number\">{html.escape(week)}</span>"
            html_parts.append(
                f"<div class=\"{' '.join(classes)}\" style=\"grid-row:{grid_row};"
                f" grid-column:{grid_column(topology, unit)};\">{label}</div>"
            )

    for placed in result.segments:
        segment = placed.segment
        event = placed.event
        color = event.calendar_color or DEFAULT_EVENT_COLOR
        background = alpha_from_hex(color, 0.25) or color
        border = alpha_from_hex(color, 0.6) or color
        classes = ["event"]
        if segment.continues_from_prior_row:
            classes.append("continues-prev")
        if segment.continues_to_next_row:
            classes.append("continues-next")
        tooltip_lines = [event.title]
        if event.calendar_name:
            tooltip_lines.append(f"Calendar: {event.calendar_name}")
        tooltip_lines.append(f"{event.start:%Y-%m-%d %H:%M} - {event.end:%Y-%m-%d %H:%M}")
        if event.location:
            tooltip_lines.append(f"Location: {event.location}")
        if event.description:
            tooltip_lines.append(event.description)
        tooltip = "\n".join(line for line in tooltip_lines if line)
        html_parts.append(
            """
<div class="{classes}" title="{tooltip}" style="grid-row:{row}; grid-column:{col_start} / {col_end}; --lane:{lane}; background:{background}; border-color:{border};">{title}</div>
""".format(
                classes=" ".join(classes),
                tooltip=html.escape(tooltip),
                row=segment.row_index + 1 + header_offset,
                col_start=grid_column(topology, segment.start_unit),
                col_end=grid_column(topology, segment.end_unit) + 1,
                lane=placed.lane_index,
                background=background,
                border=border,
                title=html.escape(truncate_text(event.title, title_max_length)),
            )
        )

    html_parts.extend([
        "</div>",
        "</div>",
        "</body>",
        "</html>",
    ])
    return "\n".join(html_parts)


def render_html(
    db_path: Path,
    outdir: Path,
    year: int,
    prefs_path: Path,
    modes: list[str],
) -> list[Path]:
    outdir.mkdir(parents=True, exist_ok=True)
    output_files: list[Path] = []
    index_links = []
    for mode in modes:
        result, topology, prefs = asyncio.run(build_layout(db_path, prefs_path, year, mode))
        if result.degraded:
            print(f"Warning: {len(result.clamped_event_ids)} events could not get a free lane in {mode}")
        filename = f"year-{year}-{mode}.html"
        filepath = outdir / filename
        filepath.write_text(render_year_html(result, topology, prefs), encoding="utf-8")
        logger.debug(f"Rendered {mode} view with {len(result.segments)} segments to {filepath}")
        output_files.append(filepath)
        index_links.append((mode, filename))

    index_html = f"""
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{year} year views</title>
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <style>
    body {{ font-family: 'Space Grotesk', 'Avenir Next', 'Segoe UI', sans-serif; margin: 40px; color: #1c1b1a; }}
    h1 {{ font-family: 'Fraunces', 'Georgia', serif; }}
    a {{ color: #c86b2d; text-decoration: none; }}
    li {{ margin: 8px 0; }}
  </style>
</head>
<body>
  <h1>{year}</h1>
  <ul>
"""
    for mode, filename in index_links:
        index_html += f"    <li><a href=\"{filename}\">{mode}</a></li>\n"
    index_html += """  </ul>
</body>
</html>
"""
    (outdir / "index.html").write_text(index_html, encoding="utf-8")
    output_files.append(outdir / "index.html")
    return output_files


def import_ics(db_path: Path, ics_path: Path, calendar_id: str, name: str | None, color: str | None) -> int:
    try:
        text = ics_path.read_text(encoding="utf-8")
        records = parse_ics_events(text, calendar_id)
    except (OSError, ValueError) as e:
        raise SystemExit(f"Could not read {ics_path}: {e}")
    conn = init_db(db_path)
    store_calendars(conn, [{"id": calendar_id, "name": name or calendar_id, "color": color}])
    count = store_events(conn, records, ics_path.name, calendar_id=calendar_id)
    conn.close()
    return count


def import_json(db_path: Path, json_path: Path) -> int:
    try:
        records = load_json_events(json_path)
    except (OSError, ValueError) as e:
        raise SystemExit(f"Could not read {json_path}: {e}")
    conn = init_db(db_path)
    known = {cal["id"] for cal in load_calendars(conn)}
    calendars = {}
    for record in records:
        calendar_id = record.get("calendarId")
        if calendar_id and calendar_id not in known:
            calendars[calendar_id] = {
                "id": calendar_id,
                "name": record.get("calendarName") or calendar_id,
                "color": record.get("calendarColor"),
            }
    store_calendars(conn, calendars.values())
    count = store_events(conn, records, json_path.name)
    conn.close()
    return count


def seed_samples(db_path: Path, year: int) -> int:
    conn = init_db(db_path)
    store_calendars(conn, SAMPLE_CALENDARS)
    count = store_events(conn, sample_events(year), "samples")
    conn.close()
    return count


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Import calendar events into SQLite and render year-view layouts."
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ics_parser = subparsers.add_parser("import-ics", help="Import an iCalendar file")
    ics_parser.add_argument("ics", type=Path, help="Path to .ics file")
    ics_parser.add_argument("--calendar-id", required=True)
    ics_parser.add_argument("--name", help="Calendar display name")
    ics_parser.add_argument("--color", help="Calendar color as #rrggbb")
    ics_parser.add_argument("--db", type=Path, default=Path("calendar.db"))

    json_parser = subparsers.add_parser("import-json", help="Import raw event records from JSON")
    json_parser.add_argument("json", type=Path, help="Path to JSON list of events")
    json_parser.add_argument("--db", type=Path, default=Path("calendar.db"))

    seed_parser = subparsers.add_parser("seed", help="Load the sample calendars")
    seed_parser.add_argument("--year", type=int, default=dt.date.today().year)
    seed_parser.add_argument("--db", type=Path, default=Path("calendar.db"))

    calendars_parser = subparsers.add_parser("calendars", help="List stored calendars")
    calendars_parser.add_argument("--db", type=Path, default=Path("calendar.db"))

    layout_parser = subparsers.add_parser("layout", help="Compute a layout and write it as JSON")
    layout_parser.add_argument("--db", type=Path, default=Path("calendar.db"))
    layout_parser.add_argument("--year", type=int, default=dt.date.today().year)
    layout_parser.add_argument("--mode", choices=list(TOPOLOGIES), help="View mode (default: preference)")
    layout_parser.add_argument("--prefs", type=Path, default=Path("preferences.json"))
    layout_parser.add_argument("--out", type=Path, help="Optional JSON output path")

    render_parser = subparsers.add_parser("render", help="Render year-view HTML")
    render_parser.add_argument("--db", type=Path, default=Path("calendar.db"))
    render_parser.add_argument("--year", type=int, default=dt.date.today().year)
    render_parser.add_argument("--outdir", type=Path, default=Path("output"))
    render_parser.add_argument(
        "--mode",
        choices=list(TOPOLOGIES),
        help="Render a single view mode (default: all)",
    )
    render_parser.add_argument("--prefs", type=Path, default=Path("preferences.json"))

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "import-ics":
        count = import_ics(args.db, args.ics, args.calendar_id, args.name, args.color)
        print(f"Imported {count} events into {args.db}")
        return

    if args.command == "import-json":
        count = import_json(args.db, args.json)
        print(f"Imported {count} events into {args.db}")
        return

    if args.command == "seed":
        count = seed_samples(args.db, clamp_year(args.year))
        print(f"Seeded {count} sample events into {args.db}")
        return

    if not args.db.exists():
        raise SystemExit(f"Event database not found: {args.db}")

    if args.command == "calendars":
        conn = init_db(args.db)
        for cal in load_calendars(conn):
            print(f"{cal['id']}\t{cal['name']}\t{cal['color'] or ''}")
        conn.close()
        return

    year = clamp_year(args.year)

    if args.command == "layout":
        result, _, _ = asyncio.run(build_layout(args.db, args.prefs, year, args.mode))
        payload = json.dumps(result.to_dict(), indent=2)
        if args.out:
            args.out.write_text(payload, encoding="utf-8")
            print(f"Wrote {len(result.segments)} segments to {args.out}")
        else:
            print(payload)
        return

    if args.command == "render":
        modes = [args.mode] if args.mode else list(TOPOLOGIES)
        outputs = render_html(args.db, args.outdir, year, args.prefs, modes)
        print(f"Rendered {len(outputs)} files in {args.outdir}")


if __name__ == "__main__":
    main()
