#!/usr/bin/env python3
"""Render year-view layouts as one-page PDFs directly from the SQLite database."""

from __future__ import annotations

import argparse
import asyncio
import datetime as dt
import logging
import unicodedata
from dataclasses import dataclass
from pathlib import Path

from fpdf import FPDF

from row_topology import TOPOLOGIES, RowTopology
from year_layout import LayoutResult, clamp_year, format_filter_summary
from year_view import build_layout

logger = logging.getLogger(__name__)

DEFAULT_EVENT_RGB = (56, 189, 248)


@dataclass
class RenderConfig:
    page_size: str
    orientation: str
    margin: float
    header_height: float
    label_col_width: float
    header_font_size: float
    body_font_size: float
    padding: float


def sanitize_text(value: str | None) -> str:
    if not value:
        return ""
    text = str(value)
    replacements = {
        "\u2013": "-",
        "\u2014": "-",
        "\u2018": "'",
        "\u2019": "'",
        "\u201c": "\"",
        "\u201d": "\"",
        "\u2026": "...",
    }
    for src, dest in replacements.items():
        text = text.replace(src, dest)
    text = unicodedata.normalize("NFKD", text)
    text = text.encode("ascii", "ignore").decode("ascii")
    return " ".join(text.split())


def hex_to_rgb(color: str | None) -> tuple[int, int, int] | None:
    if not isinstance(color, str) or len(color) != 7 or not color.startswith("#"):
        return None
    try:
        return tuple(int(color[i : i + 2], 16) for i in (1, 3, 5))
    except ValueError:
        return None


def tint(rgb: tuple[int, int, int], amount: float) -> tuple[int, int, int]:
    return tuple(round(channel + (255 - channel) * amount) for channel in rgb)


def shorten_line(pdf: FPDF, text: str, max_width: float, suffix: str = "...") -> str:
    if pdf.get_string_width(text) <= max_width:
        return text
    trimmed = text
    while trimmed and pdf.get_string_width(trimmed + suffix) > max_width:
        trimmed = trimmed[:-1]
    if not trimmed:
        return ""
    return trimmed.rstrip() + suffix


def draw_cell(
    pdf: FPDF,
    x: float,
    y: float,
    width: float,
    height: float,
    text: str,
    fill_color: tuple[int, int, int] | None,
    align: str = "L",
    bold: bool = False,
    font_size: float | None = None,
    padding: float = 1.0,
) -> None:
    if fill_color:
        pdf.set_fill_color(*fill_color)
        pdf.rect(x, y, width, height, style="DF")
    else:
        pdf.rect(x, y, width, height)

    if not text:
        return

    style = "B" if bold else ""
    if font_size is not None:
        pdf.set_font("Helvetica", style=style, size=font_size)
    else:
        pdf.set_font("Helvetica", style=style)
    line_height = min(pdf.font_size * 1.2, height)
    line = shorten_line(pdf, text, width - 2 * padding)
    pdf.set_xy(x + padding, y + min(padding, max(0.0, height - line_height)))
    pdf.cell(width - 2 * padding, line_height, line, align=align)


def render_year(
    pdf: FPDF,
    result: LayoutResult,
    topology: RowTopology,
    config: RenderConfig,
    today: dt.date | None = None,
    gray_past: bool = False,
) -> None:
    """Draw one layout on a fresh page, scaling row heights to fit it."""
    today = today or dt.date.today()
    pdf.add_page()
    pdf.set_auto_page_break(auto=False, margin=0)

    pdf.set_font("Helvetica", style="B", size=14)
    pdf.set_xy(config.margin, config.margin)
    pdf.cell(0, 6, f"{result.year}  {sanitize_text(topology.name)}", ln=1)
    pdf.set_font("Helvetica", size=8)
    pdf.set_x(config.margin)
    pdf.cell(0, 5, sanitize_text(format_filter_summary(result.filter_stats)), ln=1)

    table_x = config.margin
    table_y = config.margin + config.header_height
    table_width = pdf.w - 2 * config.margin
    table_height = pdf.h - config.margin - table_y

    unit_width = (table_width - config.label_col_width) / max(1, result.row_width)
    header_height = 5.0 if result.header_row else 0.0
    body_height = max(1.0, table_height - header_height)
    scale = body_height / max(1, sum(result.row_heights))

    grid_color = (180, 170, 160)
    pdf.set_draw_color(*grid_color)
    pdf.set_line_width(0.1)

    header_fill = (236, 230, 219)
    label_fill = (244, 239, 231)
    day_fill = (250, 248, 243)
    weekend_fill = (236, 228, 212)
    disabled_fill = (221, 213, 198)
    past_fill = (232, 229, 224)

    def unit_x(unit: int) -> float:
        return table_x + config.label_col_width + (unit - topology.first_unit) * unit_width

    units = range(topology.first_unit, topology.first_unit + result.row_width)
    if result.header_row:
        draw_cell(pdf, table_x, table_y, config.label_col_width, header_height, "", header_fill)
        for unit, name in zip(units, topology.weekday_headers(result.year)):
            draw_cell(
                pdf,
                unit_x(unit),
                table_y,
                unit_width,
                header_height,
                name[:2],
                header_fill,
                align="C",
                bold=True,
                font_size=config.header_font_size,
                padding=0.4,
            )

    markers = {(m.row_index, m.unit): m.label for m in result.week_markers}
    row_tops: list[float] = []
    cursor_y = table_y + header_height
    for row, height in enumerate(result.row_heights):
        row_height = height * scale
        row_tops.append(cursor_y)
        draw_cell(
            pdf,
            table_x,
            cursor_y,
            config.label_col_width,
            row_height,
            sanitize_text(topology.row_label(result.year, row)),
            label_fill,
            bold=True,
            font_size=config.header_font_size,
            padding=config.padding,
        )
        for unit in units:
            date = topology.unit_date(result.year, row, unit)
            if date is None:
                fill = disabled_fill
                text = ""
            else:
                fill = weekend_fill if date.weekday() >= 5 else day_fill
                if gray_past and date < today:
                    fill = past_fill
                text = str(date.day)
            week = markers.get((row, unit))
            if week:
                text = f"{text} {week}".strip()
            draw_cell(
                pdf,
                unit_x(unit),
                cursor_y,
                unit_width,
                row_height,
                text,
                fill,
                font_size=config.body_font_size * 0.8,
                padding=0.4,
            )
        cursor_y += row_height

    lane_area_top = 0.45
    for placed in result.segments:
        segment = placed.segment
        row_height = result.row_heights[segment.row_index] * scale
        lane_count = max(1, result.lane_counts[segment.row_index])
        lane_height = row_height * (1 - lane_area_top) / lane_count
        bar_y = row_tops[segment.row_index] + row_height * lane_area_top + placed.lane_index * lane_height
        bar_x = unit_x(segment.start_unit)
        bar_width = (segment.end_unit - segment.start_unit + 1) * unit_width
        rgb = hex_to_rgb(placed.event.calendar_color) or DEFAULT_EVENT_RGB
        draw_cell(
            pdf,
            bar_x + 0.2,
            bar_y,
            bar_width - 0.4,
            max(0.5, lane_height - 0.3),
            sanitize_text(placed.event.title),
            tint(rgb, 0.55),
            font_size=config.body_font_size,
            padding=0.5,
        )


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Render year-view PDFs directly from calendar.db."
    )
    parser.add_argument("--db", type=Path, default=Path("calendar.db"))
    parser.add_argument("--year", type=int, default=dt.date.today().year)
    parser.add_argument("--prefs", type=Path, default=Path("preferences.json"))
    parser.add_argument("--outdir", type=Path, default=Path("output-pdf"))
    parser.add_argument("--mode", choices=list(TOPOLOGIES), help="Single view mode (default: all)")
    parser.add_argument("--page-size", default="A3")
    parser.add_argument(
        "--orientation", choices=["portrait", "landscape"], default="landscape"
    )
    parser.add_argument("--font-size", type=float, default=5.5)
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.db.exists():
        raise SystemExit(f"Event database not found: {args.db}")

    config = RenderConfig(
        page_size=args.page_size,
        orientation=args.orientation,
        margin=8.0,
        header_height=14.0,
        label_col_width=22.0,
        header_font_size=6.0,
        body_font_size=float(args.font_size),
        padding=1.0,
    )

    year = clamp_year(args.year)
    modes = [args.mode] if args.mode else list(TOPOLOGIES)
    args.outdir.mkdir(parents=True, exist_ok=True)
    outputs: list[Path] = []

    for mode in modes:
        result, topology, prefs = asyncio.run(build_layout(args.db, args.prefs, year, mode))
        pdf = FPDF(
            orientation=args.orientation[0].upper(),
            unit="mm",
            format=args.page_size,
        )
        render_year(pdf, result, topology, config, gray_past=prefs.get("gray_past_days", False))
        output_path = args.outdir / f"year-{year}-{mode}.pdf"
        pdf.output(str(output_path))
        logger.debug(f"Wrote {output_path}")
        outputs.append(output_path)

    print(f"Rendered {len(outputs)} PDFs in {args.outdir}")


if __name__ == "__main__":
    main()
