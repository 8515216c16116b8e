import datetime as dt

from fpdf import FPDF

from event_store import sample_events
from render_year_pdf import RenderConfig, hex_to_rgb, render_year, sanitize_text, tint
from row_topology import get_topology
from year_layout import compute_layout


def make_config() -> RenderConfig:
    return RenderConfig(
        page_size="A3",
        orientation="landscape",
        margin=8.0,
        header_height=14.0,
        label_col_width=22.0,
        header_font_size=6.0,
        body_font_size=5.5,
        padding=1.0,
    )


def test_sanitize_text() -> None:
    assert sanitize_text("Café – “Launch”…") == 'Cafe - "Launch"...'
    assert sanitize_text(None) == ""


def test_colors() -> None:
    assert hex_to_rgb("#ff8000") == (255, 128, 0)
    assert hex_to_rgb("#zzzzzz") is None
    assert hex_to_rgb(None) is None
    assert tint((0, 0, 0), 0.5) == (128, 128, 128)


def test_renders_every_mode(tmp_path) -> None:
    pdf = FPDF(orientation="L", unit="mm", format="A3")
    for mode in ("linear", "day-aligned", "week-rows"):
        topology = get_topology(mode)
        result = compute_layout(2026, topology, sample_events(2026))
        render_year(pdf, result, topology, make_config(), today=dt.date(2026, 6, 1), gray_past=True)
    output = tmp_path / "year.pdf"
    pdf.output(str(output))
    assert pdf.page_no() == 3
    assert output.read_bytes().startswith(b"%PDF")
