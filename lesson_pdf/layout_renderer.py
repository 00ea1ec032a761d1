"""Serialize a ``Document`` into a print-ready HTML document.

The renderer never paginates. It emits ``@page`` rules and break-avoidance
hints and leaves page breaking to the rendering engine.
"""

from __future__ import annotations

import html
import json
import logging
import math
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Sequence

from lesson_pdf.models import Document, Row, Section

logger = logging.getLogger("lesson_pdf")

MODULE_DIR = Path(__file__).resolve().parent
DEFAULT_LAYOUT_CONFIG_PATH = MODULE_DIR / "layout_config.json"

WEB_FONTS_HREF = (
    "https://fonts.googleapis.com/css2?family=Noto+Sans:wght@400;600"
    "&family=Noto+Sans+Devanagari:wght@400;600&display=swap"
)
LATIN_FONT_STACK = '"Noto Sans", system-ui, -apple-system, "Segoe UI", Roboto, Arial, sans-serif'
DEVANAGARI_FONT_STACK = '"Noto Sans Devanagari", "Noto Sans", Mangal, "Hind", Arial, sans-serif'
COLUMN_HEADERS = ("S.No.", "English", "Hindi")


class LayoutStrategy(str, Enum):
    SINGLE_COLUMN = "single"
    TWO_COLUMN = "two"


@dataclass(frozen=True)
class Margins:
    """Page margins in millimetres."""

    top: float
    right: float
    bottom: float
    left: float

    def css(self) -> str:
        return f"{_mm(self.top)} {_mm(self.right)} {_mm(self.bottom)} {_mm(self.left)}"

    def as_pdf_margin(self) -> dict[str, str]:
        return {
            "top": _mm(self.top),
            "right": _mm(self.right),
            "bottom": _mm(self.bottom),
            "left": _mm(self.left),
        }


@dataclass(frozen=True)
class FontTier:
    """Font sizes in px for one typography preset."""

    title: float
    heading: float
    header_cell: float
    body: float
    hindi: float
    line_height: float = 1.35


MARGIN_PRESETS: dict[str, Margins] = {
    "compact": Margins(8, 8, 8, 8),
    "standard": Margins(15, 15, 15, 15),
}

FONT_TIERS: dict[str, FontTier] = {
    "small": FontTier(title=16, heading=12.5, header_cell=10, body=11, hindi=12),
    "normal": FontTier(title=18, heading=14, header_cell=11, body=12.5, hindi=13.5),
    "large": FontTier(title=21, heading=16, header_cell=12, body=14, hindi=15),
}


@dataclass(frozen=True)
class LayoutConfig:
    strategy: LayoutStrategy = LayoutStrategy.TWO_COLUMN
    page_size: str = "A4"
    margins: Margins = MARGIN_PRESETS["compact"]
    fonts: FontTier = FONT_TIERS["normal"]
    rows_may_break: bool = True
    # Relative widths of S.No. | English | Hindi, in percent.
    column_widths: tuple[float, float, float] = (8.0, 46.0, 46.0)
    pane_gap_mm: float = 10.0
    web_fonts: bool = True
    margin_preset: str = field(default="compact", compare=False)
    font_tier: str = field(default="normal", compare=False)

    def pdf_options(self) -> dict[str, Any]:
        """Page directive passed to the rendering engine with the markup."""
        return {
            "format": self.page_size,
            "margin": self.margins.as_pdf_margin(),
            "print_background": True,
            "prefer_css_page_size": True,
        }


SINGLE_COLUMN = LayoutConfig(strategy=LayoutStrategy.SINGLE_COLUMN)
TWO_COLUMN = LayoutConfig(strategy=LayoutStrategy.TWO_COLUMN)


def _mm(value: float) -> str:
    return f"{value:g}mm"


def _pct(value: float) -> str:
    return f"{value:g}%"


def escape_html(text: str) -> str:
    """Escape ``& < > "`` (and ``'``) for embedding in markup."""
    return html.escape(text or "", quote=True)


def split_rows(rows: Sequence[Row]) -> tuple[list[Row], list[Row]]:
    """Split rows into a left half of ``ceil(n/2)`` and the remainder."""
    mid = math.ceil(len(rows) / 2)
    return list(rows[:mid]), list(rows[mid:])


# ------------------------------------------------------------------------------
# Layout presets and config loading
# ------------------------------------------------------------------------------
def parse_strategy(value: Any) -> LayoutStrategy:
    if isinstance(value, LayoutStrategy):
        return value
    raw = str(value or "").strip().lower()
    aliases = {
        "single": LayoutStrategy.SINGLE_COLUMN,
        "single-column": LayoutStrategy.SINGLE_COLUMN,
        "single_column": LayoutStrategy.SINGLE_COLUMN,
        "1": LayoutStrategy.SINGLE_COLUMN,
        "two": LayoutStrategy.TWO_COLUMN,
        "two-column": LayoutStrategy.TWO_COLUMN,
        "two_column": LayoutStrategy.TWO_COLUMN,
        "2": LayoutStrategy.TWO_COLUMN,
    }
    if raw not in aliases:
        raise ValueError(f"Unknown layout strategy: {value!r} (expected 'single' or 'two')")
    return aliases[raw]


def build_layout(
    strategy: Any = None,
    margins: Optional[str] = None,
    font_tier: Optional[str] = None,
    base: Optional[LayoutConfig] = None,
) -> LayoutConfig:
    """Resolve preset names on top of ``base`` (defaults to ``LayoutConfig()``)."""
    layout = base or LayoutConfig()
    changes: dict[str, Any] = {}
    if strategy is not None:
        changes["strategy"] = parse_strategy(strategy)
    if margins is not None:
        key = str(margins).strip().lower()
        if key not in MARGIN_PRESETS:
            raise ValueError(f"Unknown margin preset: {margins!r} (expected one of {sorted(MARGIN_PRESETS)})")
        changes["margins"] = MARGIN_PRESETS[key]
        changes["margin_preset"] = key
    if font_tier is not None:
        key = str(font_tier).strip().lower()
        if key not in FONT_TIERS:
            raise ValueError(f"Unknown font tier: {font_tier!r} (expected one of {sorted(FONT_TIERS)})")
        changes["fonts"] = FONT_TIERS[key]
        changes["font_tier"] = key
    return replace(layout, **changes) if changes else layout


def _margins_from_config(value: dict[str, Any]) -> Margins:
    top = float(value["top"])
    right = float(value.get("right", top))
    return Margins(
        top=top,
        right=right,
        bottom=float(value.get("bottom", top)),
        left=float(value.get("left", right)),
    )


def load_layout_config(config_path: Optional[Path] = None) -> LayoutConfig:
    """Build the default layout, overlaid with an optional JSON file.

    A missing or invalid file falls back to the built-in defaults.
    """
    if config_path is None:
        env_path = os.getenv("LESSON_PDF_LAYOUT_CONFIG", "").strip()
        config_path = Path(env_path) if env_path else DEFAULT_LAYOUT_CONFIG_PATH

    layout = LayoutConfig()
    if not config_path.exists():
        return layout

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            loaded = json.load(f)
        if not isinstance(loaded, dict):
            raise ValueError("layout config must be a JSON object")

        layout = build_layout(
            strategy=loaded.get("strategy"),
            margins=loaded.get("margins") if isinstance(loaded.get("margins"), str) else None,
            font_tier=loaded.get("font_tier"),
            base=layout,
        )
        changes: dict[str, Any] = {}
        if isinstance(loaded.get("margins"), dict):
            changes["margins"] = _margins_from_config(loaded["margins"])
            changes["margin_preset"] = "custom"
        if "page_size" in loaded:
            changes["page_size"] = str(loaded["page_size"])
        if "rows_may_break" in loaded:
            changes["rows_may_break"] = bool(loaded["rows_may_break"])
        if "column_widths" in loaded:
            widths = tuple(float(w) for w in loaded["column_widths"])
            if len(widths) != 3 or widths[1] != widths[2]:
                raise ValueError("column_widths needs three values with equal English/Hindi widths")
            changes["column_widths"] = widths
        if "pane_gap_mm" in loaded:
            changes["pane_gap_mm"] = float(loaded["pane_gap_mm"])
        if "web_fonts" in loaded:
            changes["web_fonts"] = bool(loaded["web_fonts"])
        if changes:
            layout = replace(layout, **changes)
    except Exception as e:
        logger.warning("Layout config load failed. Using defaults: %s", e)
        return LayoutConfig()

    return layout


# ------------------------------------------------------------------------------
# Markup generation
# ------------------------------------------------------------------------------
def _stylesheet(layout: LayoutConfig) -> str:
    fonts = layout.fonts
    sno_w, eng_w, hin_w = layout.column_widths
    row_break = "auto" if layout.rows_may_break else "avoid"
    rules = [
        f"@page {{ size: {layout.page_size}; margin: {layout.margins.css()}; }}",
        f"body {{ font-family: {LATIN_FONT_STACK}; color: #111; margin: 0; }}",
        f"h1 {{ font-size: {fonts.title:g}px; margin: 0 0 6px; }}",
        f"h2 {{ font-size: {fonts.heading:g}px; margin: 8px 0 6px; break-after: avoid; page-break-after: avoid; }}",
        ".section { break-inside: avoid; page-break-inside: avoid; margin: 0 0 6px; }",
        f".twocol {{ column-count: 2; column-gap: {_mm(layout.pane_gap_mm)}; }}",
        ".pane { break-inside: avoid; page-break-inside: avoid; margin: 0 0 6px; }",
        "table { width: 100%; border-collapse: collapse; table-layout: fixed; margin: 0 0 6px; "
        "page-break-inside: auto; }",
        "th, td { border: 0.5px solid #ddd; padding: 4px 6px; vertical-align: top; }",
        f"th {{ background: #f3f3f3; font-weight: 600; font-size: {fonts.header_cell:g}px; }}",
        f"td {{ font-size: {fonts.body:g}px; line-height: {fonts.line_height:g}; white-space: pre-line; "
        "overflow-wrap: anywhere; }",
        f".hin {{ font-family: {DEVANAGARI_FONT_STACK}; font-size: {fonts.hindi:g}px; "
        f"line-height: {fonts.line_height:g}; }}",
        f"col.sno {{ width: {_pct(sno_w)}; }}",
        f"col.eng {{ width: {_pct(eng_w)}; }}",
        f"col.hin {{ width: {_pct(hin_w)}; }}",
        "thead { display: table-header-group; }",
        f"tr {{ break-inside: {row_break}; page-break-inside: {row_break}; }}",
    ]
    return "\n".join("  " + rule for rule in rules)


HEADER_ROW = "<thead><tr>" + "".join(f"<th>{escape_html(label)}</th>" for label in COLUMN_HEADERS) + "</tr></thead>"


def _render_table(rows: Sequence[Row]) -> str:
    parts = [
        "<table>",
        '<colgroup><col class="sno"><col class="eng"><col class="hin"></colgroup>',
        HEADER_ROW,
        "<tbody>",
    ]
    for row in rows:
        parts.append(
            "<tr>"
            f'<td class="sno">{escape_html(row.serial)}</td>'
            f'<td class="eng">{escape_html(row.english)}</td>'
            f'<td class="hin">{escape_html(row.hindi)}</td>'
            "</tr>"
        )
    parts.extend(["</tbody>", "</table>"])
    return "\n".join(parts)


def _render_section(section: Section, layout: LayoutConfig) -> str:
    parts = ['<div class="section">', f"<h2>{escape_html(section.name)}</h2>"]
    if layout.strategy == LayoutStrategy.TWO_COLUMN:
        left, right = split_rows(section.rows)
        parts.append('<div class="twocol">')
        for pane in (left, right):
            parts.append('<div class="pane">')
            if pane:
                parts.append(_render_table(pane))
            parts.append("</div>")
        parts.append("</div>")
    else:
        parts.append(_render_table(section.rows))
    parts.append("</div>")
    return "\n".join(parts)


def render(doc: Document, layout: LayoutConfig = TWO_COLUMN) -> str:
    """Return a complete HTML document for ``doc`` laid out per ``layout``."""
    title = escape_html(doc.title)
    head = [
        "<!doctype html>",
        '<html lang="en">',
        "<head>",
        '<meta charset="utf-8">',
        f"<title>{title}</title>",
    ]
    if layout.web_fonts:
        head.append(f'<link href="{escape_html(WEB_FONTS_HREF)}" rel="stylesheet">')
    head.extend(["<style>", _stylesheet(layout), "</style>", "</head>"])

    body = ["<body>", f"<h1>{title}</h1>"]
    body.extend(_render_section(section, layout) for section in doc.sections)
    body.extend(["</body>", "</html>"])
    return "\n".join(head + body) + "\n"
