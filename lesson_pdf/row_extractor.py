"""Tolerant glossary-row extraction from untrusted HTML fragments.

The scan is regex based and lenient on purpose: fragments come from an
upstream editor and are frequently malformed (missing ``<tbody>``, stray
closing tags, ``<br>`` inside cells). Anything that does not look like a
three-cell row is skipped rather than reported.

Known limitation: nested tables are not handled. The non-greedy row match
ends the outer row at the first inner ``</tr>``, and a cell holding an
inner table ends at the inner ``</td>``. The outer row is usually dropped
for lack of cells. When it is kept, inner cells stand in for outer ones.
"""

from __future__ import annotations

import html
import logging
import re

from lesson_pdf.models import Row

logger = logging.getLogger("lesson_pdf")

TBODY_PATTERN = re.compile(r"<tbody[^>]*>([\s\S]*?)</tbody>", re.IGNORECASE)
TR_PATTERN = re.compile(r"<tr[^>]*>([\s\S]*?)</tr>", re.IGNORECASE)
TD_PATTERN = re.compile(r"<td[^>]*>([\s\S]*?)</td>", re.IGNORECASE)
BR_PATTERN = re.compile(r"<br\s*/?>", re.IGNORECASE)
TAG_PATTERN = re.compile(r"<[^>]+>")
WHITESPACE_PATTERN = re.compile(r"\s+")

REQUIRED_CELLS = 3


def _collapse(text: str) -> str:
    return WHITESPACE_PATTERN.sub(" ", html.unescape(TAG_PATTERN.sub("", text))).strip()


def clean_cell_text(cell_html: str) -> str:
    """Normalize one cell's inner HTML to plain text.

    Every run of ``<br>`` markers becomes a single newline. Other markup is
    stripped and character references are decoded. Whitespace, raw source
    newlines included, collapses to single spaces.
    """
    pieces = [_collapse(piece) for piece in BR_PATTERN.split(cell_html or "")]
    return "\n".join(piece for piece in pieces if piece)


def extract_cells(row_html: str) -> list[str]:
    return [clean_cell_text(match.group(1)) for match in TD_PATTERN.finditer(row_html or "")]


def _scope(fragment: str) -> str:
    # Header rows live in <thead>; prefer the body when there is one.
    match = TBODY_PATTERN.search(fragment)
    return match.group(1) if match else fragment


def extract_rows(fragment: str) -> list[Row]:
    """Return the (serial, English, Hindi) rows found in ``fragment``.

    A row is kept only when it has at least three ``<td>`` cells and the
    first three are non-empty after cleaning. Cells past the third are
    ignored.
    """
    if not fragment:
        return []

    rows: list[Row] = []
    dropped = 0
    truncated = 0
    for tr in TR_PATTERN.finditer(_scope(fragment)):
        cells = extract_cells(tr.group(1))
        if len(cells) < REQUIRED_CELLS or not all(cells[:REQUIRED_CELLS]):
            dropped += 1
            continue
        if len(cells) > REQUIRED_CELLS:
            truncated += 1
        serial, english, hindi = cells[:REQUIRED_CELLS]
        rows.append(Row(serial=serial, english=english, hindi=hindi))

    if dropped or truncated:
        logger.debug(
            "Row extraction kept=%d dropped=%d truncated=%d",
            len(rows),
            dropped,
            truncated,
        )
    return rows
