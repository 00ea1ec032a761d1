from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from lesson_pdf.errors import EmptyExtractionError


@dataclass(frozen=True)
class Row:
    """One glossary line: serial number, English text, Hindi text."""

    serial: str
    english: str
    hindi: str


@dataclass(frozen=True)
class Section:
    name: str
    rows: tuple[Row, ...]

    def __len__(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class Document:
    """Canonical document handed to the layout renderer.

    A document always holds at least one section.
    """

    title: str
    sections: tuple[Section, ...]

    def __post_init__(self) -> None:
        if not self.sections:
            raise EmptyExtractionError()

    @property
    def row_count(self) -> int:
        return sum(len(section.rows) for section in self.sections)


@dataclass(frozen=True)
class CardInput:
    title: str
    html: str


@dataclass
class PdfResult:
    """Rendered PDF plus the metadata needed for the HTTP response."""

    pdf_bytes: bytes
    filename: str
    content_type: str = "application/pdf"

    def __len__(self) -> int:
        return len(self.pdf_bytes)


def make_section(name: str, rows: Iterable[Row]) -> Section:
    return Section(name=name, rows=tuple(rows))
