"""Map request-shaped input onto the canonical ``Document`` model."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Union

from lesson_pdf.errors import EmptyExtractionError
from lesson_pdf.models import CardInput, Document, Section, make_section
from lesson_pdf.row_extractor import extract_rows

logger = logging.getLogger("lesson_pdf")

CardLike = Union[CardInput, Mapping[str, Any]]


def _as_card(card: CardLike) -> CardInput:
    if isinstance(card, CardInput):
        return card
    # Request payloads carry the fragment under "description".
    html = card.get("html", card.get("description", ""))
    return CardInput(title=str(card.get("title", "")), html=str(html or ""))


def build_sections(cards: Iterable[CardLike]) -> list[Section]:
    sections: list[Section] = []
    for raw in cards:
        card = _as_card(raw)
        section = make_section(card.title, extract_rows(card.html))
        if not section.rows:
            logger.debug("Card %r produced no rows; section dropped", card.title)
            continue
        sections.append(section)
    return sections


def normalize(title: str, cards: Iterable[CardLike]) -> Document:
    """Build a ``Document`` from a title and its cards.

    Raises:
        EmptyExtractionError: if no card yields at least one row.
    """
    sections = build_sections(cards)
    if not sections:
        raise EmptyExtractionError()
    return Document(title=title, sections=tuple(sections))
