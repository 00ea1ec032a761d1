import re
import subprocess
import unicodedata
from pathlib import Path
from typing import Any, Iterable, Optional

from lesson_pdf.layout_renderer import LayoutConfig, render
from lesson_pdf.models import PdfResult
from lesson_pdf.normalizer import CardLike, normalize
from lesson_pdf.render_manager import RenderResourceManager

import logging
logger = logging.getLogger("lesson_pdf")

DEFAULT_FILENAME = "lesson.pdf"
MAX_FILENAME_STEM = 80

# ------------------------------------------------------------------------------
# Devanagari font discovery (diagnostics only; Chromium resolves fonts itself)
# ------------------------------------------------------------------------------
SYSTEM_DEVANAGARI_FONT_CANDIDATES = [
    Path("/usr/share/fonts/truetype/noto/NotoSansDevanagari-Regular.ttf"),
    Path("/usr/share/fonts/opentype/noto/NotoSansDevanagari-Regular.otf"),
    Path("/usr/share/fonts/truetype/lohit-devanagari/Lohit-Devanagari.ttf"),
    Path("/usr/share/fonts/truetype/fonts-deva-extra/gargi.ttf"),
]

DEVANAGARI_FONT_AVAILABLE = False
DEVANAGARI_FONT_PATH: Optional[str] = None
DEVANAGARI_FONT_ERROR: Optional[str] = None


def _first_existing_path(candidates: list[Path]) -> Optional[Path]:
    for candidate in candidates:
        if candidate.exists() and candidate.is_file():
            return candidate
    return None


def _fontconfig_match(family: str) -> Optional[Path]:
    try:
        result = subprocess.run(
            ["fc-match", "-f", "%{file}\n", f"{family}:lang=hi"],
            check=False,
            capture_output=True,
            text=True,
            timeout=2,
        )
    except (OSError, subprocess.SubprocessError):
        return None

    if result.returncode != 0:
        return None

    raw = result.stdout.strip()
    if not raw:
        return None

    candidate = Path(raw)
    # fc-match always answers; only trust it when the family really matched.
    if candidate.exists() and candidate.is_file() and "devanagari" in candidate.name.lower():
        return candidate
    return None


def _discover_system_devanagari_font() -> Optional[Path]:
    direct = _first_existing_path(SYSTEM_DEVANAGARI_FONT_CANDIDATES)
    if direct:
        return direct

    for family in ("Noto Sans Devanagari", "Lohit Devanagari"):
        matched = _fontconfig_match(family)
        if matched:
            return matched

    try:
        result = subprocess.run(
            ["fc-list", ":lang=hi", "file"],
            check=False,
            capture_output=True,
            text=True,
            timeout=2,
        )
    except (OSError, subprocess.SubprocessError):
        return None

    if result.returncode != 0:
        return None

    for line in result.stdout.splitlines():
        path_text = line.split(":", 1)[0].strip()
        if not path_text:
            continue
        candidate = Path(path_text)
        if candidate.exists() and candidate.is_file():
            return candidate
    return None


def init_fonts() -> None:
    """Record whether a local Devanagari font exists for the health check.

    A missing font is not fatal: the markup also links the Noto web fonts.
    """
    global DEVANAGARI_FONT_AVAILABLE, DEVANAGARI_FONT_PATH, DEVANAGARI_FONT_ERROR

    DEVANAGARI_FONT_AVAILABLE = False
    DEVANAGARI_FONT_PATH = None
    DEVANAGARI_FONT_ERROR = None

    font = _discover_system_devanagari_font()
    if font:
        DEVANAGARI_FONT_AVAILABLE = True
        DEVANAGARI_FONT_PATH = str(font)
        logger.info("System Devanagari font found: %s", font)
        return

    DEVANAGARI_FONT_ERROR = (
        f"No Devanagari font found in system candidates={[str(p) for p in SYSTEM_DEVANAGARI_FONT_CANDIDATES]} "
        "or via fontconfig."
    )
    logger.warning("Hindi text will rely on web fonts: %s", DEVANAGARI_FONT_ERROR)


def font_status() -> dict[str, Any]:
    return {
        "devanagari_font": DEVANAGARI_FONT_AVAILABLE,
        "devanagari_font_path": DEVANAGARI_FONT_PATH,
        "devanagari_font_error": DEVANAGARI_FONT_ERROR,
    }


# ------------------------------------------------------------------------------
# PDF generation pipeline
# ------------------------------------------------------------------------------
def pdf_filename(title: str) -> str:
    """Derive an ASCII download filename from the lesson title."""
    ascii_title = unicodedata.normalize("NFKD", title or "").encode("ascii", "ignore").decode("ascii")
    stem = re.sub(r"[^a-z0-9]+", "-", ascii_title.lower()).strip("-")[:MAX_FILENAME_STEM].strip("-")
    return f"{stem}.pdf" if stem else DEFAULT_FILENAME


def build_lesson_html(title: str, cards: Iterable[CardLike], layout: LayoutConfig) -> str:
    """Normalize the cards and lay them out. Raises EmptyExtractionError."""
    document = normalize(title, cards)
    logger.info(
        "Normalized lesson %r: sections=%d rows=%d layout=%s",
        document.title,
        len(document.sections),
        document.row_count,
        layout.strategy.value,
    )
    return render(document, layout)


async def generate_lesson_pdf(
    title: str,
    cards: Iterable[CardLike],
    layout: LayoutConfig,
    manager: RenderResourceManager,
) -> PdfResult:
    """Full pipeline: cards -> document -> HTML -> PDF bytes.

    Normalization and layout run before the engine is touched, so an empty
    lesson never starts a render.
    """
    html = build_lesson_html(title, cards, layout)
    pdf_bytes = await manager.render_pdf(html, layout)
    return PdfResult(pdf_bytes=pdf_bytes, filename=pdf_filename(title))
