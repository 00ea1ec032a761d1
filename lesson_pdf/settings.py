"""Environment-driven settings for the lesson PDF service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

MODULE_DIR = Path(__file__).resolve().parent
REPO_ROOT = MODULE_DIR.parent

# Priority: existing process env > lesson_pdf/.env > repo/.env
load_dotenv(dotenv_path=MODULE_DIR / ".env", override=False)
load_dotenv(dotenv_path=REPO_ROOT / ".env", override=False)


def _is_truthy(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        return max(minimum, int(raw))
    except ValueError:
        return default


def _env_optional(name: str) -> Optional[str]:
    raw = os.getenv(name, "").strip()
    return raw or None


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    allowed_origins: tuple[str, ...] = ("http://localhost:3000",)
    log_level: str = "INFO"
    max_body_bytes: int = 1024 * 1024
    # Layout overrides; None keeps the layout config file / built-in default.
    pdf_layout: Optional[str] = None
    pdf_margins: Optional[str] = None
    pdf_font_tier: Optional[str] = None
    pdf_web_fonts: Optional[bool] = None
    render_max_concurrency: int = 4
    render_timeout_ms: int = 30000
    render_wait_until: str = "networkidle"
    chromium_args: tuple[str, ...] = ("--no-sandbox", "--disable-setuid-sandbox")


def load_settings() -> Settings:
    web_fonts = _env_optional("PDF_WEB_FONTS")
    return Settings(
        allowed_origins=_env_list("ALLOWED_ORIGINS", "http://localhost:3000"),
        log_level=(os.getenv("LOG_LEVEL", "INFO").strip() or "INFO").upper(),
        max_body_bytes=_env_int("MAX_BODY_BYTES", 1024 * 1024, minimum=1024),
        pdf_layout=_env_optional("PDF_LAYOUT"),
        pdf_margins=_env_optional("PDF_MARGINS"),
        pdf_font_tier=_env_optional("PDF_FONT_TIER"),
        pdf_web_fonts=_is_truthy(web_fonts) if web_fonts is not None else None,
        render_max_concurrency=_env_int("RENDER_MAX_CONCURRENCY", 4, minimum=1),
        render_timeout_ms=_env_int("RENDER_TIMEOUT_MS", 30000, minimum=0),
        render_wait_until=os.getenv("RENDER_WAIT_UNTIL", "networkidle").strip() or "networkidle",
        chromium_args=_env_list("CHROMIUM_ARGS", "--no-sandbox,--disable-setuid-sandbox"),
    )
