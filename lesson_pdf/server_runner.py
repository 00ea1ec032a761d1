"""Uvicorn launcher for the lesson PDF service.

Each worker process owns its own shared Chromium instance, so
WEB_CONCURRENCY multiplies browser memory. Keep it at 1 unless the host
can afford one browser per worker; RENDER_MAX_CONCURRENCY scales pages
inside that single browser instead.
"""

import logging
import os
from typing import Any

import uvicorn

logger = logging.getLogger("lesson_pdf")

# Rough resident size of one idle headless Chromium plus its first page.
CHROMIUM_MB_PER_WORKER = 250


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        return max(minimum, int(raw))
    except ValueError:
        return default


def _env_optional_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def check_worker_budget(workers: int, pages_per_browser: int) -> None:
    if workers <= 1:
        return
    logger.warning(
        "WEB_CONCURRENCY=%d starts %d Chromium instances (~%d MB idle, up to %d open pages); "
        "prefer WEB_CONCURRENCY=1 with a higher RENDER_MAX_CONCURRENCY",
        workers,
        workers,
        workers * CHROMIUM_MB_PER_WORKER,
        workers * pages_per_browser,
    )


def run_options() -> dict[str, Any]:
    workers = _env_int("WEB_CONCURRENCY", 1, minimum=1)
    pages_per_browser = _env_int("RENDER_MAX_CONCURRENCY", 4, minimum=1)
    check_worker_budget(workers, pages_per_browser)

    limit_concurrency = _env_optional_int("UVICORN_LIMIT_CONCURRENCY")
    return {
        "host": os.getenv("HOST", "0.0.0.0"),
        "port": _env_int("PORT", 3000, minimum=1),
        "workers": workers,
        "backlog": _env_int("UVICORN_BACKLOG", 2048, minimum=16),
        "timeout_keep_alive": _env_int("UVICORN_TIMEOUT_KEEP_ALIVE", 5, minimum=1),
        "limit_concurrency": limit_concurrency,
        "log_level": os.getenv("UVICORN_LOG_LEVEL", "info").strip() or "info",
    }


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s - %(message)s")
    uvicorn.run("lesson_pdf.main:app", **run_options())
