"""Lifecycle of the shared headless Chromium instance.

One browser is launched lazily on first use and reused by every request.
Chromium handles concurrent pages, so requests may render in parallel; the
number of simultaneously open pages is bounded by a semaphore and the
launch itself is serialized by a lock so concurrent first requests start
exactly one browser.

On any rendering failure the browser is closed (if still reachable) and
forgotten; the next request launches a fresh one. Resetting the browser
aborts every in-flight render sharing it. Failures are never retried here.
A cancelled render (client gone, caller deadline) closes its own page and
keeps the browser.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence

from playwright.async_api import async_playwright

from lesson_pdf.errors import RenderFailure
from lesson_pdf.layout_renderer import LayoutConfig

logger = logging.getLogger("lesson_pdf")

DEFAULT_CHROMIUM_ARGS = ("--no-sandbox", "--disable-setuid-sandbox")

BrowserLauncher = Callable[[], Awaitable[Any]]


@dataclass
class PageHandle:
    page: Any
    browser: Any


class RenderResourceManager:
    def __init__(
        self,
        *,
        chromium_args: Sequence[str] = DEFAULT_CHROMIUM_ARGS,
        max_concurrency: int = 4,
        timeout_ms: int = 30000,
        wait_until: str = "networkidle",
        launcher: Optional[BrowserLauncher] = None,
    ) -> None:
        self._chromium_args = list(chromium_args)
        self._timeout_ms = max(0, int(timeout_ms))
        self._wait_until = wait_until
        self._launcher = launcher or self._launch_chromium
        self._max_concurrency = max(1, int(max_concurrency))
        self._browser: Any = None
        self._playwright: Any = None
        self._launch_lock = asyncio.Lock()
        self._page_slots = asyncio.Semaphore(self._max_concurrency)
        self.launch_count = 0
        self.failure_count = 0
        self.in_flight = 0

    # ------------------------------------------------------------------------------
    # Browser lifecycle
    # ------------------------------------------------------------------------------
    async def _launch_chromium(self) -> Any:
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(headless=True, args=self._chromium_args)
        except Exception:
            await playwright.stop()
            raise
        self._playwright = playwright
        return browser

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def _get_browser(self) -> Any:
        async with self._launch_lock:
            browser = self._browser
            if browser is not None and browser.is_connected():
                return browser
            if browser is not None:
                logger.warning("Chromium instance disconnected; launching a new one")
                self._browser = None
                await self._shutdown(browser, self._take_playwright())

            started = time.perf_counter()
            browser = await self._launcher()
            self._browser = browser
            self.launch_count += 1
            logger.info("Chromium launched in %.2fs", time.perf_counter() - started)
            return browser

    def _take_playwright(self) -> Any:
        playwright, self._playwright = self._playwright, None
        return playwright

    async def _shutdown(self, browser: Any, playwright: Any) -> None:
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.warning("Failed to close Chromium instance: %s", e)
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as e:
                logger.warning("Failed to stop Playwright driver: %s", e)

    async def reset(self, failed_browser: Any = None) -> None:
        """Discard the held browser so the next request starts a fresh one.

        When ``failed_browser`` is given and another request has already
        replaced it, the newer instance is left alone.
        """
        async with self._launch_lock:
            browser = self._browser
            if failed_browser is not None and browser is not failed_browser:
                return
            self._browser = None
            playwright = self._take_playwright()
        if browser is not None:
            logger.info("Discarding Chromium instance")
        await self._shutdown(browser, playwright)

    async def close(self) -> None:
        await self.reset()

    # ------------------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------------------
    async def acquire_page(self) -> PageHandle:
        """Return a new page on the shared browser, launching it if needed."""
        browser = await self._get_browser()
        try:
            page = await browser.new_page()
        except Exception:
            await self.reset(browser)
            raise
        if self._timeout_ms:
            page.set_default_timeout(self._timeout_ms)
        return PageHandle(page=page, browser=browser)

    async def release_page(self, handle: Optional[PageHandle]) -> None:
        if handle is None:
            return
        try:
            await handle.page.close()
        except Exception as e:
            # The browser may already be gone after a reset.
            logger.warning("Failed to close page: %s", e)

    async def render_pdf(self, html: str, layout: LayoutConfig) -> bytes:
        """Rasterize ``html`` to PDF bytes on a fresh page of the shared browser.

        Raises:
            RenderFailure: for any engine error or empty output. The held
                browser is reset before the error propagates.
        """
        async with self._page_slots:
            self.in_flight += 1
            handle: Optional[PageHandle] = None
            started = time.perf_counter()
            try:
                handle = await self.acquire_page()
                await handle.page.set_content(html, wait_until=self._wait_until)
                pdf_bytes = await handle.page.pdf(**layout.pdf_options())
                if not pdf_bytes:
                    raise RuntimeError("Rendering engine returned no output")
            except Exception as exc:
                self.failure_count += 1
                logger.exception("PDF rendering failed")
                if handle is not None:
                    # Closing the browser closes the page with it.
                    failed, handle = handle, None
                    await self.reset(failed.browser)
                raise RenderFailure() from exc
            finally:
                # Also runs on cancellation, which leaves the browser usable.
                self.in_flight -= 1
                await self.release_page(handle)

            logger.info(
                "Rendered PDF: %d bytes in %.2fs",
                len(pdf_bytes),
                time.perf_counter() - started,
            )
            return pdf_bytes

    def status(self) -> dict[str, Any]:
        return {
            "running": self.is_running,
            "launches": self.launch_count,
            "failures": self.failure_count,
            "in_flight": self.in_flight,
            "max_concurrency": self._max_concurrency,
        }
