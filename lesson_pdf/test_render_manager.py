"""Lifecycle tests for the shared rendering-engine instance.

The engine is replaced by in-memory fakes that mimic the subset of the
Playwright async API the manager uses.
"""

from __future__ import annotations

import asyncio
import unittest

from lesson_pdf.errors import RenderFailure
from lesson_pdf.layout_renderer import TWO_COLUMN
from lesson_pdf.render_manager import RenderResourceManager

PDF_BYTES = b"%PDF-1.7\n%fake\n"


class FakePage:
    def __init__(self, browser: "FakeBrowser") -> None:
        self.browser = browser
        self.closed = False
        self.timeout_ms = None
        self.html = None
        self.pdf_options = None

    def set_default_timeout(self, timeout_ms) -> None:
        self.timeout_ms = timeout_ms

    async def set_content(self, html, wait_until=None) -> None:
        self.html = html
        await asyncio.sleep(self.browser.delay)

    async def pdf(self, **options) -> bytes:
        self.pdf_options = options
        if self.browser.pdf_error is not None:
            raise self.browser.pdf_error
        return self.browser.output

    async def close(self) -> None:
        if self.browser.closed:
            raise RuntimeError("Target page, context or browser has been closed")
        self.closed = True
        self.browser.open_pages -= 1


class FakeBrowser:
    def __init__(self, *, pdf_error=None, output=PDF_BYTES, new_page_error=None, delay=0.0) -> None:
        self.pdf_error = pdf_error
        self.output = output
        self.new_page_error = new_page_error
        self.delay = delay
        self.closed = False
        self.connected = True
        self.pages: list[FakePage] = []
        self.open_pages = 0
        self.peak_open_pages = 0

    def is_connected(self) -> bool:
        return self.connected and not self.closed

    async def new_page(self) -> FakePage:
        if self.new_page_error is not None:
            raise self.new_page_error
        page = FakePage(self)
        self.pages.append(page)
        self.open_pages += 1
        self.peak_open_pages = max(self.peak_open_pages, self.open_pages)
        return page

    async def close(self) -> None:
        self.closed = True


class FakeLauncher:
    """Hands out queued browsers, then healthy ones."""

    def __init__(self, *browsers: FakeBrowser) -> None:
        self._queued = list(browsers)
        self.launched: list[FakeBrowser] = []

    async def __call__(self) -> FakeBrowser:
        await asyncio.sleep(0)
        browser = self._queued.pop(0) if self._queued else FakeBrowser()
        self.launched.append(browser)
        return browser


def _manager(launcher: FakeLauncher, **kwargs) -> RenderResourceManager:
    return RenderResourceManager(launcher=launcher, **kwargs)


class TestLazyLaunchAndReuse(unittest.TestCase):
    def test_browser_starts_on_first_use_and_is_reused(self) -> None:
        launcher = FakeLauncher()

        async def scenario():
            manager = _manager(launcher)
            self.assertFalse(manager.is_running)
            self.assertEqual(launcher.launched, [])
            first = await manager.render_pdf("<html>1</html>", TWO_COLUMN)
            second = await manager.render_pdf("<html>2</html>", TWO_COLUMN)
            return manager, first, second

        manager, first, second = asyncio.run(scenario())
        self.assertEqual(first, PDF_BYTES)
        self.assertEqual(second, PDF_BYTES)
        self.assertEqual(len(launcher.launched), 1)
        self.assertEqual(manager.launch_count, 1)
        browser = launcher.launched[0]
        self.assertEqual(len(browser.pages), 2)
        self.assertTrue(all(page.closed for page in browser.pages))
        self.assertEqual(browser.pages[0].html, "<html>1</html>")

    def test_page_receives_layout_directive_and_timeout(self) -> None:
        launcher = FakeLauncher()

        async def scenario():
            manager = _manager(launcher, timeout_ms=1234)
            await manager.render_pdf("<html></html>", TWO_COLUMN)

        asyncio.run(scenario())
        page = launcher.launched[0].pages[0]
        self.assertEqual(page.timeout_ms, 1234)
        self.assertEqual(page.pdf_options, TWO_COLUMN.pdf_options())

    def test_acquire_and_release_page(self) -> None:
        launcher = FakeLauncher()

        async def scenario():
            manager = _manager(launcher)
            handle = await manager.acquire_page()
            self.assertTrue(manager.is_running)
            await manager.release_page(handle)
            return handle

        handle = asyncio.run(scenario())
        self.assertTrue(handle.page.closed)
        self.assertIs(handle.browser, launcher.launched[0])


class TestRecovery(unittest.TestCase):
    def test_engine_failure_discards_instance_and_next_request_succeeds(self) -> None:
        crashing = FakeBrowser(pdf_error=RuntimeError("Target crashed"))
        launcher = FakeLauncher(crashing)

        async def scenario():
            manager = _manager(launcher)
            with self.assertRaises(RenderFailure) as ctx:
                await manager.render_pdf("<html></html>", TWO_COLUMN)
            self.assertIsInstance(ctx.exception.__cause__, RuntimeError)
            self.assertFalse(manager.is_running)
            pdf = await manager.render_pdf("<html></html>", TWO_COLUMN)
            return manager, pdf

        with self.assertLogs("lesson_pdf", level="ERROR"):
            manager, pdf = asyncio.run(scenario())
        self.assertEqual(pdf, PDF_BYTES)
        self.assertTrue(crashing.closed)
        self.assertEqual(len(launcher.launched), 2)
        self.assertIsNot(launcher.launched[1], crashing)
        self.assertEqual(manager.failure_count, 1)

    def test_empty_output_is_a_render_failure(self) -> None:
        launcher = FakeLauncher(FakeBrowser(output=b""))

        async def scenario():
            manager = _manager(launcher)
            with self.assertRaises(RenderFailure):
                await manager.render_pdf("<html></html>", TWO_COLUMN)
            return manager

        with self.assertLogs("lesson_pdf", level="ERROR"):
            manager = asyncio.run(scenario())
        self.assertFalse(manager.is_running)
        self.assertTrue(launcher.launched[0].closed)

    def test_new_page_failure_resets_instance(self) -> None:
        launcher = FakeLauncher(FakeBrowser(new_page_error=RuntimeError("browser gone")))

        async def scenario():
            manager = _manager(launcher)
            with self.assertRaises(RenderFailure):
                await manager.render_pdf("<html></html>", TWO_COLUMN)
            self.assertFalse(manager.is_running)
            return await manager.render_pdf("<html></html>", TWO_COLUMN)

        with self.assertLogs("lesson_pdf", level="ERROR"):
            self.assertEqual(asyncio.run(scenario()), PDF_BYTES)
        self.assertEqual(len(launcher.launched), 2)

    def test_launch_failure_is_not_cached(self) -> None:
        calls = []

        async def flaky_launcher():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("Executable doesn't exist")
            return FakeBrowser()

        async def scenario():
            manager = RenderResourceManager(launcher=flaky_launcher)
            with self.assertRaises(RenderFailure):
                await manager.render_pdf("<html></html>", TWO_COLUMN)
            return await manager.render_pdf("<html></html>", TWO_COLUMN)

        with self.assertLogs("lesson_pdf", level="ERROR"):
            self.assertEqual(asyncio.run(scenario()), PDF_BYTES)
        self.assertEqual(len(calls), 2)

    def test_disconnected_browser_is_replaced(self) -> None:
        launcher = FakeLauncher()

        async def scenario():
            manager = _manager(launcher)
            await manager.render_pdf("<html></html>", TWO_COLUMN)
            launcher.launched[0].connected = False
            await manager.render_pdf("<html></html>", TWO_COLUMN)

        asyncio.run(scenario())
        self.assertEqual(len(launcher.launched), 2)
        self.assertTrue(launcher.launched[0].closed)

    def test_stale_reset_keeps_newer_instance(self) -> None:
        launcher = FakeLauncher()

        async def scenario():
            manager = _manager(launcher)
            old = (await manager.acquire_page()).browser
            await manager.reset()
            new = (await manager.acquire_page()).browser
            await manager.reset(old)
            return manager, old, new

        manager, old, new = asyncio.run(scenario())
        self.assertIsNot(old, new)
        self.assertTrue(manager.is_running)
        self.assertFalse(new.closed)

    def test_release_after_reset_does_not_raise(self) -> None:
        launcher = FakeLauncher()

        async def scenario():
            manager = _manager(launcher)
            handle = await manager.acquire_page()
            await manager.reset()
            await manager.release_page(handle)

        with self.assertLogs("lesson_pdf", level="WARNING"):
            asyncio.run(scenario())

    def test_close_shuts_down_browser(self) -> None:
        launcher = FakeLauncher()

        async def scenario():
            manager = _manager(launcher)
            await manager.render_pdf("<html></html>", TWO_COLUMN)
            await manager.close()
            return manager

        manager = asyncio.run(scenario())
        self.assertFalse(manager.is_running)
        self.assertTrue(launcher.launched[0].closed)


class TestCancellation(unittest.TestCase):
    def test_deadline_closes_page_and_keeps_browser(self) -> None:
        launcher = FakeLauncher(FakeBrowser(delay=1.0))

        async def scenario():
            manager = _manager(launcher)
            with self.assertRaises(asyncio.TimeoutError):
                await asyncio.wait_for(manager.render_pdf("<html></html>", TWO_COLUMN), timeout=0.05)
            return manager

        manager = asyncio.run(scenario())
        browser = launcher.launched[0]
        self.assertEqual(browser.open_pages, 0)
        self.assertTrue(browser.pages[0].closed)
        self.assertFalse(browser.closed)
        self.assertTrue(manager.is_running)
        self.assertEqual(manager.in_flight, 0)
        self.assertEqual(manager.failure_count, 0)

    def test_cancelled_render_frees_its_slot(self) -> None:
        launcher = FakeLauncher(FakeBrowser(delay=1.0))

        async def scenario():
            manager = _manager(launcher, max_concurrency=1)
            task = asyncio.create_task(manager.render_pdf("<html>slow</html>", TWO_COLUMN))
            await asyncio.sleep(0.05)
            task.cancel()
            with self.assertRaises(asyncio.CancelledError):
                await task
            browser = launcher.launched[0]
            self.assertEqual(browser.open_pages, 0)
            browser.delay = 0.0
            return await asyncio.wait_for(manager.render_pdf("<html>next</html>", TWO_COLUMN), timeout=1.0)

        self.assertEqual(asyncio.run(scenario()), PDF_BYTES)
        self.assertEqual(len(launcher.launched), 1)


class TestConcurrency(unittest.TestCase):
    def test_concurrent_requests_share_one_browser_with_bounded_pages(self) -> None:
        launcher = FakeLauncher(FakeBrowser(delay=0.01))

        async def scenario():
            manager = _manager(launcher, max_concurrency=2)
            results = await asyncio.gather(
                *(manager.render_pdf(f"<html>{i}</html>", TWO_COLUMN) for i in range(8))
            )
            return manager, results

        manager, results = asyncio.run(scenario())
        self.assertEqual(results, [PDF_BYTES] * 8)
        self.assertEqual(len(launcher.launched), 1)
        browser = launcher.launched[0]
        self.assertEqual(len(browser.pages), 8)
        self.assertEqual(browser.peak_open_pages, 2)
        self.assertEqual(browser.open_pages, 0)
        self.assertEqual(manager.in_flight, 0)

    def test_failure_under_load_does_not_block_later_requests(self) -> None:
        launcher = FakeLauncher(FakeBrowser(pdf_error=RuntimeError("OOM"), delay=0.01))

        async def scenario():
            manager = _manager(launcher, max_concurrency=3)
            first_wave = await asyncio.gather(
                *(manager.render_pdf("<html></html>", TWO_COLUMN) for _ in range(3)),
                return_exceptions=True,
            )
            second = await manager.render_pdf("<html></html>", TWO_COLUMN)
            return first_wave, second

        with self.assertLogs("lesson_pdf", level="ERROR"):
            first_wave, second = asyncio.run(scenario())
        self.assertTrue(all(isinstance(result, RenderFailure) for result in first_wave))
        self.assertEqual(second, PDF_BYTES)
        self.assertEqual(len(launcher.launched), 2)


if __name__ == "__main__":
    unittest.main()
