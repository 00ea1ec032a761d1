from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from lesson_pdf import server_runner


class TestRunOptions(unittest.TestCase):
    def test_defaults_run_one_worker_quietly(self) -> None:
        with patch.dict(os.environ, {}, clear=True), patch.object(server_runner.logger, "warning") as warning:
            options = server_runner.run_options()
        self.assertEqual(options["workers"], 1)
        self.assertEqual(options["port"], 3000)
        self.assertIsNone(options["limit_concurrency"])
        warning.assert_not_called()

    def test_multiple_workers_warn_about_browser_count(self) -> None:
        env = {"WEB_CONCURRENCY": "3", "RENDER_MAX_CONCURRENCY": "2"}
        with patch.dict(os.environ, env, clear=True):
            with self.assertLogs("lesson_pdf", level="WARNING") as logs:
                options = server_runner.run_options()
        self.assertEqual(options["workers"], 3)
        self.assertIn("starts 3 Chromium instances", logs.output[0])
        self.assertIn("up to 6 open pages", logs.output[0])

    def test_garbage_values_fall_back(self) -> None:
        env = {"PORT": "http", "UVICORN_BACKLOG": "1", "UVICORN_LIMIT_CONCURRENCY": "lots"}
        with patch.dict(os.environ, env, clear=True):
            options = server_runner.run_options()
        self.assertEqual(options["port"], 3000)
        self.assertEqual(options["backlog"], 16)
        self.assertIsNone(options["limit_concurrency"])


if __name__ == "__main__":
    unittest.main()
