from __future__ import annotations

import io
import sys
import unittest
from contextlib import redirect_stderr, redirect_stdout

from ci_job.common import (
    CommandFailed,
    ConfigError,
    filter_failed_lines,
    optional_env,
    require_env,
    run_cmd,
    run_status,
)


class EnvHelperTests(unittest.TestCase):
    def test_require_env_rejects_missing_and_empty(self) -> None:
        with self.assertRaises(ConfigError):
            require_env({}, "COV_TOKEN")
        with self.assertRaises(ConfigError):
            require_env({"COV_TOKEN": ""}, "COV_TOKEN")
        self.assertEqual(require_env({"COV_TOKEN": "x"}, "COV_TOKEN"), "x")

    def test_optional_env_default(self) -> None:
        self.assertEqual(optional_env({}, "TRAVIS", "no"), "no")


class RunCmdTests(unittest.TestCase):
    def test_returns_stdout(self) -> None:
        self.assertEqual(run_cmd([sys.executable, "-c", "print('hi')"]).strip(), "hi")

    def test_failure_keeps_child_exit_code(self) -> None:
        with self.assertRaises(CommandFailed) as raised:
            run_cmd([sys.executable, "-c", "import sys; sys.exit(7)"])
        self.assertEqual(raised.exception.exit_code, 7)

    def test_missing_binary_is_127(self) -> None:
        with self.assertRaises(CommandFailed) as raised:
            run_cmd(["definitely-not-a-real-binary-ci-job"])
        self.assertEqual(raised.exception.exit_code, 127)

    def test_run_status_does_not_raise(self) -> None:
        self.assertEqual(run_status([sys.executable, "-c", "import sys; sys.exit(4)"]), 4)

    def test_missing_binary_reported_on_stderr(self) -> None:
        stdout, stderr = io.StringIO(), io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            status = run_status(["definitely-not-a-real-binary-ci-job"])
        self.assertEqual(status, 127)
        self.assertIn("Command not found", stderr.getvalue())
        self.assertEqual(stdout.getvalue(), "")


class FilterFailedLinesTests(unittest.TestCase):
    def test_drops_skipped_and_passing_lines(self) -> None:
        lines = [
            "a ... ok",
            "b ... failed",
            "c ... not expected, skipped",
            "d ... failed (known issue, skipped)",
        ]
        self.assertEqual(
            filter_failed_lines(lines, failed_marker="... failed", skipped_marker="skipped"),
            ["b ... failed"],
        )


if __name__ == "__main__":
    unittest.main()
