from __future__ import annotations

import io
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest import mock

from ci_job import testing
from ci_job.common import ConfigError
from ci_job.context import JobContext, SecretPair, Step
from ci_job.settings import Settings
from ci_job.testing import TestOutcome


DIAG_LOG = """\
netmon-testing.tests.alpha ... ok
netmon-testing.tests.beta ... failed
  % 'btest-diff output' failed unexpectedly (exit code 1)
netmon-testing.tests.gamma ... not expected, skipped
netmon-testing.tests.delta ... failed
"""


class TestOutcomeTests(unittest.TestCase):
    def test_zero_only_when_both_pass(self) -> None:
        self.assertEqual(TestOutcome(0, 0).exit_code, 0)
        self.assertTrue(TestOutcome(0, 0).passed)

    def test_local_failure_is_reported_after_external_pass(self) -> None:
        self.assertEqual(TestOutcome(local_status=1, external_status=0).exit_code, 1)

    def test_external_failure_dominates(self) -> None:
        self.assertEqual(TestOutcome(local_status=1, external_status=2).exit_code, 2)
        self.assertEqual(TestOutcome(local_status=0, external_status=2).exit_code, 2)


class RunTests(unittest.TestCase):
    def setUp(self) -> None:
        self._temp = tempfile.TemporaryDirectory()
        root = Path(self._temp.name)
        self.diag_log = root / "diag.log"
        self.settings = Settings(
            unit_test_dir=root / "btest",
            external_test_dir=root / "external",
            diag_log=self.diag_log,
            test_jobs=4,
        )

    def tearDown(self) -> None:
        self._temp.cleanup()

    def _run(self, ctx: JobContext, statuses: list[int]) -> tuple[TestOutcome, str, mock.MagicMock]:
        output = io.StringIO()
        with mock.patch("ci_job.testing.run_status", side_effect=statuses) as run_status, mock.patch(
            "ci_job.testing.enable_core_dumps"
        ), redirect_stdout(output):
            outcome = testing.run(ctx, self.settings)
        return outcome, output.getvalue(), run_status

    def test_unit_tests_use_fixed_job_count(self) -> None:
        ctx = JobContext(step=Step.RUN, distro=None, pull_request="77")
        _outcome, _output, run_status = self._run(ctx, [0, 0])
        unit_args = run_status.call_args_list[0].args[0]
        self.assertEqual(unit_args[-3:], ["-j", "4", "-d"])

    def test_pull_request_without_secret_skips_private_tests(self) -> None:
        ctx = JobContext(step=Step.RUN, distro=None, pull_request="77")
        with mock.patch("ci_job.testing.clone_private_tests") as clone:
            outcome, output, run_status = self._run(ctx, [1, 0])
        clone.assert_not_called()
        self.assertIn("skipping private tests", output)
        self.assertEqual(run_status.call_count, 2)
        self.assertEqual(outcome.exit_code, 1)

    def test_push_build_without_secret_fails_before_external_tests(self) -> None:
        ctx = JobContext(step=Step.RUN, distro=None, pull_request="false")
        with mock.patch("ci_job.testing.run_status", return_value=0) as run_status, mock.patch(
            "ci_job.testing.enable_core_dumps"
        ), redirect_stdout(io.StringIO()):
            with self.assertRaises(ConfigError) as raised:
                testing.run(ctx, self.settings)
        self.assertEqual(raised.exception.exit_code, 1)
        self.assertEqual(run_status.call_count, 1)

    def test_secret_clones_private_tests(self) -> None:
        secret = SecretPair(key="aa", iv="bb")
        ctx = JobContext(step=Step.RUN, distro=None, pull_request="false", secret=secret)
        with mock.patch("ci_job.testing.clone_private_tests") as clone:
            outcome, _output, _run_status = self._run(ctx, [0, 0])
        clone.assert_called_once_with(secret, self.settings)
        self.assertEqual(outcome.exit_code, 0)

    def test_external_failure_prints_only_failed_entries(self) -> None:
        self.diag_log.write_text(DIAG_LOG, encoding="utf-8")
        ctx = JobContext(step=Step.RUN, distro=None, pull_request="77")
        outcome, output, _run_status = self._run(ctx, [0, 2])

        self.assertNotEqual(outcome.exit_code, 0)
        self.assertIn("Output of failed external tests", output)
        self.assertIn("netmon-testing.tests.beta ... failed", output)
        self.assertIn("netmon-testing.tests.delta ... failed", output)
        self.assertNotIn("skipped", output.replace("skipping", ""))
        self.assertNotIn("tests.alpha", output)

    def test_external_pass_does_not_dump_diagnostics(self) -> None:
        self.diag_log.write_text(DIAG_LOG, encoding="utf-8")
        ctx = JobContext(step=Step.RUN, distro=None, pull_request="77")
        _outcome, output, _run_status = self._run(ctx, [0, 0])
        self.assertNotIn("Output of failed external tests", output)


class ShowDiagnosticsTests(unittest.TestCase):
    def test_missing_log_returns_nothing(self) -> None:
        settings = Settings(diag_log=Path("/nonexistent/diag.log"))
        with redirect_stdout(io.StringIO()):
            self.assertEqual(testing.show_diagnostics(settings), [])

    def test_returns_failed_lines(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            diag_log = Path(temp_dir) / "diag.log"
            diag_log.write_text(DIAG_LOG, encoding="utf-8")
            with redirect_stdout(io.StringIO()):
                failed = testing.show_diagnostics(Settings(diag_log=diag_log))
        self.assertEqual(
            failed,
            [
                "netmon-testing.tests.beta ... failed",
                "netmon-testing.tests.delta ... failed",
            ],
        )


if __name__ == "__main__":
    unittest.main()
