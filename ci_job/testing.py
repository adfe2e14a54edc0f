"""
Script: ci_job/testing.py
What: Runs the unit tests, then the external test suites, and combines both results.
Doing: Defers the unit-test status, fetches the private corpus when allowed, runs the external suites, and prints failed entries.
Why: Both results should be visible in one CI log even when the unit tests fail.
Goal: Fail the job when either suite fails, with the external failure taking precedence.
"""

from __future__ import annotations

import resource
from dataclasses import dataclass

from ci_job.common import ConfigError, filter_failed_lines, run_status
from ci_job.context import JobContext
from ci_job.credentials import clone_private_tests
from ci_job.settings import Settings


FAILED_MARKER = "... failed"
SKIPPED_MARKER = "skipped"


@dataclass(frozen=True)
class TestOutcome:
    local_status: int
    external_status: int

    # Keep pytest from collecting this dataclass as a test class.
    __test__ = False

    @property
    def passed(self) -> bool:
        return self.local_status == 0 and self.external_status == 0

    @property
    def exit_code(self) -> int:
        """External failure wins; otherwise report the unit-test status."""
        if self.external_status != 0:
            return self.external_status
        return self.local_status


def enable_core_dumps() -> None:
    # Raise the soft core-size limit so crashing tests leave a core file.
    try:
        _soft, hard = resource.getrlimit(resource.RLIMIT_CORE)
        resource.setrlimit(resource.RLIMIT_CORE, (hard, hard))
    except (ValueError, OSError) as exc:
        print(f"Warning: could not enable core dumps: {exc}")


def run_local_tests(settings: Settings) -> int:
    print("Running unit tests ################################################")
    enable_core_dumps()
    # Pass "-j" explicitly; auto-detection on shared CI hosts picks far too many workers.
    return run_status(
        [*settings.unit_test_command, "-j", str(settings.test_jobs), "-d"],
        cwd=str(settings.unit_test_dir),
    )


def fetch_private_tests(ctx: JobContext, settings: Settings) -> bool:
    """
    Clone the private test corpus if the key/IV pair is available.

    Returns False when the corpus is skipped on a pull-request build.
    """
    print("Getting external test suites ######################################")
    if ctx.secret is not None:
        clone_private_tests(ctx.secret, settings)
        return True
    if ctx.is_pull_request:
        print(
            "Note: skipping private tests because encrypted env. variables "
            "are not available in pull request builds."
        )
        return False
    raise ConfigError(
        "Error: cannot get private tests because encrypted env. variables are not defined."
    )


def run_external_tests(settings: Settings) -> int:
    print("Running external tests ############################################")
    return run_status(["make"], cwd=str(settings.external_test_dir))


def show_diagnostics(settings: Settings) -> list[str]:
    """Print the failed entries from the external diagnostic log and return them."""
    diag_log = settings.diag_log
    if not diag_log.exists():
        print(f"No diagnostic log at {diag_log}")
        return []

    lines = diag_log.read_text(encoding="utf-8", errors="replace").splitlines()
    failed = filter_failed_lines(lines, failed_marker=FAILED_MARKER, skipped_marker=SKIPPED_MARKER)
    if failed:
        print()
        print("Output of failed external tests ###################################")
        print()
        for line in failed:
            print(line)
    return failed


def run(ctx: JobContext, settings: Settings) -> TestOutcome:
    local_status = run_local_tests(settings)
    if local_status != 0:
        print(f"Unit tests failed with status {local_status}; continuing with external tests")

    fetch_private_tests(ctx, settings)

    external_status = run_external_tests(settings)
    if external_status != 0:
        show_diagnostics(settings)

    return TestOutcome(local_status=local_status, external_status=external_status)
