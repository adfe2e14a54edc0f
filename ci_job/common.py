"""
Script: ci_job/common.py
What: Shared helper functions used by all `ci_job` modules.
Doing: Wraps env reads, command execution, and diagnostic-log filtering.
Why: Avoids duplicated helper code.
Goal: Keep error reporting and exit-code handling consistent across steps.
"""

from __future__ import annotations

import subprocess
import sys
from typing import Iterable, Mapping, Sequence


class CiJobError(RuntimeError):
    """Raised when a CI step hits a known error condition."""

    def __init__(self, message: str, exit_code: int = 1) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class UsageError(CiJobError):
    """Bad command-line arguments."""


class ConfigError(CiJobError):
    """A required token or secret is missing from the environment."""


class CommandFailed(CiJobError):
    """An external command exited non-zero; carries its exit code."""


def require_env(environ: Mapping[str, str], name: str) -> str:
    """Return a required environment variable or raise a clear error."""
    value = environ.get(name)
    if value is None or value == "":
        raise ConfigError(f"Missing required environment variable: {name}")
    return value


def optional_env(environ: Mapping[str, str], name: str, default: str = "") -> str:
    """Return an environment variable with a fallback default."""
    return environ.get(name, default)


def run_cmd(
    args: Sequence[str],
    *,
    capture_output: bool = True,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
) -> str:
    """Run a command and return stdout, raising a readable error on failure."""
    try:
        result = subprocess.run(
            list(args),
            check=True,
            text=True,
            capture_output=capture_output,
            cwd=cwd,
            env=dict(env) if env is not None else None,
        )
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        stdout = (exc.stdout or "").strip()
        details = stderr or stdout or str(exc)
        raise CommandFailed(
            f"Command failed: {' '.join(args)}\n{details}",
            exit_code=exc.returncode,
        ) from exc
    except FileNotFoundError as exc:
        raise CommandFailed(f"Command not found: {args[0]}", exit_code=127) from exc

    if not capture_output:
        return ""
    return result.stdout


def run_status(
    args: Sequence[str],
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
) -> int:
    """
    Run a streaming command and return its exit status without raising.

    Used where a failure must not stop the job right away, for example unit
    tests whose status is combined with the external suite later.
    """
    try:
        result = subprocess.run(
            list(args),
            check=False,
            cwd=cwd,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError:
        print(f"Command not found: {args[0]}", file=sys.stderr)
        return 127
    return result.returncode


def filter_failed_lines(
    lines: Iterable[str],
    *,
    failed_marker: str,
    skipped_marker: str,
) -> list[str]:
    """Keep lines carrying the failed marker, dropping any skipped-test line."""
    return [
        line
        for line in lines
        if failed_marker in line and skipped_marker not in line
    ]
