from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Mapping

from ci_job.common import CiJobError, UsageError
from ci_job.context import NATIVE_DISTRO, JobContext, Step, build_context
from ci_job.dispatcher import dispatch
from ci_job.distros import Distro
from ci_job.settings import Settings


class _Parser(argparse.ArgumentParser):
    # argparse exits with 2 on bad input; usage errors here must exit with 1.
    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        raise UsageError(f"{self.prog}: error: {message}")


def build_parser() -> argparse.ArgumentParser:
    """Build argument parser with `<step> <distro>` positionals."""
    distros = ", ".join([distro.value for distro in Distro] + [NATIVE_DISTRO])
    parser = _Parser(
        prog="python3 -m ci_job.cli",
        description="Run one CI step (install, build or run) natively or in a distro container.",
    )
    parser.add_argument("step", help=f"one of: {', '.join(step.value for step in Step)}")
    parser.add_argument("distro", help=f"one of: {distros}")
    return parser


def load_job(argv: list[str] | None, environ: Mapping[str, str]) -> tuple[JobContext, Settings]:
    """
    Parse arguments and snapshot the environment.

    Raises `UsageError` for bad arguments, or when not running under CI,
    before any command runs.
    """
    args = build_parser().parse_args(argv)
    settings = Settings.from_env(environ)
    ctx = build_context(args.step, args.distro, environ, settings)
    # Steps overwrite ~/.ssh/id_rsa and install packages; never run them on a workstation.
    if not ctx.is_ci:
        raise UsageError("Error: this script is intended for use with Travis CI (TRAVIS=true)")
    return ctx, settings


def main(argv: list[str] | None = None, environ: Mapping[str, str] | None = None) -> None:
    # Take one copy of the environment; nothing below reads os.environ again.
    snapshot = dict(os.environ if environ is None else environ)

    try:
        ctx, settings = load_job(argv, snapshot)
        exit_code = dispatch(ctx, settings)
    except CiJobError as exc:
        # Keep failures short and readable in CI logs.
        print(str(exc), file=sys.stderr)
        raise SystemExit(exc.exit_code) from exc

    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
