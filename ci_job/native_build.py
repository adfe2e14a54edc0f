"""
Script: ci_job/native_build.py
What: Builds the project directly on the CI host.
Doing: Runs `./configure` then a bounded-parallel `make`.
Why: The `travis` distro means the host image already has the toolchain and needs no container.
Goal: Keep the native build path to the same two commands the container path runs.
"""

from __future__ import annotations

from ci_job.common import run_cmd
from ci_job.settings import Settings


def install() -> None:
    # The CI host image already carries the build dependencies.
    print("Nothing to install on the CI host")


def build(settings: Settings) -> None:
    print("Building ##########################################################")
    run_cmd(["./configure"], capture_output=False)
    run_cmd(["make", "-j", str(settings.build_jobs)], capture_output=False)
