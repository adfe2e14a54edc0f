"""
Script: ci_job/dispatcher.py
What: Picks how one CI step runs for this job.
Doing: Chooses scheduled scan mode, native mode, or container mode from the job context.
Why: The CI config calls the same entry point for every step and matrix entry.
Goal: Run exactly one path per (step, distro, event) and return its exit code.
"""

from __future__ import annotations

from ci_job import coverity, docker_session, native_build, testing
from ci_job.context import JobContext, Step
from ci_job.settings import Settings


def dispatch_scan(ctx: JobContext, settings: Settings) -> int:
    # Only the first parallel job runs the scan; the others have nothing to do.
    if not ctx.is_first_job:
        print(f"Scheduled build: skipping scan on job index {ctx.job_index or '<unset>'}")
        return 0

    # Split in two steps so the instrumented build and the upload get separate CI log folds.
    if ctx.step is Step.BUILD:
        coverity.build_coverity(ctx, settings)
    elif ctx.step is Step.RUN:
        coverity.run_coverity(ctx, settings)
    return 0


def dispatch_native(ctx: JobContext, settings: Settings) -> int:
    if ctx.step is Step.INSTALL:
        native_build.install()
        return 0
    if ctx.step is Step.BUILD:
        native_build.build(settings)
        return 0
    outcome = testing.run(ctx, settings)
    return outcome.exit_code


def dispatch_container(ctx: JobContext, settings: Settings) -> int:
    if ctx.step is Step.INSTALL:
        docker_session.setup(ctx, settings)
    else:
        docker_session.exec_step(ctx, settings, ctx.step)
    return 0


def dispatch(ctx: JobContext, settings: Settings) -> int:
    if ctx.is_cron:
        return dispatch_scan(ctx, settings)
    if ctx.is_native:
        return dispatch_native(ctx, settings)
    return dispatch_container(ctx, settings)
