"""
Script: ci_job/docker_session.py
What: Runs CI steps inside a named, long-lived distro container.
Doing: Starts the container with the work tree mounted, installs build deps, then re-runs this dispatcher inside it.
Why: The build/run steps of one job share the container started by its install step.
Goal: Build and test on each distro in the matrix with the same dispatcher code.
"""

from __future__ import annotations

from pathlib import Path

from ci_job.common import UsageError, run_cmd
from ci_job.context import FORWARDED_IV_ENV, FORWARDED_KEY_ENV, NATIVE_DISTRO, JobContext, Step
from ci_job.distros import bootstrap_commands, install_commands
from ci_job.settings import Settings


def run_container_command(settings: Settings) -> list[str]:
    """Build the `docker run` command that starts the job container."""
    source_dir = Path.cwd().resolve()
    return [
        "docker",
        "run",
        "--name",
        settings.container_name,
        "-id",
        "-v",
        f"{source_dir}:{settings.container_mount}",
        "-w",
        settings.container_mount,
    ]


def setup(ctx: JobContext, settings: Settings) -> None:
    if ctx.distro is None:
        raise UsageError("Docker setup needs a container distro, not the native sentinel")

    image = ctx.distro.image
    print(f"Starting container {settings.container_name} from {image}")
    # `sh` with `-i` keeps the container alive for the later `docker exec` calls.
    run_cmd([*run_container_command(settings), image, "sh"], capture_output=False)

    for command in install_commands(ctx.distro):
        run_cmd(
            [
                "docker",
                "exec",
                "-e",
                "DEBIAN_FRONTEND=noninteractive",
                settings.container_name,
                *command,
            ],
            capture_output=False,
        )

    # Make this dispatcher runnable inside the container for build/run.
    for command in bootstrap_commands(ctx.distro, settings.venv_dir):
        run_cmd(["docker", "exec", settings.container_name, *command], capture_output=False)


def forwarded_env(ctx: JobContext, step: Step) -> dict[str, str]:
    """
    Environment values the in-container dispatcher needs.

    Only the `run` step gets the key/IV pair, since only it clones the
    private test corpus.
    """
    values = {
        "TRAVIS": ctx.on_ci,
        "TRAVIS_PULL_REQUEST": ctx.pull_request,
    }
    values.update(ctx.settings_env)
    if step is Step.RUN and ctx.secret is not None:
        values[FORWARDED_KEY_ENV] = ctx.secret.key
        values[FORWARDED_IV_ENV] = ctx.secret.iv
    return values


def exec_step_command(ctx: JobContext, settings: Settings, step: Step) -> list[str]:
    command = ["docker", "exec"]
    if step is Step.RUN:
        # A TTY keeps test progress output line-buffered in the CI log.
        command.append("-t")
    for name, value in forwarded_env(ctx, step).items():
        command.extend(["-e", f"{name}={value}"])
    command.append(settings.container_name)
    command.extend(settings.ci_command)
    command.extend([step.value, NATIVE_DISTRO])
    return command


def exec_step(ctx: JobContext, settings: Settings, step: Step) -> None:
    print(f"Running {step.value} in container {settings.container_name}")
    run_cmd(exec_step_command(ctx, settings, step), capture_output=False)
