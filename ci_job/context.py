"""
Script: ci_job/context.py
What: Reads the job's arguments and CI environment into one immutable record.
Doing: Validates step/distro, splits the parallel job number, and picks up the encrypted key/IV pair.
Why: Components take the context as an argument instead of reading env variables on their own.
Goal: Decide the execution mode from one snapshot taken at process start.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from ci_job.common import UsageError, optional_env
from ci_job.distros import Distro
from ci_job.settings import SETTINGS_ENV_PREFIX, Settings


# Distro value meaning "run on the CI host itself, no container".
NATIVE_DISTRO = "travis"

# Names used to hand the key/IV pair to the dispatcher re-run inside a container.
FORWARDED_KEY_ENV = "CI_SECRET_KEY"
FORWARDED_IV_ENV = "CI_SECRET_IV"


class Step(str, Enum):
    INSTALL = "install"
    BUILD = "build"
    RUN = "run"


@dataclass(frozen=True)
class SecretPair:
    key: str
    iv: str

    def __repr__(self) -> str:
        return "SecretPair(key=***, iv=***)"


@dataclass(frozen=True)
class JobContext:
    step: Step
    distro: Distro | None
    on_ci: str = ""
    event_type: str = ""
    job_index: str = ""
    pull_request: str = ""
    coverity_token: str = field(default="", repr=False)
    secret: SecretPair | None = None
    # `CI_JOB_*` settings overrides, re-applied inside the container.
    settings_env: tuple[tuple[str, str], ...] = ()

    @property
    def is_ci(self) -> bool:
        return self.on_ci == "true"

    @property
    def is_native(self) -> bool:
        return self.distro is None

    @property
    def is_cron(self) -> bool:
        return self.event_type == "cron"

    @property
    def is_first_job(self) -> bool:
        return self.job_index == "1"

    @property
    def is_pull_request(self) -> bool:
        # Travis sets "false" on push builds and the PR number otherwise.
        return self.pull_request not in ("", "false")

    @property
    def distro_name(self) -> str:
        return NATIVE_DISTRO if self.distro is None else self.distro.value


def parse_step(value: str) -> Step:
    try:
        return Step(value)
    except ValueError as exc:
        raise UsageError(f"Error: unknown step: {value}") from exc


def parse_distro(value: str) -> Distro | None:
    """Return the container distro, or None for the native sentinel."""
    if value == NATIVE_DISTRO:
        return None
    return Distro.parse(value)


def parse_job_index(job_number: str) -> str:
    """
    Return the parallel index from a job number like `123.1`.

    Same as the shell `${TRAVIS_JOB_NUMBER##*.}`: the text after the last dot,
    or the whole value when there is no dot.
    """
    return job_number.rsplit(".", 1)[-1]


def load_secret(environ: Mapping[str, str], settings: Settings) -> SecretPair | None:
    """
    Return the key/IV pair if both halves are present.

    On the CI host the pair uses the provider's hash-derived names; inside a
    container it arrives under the forwarded names.
    """
    key_name, iv_name = settings.secret_env_names()
    key = optional_env(environ, key_name) or optional_env(environ, FORWARDED_KEY_ENV)
    iv = optional_env(environ, iv_name) or optional_env(environ, FORWARDED_IV_ENV)
    if key and iv:
        return SecretPair(key=key, iv=iv)
    return None


def build_context(
    step: str,
    distro: str,
    environ: Mapping[str, str],
    settings: Settings,
) -> JobContext:
    return JobContext(
        step=parse_step(step),
        distro=parse_distro(distro),
        on_ci=optional_env(environ, "TRAVIS"),
        event_type=optional_env(environ, "TRAVIS_EVENT_TYPE"),
        job_index=parse_job_index(optional_env(environ, "TRAVIS_JOB_NUMBER")),
        pull_request=optional_env(environ, "TRAVIS_PULL_REQUEST"),
        coverity_token=optional_env(environ, "COV_TOKEN"),
        secret=load_secret(environ, settings),
        settings_env=tuple(
            sorted((name, value) for name, value in environ.items() if name.startswith(SETTINGS_ENV_PREFIX))
        ),
    )
