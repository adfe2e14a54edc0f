"""
Script: ci_job/settings.py
What: Fixed locations, URLs and job-count knobs used by every CI step.
Doing: Holds defaults in one frozen dataclass and applies `CI_JOB_*` overrides from an env snapshot.
Why: Steps get their paths and URLs passed in instead of hard-coding them or re-reading env.
Goal: One settings object built at start-up and shared by all components.
"""

from __future__ import annotations

import dataclasses
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from ci_job.common import ConfigError


SETTINGS_ENV_PREFIX = "CI_JOB_"


@dataclass(frozen=True)
class Settings:
    # Docker session.
    container_name: str = "netmon-ci"
    container_mount: str = "/netmon"
    venv_dir: str = "/opt/ci-job"
    # Runs from the venv created by the container bootstrap.
    ci_command: tuple[str, ...] = ("/opt/ci-job/bin/python", "-m", "ci_job.cli")

    # Build.
    build_dir: Path = Path("build")
    build_jobs: int = 2
    version_file: Path = Path("VERSION")

    # Static analysis.
    coverity_project: str = "netmon"
    coverity_email: str = "ci@netmon.example"
    coverity_download_url: str = "https://scan.coverity.com/download/cxx/linux64"
    coverity_upload_url: str = "https://scan.coverity.com/builds"
    coverity_tools_dir: Path = Path("coverity-tools")
    coverity_archive: str = "netmon.tgz"
    coverity_build_jobs: int = 4

    # Private test corpus.
    secret_label: str = "6a6fe747ff7b"
    encrypted_key_url: str = "https://www.netmon.example/static/ci/ci_key.enc"
    private_repo_url: str = "ssh://git@git.netmon.example/netmon-testing-private"
    ssh_host: str = "git.netmon.example"
    ssh_dir: Path = Path("~/.ssh")

    # Tests.
    unit_test_dir: Path = Path("testing/btest")
    unit_test_command: tuple[str, ...] = ("../../aux/btest/btest",)
    test_jobs: int = 4
    external_test_dir: Path = Path("testing/external")
    diag_log: Path = Path("testing/external/netmon-testing/diag.log")

    http_timeout: float = 300.0

    @property
    def ssh_identity(self) -> Path:
        return self.ssh_dir.expanduser() / "id_rsa"

    @property
    def known_hosts(self) -> Path:
        return self.ssh_dir.expanduser() / "known_hosts"

    def secret_env_names(self) -> tuple[str, str]:
        """Names of the encrypted key/IV variables the CI provider injects."""
        return (
            f"encrypted_{self.secret_label}_key",
            f"encrypted_{self.secret_label}_iv",
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "Settings":
        """
        Build settings from defaults plus `CI_JOB_<FIELD>` overrides.

        Example: `CI_JOB_TEST_JOBS=8` sets `test_jobs`, and
        `CI_JOB_CI_COMMAND="ci-job"` replaces the in-container command.
        """
        overrides: dict[str, object] = {}
        for field in dataclasses.fields(cls):
            env_name = f"{SETTINGS_ENV_PREFIX}{field.name.upper()}"
            raw = environ.get(env_name)
            if raw is None or raw == "":
                continue
            overrides[field.name] = _convert(env_name, raw, field.default)
        return cls(**overrides)


def _convert(env_name: str, raw: str, default: object) -> object:
    # Use the default's type to decide how to parse the override.
    if isinstance(default, int):
        try:
            value = int(raw)
        except ValueError as exc:
            raise ConfigError(f"{env_name} must be an integer, got {raw!r}") from exc
        if value < 1:
            raise ConfigError(f"{env_name} must be at least 1, got {value}")
        return value
    if isinstance(default, float):
        try:
            return float(raw)
        except ValueError as exc:
            raise ConfigError(f"{env_name} must be a number, got {raw!r}") from exc
    if isinstance(default, Path):
        return Path(raw)
    if isinstance(default, tuple):
        return tuple(shlex.split(raw))
    return raw
