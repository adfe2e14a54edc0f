"""
Script: ci_job/coverity.py
What: Runs the scheduled static-analysis scan and submits its results.
Doing: Downloads the scan toolchain, does an instrumented debug build, packages `cov-int`, and uploads it.
Why: The scan build is slow and noisy, so it only runs from the cron-triggered job.
Goal: Keep the scan service fed with one analysis per scheduled run.
"""

from __future__ import annotations

import shutil
import tarfile
import tempfile
from pathlib import Path

import httpx

from ci_job.common import CiJobError, ConfigError, run_cmd
from ci_job.context import JobContext
from ci_job.settings import Settings


ANALYSIS_DIR = "cov-int"
TOOLCHAIN_PREFIX = "cov-analysis-"


def _require_token(ctx: JobContext) -> str:
    if not ctx.coverity_token:
        raise ConfigError(
            "Error: COV_TOKEN is not defined "
            "(set it in the environment variables section of the CI settings for this repo)"
        )
    return ctx.coverity_token


def download_toolchain(token: str, settings: Settings, destination: Path) -> None:
    """Stream the toolchain archive from the scan service to `destination`."""
    form = {"token": token, "project": settings.coverity_project}
    try:
        with httpx.stream(
            "POST",
            settings.coverity_download_url,
            data=form,
            timeout=settings.http_timeout,
            follow_redirects=True,
        ) as response:
            response.raise_for_status()
            with destination.open("wb") as handle:
                for chunk in response.iter_bytes():
                    handle.write(chunk)
    except httpx.HTTPError as exc:
        raise CiJobError(f"Failed to download scan toolchain: {exc}") from exc


def extract_toolchain(archive: Path, tools_dir: Path) -> Path:
    """
    Unpack the toolchain and move it to a fixed directory name.

    The archive holds one versioned top-level directory
    (`cov-analysis-linux64-<version>`); the version changes upstream, so we
    rename it to `tools_dir`.
    """
    with tempfile.TemporaryDirectory() as temp_dir:
        unpack_root = Path(temp_dir)
        with tarfile.open(archive, "r:*") as tar:
            tar.extractall(unpack_root, filter="data")

        candidates = sorted(path for path in unpack_root.glob(f"{TOOLCHAIN_PREFIX}*") if path.is_dir())
        if len(candidates) != 1:
            raise CiJobError(
                f"Expected one {TOOLCHAIN_PREFIX}* directory in {archive}, found {len(candidates)}"
            )

        shutil.rmtree(tools_dir, ignore_errors=True)
        shutil.move(str(candidates[0]), str(tools_dir))
    return tools_dir


def build_coverity(ctx: JobContext, settings: Settings) -> None:
    token = _require_token(ctx)

    print("Downloading scan toolchain ########################################")
    tools_dir = settings.coverity_tools_dir.resolve()
    with tempfile.TemporaryDirectory() as temp_dir:
        archive = Path(temp_dir) / "coverity_tool.tgz"
        download_toolchain(token, settings, archive)
        extract_toolchain(archive, tools_dir)

    print("Configuring debug build ###########################################")
    run_cmd(["./configure", "--build-type=debug"], capture_output=False)

    print("Instrumented build ################################################")
    cov_build = tools_dir / "bin" / "cov-build"
    run_cmd(
        [
            str(cov_build),
            "--dir",
            ANALYSIS_DIR,
            "make",
            "-j",
            str(settings.coverity_build_jobs),
        ],
        cwd=str(settings.build_dir),
        capture_output=False,
    )


def package_results(build_dir: Path, archive_name: str) -> Path:
    """Create `<build_dir>/<archive_name>` holding the `cov-int` directory."""
    analysis_dir = build_dir / ANALYSIS_DIR
    if not analysis_dir.is_dir():
        raise CiJobError(f"Expected analysis results at {analysis_dir}")
    archive_path = build_dir / archive_name
    with tarfile.open(archive_path, "w:gz") as tar:
        tar.add(analysis_dir, arcname=ANALYSIS_DIR)
    return archive_path


def read_version(settings: Settings) -> str:
    version_file = settings.version_file
    if not version_file.exists():
        raise CiJobError(f"Version file not found: {version_file}")
    return version_file.read_text(encoding="utf-8").strip()


def upload_form(token: str, settings: Settings, *, version: str, revision: str) -> dict[str, str]:
    return {
        "token": token,
        "email": settings.coverity_email,
        "version": version,
        "description": revision,
    }


def run_coverity(ctx: JobContext, settings: Settings) -> None:
    token = _require_token(ctx)

    archive_path = package_results(settings.build_dir, settings.coverity_archive)
    version = read_version(settings)
    revision = run_cmd(["git", "rev-parse", "HEAD"]).strip()

    print(f"Uploading {archive_path.name} (version {version}, revision {revision})")
    form = upload_form(token, settings, version=version, revision=revision)
    try:
        with archive_path.open("rb") as handle:
            response = httpx.post(
                settings.coverity_upload_url,
                params={"project": settings.coverity_project},
                data=form,
                files={"file": (archive_path.name, handle, "application/gzip")},
                timeout=settings.http_timeout,
                follow_redirects=True,
            )
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise CiJobError(f"Failed to upload scan results: {exc}") from exc

    print(response.text.strip())
