"""
Script: ci_job/distros.py
What: Closed set of container distros the CI matrix builds on.
Doing: Maps each distro to its package manager, build-dependency packages, and the Python used to run the dispatcher.
Why: An unknown distro name should fail before any container is started.
Goal: Produce the exact install and bootstrap command lines run inside a fresh container.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ci_job.common import UsageError


# Oldest interpreter the dispatcher runs on; matches `requires-python` in pyproject.toml.
MIN_PYTHON = (3, 11)


class Distro(str, Enum):
    DEBIAN_12 = "debian_12"
    FEDORA_40 = "fedora_40"
    ROCKYLINUX_9 = "rockylinux_9"
    UBUNTU_24_04 = "ubuntu_24.04"

    @classmethod
    def parse(cls, value: str) -> "Distro":
        try:
            return cls(value)
        except ValueError as exc:
            raise UsageError(f"Error: distro {value} is not recognized by this script") from exc

    @property
    def image(self) -> str:
        """Docker image for this distro, e.g. `ubuntu_24.04` -> `ubuntu:24.04`."""
        return self.value.replace("_", ":", 1)

    @property
    def spec(self) -> "DistroSpec":
        return DISTRO_SPECS[self]


@dataclass(frozen=True)
class DistroSpec:
    package_manager: str
    packages: tuple[str, ...]
    # Interpreter that creates the dispatcher venv, and the version it provides.
    python: str
    python_version: tuple[int, int]
    pre_install: tuple[tuple[str, ...], ...] = field(default_factory=tuple)


_DNF_COMMON = (
    "cmake", "make", "gcc", "gcc-c++", "flex", "bison", "libpcap-devel",
    "openssl-devel", "zlib-devel", "git", "sqlite", "findutils", "which",
)
_APT_COMMON = (
    "cmake", "make", "gcc", "g++", "flex", "bison", "libpcap-dev", "libssl-dev",
    "zlib1g-dev", "git", "sqlite3", "curl", "bsdmainutils",
)
# Debian-family python3 ships without venv/ensurepip.
_APT_PYTHON = ("python3", "python3-venv")

DISTRO_SPECS: dict[Distro, DistroSpec] = {
    Distro.DEBIAN_12: DistroSpec(
        package_manager="apt",
        packages=_APT_COMMON + _APT_PYTHON,
        python="python3",
        python_version=(3, 11),
    ),
    Distro.FEDORA_40: DistroSpec(
        package_manager="dnf",
        packages=_DNF_COMMON + ("python3",),
        python="python3",
        python_version=(3, 12),
    ),
    Distro.ROCKYLINUX_9: DistroSpec(
        package_manager="dnf",
        # Stock python3 on EL9 is 3.9; the AppStream python3.11 package is used instead.
        packages=_DNF_COMMON + ("python3.11",),
        python="python3.11",
        python_version=(3, 11),
        # libpcap-devel lives in the CRB repository on EL9.
        pre_install=(
            ("dnf", "-y", "install", "dnf-plugins-core"),
            ("dnf", "config-manager", "--set-enabled", "crb"),
        ),
    ),
    Distro.UBUNTU_24_04: DistroSpec(
        package_manager="apt",
        packages=_APT_COMMON + _APT_PYTHON,
        python="python3",
        python_version=(3, 12),
    ),
}


def install_commands(distro: Distro) -> list[list[str]]:
    """
    Build the argv lists that install build dependencies for `distro`.

    apt distros refresh the package index first; dnf distros run any repo
    setup, then install directly.
    """
    spec = distro.spec
    commands: list[list[str]] = [list(step) for step in spec.pre_install]
    if spec.package_manager == "apt":
        commands.append(["apt-get", "update"])
        commands.append(["apt-get", "-y", "install", *spec.packages])
    elif spec.package_manager == "dnf":
        commands.append(["dnf", "-y", "install", *spec.packages])
    else:
        raise UsageError(f"Unsupported package manager {spec.package_manager} for {distro.value}")
    return commands


def bootstrap_commands(distro: Distro, venv_dir: str) -> list[list[str]]:
    """
    Install this dispatcher into a venv inside the container.

    A venv sidesteps the "externally managed environment" guard newer
    distros put on the system pip.
    """
    return [
        [distro.spec.python, "-m", "venv", venv_dir],
        [f"{venv_dir}/bin/python", "-m", "pip", "install", "."],
    ]
