from __future__ import annotations

import logging
import platform
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from ..errors import EnvironmentCheckError
from ..logging_utils import log_progress

logger = logging.getLogger(__name__)

SUPPORTED_ARCHES = ("x86_64", "aarch64")

MIN_MEMORY_MB = 1024
MIN_DISK_GB = 5


def normalize_arch(machine: str) -> str:
    m = machine.strip().lower()
    return {
        "x86_64": "x86_64",
        "amd64": "x86_64",
        "aarch64": "aarch64",
        "arm64": "aarch64",
    }.get(m, m)


@dataclass(frozen=True)
class SystemReport:
    arch: str
    sudo: Optional[str]
    memory_mb: Optional[int]
    disk_free_gb: Optional[int]


def check_architecture(machine: Optional[str] = None) -> str:
    raw = machine if machine is not None else platform.machine()
    arch = normalize_arch(raw)
    if arch not in SUPPORTED_ARCHES:
        logger.error("Unsupported architecture: %s", raw)
        logger.info("Only %s are supported.", " and ".join(SUPPORTED_ARCHES))
        raise EnvironmentCheckError(f"Unsupported architecture: {raw}")
    logger.info("Detected architecture: %s", arch)
    return arch


def check_sudo() -> Optional[str]:
    """Return the privilege-escalation prefix to use, or None."""

    if shutil.which("sudo"):
        log_progress(logger, "Sudo is available and will be used for privileged operations")
        return "sudo"
    logger.warning("Sudo is not available. Running with current user privileges.")
    logger.warning("Some operations may fail if they require elevated permissions.")
    return None


def read_memory_mb(meminfo: Path = Path("/proc/meminfo")) -> Optional[int]:
    try:
        for line in meminfo.read_text(encoding="utf-8").splitlines():
            if line.startswith("MemTotal:"):
                return int(line.split()[1]) // 1024
    except (OSError, ValueError, IndexError):
        return None
    return None


def read_disk_free_gb(path: Path = Path(".")) -> Optional[int]:
    try:
        return shutil.disk_usage(path).free // (1024**3)
    except OSError:
        return None


def check_system_requirements(
    *,
    min_memory_mb: int = MIN_MEMORY_MB,
    min_disk_gb: int = MIN_DISK_GB,
    path: Path = Path("."),
    meminfo: Path = Path("/proc/meminfo"),
) -> tuple[Optional[int], Optional[int]]:
    """Warn (never fail) when the host is below the recommended minimums."""

    mem = read_memory_mb(meminfo)
    if mem is None:
        logger.warning("Cannot check system memory (not a Linux system)")
    elif mem < min_memory_mb:
        logger.warning("System has only %sMB of RAM. Minimum recommended is %sMB.", mem, min_memory_mb)
        logger.warning("Installation may be slow or fail due to insufficient memory.")
    else:
        logger.info("System memory check passed: %sMB available", mem)

    disk = read_disk_free_gb(path)
    if disk is None:
        logger.warning("Could not determine disk space availability")
    elif disk < min_disk_gb:
        logger.warning("Only %sGB of disk space available. Minimum recommended is %sGB.", disk, min_disk_gb)
        logger.warning("Installation may fail due to insufficient disk space.")
    else:
        logger.info("Disk space check passed: %sGB available", disk)

    return mem, disk


def validate_dependencies(commands: Iterable[str]) -> None:
    missing = [c for c in commands if shutil.which(c) is None]
    if missing:
        logger.error("Missing critical dependencies: %s", " ".join(missing))
        logger.error("Please install the missing dependencies and try again")
        raise EnvironmentCheckError(f"Missing critical dependencies: {', '.join(missing)}")


def validate_user(expected_user: str, current_user: str) -> None:
    if current_user != expected_user:
        raise EnvironmentCheckError(f"Script must be run as user: {expected_user} (current: {current_user})")


def check_disk_space(required_mb: int, target_dir: Path = Path("/tmp")) -> int:
    try:
        available_mb = shutil.disk_usage(target_dir).free // (1024 * 1024)
    except OSError as e:
        raise EnvironmentCheckError(f"Cannot read disk usage of {target_dir}: {e}") from e
    if available_mb < required_mb:
        raise EnvironmentCheckError(
            f"Insufficient disk space. Required: {required_mb}MB, Available: {available_mb}MB"
        )
    return available_mb


def run_system_checks(*, required_commands: Iterable[str] = ()) -> SystemReport:
    """Everything that must pass before the run touches the filesystem."""

    log_progress(logger, "Validating system prerequisites")
    arch = check_architecture()
    validate_dependencies(required_commands)
    sudo = check_sudo()
    mem, disk = check_system_requirements()
    return SystemReport(arch=arch, sudo=sudo, memory_mb=mem, disk_free_gb=disk)
