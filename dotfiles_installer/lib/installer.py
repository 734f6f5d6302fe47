from __future__ import annotations

import logging
import os
import re
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional, Sequence, Tuple, Union

from ..actions import Action, RunShell
from ..errors import CommandError, InstallError
from ..logging_utils import log_install, log_success
from .recovery import retry_with_backoff

if TYPE_CHECKING:
    from ..run_context import RunContext

logger = logging.getLogger(__name__)


class InstallOutcome(str, Enum):
    INSTALLED = "installed"
    ALREADY_PRESENT = "already_present"


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    delay: float = 2


@dataclass(frozen=True)
class InstallSpec:
    name: str
    install: Action
    check_command: Optional[str] = None
    check_path: Optional[Path] = None
    force: bool = False
    path_additions: Tuple[Path, ...] = field(default_factory=tuple)
    retry: Optional[RetryPolicy] = None
    verify: bool = False


def is_executable(path: Optional[Path]) -> bool:
    return path is not None and path.is_file() and os.access(path, os.X_OK)


def prepend_path(dirs: Sequence[Path]) -> None:
    """Make freshly installed bin dirs visible to later checks in this process."""

    current = os.environ.get("PATH", "").split(os.pathsep)
    for d in reversed(list(dirs)):
        s = str(d)
        if s not in current:
            current.insert(0, s)
            logger.debug("Added %s to PATH", s)
    os.environ["PATH"] = os.pathsep.join(p for p in current if p)


def _scratch_prefix(name: str) -> str:
    return "install_" + (re.sub(r"[^A-Za-z0-9_.-]+", "-", name) or "tool")


def _run_install(ctx: "RunContext", name: str, action: Action, retry: Optional[RetryPolicy]) -> None:
    with ctx.tempdirs.scoped(_scratch_prefix(name)) as scratch:
        try:
            if retry is None:
                ctx.run_action(action, cwd=scratch)
                return

            def attempt() -> None:
                ctx.run_action(action, cwd=scratch)

            attempt.__name__ = action.describe()
            if not retry_with_backoff(retry.attempts, retry.delay, attempt):
                raise InstallError(f"Failed to install {name}: {retry.attempts} attempts exhausted")
        except CommandError as e:
            err = InstallError(f"Failed to install {name} (exit {e.returncode}): {action.describe()}")
            err.exit_code = e.exit_code
            raise err from e


def install_command(
    ctx: "RunContext",
    name: str,
    install_cmd: Union[str, Action],
    check_cmd: Optional[str],
    check_path: Optional[Path] = None,
    force: bool = False,
    *,
    path_additions: Sequence[Path] = (),
    retry: Optional[RetryPolicy] = None,
    verify: bool = False,
) -> InstallOutcome:
    """Ensure a tool is present, installing it when it is not (or when forced).

    The install command runs inside a scoped temp dir. A non-zero exit raises
    InstallError; whatever the command left behind is not undone here.
    """

    action: Action = RunShell(install_cmd) if isinstance(install_cmd, str) else install_cmd

    if force:
        log_install(logger, "Force installing %s", name)
    elif is_executable(check_path):
        logger.info("%s is already installed at %s", name, check_path)
        return InstallOutcome.ALREADY_PRESENT
    elif check_cmd and shutil.which(check_cmd) is not None:
        logger.info("%s is already installed", name)
        return InstallOutcome.ALREADY_PRESENT
    else:
        log_install(logger, "Installing %s", name)

    _run_install(ctx, name, action, retry)

    if path_additions:
        prepend_path(path_additions)

    if verify and not (is_executable(check_path) or (check_cmd and shutil.which(check_cmd))):
        raise InstallError(f"Failed to install {name}: {check_cmd or check_path} not found after install")

    log_success(logger, "%s installed successfully", name)
    return InstallOutcome.INSTALLED


def install_spec(ctx: "RunContext", spec: InstallSpec, *, force: bool = False) -> InstallOutcome:
    return install_command(
        ctx,
        spec.name,
        spec.install,
        spec.check_command,
        spec.check_path,
        force=force or spec.force,
        path_additions=spec.path_additions,
        retry=spec.retry,
        verify=spec.verify,
    )


def install_all(ctx: "RunContext", specs: Sequence[InstallSpec], *, force: bool = False) -> Dict[str, InstallOutcome]:
    return {spec.name: install_spec(ctx, spec, force=force) for spec in specs}
