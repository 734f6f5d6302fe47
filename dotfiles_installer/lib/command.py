from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Mapping, Sequence

from ..errors import CommandError

logger = logging.getLogger(__name__)

SHELL = "bash"


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | os.PathLike[str] | None = None,
    input_text: str | None = None,
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command.
    - Captures stdout/stderr; both end up in the DEBUG log (and so in the
      diagnostic error log).
    - check=True raises CommandError on a non-zero exit.
    - A missing executable is reported as exit code 127, like a shell would.
    """

    argv_list = list(argv)
    logger.info("CMD %s", fmt_argv(argv_list))

    try:
        p = subprocess.run(
            argv_list,
            input=input_text,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=dict(os.environ, **(env or {})),
        )
    except FileNotFoundError as e:
        p = subprocess.CompletedProcess(argv_list, 127, "", str(e))
    except PermissionError as e:
        p = subprocess.CompletedProcess(argv_list, 126, "", str(e))

    returncode = p.returncode
    if returncode < 0:
        # killed by signal N: report 128+N like a shell
        returncode = 128 - returncode

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())

    if check and returncode != 0:
        raise CommandError(returncode=returncode, argv=argv_list, stderr=p.stderr or "")

    return CmdResult(argv=argv_list, returncode=returncode, stdout=p.stdout or "", stderr=p.stderr or "")


def run_shell(
    command: str,
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | os.PathLike[str] | None = None,
) -> CmdResult:
    """Run an opaque shell string (pipelines, redirects, `curl ... | sh`)."""

    try:
        return run_cmd([SHELL, "-c", command], check=check, env=env, cwd=cwd)
    except CommandError as e:
        raise CommandError(returncode=e.returncode, command=command, stderr=e.stderr) from e
