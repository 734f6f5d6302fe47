from __future__ import annotations

import logging
import os
import stat
import time
from pathlib import Path
from typing import Any, Callable, Optional, Union

from ..errors import CommandError
from .command import run_shell

logger = logging.getLogger(__name__)

Retryable = Union[str, Callable[[], Any], Any]

MAX_RETRIES = 3


def _attempt(command: Retryable) -> bool:
    """One try of a retryable unit: shell string, Action or callable."""

    if isinstance(command, str):
        return run_shell(command, check=False).ok
    if hasattr(command, "execute"):
        try:
            command.execute()
        except CommandError as e:
            logger.debug("Attempt failed: %s", e)
            return False
        return True
    try:
        result = command()
    except CommandError as e:
        logger.debug("Attempt failed: %s", e)
        return False
    return result is None or bool(result)


def _describe(command: Retryable) -> str:
    if isinstance(command, str):
        return command
    if hasattr(command, "describe"):
        return command.describe()
    return getattr(command, "__name__", repr(command))


def retry_with_backoff(
    max_attempts: int,
    initial_delay: float,
    command: Retryable,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Try `command` up to max_attempts times, doubling the delay between tries.

    A callable counts as failed when it returns a falsy value other than
    None or raises CommandError. Any other exception propagates.
    """

    delay = initial_delay
    label = _describe(command)

    for attempt in range(1, max_attempts + 1):
        logger.debug("Attempt %d/%d: %s", attempt, max_attempts, label)
        if _attempt(command):
            return True

        if attempt < max_attempts:
            logger.info("Attempt %d failed, retrying in %ss...", attempt, delay)
            sleep(delay)
            delay = delay * 2

    logger.error("All %d attempts failed for command: %s", max_attempts, label)
    return False


def failed_executable(error: CommandError) -> Optional[Path]:
    """Best-effort guess of the executable behind a failed command.

    Structured commands report argv[0]. Shell strings are split on the first
    whitespace, which misidentifies the target for anything more complex than
    `path args...`.
    """

    if error.command is not None:
        head, sep, _ = error.command.strip().partition(" ")
        if not sep:
            return None
        return Path(head)
    if error.argv:
        return Path(error.argv[0])
    return None


def _fix_permissions(error: CommandError) -> bool:
    target = failed_executable(error)
    if target is None or not target.is_file():
        return False
    try:
        mode = target.stat().st_mode
        os.chmod(target, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    except OSError as e:
        logger.warning("chmod +x %s failed: %s", target, e)
        return False
    logger.info("Made %s executable", target)
    return True


def attempt_recovery(error: CommandError) -> bool:
    """Apply the recovery strategy for the error's exit code.

    Only 126 (not executable) has one; True means the command may be retried.
    """

    code = error.returncode
    if code == 126:
        logger.info("Command not executable, attempting to fix permissions")
        return _fix_permissions(error)
    if code == 1:
        logger.info("General error, no recovery strategy")
    elif code in (2, 127):
        logger.info("Command not found (%d), no recovery strategy", code)
    return False
