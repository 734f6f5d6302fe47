"""Per-run state: lifecycle status, cleanup registry and rollback stack.

A RunContext is created by each CLI entrypoint and passed through the
pipeline. It owns everything a failed or interrupted run must undo, and the
diagnostic error log that a failed run leaves in $HOME.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import sys
import tempfile
import time
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Tuple, Union

from .actions import Action, Callback
from .errors import CommandError, Interrupted, ProvisionError
from .lib.checker import SystemReport
from .lib.recovery import attempt_recovery
from .lib.tempdir import TempDirManager
from .logging_utils import detach_file_logging
from .settings import Settings

logger = logging.getLogger(__name__)

INTERRUPT_EXIT_CODE = 130

Operation = Union[Action, Callable[[], Any]]


class ScriptStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


@dataclass
class ScriptState:
    started: float
    status: ScriptStatus = ScriptStatus.RUNNING
    error_count: int = 0


class OperationRegistry:
    """Ordered id -> operation mapping with monotonically increasing ids."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._ops: "OrderedDict[int, Action]" = OrderedDict()
        self._last_id = 0

    def _next_id(self) -> int:
        self._last_id = max(self._last_id + 1, time.time_ns())
        return self._last_id

    def register(self, op: Operation, op_id: Optional[int] = None) -> int:
        action = op if hasattr(op, "execute") else Callback(getattr(op, "__name__", repr(op)), op)
        key = op_id if op_id is not None else self._next_id()
        self._last_id = max(self._last_id, key)
        self._ops[key] = action  # type: ignore[assignment]
        logger.debug("Registered %s operation: %s", self.name, action.describe())
        return key

    def drain(self, *, reverse: bool) -> List[Tuple[int, Action]]:
        """Hand over every entry, sorted by id, and forget them."""

        items = sorted(self._ops.items(), key=lambda kv: kv[0], reverse=reverse)
        self._ops.clear()
        return items

    def __len__(self) -> int:
        return len(self._ops)

    def __contains__(self, op_id: object) -> bool:
        return op_id in self._ops


class RunContext:
    def __init__(
        self,
        script_name: str,
        settings: Settings,
        *,
        force: bool = False,
        tempdirs: Optional[TempDirManager] = None,
        error_log_dir: Optional[Path] = None,
    ) -> None:
        self.script_name = script_name
        self.settings = settings
        self.force = force
        self.recovery_mode = False
        self.system: Optional[SystemReport] = None
        self.state = ScriptState(started=time.time())

        self.cleanups = OperationRegistry("cleanup")
        self.rollbacks = OperationRegistry("rollback")

        self.tempdirs = tempdirs or TempDirManager()
        self.cleanups.register(Callback("remove leftover temp dirs", self.tempdirs.cleanup_all))

        stamp = time.strftime("%Y-%m-%d-%H%M%S")
        log_dir = Path(error_log_dir) if error_log_dir is not None else Path(tempfile.gettempdir())
        self.error_log_path = log_dir / f"dotfiles_error_{script_name}_{stamp}.log"
        self.saved_error_log: Optional[Path] = None

        self._exit_code: Optional[int] = None
        self._recorded: set[int] = set()

    @property
    def status(self) -> ScriptStatus:
        return self.state.status

    @property
    def error_count(self) -> int:
        return self.state.error_count

    @property
    def finished(self) -> bool:
        return self._exit_code is not None

    def enable_recovery(self) -> None:
        self.recovery_mode = True
        logger.info("Recovery mode enabled")

    def disable_recovery(self) -> None:
        self.recovery_mode = False
        logger.info("Recovery mode disabled")

    def register_cleanup(self, op: Operation, op_id: Optional[int] = None) -> int:
        return self.cleanups.register(op, op_id)

    def register_rollback(self, op: Operation, op_id: Optional[int] = None) -> int:
        return self.rollbacks.register(op, op_id)

    def run_action(self, action: Action, *, cwd: Optional[Path] = None) -> None:
        """Execute an action; in recovery mode a recoverable failure is fixed and retried once."""

        try:
            action.execute(cwd=cwd)
        except CommandError as e:
            self.record_error(e, action)
            if not self.recovery_mode:
                raise
            logger.warning("Attempting error recovery...")
            if not attempt_recovery(e):
                logger.error("Recovery failed")
                raise
            logger.info("Recovery successful, continuing execution")
            action.execute(cwd=cwd)

    def perform(self, action: Action, *, cwd: Optional[Path] = None) -> None:
        """run_action() plus registration of the action's derived rollback."""

        undo = action.plan_rollback()
        self.run_action(action, cwd=cwd)
        if undo is not None:
            self.register_rollback(undo)

    def record_error(self, exc: BaseException, action: Optional[Action] = None) -> None:
        if id(exc) in self._recorded:
            return
        if exc.__cause__ is not None and id(exc.__cause__) in self._recorded:
            # already written when the wrapped command failed
            self._recorded.add(id(exc))
            return
        self._recorded.add(id(exc))
        self.state.error_count += 1

        failed = action.describe() if action is not None else None
        if failed is None and isinstance(exc, CommandError):
            failed = exc.command or " ".join(exc.argv or [])

        lines = [
            "================================",
            f"ERROR OCCURRED IN SCRIPT: {self.script_name}",
            f"Timestamp: {time.strftime('%Y-%m-%dT%H:%M:%S%z')}",
            f"Exit code: {getattr(exc, 'exit_code', 1)}",
            f"Error: {type(exc).__name__}: {exc}",
            f"Failed command: {failed or '-'}",
            "================================",
            "Environment:",
            f"PWD: {os.getcwd()}",
            f"USER: {self.settings.user}",
            f"Shell: {os.environ.get('SHELL', '')}",
            f"PATH: {os.environ.get('PATH', '')}",
            "================================",
        ]
        try:
            self.error_log_path.parent.mkdir(parents=True, exist_ok=True)
            with self.error_log_path.open("a", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
        except OSError as e:
            logger.warning("Could not write error log %s: %s", self.error_log_path, e)

    def execute_rollback(self) -> None:
        entries = self.rollbacks.drain(reverse=True)
        if not entries:
            return
        logger.info("Executing rollback operations...")
        for _, op in entries:
            logger.debug("Rolling back: %s", op.describe())
            try:
                op.execute()
            except (Exception, KeyboardInterrupt) as e:
                logger.warning("Rollback operation failed: %s (%s)", op.describe(), e)

    def execute_cleanups(self) -> None:
        for _, op in self.cleanups.drain(reverse=False):
            logger.debug("Executing cleanup: %s", op.describe())
            try:
                op.execute()
            except (Exception, KeyboardInterrupt) as e:
                logger.warning("Cleanup function failed: %s (%s)", op.describe(), e)

    def _persist_error_log(self) -> Optional[Path]:
        detach_file_logging()
        if not self.error_log_path.exists():
            return None
        stamp = time.strftime("%Y-%m-%d-%H%M%S")
        dest = self.settings.home / f"{self.script_name}_error_{stamp}.log"
        try:
            shutil.copyfile(self.error_log_path, dest)
        except OSError as e:
            logger.warning("Could not save error log to %s: %s", dest, e)
            return None
        self.error_log_path.unlink(missing_ok=True)
        print(f"Error log saved to: {dest}", file=sys.stderr)
        return dest

    def fail(self, exc: BaseException) -> int:
        if self._exit_code is not None:
            return self._exit_code

        code = int(getattr(exc, "exit_code", 1) or 1)
        self.state.status = ScriptStatus.FAILED
        self.record_error(exc)
        logger.error("Script %s failed with exit code %s", self.script_name, code)

        self.execute_rollback()
        self.execute_cleanups()
        self.saved_error_log = self._persist_error_log()
        self._exit_code = code
        return code

    def interrupt(self) -> int:
        if self._exit_code is not None:
            return self._exit_code

        self.state.status = ScriptStatus.INTERRUPTED
        logger.warning("Script %s interrupted by user", self.script_name)
        print("Interrupt received, cleaning up...", file=sys.stderr)

        self.execute_rollback()
        self.execute_cleanups()
        self.saved_error_log = self._persist_error_log()
        self._exit_code = INTERRUPT_EXIT_CODE
        return INTERRUPT_EXIT_CODE

    def complete(self) -> int:
        if self._exit_code is not None:
            return self._exit_code

        self.state.status = ScriptStatus.COMPLETED
        logger.debug("Script %s completed successfully", self.script_name)

        self.execute_cleanups()
        detach_file_logging()
        self.error_log_path.unlink(missing_ok=True)
        self._exit_code = 0
        return 0


def _raise_interrupted(signum: int, frame: Any) -> None:
    raise Interrupted(signum)


@contextmanager
def handle_signals() -> Iterator[None]:
    """Turn SIGTERM/SIGHUP into Interrupted while the block runs.

    SIGINT keeps Python's default and arrives as KeyboardInterrupt.
    """

    previous = {}
    for sig in (signal.SIGTERM, getattr(signal, "SIGHUP", None)):
        if sig is None:
            continue
        try:
            previous[sig] = signal.signal(sig, _raise_interrupted)
        except ValueError:
            # not the main thread
            logger.debug("Cannot install handler for %s outside the main thread", sig)
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def run_guarded(ctx: RunContext, body: Callable[[], Any]) -> int:
    """Run body and drive ctx to its terminal state. Returns the exit code."""

    with handle_signals():
        try:
            body()
        except (KeyboardInterrupt, Interrupted):
            return ctx.interrupt()
        except ProvisionError as e:
            logger.error("%s", e)
            return ctx.fail(e)
        except Exception as e:
            logger.exception("Unexpected failure")
            return ctx.fail(e)
    return ctx.complete()
