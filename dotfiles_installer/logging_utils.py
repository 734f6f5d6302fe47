from __future__ import annotations

import json
import logging
import os
import sys
import time
from pathlib import Path
from typing import Any, Optional

DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

# Task levels sit between INFO and WARNING so the usual level filtering works.
PROGRESS = 21
INSTALL = 22
SETUP = 23
SECTION = 24
SUCCESS = 25
COMPLETE = 26
PERFORMANCE = 27

for _level, _name in (
    (PROGRESS, "PROGRESS"),
    (INSTALL, "INSTALL"),
    (SETUP, "SETUP"),
    (SECTION, "SECTION"),
    (SUCCESS, "SUCCESS"),
    (COMPLETE, "COMPLETE"),
    (PERFORMANCE, "PERFORMANCE"),
):
    logging.addLevelName(_level, _name)


class TextFormatter(logging.Formatter):
    """`[timestamp][LEVEL] message`, section headers as banners."""

    def __init__(self) -> None:
        super().__init__(fmt="[%(asctime)s][%(levelname)s] %(message)s", datefmt=DATEFMT)

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno == SECTION:
            return f"\n===== {record.getMessage()} =====\n"
        line = super().format(record)
        context = getattr(record, "context", None)
        if context:
            line += f" [{context}]"
        return line


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for automation."""

    def __init__(self, user: Optional[str] = None) -> None:
        super().__init__(datefmt=DATEFMT)
        self.user = user if user is not None else os.environ.get("USER", "")

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, DATEFMT),
            "epoch": int(record.created),
            "level": record.levelname,
            "message": record.getMessage(),
            "script": record.filename,
            "line": record.lineno,
            "pid": record.process,
            "user": self.user,
        }
        context = getattr(record, "context", None)
        if context:
            payload["context"] = context
        for key in ("operation", "duration_seconds"):
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=False)


def _installed_handlers(root: logging.Logger) -> list[logging.Handler]:
    return getattr(root, "_dotfiles_handlers", [])


def _reset(root: logging.Logger) -> None:
    for h in _installed_handlers(root):
        root.removeHandler(h)
        h.close()
    setattr(root, "_dotfiles_handlers", [])
    setattr(root, "_dotfiles_log_path", None)


def configure_logging(
    *,
    log_format: str = "text",
    level: int = logging.INFO,
    log_path: Optional[str] = None,
    also_console: bool = True,
    user: Optional[str] = None,
) -> Optional[str]:
    """Configure logging for one run.

    Console output follows LOG_FORMAT (text or json). When log_path is given,
    a DEBUG-level text file handler is attached as well; that file is the
    diagnostic log a failed run leaves behind.

    Calling it again replaces the handlers installed by the previous call.

    Returns the file path being used, if any.
    """

    root = logging.getLogger()
    _reset(root)
    root.setLevel(logging.DEBUG)

    handlers: list[logging.Handler] = []

    if also_console:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level)
        console.setFormatter(JsonFormatter(user=user) if log_format == "json" else TextFormatter())
        handlers.append(console)

    chosen_path: Optional[str] = None
    if log_path:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(TextFormatter())
        handlers.append(file_handler)
        chosen_path = log_path

    for h in handlers:
        root.addHandler(h)

    setattr(root, "_dotfiles_handlers", handlers)
    setattr(root, "_dotfiles_log_path", chosen_path)

    logging.getLogger(__name__).debug("Logging initialized (format=%s, file=%s)", log_format, chosen_path)
    return chosen_path


def detach_file_logging() -> None:
    """Close the diagnostic file handler so the file can be copied or removed."""

    root = logging.getLogger()
    kept: list[logging.Handler] = []
    for h in _installed_handlers(root):
        if isinstance(h, logging.FileHandler):
            root.removeHandler(h)
            h.close()
        else:
            kept.append(h)
    setattr(root, "_dotfiles_handlers", kept)
    setattr(root, "_dotfiles_log_path", None)


def log_success(logger: logging.Logger, msg: str, *args: Any) -> None:
    logger.log(SUCCESS, msg, *args)


def log_progress(logger: logging.Logger, msg: str, *args: Any) -> None:
    logger.log(PROGRESS, msg, *args)


def log_install(logger: logging.Logger, msg: str, *args: Any) -> None:
    logger.log(INSTALL, msg, *args)


def log_setup(logger: logging.Logger, msg: str, *args: Any) -> None:
    logger.log(SETUP, msg, *args)


def log_complete(logger: logging.Logger, msg: str, *args: Any) -> None:
    logger.log(COMPLETE, msg, *args)


def section_header(logger: logging.Logger, title: str) -> None:
    logger.log(SECTION, title)


def log_with_context(logger: logging.Logger, level: int, msg: str, **context: Any) -> None:
    rendered = " ".join(f"{k}={v}" for k, v in context.items())
    logger.log(level, msg, extra={"context": rendered})


def log_duration(logger: logging.Logger, operation: str, started: float) -> int:
    duration = int(time.time() - started)
    logger.log(
        PERFORMANCE,
        "Operation '%s' completed in %ss",
        operation,
        duration,
        extra={"operation": operation, "duration_seconds": duration},
    )
    return duration
