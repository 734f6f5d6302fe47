from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable

from ..errors import DownloadError
from .command import run_cmd
from .recovery import MAX_RETRIES, retry_with_backoff

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_S = 10
MAX_TIME_S = 300


def curl_argv(url: str, output: Path) -> list[str]:
    return [
        "curl",
        "-fsSL",
        "--connect-timeout",
        str(CONNECT_TIMEOUT_S),
        "--max-time",
        str(MAX_TIME_S),
        url,
        "-o",
        str(output),
    ]


def download_with_retry(
    url: str,
    output: Path,
    *,
    max_attempts: int = MAX_RETRIES,
    initial_delay: float = 2,
    sleep: Callable[[float], None] = time.sleep,
) -> Path:
    """Download url to output with curl, retrying with exponential backoff."""

    output.parent.mkdir(parents=True, exist_ok=True)

    def fetch() -> bool:
        return run_cmd(curl_argv(url, output), check=False).ok

    fetch.__name__ = f"curl {url}"

    if not retry_with_backoff(max_attempts, initial_delay, fetch, sleep=sleep):
        raise DownloadError(f"Failed to download from {url} after {max_attempts} attempts")

    logger.info("Downloaded %s -> %s", url, output)
    return output
