from __future__ import annotations

import logging
import secrets
import shutil
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from ..errors import ProvisionError

logger = logging.getLogger(__name__)

_NAME_ATTEMPTS = 5


class TempDirManager:
    """Creates uniquely named scratch directories and guarantees their removal.

    Names are `<prefix>_<timestamp>_<random>` under `root` (the OS temp root by
    default). Every directory created here is tracked until cleanup_temp_dir()
    removes it, so cleanup_all() can release whatever an aborted run left.
    """

    def __init__(self, root: Optional[Path] = None) -> None:
        self.root = Path(root) if root is not None else Path(tempfile.gettempdir())
        self._live: List[Path] = []

    @property
    def live(self) -> List[Path]:
        return list(self._live)

    def _candidate(self, prefix: str) -> Path:
        stamp = time.strftime("%Y%m%d%H%M%S")
        return self.root / f"{prefix}_{stamp}_{secrets.token_hex(4)}"

    def create_temp_dir(self, prefix: str) -> Path:
        """Create a new directory; raises OSError when the OS refuses."""

        last_error: Optional[OSError] = None
        for _ in range(_NAME_ATTEMPTS):
            path = self._candidate(prefix)
            try:
                # exclusive: fails if the name is somehow taken
                path.mkdir(mode=0o700)
            except FileExistsError as e:
                last_error = e
                continue
            self._live.append(path)
            logger.debug("Created temp dir %s", path)
            return path
        raise OSError(f"Could not create a unique temp dir for prefix {prefix!r}") from last_error

    def cleanup_temp_dir(self, path: Path) -> None:
        path = Path(path)
        if path in self._live:
            self._live.remove(path)
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
            logger.debug("Removed temp dir %s", path)
        except OSError as e:
            logger.warning("Failed to remove temp dir %s: %s", path, e)

    def cleanup_all(self) -> None:
        for path in list(reversed(self._live)):
            self.cleanup_temp_dir(path)

    @contextmanager
    def scoped(self, prefix: str) -> Iterator[Path]:
        """Temp dir bound to a with-block; removed on every exit path."""

        path = self.create_temp_dir(prefix)
        try:
            yield path
        finally:
            self.cleanup_temp_dir(path)

    def run_in_temp_dir(self, prefix: str, command) -> int:
        """Run an action with a fresh temp dir as its working directory.

        The process working directory is never changed; the directory is
        handed to the child process instead. Returns the exit code; a
        provisioning failure that is not a command (a download, say) counts as 1.
        """

        with self.scoped(prefix) as path:
            try:
                command.execute(cwd=path)
            except ProvisionError as e:
                logger.debug("%s failed in %s: %s", command.describe(), path, e)
                return e.exit_code
        return 0
