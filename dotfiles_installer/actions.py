"""Units of work executed by the provisioning engine.

Every action knows how to execute itself and, when asked *before* it runs,
which action would undo it. Rollbacks are derived from the action's own
fields instead of being written as shell strings.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, Union

from .errors import ProvisionError, SymlinkError
from .lib.command import run_cmd, run_shell
from .lib.net import download_with_retry

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


class Action(Protocol):
    def describe(self) -> str:
        ...

    def execute(self, *, cwd: Optional[PathLike] = None) -> None:
        ...

    def plan_rollback(self) -> Optional["Action"]:
        ...


def remove_path(path: Path, *, recursive: bool = True) -> bool:
    """Remove a file, directory or symlink (broken ones included).

    Returns False when nothing was there.
    """

    if path.is_symlink() or path.is_file():
        path.unlink()
        return True
    if path.is_dir():
        if recursive:
            shutil.rmtree(path)
        else:
            path.rmdir()
        return True
    if os.path.lexists(path):
        # sockets, fifos
        path.unlink()
        return True
    return False


@dataclass(frozen=True)
class RunShell:
    command: str

    def describe(self) -> str:
        return self.command

    def execute(self, *, cwd: Optional[PathLike] = None) -> None:
        run_shell(self.command, cwd=cwd)

    def plan_rollback(self) -> Optional[Action]:
        return None


@dataclass(frozen=True)
class RunExternal:
    argv: Tuple[str, ...]

    def describe(self) -> str:
        return " ".join(self.argv)

    def execute(self, *, cwd: Optional[PathLike] = None) -> None:
        run_cmd(self.argv, cwd=cwd)

    def plan_rollback(self) -> Optional[Action]:
        return None


@dataclass(frozen=True)
class RemovePath:
    path: Path
    recursive: bool = True

    def describe(self) -> str:
        return f"remove {self.path}"

    def execute(self, *, cwd: Optional[PathLike] = None) -> None:
        if remove_path(self.path, recursive=self.recursive):
            logger.debug("Removed %s", self.path)

    def plan_rollback(self) -> Optional[Action]:
        return None


@dataclass(frozen=True)
class RestorePath:
    """Put a backup back in place of whatever now occupies target."""

    backup: Path
    target: Path

    def describe(self) -> str:
        return f"restore {self.target} from {self.backup}"

    def execute(self, *, cwd: Optional[PathLike] = None) -> None:
        if not os.path.lexists(self.backup):
            raise ProvisionError(f"Backup missing: {self.backup}")
        remove_path(self.target)
        os.replace(self.backup, self.target)

    def plan_rollback(self) -> Optional[Action]:
        return None


@dataclass(frozen=True)
class MakeDirectory:
    path: Path

    def describe(self) -> str:
        return f"mkdir -p {self.path}"

    def execute(self, *, cwd: Optional[PathLike] = None) -> None:
        self.path.mkdir(parents=True, exist_ok=True)

    def plan_rollback(self) -> Optional[Action]:
        if self.path.exists():
            return None
        # Only the leaf is undone, and only while it is still empty.
        return RemovePath(self.path, recursive=False)


@dataclass(frozen=True)
class Symlink:
    source: Path
    target: Path

    def describe(self) -> str:
        return f"ln -sfn {self.source} {self.target}"

    def execute(self, *, cwd: Optional[PathLike] = None) -> None:
        try:
            if remove_path(self.target):
                logger.debug("Removed existing %s", self.target)
            self.target.parent.mkdir(parents=True, exist_ok=True)
            os.symlink(self.source, self.target)
        except OSError as e:
            raise SymlinkError(f"Failed to link {self.target} -> {self.source}: {e}") from e

    def plan_rollback(self) -> Optional[Action]:
        if os.path.lexists(self.target):
            # The previous target is destroyed; nothing to restore without a backup.
            return None
        return RemovePath(self.target)


ARCHIVE_KINDS = ("tar.gz", "tar.xz", "zip", "raw")


@dataclass(frozen=True)
class DownloadAndExtract:
    url: str
    destination: Path
    archive_kind: str = "tar.gz"
    strip_components: int = 0
    attempts: int = 3

    def __post_init__(self) -> None:
        if self.archive_kind not in ARCHIVE_KINDS:
            raise ValueError(f"Unsupported archive kind: {self.archive_kind}")

    def describe(self) -> str:
        return f"download {self.url} -> {self.destination} ({self.archive_kind})"

    def _extract_argv(self, archive: Path) -> list[str]:
        if self.archive_kind == "zip":
            return ["unzip", "-o", "-q", str(archive), "-d", str(self.destination)]
        flags = "-xzf" if self.archive_kind == "tar.gz" else "-xJf"
        argv = ["tar", flags, str(archive), "-C", str(self.destination)]
        if self.strip_components:
            argv.append(f"--strip-components={self.strip_components}")
        return argv

    def execute(self, *, cwd: Optional[PathLike] = None) -> None:
        scratch = Path(cwd) if cwd is not None else self.destination.parent
        archive = scratch / (self.url.rstrip("/").rsplit("/", 1)[-1] or "download")
        download_with_retry(self.url, archive, max_attempts=self.attempts)

        if self.archive_kind == "raw":
            # destination is the final file (typically a single binary)
            self.destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(archive), str(self.destination))
            mode = self.destination.stat().st_mode
            os.chmod(self.destination, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            return

        self.destination.mkdir(parents=True, exist_ok=True)
        run_cmd(self._extract_argv(archive), cwd=cwd)

    def plan_rollback(self) -> Optional[Action]:
        if os.path.lexists(self.destination):
            return None
        return RemovePath(self.destination)


@dataclass(frozen=True)
class Callback:
    """Wrap a plain function so it can sit in a cleanup or rollback registry."""

    label: str
    fn: Callable[[], Any] = field(compare=False)

    def describe(self) -> str:
        return self.label

    def execute(self, *, cwd: Optional[PathLike] = None) -> None:
        self.fn()

    def plan_rollback(self) -> Optional[Action]:
        return None


def action_from_manifest(
    raw: Union[str, Dict[str, Any]],
    *,
    expand: Callable[[str], Path] = lambda s: Path(s).expanduser(),
) -> Action:
    """Build an action from its manifest form.

    A bare string is an opaque shell command. A mapping is tagged by `kind`.
    """

    if isinstance(raw, str):
        return RunShell(raw)
    if not isinstance(raw, dict):
        raise ValueError(f"Action must be a string or mapping, got {type(raw).__name__}")

    kind = raw.get("kind", "shell")
    if kind == "shell":
        return RunShell(str(raw["command"]))
    if kind == "exec":
        argv = raw.get("argv") or []
        if not isinstance(argv, list) or not argv:
            raise ValueError("exec action needs a non-empty argv list")
        return RunExternal(tuple(str(a) for a in argv))
    if kind == "download":
        return DownloadAndExtract(
            url=str(raw["url"]),
            destination=expand(str(raw["destination"])),
            archive_kind=str(raw.get("archive", "tar.gz")),
            strip_components=int(raw.get("strip_components", 0)),
        )
    raise ValueError(f"Unknown action kind: {kind}")
