from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple, Union

from ..actions import MakeDirectory, RemovePath, RestorePath, Symlink
from ..errors import SymlinkError
from ..logging_utils import log_setup, log_success

if TYPE_CHECKING:
    from ..run_context import RunContext

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".backup"


@dataclass(frozen=True)
class SymlinkSpec:
    relative_source: Path
    absolute_target: Path


Pair = Union[SymlinkSpec, Tuple[Union[str, Path], Union[str, Path]]]


def _as_spec(pair: Pair) -> SymlinkSpec:
    if isinstance(pair, SymlinkSpec):
        return pair
    source, target = pair
    return SymlinkSpec(relative_source=Path(source), absolute_target=Path(target))


def create_directories(paths: Sequence[Union[str, Path]], ctx: Optional["RunContext"] = None) -> List[Path]:
    created: List[Path] = []
    for raw in paths:
        action = MakeDirectory(Path(raw))
        try:
            if ctx is not None:
                ctx.perform(action)
            else:
                action.execute()
        except OSError as e:
            raise SymlinkError(f"Failed to create directory {action.path}: {e}") from e
        logger.debug("Directory ready: %s", action.path)
        created.append(action.path)
    return created


def _backup(ctx: "RunContext", target: Path) -> None:
    backup = target.with_name(f"{target.name}{BACKUP_SUFFIX}.{int(time.time())}")
    os.replace(target, backup)
    ctx.register_rollback(RestorePath(backup=backup, target=target))
    ctx.register_cleanup(RemovePath(backup))
    logger.info("Backed up %s to %s", target, backup)


def create_symlinks(
    pairs: Sequence[Pair],
    dotfiles_root: Union[str, Path],
    ctx: Optional["RunContext"] = None,
    *,
    backup: bool = False,
) -> List[Path]:
    """Point every target at dotfiles_root/source, replacing whatever was there.

    The existing target (file, directory, symlink, broken symlink) is removed
    first. With backup=True (requires ctx) it is moved aside instead; the
    backup is restored on rollback and deleted by the run's cleanup.
    """

    root = Path(dotfiles_root)
    if not root.is_dir():
        raise SymlinkError(f"Dotfiles root does not exist: {root}")

    linked: List[Path] = []
    for pair in pairs:
        spec = _as_spec(pair)
        source = root / spec.relative_source
        target = spec.absolute_target
        if not os.path.lexists(source):
            logger.warning("Source %s does not exist; link will dangle", source)

        log_setup(logger, "Linking %s -> %s", target, source)
        action = Symlink(source=source, target=target)
        if ctx is None:
            action.execute()
        else:
            if backup and os.path.lexists(target) and not target.is_symlink():
                try:
                    _backup(ctx, target)
                except OSError as e:
                    raise SymlinkError(f"Failed to back up {target}: {e}") from e
            ctx.perform(action)
        linked.append(target)

    log_success(logger, "Created %d symlinks", len(linked))
    return linked
