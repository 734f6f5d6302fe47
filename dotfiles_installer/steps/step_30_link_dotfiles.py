from __future__ import annotations

import logging

from ..lib.manifests import LinksManifest
from ..lib.symlinks import create_symlinks
from ..run_context import RunContext

logger = logging.getLogger(__name__)


class LinkDotfilesStep:
    step_id = "30_link_dotfiles"
    title = "Dotfile Symlinks"

    def __init__(self, manifest: LinksManifest) -> None:
        self.manifest = manifest

    def run(self, ctx: RunContext) -> None:
        create_symlinks(
            self.manifest.links,
            ctx.settings.dotfiles_dir,
            ctx,
            backup=self.manifest.backup,
        )
