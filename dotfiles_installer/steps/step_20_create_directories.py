from __future__ import annotations

import logging

from ..lib.manifests import LinksManifest
from ..lib.symlinks import create_directories
from ..run_context import RunContext

logger = logging.getLogger(__name__)


class CreateDirectoriesStep:
    step_id = "20_create_directories"
    title = "Configuration Directories"

    def __init__(self, manifest: LinksManifest) -> None:
        self.manifest = manifest

    def run(self, ctx: RunContext) -> None:
        created = create_directories(self.manifest.directories, ctx)
        logger.info("%d directories ready", len(created))
