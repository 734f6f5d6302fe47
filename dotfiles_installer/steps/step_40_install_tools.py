from __future__ import annotations

import logging

from ..lib.installer import InstallOutcome, install_all
from ..lib.manifests import ToolsManifest
from ..logging_utils import log_success
from ..run_context import RunContext

logger = logging.getLogger(__name__)


class InstallToolsStep:
    step_id = "40_install_tools"
    title = "Development Tools Installation"

    def __init__(self, manifest: ToolsManifest) -> None:
        self.manifest = manifest

    def run(self, ctx: RunContext) -> None:
        if ctx.force:
            logger.warning("Force mode enabled - all packages will be reinstalled")

        outcomes = install_all(ctx, self.manifest.tools, force=ctx.force)
        installed = [n for n, o in outcomes.items() if o is InstallOutcome.INSTALLED]
        log_success(
            logger,
            "Tools ready (%d installed, %d already present)",
            len(installed),
            len(outcomes) - len(installed),
        )
