from __future__ import annotations

import logging
import shutil

from ..errors import CommandError, InstallError
from ..lib.manifests import PostInstallTask, ToolsManifest
from ..logging_utils import log_progress, log_success
from ..run_context import RunContext

logger = logging.getLogger(__name__)


class PostInstallStep:
    step_id = "50_post_install"
    title = "Post-Install Configuration"

    def __init__(self, manifest: ToolsManifest) -> None:
        self.manifest = manifest

    def _run_task(self, ctx: RunContext, task: PostInstallTask) -> None:
        command = task.force_command if (ctx.force and task.force_command) else task.command
        prefix = "post_install_" + task.name.replace(" ", "-")

        if task.critical:
            with ctx.tempdirs.scoped(prefix) as scratch:
                try:
                    ctx.run_action(command, cwd=scratch)
                except CommandError as e:
                    err = InstallError(f"{task.name} failed (exit {e.returncode})")
                    err.exit_code = e.exit_code
                    raise err from e
            log_success(logger, "%s done", task.name)
            return

        rc = ctx.tempdirs.run_in_temp_dir(prefix, command)
        if rc == 0:
            log_success(logger, "%s done", task.name)
        else:
            logger.warning("%s failed with exit code %s (non-critical)", task.name, rc)

    def run(self, ctx: RunContext) -> None:
        for task in self.manifest.post_install:
            if task.requires and shutil.which(task.requires) is None:
                logger.info("Skipping %s (%s not installed)", task.name, task.requires)
                continue
            log_progress(logger, "%s...", task.name)
            self._run_task(ctx, task)
