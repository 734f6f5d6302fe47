from __future__ import annotations

import logging
from typing import Sequence

from ..lib.checker import run_system_checks
from ..logging_utils import log_success
from ..run_context import RunContext

logger = logging.getLogger(__name__)


class ValidateSystemStep:
    step_id = "10_validate_system"
    title = "System Validation"

    def __init__(self, required_commands: Sequence[str] = ()) -> None:
        self.required_commands = list(required_commands)

    def run(self, ctx: RunContext) -> None:
        # Nothing may be created before this passes.
        ctx.system = run_system_checks(required_commands=self.required_commands)
        log_success(logger, "System validation completed successfully")
