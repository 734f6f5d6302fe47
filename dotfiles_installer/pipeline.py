from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import List, Protocol, Sequence

from .logging_utils import log_duration, section_header
from .run_context import RunContext

logger = logging.getLogger(__name__)


class Step(Protocol):
    """A single idempotent step."""

    step_id: str
    title: str

    def run(self, ctx: RunContext) -> None:
        ...


@dataclass(frozen=True)
class PipelineResult:
    ran_steps: List[str]


def run_pipeline(*, ctx: RunContext, steps: Sequence[Step]) -> PipelineResult:
    """Run steps in order. The first exception stops the pipeline and propagates."""

    ran: List[str] = []

    for step in steps:
        section_header(logger, step.title)
        logger.debug("Running step %s", step.step_id)
        started = time.time()
        step.run(ctx)
        log_duration(logger, step.step_id, started)
        ran.append(step.step_id)

    return PipelineResult(ran_steps=ran)
