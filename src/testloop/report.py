from __future__ import annotations

import logging
from typing import Any

from testloop.models import RunStep, StepStatus

logger = logging.getLogger(__name__)


class StepTransitionError(ValueError):
    """Raised when a step that already finished is marked again."""

    def __init__(self, step: RunStep) -> None:
        self.step = step
        super().__init__(
            f"Step {step.step} ({step.name}) is already {step.status.value}"
        )


class RunReport:
    """Ordered record of every step attempted during one operation.

    Steps are numbered by position. A step starts ``in_progress`` and moves
    exactly once to ``completed`` or ``failed``.
    """

    def __init__(self) -> None:
        self._steps: list[RunStep] = []

    @property
    def steps(self) -> list[RunStep]:
        return list(self._steps)

    @property
    def last(self) -> RunStep | None:
        return self._steps[-1] if self._steps else None

    def __len__(self) -> int:
        return len(self._steps)

    def start(self, name: str, message: str = "") -> RunStep:
        step = RunStep(step=len(self._steps) + 1, name=name, message=message)
        self._steps.append(step)
        logger.info("Step %d %s started", step.step, name)
        return step

    def complete(
        self,
        step: RunStep,
        result: dict[str, Any] | None = None,
        message: str | None = None,
    ) -> RunStep:
        _ensure_open(step)
        step.status = StepStatus.COMPLETED
        step.result = result
        if message is not None:
            step.message = message
        logger.info("Step %d %s completed", step.step, step.name)
        return step

    def fail(
        self,
        step: RunStep,
        error: str,
        reason: str | None = None,
        result: dict[str, Any] | None = None,
    ) -> RunStep:
        _ensure_open(step)
        step.status = StepStatus.FAILED
        step.error = error
        step.reason = reason
        step.result = result
        logger.warning("Step %d %s failed (%s)", step.step, step.name, reason)
        return step

    def succeeded(self) -> bool:
        return bool(self._steps) and all(
            s.status == StepStatus.COMPLETED for s in self._steps
        )


def _ensure_open(step: RunStep) -> None:
    if step.status != StepStatus.IN_PROGRESS:
        raise StepTransitionError(step)
