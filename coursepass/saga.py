"""
Saga coordination for steps that leave the registry.

Store writes roll back with their transaction, but a settled payment lives in
the currency collaborator. A ``Saga`` pairs each external step with its
compensation and, on failure, runs the compensations of the steps that
already completed in reverse order before re-raising the original error.

Example:
    saga = Saga("buy:" + course_id)
    saga.add_step("settle", pay_seller, refund_buyer)
    saga.add_step("transfer", move_course)
    saga.execute()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class SagaState(Enum):
    """Saga execution states."""
    PENDING = auto()
    RUNNING = auto()
    COMPLETED = auto()
    COMPENSATING = auto()
    FAILED = auto()


class CompensationFailed(Exception):
    """A compensation step raised; the saga could not fully undo itself."""
    def __init__(self, saga_id: str, step: str, cause: Exception, original: Exception):
        self.saga_id = saga_id
        self.step = step
        self.cause = cause
        self.original = original
        super().__init__(
            f"Saga {saga_id}: compensation for '{step}' failed ({cause}) "
            f"while undoing: {original}"
        )


@dataclass
class SagaStep:
    """A step in a saga."""
    name: str
    action: Callable[[], None]
    compensate: Optional[Callable[[], None]] = None


class Saga:
    """Executes steps in order and compensates completed ones on failure."""

    def __init__(self, saga_id: str):
        self.saga_id = saga_id
        self._steps: List[SagaStep] = []
        self._completed_steps: List[SagaStep] = []
        self._state = SagaState.PENDING
        self._error: Optional[Exception] = None

    @property
    def state(self) -> SagaState:
        """Current saga state."""
        return self._state

    @property
    def error(self) -> Optional[Exception]:
        """Error if saga failed."""
        return self._error

    def add_step(
        self,
        name: str,
        action: Callable[[], None],
        compensate: Optional[Callable[[], None]] = None,
    ) -> "Saga":
        """Add a step to the saga."""
        self._steps.append(SagaStep(name, action, compensate))
        return self

    def execute(self) -> None:
        """
        Run every step.

        Raises the first step error after compensation, or
        ``CompensationFailed`` if a compensation itself raises.
        """
        self._state = SagaState.RUNNING

        for step in self._steps:
            try:
                step.action()
            except Exception as e:
                self._error = e
                self._state = SagaState.COMPENSATING
                logger.info("Saga %s step %s failed: %s; compensating", self.saga_id, step.name, e)
                self._compensate(e)
                self._state = SagaState.FAILED
                raise
            self._completed_steps.append(step)

        self._state = SagaState.COMPLETED

    def _compensate(self, original: Exception) -> None:
        """Run compensation for completed steps in reverse order."""
        for step in reversed(self._completed_steps):
            if step.compensate:
                try:
                    step.compensate()
                except Exception as exc:
                    self._state = SagaState.FAILED
                    logger.error(
                        "Saga %s compensation step %s failed: %s",
                        self.saga_id, step.name, exc, exc_info=True,
                    )
                    raise CompensationFailed(self.saga_id, step.name, exc, original) from original
