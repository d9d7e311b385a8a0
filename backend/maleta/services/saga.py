# Overview: Ordered (action, compensation) runner for multi-commit workflows.

"""
Settlement steps cannot share one DB transaction: each step commits on its
own so a failure leaves earlier steps durable. Saga records every completed
step together with its compensation; on failure the caller invokes
compensate(), which undoes completed steps in reverse order.

Compensation is best effort: a failing compensation is logged and the
remaining ones still run. The original error is always re-raised by the
caller, never replaced by a compensation error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..extensions import db

logger = logging.getLogger(__name__)


@dataclass
class SagaStep:
    name: str
    result: Any = None
    compensation: Optional[Callable[[Any], None]] = None


@dataclass
class Saga:
    """
    Usage:
        saga = Saga("settlement suitcase=12")
        try:
            row = saga.run("write settlement", write, compensate=delete_row)
            ...
        except Exception:
            saga.compensate()
            raise
    """
    name: str
    completed: list[SagaStep] = field(default_factory=list)

    def run(
        self,
        step_name: str,
        action: Callable[[], Any],
        compensate: Optional[Callable[[Any], None]] = None,
    ) -> Any:
        """Run one step; it is recorded for compensation only if it returns."""
        result = action()
        self.completed.append(SagaStep(name=step_name, result=result, compensation=compensate))
        logger.debug("[%s] step done: %s", self.name, step_name)
        return result

    def compensate(self) -> list[str]:
        """
        Undo completed steps in reverse order.

        Returns the names of compensations that failed.
        """
        failed: list[str] = []
        db.session.rollback()
        for step in reversed(self.completed):
            if step.compensation is None:
                continue
            try:
                step.compensation(step.result)
                db.session.commit()
                logger.info("[%s] compensated: %s", self.name, step.name)
            except Exception:
                db.session.rollback()
                failed.append(step.name)
                logger.exception("[%s] compensation failed: %s", self.name, step.name)
        self.completed.clear()
        return failed
