"""Named-step runner for multi-write operations.

The store gives no atomicity across rows, so operations such as a PTO
assignment (suspend partnership, deduct balance, write one or two exception
rows) run as a sequence of named steps. Each step is retried in place on
``TransientStoreError``; when a step fails for good, the steps that already
completed are compensated in reverse order and the original error is raised
with the step log attached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from errors import RosterError, TransientStoreError

logger = logging.getLogger(__name__)


@dataclass
class SagaStep:
    name: str
    action: Callable[[], Any]
    compensation: Optional[Callable[[Any], None]] = None


@dataclass
class StepRecord:
    name: str
    status: str
    attempts: int = 0
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"step": self.name, "status": self.status, "attempts": self.attempts, "error": self.error}


@dataclass
class Saga:
    name: str
    max_attempts: int = 3
    steps: List[SagaStep] = field(default_factory=list)
    log: List[StepRecord] = field(default_factory=list)
    results: Dict[str, Any] = field(default_factory=dict)

    def step(
        self,
        name: str,
        action: Callable[[], Any],
        compensation: Optional[Callable[[Any], None]] = None,
    ) -> "Saga":
        self.steps.append(SagaStep(name, action, compensation))
        return self

    def _attempt(self, name: str, func: Callable[[], Any], record: StepRecord) -> Any:
        attempts = max(1, int(self.max_attempts or 1))
        for attempt in range(1, attempts + 1):
            record.attempts = attempt
            try:
                return func()
            except TransientStoreError as exc:
                record.error = str(exc)
                if attempt == attempts:
                    raise
                logger.warning("%s: step '%s' failed transiently (attempt %d/%d)", self.name, name, attempt, attempts)
        return None

    def run(self) -> Dict[str, Any]:
        completed: List[tuple] = []
        for step in self.steps:
            record = StepRecord(step.name, "running")
            self.log.append(record)
            try:
                result = self._attempt(step.name, step.action, record)
            except RosterError as exc:
                record.status = "failed"
                record.error = str(exc)
                self._compensate(completed)
                if isinstance(exc, TransientStoreError):
                    exc.saga_log = [entry.as_dict() for entry in self.log]
                raise
            record.status = "done"
            record.error = None
            self.results[step.name] = result
            completed.append((step, result))
        return self.results

    def _compensate(self, completed: List[tuple]) -> None:
        for step, result in reversed(completed):
            if step.compensation is None:
                continue
            record = StepRecord(f"undo:{step.name}", "running")
            self.log.append(record)
            try:
                self._attempt(record.name, lambda: step.compensation(result), record)
            except RosterError as exc:
                # Left for the idempotent repair paths; keep unwinding the rest.
                record.status = "failed"
                record.error = str(exc)
                logger.error("%s: compensation for '%s' failed: %s", self.name, step.name, exc)
                continue
            record.status = "done"
            logger.warning("%s: compensated step '%s'", self.name, step.name)
