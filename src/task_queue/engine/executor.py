"""Execution engine: maps a task type to its handler and runs it."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from task_queue.engine.models import Task
from task_queue.errors import ExecutionFailure
from task_queue.transport.mailer import Mailer

logger = logging.getLogger(__name__)

EMAIL_SUBJECT = "Task Queue Notification"
EMAIL_BODY = "Your email task has been processed by the task queue system!"

DEFAULT_TASK_DELAYS: dict[str, float] = {
    "email": 2.0,
    "image": 3.0,
    "webhook": 2.0,
}
DEFAULT_TASK_DELAY_SECONDS = 2.0

TaskHandler = Callable[[Task], None]


@dataclass(slots=True, frozen=True)
class ExecutionResult:
    """Handler outcome; ``error`` is set only when ``ok`` is false."""

    ok: bool
    error: str | None = None

    @classmethod
    def success(cls) -> ExecutionResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, error: str) -> ExecutionResult:
        return cls(ok=False, error=error)


class ExecutionEngine:
    """Runs one task attempt and reports the outcome as a value.

    Every attempt first waits the simulated processing latency of its type.
    Handler faults of any kind are captured; ``execute`` never raises.
    """

    def __init__(
        self,
        *,
        mailer: Mailer,
        delays: Mapping[str, float] | None = None,
        default_delay_seconds: float = DEFAULT_TASK_DELAY_SECONDS,
        reject_unknown_types: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.mailer = mailer
        self.delays = dict(DEFAULT_TASK_DELAYS if delays is None else delays)
        self.default_delay_seconds = default_delay_seconds
        self.reject_unknown_types = reject_unknown_types
        self._sleep = sleep
        self._handlers: dict[str, TaskHandler] = {
            "email": self._handle_email,
            "image": self._handle_image,
            "webhook": self._handle_webhook,
        }

    @property
    def task_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._handlers))

    def register(self, task_type: str, handler: TaskHandler) -> None:
        self._handlers[task_type] = handler

    def delay_for(self, task_type: str) -> float:
        return self.delays.get(task_type, self.default_delay_seconds)

    def execute(self, task: Task) -> ExecutionResult:
        delay = self.delay_for(task.task_type)
        if delay > 0:
            self._sleep(delay)

        handler = self._handlers.get(task.task_type)
        if handler is None:
            if self.reject_unknown_types:
                logger.warning("Task %s has unknown type %r", task.task_id, task.task_type)
                return ExecutionResult.failure(f"Unknown task type: {task.task_type}")
            logger.warning(
                "Task %s has unknown type %r; completing without work",
                task.task_id,
                task.task_type,
            )
            return ExecutionResult.success()

        try:
            handler(task)
        except ExecutionFailure as error:
            return ExecutionResult.failure(str(error))
        except Exception as error:  # noqa: BLE001
            logger.exception("Handler for task %s raised unexpectedly", task.task_id)
            return ExecutionResult.failure(f"Unexpected handler error: {error!r}")
        return ExecutionResult.success()

    def _handle_email(self, task: Task) -> None:
        self.mailer.send(task.payload, EMAIL_SUBJECT, EMAIL_BODY)

    def _handle_image(self, task: Task) -> None:
        logger.info("Processing image for task %s: %s", task.task_id, task.payload)

    def _handle_webhook(self, task: Task) -> None:
        logger.info("Calling webhook for task %s: %s", task.task_id, task.payload)
