"""Worker pool that drains the work queue and drives task transitions."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from task_queue.engine import transitions
from task_queue.engine.executor import ExecutionEngine, ExecutionResult
from task_queue.engine.models import Task, TaskStatus
from task_queue.engine.notifier import (
    EVENT_COMPLETED,
    EVENT_DISCARDED,
    EVENT_FAILED,
    EVENT_LOST,
    EVENT_RETRYING,
    Notifier,
)
from task_queue.engine.retry_policy import plan_retry
from task_queue.engine.store import TaskStore
from task_queue.errors import InvalidTransitionError, NotFoundError, StorageUnavailable
from task_queue.storage.common import utc_now

logger = logging.getLogger(__name__)

DEFAULT_WORKER_COUNT = 3
ENQUEUE_ATTEMPTS = 3


class StepOutcome(str, Enum):
    """What one ``Worker.run_once`` call did."""

    IDLE = "idle"
    STORE_ERROR = "store_error"
    DROPPED = "dropped"
    SKIPPED = "skipped"
    COMPLETED = "completed"
    RETRIED = "retried"
    FAILED = "failed"
    LOST = "lost"


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    retried: int = 0
    dropped: int = 0
    store_errors: int = 0

    def record(self, outcome: StepOutcome) -> None:
        if outcome in {StepOutcome.COMPLETED, StepOutcome.RETRIED, StepOutcome.FAILED}:
            self.processed += 1
        if outcome == StepOutcome.COMPLETED:
            self.succeeded += 1
        elif outcome == StepOutcome.FAILED:
            self.failed += 1
        elif outcome == StepOutcome.RETRIED:
            self.retried += 1
        elif outcome in {StepOutcome.DROPPED, StepOutcome.SKIPPED, StepOutcome.LOST}:
            self.dropped += 1
        elif outcome == StepOutcome.STORE_ERROR:
            self.store_errors += 1


class Worker:
    """Claims one queued id at a time and applies the execution outcome."""

    def __init__(
        self,
        *,
        worker_id: str,
        store: TaskStore,
        engine: ExecutionEngine,
        notifier: Notifier,
        store_backoff_seconds: float = 1.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.worker_id = worker_id
        self.store = store
        self.engine = engine
        self.notifier = notifier
        self.store_backoff_seconds = store_backoff_seconds
        self.clock = clock
        self.summary = WorkerRunSummary()
        self._stop_event = threading.Event()

    def run(self, stop_event: threading.Event | None = None, *, poll_seconds: float = 1.0) -> None:
        """Loop until ``stop_event`` is set; a single fault never ends the loop."""

        stop = stop_event or self._stop_event
        while not stop.is_set():
            try:
                outcome = self.run_once(timeout=poll_seconds)
            except Exception:  # noqa: BLE001
                logger.exception("Worker %s hit an unexpected fault", self.worker_id)
                stop.wait(self.store_backoff_seconds)
                continue
            self.summary.record(outcome)
            if outcome == StepOutcome.STORE_ERROR:
                stop.wait(self.store_backoff_seconds)

    def run_once(self, *, timeout: float | None = None) -> StepOutcome:
        """Wait up to ``timeout`` for one queued id and process it."""

        logger.debug("Worker %s waiting for task", self.worker_id)
        try:
            task_id = self.store.dequeue_blocking(timeout=timeout)
        except StorageUnavailable as error:
            logger.warning("Worker %s dequeue error: %s", self.worker_id, error)
            return StepOutcome.STORE_ERROR
        if task_id is None:
            return StepOutcome.IDLE

        logger.info("Worker %s received task %s", self.worker_id, task_id)
        return self.process(task_id)

    def process(self, task_id: str) -> StepOutcome:
        try:
            task = self.store.get(task_id)
        except NotFoundError:
            logger.warning("Worker %s dropped unknown task %s", self.worker_id, task_id)
            return StepOutcome.DROPPED
        except StorageUnavailable as error:
            logger.warning("Worker %s failed to get task %s: %s", self.worker_id, task_id, error)
            return self._requeue_after_store_error(task_id)

        try:
            processing = transitions.start_processing(task, now=self.clock())
        except InvalidTransitionError:
            logger.warning(
                "Worker %s skipped task %s in status %s",
                self.worker_id,
                task_id,
                task.status.value,
            )
            return StepOutcome.SKIPPED
        try:
            claimed = self.store.compare_and_put(processing, expected_status=TaskStatus.PENDING)
        except StorageUnavailable as error:
            logger.warning(
                "Worker %s could not claim task %s: %s",
                self.worker_id,
                task_id,
                error,
            )
            return self._requeue_after_store_error(task_id)
        if not claimed:
            logger.warning("Worker %s lost the claim on task %s", self.worker_id, task_id)
            return StepOutcome.SKIPPED

        logger.info(
            "Worker %s processing task %s (type: %s, priority: %d, attempt: %d/%d)",
            self.worker_id,
            task_id,
            task.task_type,
            task.priority,
            task.retry_count + 1,
            task.max_retries + 1,
        )
        result = self.engine.execute(processing)
        try:
            return self._apply_result(processing, result)
        except StorageUnavailable as error:
            logger.error(
                "Worker %s could not record outcome of task %s: %s",
                self.worker_id,
                task_id,
                error,
            )
            self.notifier.publish_event(task_id, EVENT_LOST)
            return StepOutcome.LOST

    def _apply_result(self, task: Task, result: ExecutionResult) -> StepOutcome:
        now = self.clock()
        if result.ok:
            completed = transitions.complete(task, now=now)
            if not self.store.compare_and_put(completed, expected_status=TaskStatus.PROCESSING):
                logger.warning("Task %s changed while processing; outcome discarded", task.task_id)
                return self._discard(task)
            logger.info("Worker %s completed task %s", self.worker_id, task.task_id)
            self.notifier.notify_completion(completed)
            self.notifier.publish_event(task.task_id, EVENT_COMPLETED)
            return StepOutcome.COMPLETED

        error = result.error or "execution failed"
        logger.warning("Worker %s task %s failed: %s", self.worker_id, task.task_id, error)
        failed = transitions.fail(task, error=error, now=now)
        retry = plan_retry(failed, now=now)
        if retry is not None:
            if not self.store.compare_and_put(retry, expected_status=TaskStatus.PROCESSING):
                logger.warning("Task %s changed while processing; retry discarded", task.task_id)
                return self._discard(task)
            self._enqueue_with_retry(task.task_id)
            logger.info(
                "Worker %s retrying task %s (attempt %d/%d)",
                self.worker_id,
                task.task_id,
                retry.retry_count,
                retry.max_retries,
            )
            self.notifier.publish_event(task.task_id, EVENT_RETRYING)
            return StepOutcome.RETRIED

        if not self.store.compare_and_put(failed, expected_status=TaskStatus.PROCESSING):
            logger.warning("Task %s changed while processing; failure discarded", task.task_id)
            return self._discard(task)
        logger.info(
            "Worker %s marked task %s as failed (no more retries)",
            self.worker_id,
            task.task_id,
        )
        self.notifier.publish_event(task.task_id, EVENT_FAILED)
        return StepOutcome.FAILED

    def _discard(self, task: Task) -> StepOutcome:
        self.notifier.publish_event(task.task_id, EVENT_DISCARDED)
        return StepOutcome.SKIPPED

    def _enqueue_with_retry(self, task_id: str) -> None:
        """Enqueue, retrying transient store errors before giving up."""

        for attempt in range(1, ENQUEUE_ATTEMPTS + 1):
            try:
                self.store.enqueue(task_id)
            except StorageUnavailable as error:
                if attempt == ENQUEUE_ATTEMPTS:
                    raise
                logger.warning(
                    "Worker %s enqueue of task %s failed (attempt %d/%d): %s",
                    self.worker_id,
                    task_id,
                    attempt,
                    ENQUEUE_ATTEMPTS,
                    error,
                )
                time.sleep(self.store_backoff_seconds)
            else:
                return

    def _requeue_after_store_error(self, task_id: str) -> StepOutcome:
        try:
            self._enqueue_with_retry(task_id)
        except StorageUnavailable as error:
            logger.error("Worker %s lost task id %s: %s", self.worker_id, task_id, error)
            return StepOutcome.LOST
        return StepOutcome.STORE_ERROR


class WorkerPool:
    """Fixed-size pool of worker threads sharing one task store."""

    def __init__(
        self,
        *,
        store: TaskStore,
        engine: ExecutionEngine,
        notifier: Notifier,
        size: int = DEFAULT_WORKER_COUNT,
        store_backoff_seconds: float = 1.0,
        poll_seconds: float = 1.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if size < 1:
            raise ValueError("Worker pool size must be >= 1.")
        self.size = size
        self.poll_seconds = poll_seconds
        self.workers = [
            Worker(
                worker_id=f"worker-{index}",
                store=store,
                engine=engine,
                notifier=notifier,
                store_backoff_seconds=store_backoff_seconds,
                clock=clock,
            )
            for index in range(1, size + 1)
        ]
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        if self._threads:
            return
        self._stop_event.clear()
        for worker in self.workers:
            thread = threading.Thread(
                target=worker.run,
                args=(self._stop_event,),
                kwargs={"poll_seconds": self.poll_seconds},
                name=worker.worker_id,
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        logger.info("Worker pool started with %d workers", self.size)

    def stop(self, timeout: float | None = 10.0) -> None:
        """Ask workers to exit after their current task and join them."""

        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []

    def summary(self) -> WorkerRunSummary:
        aggregate = WorkerRunSummary()
        for worker in self.workers:
            aggregate.processed += worker.summary.processed
            aggregate.succeeded += worker.summary.succeeded
            aggregate.failed += worker.summary.failed
            aggregate.retried += worker.summary.retried
            aggregate.dropped += worker.summary.dropped
            aggregate.store_errors += worker.summary.store_errors
        return aggregate
