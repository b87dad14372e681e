"""Periodic promotion of due scheduled tasks into the work queue."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime

from task_queue.engine import transitions
from task_queue.engine.models import TaskStatus
from task_queue.engine.store import TaskStore
from task_queue.errors import StorageUnavailable
from task_queue.storage.common import utc_now

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULER_INTERVAL_SECONDS = 5.0


class ScheduledTaskPromoter:
    """Scans every task once per tick and promotes due ``scheduled`` ones.

    The scan reads the whole task population.  ``idx_tasks_status_scheduled_for``
    is the index a due-time query would use once volumes require it.
    Ids promoted to ``pending`` whose enqueue failed are kept and queued on a
    later tick.
    """

    def __init__(
        self,
        *,
        store: TaskStore,
        interval_seconds: float = DEFAULT_SCHEDULER_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("Scheduler interval must be > 0.")
        self.store = store
        self.interval_seconds = interval_seconds
        self.clock = clock
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._unqueued: list[str] = []

    def tick(self, now: datetime | None = None) -> list[str]:
        """Promote every due scheduled task; returns promoted ids."""

        now = now or self.clock()
        promoted = self._flush_unqueued()
        try:
            tasks = self.store.list()
        except StorageUnavailable as error:
            logger.warning("Scheduler could not list tasks: %s", error)
            return promoted

        for task in tasks:
            if task.status != TaskStatus.SCHEDULED or task.scheduled_for is None:
                continue
            if task.scheduled_for > now:
                continue
            pending = transitions.promote(task, now=now)
            try:
                if not self.store.compare_and_put(pending, expected_status=TaskStatus.SCHEDULED):
                    continue
            except StorageUnavailable as error:
                logger.warning("Scheduler could not promote task %s: %s", task.task_id, error)
                continue
            try:
                self.store.enqueue(task.task_id)
            except StorageUnavailable as error:
                logger.warning("Scheduler could not queue task %s: %s", task.task_id, error)
                self._unqueued.append(task.task_id)
                continue
            promoted.append(task.task_id)
            logger.info("Scheduled task %s moved to queue", task.task_id)
        return promoted

    def _flush_unqueued(self) -> list[str]:
        queued: list[str] = []
        while self._unqueued:
            task_id = self._unqueued[0]
            try:
                self.store.enqueue(task_id)
            except StorageUnavailable as error:
                logger.warning("Scheduler still cannot queue task %s: %s", task_id, error)
                break
            self._unqueued.pop(0)
            queued.append(task_id)
            logger.info("Scheduled task %s moved to queue", task_id)
        return queued

    def run(self, stop_event: threading.Event | None = None) -> None:
        stop = stop_event or self._stop_event
        while not stop.wait(self.interval_seconds):
            try:
                self.tick()
            except Exception:  # noqa: BLE001
                logger.exception("Scheduler tick failed")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run,
            args=(self._stop_event,),
            name="scheduler",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
