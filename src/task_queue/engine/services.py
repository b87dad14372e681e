"""Use-case services for the producer side of the queue."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from urllib.parse import urlparse
from uuid import uuid4

from task_queue.engine.models import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_PRIORITY,
    MAX_PRIORITY,
    MIN_PRIORITY,
    QueueStats,
    Task,
    TaskCreate,
    TaskStatus,
)
from task_queue.engine.notifier import EVENT_CREATED, Notifier
from task_queue.engine.retry_policy import plan_retry
from task_queue.engine.store import TaskStore
from task_queue.errors import ValidationError
from task_queue.storage.common import utc_now

logger = logging.getLogger(__name__)


class TaskService:
    """Creates tasks and serves explicit retry and read requests."""

    def __init__(
        self,
        *,
        store: TaskStore,
        notifier: Notifier,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.clock = clock

    def create_task(self, command: TaskCreate) -> Task:
        """Persist a new task and queue it unless it is scheduled for later."""

        task_type = command.task_type.strip()
        payload = command.payload
        if not task_type or not payload:
            raise ValidationError("type and payload required")
        webhook = (command.webhook or "").strip() or None
        if webhook is not None:
            _validate_webhook_url(webhook)

        now = self.clock()
        priority = command.priority
        if priority < MIN_PRIORITY or priority > MAX_PRIORITY:
            priority = DEFAULT_PRIORITY
        max_retries = command.max_retries
        if max_retries is None or max_retries < 0:
            max_retries = DEFAULT_MAX_RETRIES

        scheduled_for = command.scheduled_for
        status = TaskStatus.PENDING
        if scheduled_for is not None and scheduled_for > now:
            status = TaskStatus.SCHEDULED

        task = Task(
            task_id=str(uuid4()),
            task_type=task_type,
            payload=payload,
            status=status,
            priority=priority,
            scheduled_for=scheduled_for,
            retry_count=0,
            max_retries=max_retries,
            webhook=webhook,
            created_at=now,
            updated_at=now,
        )
        self.store.put(task)
        if status == TaskStatus.PENDING:
            self.store.enqueue(task.task_id)
        logger.info(
            "Task %s created (type: %s, priority: %d, status: %s)",
            task.task_id,
            task.task_type,
            task.priority,
            task.status.value,
        )
        self.notifier.publish_event(task.task_id, EVENT_CREATED)
        return task

    def get_task(self, task_id: str) -> Task:
        return self.store.get(task_id)

    def list_tasks(self, *, status: TaskStatus | None = None) -> list[Task]:
        tasks = self.store.list()
        if status is None:
            return tasks
        return [task for task in tasks if task.status == status]

    def retry_task(self, task_id: str) -> bool:
        """Re-queue a failed task with retries left; other tasks are left unchanged."""

        task = self.store.get(task_id)
        retry = plan_retry(task, now=self.clock())
        if retry is None:
            logger.info("Task %s is not retriable (status: %s)", task_id, task.status.value)
            return False
        if not self.store.compare_and_put(retry, expected_status=TaskStatus.FAILED):
            logger.info("Task %s changed before retry could be applied", task_id)
            return False
        self.store.enqueue(task_id)
        logger.info(
            "Task %s retrying (attempt %d/%d)",
            task_id,
            retry.retry_count,
            retry.max_retries,
        )
        return True

    def queue_stats(self, *, worker_count: int) -> QueueStats:
        pending_count = self.store.queue_depth()
        tasks = self.store.list()
        now = self.clock()
        return QueueStats(
            total_tasks=len(tasks),
            pending_count=pending_count,
            processing_count=sum(1 for task in tasks if task.status == TaskStatus.PROCESSING),
            completed_count=sum(1 for task in tasks if task.status == TaskStatus.COMPLETED),
            failed_count=sum(1 for task in tasks if task.status == TaskStatus.FAILED),
            scheduled_count=sum(
                1 for task in tasks if task.scheduled_for is not None and task.scheduled_for > now
            ),
            worker_count=worker_count,
        )


def _validate_webhook_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValidationError(
            f"Invalid webhook URL: {value!r}. Expected an absolute http:// or https:// URL.",
        )
