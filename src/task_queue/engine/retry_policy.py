"""Retry decision shared by the worker and the explicit retry request."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from task_queue.engine.models import Task, TaskStatus


def can_retry(task: Task) -> bool:
    """A failed task is retriable while it has retries left."""

    return task.status == TaskStatus.FAILED and task.retry_count < task.max_retries


def plan_retry(task: Task, *, now: datetime) -> Task | None:
    """Return the re-queued record, or ``None`` when the task is not retriable."""

    if not can_retry(task):
        return None
    return replace(
        task,
        status=TaskStatus.PENDING,
        retry_count=task.retry_count + 1,
        error=None,
        updated_at=now,
    )
