"""Task state machine.

Every function returns the next record and leaves the input untouched.
Anything outside ``ALLOWED_TRANSITIONS`` raises ``InvalidTransitionError``.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from task_queue.engine.models import Task, TaskStatus
from task_queue.errors import InvalidTransitionError

ALLOWED_TRANSITIONS: frozenset[tuple[TaskStatus, TaskStatus]] = frozenset(
    {
        (TaskStatus.SCHEDULED, TaskStatus.PENDING),
        (TaskStatus.PENDING, TaskStatus.PROCESSING),
        (TaskStatus.PROCESSING, TaskStatus.COMPLETED),
        (TaskStatus.PROCESSING, TaskStatus.PENDING),
        (TaskStatus.PROCESSING, TaskStatus.FAILED),
        (TaskStatus.FAILED, TaskStatus.PENDING),
    },
)


def is_allowed(status_from: TaskStatus, status_to: TaskStatus) -> bool:
    return (status_from, status_to) in ALLOWED_TRANSITIONS


def ensure_allowed(task: Task, status_to: TaskStatus) -> None:
    if not is_allowed(task.status, status_to):
        raise InvalidTransitionError(task.task_id, task.status.value, status_to.value)


def promote(task: Task, *, now: datetime) -> Task:
    """Scheduled task became due."""

    if task.status != TaskStatus.SCHEDULED:
        raise InvalidTransitionError(task.task_id, task.status.value, TaskStatus.PENDING.value)
    return replace(task, status=TaskStatus.PENDING, updated_at=now)


def start_processing(task: Task, *, now: datetime) -> Task:
    ensure_allowed(task, TaskStatus.PROCESSING)
    return replace(task, status=TaskStatus.PROCESSING, updated_at=now)


def complete(task: Task, *, now: datetime) -> Task:
    ensure_allowed(task, TaskStatus.COMPLETED)
    return replace(task, status=TaskStatus.COMPLETED, updated_at=now, completed_at=now)


def fail(task: Task, *, error: str, now: datetime) -> Task:
    ensure_allowed(task, TaskStatus.FAILED)
    return replace(task, status=TaskStatus.FAILED, error=error, updated_at=now)
