"""Domain models for the task queue and their wire representation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from task_queue.errors import ValidationError
from task_queue.storage.common import from_iso, to_rfc3339

DEFAULT_PRIORITY = 3
MIN_PRIORITY = 1
MAX_PRIORITY = 5
DEFAULT_MAX_RETRIES = 2


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    SCHEDULED = "scheduled"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class Task:
    """One unit of work and its latest execution record."""

    task_id: str
    task_type: str
    payload: str
    status: TaskStatus
    priority: int
    scheduled_for: datetime | None
    retry_count: int
    max_retries: int
    webhook: str | None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    error: str | None = None


@dataclass(slots=True)
class TaskCreate:
    """Producer input for a new task.

    ``max_retries=None`` selects the default; an explicit ``0`` disables retries.
    """

    task_type: str
    payload: str
    priority: int = DEFAULT_PRIORITY
    scheduled_for: datetime | None = None
    webhook: str | None = None
    max_retries: int | None = None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> TaskCreate:
        """Build a creation request from a decoded JSON object."""

        if not isinstance(data, dict):
            raise ValidationError("Task request must be a JSON object.")

        scheduled_raw = data.get("scheduled_for")
        scheduled_for: datetime | None = None
        if scheduled_raw:
            if not isinstance(scheduled_raw, str):
                raise ValidationError("scheduled_for must be an RFC3339 string.")
            try:
                scheduled_for = from_iso(scheduled_raw)
            except ValueError as error:
                raise ValidationError(f"Invalid scheduled_for: {scheduled_raw!r}") from error

        return cls(
            task_type=_wire_str(data, "type"),
            payload=_wire_str(data, "payload"),
            priority=_wire_int(data, "priority", default=None) or DEFAULT_PRIORITY,
            scheduled_for=scheduled_for,
            webhook=_wire_str(data, "webhook") or None,
            max_retries=_wire_int(data, "max_retries", default=None),
        )


@dataclass(slots=True, frozen=True)
class QueueStats:
    """Read-time aggregate over the task population and queue depth."""

    total_tasks: int
    pending_count: int
    processing_count: int
    completed_count: int
    failed_count: int
    scheduled_count: int
    worker_count: int

    def to_wire(self) -> dict[str, int]:
        return {
            "total_tasks": self.total_tasks,
            "pending_count": self.pending_count,
            "processing_count": self.processing_count,
            "completed_count": self.completed_count,
            "failed_count": self.failed_count,
            "scheduled_count": self.scheduled_count,
            "worker_count": self.worker_count,
        }


def task_to_wire(task: Task) -> dict[str, Any]:
    """JSON-ready task object; empty optional fields are omitted."""

    wire: dict[str, Any] = {
        "id": task.task_id,
        "type": task.task_type,
        "payload": task.payload,
        "status": task.status.value,
        "priority": task.priority,
    }
    if task.scheduled_for is not None:
        wire["scheduled_for"] = to_rfc3339(task.scheduled_for)
    wire["retry_count"] = task.retry_count
    wire["max_retries"] = task.max_retries
    if task.webhook:
        wire["webhook"] = task.webhook
    wire["created_at"] = to_rfc3339(task.created_at)
    wire["updated_at"] = to_rfc3339(task.updated_at)
    if task.completed_at is not None:
        wire["completed_at"] = to_rfc3339(task.completed_at)
    if task.error:
        wire["error"] = task.error
    return wire


def _wire_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string.")
    return value


def _wire_int(data: dict[str, Any], key: str, *, default: int | None) -> int | None:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer.")
    return value
