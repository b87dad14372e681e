"""Error taxonomy shared by the queue engine and its collaborators."""

from __future__ import annotations


class TaskQueueError(RuntimeError):
    """Base class for task queue errors."""


class ValidationError(TaskQueueError):
    """Malformed task creation request."""


class NotFoundError(TaskQueueError):
    """Unknown task id."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class StorageUnavailable(TaskQueueError):
    """Transient backing-store failure.

    Callers retry with backoff; it is never recorded as a task-level failure.
    """


class ExecutionFailure(TaskQueueError):
    """Handler-reported failure that drives the retry/failed transition."""


class MailDeliveryError(ExecutionFailure):
    """The mail collaborator could not deliver a message."""


class NotificationFailure(TaskQueueError):
    """Event publication or webhook delivery failed. Logged, never surfaced on the task."""


class InvalidTransitionError(TaskQueueError):
    """Attempted status change outside the task state machine."""

    def __init__(self, task_id: str, status_from: str, status_to: str) -> None:
        super().__init__(f"Invalid transition for task {task_id}: {status_from} -> {status_to}")
        self.task_id = task_id
        self.status_from = status_from
        self.status_to = status_to
