"""Deterministic collaborators for unit tests."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from task_queue.engine.models import Task, TaskStatus
from task_queue.engine.store import TaskStore
from task_queue.errors import MailDeliveryError, NotificationFailure, StorageUnavailable


@dataclass
class FakeMailer:
    """Fails the first ``failures`` sends, then succeeds; records every call."""

    failures: int = 0
    calls: list[tuple[str, str, str]] = field(default_factory=list)

    def send(self, to: str, subject: str, body: str) -> None:
        self.calls.append((to, subject, body))
        if self.failures > 0:
            self.failures -= 1
            raise MailDeliveryError(f"smtp rejected {to}")


@dataclass
class RecordingWebhookClient:
    fail: bool = False
    calls: list[tuple[str, str]] = field(default_factory=list)

    def post(self, url: str, body: str) -> None:
        self.calls.append((url, body))
        if self.fail:
            raise NotificationFailure(f"webhook {url} unreachable")


class BrokenPublisher:
    def publish(self, topic: str, message: str) -> object:
        raise ConnectionError("bus down")


class RecordingStore(TaskStore):
    """Task store that records every applied status transition."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.transitions: list[tuple[str, TaskStatus, TaskStatus]] = []
        self._record_lock = threading.Lock()

    def compare_and_put(self, task: Task, *, expected_status: TaskStatus) -> bool:
        applied = super().compare_and_put(task, expected_status=expected_status)
        if applied:
            with self._record_lock:
                self.transitions.append((task.task_id, expected_status, task.status))
        return applied

    def statuses_for(self, task_id: str) -> list[TaskStatus]:
        return [status_to for recorded_id, _, status_to in self.transitions if recorded_id == task_id]


class FlakyStore(RecordingStore):
    """Raises ``StorageUnavailable`` on the first ``dequeue_failures`` dequeues."""

    def __init__(self, *args, dequeue_failures: int = 0, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.dequeue_failures = dequeue_failures
        self.dequeue_calls = 0

    def dequeue_blocking(self, timeout: float | None = None) -> str | None:
        self.dequeue_calls += 1
        if self.dequeue_failures > 0:
            self.dequeue_failures -= 1
            raise StorageUnavailable("database is locked")
        return super().dequeue_blocking(timeout=timeout)


class FailingWritesStore(RecordingStore):
    """Raises ``StorageUnavailable`` on selected writes a fixed number of times."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.claim_failures = 0
        self.enqueue_failures = 0

    def compare_and_put(self, task: Task, *, expected_status: TaskStatus) -> bool:
        if task.status == TaskStatus.PROCESSING and self.claim_failures > 0:
            self.claim_failures -= 1
            raise StorageUnavailable("database is locked")
        return super().compare_and_put(task, expected_status=expected_status)

    def enqueue(self, task_id: str) -> None:
        if self.enqueue_failures > 0:
            self.enqueue_failures -= 1
            raise StorageUnavailable("database is locked")
        super().enqueue(task_id)
