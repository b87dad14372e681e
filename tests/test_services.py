from __future__ import annotations

import threading
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import allure
import pytest

from task_queue.engine.dispatcher import StepOutcome, Worker
from task_queue.engine.models import TaskCreate, TaskStatus
from task_queue.engine.notifier import Notifier
from task_queue.engine.services import TaskService
from task_queue.errors import NotFoundError, ValidationError

from .fakes import FakeMailer, RecordingStore

pytestmark = [
    allure.epic("Task Queue"),
    allure.feature("Task Service"),
]


def test_create_applies_defaults_and_queues_task(
    store: RecordingStore,
    service: TaskService,
) -> None:
    events = store.subscribe("task_events")

    task = service.create_task(TaskCreate(task_type="email", payload="user@example.com"))

    assert task.status == TaskStatus.PENDING
    assert task.priority == 3
    assert task.max_retries == 2
    assert task.retry_count == 0
    assert task.created_at == task.updated_at
    assert store.get(task.task_id) == task
    assert store.dequeue_blocking(timeout=0) == task.task_id
    assert events.get_nowait() == f"{task.task_id}:created"


@pytest.mark.parametrize("priority", [0, 6, -1, 99])
def test_out_of_range_priority_falls_back_to_default(service: TaskService, priority: int) -> None:
    task = service.create_task(TaskCreate(task_type="image", payload="x", priority=priority))

    assert task.priority == 3


def test_negative_max_retries_falls_back_to_default(service: TaskService) -> None:
    task = service.create_task(TaskCreate(task_type="image", payload="x", max_retries=-1))

    assert task.max_retries == 2


@pytest.mark.parametrize(
    ("task_type", "payload"),
    [("", "user@example.com"), ("email", ""), ("  ", "x")],
)
def test_type_and_payload_are_required(
    store: RecordingStore,
    service: TaskService,
    task_type: str,
    payload: str,
) -> None:
    with pytest.raises(ValidationError, match="type and payload required"):
        service.create_task(TaskCreate(task_type=task_type, payload=payload))

    assert store.count() == 0


def test_payload_is_stored_unchanged(store: RecordingStore, service: TaskService) -> None:
    task = service.create_task(TaskCreate(task_type="webhook", payload="   "))

    assert store.get(task.task_id).payload == "   "


def test_webhook_must_be_http_url(service: TaskService) -> None:
    with pytest.raises(ValidationError, match="Invalid webhook URL"):
        service.create_task(TaskCreate(task_type="image", payload="x", webhook="ftp://host/x"))


def test_concurrent_creates_get_distinct_ids(store: RecordingStore, service: TaskService) -> None:
    created: list[str] = []
    lock = threading.Lock()

    def produce(index: int) -> None:
        task = service.create_task(TaskCreate(task_type="image", payload=f"img-{index}.png"))
        with lock:
            created.append(task.task_id)

    threads = [threading.Thread(target=produce, args=(index,)) for index in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert len(set(created)) == 10
    assert store.count() == 10
    assert store.queue_depth() == 10


def test_get_unknown_task_raises(service: TaskService) -> None:
    with pytest.raises(NotFoundError):
        service.get_task("missing")


def test_list_tasks_filters_by_status(
    service: TaskService,
    worker: Worker,
) -> None:
    done = service.create_task(TaskCreate(task_type="image", payload="a.png"))
    assert worker.run_once(timeout=1) == StepOutcome.COMPLETED
    waiting = service.create_task(TaskCreate(task_type="image", payload="b.png"))

    assert {task.task_id for task in service.list_tasks()} == {done.task_id, waiting.task_id}
    assert [task.task_id for task in service.list_tasks(status=TaskStatus.PENDING)] == [
        waiting.task_id,
    ]


def test_concurrent_retries_apply_once(store: RecordingStore, service: TaskService) -> None:
    task = service.create_task(TaskCreate(task_type="image", payload="x.png"))
    assert store.dequeue_blocking(timeout=0) == task.task_id
    store.put(_as_failed(store.get(task.task_id)))

    barrier = threading.Barrier(4)
    results: list[bool] = []
    lock = threading.Lock()

    def retry() -> None:
        barrier.wait(timeout=5)
        outcome = service.retry_task(task.task_id)
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=retry) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(results) == [False, False, False, True]
    assert store.get(task.task_id).retry_count == 1
    assert store.queue_depth() == 1


def test_retry_of_unknown_task_raises(service: TaskService) -> None:
    with pytest.raises(NotFoundError):
        service.retry_task("missing")


def test_queue_stats_counts_by_status(
    store: RecordingStore,
    notifier: Notifier,
    worker: Worker,
    mailer: FakeMailer,
) -> None:
    now = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)
    service = TaskService(store=store, notifier=notifier, clock=lambda: now)
    service.create_task(TaskCreate(task_type="image", payload="done.png"))
    assert worker.run_once(timeout=1) == StepOutcome.COMPLETED
    mailer.failures = 1
    service.create_task(TaskCreate(task_type="email", payload="x@example.com", max_retries=0))
    assert worker.run_once(timeout=1) == StepOutcome.FAILED
    service.create_task(
        TaskCreate(task_type="image", payload="later.png", scheduled_for=now + timedelta(hours=1)),
    )

    stats = service.queue_stats(worker_count=3)

    assert stats.to_wire() == {
        "total_tasks": 3,
        "pending_count": 0,
        "processing_count": 0,
        "completed_count": 1,
        "failed_count": 1,
        "scheduled_count": 1,
        "worker_count": 3,
    }


def test_retry_requeues_failed_task_with_retries_left(
    store: RecordingStore,
    service: TaskService,
) -> None:
    task = service.create_task(TaskCreate(task_type="image", payload="x.png"))
    assert store.dequeue_blocking(timeout=0) == task.task_id
    store.put(_as_failed(store.get(task.task_id)))

    assert service.retry_task(task.task_id) is True
    assert service.retry_task(task.task_id) is False

    retried = store.get(task.task_id)
    assert retried.status == TaskStatus.PENDING
    assert retried.retry_count == 1
    assert retried.error is None
    assert store.dequeue_blocking(timeout=0) == task.task_id


def test_retry_leaves_completed_task_unchanged(
    store: RecordingStore,
    service: TaskService,
    worker: Worker,
) -> None:
    task = service.create_task(TaskCreate(task_type="image", payload="x.png"))
    assert worker.run_once(timeout=1) == StepOutcome.COMPLETED
    before = store.get(task.task_id)

    assert service.retry_task(task.task_id) is False
    assert store.get(task.task_id) == before
    assert store.queue_depth() == 0


def _as_failed(task):
    return replace(task, status=TaskStatus.FAILED, error="boom")


def test_queue_stats_pending_count_is_queue_depth(
    store: RecordingStore,
    service: TaskService,
) -> None:
    statuses = [
        TaskStatus.PENDING,
        TaskStatus.PENDING,
        TaskStatus.PROCESSING,
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
    ]
    created = [
        service.create_task(TaskCreate(task_type="image", payload=f"img-{index}.png"))
        for index in range(len(statuses))
    ]
    for task, status in zip(created, statuses, strict=True):
        store.put(replace(task, status=status))
    assert store.dequeue_blocking(timeout=0) == created[0].task_id

    stats = service.queue_stats(worker_count=3)

    pending_records = sum(1 for task in store.list() if task.status == TaskStatus.PENDING)
    assert stats.pending_count == store.queue_depth() == 4
    assert stats.pending_count != pending_records
    assert stats.to_wire() == {
        "total_tasks": 5,
        "pending_count": 4,
        "processing_count": 1,
        "completed_count": 1,
        "failed_count": 1,
        "scheduled_count": 0,
        "worker_count": 3,
    }
