"""Controllers for task queue CLI commands."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from task_queue.config import Settings
from task_queue.engine.dispatcher import WorkerPool, WorkerRunSummary
from task_queue.engine.executor import ExecutionEngine
from task_queue.engine.models import TaskCreate, TaskStatus, task_to_wire
from task_queue.engine.notifier import Notifier
from task_queue.engine.scheduler import ScheduledTaskPromoter
from task_queue.engine.services import TaskService
from task_queue.engine.store import TaskStore
from task_queue.storage.common import to_rfc3339, utc_now
from task_queue.transport.mailer import SmtpMailer
from task_queue.transport.webhook import build_webhook_client

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EnqueueCommand:
    """CLI input for task creation."""

    db_path: Path | None
    task_type: str
    payload: str
    priority: int
    scheduled_for: datetime | None
    delay_seconds: float | None
    webhook: str | None
    max_retries: int | None


@dataclass(slots=True)
class ListTasksCommand:
    """CLI input for task listing."""

    db_path: Path | None
    status: str | None


@dataclass(slots=True)
class TaskIdCommand:
    """CLI input for single-task operations."""

    db_path: Path | None
    task_id: str


@dataclass(slots=True)
class StatsCommand:
    """CLI input for queue statistics."""

    db_path: Path | None


@dataclass(slots=True)
class RunCommand:
    """CLI input for running the worker pool and scheduler."""

    db_path: Path | None
    workers: int | None
    run_seconds: float | None


@dataclass(slots=True)
class QueueRuntime:
    """Application root: one store handle shared by every component."""

    settings: Settings
    store: TaskStore
    notifier: Notifier
    service: TaskService


class TaskQueueCliController:
    """Coordinates producer, worker and inspection CLI operations."""

    def enqueue(self, command: EnqueueCommand) -> list[str]:
        scheduled_for = command.scheduled_for
        if command.delay_seconds is not None:
            scheduled_for = utc_now() + timedelta(seconds=command.delay_seconds)
        with _runtime(Settings.from_env(db_path=command.db_path)) as runtime:
            task = runtime.service.create_task(
                TaskCreate(
                    task_type=command.task_type,
                    payload=command.payload,
                    priority=command.priority,
                    scheduled_for=scheduled_for,
                    webhook=command.webhook,
                    max_retries=command.max_retries,
                ),
            )
        lines = [
            f"Task created: task_id={task.task_id} type={task.task_type} "
            f"status={task.status.value} priority={task.priority} "
            f"max_retries={task.max_retries}",
        ]
        if task.scheduled_for is not None:
            lines.append(f"Scheduled for: {to_rfc3339(task.scheduled_for)}")
        return lines

    def list_tasks(self, command: ListTasksCommand) -> list[str]:
        status = TaskStatus(command.status) if command.status else None
        with _runtime(Settings.from_env(db_path=command.db_path)) as runtime:
            tasks = runtime.service.list_tasks(status=status)
        if not tasks:
            return ["No tasks."]
        return [
            f"{task.task_id} {task.task_type} {task.status.value} "
            f"priority={task.priority} retries={task.retry_count}/{task.max_retries} "
            f"error={task.error or '-'}"
            for task in tasks
        ]

    def show_task(self, command: TaskIdCommand) -> list[str]:
        with _runtime(Settings.from_env(db_path=command.db_path)) as runtime:
            task = runtime.service.get_task(command.task_id)
        return [json.dumps(task_to_wire(task), indent=2, ensure_ascii=False)]

    def retry_task(self, command: TaskIdCommand) -> list[str]:
        with _runtime(Settings.from_env(db_path=command.db_path)) as runtime:
            requeued = runtime.service.retry_task(command.task_id)
            task = runtime.service.get_task(command.task_id)
        if requeued:
            return [
                f"Task re-queued: {command.task_id} "
                f"(attempt {task.retry_count}/{task.max_retries})",
            ]
        return [f"Task not retriable: {command.task_id} status={task.status.value}"]

    def stats(self, command: StatsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _runtime(settings) as runtime:
            stats = runtime.service.queue_stats(worker_count=settings.workers.worker_count)
        return [f"{key}: {value}" for key, value in stats.to_wire().items()]

    def run(self, command: RunCommand, *, stop_event: threading.Event | None = None) -> list[str]:
        """Run notifier, worker pool and scheduler until stopped."""

        settings = Settings.from_env(db_path=command.db_path)
        if command.workers is not None:
            settings.workers.worker_count = command.workers
        stop = stop_event or threading.Event()
        with _runtime(settings) as runtime:
            pool = WorkerPool(
                store=runtime.store,
                engine=_execution_engine(settings),
                notifier=runtime.notifier,
                size=settings.workers.worker_count,
                store_backoff_seconds=settings.workers.store_backoff_seconds,
                poll_seconds=settings.workers.dequeue_poll_seconds,
            )
            scheduler = ScheduledTaskPromoter(
                store=runtime.store,
                interval_seconds=settings.workers.scheduler_interval_seconds,
            )
            runtime.notifier.start()
            pool.start()
            scheduler.start()
            try:
                stop.wait(command.run_seconds)
            except KeyboardInterrupt:
                logger.info("Interrupted; stopping workers")
            finally:
                scheduler.stop()
                pool.stop()
                runtime.notifier.flush(timeout=settings.notifications.webhook_timeout_seconds)
                runtime.notifier.stop()
            summary = pool.summary()
        return [_render_summary(summary)]


@contextmanager
def _runtime(settings: Settings) -> Iterator[QueueRuntime]:
    settings.validate()
    store = TaskStore(
        settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
        poll_interval_seconds=settings.workers.dequeue_poll_seconds,
    )
    store.init_schema()
    notifier = Notifier(
        publisher=store,
        webhook_client=build_webhook_client(
            mode=settings.notifications.webhook_mode,
            timeout_seconds=settings.notifications.webhook_timeout_seconds,
        ),
        topic=settings.notifications.event_topic,
        max_pending=settings.notifications.queue_size,
    )
    try:
        yield QueueRuntime(
            settings=settings,
            store=store,
            notifier=notifier,
            service=TaskService(store=store, notifier=notifier),
        )
    finally:
        store.close()


def _execution_engine(settings: Settings) -> ExecutionEngine:
    return ExecutionEngine(
        mailer=SmtpMailer(settings.smtp),
        delays=settings.execution.task_delays,
        default_delay_seconds=settings.execution.default_delay_seconds,
        reject_unknown_types=settings.execution.reject_unknown_types,
    )


def _render_summary(summary: WorkerRunSummary) -> str:
    return (
        "Worker summary: "
        f"processed={summary.processed} succeeded={summary.succeeded} "
        f"failed={summary.failed} retried={summary.retried} "
        f"dropped={summary.dropped} store_errors={summary.store_errors}"
    )
