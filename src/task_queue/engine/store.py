"""Task store: keyed task records, FIFO work queue and publish/subscribe bus.

Records and the queue live in SQLite so that producers and the worker pool can
run in separate processes.  The pub/sub bus is in-process only.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, col, select

from task_queue.engine.models import Task, TaskStatus
from task_queue.errors import NotFoundError, StorageUnavailable
from task_queue.storage.alembic_runner import upgrade_head
from task_queue.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware,
    utc_now,
)
from task_queue.storage.sqlmodel_models import QueueEntryRow, TaskRow

logger = logging.getLogger(__name__)


class EventBus:
    """In-process topic fan-out.

    Each subscriber owns a bounded queue; a full subscriber queue drops the
    message for that subscriber only.
    """

    def __init__(self, *, max_pending: int = 1000) -> None:
        self.max_pending = max_pending
        self._lock = threading.Lock()
        self._subscribers: defaultdict[str, list[queue.Queue[str]]] = defaultdict(list)

    def subscribe(self, topic: str) -> queue.Queue[str]:
        subscriber: queue.Queue[str] = queue.Queue(maxsize=self.max_pending)
        with self._lock:
            self._subscribers[topic].append(subscriber)
        return subscriber

    def unsubscribe(self, topic: str, subscriber: queue.Queue[str]) -> None:
        with self._lock:
            if subscriber in self._subscribers.get(topic, []):
                self._subscribers[topic].remove(subscriber)

    def publish(self, topic: str, message: str) -> int:
        """Deliver to current subscribers and return how many received it."""

        with self._lock:
            subscribers = list(self._subscribers.get(topic, []))
        delivered = 0
        for subscriber in subscribers:
            try:
                subscriber.put_nowait(message)
            except queue.Full:
                logger.warning("Subscriber queue full on topic %s; dropped %s", topic, message)
                continue
            delivered += 1
        return delivered


class TaskStore:
    """Queue persistence facade backed by SQLModel + SQLite."""

    def __init__(
        self,
        db_path: Path,
        *,
        sqlite_busy_timeout_ms: int = 5000,
        poll_interval_seconds: float = 0.5,
        event_bus: EventBus | None = None,
    ) -> None:
        self.db_path = db_path
        self.poll_interval_seconds = poll_interval_seconds
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)
        self.events = event_bus or EventBus()
        self._queue_ready = threading.Condition()

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    # ---- records ----

    def put(self, task: Task) -> None:
        """Write the full record, inserting or replacing it."""

        values = _row_values(task)
        statement = (
            sqlite_insert(TaskRow)
            .values(task_id=task.task_id, **values)
            .on_conflict_do_update(index_elements=["task_id"], set_=values)
        )
        with self._session() as session:
            session.exec(statement)  # type: ignore[call-overload]
            session.commit()

    def compare_and_put(self, task: Task, *, expected_status: TaskStatus) -> bool:
        """Write the full record only if the stored status is still ``expected_status``."""

        with self._session() as session:
            result = session.exec(  # type: ignore[call-overload]
                sa_update(TaskRow)
                .where(
                    col(TaskRow.task_id) == task.task_id,
                    col(TaskRow.status) == expected_status.value,
                )
                .values(**_row_values(task)),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def get(self, task_id: str) -> Task:
        with self._session() as session:
            row = session.exec(select(TaskRow).where(TaskRow.task_id == task_id)).one_or_none()
            if row is None:
                raise NotFoundError(task_id)
            return _to_task(row)

    def list(self) -> list[Task]:
        with self._session() as session:
            rows = session.exec(
                select(TaskRow).order_by(col(TaskRow.created_at).asc(), col(TaskRow.task_id)),
            ).all()
            return [_to_task(row) for row in rows]

    def count(self) -> int:
        with self._session() as session:
            return int(session.exec(select(func.count()).select_from(TaskRow)).one())

    # ---- work queue ----

    def enqueue(self, task_id: str) -> None:
        with self._session() as session:
            session.add(QueueEntryRow(task_id=task_id, enqueued_at=to_db_datetime(utc_now())))
            session.commit()
        with self._queue_ready:
            self._queue_ready.notify_all()

    def dequeue_blocking(self, timeout: float | None = None) -> str | None:
        """Pop the oldest queued id, waiting for one to arrive.

        ``timeout=None`` waits indefinitely; otherwise ``None`` is returned once the
        timeout elapses with an empty queue.  Each queued id is handed to one caller.
        """

        deadline = None if timeout is None else time.monotonic() + max(0.0, timeout)
        while True:
            task_id = self._pop_head()
            if task_id is not None:
                return task_id

            wait_seconds = self.poll_interval_seconds
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                wait_seconds = min(wait_seconds, remaining)
            with self._queue_ready:
                self._queue_ready.wait(timeout=wait_seconds)

    def queue_depth(self) -> int:
        with self._session() as session:
            return int(session.exec(select(func.count()).select_from(QueueEntryRow)).one())

    def _pop_head(self) -> str | None:
        head = (
            select(QueueEntryRow.entry_id)
            .order_by(col(QueueEntryRow.entry_id).asc())
            .limit(1)
            .scalar_subquery()
        )
        with self._session() as session:
            result = session.exec(  # type: ignore[call-overload]
                sa_delete(QueueEntryRow)
                .where(col(QueueEntryRow.entry_id) == head)
                .returning(QueueEntryRow.task_id),
            )
            popped = result.scalar_one_or_none()
            session.commit()
            return popped

    # ---- pub/sub ----

    def publish(self, topic: str, message: str) -> int:
        return self.events.publish(topic, message)

    def subscribe(self, topic: str) -> queue.Queue[str]:
        return self.events.subscribe(topic)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with Session(self.engine) as session:
                yield session
        except OperationalError as error:
            raise StorageUnavailable(f"Task store unavailable: {error}") from error


def _row_values(task: Task) -> dict[str, Any]:
    return {
        "task_type": task.task_type,
        "payload": task.payload,
        "status": task.status.value,
        "priority": task.priority,
        "scheduled_for": (
            to_db_datetime(task.scheduled_for) if task.scheduled_for is not None else None
        ),
        "retry_count": task.retry_count,
        "max_retries": task.max_retries,
        "webhook": task.webhook,
        "created_at": to_db_datetime(task.created_at),
        "updated_at": to_db_datetime(task.updated_at),
        "completed_at": (
            to_db_datetime(task.completed_at) if task.completed_at is not None else None
        ),
        "error": task.error,
    }


def _to_task(row: TaskRow) -> Task:
    return Task(
        task_id=row.task_id,
        task_type=row.task_type,
        payload=row.payload,
        status=TaskStatus(row.status),
        priority=row.priority,
        scheduled_for=to_utc_aware(row.scheduled_for) if row.scheduled_for is not None else None,
        retry_count=row.retry_count,
        max_retries=row.max_retries,
        webhook=row.webhook,
        created_at=to_utc_aware(row.created_at),
        updated_at=to_utc_aware(row.updated_at),
        completed_at=to_utc_aware(row.completed_at) if row.completed_at is not None else None,
        error=row.error,
    )
