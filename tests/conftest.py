"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from task_queue.engine.dispatcher import Worker
from task_queue.engine.executor import ExecutionEngine
from task_queue.engine.notifier import Notifier
from task_queue.engine.services import TaskService

from .fakes import FakeMailer, RecordingStore, RecordingWebhookClient


@pytest.fixture()
def store(tmp_path: Path) -> Iterator[RecordingStore]:
    task_store = RecordingStore(tmp_path / "queue.db", poll_interval_seconds=0.05)
    task_store.init_schema()
    yield task_store
    task_store.close()


@pytest.fixture()
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture()
def webhook_client() -> RecordingWebhookClient:
    return RecordingWebhookClient()


@pytest.fixture()
def notifier(store: RecordingStore, webhook_client: RecordingWebhookClient) -> Iterator[Notifier]:
    task_notifier = Notifier(publisher=store, webhook_client=webhook_client)
    task_notifier.start()
    yield task_notifier
    task_notifier.stop()


@pytest.fixture()
def engine(mailer: FakeMailer) -> ExecutionEngine:
    return ExecutionEngine(mailer=mailer, delays={}, default_delay_seconds=0)


@pytest.fixture()
def service(store: RecordingStore, notifier: Notifier) -> TaskService:
    return TaskService(store=store, notifier=notifier)


@pytest.fixture()
def worker(store: RecordingStore, engine: ExecutionEngine, notifier: Notifier) -> Worker:
    return Worker(
        worker_id="test-worker",
        store=store,
        engine=engine,
        notifier=notifier,
        store_backoff_seconds=0.01,
    )
