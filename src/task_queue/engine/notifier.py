"""Best-effort notifications: internal task events and completion webhooks.

Neither channel may affect task state.  Event publication failures are logged
and swallowed; webhook deliveries run on a dedicated notification thread so
the worker that completed the task never waits on the network.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
import time
from typing import Protocol

from task_queue.engine.models import Task, task_to_wire
from task_queue.transport.webhook import WebhookClient

logger = logging.getLogger(__name__)

DEFAULT_EVENT_TOPIC = "task_events"

EVENT_CREATED = "created"
EVENT_COMPLETED = "completed"
EVENT_RETRYING = "retrying"
EVENT_FAILED = "failed"
EVENT_DISCARDED = "discarded"
EVENT_LOST = "lost"


class EventPublisher(Protocol):
    def publish(self, topic: str, message: str) -> object:
        """Publish one message on a topic."""


class Notifier:
    """Publishes ``"<id>:<event>"`` messages and dispatches completion webhooks."""

    def __init__(
        self,
        *,
        publisher: EventPublisher,
        webhook_client: WebhookClient,
        topic: str = DEFAULT_EVENT_TOPIC,
        max_pending: int = 1000,
    ) -> None:
        self.publisher = publisher
        self.webhook_client = webhook_client
        self.topic = topic
        self._pending: queue.Queue[Task | None] = queue.Queue(maxsize=max_pending)
        self._in_flight = 0
        self._idle = threading.Condition()
        self._thread: threading.Thread | None = None

    def publish_event(self, task_id: str, event: str) -> bool:
        message = f"{task_id}:{event}"
        try:
            self.publisher.publish(self.topic, message)
        except Exception:  # noqa: BLE001
            logger.warning("Error publishing event %s", message, exc_info=True)
            return False
        return True

    def notify_completion(self, task: Task) -> bool:
        """Queue a webhook delivery; returns ``False`` when nothing was queued."""

        if not task.webhook:
            return False
        with self._idle:
            self._in_flight += 1
        try:
            self._pending.put_nowait(task)
        except queue.Full:
            self._delivery_done()
            logger.warning("Notification backlog full; dropped webhook for task %s", task.task_id)
            return False
        return True

    def deliver(self, task: Task) -> bool:
        """Deliver one webhook synchronously, swallowing any failure."""

        if not task.webhook:
            return False
        body = json.dumps(task_to_wire(task), ensure_ascii=False)
        try:
            self.webhook_client.post(task.webhook, body)
        except Exception:  # noqa: BLE001
            logger.warning(
                "Webhook delivery failed for task %s url=%s",
                task.task_id,
                task.webhook,
                exc_info=True,
            )
            return False
        return True

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name="notifier", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        thread = self._thread
        if thread is None:
            return
        self._pending.put(None)
        thread.join(timeout=timeout)
        self._thread = None

    def flush(self, timeout: float = 5.0) -> bool:
        """Wait until every queued delivery has been attempted."""

        deadline = time.monotonic() + timeout
        with self._idle:
            while self._in_flight > 0:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._idle.wait(timeout=remaining)
        return True

    def _run(self) -> None:
        while True:
            task = self._pending.get()
            if task is None:
                return
            try:
                self.deliver(task)
            finally:
                self._delivery_done()

    def _delivery_done(self) -> None:
        with self._idle:
            self._in_flight -= 1
            if self._in_flight <= 0:
                self._idle.notify_all()
