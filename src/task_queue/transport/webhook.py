"""Webhook collaborators called on task completion."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from task_queue.errors import NotificationFailure

logger = logging.getLogger(__name__)

WEBHOOK_MODES = ("log", "http")


class WebhookClient(Protocol):
    """Protocol implemented by webhook transports."""

    def post(self, url: str, body: str) -> None:
        """Deliver ``body`` to ``url`` or raise ``NotificationFailure``."""


class LoggingWebhookClient:
    """Log-only webhook transport; the default until real delivery is enabled."""

    def post(self, url: str, body: str) -> None:
        logger.info("Sending webhook to %s", url)
        logger.info("Webhook payload: %s", body)


class HttpxWebhookClient:
    """POSTs the JSON body with a bounded timeout."""

    def __init__(
        self,
        *,
        timeout_seconds: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def post(self, url: str, body: str) -> None:
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = client.post(
                    url,
                    content=body,
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
        except httpx.HTTPError as error:
            raise NotificationFailure(f"Webhook delivery to {url} failed: {error}") from error
        logger.info("Webhook delivered to %s status=%s", url, response.status_code)


def build_webhook_client(*, mode: str, timeout_seconds: float) -> WebhookClient:
    if mode == "log":
        return LoggingWebhookClient()
    if mode == "http":
        return HttpxWebhookClient(timeout_seconds=timeout_seconds)
    raise ValueError(f"Unsupported webhook mode: {mode!r}")
