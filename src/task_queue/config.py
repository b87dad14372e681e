"""Runtime configuration for the task queue."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from task_queue.engine.executor import DEFAULT_TASK_DELAY_SECONDS, DEFAULT_TASK_DELAYS
from task_queue.engine.notifier import DEFAULT_EVENT_TOPIC
from task_queue.transport.mailer import SmtpSettings
from task_queue.transport.webhook import WEBHOOK_MODES


@dataclass(slots=True)
class WorkerSettings:
    """Worker pool and scheduler settings."""

    worker_count: int = 3
    scheduler_interval_seconds: float = 5.0
    dequeue_poll_seconds: float = 0.5
    store_backoff_seconds: float = 1.0


@dataclass(slots=True)
class ExecutionSettings:
    """Simulated per-type latency and unknown-type policy."""

    default_delay_seconds: float = DEFAULT_TASK_DELAY_SECONDS
    task_delays: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_TASK_DELAYS))
    reject_unknown_types: bool = False


@dataclass(slots=True)
class NotificationSettings:
    """Event bus and webhook settings."""

    event_topic: str = DEFAULT_EVENT_TOPIC
    queue_size: int = 1000
    webhook_mode: str = "log"
    webhook_timeout_seconds: float = 10.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    db_path: Path = Path(".task_queue.db")
    sqlite_busy_timeout_ms: int = 5000
    workers: WorkerSettings = field(default_factory=WorkerSettings)
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    smtp: SmtpSettings = field(default_factory=SmtpSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("TASK_QUEUE_DB_PATH", ".task_queue.db")),
            sqlite_busy_timeout_ms=_env_int("TASK_QUEUE_SQLITE_BUSY_TIMEOUT_MS", "5000"),
            workers=WorkerSettings(
                worker_count=_env_int("TASK_QUEUE_WORKER_COUNT", "3"),
                scheduler_interval_seconds=_env_float(
                    "TASK_QUEUE_SCHEDULER_INTERVAL_SECONDS",
                    "5",
                ),
                dequeue_poll_seconds=_env_float("TASK_QUEUE_DEQUEUE_POLL_SECONDS", "0.5"),
                store_backoff_seconds=_env_float("TASK_QUEUE_STORE_BACKOFF_SECONDS", "1"),
            ),
            execution=ExecutionSettings(
                default_delay_seconds=_env_float("TASK_QUEUE_DEFAULT_TASK_DELAY_SECONDS", "2"),
                task_delays=_collect_task_delays(),
                reject_unknown_types=_env_bool("TASK_QUEUE_REJECT_UNKNOWN_TYPES", default=False),
            ),
            notifications=NotificationSettings(
                event_topic=os.getenv("TASK_QUEUE_EVENT_TOPIC", DEFAULT_EVENT_TOPIC),
                queue_size=_env_int("TASK_QUEUE_NOTIFICATION_QUEUE_SIZE", "1000"),
                webhook_mode=os.getenv("TASK_QUEUE_WEBHOOK_MODE", "log").strip().lower(),
                webhook_timeout_seconds=_env_float("TASK_QUEUE_WEBHOOK_TIMEOUT_SECONDS", "10"),
            ),
            smtp=SmtpSettings(
                host=_first_env("TASK_QUEUE_SMTP_HOST", "MAILTRAP_HOST")
                or "sandbox.smtp.mailtrap.io",
                port=int(_first_env("TASK_QUEUE_SMTP_PORT", "MAILTRAP_PORT") or "2525"),
                username=_first_env("TASK_QUEUE_SMTP_USERNAME", "MAILTRAP_USERNAME"),
                password=_first_env("TASK_QUEUE_SMTP_PASSWORD", "MAILTRAP_PASSWORD"),
                sender=_first_env("TASK_QUEUE_SMTP_FROM", "MAILTRAP_FROM")
                or "noreply@taskqueue.local",
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the runtime cannot use."""

        if self.workers.worker_count < 1:
            raise ValueError("TASK_QUEUE_WORKER_COUNT must be >= 1.")
        if self.workers.scheduler_interval_seconds <= 0:
            raise ValueError("TASK_QUEUE_SCHEDULER_INTERVAL_SECONDS must be > 0.")
        if self.workers.dequeue_poll_seconds <= 0:
            raise ValueError("TASK_QUEUE_DEQUEUE_POLL_SECONDS must be > 0.")
        if self.workers.store_backoff_seconds < 0:
            raise ValueError("TASK_QUEUE_STORE_BACKOFF_SECONDS must be >= 0.")
        if self.execution.default_delay_seconds < 0:
            raise ValueError("TASK_QUEUE_DEFAULT_TASK_DELAY_SECONDS must be >= 0.")
        for task_type, delay in self.execution.task_delays.items():
            if delay < 0:
                raise ValueError(
                    f"Task delay must be >= 0: {task_type!r} -> {delay}",
                )
        if self.notifications.queue_size < 1:
            raise ValueError("TASK_QUEUE_NOTIFICATION_QUEUE_SIZE must be >= 1.")
        if self.notifications.webhook_mode not in WEBHOOK_MODES:
            raise ValueError(
                "TASK_QUEUE_WEBHOOK_MODE must be one of "
                f"{', '.join(WEBHOOK_MODES)}, got {self.notifications.webhook_mode!r}.",
            )
        if self.notifications.webhook_timeout_seconds <= 0:
            raise ValueError("TASK_QUEUE_WEBHOOK_TIMEOUT_SECONDS must be > 0.")


def _collect_task_delays() -> dict[str, float]:
    delays = dict(DEFAULT_TASK_DELAYS)
    raw = os.getenv("TASK_QUEUE_TASK_DELAYS", "").strip()
    if not raw:
        return delays

    for part in raw.split(","):
        token = part.strip()
        if not token:
            continue
        if "|" not in token:
            raise ValueError(
                "Invalid TASK_QUEUE_TASK_DELAYS entry: "
                f"{token!r}. Expected format '<task_type>|<seconds>'.",
            )
        task_type, seconds_raw = token.rsplit("|", 1)
        task_type = task_type.strip()
        seconds_raw = seconds_raw.strip()
        if not task_type:
            raise ValueError(f"Invalid TASK_QUEUE_TASK_DELAYS entry: {token!r} (empty type).")
        try:
            seconds = float(seconds_raw)
        except ValueError as error:
            raise ValueError(
                f"Invalid TASK_QUEUE_TASK_DELAYS value for {task_type!r}: {seconds_raw!r}",
            ) from error
        delays[task_type] = seconds
    return delays


def _first_env(*names: str) -> str:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return ""


def _env_int(name: str, default: str) -> int:
    value = os.getenv(name, default)
    try:
        return int(value)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: str) -> float:
    value = os.getenv(name, default)
    try:
        return float(value)
    except ValueError as error:
        raise ValueError(f"Invalid number value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
