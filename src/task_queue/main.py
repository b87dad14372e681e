"""CLI entrypoint for task-queue."""

from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import rich_click as click
from dotenv import load_dotenv

from task_queue import __version__
from task_queue.engine.controllers import (
    EnqueueCommand,
    ListTasksCommand,
    RunCommand,
    StatsCommand,
    TaskIdCommand,
    TaskQueueCliController,
)
from task_queue.engine.models import TaskStatus
from task_queue.errors import NotFoundError, ValidationError
from task_queue.logging_setup import configure_logging
from task_queue.storage.common import from_iso

click.rich_click.USE_MARKDOWN = True
CONTROLLER = TaskQueueCliController()

_db_path_option = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path.",
)


@click.group()
@click.version_option(version=__version__, prog_name="task-queue")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Log level for stderr output.",
)
def task_queue(log_level: str) -> None:
    """Durable task queue CLI."""

    load_dotenv(override=False)
    configure_logging(log_level.upper())


@task_queue.command("enqueue")
@_db_path_option
@click.argument("task_type")
@click.argument("payload")
@click.option(
    "--priority",
    type=int,
    default=3,
    show_default=True,
    help="Priority 1-5; out-of-range values fall back to 3.",
)
@click.option(
    "--scheduled-for",
    default=None,
    help="RFC3339 timestamp to run the task at.",
)
@click.option(
    "--delay-seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Run the task this many seconds from now.",
)
@click.option("--webhook", default=None, help="URL notified when the task completes.")
@click.option(
    "--max-retries",
    type=click.IntRange(min=0),
    default=None,
    help="Automatic retries after a failure (default 2).",
)
def enqueue(  # noqa: PLR0913
    db_path: Path | None,
    task_type: str,
    payload: str,
    priority: int,
    scheduled_for: str | None,
    delay_seconds: float | None,
    webhook: str | None,
    max_retries: int | None,
) -> None:
    """Create a task and queue it (or schedule it for later)."""

    if scheduled_for is not None and delay_seconds is not None:
        raise click.UsageError("Use either --scheduled-for or --delay-seconds, not both.")
    _emit(
        lambda: CONTROLLER.enqueue(
            EnqueueCommand(
                db_path=db_path,
                task_type=task_type,
                payload=payload,
                priority=priority,
                scheduled_for=_parse_timestamp(scheduled_for),
                delay_seconds=delay_seconds,
                webhook=webhook,
                max_retries=max_retries,
            ),
        ),
    )


@task_queue.command("list")
@_db_path_option
@click.option(
    "--status",
    type=click.Choice([status.value for status in TaskStatus]),
    default=None,
    help="Only show tasks in this status.",
)
def list_tasks(db_path: Path | None, status: str | None) -> None:
    """List stored tasks."""

    _emit(lambda: CONTROLLER.list_tasks(ListTasksCommand(db_path=db_path, status=status)))


@task_queue.command("show")
@_db_path_option
@click.argument("task_id")
def show_task(db_path: Path | None, task_id: str) -> None:
    """Print one task as JSON."""

    _emit(lambda: CONTROLLER.show_task(TaskIdCommand(db_path=db_path, task_id=task_id)))


@task_queue.command("retry")
@_db_path_option
@click.argument("task_id")
def retry_task(db_path: Path | None, task_id: str) -> None:
    """Re-queue a failed task that still has retries left."""

    _emit(lambda: CONTROLLER.retry_task(TaskIdCommand(db_path=db_path, task_id=task_id)))


@task_queue.command("stats")
@_db_path_option
def stats(db_path: Path | None) -> None:
    """Show queue statistics."""

    _emit(lambda: CONTROLLER.stats(StatsCommand(db_path=db_path)))


@task_queue.command("run")
@_db_path_option
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=None,
    help="Worker pool size (default from TASK_QUEUE_WORKER_COUNT).",
)
@click.option(
    "--run-seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Stop after this many seconds instead of running until interrupted.",
)
def run(db_path: Path | None, workers: int | None, run_seconds: float | None) -> None:
    """Run the worker pool, scheduler and notifier."""

    _emit(
        lambda: CONTROLLER.run(
            RunCommand(db_path=db_path, workers=workers, run_seconds=run_seconds),
        ),
    )


def _parse_timestamp(value: str | None) -> datetime | None:
    if value is None:
        return None
    try:
        return from_iso(value)
    except ValueError as error:
        raise click.BadParameter(f"Invalid timestamp: {value!r}") from error


def _emit(produce: Callable[[], list[str]]) -> None:
    try:
        lines = produce()
    except (NotFoundError, ValidationError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    task_queue()
