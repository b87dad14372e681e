from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner

from task_queue import __version__
from task_queue.main import task_queue

pytestmark = [
    allure.epic("Task Queue"),
    allure.feature("CLI"),
]

_TASK_ID = re.compile(r"task_id=(\S+)")


@pytest.fixture(autouse=True)
def _restore_root_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture()
def runner(monkeypatch: pytest.MonkeyPatch) -> CliRunner:
    monkeypatch.setenv("TASK_QUEUE_TASK_DELAYS", "email|0,image|0,webhook|0")
    monkeypatch.setenv("TASK_QUEUE_DEFAULT_TASK_DELAY_SECONDS", "0")
    monkeypatch.setenv("TASK_QUEUE_DEQUEUE_POLL_SECONDS", "0.05")
    monkeypatch.setenv("TASK_QUEUE_SCHEDULER_INTERVAL_SECONDS", "0.1")
    monkeypatch.delenv("TASK_QUEUE_WEBHOOK_MODE", raising=False)
    monkeypatch.delenv("TASK_QUEUE_SMTP_USERNAME", raising=False)
    monkeypatch.delenv("MAILTRAP_USERNAME", raising=False)
    return CliRunner()


def _enqueue(runner: CliRunner, db_path: Path, *args: str) -> str:
    result = runner.invoke(task_queue, ["enqueue", "--db-path", str(db_path), *args])
    assert result.exit_code == 0, result.output
    match = _TASK_ID.search(result.output)
    assert match is not None
    return match.group(1)


def test_version(runner: CliRunner) -> None:
    result = runner.invoke(task_queue, ["--version"])

    assert result.exit_code == 0
    assert f"task-queue, version {__version__}" in result.output


def test_enqueue_list_show_and_stats(runner: CliRunner, tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    task_id = _enqueue(runner, db_path, "image", "cat.png", "--priority", "9")

    listed = runner.invoke(task_queue, ["list", "--db-path", str(db_path)])
    assert listed.exit_code == 0, listed.output
    assert task_id in listed.output
    assert "pending" in listed.output

    shown = runner.invoke(task_queue, ["show", "--db-path", str(db_path), task_id])
    assert shown.exit_code == 0, shown.output
    payload = json.loads(shown.output)
    assert payload["id"] == task_id
    assert payload["priority"] == 3
    assert payload["status"] == "pending"

    stats = runner.invoke(task_queue, ["stats", "--db-path", str(db_path)])
    assert stats.exit_code == 0, stats.output
    assert "total_tasks: 1" in stats.output
    assert "pending_count: 1" in stats.output
    assert "worker_count: 3" in stats.output


def test_enqueue_with_delay_is_scheduled(runner: CliRunner, tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"

    result = runner.invoke(
        task_queue,
        ["enqueue", "--db-path", str(db_path), "email", "a@b.c", "--delay-seconds", "3600"],
    )

    assert result.exit_code == 0, result.output
    assert "status=scheduled" in result.output
    assert "Scheduled for:" in result.output


def test_enqueue_rejects_conflicting_schedule_options(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(
        task_queue,
        [
            "enqueue",
            "--db-path",
            str(tmp_path / "cli.db"),
            "email",
            "a@b.c",
            "--delay-seconds",
            "5",
            "--scheduled-for",
            "2026-10-17T10:00:00Z",
        ],
    )

    assert result.exit_code == 2


def test_enqueue_rejects_blank_payload(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(
        task_queue,
        ["enqueue", "--db-path", str(tmp_path / "cli.db"), "email", ""],
    )

    assert result.exit_code == 1
    assert "type and payload required" in result.output


def test_show_unknown_task_fails(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(task_queue, ["show", "--db-path", str(tmp_path / "cli.db"), "nope"])

    assert result.exit_code == 1
    assert "Task not found: nope" in result.output


def test_run_processes_queue_and_retry_reports_state(runner: CliRunner, tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    task_id = _enqueue(runner, db_path, "image", "cat.png")

    ran = runner.invoke(
        task_queue,
        ["run", "--db-path", str(db_path), "--workers", "2", "--run-seconds", "1"],
    )
    assert ran.exit_code == 0, ran.output
    assert "processed=1 succeeded=1" in ran.output

    shown = runner.invoke(task_queue, ["show", "--db-path", str(db_path), task_id])
    assert json.loads(shown.output)["status"] == "completed"

    retried = runner.invoke(task_queue, ["retry", "--db-path", str(db_path), task_id])
    assert retried.exit_code == 0, retried.output
    assert f"Task not retriable: {task_id} status=completed" in retried.output

    listed = runner.invoke(
        task_queue,
        ["list", "--db-path", str(db_path), "--status", "failed"],
    )
    assert "No tasks." in listed.output
