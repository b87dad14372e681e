"""SQLModel ORM tables for the task store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text
from sqlmodel import Field, SQLModel


class TaskRow(SQLModel, table=True):
    __tablename__ = "tasks"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_tasks_status_scheduled_for", "status", "scheduled_for"),)

    task_id: str = Field(primary_key=True)
    task_type: str = Field(index=True)
    payload: str = Field(sa_column=Column(Text, nullable=False))
    status: str = Field(index=True)
    priority: int = Field(default=3)
    scheduled_for: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    retry_count: int = Field(default=0)
    max_retries: int = Field(default=2)
    webhook: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    completed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    error: str | None = Field(default=None, sa_column=Column(Text, nullable=True))


class QueueEntryRow(SQLModel, table=True):
    __tablename__ = "task_queue"  # type: ignore[bad-override]

    entry_id: int | None = Field(default=None, primary_key=True)
    task_id: str = Field(index=True)
    enqueued_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
