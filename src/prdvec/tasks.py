"""Read-only access to the task store consumed by the indexer."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Protocol


@dataclass
class TaskRecord:
    """The fields of a task that feed its embedding."""
    id: str
    display_id: int | None
    title: str
    description: str | None = None

    @property
    def content_id(self) -> str:
        """Identifier used in the vector index (``#<display_id>`` when available)."""
        if self.display_id is not None:
            return f"#{self.display_id}"
        return self.id


class TaskSource(Protocol):
    """Protocol for task stores the indexer can read from."""

    def list_tasks(self) -> list[TaskRecord]:
        """Return every task that is not cancelled."""
        ...

    def list_acceptance_criteria(self, task: TaskRecord) -> list[str]:
        """Return a task's acceptance criteria in their stored order."""
        ...


class SqliteTaskSource:
    """Reads tasks and acceptance criteria from the project's SQLite database."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def available(self) -> bool:
        """Whether the database holds the task tables at all."""
        row = self.conn.execute(
            "SELECT COUNT(*) FROM sqlite_master "
            "WHERE type = 'table' AND name IN ('tasks', 'acceptance_criteria')"
        ).fetchone()
        return row[0] == 2

    def list_tasks(self) -> list[TaskRecord]:
        rows = self.conn.execute(
            "SELECT id, display_id, title, description FROM tasks "
            "WHERE status IS NULL OR status != 'cancelled' "
            "ORDER BY display_id, id"
        ).fetchall()
        return [
            TaskRecord(id=str(r[0]), display_id=r[1], title=r[2] or "", description=r[3])
            for r in rows
        ]

    def list_acceptance_criteria(self, task: TaskRecord) -> list[str]:
        if task.display_id is None:
            return []
        rows = self.conn.execute(
            "SELECT criterion FROM acceptance_criteria WHERE task_display_id = ? ORDER BY id",
            (task.display_id,),
        ).fetchall()
        return [r[0] for r in rows]


def compose_task_text(task: TaskRecord, criteria: list[str]) -> str:
    """Build the single text that represents a task in the index."""
    text = f"Task: {task.title}\n\n"
    if task.description:
        text += f"Description:\n{task.description}\n\n"
    if criteria:
        text += "Acceptance Criteria:\n"
        for i, criterion in enumerate(criteria, 1):
            text += f"{i}. {criterion}\n"
    return text
