"""Read-only filtered views over the active tasks."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List

from .aggregate import Board
from .models import DueStatus, Task, TaskOrigin, TaskPriority


@dataclass(frozen=True)
class TaskQuery:
    text: str | None = None
    priority: TaskPriority | None = None
    origin: TaskOrigin | None = None
    label: str | None = None
    column_id: str | None = None
    due: DueStatus | None = None
    now: datetime | None = None

    def matches(self, task: Task) -> bool:
        if self.text:
            needle = self.text.lower()
            haystacks = [task.title, task.description or "", *task.labels]
            if not any(needle in value.lower() for value in haystacks):
                return False
        if self.priority is not None and task.priority is not self.priority:
            return False
        if self.origin is not None and task.origin is not self.origin:
            return False
        if self.label is not None and self.label.lower() not in {label.lower() for label in task.labels}:
            return False
        if self.due is not None and (self.now is None or task.due_status(self.now) is not self.due):
            return False
        return True


class TaskView:
    """Lazy, restartable view; each iteration reads the board afresh."""

    def __init__(self, board: Board, query: TaskQuery) -> None:
        self._board = board
        self.query = query

    def __iter__(self) -> Iterator[Task]:
        board = self._board
        with board.lock:
            # Snapshot the ordering so a reader sees one consistent state.
            ordered: List[Task] = [
                board.tasks[task_id]
                for column in board.iter_columns()
                if self.query.column_id is None or column.id == self.query.column_id
                for task_id in column.task_ids
            ]
        for task in ordered:
            if self.query.matches(task):
                yield task

    def to_list(self) -> List[Task]:
        return list(self)


class FilterIndex:
    def __init__(self, board: Board) -> None:
        self._board = board

    def query(
        self,
        text: str | None = None,
        priority: TaskPriority | str | None = None,
        origin: TaskOrigin | str | None = None,
        *,
        label: str | None = None,
        column_id: str | None = None,
        due: DueStatus | str | None = None,
    ) -> TaskView:
        task_query = TaskQuery(
            text=text.strip() if text and text.strip() else None,
            priority=TaskPriority.parse(priority) if priority is not None else None,
            origin=TaskOrigin.parse(origin) if origin is not None else None,
            label=label.strip() if label and label.strip() else None,
            column_id=column_id,
            due=DueStatus.parse(due) if due is not None else None,
            now=self._board.now() if due is not None else None,
        )
        return TaskView(self._board, task_query)


__all__ = ["FilterIndex", "TaskQuery", "TaskView"]
