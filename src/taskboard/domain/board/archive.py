"""Moving tasks between the active board and the archive."""

from __future__ import annotations

from datetime import timedelta
from typing import List

from .aggregate import Board
from .errors import NotFoundError
from .models import Task


class ArchiveManager:
    def __init__(self, board: Board) -> None:
        self._board = board

    def archive_task(self, task_id: str) -> Task:
        board = self._board
        with board.lock:
            task = board.require_task(task_id)
            column = board.column_of(task_id)
            if column is not None:
                column.task_ids.remove(task_id)
            del board.tasks[task_id]
            task.archived_at = board.now()
            board.archived_tasks[task_id] = task
            return task

    def restore_task(self, task_id: str) -> Task:
        """Bring an archived task back, appended to the restore column.

        The column the task lived in before archival is not remembered.
        """

        board = self._board
        with board.lock:
            if task_id not in board.archived_tasks:
                raise NotFoundError(f"task '{task_id}' is not in the archive")
            target = board.columns[board.restore_column_id()]
            task = board.archived_tasks.pop(task_id)
            task.archived_at = None
            board.tasks[task_id] = task
            target.task_ids.append(task_id)
            return task

    def delete_archived_task(self, task_id: str) -> Task:
        with self._board.lock:
            task = self._board.archived_tasks.pop(task_id, None)
            if task is None:
                raise NotFoundError(f"task '{task_id}' is not in the archive")
            return task

    def clear_archive(self) -> int:
        with self._board.lock:
            count = len(self._board.archived_tasks)
            self._board.archived_tasks.clear()
            return count

    def auto_archive(self, column_id: str, older_than: timedelta) -> List[str]:
        """Archive tasks in ``column_id`` not edited within ``older_than``."""

        board = self._board
        with board.lock:
            column = board.require_column(column_id)
            cutoff = board.now() - older_than
            stale = [task_id for task_id in column.task_ids if board.tasks[task_id].updated_at < cutoff]
            for task_id in stale:
                self.archive_task(task_id)
            return stale


__all__ = ["ArchiveManager"]
