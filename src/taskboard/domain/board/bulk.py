"""Apply one operation to a selection of tasks with per-task isolation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List

from .aggregate import Board
from .archive import ArchiveManager
from .columns import ColumnManager
from .errors import BoardError, InvalidArgumentError
from .models import TaskPriority
from .tasks import TaskStore


class BulkAction(str, Enum):
    ARCHIVE = "archive"
    DELETE = "delete"
    MOVE = "move"
    SET_PRIORITY = "set_priority"


@dataclass(frozen=True)
class BulkOperation:
    kind: BulkAction
    column_id: str | None = None
    priority: TaskPriority | None = None

    @classmethod
    def archive(cls) -> "BulkOperation":
        return cls(BulkAction.ARCHIVE)

    @classmethod
    def delete(cls) -> "BulkOperation":
        return cls(BulkAction.DELETE)

    @classmethod
    def move_to(cls, column_id: str) -> "BulkOperation":
        return cls(BulkAction.MOVE, column_id=column_id)

    @classmethod
    def set_priority(cls, priority: TaskPriority | str) -> "BulkOperation":
        return cls(BulkAction.SET_PRIORITY, priority=TaskPriority.parse(priority))

    def describe(self) -> str:
        if self.kind is BulkAction.MOVE:
            return f"move:{self.column_id}"
        if self.kind is BulkAction.SET_PRIORITY and self.priority is not None:
            return f"set_priority:{self.priority.value}"
        return self.kind.value


@dataclass(frozen=True)
class BulkFailure:
    id: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "reason": self.reason}


@dataclass
class BulkResult:
    succeeded: List[str] = field(default_factory=list)
    failed: List[BulkFailure] = field(default_factory=list)
    over_limit: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": list(self.succeeded),
            "failed": [failure.to_dict() for failure in self.failed],
            "over_limit": list(self.over_limit),
        }


class BulkOperationProcessor:
    """Best effort across the batch, all-or-nothing per task.

    A failing id is recorded in ``BulkResult.failed`` and the remaining ids
    are still processed. Only a structurally invalid operation raises.
    """

    def __init__(self, board: Board) -> None:
        self._board = board
        self._tasks = TaskStore(board)
        self._columns = ColumnManager(board)
        self._archive = ArchiveManager(board)

    def apply(self, task_ids: Iterable[str], operation: BulkOperation) -> BulkResult:
        self._validate(operation)
        result = BulkResult()
        selection = list(dict.fromkeys(str(task_id) for task_id in task_ids))
        with self._board.lock:
            if operation.kind is BulkAction.MOVE:
                self._board.require_column(operation.column_id or "")
            for task_id in selection:
                try:
                    self._apply_one(task_id, operation)
                except BoardError as exc:
                    result.failed.append(BulkFailure(task_id, str(exc)))
                    continue
                result.succeeded.append(task_id)
            if operation.kind is BulkAction.MOVE and operation.column_id:
                if self._columns.column_load(operation.column_id).over_limit:
                    result.over_limit.append(operation.column_id)
        return result

    def _validate(self, operation: BulkOperation) -> None:
        if not isinstance(operation.kind, BulkAction):
            raise InvalidArgumentError(f"unsupported bulk operation: {operation.kind!r}")
        if operation.kind is BulkAction.MOVE and not operation.column_id:
            raise InvalidArgumentError("move operation requires a target column")
        if operation.kind is BulkAction.SET_PRIORITY and operation.priority is None:
            raise InvalidArgumentError("set_priority operation requires a priority")

    def _apply_one(self, task_id: str, operation: BulkOperation) -> None:
        kind = operation.kind
        if kind is BulkAction.ARCHIVE:
            self._archive.archive_task(task_id)
        elif kind is BulkAction.DELETE:
            self._tasks.delete_task(task_id)
        elif kind is BulkAction.MOVE:
            target = operation.column_id or ""
            source = self._tasks.column_of(task_id)
            if source == target:
                return
            destination = self._columns.column_load(target).count
            self._columns.move_task(task_id, source, target, destination)
        elif kind is BulkAction.SET_PRIORITY:
            self._tasks.update_task(task_id, {"priority": operation.priority})
        else:  # pragma: no cover - enum is closed
            raise InvalidArgumentError(f"unsupported bulk operation: {kind!r}")


__all__ = [
    "BulkAction",
    "BulkFailure",
    "BulkOperation",
    "BulkOperationProcessor",
    "BulkResult",
]
