"""Board aggregate root: columns, active tasks and the archive."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping

from .errors import NotFoundError
from .models import Column, Task, isoformat, utc_now

BOARD_FORMAT_VERSION = 1
DEFAULT_MAX_COLUMNS = 15

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class BoardOptions:
    """Placement policy that is configured rather than persisted."""

    inbox_column: str | None = None
    restore_column: str | None = None
    max_columns: int = DEFAULT_MAX_COLUMNS


class Board:
    """Single-writer aggregate; every mutation happens under ``lock``."""

    def __init__(
        self,
        *,
        column_order: Iterable[str] = (),
        columns: Mapping[str, Column] | None = None,
        tasks: Mapping[str, Task] | None = None,
        archived_tasks: Mapping[str, Task] | None = None,
        next_task_seq: int = 1,
        options: BoardOptions | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.column_order: List[str] = list(column_order)
        self.columns: Dict[str, Column] = dict(columns or {})
        self.tasks: Dict[str, Task] = dict(tasks or {})
        self.archived_tasks: Dict[str, Task] = dict(archived_tasks or {})
        self.next_task_seq = next_task_seq
        self.options = options or BoardOptions()
        self.lock = threading.RLock()
        self._clock = clock or utc_now

    @classmethod
    def with_columns(
        cls,
        definitions: Iterable[Mapping[str, Any]],
        *,
        options: BoardOptions | None = None,
        clock: Clock | None = None,
    ) -> "Board":
        board = cls(options=options, clock=clock)
        for definition in definitions:
            column = Column.from_dict({**definition, "task_ids": []})
            board.columns[column.id] = column
            board.column_order.append(column.id)
        return board

    def now(self) -> datetime:
        return self._clock()

    def allocate_task_id(self) -> str:
        # The sequence only grows, so ids of deleted tasks never come back.
        while True:
            candidate = f"task-{self.next_task_seq}"
            self.next_task_seq += 1
            if candidate not in self.tasks and candidate not in self.archived_tasks:
                return candidate

    def iter_columns(self) -> Iterator[Column]:
        for column_id in self.column_order:
            column = self.columns.get(column_id)
            if column is not None:
                yield column

    def require_column(self, column_id: str) -> Column:
        column = self.columns.get(column_id)
        if column is None:
            raise NotFoundError(f"column '{column_id}' not found")
        return column

    def require_task(self, task_id: str) -> Task:
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"task '{task_id}' is not on the board")
        return task

    def column_of(self, task_id: str) -> Column | None:
        for column in self.columns.values():
            if task_id in column.task_ids:
                return column
        return None

    def default_column_id(self, preferred: str | None = None) -> str:
        """Resolve the column that receives tasks placed without instruction."""

        for candidate in (preferred, self.options.inbox_column):
            if candidate and candidate in self.columns:
                return candidate
        if not self.column_order:
            raise NotFoundError("board has no columns to place tasks in")
        return self.column_order[0]

    def restore_column_id(self) -> str:
        return self.default_column_id(self.options.restore_column)

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "version": BOARD_FORMAT_VERSION,
                "updated_at": isoformat(self.now()),
                "next_task_seq": self.next_task_seq,
                "column_order": list(self.column_order),
                "columns": [self.columns[column_id].to_dict() for column_id in self.column_order if column_id in self.columns],
                "tasks": [task.to_dict() for task in self.tasks.values()],
                "archived_tasks": [task.to_dict() for task in self.archived_tasks.values()],
            }

    @classmethod
    def from_dict(
        cls,
        payload: Mapping[str, Any],
        *,
        options: BoardOptions | None = None,
        clock: Clock | None = None,
    ) -> "Board":
        columns = {}
        for raw in payload.get("columns", []):
            column = Column.from_dict(raw)
            columns[column.id] = column
        tasks = {}
        for raw in payload.get("tasks", []):
            task = Task.from_dict(raw)
            task.archived_at = None
            tasks[task.id] = task
        archived: Dict[str, Task] = {}
        for raw in payload.get("archived_tasks", []):
            task = Task.from_dict(raw)
            if task.archived_at is None:
                task.archived_at = (clock or utc_now)()
            archived[task.id] = task
        return cls(
            column_order=[str(column_id) for column_id in payload.get("column_order", [])],
            columns=columns,
            tasks=tasks,
            archived_tasks=archived,
            next_task_seq=int(payload.get("next_task_seq", 1)),
            options=options,
            clock=clock,
        )


def check_invariants(board: Board) -> List[str]:
    """Return a human-readable entry for every violated board invariant."""

    problems: List[str] = []
    placements: Dict[str, int] = {}
    for column in board.columns.values():
        for task_id in column.task_ids:
            placements[task_id] = placements.get(task_id, 0) + 1
            if task_id not in board.tasks:
                problems.append(f"I1: column '{column.id}' references inactive task '{task_id}'")
    for task_id in board.tasks:
        count = placements.get(task_id, 0)
        if count != 1:
            problems.append(f"I2: task '{task_id}' placed {count} times")
    overlap = set(board.tasks) & set(board.archived_tasks)
    for task_id in sorted(overlap):
        problems.append(f"I3: task '{task_id}' is both active and archived")
    if len(board.column_order) != len(set(board.column_order)) or set(board.column_order) != set(board.columns):
        problems.append("I4: column order is not a permutation of the columns")
    seen_refs: Dict[str, str] = {}
    for task in list(board.tasks.values()) + list(board.archived_tasks.values()):
        if task.external_ref is None:
            continue
        other = seen_refs.get(task.external_ref.key)
        if other is not None:
            problems.append(f"I5: external ref '{task.external_ref.key}' shared by '{other}' and '{task.id}'")
        seen_refs[task.external_ref.key] = task.id
    return problems


def repair_board(board: Board) -> int:
    """Restore placement invariants on a loaded board; returns the number of fixes."""

    fixes = 0
    with board.lock:
        order: List[str] = []
        for column_id in board.column_order:
            if column_id in board.columns and column_id not in order:
                order.append(column_id)
            else:
                fixes += 1
        for column_id in board.columns:
            if column_id not in order:
                order.append(column_id)
                fixes += 1
        board.column_order = order

        for task_id in [task_id for task_id in board.tasks if task_id in board.archived_tasks]:
            # archive wins; the active copy is dropped
            del board.tasks[task_id]
            fixes += 1

        placed: set[str] = set()
        for column in board.iter_columns():
            kept: List[str] = []
            for task_id in column.task_ids:
                if task_id in board.tasks and task_id not in placed:
                    kept.append(task_id)
                    placed.add(task_id)
                else:
                    fixes += 1
            column.task_ids = kept

        orphans = [task_id for task_id in board.tasks if task_id not in placed]
        if orphans:
            if board.column_order:
                target = board.columns[board.default_column_id()]
                target.task_ids.extend(orphans)
            else:
                # nowhere to place them; park in the archive instead of dropping
                for task_id in orphans:
                    task = board.tasks.pop(task_id)
                    task.archived_at = board.now()
                    board.archived_tasks[task_id] = task
            fixes += len(orphans)

        highest = 0
        for task_id in list(board.tasks) + list(board.archived_tasks):
            prefix, _, suffix = task_id.partition("-")
            if prefix == "task" and suffix.isdigit():
                highest = max(highest, int(suffix))
        if board.next_task_seq <= highest:
            board.next_task_seq = highest + 1
            fixes += 1
    return fixes


__all__ = [
    "BOARD_FORMAT_VERSION",
    "Board",
    "BoardOptions",
    "DEFAULT_MAX_COLUMNS",
    "check_invariants",
    "repair_board",
]
