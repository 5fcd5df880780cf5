"""Column lifecycle and the single reorder operation of the board."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping

from .aggregate import Board
from .errors import InvalidArgumentError, LimitExceededError, ValidationError
from .models import Column, validate_wip_limit

COLUMN_FIELDS = frozenset({"title", "color", "wip_limit"})
DEFAULT_COLOR = "#64748b"

_SLUG_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class MoveResult:
    task_id: str
    from_column_id: str
    to_column_id: str
    index: int
    over_limit: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "from": self.from_column_id,
            "to": self.to_column_id,
            "index": self.index,
            "over_limit": self.over_limit,
        }


@dataclass(frozen=True)
class ColumnLoad:
    column_id: str
    count: int
    wip_limit: int | None

    @property
    def over_limit(self) -> bool:
        return self.wip_limit is not None and self.count > self.wip_limit


def _clean_column_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("column title must be a non-empty string")
    return title.strip()


class ColumnManager:
    """Owns column definitions and the ordered task lists inside them."""

    def __init__(self, board: Board) -> None:
        self._board = board

    def add_column(
        self,
        title: str,
        color: str | None = None,
        wip_limit: int | None = None,
        *,
        column_id: str | None = None,
    ) -> Column:
        cleaned = _clean_column_title(title)
        limit = validate_wip_limit(wip_limit)
        board = self._board
        with board.lock:
            if len(board.columns) >= board.options.max_columns:
                raise LimitExceededError(f"board already holds the maximum of {board.options.max_columns} columns")
            if column_id is not None and column_id in board.columns:
                raise InvalidArgumentError(f"column '{column_id}' already exists")
            new_id = column_id or self._unique_id(cleaned)
            column = Column(id=new_id, title=cleaned, color=color or DEFAULT_COLOR, wip_limit=limit)
            board.columns[new_id] = column
            board.column_order.append(new_id)
            return column

    def update_column(self, column_id: str, patch: Mapping[str, Any]) -> Column:
        unknown = sorted(set(patch) - COLUMN_FIELDS)
        if unknown:
            raise InvalidArgumentError(f"column fields cannot be changed: {', '.join(unknown)}")
        changes: dict[str, Any] = {}
        if "title" in patch:
            changes["title"] = _clean_column_title(patch["title"])
        if "color" in patch:
            if not isinstance(patch["color"], str) or not patch["color"].strip():
                raise ValidationError("column color must be a non-empty string")
            changes["color"] = patch["color"].strip()
        if "wip_limit" in patch:
            changes["wip_limit"] = validate_wip_limit(patch["wip_limit"])
        with self._board.lock:
            column = self._board.require_column(column_id)
            for key, value in changes.items():
                setattr(column, key, value)
            return column

    def delete_column(self, column_id: str) -> List[str]:
        """Remove a column and permanently delete the tasks it holds.

        Tasks are not archived. Callers that want to keep them must archive
        or move them before deleting the column.
        """

        board = self._board
        with board.lock:
            column = board.require_column(column_id)
            discarded = list(column.task_ids)
            for task_id in discarded:
                board.tasks.pop(task_id, None)
            del board.columns[column_id]
            board.column_order = [cid for cid in board.column_order if cid != column_id]
            return discarded

    def reorder_columns(self, new_order: Iterable[str]) -> List[str]:
        order = list(new_order)
        with self._board.lock:
            current = self._board.column_order
            if len(order) != len(current) or sorted(order) != sorted(current):
                raise InvalidArgumentError("new column order must be a permutation of the existing column ids")
            self._board.column_order = order
            return list(order)

    def move_task(
        self,
        task_id: str,
        from_column_id: str,
        to_column_id: str,
        destination_index: int,
    ) -> MoveResult:
        """Move a task between (or within) columns.

        ``destination_index`` addresses the destination list after the task
        has been removed from its source position, and is clamped to that
        list's length. Exceeding the destination WIP limit is reported via
        ``MoveResult.over_limit`` and never blocks the move.
        """

        if isinstance(destination_index, bool) or not isinstance(destination_index, int):
            raise InvalidArgumentError("destination index must be an integer")
        if destination_index < 0:
            raise InvalidArgumentError("destination index must not be negative")
        board = self._board
        with board.lock:
            board.require_task(task_id)
            source = board.require_column(from_column_id)
            target = board.require_column(to_column_id)
            if task_id not in source.task_ids:
                raise InvalidArgumentError(f"task '{task_id}' is not in column '{from_column_id}'")

            source.task_ids.remove(task_id)
            index = min(destination_index, len(target.task_ids))
            target.task_ids.insert(index, task_id)
            return MoveResult(
                task_id=task_id,
                from_column_id=source.id,
                to_column_id=target.id,
                index=index,
                over_limit=target.over_limit,
            )

    def column_load(self, column_id: str) -> ColumnLoad:
        with self._board.lock:
            column = self._board.require_column(column_id)
            return ColumnLoad(column_id=column.id, count=len(column.task_ids), wip_limit=column.wip_limit)

    def _unique_id(self, title: str) -> str:
        base = _SLUG_RE.sub("-", title.lower()).strip("-") or "column"
        candidate = base
        counter = 2
        while candidate in self._board.columns:
            candidate = f"{base}-{counter}"
            counter += 1
        return candidate


__all__ = ["ColumnLoad", "ColumnManager", "MoveResult"]
