"""Task CRUD on the board aggregate."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, List, Mapping

from .aggregate import Board
from .errors import InvalidArgumentError, NotFoundError, ValidationError
from .models import (
    ExternalRef,
    Task,
    TaskOrigin,
    TaskPriority,
    clean_title,
    normalise_labels,
    parse_due,
)

if TYPE_CHECKING:  # pragma: no cover
    from .sync import SyncCandidate

MUTABLE_FIELDS = frozenset({"title", "description", "priority", "notes", "labels", "due_at"})
IMMUTABLE_FIELDS = frozenset({"id", "origin", "external_ref", "created_at", "updated_at", "archived_at"})
DESCRIPTION_LIMIT = 200


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


class TaskStore:
    """Owns task creation, editing and deletion on a :class:`Board`."""

    def __init__(self, board: Board) -> None:
        self._board = board

    def get_task(self, task_id: str) -> Task:
        with self._board.lock:
            return self._board.require_task(task_id)

    def column_of(self, task_id: str) -> str:
        with self._board.lock:
            self._board.require_task(task_id)
            column = self._board.column_of(task_id)
            if column is None:  # pragma: no cover - guarded by I2
                raise NotFoundError(f"task '{task_id}' has no column")
            return column.id

    def create_task(
        self,
        title: str,
        *,
        description: str | None = None,
        notes: str | None = None,
        priority: TaskPriority | str = TaskPriority.MEDIUM,
        labels: Iterable[str] = (),
        column_id: str | None = None,
        due_at: Any = None,
    ) -> Task:
        cleaned = clean_title(title)
        resolved_priority = TaskPriority.parse(priority)
        resolved_due = parse_due(due_at)
        board = self._board
        with board.lock:
            if column_id is not None:
                target = board.require_column(column_id)
            else:
                target = board.columns[board.default_column_id()]
            now = board.now()
            task = Task(
                id=board.allocate_task_id(),
                title=cleaned,
                origin=TaskOrigin.PERSONAL,
                priority=resolved_priority,
                description=_optional_text(description),
                notes=_optional_text(notes),
                labels=normalise_labels(labels),
                due_at=resolved_due,
                created_at=now,
                updated_at=now,
            )
            board.tasks[task.id] = task
            target.task_ids.append(task.id)
            return task

    def create_tracker_task(
        self,
        candidate: "SyncCandidate",
        *,
        column_id: str,
        priority: TaskPriority = TaskPriority.MEDIUM,
        description: str | None = None,
        notes: str | None = None,
    ) -> Task:
        board = self._board
        with board.lock:
            target = board.require_column(column_id)
            if self.find_by_external_ref(candidate.external_ref) is not None:
                raise ValidationError(f"external reference '{candidate.external_ref}' already on the board")
            now = board.now()
            task = Task(
                id=board.allocate_task_id(),
                title=clean_title(candidate.title),
                origin=candidate.origin,
                priority=priority,
                description=description,
                notes=_optional_text(notes),
                labels=normalise_labels(candidate.labels),
                external_ref=ExternalRef(candidate.external_ref, candidate.url),
                created_at=now,
                updated_at=now,
            )
            board.tasks[task.id] = task
            target.task_ids.append(task.id)
            return task

    def add_tracker_item(
        self,
        candidate: "SyncCandidate",
        column_id: str | None = None,
        *,
        notes: str | None = None,
    ) -> Task:
        """Place one tracker item in a chosen column, refusing refs already on the board.

        Later syncs of the same reference update the title, labels and link but
        keep the column and notes picked here.
        """

        priority = TaskPriority.HIGH if candidate.review_requested else TaskPriority.MEDIUM
        description = candidate.description[:DESCRIPTION_LIMIT] if candidate.description else None
        with self._board.lock:
            target = column_id if column_id is not None else self._board.default_column_id()
            return self.create_tracker_task(
                candidate,
                column_id=target,
                priority=priority,
                description=description,
                notes=notes,
            )

    def is_tracked(self, key: str) -> bool:
        return self.find_by_external_ref(key) is not None

    def update_task(self, task_id: str, patch: Mapping[str, Any]) -> Task:
        forbidden = sorted(set(patch) & IMMUTABLE_FIELDS)
        if forbidden:
            raise InvalidArgumentError(f"fields cannot be changed: {', '.join(forbidden)}")
        unknown = sorted(set(patch) - MUTABLE_FIELDS)
        if unknown:
            raise InvalidArgumentError(f"unknown task fields: {', '.join(unknown)}")

        changes: dict[str, Any] = {}
        if "title" in patch:
            changes["title"] = clean_title(patch["title"])
        if "priority" in patch:
            changes["priority"] = TaskPriority.parse(patch["priority"])
        if "labels" in patch:
            changes["labels"] = normalise_labels(patch["labels"])
        for key in ("description", "notes"):
            if key in patch:
                changes[key] = _optional_text(patch[key])
        if "due_at" in patch:
            changes["due_at"] = parse_due(patch["due_at"])

        with self._board.lock:
            task = self._board.require_task(task_id)
            for key, value in changes.items():
                setattr(task, key, value)
            task.updated_at = self._board.now()
            return task

    def delete_task(self, task_id: str) -> Task:
        board = self._board
        with board.lock:
            task = board.require_task(task_id)
            column = board.column_of(task_id)
            if column is not None:
                column.task_ids.remove(task_id)
            del board.tasks[task_id]
            return task

    def find_by_external_ref(self, key: str) -> Task | None:
        """Look up a tracker task in both the active set and the archive."""

        board = self._board
        with board.lock:
            for pool in (board.tasks, board.archived_tasks):
                for task in pool.values():
                    if task.external_ref is not None and task.external_ref.key == key:
                        return task
        return None

    def clear_tracker_tasks(self) -> List[str]:
        """Drop every active tracker task; personal tasks and the archive stay."""

        board = self._board
        removed: List[str] = []
        with board.lock:
            for task_id, task in list(board.tasks.items()):
                if task.origin.is_tracker:
                    self.delete_task(task_id)
                    removed.append(task_id)
        return removed


__all__ = ["DESCRIPTION_LIMIT", "IMMUTABLE_FIELDS", "MUTABLE_FIELDS", "TaskStore"]
