"""Application facade over the board domain: persistence plus telemetry."""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, TypeVar

from taskboard.adapters.board.file_repository import FileBoardRepository
from taskboard.domain.board import (
    ArchiveManager,
    Board,
    BoardError,
    BoardOptions,
    BulkOperation,
    BulkOperationProcessor,
    BulkResult,
    Column,
    ColumnManager,
    ColumnSuggestion,
    DueStatus,
    FilterIndex,
    InvalidArgumentError,
    MoveResult,
    SuggestionEngine,
    SyncCandidate,
    SyncEngine,
    SyncSummary,
    Task,
    TaskOrigin,
    TaskPriority,
    TaskStore,
    TaskView,
    repair_board,
)
from taskboard.domain.board.aggregate import Clock
from taskboard.ports.board_repository import BoardRepository, BoardStoreError
from taskboard.settings import SETTINGS, BoardConfig, RuntimeSettings, load_board_config
from taskboard.utils.telemetry import record_structured_event

T = TypeVar("T")


class BoardServiceError(RuntimeError):
    """Raised when the board snapshot cannot be loaded or saved."""


class BoardService:
    """Loads the board once, applies operations and saves after each mutation.

    Failed operations are never persisted: domain primitives validate before
    they mutate, and the snapshot is written only once an operation returns.
    """

    def __init__(
        self,
        settings: RuntimeSettings | None = None,
        *,
        config: BoardConfig | None = None,
        repository: BoardRepository | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._settings = settings or SETTINGS
        self._config = config or load_board_config(self._settings.config_path)
        self._repository = repository or FileBoardRepository(self._settings.board_path, clock=clock)
        self._clock = clock
        self._board = self._load()

    @property
    def settings(self) -> RuntimeSettings:
        return self._settings

    @property
    def config(self) -> BoardConfig:
        return self._config

    @property
    def board(self) -> Board:
        return self._board

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_board(self) -> Dict[str, Any]:
        """Nested column view plus the flat ``column_order`` and id-to-task map."""

        board = self._board
        with board.lock:
            now = board.now()
            tasks: Dict[str, Dict[str, Any]] = {}
            for task_id, task in board.tasks.items():
                payload = task.to_dict()
                status = task.due_status(now)
                payload["due_status"] = status.value if status else None
                tasks[task_id] = payload
            columns = []
            for column in board.iter_columns():
                entry = column.to_dict()
                entry["over_limit"] = column.over_limit
                entry["tasks"] = [tasks[task_id] for task_id in column.task_ids]
                columns.append(entry)
            return {
                "column_order": list(board.column_order),
                "columns": columns,
                "tasks": tasks,
                "task_count": len(board.tasks),
                "archived_count": len(board.archived_tasks),
            }

    def get_archive(self) -> List[Task]:
        with self._board.lock:
            return sorted(
                (task.clone() for task in self._board.archived_tasks.values()),
                key=lambda task: (task.archived_at, task.id),
                reverse=True,
            )

    def get_task(self, task_id: str) -> Task:
        return TaskStore(self._board).get_task(task_id).clone()

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
        return FilterIndex(self._board).query(
            text, priority, origin, label=label, column_id=column_id, due=due
        )

    def get_suggestions(self) -> List[ColumnSuggestion]:
        engine = SuggestionEngine(
            self._board,
            soft_ceiling=self._config.soft_ceiling,
            congestion_threshold=self._config.congestion_threshold,
            max_suggestions=self._config.max_suggestions,
        )
        return engine.suggest()

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

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
        store = TaskStore(self._board)
        task = self._mutate(
            "board.task.create",
            lambda: store.create_task(
                title,
                description=description,
                notes=notes,
                priority=priority,
                labels=labels,
                column_id=column_id,
                due_at=due_at,
            ),
            {"column_id": column_id},
        )
        return task.clone()

    def update_task(self, task_id: str, patch: Mapping[str, Any]) -> Task:
        store = TaskStore(self._board)
        task = self._mutate(
            "board.task.update",
            lambda: store.update_task(task_id, patch),
            {"task_id": task_id, "fields": sorted(patch)},
        )
        return task.clone()

    def delete_task(self, task_id: str) -> None:
        store = TaskStore(self._board)
        self._mutate("board.task.delete", lambda: store.delete_task(task_id), {"task_id": task_id})

    def move_task(
        self,
        task_id: str,
        to_column_id: str,
        destination_index: int | None = None,
        *,
        from_column_id: str | None = None,
    ) -> MoveResult:
        manager = ColumnManager(self._board)

        def _move() -> MoveResult:
            source = from_column_id or TaskStore(self._board).column_of(task_id)
            index = destination_index
            if index is None:
                index = len(self._board.require_column(to_column_id).task_ids)
            return manager.move_task(task_id, source, to_column_id, index)

        return self._mutate(
            "board.task.move",
            _move,
            {"task_id": task_id, "to": to_column_id, "index": destination_index},
        )

    def add_tracker_item(
        self,
        item: SyncCandidate | Mapping[str, Any],
        column_id: str | None = None,
        *,
        notes: str | None = None,
    ) -> Task:
        store = TaskStore(self._board)

        def _add() -> Task:
            candidate = item if isinstance(item, SyncCandidate) else SyncCandidate.from_mapping(item)
            return store.add_tracker_item(candidate, column_id, notes=notes)

        if isinstance(item, SyncCandidate):
            ref = item.external_ref
        else:
            raw_ref = item.get("external_ref") if isinstance(item, Mapping) else None
            ref = str(raw_ref) if raw_ref is not None else None
        task = self._mutate("board.tracker.add", _add, {"external_ref": ref, "column_id": column_id})
        return task.clone()

    def is_tracked(self, external_ref: str) -> bool:
        return TaskStore(self._board).is_tracked(external_ref)

    def clear_tracker_tasks(self) -> List[str]:
        store = TaskStore(self._board)
        return self._mutate("board.tracker.clear", store.clear_tracker_tasks, {})

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def add_column(
        self,
        title: str,
        color: str | None = None,
        wip_limit: int | None = None,
        *,
        column_id: str | None = None,
    ) -> Column:
        manager = ColumnManager(self._board)
        return self._mutate(
            "board.column.add",
            lambda: manager.add_column(title, color, wip_limit, column_id=column_id),
            {"title": title},
        )

    def update_column(self, column_id: str, patch: Mapping[str, Any]) -> Column:
        manager = ColumnManager(self._board)
        return self._mutate(
            "board.column.update",
            lambda: manager.update_column(column_id, patch),
            {"column_id": column_id, "fields": sorted(patch)},
        )

    def delete_column(self, column_id: str, *, discard_tasks: bool = False) -> List[str]:
        manager = ColumnManager(self._board)

        def _delete() -> List[str]:
            column = self._board.require_column(column_id)
            if column.task_ids and not discard_tasks:
                raise InvalidArgumentError(
                    f"column '{column_id}' still holds {len(column.task_ids)} task(s); "
                    "pass discard_tasks=True to delete them with the column"
                )
            return manager.delete_column(column_id)

        return self._mutate(
            "board.column.delete",
            _delete,
            {"column_id": column_id, "discard_tasks": discard_tasks},
        )

    def reorder_columns(self, new_order: Iterable[str]) -> List[str]:
        order = list(new_order)
        manager = ColumnManager(self._board)
        return self._mutate("board.column.reorder", lambda: manager.reorder_columns(order), {"order": order})

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    def archive_task(self, task_id: str) -> Task:
        manager = ArchiveManager(self._board)
        return self._mutate("board.archive.add", lambda: manager.archive_task(task_id), {"task_id": task_id}).clone()

    def restore_task(self, task_id: str) -> Task:
        manager = ArchiveManager(self._board)
        return self._mutate(
            "board.archive.restore", lambda: manager.restore_task(task_id), {"task_id": task_id}
        ).clone()

    def delete_archived_task(self, task_id: str) -> None:
        manager = ArchiveManager(self._board)
        self._mutate("board.archive.delete", lambda: manager.delete_archived_task(task_id), {"task_id": task_id})

    def clear_archive(self) -> int:
        manager = ArchiveManager(self._board)
        return self._mutate("board.archive.clear", manager.clear_archive, {})

    def auto_archive(self, column_id: str | None = None, days: int | None = None) -> List[str]:
        """Archive stale tasks from ``column_id`` (the configured done column by default)."""

        target = column_id or self._config.done_column
        if not target:
            raise InvalidArgumentError("auto archive needs a column (no done_column configured)")
        age = self._config.auto_archive_days if days is None else days
        if isinstance(age, bool) or not isinstance(age, int) or age < 0:
            raise InvalidArgumentError(f"days must be a non-negative integer, got {age!r}")
        manager = ArchiveManager(self._board)
        return self._mutate(
            "board.archive.auto",
            lambda: manager.auto_archive(target, timedelta(days=age)),
            {"column_id": target, "days": age},
        )

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def run_sync(self, candidates: Iterable[SyncCandidate | Mapping[str, Any]]) -> SyncSummary:
        engine = SyncEngine(self._board)
        items = list(candidates)
        with self._board.lock:
            start = time.perf_counter()
            summary = engine.run(items)
            if summary.created or summary.updated:
                self._save()
            self._record(
                "board.sync",
                payload={"received": len(items), **summary.summary()},
                status="success",
                level="warn" if summary.skipped_invalid else "info",
                duration_ms=(time.perf_counter() - start) * 1000,
            )
        return summary

    def bulk_apply(self, task_ids: Iterable[str], operation: BulkOperation) -> BulkResult:
        processor = BulkOperationProcessor(self._board)
        ids = list(task_ids)
        result = self._mutate(
            "board.bulk",
            lambda: processor.apply(ids, operation),
            {"operation": operation.describe(), "requested": len(ids)},
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _options(self) -> BoardOptions:
        return BoardOptions(
            inbox_column=self._config.inbox_column,
            restore_column=self._config.restore_column,
            max_columns=self._config.max_columns,
        )

    def _load(self) -> Board:
        options = self._options()
        try:
            board = self._repository.load(options=options)
        except BoardStoreError as exc:
            self._record(
                "board.load",
                payload={"path": str(self._settings.board_path)},
                status="failed",
                level="error",
                error=exc,
            )
            raise BoardServiceError(str(exc)) from exc
        if board is None:
            return Board.with_columns(self._config.columns, options=options, clock=self._clock)
        with board.lock:
            fixes = repair_board(board)
            if fixes:
                self._repository_save(board)
                self._record("board.repair", payload={"fixes": fixes}, status="success", level="warn")
        return board

    def _mutate(self, event: str, operation: Callable[[], T], payload: Dict[str, Any]) -> T:
        with self._board.lock:
            start = time.perf_counter()
            try:
                result = operation()
            except BoardError as exc:
                self._record(
                    event,
                    payload=payload,
                    status="failed",
                    level="error",
                    duration_ms=(time.perf_counter() - start) * 1000,
                    error=exc,
                )
                raise
            self._save()
            self._record(
                event,
                payload=payload,
                status="success",
                duration_ms=(time.perf_counter() - start) * 1000,
            )
            return result

    def _save(self) -> None:
        self._repository_save(self._board)

    def _repository_save(self, board: Board) -> None:
        try:
            self._repository.save(board)
        except BoardStoreError as exc:
            raise BoardServiceError(str(exc)) from exc

    def _record(
        self,
        event: str,
        *,
        payload: Dict[str, Any],
        status: str,
        level: str = "info",
        duration_ms: float | None = None,
        error: BaseException | None = None,
    ) -> None:
        record_structured_event(
            self._settings,
            event,
            component="board",
            status=status,
            payload=payload,
            level=level,
            duration_ms=duration_ms,
            error=error,
        )


__all__ = ["BoardService", "BoardServiceError"]
