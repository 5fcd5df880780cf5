from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from taskboard.adapters.board.file_repository import FileBoardRepository
from taskboard.app.board import BoardService, BoardServiceError
from taskboard.domain.board import (
    BulkOperation,
    InvalidArgumentError,
    NotFoundError,
    TaskPriority,
    ValidationError,
    check_invariants,
)
from taskboard.ports.board_repository import BoardStoreError
from taskboard.settings import RuntimeSettings, load_board_config
from taskboard.utils.telemetry import iter_events


class StepClock:
    def __init__(self) -> None:
        self.current = datetime(2025, 6, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: int) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture()
def runtime_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> RuntimeSettings:
    monkeypatch.setenv("TASKBOARD_TELEMETRY", "1")
    home = tmp_path / "home"
    settings = RuntimeSettings(home_dir=home, state_dir=home / "state", log_dir=home / "logs")
    home.mkdir(parents=True, exist_ok=True)
    return settings


def test_fresh_board_uses_configured_columns(runtime_settings: RuntimeSettings) -> None:
    service = BoardService(runtime_settings)

    snapshot = service.get_board()

    assert [column["id"] for column in snapshot["columns"]] == ["todo", "in-progress", "review", "done"]
    assert snapshot["task_count"] == 0
    assert not runtime_settings.board_path.exists()


def test_user_config_overrides_defaults(runtime_settings: RuntimeSettings) -> None:
    runtime_settings.config_path.write_text(
        "columns:\n  - id: backlog\n    title: Backlog\n  - id: shipped\n    title: Shipped\n"
        "inbox_column: backlog\nrestore_column: backlog\nsoft_ceiling: 5\n",
        encoding="utf-8",
    )

    service = BoardService(runtime_settings)
    task = service.create_task("Hello")

    assert service.config.soft_ceiling == 5
    assert service.config.max_columns == 15
    assert service.get_board()["columns"][0]["task_ids"] == [task.id]


def test_mutations_persist_and_reload(runtime_settings: RuntimeSettings) -> None:
    service = BoardService(runtime_settings)
    first = service.create_task("Fix bug", labels=["bug"])
    second = service.create_task("Write docs", priority="high")
    service.move_task(first.id, "in-progress", 0)
    service.archive_task(second.id)

    reloaded = BoardService(runtime_settings)

    board = reloaded.board
    assert board.columns["in-progress"].task_ids == [first.id]
    assert board.tasks[first.id].labels == ("bug",)
    assert second.id in board.archived_tasks
    assert board.archived_tasks[second.id].priority is TaskPriority.HIGH
    assert check_invariants(board) == []
    assert reloaded.create_task("Third").id == "task-3"


def test_failed_mutation_is_not_saved_and_is_recorded(runtime_settings: RuntimeSettings) -> None:
    service = BoardService(runtime_settings)
    service.create_task("Keep")
    saved = runtime_settings.board_path.read_text(encoding="utf-8")

    with pytest.raises(NotFoundError):
        service.move_task("task-404", "done")

    assert runtime_settings.board_path.read_text(encoding="utf-8") == saved
    events = list(iter_events(runtime_settings))
    failed = [evt for evt in events if evt.get("status") == "failed"]
    assert failed and failed[-1]["event"] == "board.task.move"
    assert failed[-1]["level"] == "error"
    assert failed[-1]["component"] == "board"
    assert failed[-1]["error"]["type"] == "NotFoundError"
    assert "task-404" in failed[-1]["error"]["message"]
    assert any(evt["event"] == "board.task.create" and evt["status"] == "success" for evt in events)


def test_delete_column_requires_explicit_discard(runtime_settings: RuntimeSettings) -> None:
    service = BoardService(runtime_settings)
    task = service.create_task("Review me", column_id="review")

    with pytest.raises(InvalidArgumentError):
        service.delete_column("review")
    assert "review" in service.board.columns

    discarded = service.delete_column("review", discard_tasks=True)

    assert discarded == [task.id]
    assert task.id not in service.board.tasks
    assert task.id not in service.board.archived_tasks
    assert service.delete_column("done") == []


def test_move_defaults_to_end_of_destination(runtime_settings: RuntimeSettings) -> None:
    service = BoardService(runtime_settings)
    a = service.create_task("A", column_id="done")
    b = service.create_task("B")

    result = service.move_task(b.id, "done")

    assert result.index == 1
    assert service.board.columns["done"].task_ids == [a.id, b.id]


def test_auto_archive_uses_done_column_and_configured_age(runtime_settings: RuntimeSettings) -> None:
    clock = StepClock()
    service = BoardService(runtime_settings, clock=clock)
    old = service.create_task("Old", column_id="done")
    clock.advance(days=31)
    recent = service.create_task("Recent", column_id="done")

    archived = service.auto_archive()

    assert archived == [old.id]
    assert service.board.columns["done"].task_ids == [recent.id]
    assert service.auto_archive(days=0) == []
    clock.advance(minutes=1)
    assert service.auto_archive(days=0) == [recent.id]
    with pytest.raises(InvalidArgumentError):
        service.auto_archive(days=-1)


def test_archive_listing_and_restore(runtime_settings: RuntimeSettings) -> None:
    clock = StepClock()
    service = BoardService(runtime_settings, clock=clock)
    a = service.create_task("A", column_id="done")
    b = service.create_task("B", column_id="done")
    service.archive_task(a.id)
    clock.advance(minutes=1)
    service.archive_task(b.id)

    assert [task.id for task in service.get_archive()] == [b.id, a.id]

    restored = service.restore_task(a.id)
    assert restored.archived_at is None
    assert service.board.columns["todo"].task_ids == [a.id]
    service.delete_archived_task(b.id)
    assert service.clear_archive() == 0


def test_run_sync_and_bulk_persist(runtime_settings: RuntimeSettings) -> None:
    service = BoardService(runtime_settings)
    summary = service.run_sync(
        [
            {"external_ref": "gh#1", "title": "One", "type": "issue"},
            {"external_ref": "gh#2", "title": "Two", "type": "pr", "review_requested": True},
            {"title": "broken"},
        ]
    )
    assert (summary.created, summary.skipped_invalid) == (2, 1)

    result = service.bulk_apply(summary.created_ids + ["task-99"], BulkOperation.move_to("review"))
    assert result.succeeded == summary.created_ids
    assert [failure.id for failure in result.failed] == ["task-99"]

    payload = json.loads(runtime_settings.board_path.read_text(encoding="utf-8"))
    review = next(column for column in payload["columns"] if column["id"] == "review")
    assert review["task_ids"] == summary.created_ids

    removed = service.clear_tracker_tasks()
    assert sorted(removed) == sorted(summary.created_ids)
    assert BoardService(runtime_settings).board.tasks == {}


def test_sync_with_mistyped_items_keeps_board_loadable(runtime_settings: RuntimeSettings) -> None:
    service = BoardService(runtime_settings)
    summary = service.run_sync(
        [
            {"external_ref": "gh#1", "title": "One", "type": "issue", "url": 42},
            {"external_ref": "gh#2", "title": "Two", "type": "issue", "description": 7},
            {"external_ref": "gh#3", "title": "Three", "type": "issue", "labels": 5},
            {"external_ref": "gh#4", "title": "Four", "type": "issue", "labels": "bug"},
        ]
    )

    assert (summary.created, summary.skipped_invalid) == (1, 3)
    reloaded = BoardService(runtime_settings)
    (task,) = reloaded.board.tasks.values()
    assert task.external_ref.key == "gh#4"
    assert task.labels == ("bug",)


def test_repository_refuses_to_write_an_invalid_snapshot(runtime_settings: RuntimeSettings) -> None:
    service = BoardService(runtime_settings)
    task = service.create_task("Keep")
    saved = runtime_settings.board_path.read_text(encoding="utf-8")
    service.board.tasks[task.id].notes = 7  # type: ignore[assignment]

    with pytest.raises(BoardStoreError, match="notes"):
        FileBoardRepository(runtime_settings.board_path).save(service.board)

    assert runtime_settings.board_path.read_text(encoding="utf-8") == saved


def test_query_and_suggestions(runtime_settings: RuntimeSettings) -> None:
    service = BoardService(runtime_settings)
    service.update_column("review", {"wip_limit": 2})
    service.create_task("Review parser", column_id="review")
    service.create_task("Review docs", column_id="review", labels=["docs"])

    assert [task.title for task in service.query("docs")] == ["Review docs"]
    suggestions = service.get_suggestions()
    assert {item.title for item in suggestions} == {"Code Review", "Docs"}
    assert all(0 < item.confidence < 1 for item in suggestions)


def test_corrupt_snapshot_raises_service_error(runtime_settings: RuntimeSettings) -> None:
    runtime_settings.board_path.parent.mkdir(parents=True, exist_ok=True)
    runtime_settings.board_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(BoardServiceError):
        BoardService(runtime_settings)


def test_schema_invalid_snapshot_raises_service_error(runtime_settings: RuntimeSettings) -> None:
    runtime_settings.board_path.parent.mkdir(parents=True, exist_ok=True)
    runtime_settings.board_path.write_text(json.dumps({"version": 1, "columns": []}), encoding="utf-8")

    with pytest.raises(BoardServiceError):
        BoardService(runtime_settings)


def test_load_repairs_and_saves(runtime_settings: RuntimeSettings) -> None:
    service = BoardService(runtime_settings)
    task = service.create_task("Orphan")
    payload = json.loads(runtime_settings.board_path.read_text(encoding="utf-8"))
    for column in payload["columns"]:
        column["task_ids"] = []
    runtime_settings.board_path.write_text(json.dumps(payload), encoding="utf-8")

    repaired = BoardService(runtime_settings)

    assert repaired.board.columns["todo"].task_ids == [task.id]
    saved = json.loads(runtime_settings.board_path.read_text(encoding="utf-8"))
    assert next(column for column in saved["columns"] if column["id"] == "todo")["task_ids"] == [task.id]
    assert any(evt["event"] == "board.repair" for evt in iter_events(runtime_settings))


def test_explicit_config_skips_yaml(runtime_settings: RuntimeSettings) -> None:
    runtime_settings.config_path.write_text("columns: not-a-list\n", encoding="utf-8")
    config = load_board_config(None)

    service = BoardService(runtime_settings, config=config)

    assert len(service.get_board()["columns"]) == 4


def test_add_tracker_item_survives_later_sync(runtime_settings: RuntimeSettings) -> None:
    service = BoardService(runtime_settings)
    item = {"external_ref": "gh#12", "title": "Flaky login", "type": "issue", "labels": ["bug"]}

    task = service.add_tracker_item(item, "review", notes="pair with Sam")

    assert service.is_tracked("gh#12")
    with pytest.raises(ValidationError):
        service.add_tracker_item(item, "todo")
    summary = service.run_sync([dict(item, title="Flaky login on Safari")])
    assert (summary.created, summary.updated) == (0, 1)

    reloaded = BoardService(runtime_settings)
    stored = reloaded.board.tasks[task.id]
    assert reloaded.board.columns["review"].task_ids == [task.id]
    assert stored.notes == "pair with Sam"
    assert stored.title == "Flaky login on Safari"
    events = [evt["event"] for evt in iter_events(runtime_settings)]
    assert events.count("board.tracker.add") == 2


def test_get_board_exposes_order_and_task_map(runtime_settings: RuntimeSettings) -> None:
    clock = StepClock()
    service = BoardService(runtime_settings, clock=clock)
    task = service.create_task("Ship it", column_id="review", due_at="2025-06-02")
    service.reorder_columns(["done", "review", "in-progress", "todo"])

    snapshot = service.get_board()

    assert snapshot["column_order"] == ["done", "review", "in-progress", "todo"]
    assert [column["id"] for column in snapshot["columns"]] == snapshot["column_order"]
    assert list(snapshot["tasks"]) == [task.id]
    assert snapshot["tasks"][task.id]["due_status"] == "soon"
    assert snapshot["columns"][1]["tasks"] == [snapshot["tasks"][task.id]]

    assert BoardService(runtime_settings, clock=clock).board.tasks[task.id].due_at == task.due_at
    overdue = BoardService(runtime_settings, clock=clock)
    clock.advance(days=3)
    assert [item.title for item in overdue.query(due="overdue")] == ["Ship it"]
