from __future__ import annotations

from taskboard.domain.board import Board, BoardOptions, TaskStore, check_invariants, repair_board


def _board() -> Board:
    return Board.with_columns(
        [
            {"id": "todo", "title": "To Do", "color": "#ef4444"},
            {"id": "done", "title": "Done", "color": "#10b981"},
        ],
        options=BoardOptions(inbox_column="todo"),
    )


def test_clean_board_needs_no_repair() -> None:
    board = _board()
    TaskStore(board).create_task("Fine")

    assert check_invariants(board) == []
    assert repair_board(board) == 0


def test_repair_fixes_placements_and_column_order() -> None:
    board = _board()
    store = TaskStore(board)
    a = store.create_task("A").id
    b = store.create_task("B", column_id="done").id
    c = store.create_task("C").id
    board.columns["done"].task_ids.append(a)
    board.columns["todo"].task_ids.append("task-ghost")
    board.columns["todo"].task_ids.remove(c)
    board.column_order = ["done", "done", "missing"]

    assert check_invariants(board)
    fixes = repair_board(board)

    assert fixes > 0
    assert check_invariants(board) == []
    assert board.column_order == ["done", "todo"]
    assert board.columns["done"].task_ids == [b, a]
    assert board.columns["todo"].task_ids == [c]


def test_repair_prefers_archive_copy() -> None:
    board = _board()
    store = TaskStore(board)
    task = store.create_task("Twice")
    board.archived_tasks[task.id] = task.clone()

    repair_board(board)

    assert task.id not in board.tasks
    assert task.id in board.archived_tasks
    assert board.columns["todo"].task_ids == []
    assert check_invariants(board) == []


def test_repair_archives_orphans_when_no_columns_exist() -> None:
    board = _board()
    task = TaskStore(board).create_task("Orphan")
    board.columns.clear()
    board.column_order.clear()

    repair_board(board)

    assert task.id in board.archived_tasks
    assert board.archived_tasks[task.id].archived_at is not None
    assert check_invariants(board) == []


def test_repair_advances_sequence_past_existing_ids() -> None:
    board = _board()
    TaskStore(board).create_task("Seven")
    board.next_task_seq = 1

    repair_board(board)

    assert board.next_task_seq == 2
    assert TaskStore(board).create_task("Next").id == "task-2"
