from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from taskboard.domain.board import (
    ArchiveManager,
    Board,
    BoardError,
    BoardOptions,
    BulkOperation,
    BulkOperationProcessor,
    ColumnManager,
    SyncEngine,
    TaskStore,
    check_invariants,
)

_COLUMNS = ["todo", "doing", "done"]

_task_ref = st.integers(min_value=1, max_value=12).map(lambda n: f"task-{n}")
_column_ref = st.sampled_from(_COLUMNS + ["missing"])
_index = st.integers(min_value=-1, max_value=8)
_title = st.text(alphabet="abc xyz", min_size=0, max_size=8)

_operation = st.one_of(
    st.tuples(st.just("create"), _title, _column_ref),
    st.tuples(st.just("move"), _task_ref, _column_ref, _index),
    st.tuples(st.just("archive"), _task_ref),
    st.tuples(st.just("restore"), _task_ref),
    st.tuples(st.just("delete"), _task_ref),
    st.tuples(st.just("purge"), _task_ref),
    st.tuples(st.just("sync"), st.lists(st.integers(min_value=1, max_value=4), max_size=3)),
    st.tuples(st.just("bulk_archive"), st.lists(_task_ref, max_size=4)),
    st.tuples(st.just("bulk_move"), st.lists(_task_ref, max_size=4), _column_ref),
    st.tuples(st.just("add_column"), _title),
    st.tuples(st.just("drop_column"), _column_ref),
)


def _board() -> Board:
    return Board.with_columns(
        [{"id": column_id, "title": column_id.title(), "color": "#000000"} for column_id in _COLUMNS],
        options=BoardOptions(inbox_column="todo"),
    )


def _apply(board: Board, op: tuple) -> None:
    kind = op[0]
    store = TaskStore(board)
    columns = ColumnManager(board)
    archive = ArchiveManager(board)
    if kind == "create":
        store.create_task(op[1] or "untitled", column_id=op[2] if op[2] in board.columns else None)
    elif kind == "move":
        source = board.column_of(op[1])
        columns.move_task(op[1], source.id if source else "missing", op[2], op[3])
    elif kind == "archive":
        archive.archive_task(op[1])
    elif kind == "restore":
        archive.restore_task(op[1])
    elif kind == "delete":
        store.delete_task(op[1])
    elif kind == "purge":
        archive.delete_archived_task(op[1])
    elif kind == "sync":
        SyncEngine(board).run(
            [{"external_ref": f"gh#{number}", "title": f"Issue {number}", "type": "issue"} for number in op[1]]
        )
    elif kind == "bulk_archive":
        BulkOperationProcessor(board).apply(op[1], BulkOperation.archive())
    elif kind == "bulk_move":
        BulkOperationProcessor(board).apply(op[1], BulkOperation.move_to(op[2]))
    elif kind == "add_column":
        columns.add_column(op[1] or "extra")
    elif kind == "drop_column":
        columns.delete_column(op[1])


@settings(max_examples=150, deadline=None)
@given(ops=st.lists(_operation, max_size=40))
def test_invariants_hold_after_every_operation(ops: list[tuple]) -> None:
    board = _board()
    for op in ops:
        try:
            _apply(board, op)
        except BoardError:
            pass
        assert check_invariants(board) == []


@settings(max_examples=100, deadline=None)
@given(
    counts=st.lists(st.integers(min_value=0, max_value=5), min_size=3, max_size=3),
    moves=st.lists(st.tuples(st.integers(min_value=0, max_value=20), st.sampled_from(_COLUMNS), st.integers(0, 10)), max_size=20),
)
def test_move_conserves_active_tasks(counts: list[int], moves: list[tuple[int, str, int]]) -> None:
    board = _board()
    store = TaskStore(board)
    for column_id, count in zip(_COLUMNS, counts):
        for index in range(count):
            store.create_task(f"{column_id}-{index}", column_id=column_id)
    total = len(board.tasks)
    if total == 0:
        return
    ids = sorted(board.tasks)
    manager = ColumnManager(board)

    for pick, target, index in moves:
        task_id = ids[pick % len(ids)]
        source = board.column_of(task_id)
        assert source is not None
        result = manager.move_task(task_id, source.id, target, index)
        placed = sum(len(column.task_ids) for column in board.columns.values())
        assert placed == total
        assert len(board.tasks) == total
        assert board.columns[target].task_ids[result.index] == task_id
        assert check_invariants(board) == []


@settings(max_examples=50, deadline=None)
@given(numbers=st.lists(st.integers(min_value=1, max_value=6), max_size=8))
def test_sync_twice_creates_nothing_new(numbers: list[int]) -> None:
    board = _board()
    batch = [{"external_ref": f"gh#{number}", "title": f"Issue {number}", "type": "issue"} for number in numbers]
    engine = SyncEngine(board)
    engine.run(batch)
    count = len(board.tasks)

    again = engine.run(batch)

    assert again.created == 0
    assert len(board.tasks) == count == len(set(numbers))
