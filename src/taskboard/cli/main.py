#!/usr/bin/env python3
"""Entry point for the taskboard CLI."""

from __future__ import annotations

import argparse
import functools
import json
import sys
from collections import deque
from pathlib import Path
from textwrap import dedent
from typing import Any, Callable, Dict, Iterable, List

from taskboard import __version__
from taskboard.app.board import BoardService, BoardServiceError
from taskboard.app.sync import TrackerSyncError, TrackerSyncResult, TrackerSyncService
from taskboard.domain.board import BoardError, BulkOperation, BulkResult, Task
from taskboard.settings import SETTINGS, ConfigError
from taskboard.utils.telemetry import clear as telemetry_clear
from taskboard.utils.telemetry import iter_events as telemetry_iter
from taskboard.utils.telemetry import summarize as telemetry_summarize

HELP_OVERVIEW = dedent(
    """
    Personal task board: your own tasks and tracker issues in one ordered board.

    Examples:
      taskboard task add "Fix bug" --priority high
      taskboard task move task-1 in-progress --index 0
      taskboard sync --provider github --input issues.json
      taskboard bulk archive task-1 task-2
    """
)

_HANDLED_ERRORS = (BoardError, BoardServiceError, ConfigError, TrackerSyncError)


def _board_service() -> BoardService:
    return BoardService(SETTINGS)


def _guarded(handler: Callable[[argparse.Namespace], int]) -> Callable[[argparse.Namespace], int]:
    @functools.wraps(handler)
    def _run(args: argparse.Namespace) -> int:
        try:
            return handler(args)
        except _HANDLED_ERRORS as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1

    return _run


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _format_task(task: Task | Dict[str, Any]) -> str:
    data = task.to_dict() if isinstance(task, Task) else task
    line = f"{data['id']:<10} [{data['priority']}] {data['title']}"
    labels = data.get("labels") or []
    if labels:
        line += "  " + " ".join(f"#{label}" for label in labels)
    ref = data.get("external_ref")
    if ref:
        line += f"  ({ref['key']})"
    if data.get("due_at"):
        status = data.get("due_status")
        line += f"  due {data['due_at'][:10]}" + (f" [{status}]" if status else "")
    return line


# ----------------------------------------------------------------------
# board / query / suggest
# ----------------------------------------------------------------------


@_guarded
def _board_show_cmd(args: argparse.Namespace) -> int:
    snapshot = _board_service().get_board()
    if getattr(args, "json", False):
        _print_json(snapshot)
        return 0
    for column in snapshot["columns"]:
        limit = column["wip_limit"]
        load = f"{len(column['tasks'])}/{limit}" if limit is not None else str(len(column["tasks"]))
        marker = " over limit" if column["over_limit"] else ""
        print(f"== {column['title']} ({column['id']}) [{load}]{marker}")
        for task in column["tasks"]:
            print(f"  {_format_task(task)}")
    print(f"Active: {snapshot['task_count']}  Archived: {snapshot['archived_count']}")
    return 0


@_guarded
def _query_cmd(args: argparse.Namespace) -> int:
    view = _board_service().query(
        args.text,
        args.priority,
        args.origin,
        label=args.label,
        column_id=args.column,
        due=args.due,
    )
    tasks = view.to_list()
    if getattr(args, "json", False):
        _print_json([task.to_dict() for task in tasks])
        return 0
    for task in tasks:
        print(_format_task(task))
    if not tasks:
        print("No matching tasks")
    return 0


@_guarded
def _suggest_cmd(args: argparse.Namespace) -> int:
    suggestions = _board_service().get_suggestions()
    if getattr(args, "json", False):
        _print_json([item.to_dict() for item in suggestions])
        return 0
    if not suggestions:
        print("No column suggestions: no congested columns")
        return 0
    for item in suggestions:
        print(f"{item.title:<14} {item.confidence:.2f}  {item.reason}")
    return 0


# ----------------------------------------------------------------------
# task
# ----------------------------------------------------------------------


@_guarded
def _task_cmd(args: argparse.Namespace) -> int:
    service = _board_service()
    command = args.task_command
    if command == "add":
        task = service.create_task(
            args.title,
            description=args.description,
            notes=args.notes,
            priority=args.priority,
            labels=args.label or (),
            column_id=args.column,
            due_at=args.due,
        )
        if args.json:
            _print_json(task.to_dict())
        else:
            print(f"Created {task.id}: {task.title}")
        return 0
    if command == "edit":
        patch: Dict[str, Any] = {}
        for key in ("title", "description", "notes", "priority"):
            value = getattr(args, key)
            if value is not None:
                patch[key] = value
        if args.clear_labels:
            patch["labels"] = []
        elif args.label:
            patch["labels"] = list(args.label)
        if args.clear_due:
            patch["due_at"] = None
        elif args.due is not None:
            patch["due_at"] = args.due
        if not patch:
            print("task edit: nothing to change", file=sys.stderr)
            return 1
        task = service.update_task(args.task_id, patch)
        if args.json:
            _print_json(task.to_dict())
        else:
            print(f"Updated {task.id}: {', '.join(sorted(patch))}")
        return 0
    if command == "track":
        item = {
            "external_ref": args.external_ref,
            "title": args.title,
            "type": args.type,
            "url": args.url,
            "description": args.description,
            "labels": args.label or [],
            "review_requested": args.review_requested,
        }
        if service.is_tracked(args.external_ref):
            print(f"error: {args.external_ref} is already on the board", file=sys.stderr)
            return 1
        task = service.add_tracker_item(item, args.column, notes=args.notes)
        if args.json:
            _print_json(task.to_dict())
        else:
            column = service.board.column_of(task.id)
            print(f"Added {task.id}: {task.title} to {column.id if column else '?'}")
        return 0
    if command == "rm":
        service.delete_task(args.task_id)
        print(f"Deleted {args.task_id}")
        return 0
    if command == "move":
        result = service.move_task(
            args.task_id,
            args.column,
            args.index,
            from_column_id=args.from_column,
        )
        if args.json:
            _print_json(result.to_dict())
        else:
            print(f"Moved {result.task_id} to {result.to_column_id} at {result.index}")
            if result.over_limit:
                print(f"warning: column '{result.to_column_id}' is over its WIP limit", file=sys.stderr)
        return 0
    print("Unsupported task command", file=sys.stderr)
    return 2


# ----------------------------------------------------------------------
# column
# ----------------------------------------------------------------------


@_guarded
def _column_cmd(args: argparse.Namespace) -> int:
    service = _board_service()
    command = args.column_command
    if command == "add":
        column = service.add_column(args.title, args.color, args.wip_limit, column_id=args.id)
        print(f"Added column {column.id}")
        return 0
    if command == "edit":
        patch: Dict[str, Any] = {}
        if args.title is not None:
            patch["title"] = args.title
        if args.color is not None:
            patch["color"] = args.color
        if args.clear_wip_limit:
            patch["wip_limit"] = None
        elif args.wip_limit is not None:
            patch["wip_limit"] = args.wip_limit
        if not patch:
            print("column edit: nothing to change", file=sys.stderr)
            return 1
        column = service.update_column(args.column_id, patch)
        print(f"Updated column {column.id}")
        return 0
    if command == "rm":
        removed = service.delete_column(args.column_id, discard_tasks=args.discard_tasks)
        suffix = f" and {len(removed)} task(s)" if removed else ""
        print(f"Deleted column {args.column_id}{suffix}")
        return 0
    if command == "reorder":
        order = service.reorder_columns(args.column_ids)
        print("Column order: " + ", ".join(order))
        return 0
    print("Unsupported column command", file=sys.stderr)
    return 2


# ----------------------------------------------------------------------
# archive
# ----------------------------------------------------------------------


@_guarded
def _archive_cmd(args: argparse.Namespace) -> int:
    service = _board_service()
    command = args.archive_command
    if command == "add":
        task = service.archive_task(args.task_id)
        print(f"Archived {task.id}")
        return 0
    if command == "restore":
        task = service.restore_task(args.task_id)
        print(f"Restored {task.id} to {service.board.restore_column_id()}")
        return 0
    if command == "rm":
        service.delete_archived_task(args.task_id)
        print(f"Deleted archived task {args.task_id}")
        return 0
    if command == "clear":
        count = service.clear_archive()
        print(f"Cleared {count} archived task(s)")
        return 0
    if command == "list":
        tasks = service.get_archive()
        if args.json:
            _print_json([task.to_dict() for task in tasks])
            return 0
        for task in tasks:
            print(_format_task(task))
        if not tasks:
            print("Archive is empty")
        return 0
    if command == "auto":
        archived = service.auto_archive(args.column, args.days)
        print(f"Auto-archived {len(archived)} task(s)")
        return 0
    print("Unsupported archive command", file=sys.stderr)
    return 2


@_guarded
def _clear_tracker_cmd(args: argparse.Namespace) -> int:
    removed = _board_service().clear_tracker_tasks()
    print(f"Removed {len(removed)} tracker task(s)")
    return 0


# ----------------------------------------------------------------------
# bulk
# ----------------------------------------------------------------------


def _bulk_operation(args: argparse.Namespace) -> BulkOperation:
    command = args.bulk_command
    if command == "archive":
        return BulkOperation.archive()
    if command == "delete":
        return BulkOperation.delete()
    if command == "move":
        return BulkOperation.move_to(args.column)
    return BulkOperation.set_priority(args.priority)


def _print_bulk_result(result: BulkResult, *, as_json: bool) -> None:
    if as_json:
        _print_json(result.to_dict())
        return
    print(f"Bulk: succeeded={len(result.succeeded)} failed={len(result.failed)}")
    for failure in result.failed:
        print(f"  ! {failure.id}: {failure.reason}")
    for column_id in result.over_limit:
        print(f"warning: column '{column_id}' is over its WIP limit", file=sys.stderr)


@_guarded
def _bulk_cmd(args: argparse.Namespace) -> int:
    result = _board_service().bulk_apply(args.task_ids, _bulk_operation(args))
    _print_bulk_result(result, as_json=args.json)
    return 0


# ----------------------------------------------------------------------
# sync
# ----------------------------------------------------------------------


def _parse_provider_option_value(raw: str) -> Any:
    value = raw.strip()
    if value == "":
        return ""
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def _assign_provider_option(options: Dict[str, Any], key: str, value: Any) -> None:
    parts = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not parts:
        raise ValueError("provider option key must be non-empty")
    target: Dict[str, Any] = options
    for part in parts[:-1]:
        current = target.get(part)
        if current is None:
            current = {}
            target[part] = current
        elif not isinstance(current, dict):
            raise ValueError(f"provider option '{part}' already set as a non-object value")
        target = current
    target[parts[-1]] = value


def _build_inline_provider_config(provider_type: str, args: argparse.Namespace) -> Dict[str, Any]:
    provider = provider_type.strip()
    if not provider:
        raise ValueError("provider type must not be empty")
    options: Dict[str, Any] = {}
    inline_input = getattr(args, "provider_input", None)
    if inline_input:
        if not inline_input.strip():
            raise ValueError("input path must not be empty")
        key = "path" if provider.lower() == "file" else "snapshot_path"
        _assign_provider_option(options, key, inline_input.strip())
    for raw_option in getattr(args, "provider_option", []) or []:
        if "=" not in raw_option:
            raise ValueError(f"invalid provider option '{raw_option}': expected key=value")
        opt_key, opt_value = raw_option.split("=", 1)
        if not opt_key.strip():
            raise ValueError("provider option key must not be empty")
        _assign_provider_option(options, opt_key, _parse_provider_option_value(opt_value))
    return {"type": provider, "options": options}


def _print_sync_result(result: TrackerSyncResult, *, as_json: bool) -> None:
    if as_json:
        _print_json(result.to_dict())
        return
    summary = result.summary.summary()
    print(
        "Tracker sync: created={created} updated={updated} unchanged={unchanged} "
        "skipped_archived={skipped_archived} skipped_invalid={skipped_invalid}".format(**summary)
    )
    provider_type = (result.provider_config or {}).get("type")
    if provider_type:
        print(f"Provider: {provider_type}")
    for error in result.fetch_errors:
        print(f"warning: fetch failed, nothing synced: {error}", file=sys.stderr)
    for error in result.summary.errors:
        print(f"  ! {error}")
    if result.report_path is not None:
        print(f"Report written to {result.report_path}")


@_guarded
def _sync_cmd(args: argparse.Namespace) -> int:
    provider_arg = getattr(args, "provider", None)
    if provider_arg is None and getattr(args, "provider_option", None):
        print("--provider-option requires --provider", file=sys.stderr)
        return 1
    if provider_arg is None and getattr(args, "provider_input", None):
        print("--input requires --provider", file=sys.stderr)
        return 1

    inline_config: Dict[str, Any] | None = None
    root = SETTINGS.home_dir
    if provider_arg is not None:
        try:
            inline_config = _build_inline_provider_config(provider_arg, args)
        except ValueError as exc:
            print(f"tracker.config_invalid: {exc}", file=sys.stderr)
            return 1
        root = Path.cwd()

    service = TrackerSyncService(_board_service(), root=root)
    output = Path(args.output).expanduser().resolve() if getattr(args, "output", None) else None
    result = service.sync(inline_config, output_path=output)
    _print_sync_result(result, as_json=getattr(args, "json", False))
    return 0


# ----------------------------------------------------------------------
# telemetry
# ----------------------------------------------------------------------


def _tail(events: Iterable[Dict[str, Any]], limit: int) -> List[Dict[str, Any]]:
    window: deque[Dict[str, Any]] = deque(maxlen=limit)
    for evt in events:
        window.append(evt)
    return list(window)


def _telemetry_cmd(args: argparse.Namespace) -> int:
    if args.telemetry_command == "report":
        recent = getattr(args, "recent", 0)
        if recent and recent > 0:
            events = _tail(telemetry_iter(SETTINGS), recent)
        else:
            events = list(telemetry_iter(SETTINGS))
        _print_json(telemetry_summarize(events))
        return 0
    if args.telemetry_command == "clear":
        telemetry_clear(SETTINGS)
        print("Telemetry log cleared")
        return 0
    if args.telemetry_command == "tail":
        for evt in _tail(telemetry_iter(SETTINGS), args.limit):
            print(json.dumps(evt, ensure_ascii=False))
        return 0
    print("Unsupported telemetry command", file=sys.stderr)
    return 2


# ----------------------------------------------------------------------
# parser
# ----------------------------------------------------------------------


def _non_negative_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got '{raw}'") from exc
    if value < 0:
        raise argparse.ArgumentTypeError("value must not be negative")
    return value


def _add_json_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--json", action="store_true", help="Emit JSON output")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskboard",
        description=HELP_OVERVIEW,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"taskboard {__version__}")

    sub = parser.add_subparsers(dest="command", required=True)

    board_cmd = sub.add_parser("board", help="Inspect the board")
    board_sub = board_cmd.add_subparsers(dest="board_command", required=True)
    board_show = board_sub.add_parser("show", help="Print columns and their tasks")
    _add_json_flag(board_show)
    board_show.set_defaults(func=_board_show_cmd)

    task_cmd = sub.add_parser("task", help="Create, edit, delete and move tasks")
    task_sub = task_cmd.add_subparsers(dest="task_command", required=True)

    task_add = task_sub.add_parser("add", help="Create a personal task")
    task_add.add_argument("title")
    task_add.add_argument("--column", help="Target column (default: inbox column)")
    task_add.add_argument("--priority", default="medium", help="low/medium/high/urgent")
    task_add.add_argument("--label", action="append", default=[], help="Label (repeatable)")
    task_add.add_argument("--description")
    task_add.add_argument("--notes")
    task_add.add_argument("--due", help="Due date (YYYY-MM-DD or ISO timestamp)")
    _add_json_flag(task_add)
    task_add.set_defaults(func=_task_cmd)

    task_edit = task_sub.add_parser("edit", help="Edit task fields")
    task_edit.add_argument("task_id")
    task_edit.add_argument("--title")
    task_edit.add_argument("--description")
    task_edit.add_argument("--notes")
    task_edit.add_argument("--priority")
    task_edit.add_argument("--label", action="append", default=[], help="Replace labels (repeatable)")
    task_edit.add_argument("--clear-labels", action="store_true")
    task_edit.add_argument("--due", help="Due date (YYYY-MM-DD or ISO timestamp)")
    task_edit.add_argument("--clear-due", action="store_true")
    _add_json_flag(task_edit)
    task_edit.set_defaults(func=_task_cmd)

    task_track = task_sub.add_parser("track", help="Add one tracker issue or pull request to a column")
    task_track.add_argument("external_ref", help="Tracker reference, e.g. github:acme/app#12")
    task_track.add_argument("title")
    task_track.add_argument("--type", default="issue", help="issue/pr")
    task_track.add_argument("--url")
    task_track.add_argument("--description")
    task_track.add_argument("--label", action="append", default=[], help="Label (repeatable)")
    task_track.add_argument("--review-requested", action="store_true", help="Mark as a pending review (high priority)")
    task_track.add_argument("--column", help="Target column (default: inbox column)")
    task_track.add_argument("--notes")
    _add_json_flag(task_track)
    task_track.set_defaults(func=_task_cmd)

    task_rm = task_sub.add_parser("rm", help="Delete an active task")
    task_rm.add_argument("task_id")
    task_rm.set_defaults(func=_task_cmd)

    task_move = task_sub.add_parser("move", help="Move a task to a column position")
    task_move.add_argument("task_id")
    task_move.add_argument("column", help="Destination column id")
    task_move.add_argument("--index", type=int, help="Destination position (default: end)")
    task_move.add_argument("--from", dest="from_column", help="Expected source column")
    _add_json_flag(task_move)
    task_move.set_defaults(func=_task_cmd)

    column_cmd = sub.add_parser("column", help="Manage columns")
    column_sub = column_cmd.add_subparsers(dest="column_command", required=True)

    column_add = column_sub.add_parser("add", help="Append a column")
    column_add.add_argument("title")
    column_add.add_argument("--color")
    column_add.add_argument("--wip-limit", type=int)
    column_add.add_argument("--id", help="Explicit column id (default: slug of title)")
    column_add.set_defaults(func=_column_cmd)

    column_edit = column_sub.add_parser("edit", help="Edit column title, color or WIP limit")
    column_edit.add_argument("column_id")
    column_edit.add_argument("--title")
    column_edit.add_argument("--color")
    column_edit.add_argument("--wip-limit", type=int)
    column_edit.add_argument("--clear-wip-limit", action="store_true")
    column_edit.set_defaults(func=_column_cmd)

    column_rm = column_sub.add_parser("rm", help="Delete a column")
    column_rm.add_argument("column_id")
    column_rm.add_argument(
        "--discard-tasks",
        action="store_true",
        help="Delete the column's tasks too (they are not archived)",
    )
    column_rm.set_defaults(func=_column_cmd)

    column_reorder = column_sub.add_parser("reorder", help="Set the full column order")
    column_reorder.add_argument("column_ids", nargs="+")
    column_reorder.set_defaults(func=_column_cmd)

    archive_cmd = sub.add_parser("archive", help="Archive and restore tasks")
    archive_sub = archive_cmd.add_subparsers(dest="archive_command", required=True)
    for name, help_text in (
        ("add", "Archive an active task"),
        ("restore", "Restore an archived task"),
        ("rm", "Delete an archived task permanently"),
    ):
        archive_item = archive_sub.add_parser(name, help=help_text)
        archive_item.add_argument("task_id")
        archive_item.set_defaults(func=_archive_cmd)
    archive_clear = archive_sub.add_parser("clear", help="Empty the archive")
    archive_clear.set_defaults(func=_archive_cmd)
    archive_list = archive_sub.add_parser("list", help="List archived tasks, newest first")
    _add_json_flag(archive_list)
    archive_list.set_defaults(func=_archive_cmd)
    archive_auto = archive_sub.add_parser("auto", help="Archive stale tasks from a column")
    archive_auto.add_argument("--column", help="Column to sweep (default: done_column)")
    archive_auto.add_argument("--days", type=_non_negative_int, help="Age threshold in days")
    archive_auto.set_defaults(func=_archive_cmd)

    sync_cmd = sub.add_parser("sync", help="Merge tracker issues and pull requests into the board")
    sync_cmd.add_argument("--provider", help="Inline provider type (file/github)")
    sync_cmd.add_argument(
        "--input",
        dest="provider_input",
        help="Inline provider snapshot/input path (used with --provider)",
    )
    sync_cmd.add_argument(
        "--provider-option",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Set inline provider option (repeatable, dot notation supported)",
    )
    sync_cmd.add_argument("--output", help="Write a JSON sync report to this path")
    _add_json_flag(sync_cmd)
    sync_cmd.set_defaults(func=_sync_cmd)

    bulk_cmd = sub.add_parser("bulk", help="Apply one operation to many tasks")
    bulk_sub = bulk_cmd.add_subparsers(dest="bulk_command", required=True)
    bulk_archive = bulk_sub.add_parser("archive", help="Archive tasks")
    bulk_delete = bulk_sub.add_parser("delete", help="Delete tasks")
    bulk_move = bulk_sub.add_parser("move", help="Append tasks to a column")
    bulk_move.add_argument("column")
    bulk_priority = bulk_sub.add_parser("priority", help="Set priority on tasks")
    bulk_priority.add_argument("priority")
    for bulk_parser in (bulk_archive, bulk_delete, bulk_move, bulk_priority):
        bulk_parser.add_argument("task_ids", nargs="+")
        _add_json_flag(bulk_parser)
        bulk_parser.set_defaults(func=_bulk_cmd)

    query_cmd = sub.add_parser("query", help="Filter active tasks")
    query_cmd.add_argument("text", nargs="?", help="Substring of title, description or label")
    query_cmd.add_argument("--priority")
    query_cmd.add_argument("--origin", help="personal/tracker-issue/tracker-pr")
    query_cmd.add_argument("--label")
    query_cmd.add_argument("--column")
    query_cmd.add_argument("--due", help="overdue/today/soon/normal")
    _add_json_flag(query_cmd)
    query_cmd.set_defaults(func=_query_cmd)

    suggest_cmd = sub.add_parser("suggest", help="Suggest new columns for congested work")
    _add_json_flag(suggest_cmd)
    suggest_cmd.set_defaults(func=_suggest_cmd)

    clear_tracker = sub.add_parser("clear-tracker", help="Delete every active tracker task")
    clear_tracker.set_defaults(func=_clear_tracker_cmd)

    telemetry_cmd = sub.add_parser("telemetry", help="Inspect local telemetry logs")
    telemetry_sub = telemetry_cmd.add_subparsers(dest="telemetry_command", required=True)

    telemetry_report = telemetry_sub.add_parser("report", help="Print aggregated telemetry stats")
    telemetry_report.add_argument(
        "--recent",
        type=int,
        default=0,
        help="Only consider the last N events",
    )
    telemetry_report.set_defaults(func=_telemetry_cmd)

    telemetry_clear_cmd = telemetry_sub.add_parser("clear", help="Remove telemetry log file")
    telemetry_clear_cmd.set_defaults(func=_telemetry_cmd)

    telemetry_tail = telemetry_sub.add_parser("tail", help="Print last N telemetry events")
    telemetry_tail.add_argument("--limit", type=int, default=20)
    telemetry_tail.set_defaults(func=_telemetry_cmd)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
