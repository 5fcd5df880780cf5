"""Filesystem-backed storage for the board snapshot."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict

import jsonschema

from taskboard.domain.board import Board, BoardError, BoardOptions
from taskboard.domain.board.aggregate import Clock
from taskboard.ports.board_repository import BoardRepository, BoardStoreError
from taskboard.resources import load_schema


class FileBoardRepository(BoardRepository):
    """Stores the board as one JSON document, replaced atomically on save."""

    def __init__(self, path: Path, *, clock: Clock | None = None) -> None:
        self._path = path
        self._clock = clock
        self._validator = jsonschema.Draft202012Validator(load_schema("board.schema.json"))

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, options: BoardOptions | None = None) -> Board | None:
        if not self._path.exists():
            return None
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise BoardStoreError(f"board snapshot invalid JSON: {exc}") from exc
        except OSError as exc:
            raise BoardStoreError(f"board snapshot unreadable at {self._path}: {exc}") from exc

        self._validate(raw)
        try:
            return Board.from_dict(raw, options=options, clock=self._clock)
        except BoardError as exc:
            raise BoardStoreError(f"board snapshot rejected: {exc}") from exc

    def save(self, board: Board) -> None:
        payload = board.to_dict()
        # Never write a snapshot that the next load would reject.
        self._validate(payload)
        self._write_atomic(payload)

    def _validate(self, payload: Any) -> None:
        errors = sorted(self._validator.iter_errors(payload), key=lambda err: list(err.path))
        if errors:
            first = errors[0]
            location = "/".join(str(part) for part in first.path) or "<root>"
            raise BoardStoreError(f"board snapshot invalid at {location}: {first.message}")

    def _write_atomic(self, payload: Dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(payload, ensure_ascii=False, indent=2) + "\n"
        fd, tmp_name = tempfile.mkstemp(prefix=".board-", suffix=".json", dir=str(self._path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise BoardStoreError(f"failed to write board snapshot to {self._path}: {exc}") from exc


__all__ = ["FileBoardRepository"]
