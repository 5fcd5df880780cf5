"""Shared helpers for tracker provider adapters."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from taskboard.ports.tracker.provider import TrackerProviderError


def read_snapshot(path: str) -> Any:
    """Load a JSON snapshot exported from the tracker."""

    file_path = Path(path)
    if not file_path.exists():
        raise TrackerProviderError(f"snapshot not found at {file_path}")
    try:
        return json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise TrackerProviderError("snapshot is not valid JSON") from exc


__all__ = ["read_snapshot"]
