"""File-based tracker provider adapter."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List

from taskboard.adapters.tracker.utils import read_snapshot
from taskboard.ports.tracker.provider import TrackerProvider, TrackerProviderError


class FileTrackerProvider(TrackerProvider):
    """Reads candidates from ``{"items": [...]}`` or a bare JSON list."""

    def __init__(self, root: Path, options: Dict[str, Any]) -> None:
        raw_path = options.get("path")
        if not raw_path:
            raise TrackerProviderError("file provider requires 'path'")
        self._root = root
        self._path = str(raw_path)

    def fetch(self) -> Iterable[Any]:
        payload = read_snapshot(self._resolve_path(self._path))
        items: List[Any]
        if isinstance(payload, dict):
            data = payload.get("items")
            if not isinstance(data, list):
                raise TrackerProviderError("provider payload missing 'items' list")
            items = data
        elif isinstance(payload, list):
            items = payload
        else:
            raise TrackerProviderError("provider payload must be an object or list")
        return list(items)

    def _resolve_path(self, raw: str) -> str:
        candidate = Path(raw)
        if candidate.is_absolute():
            return str(candidate)
        return str((self._root / candidate).resolve())
