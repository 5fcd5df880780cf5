"""Application service that pulls tracker items onto the board."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from taskboard.adapters.tracker.providers import build_provider_from_config
from taskboard.app.board.service import BoardService
from taskboard.domain.board import SyncSummary
from taskboard.domain.board.models import isoformat, utc_now
from taskboard.ports.tracker.provider import TrackerProviderError
from taskboard.utils.telemetry import record_structured_event


class TrackerSyncError(RuntimeError):
    """Raised when the provider configuration itself is unusable."""


@dataclass(frozen=True)
class TrackerSyncResult:
    summary: SyncSummary
    provider_config: Dict[str, Any]
    fetched: int
    fetch_errors: List[str] = field(default_factory=list)
    report_path: Path | None = None

    @property
    def fetch_failed(self) -> bool:
        return bool(self.fetch_errors)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "provider": self.provider_config,
            "fetched": self.fetched,
            "fetch_errors": list(self.fetch_errors),
        }
        payload.update(self.summary.to_dict())
        if self.report_path is not None:
            payload["report_path"] = str(self.report_path)
        return payload


class TrackerSyncService:
    def __init__(self, board_service: BoardService, *, root: Path | None = None) -> None:
        self._board_service = board_service
        self._settings = board_service.settings
        self._root = root or Path.cwd()

    def sync(
        self,
        provider_config: Dict[str, Any] | None = None,
        *,
        output_path: Path | None = None,
    ) -> TrackerSyncResult:
        """Fetch candidates and merge them; a failed fetch syncs an empty batch."""

        config = self._resolve_provider_config(provider_config)
        try:
            build_result = build_provider_from_config(self._root, config)
        except TrackerProviderError as exc:
            raise TrackerSyncError(str(exc)) from exc

        fetch_errors: List[str] = []
        start = time.perf_counter()
        try:
            candidates = list(build_result.provider.fetch())
        except TrackerProviderError as exc:
            candidates = []
            fetch_errors.append(str(exc))
            record_structured_event(
                self._settings,
                "tracker.fetch",
                component="sync",
                status="failed",
                payload={"provider": build_result.report_config},
                level="warn",
                duration_ms=(time.perf_counter() - start) * 1000,
                error=exc,
            )
        else:
            record_structured_event(
                self._settings,
                "tracker.fetch",
                component="sync",
                status="success",
                payload={"provider": build_result.report_config, "count": len(candidates)},
                duration_ms=(time.perf_counter() - start) * 1000,
            )

        summary = self._board_service.run_sync(candidates)
        result = TrackerSyncResult(
            summary=summary,
            provider_config=build_result.report_config,
            fetched=len(candidates),
            fetch_errors=fetch_errors,
            report_path=output_path,
        )
        if output_path is not None:
            self._write_report(result, output_path)
        return result

    def _resolve_provider_config(self, provider_config: Dict[str, Any] | None) -> Dict[str, Any]:
        config = provider_config if provider_config is not None else self._board_service.config.tracker
        if config is None:
            raise TrackerSyncError("tracker.config_not_found: no tracker configured")
        if not isinstance(config, dict):
            raise TrackerSyncError("tracker.config_invalid: root must be object")
        data: Dict[str, Any] = dict(config)
        provider_type = data.get("type")
        if not isinstance(provider_type, str) or not provider_type.strip():
            raise TrackerSyncError("tracker.config_invalid: missing type")
        options = data.get("options")
        if options is None:
            options = {}
        if not isinstance(options, dict):
            raise TrackerSyncError("tracker.config_invalid: options must be object")
        data["type"] = provider_type.strip()
        data["options"] = dict(options)
        return data

    def _write_report(self, result: TrackerSyncResult, output_path: Path) -> None:
        payload = {"generated_at": isoformat(utc_now())}
        payload.update(result.to_dict())
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")


__all__ = ["TrackerSyncError", "TrackerSyncResult", "TrackerSyncService"]
