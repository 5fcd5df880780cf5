"""Runtime settings and board configuration."""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml

from taskboard import __version__
from taskboard.resources import load_default_config

HOME_ENV = "TASKBOARD_HOME"


class ConfigError(ValueError):
    """Raised when the board configuration cannot be parsed."""


@dataclass(frozen=True)
class RuntimeSettings:
    home_dir: Path
    state_dir: Path
    log_dir: Path
    cli_version: str = __version__

    @property
    def config_path(self) -> Path:
        return self.home_dir / "config.yaml"

    @property
    def board_path(self) -> Path:
        return self.state_dir / "board.json"


@dataclass(frozen=True)
class BoardConfig:
    columns: List[Dict[str, Any]] = field(default_factory=list)
    inbox_column: str | None = None
    restore_column: str | None = None
    done_column: str | None = None
    max_columns: int = 15
    soft_ceiling: int = 10
    congestion_threshold: float = 0.8
    max_suggestions: int = 3
    auto_archive_days: int = 30
    tracker: Dict[str, Any] | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BoardConfig":
        columns = data.get("columns") or []
        if not isinstance(columns, list):
            raise ConfigError("columns must be a list")
        parsed_columns: List[Dict[str, Any]] = []
        for entry in columns:
            if not isinstance(entry, dict) or not entry.get("id"):
                raise ConfigError("each column needs at least an 'id'")
            parsed_columns.append(
                {
                    "id": str(entry["id"]),
                    "title": str(entry.get("title") or entry["id"]),
                    "color": str(entry.get("color") or "#64748b"),
                    "wip_limit": entry.get("wip_limit"),
                }
            )
        tracker = data.get("tracker")
        if tracker is not None and not isinstance(tracker, dict):
            raise ConfigError("tracker must be a mapping with 'type' and 'options'")
        try:
            return cls(
                columns=parsed_columns,
                inbox_column=data.get("inbox_column"),
                restore_column=data.get("restore_column"),
                done_column=data.get("done_column"),
                max_columns=int(data.get("max_columns", 15)),
                soft_ceiling=int(data.get("soft_ceiling", 10)),
                congestion_threshold=float(data.get("congestion_threshold", 0.8)),
                max_suggestions=int(data.get("max_suggestions", 3)),
                auto_archive_days=int(data.get("auto_archive_days", 30)),
                tracker=dict(tracker) if tracker else None,
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid board configuration: {exc}") from exc


def _default_home_dir() -> Path:
    override = os.environ.get(HOME_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".taskboard"


def load_settings() -> RuntimeSettings:
    base = _default_home_dir()
    return RuntimeSettings(
        home_dir=base,
        state_dir=base / "state",
        log_dir=base / "logs",
    )


def load_board_config(config_path: Path | None) -> BoardConfig:
    """Merge the user's YAML config over the packaged defaults."""

    merged = copy.deepcopy(load_default_config())
    if config_path is not None and config_path.exists():
        try:
            user = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"config {config_path} is not valid YAML: {exc}") from exc
        if not isinstance(user, dict):
            raise ConfigError(f"config {config_path} must contain a mapping")
        merged.update(user)
    return BoardConfig.from_mapping(merged)


SETTINGS = load_settings()
