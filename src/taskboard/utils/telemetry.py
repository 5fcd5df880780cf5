"""Board event log: one JSON line per operation (opt-out via TASKBOARD_TELEMETRY).

Every record names the component that ran the operation (``board`` for
mutations, loads and syncs, ``sync`` for tracker fetches), whether it
succeeded, how long it took and, for failures, the error type and message.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator

import jsonschema
from jsonschema.exceptions import best_match

from taskboard.domain.board.models import isoformat, utc_now
from taskboard.resources import load_schema
from taskboard.settings import RuntimeSettings

_DISABLE_VALUES = {"0", "false", "no", "off"}

_VALIDATOR: jsonschema.Draft202012Validator | None = None


class TelemetryError(ValueError):
    """Raised when an event does not fit the telemetry record schema."""


@dataclass(frozen=True)
class BoardEvent:
    event: str
    component: str
    status: str
    level: str = "info"
    payload: Dict[str, Any] = field(default_factory=dict)
    duration_ms: float | None = None
    error: BaseException | None = None

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "ts": isoformat(utc_now()),
            "event": self.event,
            "component": self.component,
            "status": self.status,
            "level": self.level,
            "payload": dict(self.payload),
        }
        if self.duration_ms is not None:
            record["durationMs"] = round(self.duration_ms, 3)
        if self.error is not None:
            record["error"] = {"type": type(self.error).__name__, "message": str(self.error)}
        return record


def telemetry_enabled() -> bool:
    return os.getenv("TASKBOARD_TELEMETRY", "1").lower() not in _DISABLE_VALUES


def telemetry_path(settings: RuntimeSettings) -> Path:
    return settings.log_dir / "telemetry.jsonl"


def record_structured_event(
    settings: RuntimeSettings,
    event: str,
    *,
    component: str,
    status: str,
    payload: Dict[str, Any] | None = None,
    level: str = "info",
    duration_ms: float | None = None,
    error: BaseException | None = None,
) -> None:
    if not telemetry_enabled():
        return
    record = BoardEvent(
        event=event,
        component=component,
        status=status,
        level=level,
        payload=payload or {},
        duration_ms=duration_ms,
        error=error,
    ).to_record()
    problem = best_match(_validator().iter_errors(record))
    if problem is not None:
        location = "/".join(str(part) for part in problem.path) or "<record>"
        raise TelemetryError(f"telemetry event {event!r} invalid at {location}: {problem.message}")
    log_path = telemetry_path(settings)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a", encoding="utf-8") as fh:
        fh.write(json.dumps(record, ensure_ascii=False) + "\n")


def iter_events(settings: RuntimeSettings, *, component: str | None = None) -> Iterator[Dict[str, Any]]:
    log_path = telemetry_path(settings)
    if not log_path.exists():
        return
    with log_path.open("r", encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                continue
            if component is None or record.get("component") == component:
                yield record


def summarize(events: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Counts per event, status, level and component, plus failures and timings per event."""

    total = 0
    counters: Dict[str, Dict[str, int]] = {"by_event": {}, "by_status": {}, "by_level": {}, "by_component": {}}
    failures: Dict[str, int] = {}
    timings: Dict[str, list[float]] = {}
    for evt in events:
        total += 1
        name = evt.get("event", "unknown")
        for key, value in (
            ("by_event", name),
            ("by_status", evt.get("status", "unknown")),
            ("by_level", evt.get("level", "info")),
            ("by_component", evt.get("component", "unknown")),
        ):
            counters[key][value] = counters[key].get(value, 0) + 1
        if evt.get("status") == "failed":
            failures[name] = failures.get(name, 0) + 1
        duration = evt.get("durationMs")
        if isinstance(duration, (int, float)):
            timings.setdefault(name, []).append(float(duration))
    duration_ms = {
        name: {"count": len(values), "mean": round(sum(values) / len(values), 3), "max": max(values)}
        for name, values in timings.items()
    }
    return {"total": total, **counters, "failures": failures, "duration_ms": duration_ms}


def clear(settings: RuntimeSettings) -> None:
    telemetry_path(settings).unlink(missing_ok=True)


def _validator() -> jsonschema.Draft202012Validator:
    global _VALIDATOR
    if _VALIDATOR is None:
        _VALIDATOR = jsonschema.Draft202012Validator(load_schema("telemetry.schema.json"))
    return _VALIDATOR
