"""Entities of the task board: tasks, columns and their value objects."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from .errors import ValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


def parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"invalid timestamp: {value!r}")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError(f"invalid timestamp: {value!r}") from exc
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class TaskOrigin(str, Enum):
    """Where a task came from. Closed set; every consumer handles all members."""

    PERSONAL = "personal"
    TRACKER_ISSUE = "tracker-issue"
    TRACKER_PR = "tracker-pr"

    @property
    def is_tracker(self) -> bool:
        return self is not TaskOrigin.PERSONAL

    @classmethod
    def parse(cls, value: Any) -> "TaskOrigin":
        if isinstance(value, cls):
            return value
        raw = str(value or "").strip()
        alias = _ORIGIN_ALIASES.get(raw.lower())
        if alias is not None:
            return alias
        try:
            return cls(raw.lower())
        except ValueError as exc:
            raise ValidationError(f"unknown task origin '{raw}'") from exc


_ORIGIN_ALIASES = {
    "issue": TaskOrigin.TRACKER_ISSUE,
    "github-issue": TaskOrigin.TRACKER_ISSUE,
    "pr": TaskOrigin.TRACKER_PR,
    "pull_request": TaskOrigin.TRACKER_PR,
    "pullrequest": TaskOrigin.TRACKER_PR,
    "github-pr": TaskOrigin.TRACKER_PR,
}


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def parse(cls, value: Any) -> "TaskPriority":
        if isinstance(value, cls):
            return value
        raw = str(value or "").strip().lower()
        try:
            return cls(raw)
        except ValueError as exc:
            raise ValidationError(f"unknown priority '{value}'") from exc


class DueStatus(str, Enum):
    OVERDUE = "overdue"
    TODAY = "today"
    SOON = "soon"
    NORMAL = "normal"

    @classmethod
    def parse(cls, value: Any) -> "DueStatus":
        if isinstance(value, cls):
            return value
        raw = str(value or "").strip().lower()
        try:
            return cls(raw)
        except ValueError as exc:
            raise ValidationError(f"unknown due status '{value}'") from exc


DUE_SOON_DAYS = 3


def due_status(due_at: datetime | None, now: datetime) -> DueStatus | None:
    """Bucket a deadline by whole days left, rounding partial days up."""

    if due_at is None:
        return None
    days = math.ceil((due_at - now).total_seconds() / 86400)
    if days < 0:
        return DueStatus.OVERDUE
    if days == 0:
        return DueStatus.TODAY
    if days <= DUE_SOON_DAYS:
        return DueStatus.SOON
    return DueStatus.NORMAL


def parse_due(value: Any) -> datetime | None:
    """Accept ``None``, a datetime, an ISO date (``2025-06-01``) or timestamp."""

    if value is None or value == "":
        return None
    return parse_datetime(value)


def normalise_labels(labels: Iterable[Any] | None) -> Tuple[str, ...]:
    """Labels behave as a set: trimmed, de-duplicated, stored sorted."""

    if labels is None:
        return ()
    if isinstance(labels, str):
        labels = [labels]
    cleaned = {str(label).strip() for label in labels if str(label).strip()}
    return tuple(sorted(cleaned))


def clean_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("task title must be a non-empty string")
    return title.strip()


@dataclass(frozen=True)
class ExternalRef:
    """Stable reference to an item in the external tracker."""

    key: str
    url: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.key, str) or not self.key.strip():
            raise ValidationError("external reference key must be a non-empty string")
        if self.url is not None and not isinstance(self.url, str):
            raise ValidationError(f"external reference {self.key}: url must be a string")

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "url": self.url}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExternalRef":
        return cls(key=str(data.get("key", "")), url=data.get("url") or None)


@dataclass
class Task:
    id: str
    title: str
    origin: TaskOrigin
    created_at: datetime
    updated_at: datetime
    priority: TaskPriority = TaskPriority.MEDIUM
    description: str | None = None
    notes: str | None = None
    labels: Tuple[str, ...] = ()
    external_ref: ExternalRef | None = None
    archived_at: datetime | None = None
    due_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.origin.is_tracker and self.external_ref is None:
            raise ValidationError(f"task {self.id}: tracker tasks require an external reference")
        if not self.origin.is_tracker and self.external_ref is not None:
            raise ValidationError(f"task {self.id}: personal tasks cannot carry an external reference")

    @property
    def url(self) -> str | None:
        return self.external_ref.url if self.external_ref else None

    def due_status(self, now: datetime) -> DueStatus | None:
        return due_status(self.due_at, now)

    def clone(self) -> "Task":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "origin": self.origin.value,
            "priority": self.priority.value,
            "description": self.description,
            "notes": self.notes,
            "labels": list(self.labels),
            "external_ref": self.external_ref.to_dict() if self.external_ref else None,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if self.due_at is not None:
            payload["due_at"] = isoformat(self.due_at)
        if self.archived_at is not None:
            payload["archived_at"] = isoformat(self.archived_at)
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Task":
        raw_ref = data.get("external_ref")
        archived_raw = data.get("archived_at")
        return cls(
            id=str(data["id"]),
            title=clean_title(data.get("title")),
            origin=TaskOrigin.parse(data.get("origin", "personal")),
            priority=TaskPriority.parse(data.get("priority", "medium")),
            description=data.get("description"),
            notes=data.get("notes"),
            labels=normalise_labels(data.get("labels")),
            external_ref=ExternalRef.from_dict(raw_ref) if isinstance(raw_ref, Mapping) else None,
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            archived_at=parse_datetime(archived_raw) if archived_raw else None,
            due_at=parse_due(data.get("due_at")),
        )


@dataclass
class Column:
    id: str
    title: str
    color: str
    wip_limit: int | None = None
    task_ids: List[str] = field(default_factory=list)

    @property
    def over_limit(self) -> bool:
        return self.wip_limit is not None and len(self.task_ids) > self.wip_limit

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "color": self.color,
            "wip_limit": self.wip_limit,
            "task_ids": list(self.task_ids),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Column":
        limit = data.get("wip_limit")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", data["id"])),
            color=str(data.get("color", "#64748b")),
            wip_limit=int(limit) if limit is not None else None,
            task_ids=[str(task_id) for task_id in data.get("task_ids", [])],
        )


def validate_wip_limit(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError("wip_limit must be a positive integer")
    return value


__all__ = [
    "Column",
    "DUE_SOON_DAYS",
    "DueStatus",
    "ExternalRef",
    "Task",
    "TaskOrigin",
    "TaskPriority",
    "clean_title",
    "due_status",
    "isoformat",
    "normalise_labels",
    "parse_datetime",
    "parse_due",
    "utc_now",
    "validate_wip_limit",
]
