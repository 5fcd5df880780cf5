"""Idempotent merge of tracker items into the board."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from .aggregate import Board
from .errors import BoardError, ValidationError
from .models import ExternalRef, TaskOrigin, normalise_labels
from .tasks import DESCRIPTION_LIMIT, TaskStore


@dataclass(frozen=True)
class SyncCandidate:
    """One item delivered by the tracker collaborator."""

    external_ref: str
    title: str
    type: TaskOrigin
    labels: Tuple[str, ...] = ()
    url: str | None = None
    description: str | None = None
    review_requested: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.external_ref, str) or not self.external_ref.strip():
            raise ValidationError("candidate external reference missing")
        if not isinstance(self.title, str) or not self.title.strip():
            raise ValidationError(f"candidate {self.external_ref}: title missing")
        if not self.type.is_tracker:
            raise ValidationError(f"candidate {self.external_ref}: type must be a tracker issue or pull request")
        for name in ("url", "description"):
            if getattr(self, name) is not None and not isinstance(getattr(self, name), str):
                raise ValidationError(f"candidate {self.external_ref}: {name} must be a string")
        if not isinstance(self.labels, tuple) or not all(isinstance(label, str) for label in self.labels):
            raise ValidationError(f"candidate {self.external_ref}: label names must be strings")

    @property
    def origin(self) -> TaskOrigin:
        return self.type

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SyncCandidate":
        if not isinstance(data, Mapping):
            raise ValidationError("candidate must be an object")
        ref = data.get("external_ref", data.get("externalRef"))
        if isinstance(ref, Mapping):
            ref = ref.get("key")
        if ref is not None and not isinstance(ref, (str, int)):
            raise ValidationError("candidate external reference must be a string")
        key = str(ref).strip() if ref is not None else ""
        description = data.get("description")
        if description is None or description == "":
            description = data.get("body")
        return cls(
            external_ref=key,
            title=data.get("title") if isinstance(data.get("title"), str) else "",
            type=TaskOrigin.parse(data.get("type")),
            labels=_candidate_labels(key, data.get("labels")),
            url=_optional_str(key, "url", data.get("url")),
            description=_optional_str(key, "description", description),
            review_requested=bool(data.get("review_requested", data.get("reviewRequested", False))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "external_ref": self.external_ref,
            "title": self.title,
            "type": self.type.value,
            "labels": list(self.labels),
            "url": self.url,
            "description": self.description,
            "review_requested": self.review_requested,
        }


def _optional_str(key: str, name: str, value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"candidate {key or '<unknown>'}: {name} must be a string")
    return value or None


def _candidate_labels(key: str, value: Any) -> Tuple[str, ...]:
    """Accept a label name, or a list of names or {"name": ...} objects."""

    if value is None:
        return ()
    if isinstance(value, str):
        return normalise_labels(value)
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"candidate {key or '<unknown>'}: labels must be a list")
    names: List[str] = []
    for label in value:
        if isinstance(label, Mapping):
            label = label.get("name")
        if label is None:
            continue
        if not isinstance(label, str):
            raise ValidationError(f"candidate {key or '<unknown>'}: label names must be strings")
        names.append(label)
    return normalise_labels(names)


@dataclass
class SyncSummary:
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped_archived: int = 0
    skipped_invalid: int = 0
    created_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def summary(self) -> Dict[str, int]:
        return {
            "total": self.created + self.updated + self.unchanged + self.skipped_archived + self.skipped_invalid,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped_archived": self.skipped_archived,
            "skipped_invalid": self.skipped_invalid,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary(),
            "created_ids": list(self.created_ids),
            "errors": list(self.errors),
        }


class SyncEngine:
    """Upserts tracker candidates without clobbering user-owned state.

    Priority, notes, description and column placement belong to the user
    once a task exists locally; only title, labels and the link follow the
    tracker. Archived items are never resurrected.
    """

    def __init__(self, board: Board, store: TaskStore | None = None) -> None:
        self._board = board
        self._store = store or TaskStore(board)

    def run(self, candidates: Iterable[SyncCandidate | Mapping[str, Any]]) -> SyncSummary:
        result = SyncSummary()
        with self._board.lock:
            for raw in candidates:
                try:
                    candidate = raw if isinstance(raw, SyncCandidate) else SyncCandidate.from_mapping(raw)
                except BoardError as exc:
                    result.skipped_invalid += 1
                    result.errors.append(str(exc))
                    continue
                try:
                    self._merge(candidate, result)
                except BoardError as exc:
                    result.skipped_invalid += 1
                    result.errors.append(f"{candidate.external_ref}: {exc}")
        return result

    def _merge(self, candidate: SyncCandidate, result: SyncSummary) -> None:
        existing = self._store.find_by_external_ref(candidate.external_ref)
        if existing is None:
            task = self._store.add_tracker_item(candidate)
            result.created += 1
            result.created_ids.append(task.id)
            return
        if existing.archived_at is not None:
            result.skipped_archived += 1
            return

        title = candidate.title.strip()
        labels = normalise_labels(candidate.labels)
        ref = ExternalRef(candidate.external_ref, candidate.url)
        if existing.title == title and existing.labels == labels and existing.external_ref == ref:
            result.unchanged += 1
            return
        existing.title = title
        existing.labels = labels
        existing.external_ref = ref
        existing.updated_at = self._board.now()
        result.updated += 1


__all__ = ["DESCRIPTION_LIMIT", "SyncCandidate", "SyncEngine", "SyncSummary"]
