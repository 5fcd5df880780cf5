"""Column suggestions derived from the shape of the current workload."""

from __future__ import annotations

import re
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Dict, List, Set, Tuple

from .aggregate import Board
from .models import Task

DEFAULT_SOFT_CEILING = 10
DEFAULT_CONGESTION_THRESHOLD = 0.8
DEFAULT_MAX_SUGGESTIONS = 3

_TOKEN_RE = re.compile(r"[a-z0-9]+")

# (aliases, proposed column title, color); the first alias is the canonical key
_LEXICON_ENTRIES: Tuple[Tuple[Tuple[str, ...], str, str], ...] = (
    (("review", "reviews", "cr"), "Code Review", "#8b5cf6"),
    (("test", "tests", "testing", "qa"), "Testing", "#0ea5e9"),
    (("deploy", "deployment", "release", "ship"), "Deploy", "#10b981"),
    (("bug", "bugs", "fix", "regression"), "Bugs", "#ef4444"),
    (("urgent", "hotfix", "critical", "emergency"), "Emergency", "#dc2626"),
    (("blocked", "blocker", "waiting"), "Blocked", "#f97316"),
    (("docs", "doc", "documentation"), "Docs", "#64748b"),
)

LEXICON: Dict[str, Tuple[str, str, str]] = {
    alias: (aliases[0], title, color)
    for aliases, title, color in _LEXICON_ENTRIES
    for alias in aliases
}


@dataclass(frozen=True)
class ColumnSuggestion:
    title: str
    color: str
    confidence: float
    reason: str
    token: str
    support: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "title": self.title,
            "color": self.color,
            "confidence": self.confidence,
            "reason": self.reason,
            "token": self.token,
            "support": self.support,
        }


@dataclass(frozen=True)
class ColumnOccupancy:
    column_id: str
    count: int
    ratio: float
    congested: bool


def tokenize(task: Task) -> Set[str]:
    text = " ".join((task.title, *task.labels)).lower()
    return set(_TOKEN_RE.findall(text))


def _similarity(left: str, right: str) -> float:
    return SequenceMatcher(None, left.lower(), right.lower()).ratio()


class SuggestionEngine:
    """Read-only heuristic; never mutates the board."""

    def __init__(
        self,
        board: Board,
        *,
        soft_ceiling: int = DEFAULT_SOFT_CEILING,
        congestion_threshold: float = DEFAULT_CONGESTION_THRESHOLD,
        max_suggestions: int = DEFAULT_MAX_SUGGESTIONS,
    ) -> None:
        self._board = board
        self._soft_ceiling = max(1, soft_ceiling)
        self._threshold = congestion_threshold
        self._max = max_suggestions

    def occupancy(self) -> List[ColumnOccupancy]:
        report: List[ColumnOccupancy] = []
        with self._board.lock:
            for column in self._board.iter_columns():
                count = len(column.task_ids)
                if count == 0:
                    continue
                ceiling = column.wip_limit or self._soft_ceiling
                ratio = count / ceiling
                report.append(ColumnOccupancy(column.id, count, ratio, ratio > self._threshold))
        return report

    def suggest(self) -> List[ColumnSuggestion]:
        board = self._board
        with board.lock:
            congested = [entry for entry in self.occupancy() if entry.congested]
            tasks = [board.tasks[task_id] for entry in congested for task_id in board.columns[entry.column_id].task_ids]
            existing_titles = [column.title for column in board.iter_columns()]

        if not tasks:
            return []

        support: Dict[str, int] = {}
        for task in tasks:
            keys = {LEXICON[token][0] for token in tokenize(task) if token in LEXICON}
            for key in keys:
                support[key] = support.get(key, 0) + 1

        suggestions: List[ColumnSuggestion] = []
        column_names = ", ".join(entry.column_id for entry in congested)
        for key, count in support.items():
            _, title, color = LEXICON[key]
            share = count / len(tasks)
            strength = 0.5 * share + 0.5 * min(count * 0.2, 1.0)
            distinctness = 1.0 - max((_similarity(title, existing) for existing in existing_titles), default=0.0)
            confidence = round(max(0.0, min(1.0, strength * distinctness)), 3)
            if confidence <= 0.0:
                continue
            suggestions.append(
                ColumnSuggestion(
                    title=title,
                    color=color,
                    confidence=confidence,
                    reason=f"{count} of {len(tasks)} tasks in congested columns ({column_names}) mention '{key}'",
                    token=key,
                    support=count,
                )
            )
        suggestions.sort(key=lambda item: (-item.confidence, item.title))
        return suggestions[: self._max]


__all__ = [
    "ColumnOccupancy",
    "ColumnSuggestion",
    "LEXICON",
    "SuggestionEngine",
    "tokenize",
]
