"""Board domain exports."""

from .aggregate import Board, BoardOptions, check_invariants, repair_board
from .archive import ArchiveManager
from .bulk import BulkAction, BulkFailure, BulkOperation, BulkOperationProcessor, BulkResult
from .columns import ColumnLoad, ColumnManager, MoveResult
from .errors import (
    BoardError,
    InvalidArgumentError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from .filters import FilterIndex, TaskQuery, TaskView
from .models import Column, DueStatus, ExternalRef, Task, TaskOrigin, TaskPriority
from .suggestions import ColumnOccupancy, ColumnSuggestion, SuggestionEngine
from .sync import SyncCandidate, SyncEngine, SyncSummary
from .tasks import TaskStore

__all__ = [
    "ArchiveManager",
    "Board",
    "BoardError",
    "BoardOptions",
    "BulkAction",
    "BulkFailure",
    "BulkOperation",
    "BulkOperationProcessor",
    "BulkResult",
    "Column",
    "ColumnLoad",
    "ColumnManager",
    "ColumnOccupancy",
    "ColumnSuggestion",
    "DueStatus",
    "ExternalRef",
    "FilterIndex",
    "InvalidArgumentError",
    "LimitExceededError",
    "MoveResult",
    "NotFoundError",
    "SuggestionEngine",
    "SyncCandidate",
    "SyncEngine",
    "SyncSummary",
    "Task",
    "TaskOrigin",
    "TaskPriority",
    "TaskQuery",
    "TaskStore",
    "TaskView",
    "ValidationError",
    "check_invariants",
    "repair_board",
]
