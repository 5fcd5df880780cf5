"""Error taxonomy for board operations."""

from __future__ import annotations


class BoardError(Exception):
    """Base class for every failure raised by the board domain."""


class ValidationError(BoardError, ValueError):
    """Raised when input is malformed (empty title, unknown priority, ...)."""


class NotFoundError(BoardError, LookupError):
    """Raised when an operation references an id absent from the expected set."""


class InvalidArgumentError(BoardError, ValueError):
    """Raised when parameters are structurally invalid."""


class LimitExceededError(BoardError):
    """Raised when the column-count ceiling would be exceeded."""


__all__ = [
    "BoardError",
    "InvalidArgumentError",
    "LimitExceededError",
    "NotFoundError",
    "ValidationError",
]
