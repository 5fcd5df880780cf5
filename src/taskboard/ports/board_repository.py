"""Port definition for persisting the board snapshot."""

from __future__ import annotations

from abc import ABC, abstractmethod

from taskboard.domain.board import Board, BoardOptions


class BoardStoreError(RuntimeError):
    """Raised when the board snapshot cannot be read or written."""


class BoardRepository(ABC):
    """Abstraction over durable storage for the whole board."""

    @abstractmethod
    def load(self, *, options: BoardOptions | None = None) -> Board | None:
        """Return the stored board, or ``None`` when nothing was saved yet."""

    @abstractmethod
    def save(self, board: Board) -> None:
        """Persist the full board state."""


__all__ = ["BoardRepository", "BoardStoreError"]
