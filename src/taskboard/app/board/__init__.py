"""Board application service package."""

from .service import BoardService, BoardServiceError  # noqa: F401

__all__ = ["BoardService", "BoardServiceError"]
