"""Ports for issue tracker integrations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable, Mapping

from taskboard.domain.board import SyncCandidate


class TrackerProvider(ABC):
    """Abstract provider that returns candidate items from an external tracker."""

    @abstractmethod
    def fetch(self) -> Iterable[SyncCandidate | Mapping[str, Any]]:
        """Retrieve candidates for synchronisation.

        Raw mappings are validated by the sync engine, which counts malformed
        entries instead of failing the batch.
        """


class TrackerProviderError(RuntimeError):
    """Raised when a provider fails to supply a valid payload."""
