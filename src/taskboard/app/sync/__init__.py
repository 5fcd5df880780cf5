"""Tracker synchronisation package."""

from .service import TrackerSyncError, TrackerSyncResult, TrackerSyncService  # noqa: F401

__all__ = ["TrackerSyncError", "TrackerSyncResult", "TrackerSyncService"]
