"""Bookmarks: capture and replay, tours, groups and generation."""

from mapsync.domain.bookmarks.manager import (
    BookmarkManager,
    BookmarkManagerConfig,
    NavigationCallbacks,
)
from mapsync.domain.bookmarks.tour import TourState

__all__ = [
    "BookmarkManager",
    "BookmarkManagerConfig",
    "NavigationCallbacks",
    "TourState",
]
