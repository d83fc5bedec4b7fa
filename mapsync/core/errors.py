"""Exception hierarchy for mapsync."""

from __future__ import annotations


class MapSyncError(Exception):
    """Base class for every error raised by mapsync."""


# ============================================================================
# Sync
# ============================================================================


class TransportError(MapSyncError):
    """The broadcast transport could not be opened or used."""


class PersistenceError(MapSyncError):
    """A table read or write failed."""


class StaleSnapshotError(PersistenceError):
    """The stored snapshot was written by someone else since we last saw it."""

    def __init__(self, channel: str, stored_version: int, known_version: int):
        self.channel = channel
        self.stored_version = stored_version
        self.known_version = known_version
        super().__init__(
            f"Snapshot for channel '{channel}' is at version {stored_version}, "
            f"expected {known_version}"
        )


class UnknownPropertyError(MapSyncError, KeyError):
    """No sync property is registered under that name."""


# ============================================================================
# Bookmarks
# ============================================================================


class BookmarkNotFoundError(MapSyncError, LookupError):
    """No bookmark with the requested id (or no map bound to navigate with)."""


class BookmarkManagerNotInitializedError(MapSyncError, RuntimeError):
    """The manager has no map host yet; call ``init()`` first."""


class InvalidBookmarkDataError(MapSyncError, ValueError):
    """Imported bookmark data is not valid JSON or does not match the model."""
