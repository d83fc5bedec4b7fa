"""mapsync - bookmarks, tours and master/slave property sync for map widgets."""

import logging

from .core.event_bus import BroadcastBus
from .domain.bookmarks import BookmarkManager
from .domain.sync import SyncManager

# Silent unless the host (or the CLI) configures logging
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = ["BookmarkManager", "BroadcastBus", "SyncManager"]
