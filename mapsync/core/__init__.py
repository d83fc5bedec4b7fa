"""mapsync core: broadcast bus, message definitions, protocols, errors and models."""

from mapsync.core.event_bus import BroadcastBus, EventHandler, EventPayload
from mapsync.core.errors import MapSyncError

__all__ = ["BroadcastBus", "EventHandler", "EventPayload", "MapSyncError"]
