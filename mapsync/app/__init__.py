"""
mapsync App - configuration shared by the CLI and embedding applications.
"""

from mapsync.app.config import (
    BookmarkConfig,
    MapSyncConfig,
    StorageConfig,
    SyncConfig,
    get_config,
    reload_config,
    set_config,
)

__all__ = [
    "BookmarkConfig",
    "MapSyncConfig",
    "StorageConfig",
    "SyncConfig",
    "get_config",
    "reload_config",
    "set_config",
]
