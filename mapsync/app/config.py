"""
mapsync Configuration.

Central configuration: sync timings, bookmark defaults and storage
locations, loaded from a JSON file and overridden by ``MAPSYNC_*``
environment variables (a ``.env`` file is honoured).
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Mapping

from dotenv import load_dotenv

from mapsync.core.models import BookmarkTransition
from mapsync.domain.bookmarks.manager import (
    DEFAULT_MAX_BOOKMARKS,
    DEFAULT_STORAGE_KEY,
    BookmarkManagerConfig,
)
from mapsync.domain.sync.manager import (
    DEFAULT_HEARTBEAT_S,
    DEFAULT_PERSIST_DEBOUNCE_MS,
    DEFAULT_STALE_PEER_S,
    DEFAULT_SYNC_TABLE,
    DEFAULT_THROTTLE_MS,
)

CONFIG_FILENAME = "mapsync_config.json"


# ============================================================================
# Default Paths
# ============================================================================


def get_default_data_dir() -> Path:
    """Get the default data directory for mapsync."""
    if env_path := os.environ.get("MAPSYNC_DATA_DIR"):
        return Path(env_path)
    return Path.home() / ".mapsync"


# ============================================================================
# Configuration Classes
# ============================================================================


@dataclass
class SyncConfig:
    """Configuration for the sync manager."""

    channel: str = "default"
    table_name: str = DEFAULT_SYNC_TABLE
    throttle_ms: float = DEFAULT_THROTTLE_MS
    persist_debounce_ms: float = DEFAULT_PERSIST_DEBOUNCE_MS
    heartbeat_interval_s: float = DEFAULT_HEARTBEAT_S
    stale_peer_after_s: float = DEFAULT_STALE_PEER_S

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncConfig":
        return cls(**{k: v for k, v in data.items() if hasattr(cls, k)})

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel,
            "table_name": self.table_name,
            "throttle_ms": self.throttle_ms,
            "persist_debounce_ms": self.persist_debounce_ms,
            "heartbeat_interval_s": self.heartbeat_interval_s,
            "stale_peer_after_s": self.stale_peer_after_s,
        }

    def manager_options(self) -> dict[str, Any]:
        """Keyword arguments for ``SyncManager``."""
        return {
            "table_name": self.table_name,
            "throttle_ms": self.throttle_ms,
            "persist_debounce_ms": self.persist_debounce_ms,
            "heartbeat_interval_s": self.heartbeat_interval_s,
            "stale_peer_after_s": self.stale_peer_after_s,
        }


@dataclass
class BookmarkConfig:
    """Configuration for the bookmark manager."""

    max_bookmarks: int = DEFAULT_MAX_BOOKMARKS
    auto_save: bool = True
    storage_key: str = DEFAULT_STORAGE_KEY
    transition_type: Literal["instant", "fly", "ease", "linear"] = "fly"
    transition_duration_ms: int = 2000
    transition_easing: str | None = "ease-in-out"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BookmarkConfig":
        return cls(**{k: v for k, v in data.items() if hasattr(cls, k)})

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_bookmarks": self.max_bookmarks,
            "auto_save": self.auto_save,
            "storage_key": self.storage_key,
            "transition_type": self.transition_type,
            "transition_duration_ms": self.transition_duration_ms,
            "transition_easing": self.transition_easing,
        }

    def to_manager_config(self) -> BookmarkManagerConfig:
        return BookmarkManagerConfig(
            max_bookmarks=self.max_bookmarks,
            default_transition=BookmarkTransition(
                type=self.transition_type,
                duration_ms=self.transition_duration_ms,
                easing=self.transition_easing,
            ),
            auto_save=self.auto_save,
            storage_key=self.storage_key,
        )


@dataclass
class StorageConfig:
    """Where bookmarks and sync snapshots live. Relative paths are under the data dir."""

    bookmark_file: str = "bookmarks.json"
    sync_database: str = "sync.duckdb"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StorageConfig":
        return cls(**{k: v for k, v in data.items() if hasattr(cls, k)})

    def to_dict(self) -> dict[str, Any]:
        return {
            "bookmark_file": self.bookmark_file,
            "sync_database": self.sync_database,
        }


@dataclass
class MapSyncConfig:
    """Main configuration for mapsync.

    Aggregates all sub-configurations and provides load/save functionality.
    """

    data_dir: Path = field(default_factory=get_default_data_dir)

    sync: SyncConfig = field(default_factory=SyncConfig)
    bookmarks: BookmarkConfig = field(default_factory=BookmarkConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"

    def __post_init__(self):
        if isinstance(self.data_dir, str):
            self.data_dir = Path(self.data_dir)

    # ========== Resolved paths ==========

    def _resolve(self, path: str) -> Path:
        candidate = Path(path).expanduser()
        return candidate if candidate.is_absolute() else self.data_dir / candidate

    @property
    def bookmark_file(self) -> Path:
        return self._resolve(self.storage.bookmark_file)

    @property
    def sync_database(self) -> Path:
        return self._resolve(self.storage.sync_database)

    # ========== Load / save ==========

    @classmethod
    def load(cls, config_path: str | Path | None = None, use_env: bool = True) -> "MapSyncConfig":
        """Load configuration from a JSON file, then apply environment overrides.

        Args:
            config_path: Path to config file. If None, uses the default location.
            use_env: Read ``.env`` and ``MAPSYNC_*`` variables

        Returns:
            MapSyncConfig instance
        """
        if use_env:
            load_dotenv()

        if config_path is None:
            config_path = get_default_data_dir() / CONFIG_FILENAME
        config_path = Path(config_path)

        if config_path.exists():
            with open(config_path, "r", encoding="utf-8") as f:
                config = cls.from_dict(json.load(f))
        else:
            config = cls()

        if use_env:
            config.apply_env(os.environ)
        return config

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MapSyncConfig":
        """Create config from dictionary."""
        return cls(
            data_dir=Path(data.get("data_dir", get_default_data_dir())),
            sync=SyncConfig.from_dict(data.get("sync", {})),
            bookmarks=BookmarkConfig.from_dict(data.get("bookmarks", {})),
            storage=StorageConfig.from_dict(data.get("storage", {})),
            log_level=data.get("log_level", "WARNING"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "data_dir": str(self.data_dir),
            "sync": self.sync.to_dict(),
            "bookmarks": self.bookmarks.to_dict(),
            "storage": self.storage.to_dict(),
            "log_level": self.log_level,
        }

    def apply_env(self, environ: Mapping[str, str]) -> None:
        """Override fields from ``MAPSYNC_*`` variables.

        Raises:
            ValueError: If a numeric variable does not parse
        """
        if value := environ.get("MAPSYNC_DATA_DIR"):
            self.data_dir = Path(value)
        if value := environ.get("MAPSYNC_LOG_LEVEL"):
            self.log_level = value.upper()
        if value := environ.get("MAPSYNC_CHANNEL"):
            self.sync.channel = value
        if value := environ.get("MAPSYNC_SYNC_TABLE"):
            self.sync.table_name = value
        if value := environ.get("MAPSYNC_THROTTLE_MS"):
            self.sync.throttle_ms = float(value)
        if value := environ.get("MAPSYNC_PERSIST_DEBOUNCE_MS"):
            self.sync.persist_debounce_ms = float(value)
        if value := environ.get("MAPSYNC_STORAGE_KEY"):
            self.bookmarks.storage_key = value
        if value := environ.get("MAPSYNC_MAX_BOOKMARKS"):
            self.bookmarks.max_bookmarks = int(value)
        if value := environ.get("MAPSYNC_BOOKMARK_FILE"):
            self.storage.bookmark_file = value
        if value := environ.get("MAPSYNC_SYNC_DATABASE"):
            self.storage.sync_database = value

    def save(self, config_path: str | Path | None = None) -> Path:
        """Save configuration to a JSON file.

        Args:
            config_path: Path to save to. If None, uses the default location.

        Returns:
            Path to saved file
        """
        if config_path is None:
            config_path = self.data_dir / CONFIG_FILENAME

        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

        return config_path

    def ensure_directories(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)


# ============================================================================
# Global Config Instance
# ============================================================================


_global_config: MapSyncConfig | None = None


def get_config() -> MapSyncConfig:
    """Get the global configuration instance.

    Returns:
        MapSyncConfig singleton
    """
    global _global_config
    if _global_config is None:
        _global_config = MapSyncConfig.load()
    return _global_config


def set_config(config: MapSyncConfig) -> None:
    global _global_config
    _global_config = config


def reload_config(config_path: str | Path | None = None) -> MapSyncConfig:
    """Reload configuration from disk (and the environment)."""
    global _global_config
    _global_config = MapSyncConfig.load(config_path)
    return _global_config
