"""Key-value stores."""

from mapsync.infrastructure.storage.kv_store import JsonFileStore, MemoryStore

__all__ = ["JsonFileStore", "MemoryStore"]
