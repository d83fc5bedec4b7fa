"""
Key-value stores for bookmark persistence.

Both stores keep the browser ``localStorage`` contract: string keys, string
values, ``None`` for a missing key.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Optional


# ============================================================================
# In-memory store
# ============================================================================


class MemoryStore:
    """Process-local store; contents vanish with the object."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


# ============================================================================
# JSON file store
# ============================================================================


class JsonFileStore:
    """All keys in one JSON object on disk.

    Usage:
        store = JsonFileStore("~/.mapsync/storage.json")
        store.set_item("smart-map-3d-bookmarks", blob)

    The file is rewritten on every ``set_item``/``remove_item``. A file that
    is not a JSON object raises ``ValueError`` on first access.
    """

    def __init__(self, path: str | Path):
        """Initialize the store.

        Args:
            path: Location of the JSON file; parent directories are created on write
        """
        self.path = Path(path).expanduser()
        self._cache: Optional[Dict[str, str]] = None

    def _load(self) -> Dict[str, str]:
        if self._cache is None:
            if self.path.exists():
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    raise ValueError(f"Store file is not a JSON object: {self.path}")
                self._cache = {str(k): str(v) for k, v in data.items()}
            else:
                self._cache = {}
        return self._cache

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._load(), f, indent=2, ensure_ascii=False)
        tmp_path.replace(self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        self._load()[key] = value
        self._write()

    def remove_item(self, key: str) -> None:
        if self._load().pop(key, None) is not None:
            self._write()

    def keys(self) -> list[str]:
        return list(self._load())
