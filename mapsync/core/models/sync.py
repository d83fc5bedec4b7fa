"""Sync status and persisted snapshot models."""

from __future__ import annotations

import json
from typing import Any, Optional

from pydantic import Field

from .base import CamelModel

# Column names of the sync table, as the browser widgets create it
SYNC_COLUMNS: list[dict[str, str]] = [
    {"id": "Channel", "type": "Text"},
    {"id": "State", "type": "Text"},
    {"id": "MasterId", "type": "Text"},
    {"id": "UpdatedAt", "type": "Numeric"},
    {"id": "Version", "type": "Int"},
]


class SyncStatus(CamelModel):
    """Derived view of a SyncManager; never persisted."""

    id: str
    channel: str
    is_master: bool
    is_connected: bool
    enabled: bool = True
    properties: list[str] = Field(default_factory=list)
    last_sync: Optional[float] = None
    grist_ready: bool = False
    peer_count: int = 0


class SyncSnapshot(CamelModel):
    """One row of the sync table: serialized persistent properties for a channel."""

    channel: str
    state: dict[str, str] = Field(
        default_factory=dict,
        description="property name -> serialized value",
    )
    master_id: str = ""
    updated_at: float = 0.0
    version: int = 0
    row_id: Optional[int] = None

    def to_record(self) -> dict[str, Any]:
        return {
            "Channel": self.channel,
            "State": json.dumps(self.state),
            "MasterId": self.master_id,
            "UpdatedAt": self.updated_at,
            "Version": self.version,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "SyncSnapshot":
        """Build from a row dict; a missing or unreadable State column yields an empty state."""
        raw_state = record.get("State") or "{}"
        try:
            state = json.loads(raw_state)
        except (TypeError, ValueError):
            state = {}
        if not isinstance(state, dict):
            state = {}
        return cls(
            channel=record.get("Channel") or "",
            state={str(k): v for k, v in state.items() if isinstance(v, str)},
            master_id=record.get("MasterId") or "",
            updated_at=float(record.get("UpdatedAt") or 0),
            version=int(record.get("Version") or 0),
            row_id=record.get("id"),
        )
