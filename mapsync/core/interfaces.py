"""
Collaborator protocols.

The sync and bookmark managers never talk to a concrete spreadsheet, map
library or browser storage; they go through these structural types.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol, Sequence, runtime_checkable

from .event_bus import EventHandler, EventPayload

# Column-major table: {"id": [1, 2], "Name": ["a", "b"]}
ColumnarTable = dict[str, list[Any]]
UserAction = Sequence[Any]


@runtime_checkable
class TableAdapter(Protocol):
    """Host document tables (Grist-style user actions)."""

    async def list_tables(self) -> list[str]: ...

    async def fetch_table(self, name: str) -> ColumnarTable: ...

    async def apply_user_actions(self, actions: Sequence[UserAction]) -> dict[str, Any]: ...


@runtime_checkable
class BroadcastTransport(Protocol):
    """Channel-scoped publish/subscribe of JSON payloads."""

    async def subscribe(self, channel: str, handler: EventHandler) -> None: ...

    async def unsubscribe(self, channel: str, handler: EventHandler) -> None: ...

    async def publish(self, channel: str, payload: EventPayload) -> None: ...


@runtime_checkable
class MapHost(Protocol):
    """Camera of the map the bookmarks drive."""

    def get_center(self) -> tuple[float, float]: ...

    def get_zoom(self) -> float: ...

    def get_pitch(self) -> float: ...

    def get_bearing(self) -> float: ...

    def fly_to(self, **options: Any) -> None: ...

    def jump_to(self, **options: Any) -> None: ...

    def once(self, event: str, callback: Callable[[], None]) -> None: ...


@runtime_checkable
class KeyValueStore(Protocol):
    """localStorage-like string store."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...
