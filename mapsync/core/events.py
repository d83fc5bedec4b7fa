"""Canonical broadcast message definitions for mapsync."""

from __future__ import annotations

import time
from typing import Any, Dict, Literal

from .event_bus import EventPayload

# Message types
MSG_SYNC = "sync"
MSG_JOIN = "join"
MSG_LEAVE = "leave"
MSG_PING = "ping"
MSG_PONG = "pong"

PRESENCE_TYPES = frozenset({MSG_JOIN, MSG_LEAVE, MSG_PING, MSG_PONG})

Role = Literal["master", "slave"]


def channel_topic(channel: str) -> str:
    """Bus topic for a sync channel (same prefix the browser widgets use)."""
    return f"t3d-{channel}"


def now_ms() -> int:
    return int(time.time() * 1000)


def create_sync_message(
    channel: str,
    master_id: str,
    property_name: str,
    value: Any,
) -> EventPayload:
    """Create a property update sent by the master."""
    return {
        "type": MSG_SYNC,
        "property": property_name,
        "value": value,
        "masterId": master_id,
        "channel": channel,
        "ts": now_ms(),
    }


def create_presence_message(
    message_type: str,
    channel: str,
    sender_id: str,
    role: Role | None = None,
) -> EventPayload:
    """Create a join/leave/ping/pong message."""
    if message_type not in PRESENCE_TYPES:
        raise ValueError(f"Not a presence message type: {message_type}")
    payload: Dict[str, Any] = {
        "type": message_type,
        "senderId": sender_id,
        "channel": channel,
        "ts": now_ms(),
    }
    if role is not None:
        payload["role"] = role
    return payload


def message_sender(payload: EventPayload) -> str | None:
    """Widget id that produced a message, whatever its type."""
    return payload.get("masterId") or payload.get("senderId")
