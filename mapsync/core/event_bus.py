from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeAlias

from mapsync.core.errors import TransportError

EventPayload: TypeAlias = Dict[str, Any]
EventHandler: TypeAlias = Callable[[EventPayload], Awaitable[None]]


class BroadcastBus:
    """In-process broadcast channel hub.

    Every subscriber of a channel receives its own JSON copy of each
    payload, the publisher included; receivers filter out their own
    messages by id.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[EventHandler]] = defaultdict(list)
        # Lazy initialization to avoid event loop binding issues
        self._lock: Optional[asyncio.Lock] = None
        self._loop_id: Optional[int] = None
        self._closed = False
        self._logger = logging.getLogger(__name__)

    def _ensure_lock(self) -> asyncio.Lock:
        """Get or create lock for current event loop."""
        try:
            loop = asyncio.get_running_loop()
            loop_id = id(loop)

            # A lock from another loop cannot be awaited here
            if self._loop_id is not None and self._loop_id != loop_id:
                self._lock = None

            if self._lock is None:
                self._lock = asyncio.Lock()
                self._loop_id = loop_id
        except RuntimeError:
            if self._lock is None:
                self._lock = asyncio.Lock()

        return self._lock

    @property
    def closed(self) -> bool:
        return self._closed

    async def subscribe(self, channel: str, handler: EventHandler) -> None:
        """Register an async handler for a channel."""
        if self._closed:
            raise TransportError("Broadcast bus is closed")
        async with self._ensure_lock():
            if handler not in self._subscribers[channel]:
                self._subscribers[channel].append(handler)

    async def unsubscribe(self, channel: str, handler: EventHandler) -> None:
        """Remove a handler from a channel."""
        async with self._ensure_lock():
            if handler in self._subscribers.get(channel, []):
                self._subscribers[channel].remove(handler)

    async def publish(self, channel: str, payload: EventPayload) -> None:
        """Deliver a payload to every subscriber of ``channel``.

        Raises:
            TransportError: If the bus is closed or the payload is not JSON-serializable
        """
        if self._closed:
            raise TransportError("Broadcast bus is closed")
        try:
            wire = json.dumps(payload)
        except (TypeError, ValueError) as exc:
            raise TransportError(f"Payload is not JSON-serializable: {exc}") from exc

        async with self._ensure_lock():
            handlers = list(self._subscribers.get(channel, []))

        if not handlers:
            self._logger.debug(f"No subscribers on channel '{channel}'")
            return

        self._logger.debug(f"Broadcasting on '{channel}' to {len(handlers)} handler(s)")
        for handler in handlers:
            asyncio.create_task(self._safe_dispatch(channel, handler, json.loads(wire)))

    async def _safe_dispatch(
        self,
        channel: str,
        handler: EventHandler,
        payload: EventPayload,
    ) -> None:
        """Dispatch wrapper to keep one handler failure from stopping the bus."""
        handler_name = getattr(handler, "__name__", str(handler))
        try:
            await handler(payload)
        except Exception as exc:
            self._logger.exception(
                f"Broadcast handler error in '{handler_name}' on channel '{channel}'",
                exc_info=exc,
            )

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, []))

    def clear(self) -> None:
        """Remove all subscriptions."""
        self._subscribers.clear()

    def close(self) -> None:
        """Drop subscriptions and refuse further traffic."""
        self._closed = True
        self._subscribers.clear()
