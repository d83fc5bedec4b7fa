"""Time gates and debouncing for sync traffic."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class Throttle:
    """Per-key time gate.

    A call passes when at least ``interval_ms`` elapsed since the last call
    that passed for the same key. Calls in between are dropped, not queued.
    """

    def __init__(self, interval_ms: float = 33.0, clock: Optional[Clock] = None):
        self.interval_ms = interval_ms
        self._clock: Clock = clock or time.monotonic
        self._last_pass: Dict[str, float] = {}

    def allow(self, key: str = "", interval_ms: Optional[float] = None) -> bool:
        """Return True and record the pass time if ``key`` is outside its window."""
        window = self.interval_ms if interval_ms is None else interval_ms
        now_ms = self._clock() * 1000.0
        last = self._last_pass.get(key)
        if last is not None and now_ms - last < window:
            return False
        self._last_pass[key] = now_ms
        return True

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._last_pass.clear()
        else:
            self._last_pass.pop(key, None)


class Debouncer:
    """Runs an async callback once, ``delay_ms`` after the last trigger.

    The callback is scheduled with ``loop.call_later``; each new trigger
    cancels the pending handle first.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        delay_ms: float = 500.0,
    ):
        self._callback = callback
        self.delay_ms = delay_ms
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        """Restart the quiet period. Requires a running event loop."""
        loop = asyncio.get_running_loop()
        self.cancel()
        self._handle = loop.call_later(self.delay_ms / 1000.0, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self._task = asyncio.ensure_future(self._run())

    async def _run(self) -> None:
        try:
            await self._callback()
        except Exception as exc:
            # Callbacks report their own failures; this only keeps the loop clean
            logger.exception("Debounced callback failed", exc_info=exc)

    def cancel(self) -> None:
        """Drop the pending trigger, if any. A callback already running is left alone."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def flush(self) -> None:
        """Run the callback now if a trigger is pending."""
        if self._handle is not None:
            self.cancel()
            await self._run()
