"""Headless map camera for the CLI and tests."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class SimulatedMapHost:
    """Keeps a camera pose and answers ``fly_to``/``jump_to`` like a map would.

    By default the move completes at once and ``moveend`` fires inside the
    call. With ``realtime=True`` ``moveend`` fires after the requested
    ``duration`` on the running event loop (``jump_to`` still completes at
    once).
    """

    def __init__(
        self,
        center: Tuple[float, float] = (0.0, 0.0),
        zoom: float = 1.0,
        pitch: float = 0.0,
        bearing: float = 0.0,
        realtime: bool = False,
    ):
        self.center = center
        self.zoom = zoom
        self.pitch = pitch
        self.bearing = bearing
        self.realtime = realtime
        self.commands: List[Tuple[str, Dict[str, Any]]] = []
        self._once: Dict[str, List[Callable[[], None]]] = defaultdict(list)

    def get_center(self) -> Tuple[float, float]:
        return self.center

    def get_zoom(self) -> float:
        return self.zoom

    def get_pitch(self) -> float:
        return self.pitch

    def get_bearing(self) -> float:
        return self.bearing

    def once(self, event: str, callback: Callable[[], None]) -> None:
        self._once[event].append(callback)

    def fire(self, event: str) -> None:
        """Run and drop the ``once`` listeners of ``event``."""
        listeners, self._once[event] = self._once[event], []
        for listener in listeners:
            listener()

    def _move(self, command: str, options: Dict[str, Any]) -> None:
        self.commands.append((command, options))
        if "center" in options:
            lng, lat = options["center"]
            self.center = (float(lng), float(lat))
        for key in ("zoom", "pitch", "bearing"):
            if key in options:
                setattr(self, key, float(options[key]))
        logger.debug(f"{command} -> center={self.center} zoom={self.zoom}")

    def fly_to(self, **options: Any) -> None:
        self._move("fly_to", options)
        duration: Optional[float] = options.get("duration")
        if self.realtime and duration:
            asyncio.get_running_loop().call_later(duration / 1000.0, self.fire, "moveend")
        else:
            self.fire("moveend")

    def jump_to(self, **options: Any) -> None:
        self._move("jump_to", options)
        self.fire("moveend")
