"""
Sync properties and their registry.

A property is a named getter/setter pair on the widget's live state plus
the knobs the SyncManager needs: codec, transform, throttle window and
whether it belongs in the persisted snapshot.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

from mapsync.core.errors import UnknownPropertyError
from mapsync.domain.sync.transforms import IdentityTransform, SyncTransform

logger = logging.getLogger(__name__)

Getter = Callable[[], Any]
Setter = Callable[[Any], None]

# ~30 fps for continuous camera motion
CAMERA_THROTTLE_MS = 33


def json_serialize(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


def json_deserialize(raw: str) -> Any:
    return json.loads(raw)


@dataclass
class SyncProperty:
    """One synchronised value.

    The default codec is JSON, so ``deserialize(serialize(x)) == x`` holds
    for dicts, lists, strings, numbers, booleans and None. Tuples come back
    as lists.
    """

    name: str
    get: Getter
    set: Setter
    transform: SyncTransform = field(default_factory=IdentityTransform)
    serialize: Callable[[Any], str] = json_serialize
    deserialize: Callable[[str], Any] = json_deserialize
    throttle_ms: Optional[float] = None
    persistent: bool = False

    def read(self) -> str:
        """Current value, serialized."""
        return self.serialize(self.get())

    def receive(self, raw: str) -> Any:
        """Decode a master value, adapt it for this widget and apply it."""
        value = self.transform.apply(self.deserialize(raw))
        self.set(value)
        return value


class PropertyRegistry:
    """Name -> SyncProperty, in registration order."""

    def __init__(self) -> None:
        self._properties: Dict[str, SyncProperty] = {}

    def register(self, prop: SyncProperty) -> SyncProperty:
        """Add a property. An existing one with the same name is replaced (and a warning logged)."""
        if prop.name in self._properties:
            logger.warning(f"Sync property '{prop.name}' re-registered; previous definition replaced")
        self._properties[prop.name] = prop
        return prop

    def unregister(self, name: str) -> Optional[SyncProperty]:
        return self._properties.pop(name, None)

    def get(self, name: str) -> SyncProperty:
        try:
            return self._properties[name]
        except KeyError:
            raise UnknownPropertyError(name) from None

    def find(self, name: str) -> Optional[SyncProperty]:
        return self._properties.get(name)

    def names(self) -> List[str]:
        return list(self._properties)

    def persistent(self) -> List[SyncProperty]:
        return [p for p in self._properties.values() if p.persistent]

    def clear(self) -> None:
        self._properties.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._properties

    def __iter__(self) -> Iterator[SyncProperty]:
        return iter(list(self._properties.values()))

    def __len__(self) -> int:
        return len(self._properties)


# ============================================================================
# Built-in property definitions
# ============================================================================


def camera_property(
    get: Getter,
    set: Setter,
    transform: Optional[SyncTransform] = None,
    name: str = "camera",
) -> SyncProperty:
    """Camera pose: throttled to ~30 fps and persisted."""
    return SyncProperty(
        name=name,
        get=get,
        set=set,
        transform=transform or IdentityTransform(),
        throttle_ms=CAMERA_THROTTLE_MS,
        persistent=True,
    )


def selection_property(get: Getter, set: Setter) -> SyncProperty:
    """Selected features; sent on every change, not persisted."""
    return SyncProperty(name="selection", get=get, set=set, throttle_ms=0)


def url_property(get: Getter, set: Setter) -> SyncProperty:
    """Loaded dataset URL."""
    return SyncProperty(name="url", get=get, set=set, throttle_ms=0, persistent=True)


def display_property(get: Getter, set: Setter) -> SyncProperty:
    """Display / colouring mode (e.g. ``classification``)."""
    return SyncProperty(name="display", get=get, set=set, throttle_ms=0, persistent=True)


def ambiance_property(get: Getter, set: Setter) -> SyncProperty:
    """Lighting: ``{timeOfDay, date, shadowsEnabled, useRealisticSun}``.

    Time-of-day sliders move continuously, so this shares the camera's
    throttle window. Persisted so a slave opened later gets the same light.
    """
    return SyncProperty(name="ambiance", get=get, set=set, throttle_ms=CAMERA_THROTTLE_MS, persistent=True)


def layers_property(get: Getter, set: Setter) -> SyncProperty:
    """Layer visibility as a list of ``{layerId, visible}`` entries; sent on every toggle."""
    return SyncProperty(name="layers", get=get, set=set, throttle_ms=0, persistent=True)


PROPERTY_FACTORIES: Dict[str, Callable[[Getter, Setter], SyncProperty]] = {
    "camera": camera_property,
    "selection": selection_property,
    "layers": layers_property,
    "ambiance": ambiance_property,
    "url": url_property,
    "display": display_property,
}
