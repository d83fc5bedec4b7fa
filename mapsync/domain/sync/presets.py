"""
Ready-made widget roles.

A preset bundles the role, the set of properties a widget takes part in
and the camera transform a slave applies. ``SyncPresets.offset_view(...)``
etc. return plain values; ``SyncPreset.create_manager`` turns one into a
configured SyncManager.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, FrozenSet, Optional

from mapsync.core.errors import UnknownPropertyError
from mapsync.domain.sync.manager import SyncManager
from mapsync.domain.sync.properties import PROPERTY_FACTORIES, Getter, Setter, SyncProperty, camera_property
from mapsync.domain.sync.transforms import (
    IdentityTransform,
    Offset2DTransform,
    SyncTransform,
)

ALL_PROPERTIES: FrozenSet[str] = frozenset({"camera", "selection", "layers", "ambiance"})


@dataclass(frozen=True)
class SyncPreset:
    name: str
    is_master: bool
    properties: FrozenSet[str] = ALL_PROPERTIES
    transform: SyncTransform = field(default_factory=IdentityTransform)

    def syncs(self, property_name: str) -> bool:
        return property_name in self.properties

    def create_manager(self, channel: str, **kwargs: Any) -> SyncManager:
        """SyncManager on ``channel`` with this preset's role."""
        return SyncManager(channel, is_master=self.is_master, **kwargs)

    def camera_property(self, get: Getter, set: Setter) -> Optional[SyncProperty]:
        """Camera property carrying the preset's transform, or None if the camera is not synced."""
        if not self.syncs("camera"):
            return None
        return camera_property(get, set, transform=self.transform)

    def property_for(self, name: str, get: Getter, set: Setter) -> Optional[SyncProperty]:
        """Built-in property ``name`` as this preset syncs it, or None if the preset skips it.

        Only the camera carries the preset's transform.
        """
        if name == "camera":
            return self.camera_property(get, set)
        if not self.syncs(name):
            return None
        factory = PROPERTY_FACTORIES.get(name)
        if factory is None:
            raise UnknownPropertyError(name)
        return factory(get, set)


class SyncPresets:
    """Factories for the usual multi-screen layouts."""

    @staticmethod
    def master() -> SyncPreset:
        """Drives every other widget on the channel."""
        return SyncPreset(name="master", is_master=True)

    @staticmethod
    def slave() -> SyncPreset:
        """Follows the master one to one."""
        return SyncPreset(name="slave", is_master=False)

    @staticmethod
    def offset_view(offset_lng: float, offset_lat: float) -> SyncPreset:
        """Follows the master, looking at another neighbourhood."""
        return SyncPreset(
            name="offset",
            is_master=False,
            properties=frozenset({"camera"}),
            transform=Offset2DTransform(ox=offset_lng, oy=offset_lat),
        )

    @staticmethod
    def satellite_view(zoom_out: float = 3) -> SyncPreset:
        """Zoomed-out overview of the master's view."""
        return SyncPreset(
            name="satellite",
            is_master=False,
            properties=frozenset({"camera"}),
            transform=Offset2DTransform(zoom_offset=-zoom_out),
        )

    @staticmethod
    def mirror_view() -> SyncPreset:
        """Same place seen from the opposite side (bearing + 180)."""
        return SyncPreset(
            name="mirror",
            is_master=False,
            properties=frozenset({"camera"}),
            transform=Offset2DTransform(bearing_offset=180),
        )

    @staticmethod
    def selection_only() -> SyncPreset:
        """Independent camera, shared selection."""
        return SyncPreset(name="selection-only", is_master=False, properties=frozenset({"selection"}))
