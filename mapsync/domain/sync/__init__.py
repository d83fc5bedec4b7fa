"""Master/slave property sync: transforms, property registry, manager and presets."""

from mapsync.domain.sync.manager import SyncManager
from mapsync.domain.sync.presets import SyncPreset, SyncPresets
from mapsync.domain.sync.properties import (
    PropertyRegistry,
    SyncProperty,
    ambiance_property,
    camera_property,
    display_property,
    layers_property,
    selection_property,
    url_property,
)
from mapsync.domain.sync.transforms import (
    Camera3DTransform,
    ComposeTransform,
    IdentityTransform,
    MirrorTransform,
    Offset2DTransform,
    ScaleTransform,
    SyncTransform,
    transform_from_params,
)

__all__ = [
    "SyncManager",
    "SyncPreset",
    "SyncPresets",
    "PropertyRegistry",
    "SyncProperty",
    "ambiance_property",
    "camera_property",
    "display_property",
    "layers_property",
    "selection_property",
    "url_property",
    "Camera3DTransform",
    "ComposeTransform",
    "IdentityTransform",
    "MirrorTransform",
    "Offset2DTransform",
    "ScaleTransform",
    "SyncTransform",
    "transform_from_params",
]
