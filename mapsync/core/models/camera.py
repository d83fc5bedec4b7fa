"""
Camera, ambiance and live application state models.

These are the values a widget exposes to sync properties and bookmark
capture: a 2D map camera (Mapbox style), a 3D orbit camera (point-cloud
viewer style), scene ambiance and the live layer list.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from .base import CamelModel


# ============================================================================
# Cameras
# ============================================================================


class CameraState(CamelModel):
    """2D map camera pose."""

    center: tuple[float, float] = Field(description="[lng, lat]")
    zoom: float = Field(ge=0, description="Map zoom level")
    pitch: float = Field(default=0.0, description="Tilt in degrees")
    bearing: float = Field(default=0.0, description="Rotation in degrees")


class Camera3DState(CamelModel):
    """Orbit camera: eye position, look-at target and orthographic zoom."""

    px: float
    py: float
    pz: float
    tx: float
    ty: float
    tz: float
    zoom: float = 1.0


class AmbianceState(CamelModel):
    """Lighting / simulated time of a 3D scene."""

    time_of_day: float = Field(default=720, description="Minutes since midnight")
    date: str = Field(default="", description="ISO date (YYYY-MM-DD)")
    shadows_enabled: Optional[bool] = None
    use_realistic_sun: Optional[bool] = None


class SelectionState(CamelModel):
    layer_id: Optional[str] = None
    feature_indices: list[int] = Field(default_factory=list)


# ============================================================================
# Live application state
# ============================================================================


class Location(CamelModel):
    lng: float
    lat: float


class MapSettings(CamelModel):
    time_of_day: float = 720
    date: str = ""
    shadows_enabled: bool = True
    use_realistic_sun: bool = True


class LayerInfo(CamelModel):
    """A layer as the widget currently shows it."""

    id: str
    visible: bool = True
    opacity: Optional[float] = None


class AppState(CamelModel):
    """Snapshot of the widget state that bookmarks capture from."""

    location: Location
    settings: MapSettings = Field(default_factory=MapSettings)
    layers: list[LayerInfo] = Field(default_factory=list)

    def ambiance(self) -> AmbianceState:
        return AmbianceState(
            time_of_day=self.settings.time_of_day,
            date=self.settings.date,
            shadows_enabled=self.settings.shadows_enabled,
            use_realistic_sun=self.settings.use_realistic_sun,
        )
