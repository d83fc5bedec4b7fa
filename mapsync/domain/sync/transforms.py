"""
Transform strategies for slave widgets.

A transform adapts the master's value to the slave's view: a rotated or
offset camera, a shifted slide index, a mirrored coordinate. ``apply`` is
pure. It never mutates its argument and always returns a new container
when it changes anything, so transforms can be chained.

Usage:
    t = transform_from_params({"d": "2", "ry": "-90"})
    slave_pose = t.apply(master_pose)
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from numbers import Real
from typing import Any, Literal, Optional

from pydantic import BaseModel

Axis = Literal["x", "y", "z"]
AXIS_INDEX = {"x": 0, "y": 1, "z": 2}

# Elevation stays this far from the poles to keep the orbit well defined
ELEVATION_MARGIN = 0.1


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _replace_items(value: Sequence, updates: dict[int, Any]) -> Sequence:
    items = list(value)
    for idx, item in updates.items():
        items[idx] = item
    return tuple(items) if isinstance(value, tuple) else items


# ============================================================================
# Base
# ============================================================================


class SyncTransform(ABC):
    """Maps a master value to a slave value."""

    @abstractmethod
    def apply(self, value: Any) -> Any:
        ...

    def __call__(self, value: Any) -> Any:
        return self.apply(value)

    def describe(self) -> dict[str, Any]:
        return {"type": type(self).__name__}


class IdentityTransform(SyncTransform):
    def apply(self, value: Any) -> Any:
        return value


# ============================================================================
# 3D orbit camera
# ============================================================================


class Camera3DTransform(SyncTransform):
    """Re-projects an orbit camera ``{px, py, pz, tx, ty, tz, zoom}`` (Z-up).

    Args:
        d: Distance coefficient applied to the eye-target distance (and zoom divisor)
        rx: Elevation offset in degrees; negative mirrors vertical motion
        ry: Azimuth offset in degrees; negative mirrors horizontal motion
        ox: Target offset to the right of the master's view, in meters
        oy: Target offset forward along the master's view, in meters
        oz: Vertical target offset, in meters

    In mirror mode the slave angle is ``-master_angle + offset``, so when the
    master orbits left the slave orbits right: the motion itself is
    reflected, not only the resting pose.
    """

    def __init__(
        self,
        d: float = 1.0,
        rx: float = 0.0,
        ry: float = 0.0,
        ox: float = 0.0,
        oy: float = 0.0,
        oz: float = 0.0,
    ):
        if d <= 0:
            raise ValueError(f"Distance coefficient must be positive, got {d}")
        self.d = d
        self.mirror_x = rx < 0
        self.mirror_y = ry < 0
        self.rx = abs(rx)
        self.ry = abs(ry)
        self.ox = ox
        self.oy = oy
        self.oz = oz

    def apply(self, value: Any) -> Any:
        if isinstance(value, BaseModel):
            return type(value).model_validate(self.apply(value.model_dump()))
        if not isinstance(value, Mapping):
            raise TypeError(f"Camera3DTransform expects a pose mapping, got {type(value).__name__}")

        px, py, pz = value["px"], value["py"], value["pz"]
        tx, ty, tz = value["tx"], value["ty"], value["tz"]

        # Master view frame
        cx, cy, cz = px - tx, py - ty, pz - tz
        horizontal = math.hypot(cx, cy)
        distance = math.sqrt(cx * cx + cy * cy + cz * cz)
        master_azimuth = math.atan2(cy, cx)
        master_elevation = math.atan2(cz, horizontal)

        # Target offsets in the master's view frame
        forward_x = -math.cos(master_azimuth)
        forward_y = -math.sin(master_azimuth)
        right_x, right_y = -forward_y, forward_x

        slave_tx = tx + right_x * self.ox + forward_x * self.oy
        slave_ty = ty + right_y * self.ox + forward_y * self.oy
        slave_tz = tz + self.oz

        ry_rad = math.radians(self.ry)
        rx_rad = math.radians(self.rx)
        azimuth = (-master_azimuth if self.mirror_y else master_azimuth) + ry_rad
        elevation = (-master_elevation if self.mirror_x else master_elevation) + rx_rad

        limit = math.pi / 2 - ELEVATION_MARGIN
        elevation = max(-limit, min(limit, elevation))

        slave_distance = distance * self.d
        cos_elev = math.cos(elevation)

        result = dict(value)
        result.update({
            "px": slave_tx + math.cos(azimuth) * cos_elev * slave_distance,
            "py": slave_ty + math.sin(azimuth) * cos_elev * slave_distance,
            "pz": slave_tz + math.sin(elevation) * slave_distance,
            "tx": slave_tx,
            "ty": slave_ty,
            "tz": slave_tz,
        })
        if value.get("zoom"):
            result["zoom"] = value["zoom"] / self.d
        return result

    def describe(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "d": self.d,
            "rx": -self.rx if self.mirror_x else self.rx,
            "ry": -self.ry if self.mirror_y else self.ry,
            "ox": self.ox,
            "oy": self.oy,
            "oz": self.oz,
        }


# ============================================================================
# 2D / scalar transforms
# ============================================================================


class Offset2DTransform(SyncTransform):
    """Shifts a viewport centre by ``(ox, oy)``.

    Accepts a camera mapping with ``center``, an ``{x, y}`` mapping or an
    ``[x, y, ...]`` sequence. Camera mappings also take optional zoom,
    pitch and bearing offsets; a shifted bearing is wrapped into [0, 360).
    """

    def __init__(
        self,
        ox: float = 0.0,
        oy: float = 0.0,
        zoom_offset: float = 0.0,
        pitch_offset: float = 0.0,
        bearing_offset: float = 0.0,
    ):
        self.ox = ox
        self.oy = oy
        self.zoom_offset = zoom_offset
        self.pitch_offset = pitch_offset
        self.bearing_offset = bearing_offset

    def apply(self, value: Any) -> Any:
        if isinstance(value, BaseModel):
            return type(value).model_validate(self.apply(value.model_dump()))

        if isinstance(value, Mapping):
            result = dict(value)
            if "center" in value:
                center = value["center"]
                result["center"] = _replace_items(
                    center, {0: center[0] + self.ox, 1: center[1] + self.oy}
                )
                for key, delta in (
                    ("zoom", self.zoom_offset),
                    ("pitch", self.pitch_offset),
                    ("bearing", self.bearing_offset),
                ):
                    if delta and key in value:
                        result[key] = value[key] + delta
                if self.bearing_offset and "bearing" in value:
                    result["bearing"] %= 360
                return result
            if "x" in value and "y" in value:
                result["x"] = value["x"] + self.ox
                result["y"] = value["y"] + self.oy
                return result
            raise TypeError("Offset2DTransform mapping needs 'center' or 'x'/'y'")

        if isinstance(value, Sequence) and not isinstance(value, str) and len(value) >= 2:
            return _replace_items(value, {0: value[0] + self.ox, 1: value[1] + self.oy})

        raise TypeError(f"Offset2DTransform cannot shift {type(value).__name__}")

    def describe(self) -> dict[str, Any]:
        return {"type": type(self).__name__, "ox": self.ox, "oy": self.oy}


class ScaleTransform(SyncTransform):
    """``output = input * scale + offset`` for numbers (slide index, zoom...)."""

    def __init__(self, scale: float = 1.0, offset: float = 0.0):
        self.scale = scale
        self.offset = offset

    def apply(self, value: Any) -> Any:
        if not _is_number(value):
            raise TypeError(f"ScaleTransform expects a number, got {type(value).__name__}")
        return value * self.scale + self.offset

    def describe(self) -> dict[str, Any]:
        return {"type": type(self).__name__, "scale": self.scale, "offset": self.offset}


class MirrorTransform(SyncTransform):
    """Reflects a coordinate about ``center``: ``output = 2 * center - input``.

    Numbers are reflected directly. Mappings reflect the ``axis`` key, the
    matching component of ``center``, or ``p{axis}``/``t{axis}`` of an orbit
    pose. Sequences reflect the component at the axis index.
    """

    def __init__(self, axis: Axis = "x", center: float = 0.0):
        if axis not in AXIS_INDEX:
            raise ValueError(f"Unknown axis: {axis}")
        self.axis = axis
        self.center = center

    def _reflect(self, coordinate: float) -> float:
        return 2 * self.center - coordinate

    def apply(self, value: Any) -> Any:
        if _is_number(value):
            return self._reflect(value)

        if isinstance(value, BaseModel):
            return type(value).model_validate(self.apply(value.model_dump()))

        idx = AXIS_INDEX[self.axis]
        if isinstance(value, Mapping):
            result = dict(value)
            if self.axis in value:
                result[self.axis] = self._reflect(value[self.axis])
            elif "center" in value:
                result["center"] = _replace_items(
                    value["center"], {idx: self._reflect(value["center"][idx])}
                )
            elif f"p{self.axis}" in value:
                for key in (f"p{self.axis}", f"t{self.axis}"):
                    if key in value:
                        result[key] = self._reflect(value[key])
            else:
                raise TypeError(f"MirrorTransform found no '{self.axis}' component")
            return result

        if isinstance(value, Sequence) and not isinstance(value, str) and len(value) > idx:
            return _replace_items(value, {idx: self._reflect(value[idx])})

        raise TypeError(f"MirrorTransform cannot reflect {type(value).__name__}")

    def describe(self) -> dict[str, Any]:
        return {"type": type(self).__name__, "axis": self.axis, "center": self.center}


class ComposeTransform(SyncTransform):
    """Applies transforms left to right."""

    def __init__(self, *transforms: SyncTransform):
        self.transforms = list(transforms)

    def apply(self, value: Any) -> Any:
        for transform in self.transforms:
            value = transform.apply(value)
        return value

    def describe(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "transforms": [t.describe() for t in self.transforms],
        }


# ============================================================================
# Factory
# ============================================================================


def _float_param(params: Mapping[str, Any], key: str, default: float) -> float:
    raw = params.get(key)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def transform_from_params(params: Mapping[str, Any]) -> SyncTransform:
    """Build a transform from widget URL-style parameters.

    Recognised keys: ``d, rx, ry, ox, oy, oz`` (orbit camera),
    ``scale, offset`` (numeric), ``mirror`` + ``center`` (reflection).
    Unparseable numbers fall back to their defaults. With no recognised key
    the identity is returned.
    """
    transforms: list[SyncTransform] = []

    if any(key in params for key in ("d", "rx", "ry", "ox", "oy", "oz")):
        d = _float_param(params, "d", 1.0)
        transforms.append(Camera3DTransform(
            d=d if d > 0 else 1.0,
            rx=_float_param(params, "rx", 0.0),
            ry=_float_param(params, "ry", 0.0),
            ox=_float_param(params, "ox", 0.0),
            oy=_float_param(params, "oy", 0.0),
            oz=_float_param(params, "oz", 0.0),
        ))

    if "scale" in params or "offset" in params:
        transforms.append(ScaleTransform(
            scale=_float_param(params, "scale", 1.0),
            offset=_float_param(params, "offset", 0.0),
        ))

    axis: Optional[str] = params.get("mirror")
    if axis in AXIS_INDEX:
        transforms.append(MirrorTransform(axis=axis, center=_float_param(params, "center", 0.0)))

    if not transforms:
        return IdentityTransform()
    if len(transforms) == 1:
        return transforms[0]
    return ComposeTransform(*transforms)
