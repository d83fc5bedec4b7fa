"""
Bookmark models.

A SmartBookmark is a named, replayable snapshot of camera, ambiance, layer
and control state. Generated bookmarks record where they came from through
a discriminated ``generated_from`` union; each variant knows the
``control_values`` payload it implies.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import Field

from .base import CamelModel
from .camera import AmbianceState, CameraState

TransitionType = Literal["instant", "fly", "ease", "linear"]
EasingName = Literal["linear", "ease-in", "ease-out", "ease-in-out"]
GenerationType = Literal["per-item", "per-category", "per-range", "per-time", "custom"]


# ============================================================================
# Building blocks
# ============================================================================


class LayerState(CamelModel):
    layer_id: str
    visible: bool
    opacity: Optional[float] = None


class BookmarkTransition(CamelModel):
    """How the camera travels to a bookmark."""

    type: TransitionType = "fly"
    duration_ms: int = Field(default=2000, ge=0)
    easing: Optional[EasingName] = None


# ============================================================================
# Generation provenance
# ============================================================================


class CategorySource(CamelModel):
    type: Literal["per-category"] = "per-category"
    field_name: str
    value: str

    def control_values(self) -> dict[str, Any]:
        return {self.field_name: self.value}


class RangeSource(CamelModel):
    type: Literal["per-range"] = "per-range"
    field_name: str
    value: tuple[float, float]

    def control_values(self) -> dict[str, Any]:
        start, end = self.value
        return {f"{self.field_name}_min": start, f"{self.field_name}_max": end}


class TimePeriod(CamelModel):
    start: datetime
    end: datetime


class TimeSource(CamelModel):
    type: Literal["per-time"] = "per-time"
    field_name: str
    value: TimePeriod

    def control_values(self) -> dict[str, Any]:
        return {
            self.field_name: {
                "start": self.value.start.isoformat(),
                "end": self.value.end.isoformat(),
            }
        }


class ItemSource(CamelModel):
    type: Literal["per-item"] = "per-item"
    field_name: str
    value: Union[int, str]

    def control_values(self) -> dict[str, Any]:
        return {"selectedId": self.value}


class CustomSource(CamelModel):
    """Hand-made provenance; the value is kept as-is and drives no controls."""

    type: Literal["custom"] = "custom"
    field_name: str = ""
    value: Any = None

    def control_values(self) -> dict[str, Any]:
        return {}


GeneratedFrom = Annotated[
    Union[CategorySource, RangeSource, TimeSource, ItemSource, CustomSource],
    Field(discriminator="type"),
]


# ============================================================================
# Bookmarks and groups
# ============================================================================


class SmartBookmark(CamelModel):
    """Named snapshot of the view, optionally part of a timed tour."""

    id: str
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None

    camera: CameraState
    ambiance: AmbianceState = Field(default_factory=AmbianceState)
    layer_states: list[LayerState] = Field(default_factory=list)
    control_values: dict[str, Any] = Field(default_factory=dict)

    transition: BookmarkTransition = Field(default_factory=BookmarkTransition)
    generated_from: Optional[GeneratedFrom] = None

    # Tour playback
    narration: Optional[str] = None
    duration: Optional[int] = Field(default=None, ge=0, description="Display time in ms")
    auto_advance: Optional[bool] = None

    @property
    def advance_delay_ms(self) -> Optional[int]:
        """Delay before a tour moves on, or None when the step waits for the user."""
        if self.auto_advance and self.duration:
            return self.duration
        return None


class BookmarkGroup(CamelModel):
    """Ordered list of bookmark ids. Holds no bookmarks itself."""

    id: str
    name: str
    icon: Optional[str] = None
    color: Optional[str] = None
    bookmark_ids: list[str] = Field(default_factory=list)
    collapsed: bool = False
