"""Models for field analysis and bookmark generation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import Field

from .base import CamelModel
from .bookmark import BookmarkTransition, GenerationType, SmartBookmark

FieldType = Literal[
    "text",
    "numeric",
    "integer",
    "datetime",
    "date",
    "time",
    "boolean",
    "choice",
    "reference",
    "geometry",
    "color",
    "url",
    "unknown",
]

RangeMethod = Literal["equal", "quantile", "jenks"]
TimeGranularity = Literal["hour", "day", "week", "month", "year"]
CameraMode = Literal["current", "fit-bounds", "center-on-feature"]


# ============================================================================
# Field metadata
# ============================================================================


class FieldStats(CamelModel):
    count: int = 0
    null_count: int = 0
    unique_count: int = 0
    min: Optional[Union[float, datetime]] = None
    max: Optional[Union[float, datetime]] = None
    mean: Optional[float] = None
    median: Optional[float] = None


class BookmarkSuggestion(CamelModel):
    generation_type: GenerationType
    confidence: float
    reason: str
    estimated_count: int = 0
    config: dict[str, Any] = Field(default_factory=dict)


class FieldMeta(CamelModel):
    """What the analyzer learned about one column."""

    name: str
    type: FieldType = "unknown"
    grist_type: Optional[str] = None
    stats: Optional[FieldStats] = None

    choices: Optional[list[str]] = None
    choice_counts: Optional[dict[str, int]] = None
    numeric_range: Optional[tuple[float, float]] = None
    date_range: Optional[tuple[datetime, datetime]] = None

    suggested_bookmarks: list[BookmarkSuggestion] = Field(default_factory=list)


# ============================================================================
# Generator
# ============================================================================


class BookmarkGeneratorConfig(CamelModel):
    """Parameters for one ``generate_bookmarks`` run.

    Templates use ``{value}`` (category, date label, item label) or
    ``{start}``/``{end}``/``{index}`` for numeric ranges.
    """

    field_name: str
    generation_type: GenerationType

    name_template: str = "{value}"
    description_template: Optional[str] = None

    # per-range
    range_count: Optional[int] = Field(default=None, gt=0)
    range_method: RangeMethod = "equal"

    # per-time
    time_granularity: TimeGranularity = "day"

    # per-item
    max_items: Optional[int] = Field(default=None, gt=0)
    sort_field: Optional[str] = None
    sort_order: Literal["asc", "desc"] = "asc"

    camera_mode: CameraMode = "current"
    fly_to_feature: bool = False

    default_transition: Optional[BookmarkTransition] = None


class GenerationSummary(CamelModel):
    total_generated: int
    field_name: str
    generation_type: GenerationType
    unique_values: Optional[int] = None
    ranges: Optional[list[tuple[float, float]]] = None


class GeneratedBookmarks(CamelModel):
    bookmarks: list[SmartBookmark] = Field(default_factory=list)
    summary: GenerationSummary


# ============================================================================
# Analysis
# ============================================================================


class AnalysisRecommendation(CamelModel):
    type: Literal["bookmark"] = "bookmark"
    field_name: str
    description: str
    priority: float = Field(ge=0, le=1)


class AnalysisResult(CamelModel):
    fields: list[FieldMeta] = Field(default_factory=list)
    recommendations: list[AnalysisRecommendation] = Field(default_factory=list)

    def get_field(self, name: str) -> Optional[FieldMeta]:
        for meta in self.fields:
            if meta.name == name:
                return meta
        return None
