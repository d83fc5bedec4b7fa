"""
mapsync data models.

Pydantic models shared by the sync and bookmark subsystems.
"""

from mapsync.core.models.base import CamelModel
from mapsync.core.models.camera import (
    AmbianceState,
    AppState,
    Camera3DState,
    CameraState,
    LayerInfo,
    Location,
    MapSettings,
    SelectionState,
)
from mapsync.core.models.bookmark import (
    BookmarkGroup,
    BookmarkTransition,
    CategorySource,
    CustomSource,
    GeneratedFrom,
    ItemSource,
    LayerState,
    RangeSource,
    SmartBookmark,
    TimePeriod,
    TimeSource,
)
from mapsync.core.models.generator import (
    AnalysisRecommendation,
    AnalysisResult,
    BookmarkGeneratorConfig,
    BookmarkSuggestion,
    FieldMeta,
    FieldStats,
    GeneratedBookmarks,
    GenerationSummary,
)
from mapsync.core.models.sync import SYNC_COLUMNS, SyncSnapshot, SyncStatus

__all__ = [
    "CamelModel",
    # Camera / state
    "AmbianceState",
    "AppState",
    "Camera3DState",
    "CameraState",
    "LayerInfo",
    "Location",
    "MapSettings",
    "SelectionState",
    # Bookmarks
    "BookmarkGroup",
    "BookmarkTransition",
    "CategorySource",
    "CustomSource",
    "GeneratedFrom",
    "ItemSource",
    "LayerState",
    "RangeSource",
    "SmartBookmark",
    "TimePeriod",
    "TimeSource",
    # Generation
    "AnalysisRecommendation",
    "AnalysisResult",
    "BookmarkGeneratorConfig",
    "BookmarkSuggestion",
    "FieldMeta",
    "FieldStats",
    "GeneratedBookmarks",
    "GenerationSummary",
    # Sync
    "SYNC_COLUMNS",
    "SyncSnapshot",
    "SyncStatus",
]
