"""
BookmarkManager: capture, replay, group, persist and generate bookmarks.

The manager owns the bookmark and group collections and a ``TourState``.
Tour transitions are computed by the reducers in ``tour`` and their
effects (navigation, auto-advance timer) carried out here.

Usage:
    manager = BookmarkManager(store=JsonFileStore("bookmarks.json"))
    manager.init(map_host)
    bm = manager.capture_bookmark("Harbour", app_state)
    await manager.go_to_bookmark(bm.id)
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from mapsync.core.errors import (
    BookmarkManagerNotInitializedError,
    BookmarkNotFoundError,
    InvalidBookmarkDataError,
)
from mapsync.core.interfaces import KeyValueStore, MapHost
from mapsync.core.models import (
    AmbianceState,
    AppState,
    BookmarkGeneratorConfig,
    BookmarkGroup,
    BookmarkTransition,
    CameraState,
    FieldMeta,
    GeneratedBookmarks,
    LayerState,
    SmartBookmark,
)
from mapsync.domain.bookmarks import generators, tour
from mapsync.domain.bookmarks.easing import get_easing
from mapsync.infrastructure.storage import MemoryStore
from mapsync.utils.ids import generate_bookmark_id
from mapsync.utils.logging import log_error, log_operation

logger = logging.getLogger(__name__)

STORAGE_VERSION = 2
DEFAULT_STORAGE_KEY = "smart-map-3d-bookmarks"
DEFAULT_MAX_BOOKMARKS = 100
DEFAULT_BOOKMARK_ICON = "📍"
DEFAULT_GROUP_ICON = "📁"

BookmarkChangeCallback = Callable[[Optional[SmartBookmark]], None]
TourStepCallback = Callable[[SmartBookmark, int, int], None]


def default_transition() -> BookmarkTransition:
    return BookmarkTransition(type="fly", duration_ms=2000, easing="ease-in-out")


@dataclass
class BookmarkManagerConfig:
    """Manager settings.

    Attributes:
        max_bookmarks: Additions beyond this count are refused
        default_transition: Transition for bookmarks created without one
        auto_save: Load on ``init`` and save after every change
        storage_key: Key of the blob in the key-value store
    """

    max_bookmarks: int = DEFAULT_MAX_BOOKMARKS
    default_transition: BookmarkTransition = field(default_factory=default_transition)
    auto_save: bool = True
    storage_key: str = DEFAULT_STORAGE_KEY


@dataclass
class NavigationCallbacks:
    """Hooks fired when a bookmark is replayed, right after the camera command."""

    on_ambiance_change: Optional[Callable[[AmbianceState], None]] = None
    on_layer_change: Optional[Callable[[str, bool], None]] = None
    on_control_change: Optional[Callable[[str, Any], None]] = None


# ============================================================================
# Storage blob
# ============================================================================


def _entries(raw: Any, version: int) -> List[Any]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError("Expected a list of entries")
    if version == 1:
        # Serialized Map entries: [[id, object], ...]
        return [
            item[1] if isinstance(item, list) and len(item) == 2 else item
            for item in raw
        ]
    return raw


def parse_storage_blob(data: Any) -> Tuple[List[SmartBookmark], List[BookmarkGroup], int]:
    """Decode a stored blob of any known version.

    Returns:
        (bookmarks, groups, version found)

    Raises:
        ValueError: If the blob is malformed or newer than this code understands
    """
    if not isinstance(data, dict):
        raise ValueError("Bookmark blob is not an object")
    version = data.get("version", 1)
    if not isinstance(version, int) or version < 1:
        raise ValueError(f"Invalid bookmark blob version: {version!r}")
    if version > STORAGE_VERSION:
        raise ValueError(f"Bookmark blob version {version} is newer than {STORAGE_VERSION}")

    bookmarks = [SmartBookmark.model_validate(b) for b in _entries(data.get("bookmarks"), version)]
    groups = [BookmarkGroup.model_validate(g) for g in _entries(data.get("groups"), version)]
    return bookmarks, groups, version


# ============================================================================
# Manager
# ============================================================================


class BookmarkManager:
    """Bookmarks for one map widget."""

    def __init__(
        self,
        config: Optional[BookmarkManagerConfig] = None,
        store: Optional[KeyValueStore] = None,
    ):
        self.config = config or BookmarkManagerConfig()
        self.store: KeyValueStore = store if store is not None else MemoryStore()

        self._bookmarks: Dict[str, SmartBookmark] = {}
        self._groups: Dict[str, BookmarkGroup] = {}
        self._map: Optional[MapHost] = None
        self._current_bookmark_id: Optional[str] = None

        self._tour = tour.TourState()
        self._tour_callbacks: Optional[NavigationCallbacks] = None
        self._tour_timer: Optional[asyncio.TimerHandle] = None
        self._tour_task: Optional[asyncio.Task] = None

        self._on_bookmark_change: Optional[BookmarkChangeCallback] = None
        self._on_tour_step: Optional[TourStepCallback] = None

    def init(self, map_host: MapHost) -> None:
        """Bind the map and, with ``auto_save``, load stored bookmarks."""
        self._map = map_host
        if self.config.auto_save:
            self.load_from_storage()

    @property
    def is_initialized(self) -> bool:
        return self._map is not None

    # ========== Capture / CRUD ==========

    def capture_bookmark(
        self,
        name: str,
        app_state: AppState,
        *,
        description: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        transition: Optional[BookmarkTransition] = None,
        generated_from: Any = None,
        narration: Optional[str] = None,
        duration: Optional[int] = None,
        auto_advance: Optional[bool] = None,
    ) -> SmartBookmark:
        """Snapshot the live camera and app state as a new bookmark.

        Raises:
            BookmarkManagerNotInitializedError: If ``init`` has not been called
        """
        if self._map is None:
            raise BookmarkManagerNotInitializedError("BookmarkManager not initialized")

        lng, lat = self._map.get_center()
        bookmark = SmartBookmark(
            id=generate_bookmark_id(),
            name=name,
            description=description,
            icon=icon or DEFAULT_BOOKMARK_ICON,
            color=color,
            camera=CameraState(
                center=(lng, lat),
                zoom=self._map.get_zoom(),
                pitch=self._map.get_pitch(),
                bearing=self._map.get_bearing(),
            ),
            ambiance=app_state.ambiance(),
            layer_states=[
                LayerState(layer_id=layer.id, visible=layer.visible, opacity=layer.opacity)
                for layer in app_state.layers
            ],
            transition=(transition or self.config.default_transition).model_copy(deep=True),
            generated_from=generated_from,
            narration=narration,
            duration=duration,
            auto_advance=auto_advance,
        )
        self.add_bookmark(bookmark)
        return bookmark

    def add_bookmark(self, bookmark: SmartBookmark) -> bool:
        """Store a bookmark. Returns False (and stores nothing) at ``max_bookmarks``."""
        if bookmark.id not in self._bookmarks and len(self._bookmarks) >= self.config.max_bookmarks:
            logger.warning(f"Maximum bookmarks ({self.config.max_bookmarks}) reached")
            return False
        self._bookmarks[bookmark.id] = bookmark
        self._save_to_storage()
        return True

    def update_bookmark(self, bookmark_id: str, **updates: Any) -> Optional[SmartBookmark]:
        """Shallow-merge ``updates`` (field names) into a bookmark; unknown ids are ignored."""
        bookmark = self._bookmarks.get(bookmark_id)
        if bookmark is None:
            return None
        updates.pop("id", None)
        updated = SmartBookmark.model_validate({**dict(bookmark), **updates})
        self._bookmarks[bookmark_id] = updated
        self._save_to_storage()
        return updated

    def delete_bookmark(self, bookmark_id: str) -> bool:
        """Remove a bookmark and every group reference to it."""
        removed = self._bookmarks.pop(bookmark_id, None) is not None
        for group in self._groups.values():
            if bookmark_id in group.bookmark_ids:
                group.bookmark_ids = [bid for bid in group.bookmark_ids if bid != bookmark_id]
        if self._current_bookmark_id == bookmark_id:
            self._current_bookmark_id = None
        self._save_to_storage()
        return removed

    def get_bookmarks(self) -> List[SmartBookmark]:
        return list(self._bookmarks.values())

    def get_bookmark(self, bookmark_id: str) -> Optional[SmartBookmark]:
        return self._bookmarks.get(bookmark_id)

    def get_current_bookmark_id(self) -> Optional[str]:
        return self._current_bookmark_id

    # ========== Navigation ==========

    def _transition_options(self, transition: BookmarkTransition) -> Dict[str, Any]:
        options: Dict[str, Any] = {"duration": transition.duration_ms}
        easing = get_easing(transition.easing)
        if easing is not None:
            options["easing"] = easing
        return options

    async def go_to_bookmark(
        self,
        bookmark_id: str,
        callbacks: Optional[NavigationCallbacks] = None,
    ) -> None:
        """Move the map to a bookmark; returns once the map reports ``moveend``.

        Ambiance, layer and control callbacks fire right after the camera
        command is issued, not after arrival.

        Raises:
            BookmarkNotFoundError: If the id is unknown or no map is bound
        """
        bookmark = self._bookmarks.get(bookmark_id)
        if bookmark is None or self._map is None:
            raise BookmarkNotFoundError(f"Bookmark {bookmark_id} not found")

        loop = asyncio.get_running_loop()
        arrival: asyncio.Future = loop.create_future()

        def on_move_end() -> None:
            if arrival.done():
                return
            self._current_bookmark_id = bookmark_id
            if self._on_bookmark_change is not None:
                self._on_bookmark_change(bookmark)
            arrival.set_result(None)

        self._map.once("moveend", on_move_end)

        camera = bookmark.camera
        options = {
            "center": camera.center,
            "zoom": camera.zoom,
            "pitch": camera.pitch,
            "bearing": camera.bearing,
            **self._transition_options(bookmark.transition),
        }
        if bookmark.transition.type == "instant":
            self._map.jump_to(**options)
        else:
            self._map.fly_to(**options)

        if callbacks is not None:
            if callbacks.on_ambiance_change is not None:
                callbacks.on_ambiance_change(bookmark.ambiance)
            if callbacks.on_layer_change is not None:
                for layer_state in bookmark.layer_states:
                    callbacks.on_layer_change(layer_state.layer_id, layer_state.visible)
            if callbacks.on_control_change is not None:
                for control_id, value in bookmark.control_values.items():
                    callbacks.on_control_change(control_id, value)

        await arrival

    # ========== Tours ==========

    def _bookmark_exists(self, bookmark_id: str) -> bool:
        return bookmark_id in self._bookmarks

    def _current_advance_delay(self) -> Optional[int]:
        current_id = self._tour.current_id
        bookmark = self._bookmarks.get(current_id) if current_id else None
        return bookmark.advance_delay_ms if bookmark else None

    async def start_tour(
        self,
        bookmark_ids: Optional[Sequence[str]] = None,
        callbacks: Optional[NavigationCallbacks] = None,
    ) -> None:
        """Play bookmarks in order (all of them when ``bookmark_ids`` is None).

        Returns once the first stop is reached. Ids without a bookmark are
        skipped.

        Raises:
            BookmarkManagerNotInitializedError: If ``init`` has not been called
        """
        if self._map is None:
            raise BookmarkManagerNotInitializedError("BookmarkManager not initialized")
        ids = list(bookmark_ids) if bookmark_ids is not None else list(self._bookmarks)
        self._tour_callbacks = callbacks
        await self._transition(tour.start(self._tour, ids, self._bookmark_exists))
        log_operation(logger, "Tour started", {"stops": len(ids)})

    async def next_tour_step(self) -> None:
        await self._transition(tour.next_step(self._tour, self._bookmark_exists))

    async def previous_tour_step(self) -> None:
        await self._transition(tour.previous_step(self._tour, self._bookmark_exists))

    def stop_tour(self) -> None:
        state, effects = tour.stop(self._tour)
        self._tour = state
        self._run_timer_effects(effects)
        self._tour_callbacks = None

    def toggle_tour_pause(self) -> None:
        state, effects = tour.toggle_pause(self._tour, self._current_advance_delay())
        self._tour = state
        self._run_timer_effects(effects)

    def is_tour_active(self) -> bool:
        return self._tour.active

    def get_tour_progress(self) -> Dict[str, int]:
        return tour.progress(self._tour)

    @property
    def tour_state(self) -> tour.TourState:
        return self._tour

    async def _transition(self, transition: tour.Transition) -> None:
        state, effects = transition
        self._tour = state
        for effect in effects:
            if isinstance(effect, tour.NavigateTo):
                await self._navigate_tour(effect)
            else:
                self._run_timer_effects([effect])

    async def _navigate_tour(self, effect: tour.NavigateTo) -> None:
        bookmark = self._bookmarks[effect.bookmark_id]
        if self._on_tour_step is not None:
            self._on_tour_step(bookmark, effect.index, effect.total)
        await self.go_to_bookmark(effect.bookmark_id, self._tour_callbacks)
        await self._transition(tour.arrived(self._tour, effect.step, bookmark.advance_delay_ms))

    def _run_timer_effects(self, effects: Iterable[tour.TourEffect]) -> None:
        for effect in effects:
            if isinstance(effect, tour.ClearTimer):
                self._clear_tour_timer()
            elif isinstance(effect, tour.ArmTimer):
                self._clear_tour_timer()
                loop = asyncio.get_running_loop()
                self._tour_timer = loop.call_later(
                    effect.delay_ms / 1000.0, self._on_tour_timer, effect.step
                )
            elif isinstance(effect, tour.TourEnded):
                logger.info("Tour finished")

    def _clear_tour_timer(self) -> None:
        if self._tour_timer is not None:
            self._tour_timer.cancel()
            self._tour_timer = None

    def _on_tour_timer(self, step: int) -> None:
        self._tour_timer = None
        if not self._tour.active or self._tour.step != step:
            return
        self._tour_task = asyncio.ensure_future(self._auto_advance())

    async def _auto_advance(self) -> None:
        try:
            await self.next_tour_step()
        except Exception as exc:
            log_error(logger, "tour auto-advance", exc)
            self.stop_tour()

    # ========== Groups ==========

    def create_group(
        self,
        name: str,
        *,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        bookmark_ids: Optional[List[str]] = None,
        collapsed: bool = False,
    ) -> BookmarkGroup:
        group = BookmarkGroup(
            id=generate_bookmark_id(),
            name=name,
            icon=icon or DEFAULT_GROUP_ICON,
            color=color,
            bookmark_ids=list(bookmark_ids or []),
            collapsed=collapsed,
        )
        self._groups[group.id] = group
        self._save_to_storage()
        return group

    def add_to_group(self, group_id: str, bookmark_id: str) -> None:
        group = self._groups.get(group_id)
        if group is None or bookmark_id in group.bookmark_ids:
            return
        group.bookmark_ids.append(bookmark_id)
        self._save_to_storage()

    def remove_from_group(self, group_id: str, bookmark_id: str) -> None:
        group = self._groups.get(group_id)
        if group is None or bookmark_id not in group.bookmark_ids:
            return
        group.bookmark_ids.remove(bookmark_id)
        self._save_to_storage()

    def delete_group(self, group_id: str) -> bool:
        """Remove a group; its bookmarks stay."""
        if self._groups.pop(group_id, None) is None:
            return False
        self._save_to_storage()
        return True

    def get_groups(self) -> List[BookmarkGroup]:
        return list(self._groups.values())

    def get_group(self, group_id: str) -> Optional[BookmarkGroup]:
        return self._groups.get(group_id)

    # ========== Generation ==========

    def generate_bookmarks(
        self,
        config: BookmarkGeneratorConfig,
        records: Sequence[Dict[str, Any]],
        field_meta: FieldMeta,
        current_state: AppState,
        get_feature_bounds: Optional[generators.FeatureBounds] = None,
    ) -> GeneratedBookmarks:
        """Derive bookmarks from a field and add them to the collection.

        Only bookmarks that were actually added (``max_bookmarks``) are
        returned and counted in the summary.
        """
        result = generators.generate(
            config,
            records,
            field_meta,
            current_state,
            default_transition=self.config.default_transition,
            get_feature_bounds=get_feature_bounds,
        )
        accepted = [bm for bm in result.bookmarks if self.add_bookmark(bm)]
        if len(accepted) < len(result.bookmarks):
            logger.warning(
                f"{len(result.bookmarks) - len(accepted)} generated bookmark(s) dropped at the limit"
            )
        summary = result.summary.model_copy(update={"total_generated": len(accepted)})
        log_operation(logger, "Bookmarks generated", {
            "field": config.field_name,
            "type": config.generation_type,
            "count": len(accepted),
        })
        return GeneratedBookmarks(bookmarks=accepted, summary=summary)

    # ========== Persistence ==========

    def _blob(self) -> Dict[str, Any]:
        return {
            "version": STORAGE_VERSION,
            "bookmarks": [b.to_json_dict() for b in self._bookmarks.values()],
            "groups": [g.to_json_dict() for g in self._groups.values()],
        }

    def _save_to_storage(self) -> None:
        if not self.config.auto_save:
            return
        try:
            self.store.set_item(self.config.storage_key, json.dumps(self._blob(), ensure_ascii=False))
        except Exception as exc:
            log_error(logger, "save bookmarks", exc, {"key": self.config.storage_key})

    def load_from_storage(self) -> None:
        """Replace the collections with the stored blob.

        Unreadable data leaves the manager empty. Legacy blobs are
        rewritten in the current format.
        """
        try:
            raw = self.store.get_item(self.config.storage_key)
        except Exception as exc:
            log_error(logger, "read bookmarks", exc, {"key": self.config.storage_key})
            return
        if not raw:
            return

        try:
            bookmarks, groups, version = parse_storage_blob(json.loads(raw))
        except (TypeError, ValueError) as exc:
            logger.warning(f"Failed to load bookmarks from '{self.config.storage_key}': {exc}")
            self._bookmarks = {}
            self._groups = {}
            return

        self._bookmarks = {b.id: b for b in bookmarks}
        self._groups = {g.id: g for g in groups}
        logger.info(f"Loaded {len(bookmarks)} bookmark(s), {len(groups)} group(s)")

        if version < STORAGE_VERSION:
            logger.info(f"Migrating bookmark storage from version {version}")
            self._save_to_storage()

    def export_to_json(self) -> str:
        return json.dumps(self._blob(), indent=2, ensure_ascii=False)

    def import_from_json(self, text: str) -> int:
        """Merge bookmarks and groups from an export; same ids are replaced.

        Returns:
            Number of bookmarks imported

        Raises:
            InvalidBookmarkDataError: If the text is not valid JSON or not a bookmark export
        """
        try:
            bookmarks, groups, _ = parse_storage_blob(json.loads(text))
        except (TypeError, ValueError) as exc:
            logger.error(f"Failed to import bookmarks: {exc}")
            raise InvalidBookmarkDataError("Invalid bookmark JSON") from exc

        for bookmark in bookmarks:
            self._bookmarks[bookmark.id] = bookmark
        for group in groups:
            self._groups[group.id] = group
        self._save_to_storage()
        return len(bookmarks)

    # ========== Callbacks ==========

    def set_on_bookmark_change(self, callback: Optional[BookmarkChangeCallback]) -> None:
        self._on_bookmark_change = callback

    def set_on_tour_step(self, callback: Optional[TourStepCallback]) -> None:
        self._on_tour_step = callback
