"""BookmarkManager tests: capture, CRUD, groups, navigation and persistence."""

import json
import unittest

from mapsync.core.errors import (
    BookmarkManagerNotInitializedError,
    BookmarkNotFoundError,
    InvalidBookmarkDataError,
)
from mapsync.core.models import (
    AmbianceState,
    AppState,
    BookmarkGeneratorConfig,
    CameraState,
    FieldMeta,
    LayerInfo,
    LayerState,
    Location,
    MapSettings,
    SmartBookmark,
)
from mapsync.domain.bookmarks import BookmarkManager, BookmarkManagerConfig, NavigationCallbacks
from mapsync.domain.bookmarks.manager import DEFAULT_STORAGE_KEY, STORAGE_VERSION
from mapsync.infrastructure import SimulatedMapHost
from mapsync.infrastructure.storage import MemoryStore


def make_state() -> AppState:
    return AppState(
        location=Location(lng=2.35, lat=48.85),
        settings=MapSettings(time_of_day=600, date="2024-06-21"),
        layers=[LayerInfo(id="buildings", visible=True, opacity=0.8), LayerInfo(id="roads", visible=False)],
    )


def make_bookmark(bookmark_id: str, **overrides) -> SmartBookmark:
    data = {"id": bookmark_id, "name": bookmark_id, "camera": CameraState(center=(1.0, 2.0), zoom=12)}
    data.update(overrides)
    return SmartBookmark(**data)


class BookmarkManagerTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.store = MemoryStore()
        self.map = SimulatedMapHost(center=(2.35, 48.85), zoom=14, pitch=45, bearing=-20)
        self.manager = BookmarkManager(store=self.store)
        self.manager.init(self.map)

    def stored_blob(self) -> dict:
        return json.loads(self.store.get_item(DEFAULT_STORAGE_KEY))

    # ========== Capture / CRUD ==========

    def test_capture_requires_init(self) -> None:
        manager = BookmarkManager()
        with self.assertRaises(BookmarkManagerNotInitializedError):
            manager.capture_bookmark("x", make_state())

    def test_capture_snapshots_map_and_state(self) -> None:
        bookmark = self.manager.capture_bookmark("Harbour", make_state(), narration="Start here")

        self.assertTrue(bookmark.id.startswith("bm-"))
        self.assertEqual(bookmark.camera, CameraState(center=(2.35, 48.85), zoom=14, pitch=45, bearing=-20))
        self.assertEqual(bookmark.ambiance.time_of_day, 600)
        self.assertEqual(bookmark.ambiance.date, "2024-06-21")
        self.assertEqual(
            bookmark.layer_states,
            [
                LayerState(layer_id="buildings", visible=True, opacity=0.8),
                LayerState(layer_id="roads", visible=False),
            ],
        )
        self.assertEqual(bookmark.icon, "📍")
        self.assertEqual(bookmark.transition.type, "fly")
        self.assertEqual(bookmark.transition.duration_ms, 2000)
        self.assertEqual(bookmark.narration, "Start here")
        self.assertIs(self.manager.get_bookmark(bookmark.id), bookmark)

    def test_captured_transitions_are_independent(self) -> None:
        first = self.manager.capture_bookmark("a", make_state())
        second = self.manager.capture_bookmark("b", make_state())
        first.transition.duration_ms = 5

        self.assertEqual(second.transition.duration_ms, 2000)
        self.assertEqual(self.manager.config.default_transition.duration_ms, 2000)

    def test_max_bookmarks(self) -> None:
        manager = BookmarkManager(BookmarkManagerConfig(max_bookmarks=2, auto_save=False))
        manager.init(self.map)

        self.assertTrue(manager.add_bookmark(make_bookmark("a")))
        self.assertTrue(manager.add_bookmark(make_bookmark("b")))
        self.assertFalse(manager.add_bookmark(make_bookmark("c")))
        # Replacing an existing id is still allowed
        self.assertTrue(manager.add_bookmark(make_bookmark("a", name="renamed")))
        self.assertEqual([b.name for b in manager.get_bookmarks()], ["renamed", "b"])

    def test_update_bookmark(self) -> None:
        self.manager.add_bookmark(make_bookmark("a"))

        updated = self.manager.update_bookmark("a", name="Renamed", id="hijack", color="#ff0000")

        self.assertEqual(updated.id, "a")
        self.assertEqual(updated.name, "Renamed")
        self.assertEqual(updated.color, "#ff0000")
        self.assertIsNone(self.manager.update_bookmark("missing", name="x"))
        self.assertEqual(self.stored_blob()["bookmarks"][0]["name"], "Renamed")

    def test_delete_cascades_to_groups(self) -> None:
        self.manager.add_bookmark(make_bookmark("a"))
        self.manager.add_bookmark(make_bookmark("b"))
        group = self.manager.create_group("Tour", bookmark_ids=["a", "b"])

        self.assertTrue(self.manager.delete_bookmark("a"))
        self.assertEqual(self.manager.get_group(group.id).bookmark_ids, ["b"])
        self.assertFalse(self.manager.delete_bookmark("a"))

    # ========== Groups ==========

    def test_group_membership(self) -> None:
        group = self.manager.create_group("Favourites")
        self.assertEqual(group.icon, "📁")

        self.manager.add_to_group(group.id, "a")
        self.manager.add_to_group(group.id, "a")
        self.manager.add_to_group(group.id, "b")
        self.assertEqual(self.manager.get_group(group.id).bookmark_ids, ["a", "b"])

        self.manager.remove_from_group(group.id, "a")
        self.assertEqual(self.manager.get_group(group.id).bookmark_ids, ["b"])

        self.assertTrue(self.manager.delete_group(group.id))
        self.assertEqual(self.manager.get_groups(), [])
        self.assertFalse(self.manager.delete_group(group.id))

    # ========== Navigation ==========

    async def test_go_to_flies_and_fires_callbacks(self) -> None:
        bookmark = make_bookmark(
            "a",
            ambiance=AmbianceState(time_of_day=300),
            layer_states=[LayerState(layer_id="roads", visible=False)],
            control_values={"Category": "Parks"},
        )
        self.manager.add_bookmark(bookmark)
        ambiance, layers, controls, changed = [], [], [], []
        self.manager.set_on_bookmark_change(changed.append)

        await self.manager.go_to_bookmark("a", NavigationCallbacks(
            on_ambiance_change=ambiance.append,
            on_layer_change=lambda layer_id, visible: layers.append((layer_id, visible)),
            on_control_change=lambda control_id, value: controls.append((control_id, value)),
        ))

        command, options = self.map.commands[-1]
        self.assertEqual(command, "fly_to")
        self.assertEqual(options["center"], (1.0, 2.0))
        self.assertEqual(options["duration"], 2000)
        self.assertEqual(self.map.zoom, 12)
        self.assertEqual(ambiance[0].time_of_day, 300)
        self.assertEqual(layers, [("roads", False)])
        self.assertEqual(controls, [("Category", "Parks")])
        self.assertEqual(changed, [bookmark])
        self.assertEqual(self.manager.get_current_bookmark_id(), "a")

    async def test_instant_transition_jumps(self) -> None:
        self.manager.add_bookmark(make_bookmark("a", transition={"type": "instant", "duration_ms": 0}))

        await self.manager.go_to_bookmark("a")

        self.assertEqual(self.map.commands[-1][0], "jump_to")

    async def test_easing_passed_to_map(self) -> None:
        self.manager.add_bookmark(make_bookmark("a", transition={"type": "ease", "easing": "ease-in"}))

        await self.manager.go_to_bookmark("a")

        easing = self.map.commands[-1][1]["easing"]
        self.assertEqual(easing(0.5), 0.25)

    async def test_go_to_unknown_raises(self) -> None:
        with self.assertRaises(BookmarkNotFoundError):
            await self.manager.go_to_bookmark("missing")

    # ========== Persistence ==========

    def test_changes_are_saved(self) -> None:
        self.manager.add_bookmark(make_bookmark("a", control_values={"x": 1}))
        blob = self.stored_blob()

        self.assertEqual(blob["version"], STORAGE_VERSION)
        self.assertEqual(blob["bookmarks"][0]["id"], "a")
        self.assertIn("controlValues", blob["bookmarks"][0])
        self.assertEqual(blob["groups"], [])

    def test_reload_from_storage(self) -> None:
        self.manager.add_bookmark(make_bookmark("a"))
        self.manager.create_group("g", bookmark_ids=["a"])

        reloaded = BookmarkManager(store=self.store)
        reloaded.init(SimulatedMapHost())

        self.assertEqual([b.id for b in reloaded.get_bookmarks()], ["a"])
        self.assertEqual(reloaded.get_groups()[0].bookmark_ids, ["a"])

    def test_auto_save_disabled(self) -> None:
        store = MemoryStore()
        manager = BookmarkManager(BookmarkManagerConfig(auto_save=False), store)
        manager.init(self.map)
        manager.add_bookmark(make_bookmark("a"))

        self.assertIsNone(store.get_item(DEFAULT_STORAGE_KEY))

    def test_corrupt_storage_loads_empty(self) -> None:
        store = MemoryStore({DEFAULT_STORAGE_KEY: "{not json"})
        manager = BookmarkManager(store=store)

        with self.assertLogs("mapsync.domain.bookmarks.manager", level="WARNING"):
            manager.init(self.map)

        self.assertEqual(manager.get_bookmarks(), [])
        self.assertEqual(manager.get_groups(), [])

    def test_newer_storage_version_refused(self) -> None:
        store = MemoryStore({DEFAULT_STORAGE_KEY: json.dumps({"version": 99, "bookmarks": []})})
        manager = BookmarkManager(store=store)
        manager.init(self.map)

        self.assertEqual(manager.get_bookmarks(), [])

    def test_legacy_storage_migrated(self) -> None:
        legacy = {
            "bookmarks": [
                ["old-1", {"id": "old-1", "name": "Old", "camera": {"center": [3, 4], "zoom": 9}}],
            ],
            "groups": [
                ["grp-1", {"id": "grp-1", "name": "G", "bookmarkIds": ["old-1"]}],
            ],
        }
        store = MemoryStore({DEFAULT_STORAGE_KEY: json.dumps(legacy)})
        manager = BookmarkManager(store=store)
        manager.init(self.map)

        self.assertEqual(manager.get_bookmark("old-1").camera.center, (3.0, 4.0))
        self.assertEqual(manager.get_group("grp-1").bookmark_ids, ["old-1"])
        self.assertEqual(json.loads(store.get_item(DEFAULT_STORAGE_KEY))["version"], STORAGE_VERSION)

    def test_export_import_round_trip(self) -> None:
        self.manager.capture_bookmark("a", make_state(), description="first")
        self.manager.create_group("g")
        exported = self.manager.export_to_json()

        other = BookmarkManager(BookmarkManagerConfig(auto_save=False))
        other.init(SimulatedMapHost())
        self.assertEqual(other.import_from_json(exported), 1)

        self.assertEqual(
            [b.model_dump() for b in other.get_bookmarks()],
            [b.model_dump() for b in self.manager.get_bookmarks()],
        )
        self.assertEqual(len(other.get_groups()), 1)

    def test_import_merges_by_id(self) -> None:
        self.manager.add_bookmark(make_bookmark("a", name="old"))
        self.manager.add_bookmark(make_bookmark("b"))
        payload = json.dumps({
            "version": 2,
            "bookmarks": [make_bookmark("a", name="new").to_json_dict()],
            "groups": [],
        })

        self.assertEqual(self.manager.import_from_json(payload), 1)
        self.assertEqual(self.manager.get_bookmark("a").name, "new")
        self.assertIsNotNone(self.manager.get_bookmark("b"))

    def test_custom_provenance_loads_and_imports(self) -> None:
        custom = {
            "id": "hand-1",
            "name": "Hand made",
            "camera": {"center": [5, 45], "zoom": 11},
            "generatedFrom": {"type": "custom", "fieldName": "Notes", "value": {"author": "me"}},
        }
        blob = json.dumps({"version": STORAGE_VERSION, "bookmarks": [custom, make_bookmark("b").to_json_dict()], "groups": []})

        manager = BookmarkManager(store=MemoryStore({DEFAULT_STORAGE_KEY: blob}))
        manager.init(self.map)
        self.assertEqual([b.id for b in manager.get_bookmarks()], ["hand-1", "b"])
        self.assertEqual(manager.get_bookmark("hand-1").generated_from.value, {"author": "me"})

        self.assertEqual(self.manager.import_from_json(blob), 2)
        self.assertEqual(self.manager.get_bookmark("hand-1").generated_from.type, "custom")

    def test_import_invalid_raises(self) -> None:
        for payload in ("not json", json.dumps([1, 2]), json.dumps({"bookmarks": [{"id": "x"}]})):
            with self.assertRaises(InvalidBookmarkDataError):
                self.manager.import_from_json(payload)

    # ========== Generation ==========

    def test_generate_respects_limit(self) -> None:
        manager = BookmarkManager(BookmarkManagerConfig(max_bookmarks=2, auto_save=False))
        manager.init(self.map)
        meta = FieldMeta(name="Kind", type="choice", choices=["A", "B", "C"])
        config = BookmarkGeneratorConfig(field_name="Kind", generation_type="per-category")

        result = manager.generate_bookmarks(config, [], meta, make_state())

        self.assertEqual(len(result.bookmarks), 2)
        self.assertEqual(result.summary.total_generated, 2)
        self.assertEqual(len(manager.get_bookmarks()), 2)


if __name__ == "__main__":
    unittest.main()
