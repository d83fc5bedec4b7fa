"""SyncManager tests.

Managers share a BroadcastBus and an in-memory sync table. Heartbeats are
disabled (``heartbeat_interval_s=0``) so no background task outlives a test.
"""

import asyncio
import json
import unittest
from typing import Any

from mapsync.core import events
from mapsync.core.errors import (
    PersistenceError,
    StaleSnapshotError,
    TransportError,
    UnknownPropertyError,
)
from mapsync.core.event_bus import BroadcastBus, EventPayload
from mapsync.domain.sync import SyncManager, SyncPresets
from mapsync.domain.sync.transforms import ScaleTransform
from mapsync.infrastructure.tables import InMemoryTableAdapter, columns_to_rows


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingTransport:
    """Subscribes fine, fails every publish."""

    async def subscribe(self, channel, handler) -> None:
        pass

    async def unsubscribe(self, channel, handler) -> None:
        pass

    async def publish(self, channel, payload) -> None:
        raise RuntimeError("channel closed")


class Widget:
    """A value holder standing in for a widget's live state."""

    def __init__(self, value: Any = None):
        self.value = value
        self.applied: list[Any] = []

    def get(self) -> Any:
        return self.value

    def set(self, value: Any) -> None:
        self.value = value
        self.applied.append(value)


async def drain(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class SyncManagerTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.bus = BroadcastBus()
        self.adapter = InMemoryTableAdapter()
        self.errors: list[Exception] = []
        self.sent: list[EventPayload] = []
        self.managers: list[SyncManager] = []

        async def spy(payload: EventPayload) -> None:
            self.sent.append(payload)

        await self.bus.subscribe(events.channel_topic("room"), spy)

    async def asyncTearDown(self) -> None:
        for manager in self.managers:
            await manager.disconnect()

    def make(self, is_master: bool, **kwargs: Any) -> SyncManager:
        options = {
            "is_master": is_master,
            "transport": self.bus,
            "heartbeat_interval_s": 0,
            "on_error": self.errors.append,
        }
        options.update(kwargs)
        manager = SyncManager("room", **options)
        self.managers.append(manager)
        return manager

    def sync_messages(self) -> list[EventPayload]:
        return [m for m in self.sent if m["type"] == events.MSG_SYNC]

    # ========== Sending ==========

    async def test_throttle_drops_bursts(self) -> None:
        clock = FakeClock()
        master = self.make(True, clock=clock)
        master.register("slide", lambda: 1, lambda v: None)
        await master.connect()

        results = [await master.emit("slide") for _ in range(10)]
        await drain()

        self.assertEqual(results.count(True), 1)
        self.assertEqual(len(self.sync_messages()), 1)

        clock.advance(0.034)
        self.assertTrue(await master.emit("slide"))

    async def test_property_throttle_overrides_global(self) -> None:
        master = self.make(True, clock=FakeClock())
        master.register("selection", lambda: [1], lambda v: None, throttle_ms=0)
        await master.connect()

        self.assertTrue(await master.emit("selection"))
        self.assertTrue(await master.emit("selection"))

    async def test_sync_message_shape(self) -> None:
        master = self.make(True, widget_id="w-master")
        master.register("slide", lambda: {"page": 3}, lambda v: None)
        await master.connect()
        await master.emit("slide")
        await drain()

        message = self.sync_messages()[0]
        self.assertEqual(message["property"], "slide")
        self.assertEqual(json.loads(message["value"]), {"page": 3})
        self.assertEqual(message["masterId"], "w-master")
        self.assertEqual(message["channel"], "room")
        self.assertIsInstance(message["ts"], int)

    async def test_slave_disabled_or_unconnected_does_not_send(self) -> None:
        slave = self.make(False)
        slave.register("slide", lambda: 1, lambda v: None)
        await slave.connect()
        self.assertFalse(await slave.emit("slide"))

        master = self.make(True)
        master.register("slide", lambda: 1, lambda v: None)
        self.assertFalse(await master.emit("slide"))
        await master.connect()
        master.set_enabled(False)
        self.assertFalse(await master.emit("slide"))

    async def test_emit_unknown_property_raises(self) -> None:
        master = self.make(True)
        await master.connect()
        with self.assertRaises(UnknownPropertyError):
            await master.emit("nope")

    async def test_transport_failure_reported(self) -> None:
        master = SyncManager(
            "room",
            is_master=True,
            transport=FailingTransport(),
            heartbeat_interval_s=0,
            on_error=self.errors.append,
        )
        widget = Widget(5)
        master.register("slide", widget.get, widget.set)
        await master.connect()

        self.assertFalse(await master.emit("slide"))
        self.assertTrue(self.errors)
        self.assertTrue(all(isinstance(e, TransportError) for e in self.errors))
        # The widget still works locally
        self.assertEqual(widget.get(), 5)

    # ========== Receiving ==========

    async def test_slave_applies_transformed_value(self) -> None:
        master_widget, slave_widget = Widget(10), Widget()
        master = self.make(True)
        slave = self.make(False)
        master.register("slide", master_widget.get, master_widget.set)
        slave.register("slide", slave_widget.get, slave_widget.set,
                       transform=ScaleTransform(scale=0.5, offset=1))
        await slave.connect()
        await master.connect()

        await master.emit("slide")
        await drain()

        self.assertEqual(slave_widget.applied, [6])
        self.assertEqual(master_widget.applied, [])

    async def test_own_messages_ignored(self) -> None:
        widget = Widget()
        slave = self.make(False, widget_id="w-self")
        slave.register("slide", widget.get, widget.set)
        await slave.connect()

        topic = events.channel_topic("room")
        await self.bus.publish(topic, events.create_sync_message("room", "w-self", "slide", "1"))
        await self.bus.publish(topic, events.create_sync_message("room", "w-other", "slide", "2"))
        await drain()

        self.assertEqual(widget.applied, [2])

    async def test_other_channel_and_unknown_property_ignored(self) -> None:
        widget = Widget()
        slave = self.make(False)
        slave.register("slide", widget.get, widget.set)
        await slave.connect()

        topic = events.channel_topic("room")
        await self.bus.publish(topic, events.create_sync_message("hall", "w-x", "slide", "1"))
        await self.bus.publish(topic, events.create_sync_message("room", "w-x", "zoom", "1"))
        await drain()

        self.assertEqual(widget.applied, [])
        self.assertEqual(self.errors, [])

    async def test_master_ignores_sync_messages(self) -> None:
        widget = Widget(1)
        master = self.make(True)
        master.register("slide", widget.get, widget.set)
        await master.connect()

        await self.bus.publish(
            events.channel_topic("room"),
            events.create_sync_message("room", "w-other", "slide", "9"),
        )
        await drain()

        self.assertEqual(widget.applied, [])

    async def test_apply_failure_reported(self) -> None:
        def broken_set(value):
            raise ValueError("bad value")

        slave = self.make(False)
        slave.register("slide", lambda: None, broken_set)
        await slave.connect()

        await self.bus.publish(
            events.channel_topic("room"),
            events.create_sync_message("room", "w-other", "slide", "1"),
        )
        await drain()

        self.assertEqual(len(self.errors), 1)

    async def test_role_switch(self) -> None:
        widget = Widget()
        manager = self.make(False)
        manager.register("slide", widget.get, widget.set)
        await manager.connect()

        manager.set_master(True)
        self.assertTrue(manager.get_status().is_master)
        widget.value = 3
        self.assertTrue(await manager.emit("slide"))

    # ========== Persistence ==========

    async def test_connect_creates_sync_table(self) -> None:
        master = self.make(True, table_adapter=self.adapter)
        await master.connect()

        self.assertIn("T3D_Sync", await self.adapter.list_tables())
        self.assertTrue(master.get_status().grist_ready)
        self.assertIsNone(master.get_snapshot())

    async def test_persist_writes_persistent_properties_only(self) -> None:
        master = self.make(True, table_adapter=self.adapter)
        master.register("camera", lambda: {"zoom": 12}, lambda v: None, persistent=True)
        master.register("selection", lambda: [1, 2], lambda v: None)
        await master.connect()

        self.assertTrue(await master.persist_now())

        rows = columns_to_rows(await self.adapter.fetch_table("T3D_Sync"))
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["Channel"], "room")
        self.assertEqual(rows[0]["Version"], 1)
        self.assertEqual(rows[0]["MasterId"], master.id)
        self.assertEqual(json.loads(rows[0]["State"]), {"camera": '{"zoom":12}'})

        self.assertTrue(await master.persist_now())
        rows = columns_to_rows(await self.adapter.fetch_table("T3D_Sync"))
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["Version"], 2)

    async def test_debounced_persist_writes_once(self) -> None:
        master = self.make(True, table_adapter=self.adapter, persist_debounce_ms=20)
        master.register("camera", lambda: {"zoom": 3}, lambda v: None, persistent=True)
        await master.connect()

        for _ in range(5):
            master.schedule_persist()
        await asyncio.sleep(0.1)

        writes = [a for a in self.adapter.actions_applied if a[0] in ("AddRecord", "UpdateRecord")]
        self.assertEqual(len(writes), 1)

    async def test_slave_never_persists(self) -> None:
        slave = self.make(False, table_adapter=self.adapter, persist_debounce_ms=1)
        await slave.connect()
        slave.schedule_persist()
        await asyncio.sleep(0.02)

        writes = [a for a in self.adapter.actions_applied if a[0] in ("AddRecord", "UpdateRecord")]
        self.assertEqual(writes, [])

    async def test_slave_bootstraps_from_snapshot(self) -> None:
        master = self.make(True, table_adapter=self.adapter)
        master.register("slide", lambda: 10, lambda v: None, persistent=True)
        await master.connect()
        await master.persist_now()

        widget = Widget()
        slave = self.make(False, table_adapter=self.adapter)
        slave.register("slide", widget.get, widget.set,
                       transform=ScaleTransform(scale=0.5, offset=1), persistent=True)
        await slave.connect()

        self.assertEqual(widget.applied, [6])
        self.assertEqual(slave.get_snapshot().version, 1)

    async def test_version_conflict_reported(self) -> None:
        first = self.make(True, table_adapter=self.adapter)
        first.register("slide", lambda: 1, lambda v: None, persistent=True)
        await first.connect()
        self.assertTrue(await first.persist_now())

        second = self.make(True, table_adapter=self.adapter)
        second.register("slide", lambda: 2, lambda v: None, persistent=True)
        await second.connect()
        self.assertTrue(await second.persist_now())

        self.assertFalse(await first.persist_now())
        self.assertEqual(len(self.errors), 1)
        conflict = self.errors[0]
        self.assertIsInstance(conflict, StaleSnapshotError)
        self.assertEqual(conflict.stored_version, 2)
        self.assertEqual(conflict.known_version, 1)

        # Having seen version 2, the next write goes through
        self.assertTrue(await first.persist_now())
        self.assertEqual(first.get_snapshot().version, 3)

    async def test_table_failure_reported(self) -> None:
        class BrokenAdapter(InMemoryTableAdapter):
            async def list_tables(self):
                raise RuntimeError("document unavailable")

        master = self.make(True, table_adapter=BrokenAdapter())
        await master.connect()

        self.assertTrue(master.is_connected)
        self.assertFalse(master.get_status().grist_ready)
        self.assertIsInstance(self.errors[0], PersistenceError)
        self.assertFalse(await master.persist_now())

    async def test_force_sync_sends_everything(self) -> None:
        master = self.make(True, clock=FakeClock(), table_adapter=self.adapter, persist_debounce_ms=10)
        master.register("camera", lambda: {"zoom": 1}, lambda v: None, persistent=True)
        master.register("selection", lambda: [], lambda v: None)
        await master.connect()
        await master.emit("camera")

        await master.force_sync()
        await asyncio.sleep(0.05)

        names = [m["property"] for m in self.sync_messages()]
        self.assertEqual(names, ["camera", "camera", "selection"])
        self.assertEqual(master.get_snapshot().version, 1)

    # ========== Presence and lifecycle ==========

    async def test_peers_tracked_through_join_and_leave(self) -> None:
        master = self.make(True)
        slave = self.make(False)
        await master.connect()
        await slave.connect()
        await drain()

        self.assertEqual(master.peer_count, 1)
        self.assertEqual(slave.peer_count, 1)

        await slave.disconnect()
        await drain()
        self.assertEqual(master.peer_count, 0)

    async def test_stale_peers_pruned(self) -> None:
        clock = FakeClock()
        master = self.make(True, clock=clock, stale_peer_after_s=15)
        await master.connect()
        await self.bus.publish(
            events.channel_topic("room"),
            events.create_presence_message(events.MSG_PING, "room", "w-peer"),
        )
        await drain()
        self.assertEqual(master.peer_count, 1)

        clock.advance(10)
        self.assertEqual(master.prune_stale_peers(), [])
        clock.advance(10)
        self.assertEqual(master.prune_stale_peers(), ["w-peer"])
        self.assertEqual(master.peer_count, 0)

    async def test_disconnect_unsubscribes_and_cancels_persist(self) -> None:
        master = self.make(True, table_adapter=self.adapter, persist_debounce_ms=10)
        await master.connect()
        topic = events.channel_topic("room")
        self.assertEqual(self.bus.subscriber_count(topic), 2)

        master.schedule_persist()
        await master.disconnect()
        await asyncio.sleep(0.03)

        self.assertFalse(master.is_connected)
        self.assertEqual(self.bus.subscriber_count(topic), 1)
        writes = [a for a in self.adapter.actions_applied if a[0] in ("AddRecord", "UpdateRecord")]
        self.assertEqual(writes, [])

    async def test_change_channel_reconnects(self) -> None:
        master = self.make(True)
        await master.connect()
        await master.change_channel("hall")

        self.assertTrue(master.is_connected)
        self.assertEqual(master.topic, "t3d-hall")
        self.assertEqual(self.bus.subscriber_count("t3d-hall"), 1)
        self.assertEqual(self.bus.subscriber_count("t3d-room"), 1)

    async def test_status_reports_state(self) -> None:
        statuses = []
        master = self.make(True, widget_id="w1", on_status_change=statuses.append)
        master.register("camera", lambda: None, lambda v: None)
        await master.connect()

        status = master.get_status()
        self.assertEqual(status.id, "w1")
        self.assertEqual(status.channel, "room")
        self.assertTrue(status.is_master)
        self.assertTrue(status.is_connected)
        self.assertEqual(status.properties, ["camera"])
        self.assertFalse(status.grist_ready)
        self.assertTrue(statuses)

    async def test_heartbeat_pings_peers(self) -> None:
        master = self.make(True, heartbeat_interval_s=0.01)
        await master.connect()
        await asyncio.sleep(0.05)

        pings = [m for m in self.sent if m["type"] == events.MSG_PING]
        self.assertTrue(pings)


class SyncPresetsTest(unittest.TestCase):
    def test_roles(self) -> None:
        self.assertTrue(SyncPresets.master().is_master)
        self.assertFalse(SyncPresets.slave().is_master)

    def test_camera_presets_transform(self) -> None:
        camera = {"center": [2.0, 48.0], "zoom": 15, "pitch": 0, "bearing": 10}

        offset = SyncPresets.offset_view(0.5, -0.5).camera_property(lambda: camera, lambda v: None)
        self.assertEqual(offset.transform.apply(camera)["center"], [2.5, 47.5])

        satellite = SyncPresets.satellite_view().camera_property(lambda: camera, lambda v: None)
        self.assertEqual(satellite.transform.apply(camera)["zoom"], 12)

        mirror = SyncPresets.mirror_view().camera_property(lambda: camera, lambda v: None)
        self.assertEqual(mirror.transform.apply(camera)["bearing"], 190)

    def test_mirror_view_wraps_bearing(self) -> None:
        mirror = SyncPresets.mirror_view().camera_property(lambda: None, lambda v: None)
        for bearing, expected in ((270, 90), (180, 0), (0, 180), (-90, 90)):
            camera = {"center": [2.0, 48.0], "zoom": 15, "pitch": 0, "bearing": bearing}
            self.assertEqual(mirror.transform.apply(camera)["bearing"], expected)

    def test_selection_only_skips_camera(self) -> None:
        preset = SyncPresets.selection_only()
        self.assertTrue(preset.syncs("selection"))
        self.assertIsNone(preset.camera_property(lambda: None, lambda v: None))

    def test_create_manager(self) -> None:
        manager = SyncPresets.master().create_manager("room", heartbeat_interval_s=0)
        self.assertTrue(manager.is_master)
        self.assertEqual(manager.channel, "room")


if __name__ == "__main__":
    unittest.main()
