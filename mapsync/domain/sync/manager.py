"""
SyncManager: one channel of cooperating widgets with a single master.

The master emits registered properties over the broadcast transport
(time-gated per property) and, once an interaction ends, writes the
persistent ones into a snapshot row of the sync table. Slaves apply
incoming values through each property's transform, and bootstrap from the
stored snapshot when they connect.

Errors from the transport or the table never propagate out of the manager:
they are logged, handed to ``on_error`` and the widget keeps working
locally.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

from mapsync.core import events
from mapsync.core.errors import (
    MapSyncError,
    PersistenceError,
    StaleSnapshotError,
    TransportError,
)
from mapsync.core.event_bus import BroadcastBus, EventPayload
from mapsync.core.interfaces import BroadcastTransport, TableAdapter
from mapsync.core.models.sync import SYNC_COLUMNS, SyncSnapshot, SyncStatus
from mapsync.domain.sync.properties import (
    Getter,
    PropertyRegistry,
    Setter,
    SyncProperty,
)
from mapsync.domain.sync.transforms import IdentityTransform, SyncTransform
from mapsync.infrastructure.tables.adapter import find_row
from mapsync.utils.ids import generate_widget_id
from mapsync.utils.logging import log_error, log_operation
from mapsync.utils.timing import Clock, Debouncer, Throttle

logger = logging.getLogger(__name__)

DEFAULT_SYNC_TABLE = "T3D_Sync"
DEFAULT_THROTTLE_MS = 33
DEFAULT_PERSIST_DEBOUNCE_MS = 500
DEFAULT_HEARTBEAT_S = 5.0
DEFAULT_STALE_PEER_S = 15.0

ErrorCallback = Callable[[MapSyncError], None]
StatusCallback = Callable[[SyncStatus], None]


class SyncManager:
    """Coordinates property sync for one widget on one channel."""

    def __init__(
        self,
        channel: str = "default",
        *,
        is_master: bool = False,
        transport: Optional[BroadcastTransport] = None,
        table_adapter: Optional[TableAdapter] = None,
        table_name: str = DEFAULT_SYNC_TABLE,
        throttle_ms: float = DEFAULT_THROTTLE_MS,
        persist_debounce_ms: float = DEFAULT_PERSIST_DEBOUNCE_MS,
        heartbeat_interval_s: float = DEFAULT_HEARTBEAT_S,
        stale_peer_after_s: float = DEFAULT_STALE_PEER_S,
        clock: Optional[Clock] = None,
        widget_id: Optional[str] = None,
        on_error: Optional[ErrorCallback] = None,
        on_status_change: Optional[StatusCallback] = None,
    ):
        self.id = widget_id or generate_widget_id()
        self.channel = channel
        self.is_master = is_master
        self.enabled = True

        # Without a shared transport the widget still works, alone
        self.transport: BroadcastTransport = transport or BroadcastBus()
        self.table_adapter = table_adapter
        self.table_name = table_name

        self.registry = PropertyRegistry()
        self.throttle_ms = throttle_ms
        self.heartbeat_interval_s = heartbeat_interval_s
        self.stale_peer_after_s = stale_peer_after_s

        self.on_error = on_error
        self.on_status_change = on_status_change

        self._clock: Clock = clock or time.monotonic
        self._throttle = Throttle(throttle_ms, clock=self._clock)
        self._persist_debouncer = Debouncer(self.persist_now, persist_debounce_ms)
        self._heartbeat_task: Optional[asyncio.Task] = None

        self._connected = False
        self._grist_ready = False
        self._receiving = False
        self._last_sync: Optional[float] = None
        self._known_version = 0
        self._snapshot: Optional[SyncSnapshot] = None
        self._peers: Dict[str, float] = {}

        logger.debug(
            f"Sync [{self.id}] channel='{channel}' {'MASTER' if is_master else 'SLAVE'}"
        )

    # ========== Properties ==========

    def register(
        self,
        name: str,
        get: Getter,
        set: Setter,
        *,
        transform: Optional[SyncTransform] = None,
        serialize: Optional[Callable[[Any], str]] = None,
        deserialize: Optional[Callable[[str], Any]] = None,
        throttle_ms: Optional[float] = None,
        persistent: bool = False,
    ) -> SyncProperty:
        """Register a property by its parts. Re-registering a name replaces it."""
        options: Dict[str, Any] = {}
        if serialize is not None:
            options["serialize"] = serialize
        if deserialize is not None:
            options["deserialize"] = deserialize
        prop = SyncProperty(
            name=name,
            get=get,
            set=set,
            transform=transform or IdentityTransform(),
            throttle_ms=throttle_ms,
            persistent=persistent,
            **options,
        )
        return self.register_property(prop)

    def register_property(self, prop: SyncProperty) -> SyncProperty:
        self.registry.register(prop)
        self._notify_status()
        return prop

    def unregister(self, name: str) -> None:
        if self.registry.unregister(name) is not None:
            self._throttle.reset(name)
            self._notify_status()

    # ========== Lifecycle ==========

    @property
    def topic(self) -> str:
        return events.channel_topic(self.channel)

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Join the channel, load the stored snapshot and bootstrap slave properties."""
        if self._connected:
            return

        try:
            await self.transport.subscribe(self.topic, self._on_message)
            self._connected = True
        except Exception as exc:
            self._report(TransportError(f"Cannot subscribe to '{self.channel}': {exc}"), "subscribe")

        if self.table_adapter is not None:
            await self._load_snapshot()

        if self._connected:
            await self._send_presence(events.MSG_JOIN)
            self._start_heartbeat()

        log_operation(logger, "Sync connected", {
            "id": self.id,
            "channel": self.channel,
            "role": "master" if self.is_master else "slave",
            "transport": self._connected,
            "table": self._grist_ready,
        })
        self._notify_status()

    async def disconnect(self) -> None:
        """Leave the channel and drop every pending timer."""
        self._persist_debouncer.cancel()
        await self._stop_heartbeat()

        if self._connected:
            await self._send_presence(events.MSG_LEAVE)
            try:
                await self.transport.unsubscribe(self.topic, self._on_message)
            except Exception as exc:
                self._report(TransportError(f"Cannot unsubscribe: {exc}"), "unsubscribe")

        self._connected = False
        self._peers.clear()
        logger.debug(f"Sync [{self.id}] disconnected from '{self.channel}'")
        self._notify_status()

    async def change_channel(self, channel: str) -> None:
        """Move to another channel, reconnecting if currently connected."""
        was_connected = self._connected
        if was_connected:
            await self.disconnect()
        self.channel = channel
        self._known_version = 0
        self._snapshot = None
        self._peers.clear()
        if was_connected:
            await self.connect()

    def set_master(self, is_master: bool) -> None:
        self.is_master = is_master
        logger.info(f"Widget {self.id} -> {'MASTER' if is_master else 'SLAVE'}")
        self._notify_status()

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        if not enabled:
            self._persist_debouncer.cancel()
        self._notify_status()

    # ========== Sending ==========

    async def emit(self, name: str) -> bool:
        """Broadcast the current value of ``name``.

        Returns True when a message was sent. Nothing is sent by slaves,
        while disabled, while a received value is being applied, when not
        connected, or inside the property's throttle window.

        Raises:
            UnknownPropertyError: If ``name`` is not registered
        """
        prop = self.registry.get(name)
        if not self.is_master or not self.enabled or self._receiving or not self._connected:
            return False

        window = prop.throttle_ms if prop.throttle_ms is not None else self.throttle_ms
        if not self._throttle.allow(name, window):
            return False

        return await self._publish_property(prop)

    async def _publish_property(self, prop: SyncProperty) -> bool:
        try:
            raw = prop.read()
        except Exception as exc:
            self._report(MapSyncError(f"Cannot read property '{prop.name}': {exc}"), "read")
            return False

        payload = events.create_sync_message(self.channel, self.id, prop.name, raw)
        try:
            await self.transport.publish(self.topic, payload)
        except Exception as exc:
            self._report(TransportError(f"Broadcast failed: {exc}"), "publish")
            return False

        self._last_sync = time.time()
        return True

    async def force_sync(self) -> None:
        """Master only: send every property now and schedule a snapshot write."""
        if not self.is_master:
            return
        for prop in self.registry:
            self._throttle.reset(prop.name)
            await self.emit(prop.name)
        self.schedule_persist()

    # ========== Receiving ==========

    async def _on_message(self, payload: EventPayload) -> None:
        if payload.get("channel") != self.channel:
            return

        sender = events.message_sender(payload)
        # Our own broadcasts come back through the bus
        if sender is None or sender == self.id:
            return

        self._peers[sender] = self._clock()
        message_type = payload.get("type")

        if message_type == events.MSG_SYNC:
            self._handle_sync(payload)
        elif message_type == events.MSG_JOIN:
            logger.info(f"Peer joined '{self.channel}': {sender}")
            await self._send_presence(events.MSG_PONG)
        elif message_type == events.MSG_LEAVE:
            logger.info(f"Peer left '{self.channel}': {sender}")
            self._peers.pop(sender, None)
        elif message_type == events.MSG_PING:
            await self._send_presence(events.MSG_PONG)

    def _handle_sync(self, payload: EventPayload) -> None:
        if self.is_master or not self.enabled:
            return
        prop = self.registry.find(payload.get("property", ""))
        if prop is None:
            logger.debug(f"Ignoring unregistered property '{payload.get('property')}'")
            return
        self._apply(prop, payload.get("value"))

    def _apply(self, prop: SyncProperty, raw: Any) -> None:
        self._receiving = True
        try:
            prop.receive(raw)
            self._last_sync = time.time()
        except Exception as exc:
            self._report(MapSyncError(f"Cannot apply property '{prop.name}': {exc}"), "apply")
        finally:
            self._receiving = False

    # ========== Persistence ==========

    async def _load_snapshot(self) -> None:
        try:
            tables = await self.table_adapter.list_tables()
            if self.table_name not in tables:
                logger.info(f"Creating sync table {self.table_name}")
                await self.table_adapter.apply_user_actions([
                    ["AddTable", self.table_name, SYNC_COLUMNS],
                ])
                snapshot = None
            else:
                table = await self.table_adapter.fetch_table(self.table_name)
                row = find_row(table, "Channel", self.channel)
                snapshot = SyncSnapshot.from_record(row) if row else None
            self._grist_ready = True
        except Exception as exc:
            self._report(PersistenceError(f"Cannot load sync snapshot: {exc}"), "load")
            return

        self._snapshot = snapshot
        if snapshot is None:
            return

        self._known_version = snapshot.version
        if not self.is_master:
            for prop in self.registry.persistent():
                if prop.name in snapshot.state:
                    self._apply(prop, snapshot.state[prop.name])
            logger.info(f"Initial state loaded for '{self.channel}' (version {snapshot.version})")

    def get_snapshot(self) -> Optional[SyncSnapshot]:
        """Last snapshot read or written by this manager."""
        return self._snapshot

    def schedule_persist(self) -> None:
        """End-of-interaction hook: write the snapshot once things go quiet."""
        if not self.is_master or not self.enabled or self.table_adapter is None:
            return
        self._persist_debouncer.trigger()

    async def persist_now(self) -> bool:
        """Upsert the snapshot row for this channel.

        The write is refused when the stored row carries a version newer
        than the last one this manager read or wrote; the conflict is
        reported as ``StaleSnapshotError`` and the known version refreshed,
        so the next write goes through deliberately.
        """
        if self.table_adapter is None or not self._grist_ready:
            return False

        try:
            state = {prop.name: prop.read() for prop in self.registry.persistent()}
            table = await self.table_adapter.fetch_table(self.table_name)
            row = find_row(table, "Channel", self.channel)

            if row is not None:
                stored = SyncSnapshot.from_record(row)
                if stored.version > self._known_version:
                    known = self._known_version
                    self._known_version = stored.version
                    self._snapshot = stored
                    raise StaleSnapshotError(self.channel, stored.version, known)
                version = stored.version + 1
            else:
                version = self._known_version + 1

            snapshot = SyncSnapshot(
                channel=self.channel,
                state=state,
                master_id=self.id,
                updated_at=time.time() * 1000,
                version=version,
            )
            if row is not None:
                await self.table_adapter.apply_user_actions([
                    ["UpdateRecord", self.table_name, row["id"], snapshot.to_record()],
                ])
                snapshot.row_id = row["id"]
            else:
                result = await self.table_adapter.apply_user_actions([
                    ["AddRecord", self.table_name, None, snapshot.to_record()],
                ])
                snapshot.row_id = (result.get("retValues") or [None])[0]
        except StaleSnapshotError as exc:
            self._report(exc, "persist")
            return False
        except Exception as exc:
            self._report(PersistenceError(f"Cannot save sync snapshot: {exc}"), "persist")
            return False

        self._known_version = version
        self._snapshot = snapshot
        logger.debug(f"Snapshot saved for '{self.channel}' (version {version})")
        return True

    # ========== Presence ==========

    async def _send_presence(self, message_type: str) -> None:
        payload = events.create_presence_message(
            message_type,
            self.channel,
            self.id,
            role="master" if self.is_master else "slave",
        )
        try:
            await self.transport.publish(self.topic, payload)
        except Exception as exc:
            self._report(TransportError(f"Presence '{message_type}' failed: {exc}"), "presence")

    def _start_heartbeat(self) -> None:
        if self.heartbeat_interval_s <= 0 or self._heartbeat_task is not None:
            return
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    async def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval_s)
            await self._send_presence(events.MSG_PING)
            self.prune_stale_peers()

    def prune_stale_peers(self) -> list[str]:
        """Forget peers silent for longer than ``stale_peer_after_s``."""
        now = self._clock()
        stale = [
            peer_id for peer_id, last_seen in self._peers.items()
            if now - last_seen > self.stale_peer_after_s
        ]
        for peer_id in stale:
            logger.info(f"Dropping inactive peer {peer_id}")
            del self._peers[peer_id]
        return stale

    @property
    def peer_count(self) -> int:
        return len(self._peers)

    # ========== Status ==========

    def get_status(self) -> SyncStatus:
        return SyncStatus(
            id=self.id,
            channel=self.channel,
            is_master=self.is_master,
            is_connected=self._connected,
            enabled=self.enabled,
            properties=self.registry.names(),
            last_sync=self._last_sync,
            grist_ready=self._grist_ready,
            peer_count=len(self._peers),
        )

    def _notify_status(self) -> None:
        if self.on_status_change is not None:
            self.on_status_change(self.get_status())

    def _report(self, error: MapSyncError, operation: str) -> None:
        log_error(logger, f"sync {operation}", error, {"id": self.id, "channel": self.channel})
        if self.on_error is not None:
            self.on_error(error)
