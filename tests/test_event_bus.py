import asyncio
import unittest

from mapsync.core.errors import TransportError
from mapsync.core.event_bus import BroadcastBus


class BroadcastBusTest(unittest.IsolatedAsyncioTestCase):
    async def test_publish_delivers_payload(self) -> None:
        bus = BroadcastBus()
        seen = []

        async def handler(payload):
            seen.append(payload)

        await bus.subscribe("demo", handler)
        await bus.publish("demo", {"value": 42})
        await asyncio.sleep(0)  # allow scheduled tasks to run

        self.assertEqual(seen, [{"value": 42}])

    async def test_each_subscriber_gets_its_own_copy(self) -> None:
        bus = BroadcastBus()
        seen = []

        async def mutating(payload):
            payload["value"] = "changed"

        async def reader(payload):
            seen.append(payload["value"])

        await bus.subscribe("demo", mutating)
        await bus.subscribe("demo", reader)
        await bus.publish("demo", {"value": "original"})
        await asyncio.sleep(0)

        self.assertEqual(seen, ["original"])

    async def test_channels_are_isolated(self) -> None:
        bus = BroadcastBus()
        seen = []

        async def handler(payload):
            seen.append(payload)

        await bus.subscribe("t3d-a", handler)
        await bus.publish("t3d-b", {"value": 1})
        await asyncio.sleep(0)

        self.assertEqual(seen, [])

    async def test_clear_drops_subscriptions(self) -> None:
        bus = BroadcastBus()
        seen = []

        async def handler(payload):
            seen.append(payload)

        await bus.subscribe("demo", handler)
        bus.clear()
        await bus.publish("demo", {"value": 1})
        await asyncio.sleep(0)

        self.assertEqual(seen, [])
        self.assertEqual(bus.subscriber_count("demo"), 0)

    async def test_unsubscribe(self) -> None:
        bus = BroadcastBus()

        async def handler(payload):
            pass

        await bus.subscribe("demo", handler)
        await bus.subscribe("demo", handler)
        self.assertEqual(bus.subscriber_count("demo"), 1)

        await bus.unsubscribe("demo", handler)
        self.assertEqual(bus.subscriber_count("demo"), 0)

    async def test_handler_failure_isolated(self) -> None:
        bus = BroadcastBus()
        seen = []

        async def bad_handler(payload):
            raise RuntimeError("boom")

        async def good_handler(payload):
            seen.append(payload.get("value"))

        await bus.subscribe("demo", bad_handler)
        await bus.subscribe("demo", good_handler)
        await bus.publish("demo", {"value": 7})
        await asyncio.sleep(0)

        self.assertEqual(seen, [7])

    async def test_non_json_payload_rejected(self) -> None:
        bus = BroadcastBus()
        with self.assertRaises(TransportError):
            await bus.publish("demo", {"value": object()})

    async def test_closed_bus_refuses_traffic(self) -> None:
        bus = BroadcastBus()
        bus.close()

        self.assertTrue(bus.closed)
        with self.assertRaises(TransportError):
            await bus.publish("demo", {"value": 1})

        async def handler(payload):
            pass

        with self.assertRaises(TransportError):
            await bus.subscribe("demo", handler)


if __name__ == "__main__":
    unittest.main()
