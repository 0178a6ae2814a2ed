"""
Tests for kitchen and table room broadcasting
"""
import asyncio
import fnmatch
import unittest
from unittest.mock import patch

from pydantic import ValidationError
from redis.exceptions import ConnectionError as RedisConnectionError

from app.schemas import StatusUpdatePayload
from app.services.realtime import (
    KITCHEN_ROOM,
    NEW_ORDER,
    STATUS_CHANGED,
    InMemoryBroadcastChannel,
    RedisBroadcastChannel,
    SubscriptionClosed,
    is_valid_room,
    table_room,
)
from app.services.realtime import redis_channel


class TestRooms(unittest.TestCase):

    def test_room_names(self):
        self.assertEqual(table_room(7), "table-7")
        self.assertTrue(is_valid_room("kitchen"))
        self.assertTrue(is_valid_room("table-12"))
        self.assertFalse(is_valid_room("table-"))
        self.assertFalse(is_valid_room("lobby"))


class TestInMemoryBroadcastChannel(unittest.IsolatedAsyncioTestCase):
    """Test cases for room-scoped delivery"""

    async def asyncSetUp(self):
        self.channel = InMemoryBroadcastChannel(queue_size=10)

    async def test_delivery_is_scoped_to_room(self):
        kitchen = self.channel.join(KITCHEN_ROOM)
        table7 = self.channel.join(table_room(7))

        await self.channel.publish(KITCHEN_ROOM, NEW_ORDER, {"id": 1})

        event = await kitchen.get()
        self.assertEqual(event.to_frame(), {"event": NEW_ORDER, "data": {"id": 1}})
        self.assertIsNone(table7.get_nowait())

    async def test_status_changed_reaches_kitchen_and_own_table_only(self):
        kitchen = self.channel.join(KITCHEN_ROOM)
        table7 = self.channel.join("table-7")
        table8 = self.channel.join("table-8")

        await self.channel.relay(
            "update-status", {"orderId": 3, "tableNumber": 7, "status": "Cooking"}
        )

        expected = {"orderId": 3, "tableNumber": "7", "status": "Cooking"}
        for subscription in (kitchen, table7):
            event = subscription.get_nowait()
            self.assertEqual(event.name, STATUS_CHANGED)
            self.assertEqual(event.payload, expected)
        self.assertIsNone(table8.get_nowait())

    async def test_relay_new_order_goes_to_kitchen(self):
        kitchen = self.channel.join(KITCHEN_ROOM)
        await self.channel.relay("new-order", {"id": 9, "tableNumber": "2"})
        self.assertEqual(kitchen.get_nowait().payload["id"], 9)

    async def test_relay_rejects_unknown_or_malformed_events(self):
        with self.assertRaises(ValueError):
            await self.channel.relay("delete-order", {})
        with self.assertRaises(ValidationError):
            await self.channel.relay("update-status", {"orderId": 1, "status": "Eaten"})
        with self.assertRaises(ValueError):
            await self.channel.relay("new-order", "not an order")

    async def test_unknown_room_is_rejected(self):
        with self.assertRaises(ValueError):
            self.channel.join("lobby")

    async def test_one_subscription_many_rooms(self):
        subscription = self.channel.subscribe(KITCHEN_ROOM, "table-1")
        await self.channel.publish("table-1", STATUS_CHANGED, {"n": 1})
        await self.channel.publish(KITCHEN_ROOM, STATUS_CHANGED, {"n": 2})

        self.assertEqual(subscription.pending(), 2)

        subscription.leave("table-1")
        await self.channel.publish("table-1", STATUS_CHANGED, {"n": 3})
        self.assertEqual(subscription.pending(), 2)

    async def test_close_detaches_from_every_room(self):
        """Test that a closed view leaves no listeners behind"""
        subscription = self.channel.subscribe(KITCHEN_ROOM, "table-4")
        subscription.close()

        self.assertEqual(self.channel.room_size(KITCHEN_ROOM), 0)
        self.assertEqual(self.channel.room_size("table-4"), 0)
        with self.assertRaises(SubscriptionClosed):
            await subscription.get()
        with self.assertRaises(ValueError):
            subscription.join(KITCHEN_ROOM)

    async def test_context_manager_closes(self):
        async with self.channel.join(KITCHEN_ROOM) as subscription:
            self.assertEqual(self.channel.room_size(KITCHEN_ROOM), 1)
        self.assertTrue(subscription.closed)
        self.assertEqual(self.channel.room_size(KITCHEN_ROOM), 0)

    async def test_iteration_drains_then_stops(self):
        subscription = self.channel.join(KITCHEN_ROOM)
        await self.channel.publish(KITCHEN_ROOM, NEW_ORDER, {"id": 1})
        await self.channel.publish(KITCHEN_ROOM, NEW_ORDER, {"id": 2})
        subscription.close()

        received = [event.payload["id"] async for event in subscription]
        self.assertEqual(received, [1, 2])

    async def test_full_buffer_drops_events(self):
        """Test best-effort delivery when a subscriber falls behind"""
        channel = InMemoryBroadcastChannel(queue_size=2)
        slow = channel.join(KITCHEN_ROOM)
        fast = channel.join(KITCHEN_ROOM)

        for i in range(3):
            await channel.publish(KITCHEN_ROOM, NEW_ORDER, {"id": i})
            await fast.get()

        self.assertEqual(slow.pending(), 2)
        self.assertEqual(slow.dropped, 1)
        self.assertEqual(fast.dropped, 0)

    async def test_stop_closes_subscriptions(self):
        subscription = self.channel.join(KITCHEN_ROOM)
        await self.channel.stop()
        self.assertTrue(subscription.closed)
        self.assertTrue(await self.channel.health_check())


class FakePubSub:
    """Pattern subscription on FakeRedis; listen() yields redis-py style messages."""

    def __init__(self, server):
        self.server = server
        self.messages = asyncio.Queue()
        self.patterns = []
        self.closed = False

    async def psubscribe(self, pattern):
        if self.server.down:
            raise RedisConnectionError("Connection refused")
        self.patterns.append(pattern)
        self.server.pubsubs.append(self)
        self.messages.put_nowait({"type": "psubscribe", "pattern": None, "channel": pattern, "data": 1})

    async def listen(self):
        while True:
            message = await self.messages.get()
            if isinstance(message, Exception):
                raise message
            yield message

    async def aclose(self):
        self.closed = True
        if self in self.server.pubsubs:
            self.server.pubsubs.remove(self)


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the broadcast channel."""

    def __init__(self):
        self.pubsubs = []
        self.published = []
        self.down = False

    def pubsub(self):
        return FakePubSub(self)

    async def publish(self, channel, message):
        if self.down:
            raise RedisConnectionError("Connection refused")
        self.published.append((channel, message))
        receivers = [
            p for p in self.pubsubs
            if any(fnmatch.fnmatchcase(channel, pattern) for pattern in p.patterns)
        ]
        for pubsub in receivers:
            pubsub.messages.put_nowait({
                "type": "pmessage",
                "pattern": pubsub.patterns[0],
                "channel": channel,
                "data": message,
            })
        return len(receivers)

    async def ping(self):
        if self.down:
            raise RedisConnectionError("Connection refused")
        return True

    async def aclose(self):
        pass

    def drop_connections(self):
        for pubsub in list(self.pubsubs):
            pubsub.messages.put_nowait(RedisConnectionError("Connection reset by peer"))


class TestRedisBroadcastChannel(unittest.IsolatedAsyncioTestCase):
    """Test cases for cross-worker fan-out through Redis pub/sub"""

    LOGGER = "app.services.realtime.redis_channel"

    async def asyncSetUp(self):
        self.server = FakeRedis()
        patcher = patch.object(redis_channel.aioredis, "from_url", return_value=self.server)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.channel = RedisBroadcastChannel(
            redis_url="redis://broadcast.test:6379/0",
            channel_prefix="test:room:",
            queue_size=10,
            reconnect_delay=0.01,
        )
        await self.channel.start()

    async def asyncTearDown(self):
        await self.channel.stop()

    async def next_event(self, subscription):
        return await asyncio.wait_for(subscription.get(), timeout=1)

    async def wait_until(self, condition):
        for _ in range(200):
            if condition():
                return
            await asyncio.sleep(0.01)
        self.fail("condition never became true")

    async def test_rooms_map_to_prefixed_channels(self):
        kitchen = self.channel.join(KITCHEN_ROOM)
        table7 = self.channel.join(table_room(7))

        await self.channel.publish_status_changed(
            StatusUpdatePayload(order_id=3, table_number="7", status="Cooking")
        )

        self.assertEqual(
            [channel for channel, _ in self.server.published],
            ["test:room:kitchen", "test:room:table-7"],
        )
        for subscription, room in ((kitchen, KITCHEN_ROOM), (table7, "table-7")):
            event = await self.next_event(subscription)
            self.assertEqual(event.room, room)
            self.assertEqual(event.name, STATUS_CHANGED)
            self.assertEqual(event.payload, {"orderId": 3, "tableNumber": "7", "status": "Cooking"})

    async def test_other_tables_do_not_receive(self):
        table7 = self.channel.join(table_room(7))
        table8 = self.channel.join(table_room(8))

        await self.channel.publish(table_room(8), STATUS_CHANGED, {"n": 1})

        self.assertEqual((await self.next_event(table8)).payload, {"n": 1})
        self.assertEqual(table7.pending(), 0)

    async def test_malformed_messages_are_skipped(self):
        kitchen = self.channel.join(KITCHEN_ROOM)
        pubsub = self.server.pubsubs[0]

        with self.assertLogs(self.LOGGER, level="WARNING") as logs:
            for data in ("not json", "[1, 2]"):
                pubsub.messages.put_nowait({
                    "type": "pmessage",
                    "pattern": "test:room:*",
                    "channel": "test:room:kitchen",
                    "data": data,
                })
            await self.channel.publish(KITCHEN_ROOM, NEW_ORDER, {"id": 1})
            event = await self.next_event(kitchen)

        self.assertEqual(event.name, NEW_ORDER)
        self.assertEqual(event.payload, {"id": 1})
        self.assertEqual(len([line for line in logs.output if "malformed" in line]), 2)

    async def test_publish_failure_is_logged_not_raised(self):
        self.server.down = True

        with self.assertLogs(self.LOGGER, level="ERROR") as logs:
            await self.channel.publish(KITCHEN_ROOM, NEW_ORDER, {"id": 1})

        self.assertIn("Failed to publish new-order to kitchen", logs.output[0])
        self.assertEqual(self.server.published, [])

    async def test_listener_resubscribes_after_connection_drop(self):
        kitchen = self.channel.join(KITCHEN_ROOM)
        first = self.server.pubsubs[0]

        with self.assertLogs(self.LOGGER, level="INFO") as logs:
            self.server.drop_connections()
            await self.wait_until(
                lambda: self.server.pubsubs and self.server.pubsubs[0] is not first
            )

        self.assertTrue(first.closed)
        self.assertTrue(any("lost its connection" in line for line in logs.output))
        self.assertTrue(any("re-subscribed" in line for line in logs.output))

        await self.channel.publish(KITCHEN_ROOM, NEW_ORDER, {"id": 2})
        self.assertEqual((await self.next_event(kitchen)).payload, {"id": 2})
        self.assertTrue(await self.channel.health_check())

    async def test_resubscribe_retries_while_redis_is_down(self):
        kitchen = self.channel.join(KITCHEN_ROOM)
        self.server.down = True
        self.server.drop_connections()
        await self.wait_until(lambda: not self.server.pubsubs)
        await asyncio.sleep(0.05)

        self.server.down = False
        await self.wait_until(lambda: self.server.pubsubs)

        await self.channel.publish(KITCHEN_ROOM, NEW_ORDER, {"id": 3})
        self.assertEqual((await self.next_event(kitchen)).payload, {"id": 3})

    async def test_health_check_fails_when_listener_stops(self):
        self.assertTrue(await self.channel.health_check())

        self.channel._listener.cancel()
        await asyncio.wait([self.channel._listener])

        with self.assertLogs(self.LOGGER, level="ERROR"):
            self.assertFalse(await self.channel.health_check())


if __name__ == '__main__':
    unittest.main()
