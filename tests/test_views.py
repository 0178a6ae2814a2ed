"""
Tests for the kitchen board and table tracker
"""
import unittest

from app.client.views import KitchenBoard, TableTracker
from app.models import OrderStatus
from app.services.realtime import KITCHEN_ROOM, InMemoryBroadcastChannel
from tests.support import make_order


def status_frame(order_id, table, status):
    return {
        "event": "status-changed",
        "data": {"orderId": order_id, "tableNumber": table, "status": status},
    }


class TestKitchenBoard(unittest.TestCase):

    def setUp(self):
        self.board = KitchenBoard()

    def test_new_order_then_status_change(self):
        order = make_order(order_id=1)

        self.assertTrue(self.board.apply({"event": "new-order", "data": order.to_payload()}))
        self.assertTrue(self.board.apply(status_frame(1, "7", "Cooking")))

        self.assertEqual(self.board.get(1).status, OrderStatus.COOKING)
        self.assertEqual(self.board.get(1).total_price, 270)

    def test_status_for_unknown_order_is_ignored(self):
        self.assertFalse(self.board.apply(status_frame(42, "7", "Cooking")))

    def test_malformed_and_foreign_frames_are_ignored(self):
        self.assertFalse(self.board.apply({"event": "new-order", "data": {"id": "x"}}))
        self.assertFalse(self.board.apply({"event": "joined", "data": {"room": "kitchen"}}))

    def test_active_orders(self):
        self.board.seed([
            make_order(order_id=1, status=OrderStatus.COOKING),
            make_order(order_id=2, status=OrderStatus.COMPLETED),
            make_order(order_id=3, status=OrderStatus.PENDING),
        ])

        self.assertEqual([o.id for o in self.board.active()], [1, 3])
        self.assertEqual([o.id for o in self.board.by_status(OrderStatus.PENDING)], [3])


class TestTableTracker(unittest.TestCase):

    def setUp(self):
        self.tracker = TableTracker(7)
        self.tracker.seed([make_order(order_id=1, table_number="7")])

    def test_own_updates_apply(self):
        self.assertTrue(self.tracker.apply(status_frame(1, 7, "Cooking")))
        self.assertEqual(self.tracker.status_of(1), OrderStatus.COOKING)

    def test_edited_order_replaces_items(self):
        edited = make_order(order_id=1, table_number="7", items=[
            {"menuId": 1, "name": "Paneer Tikka", "price": 100, "quantity": 5},
        ])
        foreign = make_order(order_id=1, table_number="8")

        self.assertFalse(self.tracker.apply({"event": "order-updated", "data": foreign.to_payload()}))
        self.assertTrue(self.tracker.apply({"event": "order-updated", "data": edited.to_payload()}))

        self.assertEqual(self.tracker.get(1).total_price, 500)
        self.assertEqual([i.quantity for i in self.tracker.get(1).items], [5])

    def test_other_tables_are_ignored(self):
        other = make_order(order_id=2, table_number="8")

        self.assertFalse(self.tracker.apply({"event": "new-order", "data": other.to_payload()}))
        self.assertFalse(self.tracker.apply(status_frame(1, "8", "Cooking")))
        self.assertEqual(self.tracker.status_of(1), OrderStatus.PENDING)
        self.assertIsNone(self.tracker.status_of(2))


class TestFollowSubscription(unittest.IsolatedAsyncioTestCase):

    async def test_board_follows_room_until_closed(self):
        channel = InMemoryBroadcastChannel()
        board = KitchenBoard()
        subscription = channel.join(KITCHEN_ROOM)

        await channel.publish_new_order(make_order(order_id=5, table_number="2"))
        await channel.relay("update-status", {"orderId": 5, "tableNumber": "2", "status": "Cooking"})
        subscription.close()

        await board.follow(subscription)

        self.assertEqual(board.get(5).status, OrderStatus.COOKING)


if __name__ == '__main__':
    unittest.main()
