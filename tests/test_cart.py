"""
Tests for the diner's cart
"""
import os
import random
import tempfile
import unittest
from types import SimpleNamespace

from app.client.cart import (
    CartManager,
    CartOption,
    JsonFileCartStorage,
    MemoryCartStorage,
)
from app.models import OrderStatus
from tests.support import CHUTNEY, EXTRA_HOT, MILD, SAMBAR, make_order

PANEER = SimpleNamespace(id=1, name="Paneer Tikka", price=100)
DOSA = SimpleNamespace(id=2, name="Masala Dosa", price=50)


class FailingStorage(MemoryCartStorage):
    """Memory storage whose saves can be switched off"""

    def __init__(self):
        super().__init__()
        self.fail = False

    def save(self, session_id, lines):
        if self.fail:
            raise OSError("disk full")
        super().save(session_id, lines)


class TestCartManager(unittest.TestCase):
    """Test cases for CartManager"""

    def setUp(self):
        self.storage = MemoryCartStorage()
        self.cart = CartManager(self.storage, session_id="table-7")

    def assertTotalMatchesLines(self):
        expected = sum(line.unit_price * line.quantity for line in self.cart.lines)
        self.assertAlmostEqual(self.cart.total_price, expected, places=2)

    def test_empty_cart(self):
        """Test a new cart has nothing in it"""
        self.assertTrue(self.cart.is_empty())
        self.assertEqual(self.cart.line_count, 0)
        self.assertEqual(self.cart.total_price, 0)

    def test_unit_price_includes_option_deltas(self):
        line = self.cart.add_item(DOSA, 1, [EXTRA_HOT, CHUTNEY])

        self.assertEqual(line.unit_price, 80)
        self.assertEqual(line.line_total, 80)

    def test_scenario_total_is_270(self):
        """Test 2 x 100 plus 1 x (50 + 20)"""
        self.cart.add_item(PANEER, 2)
        self.cart.add_item(DOSA, 1, [EXTRA_HOT])

        self.assertEqual(self.cart.total_price, 270)
        self.assertEqual(self.cart.line_count, 2)

    def test_total_matches_lines_after_every_mutation(self):
        rng = random.Random(7)
        option_sets = [[], [MILD], [EXTRA_HOT], [EXTRA_HOT, SAMBAR], [SAMBAR, EXTRA_HOT]]

        for _ in range(200):
            lines = self.cart.lines
            if lines and rng.random() < 0.4:
                line = rng.choice(lines)
                self.cart.update_quantity(line.line_id, rng.choice([-3, -1, 1, 2]))
            else:
                item = rng.choice([PANEER, DOSA])
                options = rng.choice(option_sets) if item is DOSA else []
                self.cart.add_item(item, rng.randint(1, 3), options)
            self.assertTotalMatchesLines()

    def test_same_options_in_any_order_merge(self):
        """Test that option order does not create a second line"""
        first = self.cart.add_item(DOSA, 1, [EXTRA_HOT, CHUTNEY])
        second = self.cart.add_item(DOSA, 2, [CHUTNEY, EXTRA_HOT])

        self.assertEqual(self.cart.line_count, 1)
        self.assertEqual(first.line_id, second.line_id)
        self.assertEqual(self.cart.lines[0].quantity, 3)

    def test_different_options_stay_separate(self):
        self.cart.add_item(DOSA, 1, [EXTRA_HOT])
        self.cart.add_item(DOSA, 1, [MILD])
        self.cart.add_item(DOSA, 1)

        self.assertEqual(self.cart.line_count, 3)
        self.assertEqual(len({line.line_id for line in self.cart.lines}), 3)

    def test_options_are_accepted_in_any_form(self):
        self.cart.add_item(DOSA, 1, [CartOption("Spice Level", "Extra hot", 20)])
        self.cart.add_item(DOSA, 1, [SimpleNamespace(**EXTRA_HOT)])

        self.assertEqual(self.cart.line_count, 1)
        self.assertEqual(self.cart.lines[0].quantity, 2)

    def test_quantity_below_one_counts_as_one(self):
        line = self.cart.add_item(PANEER, 0)
        self.assertEqual(line.quantity, 1)

    def test_reducing_to_zero_removes_line(self):
        """Test updateQuantity(lineId, -quantity) removes exactly one line"""
        keep = self.cart.add_item(PANEER, 1)
        line = self.cart.add_item(DOSA, 3, [MILD])

        result = self.cart.update_quantity(line.line_id, -3)

        self.assertIsNone(result)
        self.assertEqual(self.cart.line_count, 1)
        self.assertEqual(self.cart.lines[0].line_id, keep.line_id)

    def test_quantity_never_goes_negative(self):
        line = self.cart.add_item(PANEER, 1)
        self.cart.update_quantity(line.line_id, -5)
        self.assertTrue(self.cart.is_empty())

    def test_update_unknown_line(self):
        self.assertIsNone(self.cart.update_quantity("missing", 1))
        self.assertIsNone(self.cart.update_options("missing", [], 10))

    def test_update_options_does_not_merge(self):
        """Test that an edited line stays separate even when it collides"""
        self.cart.add_item(DOSA, 1, [EXTRA_HOT])
        mild = self.cart.add_item(DOSA, 1, [MILD])

        updated = self.cart.update_options(mild.line_id, [EXTRA_HOT], 70)

        self.assertEqual(updated.unit_price, 70)
        self.assertEqual(self.cart.line_count, 2)
        self.assertEqual(self.cart.total_price, 140)

    def test_remove_and_clear(self):
        line = self.cart.add_item(PANEER, 1)
        self.cart.add_item(DOSA, 1)

        self.cart.remove_line(line.line_id)
        self.assertEqual(self.cart.line_count, 1)

        self.cart.clear()
        self.assertTrue(self.cart.is_empty())
        self.assertEqual(self.storage.load("table-7"), [])

    def test_lines_are_copies(self):
        line = self.cart.add_item(PANEER, 1)
        self.cart.lines[0].quantity = 50
        self.assertEqual(self.cart.find_line(line.line_id).quantity, 1)

    def test_failed_save_leaves_cart_unchanged(self):
        storage = FailingStorage()
        cart = CartManager(storage, session_id="table-9")
        line = cart.add_item(PANEER, 2)

        storage.fail = True
        with self.assertRaises(OSError):
            cart.add_item(DOSA, 1)
        with self.assertRaises(OSError):
            cart.update_quantity(line.line_id, -2)

        self.assertEqual(cart.line_count, 1)
        self.assertEqual(cart.total_price, 200)

    def test_load_order_for_editing(self):
        """Test resuming edit of a submitted order"""
        order = make_order(order_id=4)

        self.cart.add_item(PANEER, 5)
        self.cart.load_order(order)

        self.assertEqual(self.cart.line_count, 2)
        self.assertEqual(self.cart.total_price, order.total_price)
        self.assertEqual(self.cart.to_order_items()[1]["selectedOptions"], [EXTRA_HOT])

    def test_to_order_items_shape(self):
        self.cart.add_item(DOSA, 2, [SAMBAR, EXTRA_HOT])

        self.assertEqual(self.cart.to_order_items(), [{
            "menuId": 2,
            "name": "Masala Dosa",
            "price": 85.0,
            "quantity": 2,
            "selectedOptions": [SAMBAR, EXTRA_HOT],
        }])

    def test_load_cart_replaces_everything(self):
        self.cart.add_item(PANEER, 1)
        self.cart.load_cart([
            {"menuId": 2, "name": "Masala Dosa", "unitPrice": 50, "quantity": 4},
        ])

        self.assertEqual(self.cart.line_count, 1)
        self.assertEqual(self.cart.total_price, 200)


class TestCartPersistence(unittest.TestCase):
    """Test cases for restoring carts from storage"""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.storage = JsonFileCartStorage(directory=self.tmpdir.name)

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_restore_after_restart(self):
        """Test that a new manager for the session sees the saved lines"""
        cart = CartManager(self.storage, session_id="table-7")
        line = cart.add_item(DOSA, 2, [EXTRA_HOT])
        cart.add_item(PANEER, 1)

        restored = CartManager(JsonFileCartStorage(directory=self.tmpdir.name), session_id="table-7")

        self.assertEqual(restored.line_count, 2)
        self.assertEqual(restored.total_price, cart.total_price)
        self.assertEqual(restored.find_line(line.line_id).selected_options,
                         [CartOption("Spice Level", "Extra hot", 20)])

    def test_sessions_are_separate(self):
        CartManager(self.storage, session_id="table-7").add_item(PANEER, 1)
        other = CartManager(self.storage, session_id="table-8")
        self.assertTrue(other.is_empty())

    def test_unreadable_snapshot_is_discarded(self):
        path = os.path.join(self.tmpdir.name, "cart-table-3.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write("{not json")

        cart = CartManager(self.storage, session_id="table-3")
        self.assertTrue(cart.is_empty())

    def test_merge_survives_restore(self):
        CartManager(self.storage, session_id="table-5").add_item(DOSA, 1, [EXTRA_HOT, SAMBAR])

        cart = CartManager(self.storage, session_id="table-5")
        cart.add_item(DOSA, 1, [SAMBAR, EXTRA_HOT])

        self.assertEqual(cart.line_count, 1)
        self.assertEqual(cart.lines[0].quantity, 2)


if __name__ == '__main__':
    unittest.main()
