"""
Dinner Rush Simulation Script

Simulates many tables ordering at once while the kitchen works the queue,
to exercise the state machine, the broadcast fan-out and the Excel export.
Run from project root (with the API running): python scripts/simulate.py

Author: Khalil_Bannouri
Version: 4.0.0
"""

import argparse
import asyncio
import os
import random
import sys
import time
from datetime import datetime
from typing import Any

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from app.client import CartManager, MemoryCartStorage, OrderingClient
from app.core.exceptions import OrderingError
from app.models import OrderStatus, SelectionMode

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_TABLES = 20
CANCEL_RATE = 0.15
NOTES = [None, "Less oil", "No onions", "Birthday table", "Kids menu"]


def pick_options(menu_item) -> list[dict[str, Any]]:
    """Random valid customization for a menu item."""
    selected = []
    for group in menu_item.options:
        choices = [c for c in group.choices if c.available]
        if not choices:
            continue
        if group.type == SelectionMode.SINGLE:
            picked = [random.choice(choices)]
        else:
            picked = random.sample(choices, k=random.randint(0, len(choices)))
        selected.extend({"name": group.name, "choice": c.name, "price": c.price} for c in picked)
    return selected


def fill_cart(cart: CartManager, menu: list) -> None:
    for _ in range(random.randint(1, 4)):
        item = random.choice(menu)
        cart.add_item(item, random.randint(1, 3), pick_options(item))


async def table_session(
    client: OrderingClient,
    table: int,
    menu: list,
) -> dict[str, Any]:
    """One table orders, then either cancels or lets the kitchen finish."""
    cart = CartManager(MemoryCartStorage(), session_id=f"table-{table}")
    fill_cart(cart, menu)
    expected_total = cart.total_price
    start_time = time.time()

    try:
        order = await client.submit_cart(
            cart,
            table_number=table,
            payment_method=random.choice(["Cash", "Online"]),
            note=random.choice(NOTES),
        )
        if random.random() < CANCEL_RATE:
            order = await client.cancel_order(order.id)
        else:
            while order.status != OrderStatus.COMPLETED:
                await asyncio.sleep(random.uniform(0.05, 0.2))
                order = await client.advance_order(order.id)

        elapsed = round(time.time() - start_time, 3)
        return {
            "table": table,
            "success": True,
            "order_id": order.id,
            "status": order.status.value,
            "total": order.total_price,
            "total_matches": abs(order.total_price - expected_total) < 0.005,
            "time": elapsed,
        }
    except OrderingError as e:
        elapsed = round(time.time() - start_time, 3)
        return {
            "table": table,
            "success": False,
            "error": e.detail[:100],
            "time": elapsed,
        }


async def check_policies(client: OrderingClient, menu: list) -> None:
    """Cancelling after cooking started must be refused."""
    cart = CartManager(MemoryCartStorage(), session_id="policy-check")
    cart.add_item(menu[0], 1)
    order = await client.submit_cart(cart, table_number="policy")
    await client.advance_order(order.id)
    try:
        await client.cancel_order(order.id)
        print("   ❌ Cooking order was cancelled")
    except OrderingError as e:
        print(f"   ✅ Cancel refused: {e.detail}")
    try:
        await client.set_status(order.id, OrderStatus.COMPLETED)
        print("   ❌ Kitchen step was skipped")
    except OrderingError as e:
        print(f"   ✅ Skip refused: {e.detail}")


async def run_simulation(num_tables: int = TOTAL_TABLES) -> dict[str, Any]:
    """
    Run the dinner rush.

    Args:
        num_tables: Number of tables ordering concurrently
    """
    print("=" * 70)
    print("🔥 DINNER RUSH SIMULATION")
    print("=" * 70)
    print(f"📋 Tables: {num_tables}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with OrderingClient(base_url=API_BASE_URL, timeout=30.0) as client:
        menu = [item for item in await client.list_menu() if item.available]
        if not menu:
            print("\n❌ No available menu items. Create some via POST /api/menu first.")
            return {"total": 0, "successful": 0, "failed": 0}

        print("\n🧪 Policy checks...")
        await check_policies(client, menu)

        print("\n🚀 Tables ordering...\n")
        results = await asyncio.gather(
            *(table_session(client, table, menu) for table in range(1, num_tables + 1))
        )

    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    mismatched = [r for r in successful if not r["total_matches"]]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Successful Tables: {len(successful)}/{num_tables}")
    print(f"❌ Failed Tables: {len(failed)}/{num_tables}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        completed = [r for r in successful if r["status"] == OrderStatus.COMPLETED.value]
        revenue = sum(r["total"] for r in completed)
        print(f"\n📈 Completed: {len(completed)}, Cancelled: {len(successful) - len(completed)}")
        print(f"   💰 Revenue: {revenue:.2f}")
        print(f"   Totals matching carts: {len(successful) - len(mismatched)}/{len(successful)}")

    if failed:
        print("\n⚠️  Failed Table Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Table {f['table']}: {f.get('error', 'Unknown error')}")

    print("\n" + "=" * 70)
    print("🔍 VERIFICATION STEPS")
    print("=" * 70)
    print("1. Check Celery terminal - every finished order is exported")
    print("2. Run: python scripts/verify.py")
    print("3. GET /api/reports/summary for revenue and best sellers")
    print("=" * 70)

    return {
        "total": num_tables,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Simulate a dinner rush against the API")
    parser.add_argument("--tables", type=int, default=TOTAL_TABLES, help="Number of tables")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url
    asyncio.run(run_simulation(args.tables))
