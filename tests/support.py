"""
Shared test data and an isolated database per async test case.
"""
import tempfile
import unittest
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import build_engine, init_db
from app.models import OrderStatus
from app.schemas import Choice, MenuItemCreate, OptionGroup, OrderResponse
from app.services.menu import MenuCatalog

EXTRA_HOT = {"name": "Spice Level", "choice": "Extra hot", "price": 20}
MILD = {"name": "Spice Level", "choice": "Mild", "price": 0}
CHUTNEY = {"name": "Add-ons", "choice": "Chutney", "price": 10}
SAMBAR = {"name": "Add-ons", "choice": "Sambar", "price": 15}


def sample_menu() -> list[MenuItemCreate]:
    return [
        MenuItemCreate(name="Paneer Tikka", price=100, category="Starters"),
        MenuItemCreate(
            name="Masala Dosa",
            price=50,
            category="Mains",
            options=[
                OptionGroup(
                    name="Spice Level",
                    type="single",
                    choices=[Choice(name="Mild"), Choice(name="Extra hot", price=20)],
                ),
                OptionGroup(
                    name="Add-ons",
                    type="multiple",
                    choices=[
                        Choice(name="Chutney", price=10),
                        Choice(name="Sambar", price=15),
                        Choice(name="Ghee", price=25, available=False),
                    ],
                ),
            ],
        ),
        MenuItemCreate(name="Filter Coffee", price=40, category="Drinks", available=False),
    ]


def make_order(
    order_id: int = 1,
    table_number: str = "7",
    status: OrderStatus = OrderStatus.PENDING,
    items=None,
) -> OrderResponse:
    items = items or [
        {"menuId": 1, "name": "Paneer Tikka", "price": 100, "quantity": 2},
        {"menuId": 2, "name": "Masala Dosa", "price": 70, "quantity": 1,
         "selectedOptions": [EXTRA_HOT]},
    ]
    now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
    return OrderResponse.model_validate({
        "id": order_id,
        "tableNumber": table_number,
        "items": items,
        "totalPrice": round(sum(i["price"] * i["quantity"] for i in items), 2),
        "status": status.value,
        "paymentMethod": "Cash",
        "statusHistory": [{"status": "Pending", "at": now.isoformat()}],
        "createdAt": now.isoformat(),
        "updatedAt": now.isoformat(),
    })


class DatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    """Fresh SQLite database with the sample menu for every test."""

    async def asyncSetUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.engine = build_engine(f"sqlite+aiosqlite:///{self.tmpdir.name}/orders.db")
        await init_db(bind=self.engine)
        self.session_maker = async_sessionmaker(
            bind=self.engine, class_=AsyncSession, expire_on_commit=False
        )
        self.db = self.session_maker()

        catalog = MenuCatalog(self.db)
        self.menu = {}
        for item in sample_menu():
            created = await catalog.create(item)
            self.menu[created.name] = created

    async def asyncTearDown(self):
        await self.db.close()
        await self.engine.dispose()
        self.tmpdir.cleanup()
