"""
Live order views for the kitchen dashboard and a table's order page.

Both are seeded by a fetch and then kept current by applying realtime
frames ({"event": ..., "data": ...}) without re-fetching. A missed event is
repaired by the next refresh().
"""

import logging
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from app.models import OrderStatus
from app.schemas import OrderResponse, StatusUpdatePayload
from app.services.orders.state_machine import is_terminal
from app.services.realtime.base import NEW_ORDER, ORDER_UPDATED, STATUS_CHANGED, Subscription

logger = logging.getLogger(__name__)


class OrderBoard:
    """Local order state keyed by order id."""

    def __init__(self):
        self.orders: dict[int, OrderResponse] = {}

    def seed(self, orders: Iterable[OrderResponse]) -> None:
        self.orders = {order.id: order for order in orders}

    def get(self, order_id: int) -> Optional[OrderResponse]:
        return self.orders.get(order_id)

    def accepts(self, table_number: str) -> bool:
        return True

    def apply(self, frame: dict[str, Any]) -> bool:
        """Apply one realtime frame; returns True when local state changed."""
        event = frame.get("event")
        data = frame.get("data")
        try:
            if event in (NEW_ORDER, ORDER_UPDATED):
                order = OrderResponse.model_validate(data)
                if not self.accepts(order.table_number):
                    return False
                self.orders[order.id] = order
                return True
            if event == STATUS_CHANGED:
                update = StatusUpdatePayload.model_validate(data)
                order = self.orders.get(update.order_id)
                if order is None or not self.accepts(update.table_number):
                    return False
                self.orders[order.id] = order.model_copy(update={"status": update.status})
                return True
        except ValidationError as e:
            logger.warning(f"Ignoring malformed {event} frame: {e}")
        return False

    async def follow(self, subscription: Subscription) -> None:
        """Apply events from an in-process subscription until it is closed."""
        async for event in subscription:
            self.apply(event.to_frame())


class KitchenBoard(OrderBoard):
    """Every table's orders, as shown on the kitchen dashboard."""

    async def refresh(self, client) -> None:
        self.seed(await client.list_orders())

    def active(self) -> list[OrderResponse]:
        """Orders still being worked on, oldest first."""
        return sorted(
            (o for o in self.orders.values() if not is_terminal(o.status)),
            key=lambda o: (o.created_at, o.id),
        )

    def by_status(self, status: OrderStatus) -> list[OrderResponse]:
        return [o for o in self.active() if o.status == status]


class TableTracker(OrderBoard):
    """One table's orders; events for other tables are ignored."""

    def __init__(self, table_number):
        super().__init__()
        self.table_number = str(table_number)

    def accepts(self, table_number: str) -> bool:
        return str(table_number) == self.table_number

    async def refresh(self, client) -> None:
        self.seed(await client.list_table_orders(self.table_number))

    def status_of(self, order_id: int) -> Optional[OrderStatus]:
        order = self.orders.get(order_id)
        return order.status if order else None
