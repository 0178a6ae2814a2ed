"""
Order Service

Applies the state machine to stored orders and broadcasts every change.
A change is complete only once it is persisted and published:

    submit          → store.create  → new-order to kitchen
    status change   → store.patch   → status-changed to kitchen + table
    item edit       → store.patch   → order-updated to kitchen + table

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    InvalidOrderError,
    InvalidTransitionError,
    MenuItemNotFoundError,
    TransientError,
)
from app.models import Order, OrderStatus, PaymentMethod, SelectionMode
from app.schemas import (
    OrderCreate,
    OrderEdit,
    OrderItemSchema,
    OrderPatch,
    OrderResponse,
    TOTAL_TOLERANCE,
    StatusUpdatePayload,
    order_total,
)
from app.services.menu import MenuCatalog
from app.services.orders import state_machine
from app.services.orders.store import OrderStore, history_entry, serialize_items
from app.services.payment import BasePaymentService, get_payment_service
from app.services.realtime import BaseBroadcastChannel, get_broadcast_channel

logger = logging.getLogger(__name__)


class OrderService:
    """
    Order lifecycle coordinator.

    Args:
        db: Session used by the order store and menu catalog
        channel: Broadcast channel for new-order, status-changed and order-updated
        payment_service: Payment collection for Online orders
    """

    def __init__(
        self,
        db: AsyncSession,
        channel: Optional[BaseBroadcastChannel] = None,
        payment_service: Optional[BasePaymentService] = None,
    ):
        self.store = OrderStore(db)
        self.catalog = MenuCatalog(db)
        self.channel = channel or get_broadcast_channel()
        self.payment_service = payment_service or get_payment_service()

    # =========================================================================
    # VALIDATION
    # =========================================================================

    async def validate_items(self, items: list[OrderItemSchema]) -> None:
        """
        Check every line against the catalog.

        Raises:
            MenuItemNotFoundError: unknown menu id
            InvalidOrderError: unavailable item or choice, unknown option
                group or choice, more than one choice in a single group, or
                a price that differs from the catalog
        """
        menu = await self.catalog.get_many(item.menu_id for item in items)

        for item in items:
            menu_item = menu.get(item.menu_id)
            if menu_item is None:
                raise MenuItemNotFoundError(item.menu_id)
            if not menu_item.available:
                raise InvalidOrderError(f"{menu_item.name} is currently unavailable")

            per_group: dict[str, int] = {}
            for selected in item.selected_options:
                group = menu_item.find_group(selected.name)
                if group is None:
                    raise InvalidOrderError(
                        f"{menu_item.name} has no option group {selected.name!r}"
                    )
                choice = group.find_choice(selected.choice)
                if choice is None:
                    raise InvalidOrderError(
                        f"{selected.choice!r} is not a choice of {group.name}"
                    )
                if not choice.available:
                    raise InvalidOrderError(f"{choice.name} is currently unavailable")
                if abs(selected.price - choice.price) > TOTAL_TOLERANCE:
                    raise InvalidOrderError(
                        f"{group.name}: {choice.name} costs {choice.price:.2f}, not {selected.price:.2f}"
                    )
                per_group[group.name] = per_group.get(group.name, 0) + 1
                if group.type == SelectionMode.SINGLE and per_group[group.name] > 1:
                    raise InvalidOrderError(f"Choose only one option for {group.name}")

            unit_price = menu_item.price + sum(s.price for s in item.selected_options)
            if abs(item.price - unit_price) > TOTAL_TOLERANCE:
                raise InvalidOrderError(
                    f"{menu_item.name} costs {unit_price:.2f} with these options, not {item.price:.2f}"
                )

    async def _payment_reference(self, method: PaymentMethod, total: float, table_number: str) -> Optional[str]:
        if method != PaymentMethod.ONLINE:
            return None
        result = await self.payment_service.request_payment(total, table_number=table_number)
        if not result.success:
            logger.warning(f"Payment request failed for table {table_number}: {result.error_code}")
            raise TransientError(result.error_message or "Payment failed")
        return result.reference

    # =========================================================================
    # BROADCAST
    # =========================================================================

    async def _publish_status(self, record: Order) -> OrderResponse:
        order = OrderResponse.from_record(record)
        await self.channel.publish_status_changed(
            StatusUpdatePayload(
                order_id=order.id,
                table_number=order.table_number,
                status=order.status,
            )
        )
        return order

    async def _publish_items(self, record: Order) -> OrderResponse:
        order = OrderResponse.from_record(record)
        await self.channel.publish_order_updated(order)
        return order

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get(self, order_id: int) -> OrderResponse:
        return OrderResponse.from_record(await self.store.get(order_id))

    async def list_by_table(self, table_number: str) -> list[OrderResponse]:
        return [OrderResponse.from_record(o) for o in await self.store.list_by_table(table_number)]

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def submit(self, data: OrderCreate) -> OrderResponse:
        """Create a Pending order from a submitted cart and announce it."""
        await self.validate_items(data.items)
        reference = await self._payment_reference(
            data.payment_method, data.computed_total, data.table_number
        )
        record = await self.store.create(data, payment_reference=reference)
        order = OrderResponse.from_record(record)
        await self.channel.publish_new_order(order)
        return order

    async def _transition(self, record: Order, target: OrderStatus) -> OrderResponse:
        target = state_machine.validate_transition(record.status, target)
        now = datetime.now(timezone.utc)
        record = await self.store.patch(record.id, {
            "status": target,
            "status_history": list(record.status_history or []) + [history_entry(target, now)],
        })
        logger.info(f"Order #{record.id} (table {record.table_number}) → {target.value}")
        return await self._publish_status(record)

    async def set_status(self, order_id: int, target: OrderStatus) -> OrderResponse:
        """Move an order to `target` if the state machine allows it."""
        record = await self.store.get(order_id)
        return await self._transition(record, target)

    async def advance(self, order_id: int) -> OrderResponse:
        """Kitchen action: move one step along Pending → ... → Completed."""
        record = await self.store.get(order_id)
        target = state_machine.next_status(record.status)
        if target is None:
            raise InvalidTransitionError(
                record.status.value, record.status.value,
                f"Order is already {record.status.value}",
            )
        return await self._transition(record, target)

    async def cancel(self, order_id: int) -> OrderResponse:
        """Customer or staff cancellation; only legal while Pending."""
        return await self.set_status(order_id, OrderStatus.CANCELLED)

    async def remove_item(self, order_id: int, index: int) -> OrderResponse:
        """Drop one line from a Pending order; dropping the last one cancels it."""
        record = await self.store.get(order_id)
        state_machine.ensure_editable(record.status)

        items = list(record.items or [])
        if not 0 <= index < len(items):
            raise InvalidOrderError(f"Order #{order_id} has no item at position {index}")
        del items[index]

        if not items:
            logger.info(f"Order #{order_id}: last item removed, cancelling")
            return await self._transition(record, OrderStatus.CANCELLED)

        record = await self.store.patch(order_id, {"items": items})
        logger.info(f"Order #{order_id}: item {index} removed, total now {record.total_price:.2f}")
        return await self._publish_items(record)

    async def replace_items(self, order_id: int, edit: OrderEdit) -> OrderResponse:
        """Edit-order flow: the whole cart replaces the Pending order's items."""
        record = await self.store.get(order_id)
        state_machine.ensure_editable(record.status)
        await self.validate_items(edit.items)

        total = order_total(edit.items)
        method = edit.payment_method or record.payment_method
        fields = {
            "items": serialize_items(edit.items),
            "total_price": total,
            "payment_method": method,
        }
        if "note" in edit.model_fields_set:
            fields["note"] = edit.note
        if method == PaymentMethod.ONLINE:
            fields["payment_reference"] = await self._payment_reference(method, total, record.table_number)
        else:
            fields["payment_reference"] = None

        record = await self.store.patch(order_id, fields)
        logger.info(f"Order #{order_id} edited: {len(edit.items)} items, total {total:.2f}")
        return await self._publish_items(record)

    async def patch(self, order_id: int, patch: OrderPatch) -> OrderResponse:
        """PATCH /api/orders/{id}: a status change or a full item replacement."""
        if patch.status is not None:
            return await self.set_status(order_id, patch.status)
        return await self.replace_items(order_id, patch.to_edit())
