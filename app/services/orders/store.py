"""
Order Store

Persisted order documents, the source of truth for status. Exposes the
collaborator contract the order flow relies on:

    create(order) -> Order
    get(id) -> Order
    list_by_table(table) -> [Order]
    patch(id, fields) -> Order

Every write is a single-row update; concurrent writers are last-write-wins.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidOrderError, OrderNotFoundError
from app.models import Order, OrderStatus
from app.schemas import TOTAL_TOLERANCE, OrderCreate, OrderItemSchema, order_total

logger = logging.getLogger(__name__)

PATCHABLE_FIELDS = frozenset({
    "items",
    "total_price",
    "status",
    "status_history",
    "payment_method",
    "payment_reference",
    "note",
})


def serialize_items(items: list[OrderItemSchema]) -> list[dict[str, Any]]:
    return [item.model_dump(mode="json", by_alias=True) for item in items]


def history_entry(status: OrderStatus, at: datetime) -> dict[str, str]:
    return {"status": OrderStatus(status).value, "at": at.isoformat()}


class OrderStore:
    """Order persistence over an async SQLAlchemy session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, data: OrderCreate, payment_reference: Optional[str] = None) -> Order:
        now = datetime.now(timezone.utc)
        record = Order(
            table_number=data.table_number,
            items=serialize_items(data.items),
            total_price=data.computed_total,
            note=data.note,
            payment_method=data.payment_method,
            payment_reference=payment_reference,
            status=OrderStatus.PENDING,
            status_history=[history_entry(OrderStatus.PENDING, now)],
            created_at=now,
            updated_at=now,
        )
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)
        logger.info(f"Order #{record.id} created for table {record.table_number} ({record.total_price:.2f})")
        return record

    async def get(self, order_id: int) -> Order:
        record = await self.db.get(Order, order_id, populate_existing=True)
        if record is None:
            raise OrderNotFoundError(order_id)
        return record

    async def list_by_table(self, table_number: str) -> list[Order]:
        result = await self.db.execute(
            select(Order)
            .where(Order.table_number == str(table_number))
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        return list(result.scalars().all())

    async def list(
        self,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> tuple[int, list[Order]]:
        """Newest first, with the unpaginated total."""
        query = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
        count_query = select(func.count(Order.id))
        if status is not None:
            query = query.where(Order.status == status)
            count_query = count_query.where(Order.status == status)

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(query.offset(skip).limit(limit))
        return total, list(result.scalars().all())

    async def patch(self, order_id: int, fields: dict[str, Any]) -> Order:
        """
        Apply a partial update and bump updatedAt.

        When items change the stored total is recomputed from them; a
        supplied total that disagrees is rejected.
        """
        unknown = set(fields) - PATCHABLE_FIELDS
        if unknown:
            raise InvalidOrderError(f"Fields cannot be patched: {sorted(unknown)}")

        record = await self.get(order_id)
        fields = dict(fields)

        if "items" in fields:
            items = [OrderItemSchema.model_validate(item) for item in fields["items"]]
            if not items:
                raise InvalidOrderError("An order needs at least one item")
            computed = order_total(items)
            supplied = fields.get("total_price")
            if supplied is not None and abs(supplied - computed) > TOTAL_TOLERANCE:
                raise InvalidOrderError(
                    f"totalPrice {supplied} does not match items total {computed}"
                )
            fields["items"] = serialize_items(items)
            fields["total_price"] = computed
        elif "total_price" in fields:
            raise InvalidOrderError("totalPrice is derived from items")

        for key, value in fields.items():
            setattr(record, key, value)
        record.updated_at = datetime.now(timezone.utc)

        await self.db.commit()
        await self.db.refresh(record)
        logger.debug(f"Order #{order_id} patched: {sorted(fields)}")
        return record
