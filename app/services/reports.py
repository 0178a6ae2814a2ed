"""
Admin reporting: revenue and order counts over the order history.
"""

import logging
from collections import Counter
from typing import Iterable

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import MenuItem, Order, OrderStatus
from app.schemas import OrderResponse, ReportSummary, TopItem
from app.services.orders.state_machine import ACTIVE_STATUSES

logger = logging.getLogger(__name__)


def summarize(orders: Iterable[OrderResponse], menu_items: int, top_n: int = 5) -> ReportSummary:
    """Cancelled orders count toward totals but never toward revenue."""
    orders = list(orders)
    revenue = sum(o.total_price for o in orders if o.status != OrderStatus.CANCELLED)

    quantities: Counter = Counter()
    for order in orders:
        if order.status == OrderStatus.CANCELLED:
            continue
        for item in order.items:
            quantities[item.name] += item.quantity

    return ReportSummary(
        total_revenue=round(revenue, 2),
        total_orders=len(orders),
        active_orders=sum(1 for o in orders if o.status in ACTIVE_STATUSES),
        completed_orders=sum(1 for o in orders if o.status == OrderStatus.COMPLETED),
        cancelled_orders=sum(1 for o in orders if o.status == OrderStatus.CANCELLED),
        menu_items=menu_items,
        top_items=[TopItem(name=name, quantity=qty) for name, qty in quantities.most_common(top_n)],
    )


class ReportService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def summary(self) -> ReportSummary:
        result = await self.db.execute(select(Order))
        orders = [OrderResponse.from_record(o) for o in result.scalars().all()]
        menu_count = (await self.db.execute(select(func.count(MenuItem.id)))).scalar() or 0
        logger.debug(f"Report over {len(orders)} orders")
        return summarize(orders, menu_count)
