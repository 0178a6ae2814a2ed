"""
Menu Catalog

Read-mostly reference data consumed when orders are validated, plus the
admin CRUD operations behind /api/menu. No caching: every call reads the
store.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import MenuItemNotFoundError
from app.models import MenuItem
from app.schemas import MenuItemCreate, MenuItemResponse

logger = logging.getLogger(__name__)


def _record_fields(data: MenuItemCreate) -> dict:
    fields = data.model_dump(exclude={"options"})
    fields["options"] = [group.model_dump(mode="json", by_alias=True) for group in data.options]
    return fields


class MenuCatalog:
    """Menu items stored in the menu_items table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list(self, category: Optional[str] = None) -> list[MenuItemResponse]:
        """All items sorted by category then name, optionally one category."""
        query = select(MenuItem).order_by(MenuItem.category, MenuItem.name)
        if category:
            query = query.where(MenuItem.category == category)
        result = await self.db.execute(query)
        return [MenuItemResponse.from_record(item) for item in result.scalars().all()]

    async def _get_record(self, item_id: int) -> MenuItem:
        record = await self.db.get(MenuItem, item_id)
        if record is None:
            raise MenuItemNotFoundError(item_id)
        return record

    async def get(self, item_id: int) -> MenuItemResponse:
        return MenuItemResponse.from_record(await self._get_record(item_id))

    async def get_many(self, item_ids: Iterable[int]) -> dict[int, MenuItemResponse]:
        ids = set(item_ids)
        if not ids:
            return {}
        result = await self.db.execute(select(MenuItem).where(MenuItem.id.in_(ids)))
        return {item.id: MenuItemResponse.from_record(item) for item in result.scalars().all()}

    async def create(self, data: MenuItemCreate) -> MenuItemResponse:
        record = MenuItem(**_record_fields(data))
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)
        logger.info(f"Menu item #{record.id} created: {record.name}")
        return MenuItemResponse.from_record(record)

    async def update(self, item_id: int, data: MenuItemCreate) -> MenuItemResponse:
        record = await self._get_record(item_id)
        for key, value in _record_fields(data).items():
            setattr(record, key, value)
        await self.db.commit()
        await self.db.refresh(record)
        logger.info(f"Menu item #{item_id} updated")
        return MenuItemResponse.from_record(record)

    async def delete(self, item_id: int) -> None:
        record = await self._get_record(item_id)
        await self.db.delete(record)
        await self.db.commit()
        logger.info(f"Menu item #{item_id} deleted")


def filter_by_category(items: Iterable[MenuItemResponse], category: Optional[str]) -> list[MenuItemResponse]:
    """Client-side category filter; None or "All" keeps everything."""
    if not category or category == "All":
        return list(items)
    return [item for item in items if item.category == category]
