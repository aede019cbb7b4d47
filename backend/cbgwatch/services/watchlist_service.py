"""
Watchlist management
"""
import logging
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cbgwatch.models import Item, WatchlistEntry, WatchlistGroup
from cbgwatch.scrapers.base import BaseMarketClient
from cbgwatch.services.price_checker import upsert_item

logger = logging.getLogger(__name__)

_UNSET = object()


class ItemNotFoundError(Exception):
    """The marketplace has no item with the requested id"""


class GroupNotFoundError(Exception):
    """No watchlist group with the requested id"""


class WatchlistService:
    """Create, list, update and remove watchlist entries"""

    def __init__(self, db: AsyncSession, client: Optional[BaseMarketClient] = None):
        self.db = db
        self.client = client

    async def list_entries(self, group_id: Optional[int] = None) -> List[WatchlistEntry]:
        query = (
            select(WatchlistEntry)
            .options(selectinload(WatchlistEntry.item))
            .order_by(WatchlistEntry.added_at.desc(), WatchlistEntry.id.desc())
        )
        if group_id is not None:
            query = query.where(WatchlistEntry.group_id == group_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_entry(self, entry_id: int) -> Optional[WatchlistEntry]:
        result = await self.db.execute(
            select(WatchlistEntry)
            .options(selectinload(WatchlistEntry.item))
            .where(WatchlistEntry.id == entry_id)
        )
        return result.scalar_one_or_none()

    async def _ensure_group(self, group_id: int):
        if await self.db.get(WatchlistGroup, group_id) is None:
            raise GroupNotFoundError(f"Group {group_id} not found")

    async def _ensure_item(self, item_id: str) -> Item:
        """Return the cached item, fetching and caching it on first use."""
        item = await self.db.get(Item, item_id)
        if item:
            return item

        if self.client is None:
            raise ItemNotFoundError(f"Item {item_id} is not cached")

        item_data = await self.client.get_item_by_id(item_id)
        if not item_data:
            raise ItemNotFoundError(f"Item {item_id} not found")

        item = await upsert_item(self.db, item_data)
        await self.db.flush()
        logger.info(f"Cached new item {item_id} ({item.name})")
        return item

    async def add(
        self,
        item_id: str,
        group_id: int = 1,
        target_price: Optional[int] = None,
        alert_enabled: bool = True,
        notes: Optional[str] = None,
    ) -> WatchlistEntry:
        await self._ensure_group(group_id)
        await self._ensure_item(item_id)

        entry = WatchlistEntry(
            item_id=item_id,
            group_id=group_id,
            target_price=target_price,
            alert_enabled=alert_enabled,
            notes=notes,
        )
        self.db.add(entry)
        await self.db.commit()
        return await self.get_entry(entry.id)

    async def update(
        self,
        entry_id: int,
        target_price=_UNSET,
        alert_enabled: Optional[bool] = None,
        notes=_UNSET,
        group_id: Optional[int] = None,
    ) -> Optional[WatchlistEntry]:
        """Update given fields; target_price and notes may be cleared with None."""
        entry = await self.db.get(WatchlistEntry, entry_id)
        if entry is None:
            return None

        if target_price is not _UNSET:
            entry.target_price = target_price
        if alert_enabled is not None:
            entry.alert_enabled = alert_enabled
        if notes is not _UNSET:
            entry.notes = notes
        if group_id is not None:
            await self._ensure_group(group_id)
            entry.group_id = group_id

        await self.db.commit()
        return await self.get_entry(entry_id)

    async def remove(self, entry_id: int) -> bool:
        entry = await self.db.get(WatchlistEntry, entry_id)
        if entry is None:
            return False
        await self.db.delete(entry)
        await self.db.commit()
        return True
