"""
Refreshes one cached item from the marketplace and records its price.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cbgwatch.models import Item, PriceSnapshot
from cbgwatch.scrapers.base import BaseMarketClient

logger = logging.getLogger(__name__)

# Columns refreshed on every check; category/rarity/serial are only set on insert
REFRESHED_FIELDS = (
    "name",
    "image_url",
    "capture_urls",
    "current_price",
    "seller_name",
    "status",
    "collect_count",
)

ITEM_FIELDS = REFRESHED_FIELDS + (
    "category",
    "rarity",
    "serial_num",
    "star_grid",
    "game_ordersn",
)


async def upsert_item(db: AsyncSession, item_data: Dict[str, Any], checked_at: Optional[datetime] = None) -> Item:
    """Insert or refresh an Item row from a client payload. Does not commit."""
    checked_at = checked_at or datetime.utcnow()
    existing = await db.get(Item, item_data["id"])

    if existing:
        for key in REFRESHED_FIELDS:
            if key in item_data:
                setattr(existing, key, item_data[key])
        existing.last_checked_at = checked_at
        existing.updated_at = checked_at
        return existing

    item = Item(
        id=item_data["id"],
        last_checked_at=checked_at,
        **{key: item_data[key] for key in ITEM_FIELDS if key in item_data},
    )
    db.add(item)
    return item


class PriceChecker:
    """Fetches an item and stores the refreshed row plus a price snapshot atomically"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], client: BaseMarketClient):
        self.session_factory = session_factory
        self.client = client

    async def check_item(self, item_id: str) -> Optional[Dict[str, Any]]:
        """
        Check a single item.

        Returns:
            The fetched item payload, or None if the marketplace had nothing.
            Client and store errors propagate; the store is left untouched
            unless both the item row and the snapshot were written.
        """
        item_data = await self.client.get_item_by_id(item_id)
        if not item_data:
            logger.info(f"No upstream data for item {item_id}")
            return None

        checked_at = datetime.utcnow()
        async with self.session_factory() as db:
            try:
                await upsert_item(db, item_data, checked_at)
                db.add(PriceSnapshot(
                    item_id=item_data["id"],
                    price=item_data["current_price"],
                    status=item_data.get("status"),
                    checked_at=checked_at,
                ))
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.debug(f"Checked item {item_id}: price={item_data['current_price']} status={item_data.get('status')}")
        return item_data
