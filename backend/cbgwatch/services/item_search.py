"""
Marketplace search and item lookup, falling back to the local item cache
when the marketplace is unavailable.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from cbgwatch.models import Item
from cbgwatch.scrapers.base import BaseMarketClient, MarketplaceError
from cbgwatch.scrapers.cbg import CATEGORY_KIND_IDS

logger = logging.getLogger(__name__)


@dataclass
class StarGridFilter:
    """Star level is the number of non-empty slots; slot bounds are inclusive."""
    star_level: Optional[int] = None
    slot_min: List[Optional[int]] = field(default_factory=lambda: [None] * 4)
    slot_max: List[Optional[int]] = field(default_factory=lambda: [None] * 4)

    @property
    def active(self) -> bool:
        return (
            self.star_level is not None
            or any(v is not None for v in self.slot_min)
            or any(v is not None for v in self.slot_max)
        )

    def matches(self, star_grid: Optional[Sequence[Optional[int]]]) -> bool:
        slots = (list(star_grid or []) + [None] * 4)[:4]

        if self.star_level is not None:
            if sum(1 for s in slots if s) != self.star_level:
                return False

        for value, low, high in zip(slots, self.slot_min, self.slot_max):
            if low is not None and (value is None or value < low):
                return False
            if high is not None and (value is None or value > high):
                return False
        return True


@dataclass
class SearchResult:
    items: List[Any]
    total: int
    page_count: int
    cached: bool = False
    error: Optional[str] = None


class ItemSearchService:
    """Search and detail lookups for the marketplace browser"""

    def __init__(self, db: AsyncSession, client: BaseMarketClient):
        self.db = db
        self.client = client

    async def search(
        self,
        keyword: Optional[str] = None,
        category: Optional[str] = None,
        rarity: Optional[str] = None,
        price_min: Optional[int] = None,
        price_max: Optional[int] = None,
        page: int = 1,
        limit: int = 15,
        star_filter: Optional[StarGridFilter] = None,
    ) -> SearchResult:
        """
        Search one category page upstream.

        Rarity and star grid filters apply to the fetched page only, so the
        upstream totals are not adjusted for them. If the marketplace fails,
        the cached items are queried instead and the result is flagged cached.
        """
        category = category or "hero_skin"
        star_filter = star_filter or StarGridFilter()

        try:
            result = await self.client.get_items_by_category(
                CATEGORY_KIND_IDS.get(category, 3),
                page=page,
                count=limit,
                keyword=keyword,
                price_min=price_min,
                price_max=price_max,
            )
        except (MarketplaceError, httpx.HTTPError) as e:
            logger.warning(f"Marketplace search failed, serving cached items: {e}")
            return await self._search_cache(
                keyword, category, rarity, price_min, price_max, page, limit, star_filter, error=str(e),
            )

        items = result["items"]
        if rarity:
            items = [item for item in items if item.get("rarity") == rarity]
        if star_filter.active:
            items = [item for item in items if star_filter.matches(item.get("star_grid"))]

        return SearchResult(items=items, total=result["total"], page_count=result["page_count"])

    async def _search_cache(
        self,
        keyword: Optional[str],
        category: str,
        rarity: Optional[str],
        price_min: Optional[int],
        price_max: Optional[int],
        page: int,
        limit: int,
        star_filter: StarGridFilter,
        error: str,
    ) -> SearchResult:
        conditions = [Item.category == category]
        if keyword:
            conditions.append(Item.name.ilike(f"%{keyword}%"))
        if rarity:
            conditions.append(Item.rarity == rarity)
        if price_min is not None:
            conditions.append(Item.current_price >= price_min)
        if price_max is not None:
            conditions.append(Item.current_price <= price_max)

        query = select(Item).where(*conditions).order_by(Item.last_checked_at.desc(), Item.id)

        if star_filter.active:
            # Star grids are JSON, so filter in Python and page afterwards
            result = await self.db.execute(query)
            matching = [item for item in result.scalars().all() if star_filter.matches(item.star_grid)]
            total = len(matching)
            items = matching[(page - 1) * limit:page * limit]
        else:
            count = await self.db.execute(select(func.count(Item.id)).where(*conditions))
            total = count.scalar_one()
            result = await self.db.execute(query.limit(limit).offset((page - 1) * limit))
            items = list(result.scalars().all())

        return SearchResult(
            items=items,
            total=total,
            page_count=(total + limit - 1) // limit,
            cached=True,
            error=error,
        )

    async def get_item(self, item_id: str, ordersn: Optional[str] = None) -> Optional[Any]:
        """Live detail first, then the cache, then a bounded upstream lookup."""
        try:
            detail = await self.client.get_item_detail(item_id, ordersn)
        except (MarketplaceError, httpx.HTTPError) as e:
            logger.warning(f"Live detail for {item_id} failed: {e}")
            detail = None
        if detail:
            return detail

        cached = await self.db.get(Item, item_id)
        if cached:
            return cached

        return await self.client.get_item_by_id(item_id)

    async def get_listings(
        self,
        equip_type: str,
        search_type: str = "role_skin",
        page: int = 1,
        order_by: str = "price ASC",
    ) -> Dict[str, Any]:
        return await self.client.get_listings_by_type(equip_type, search_type, page=page, order_by=order_by)

