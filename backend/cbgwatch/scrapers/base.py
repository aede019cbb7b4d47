from abc import ABC, abstractmethod
from typing import List, Dict, Optional, Any
import asyncio


class MarketplaceError(Exception):
    """Upstream marketplace returned an error or an unusable response"""


class RateLimiter:
    """
    Enforces a minimum delay between consecutive upstream requests.

    A single watermark is shared by every call made through the owning client,
    so requests for different items are spaced out too.
    """

    def __init__(self, min_interval: float = 1.0):
        self.min_interval = min_interval
        self.last_request_time = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self):
        """Wait if necessary to respect rate limit"""
        async with self._lock:
            current_time = asyncio.get_running_loop().time()
            time_since_last = current_time - self.last_request_time

            if time_since_last < self.min_interval:
                await asyncio.sleep(self.min_interval - time_since_last)

            self.last_request_time = asyncio.get_running_loop().time()


class BaseMarketClient(ABC):
    """
    Read-only access to a marketplace.

    Item payloads are plain dicts whose keys match the Item model columns.
    """

    @abstractmethod
    async def get_item_by_id(self, item_id: str) -> Optional[Dict[str, Any]]:
        """
        Resolve a single item by its upstream id.
        Returns None if the item cannot be found; raises on transport errors.
        """
        pass

    @abstractmethod
    async def get_items_by_category(
        self,
        kind_id: int,
        page: int = 1,
        count: int = 15,
        keyword: Optional[str] = None,
        price_min: Optional[int] = None,
        price_max: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Fetch one page of a category.
        Returns {"items": [...], "total": int, "page_count": int}.
        """
        pass

    @abstractmethod
    async def get_listings_by_type(
        self,
        equip_type: str,
        search_type: str,
        page: int = 1,
        count: int = 15,
        order_by: str = "price ASC",
    ) -> Dict[str, Any]:
        """
        Fetch individual listings for an aggregate item type.
        Returns {"items": [...], "is_last_page": bool}.
        """
        pass

    async def get_item_detail(self, equip_id: str, ordersn: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Live detail of a single listing; clients without a detail endpoint return None."""
        return None

    async def close(self):
        """Release any held connections."""
        pass


def find_item(items: List[Dict[str, Any]], item_id: str) -> Optional[Dict[str, Any]]:
    """Return the first item dict with a matching id."""
    for item in items:
        if item.get("id") == item_id:
            return item
    return None
