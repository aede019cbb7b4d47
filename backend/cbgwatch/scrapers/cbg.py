"""
Client for the Naraka: Bladepoint CBG marketplace (yjwujian.cbg.163.com).

Three response formats are handled:
- aggregate equip types (one row per skin type, cheapest listing price)
- the legacy equip list (individual listings, also used by the detail endpoint)
- recommend listings for a single equip type
"""
import json
import logging
import uuid
from typing import Dict, List, Optional, Any

import httpx

from cbgwatch.config import get_settings
from cbgwatch.scrapers.base import BaseMarketClient, MarketplaceError, RateLimiter, find_item

logger = logging.getLogger(__name__)

# Category kind ids searched when resolving an item by id, in order.
# "item" spans kind ids 5 and 6.
LOOKUP_KIND_IDS = [3, 4, 5, 6]
LOOKUP_PAGE_SIZE = 20

# Aggregate endpoint status codes that mean "ok"
AGGREGATE_OK_STATUSES = (0, 1, 200)

SEARCH_TYPE_CATEGORIES = {
    "1": "hero_skin",
    "role_skin": "hero_skin",
    "hero": "hero_skin",
    "2": "weapon_skin",
    "weapon_skin": "weapon_skin",
    "weapon": "weapon_skin",
    "3": "item",
    "4": "item",
    "5": "item",
    "6": "item",
    "daoju": "item",
    "item": "item",
}

KIND_ID_CATEGORIES = {
    3: "hero_skin",
    4: "weapon_skin",
    5: "item",
    6: "item",
}

# Kind id searched for each category
CATEGORY_KIND_IDS = {
    "hero_skin": 3,
    "weapon_skin": 4,
    "item": 5,
}


def category_from_kind_id(kind_id: Optional[int]) -> str:
    return KIND_ID_CATEGORIES.get(kind_id, "item")


def rarity_from_desc(desc: Optional[str]) -> str:
    """Aggregate descriptions mark red-tier skins with 红."""
    if desc and "红" in desc:
        return "red"
    return "gold"


def star_grid_from_quality(quality: Optional[str]) -> List[Optional[int]]:
    """'5-5-3-1' -> [5, 5, 3, 1]; missing or zero slots become None."""
    slots: List[Optional[int]] = []
    parts = (quality or "").split("-")
    for index in range(4):
        try:
            value = int(parts[index])
        except (IndexError, ValueError):
            value = 0
        slots.append(value or None)
    return slots


class CBGClient(BaseMarketClient):
    """
    HTTP client for the CBG marketplace.

    Every request waits on a shared RateLimiter, so callers must not fan out
    concurrent lookups expecting them to run in parallel.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        request_delay_ms: Optional[int] = None,
        timeout: Optional[float] = None,
        max_lookup_pages: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = base_url or settings.cbg_base_url
        delay_ms = settings.cbg_request_delay_ms if request_delay_ms is None else request_delay_ms
        self.max_lookup_pages = max_lookup_pages or settings.cbg_max_lookup_pages
        self.rate_limiter = RateLimiter(min_interval=delay_ms / 1000.0)
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                'User-Agent': 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36',
                'Accept': 'application/json',
            },
            timeout=timeout or settings.cbg_request_timeout,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        await self.client.aclose()

    @staticmethod
    def _session_id() -> str:
        return str(uuid.uuid4()).upper()

    def _list_params(self, kind_id: int, page: int, count: int) -> Dict[str, Any]:
        return {
            "client_type": "h5",
            "count": count,
            "page": page,
            "order_by": "selling_time DESC",
            "query_onsale": 1,
            "kindid": kind_id,
            "exter": "direct",
            "page_session_id": self._session_id(),
            "traffic_trace": json.dumps({"field_id": "", "content_id": ""}),
        }

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def _transform_aggregate(self, equip_type: Dict, kind_id: Optional[int] = None) -> Dict[str, Any]:
        if kind_id:
            category = category_from_kind_id(kind_id)
        else:
            category = SEARCH_TYPE_CATEGORIES.get(str(equip_type.get("search_type")), "item")

        return {
            "id": str(equip_type["equip_type"]),
            "name": equip_type.get("equip_type_name", ""),
            "image_url": equip_type.get("equip_type_list_img_url") or None,
            "capture_urls": equip_type.get("equip_type_capture_url") or [],
            "serial_num": None,
            "category": category,
            "rarity": rarity_from_desc(equip_type.get("equip_type_desc")),
            "star_grid": [None, None, None, None],
            "current_price": int(equip_type.get("min_price") or 0),
            "seller_name": None,
            "status": "normal",
            "collect_count": int(equip_type.get("selling_count") or 0),
            "game_ordersn": None,
        }

    def _transform_legacy(self, item: Dict) -> Dict[str, Any]:
        base_info = item.get("base_equip_info") or {}
        star_grid = list(base_info.get("star_grid") or [])
        star_grid = (star_grid + [None] * 4)[:4]

        return {
            "id": str(item["equipid"]),
            "name": item.get("equip_name", ""),
            "image_url": None,
            "capture_urls": [],
            "serial_num": base_info.get("serial_num"),
            "category": category_from_kind_id(item.get("kindid")),
            "rarity": "red" if base_info.get("rarity") == 1 else "gold",
            "star_grid": star_grid,
            "current_price": int(item.get("unit_price") or 0),
            "seller_name": item.get("seller_name"),
            "status": "draw" if item.get("is_draw") == 1 else "normal",
            "collect_count": int(item.get("collect_count") or 0),
            "game_ordersn": item.get("game_ordersn"),
        }

    def _transform_listing(self, item: Dict, search_type: str) -> Dict[str, Any]:
        other_info = item.get("other_info") or {}
        variation = other_info.get("variation_info") or {}
        captures = other_info.get("capture_url") or []

        serial_num = None
        for attr in other_info.get("basic_attrs") or []:
            if "编号" in attr and ":" in attr:
                serial_num = attr.split(":", 1)[1].strip() or None
                break

        return {
            "id": str(item["equipid"]),
            "name": item.get("format_equip_name", ""),
            "image_url": captures[0] if captures else None,
            "capture_urls": captures,
            "serial_num": serial_num,
            "category": SEARCH_TYPE_CATEGORIES.get(search_type, "item"),
            "rarity": "red" if variation.get("red_star_num") else "gold",
            "star_grid": star_grid_from_quality(variation.get("variation_quality")),
            "current_price": int(item.get("price") or 0),
            "seller_name": None,
            "status": "normal" if item.get("status") == 2 else "sold",
            "collect_count": int(item.get("collect_num") or 0),
            "game_ordersn": item.get("game_ordersn"),
        }

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

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
        Fetch one page of aggregate item types for a category.

        Falls back to the legacy list format when the aggregate endpoint
        errors or answers with an unexpected status.

        Args:
            kind_id: CBG category id (3 hero skins, 4 weapon skins, 5/6 items)
            price_min: Lower price bound in minor units
            price_max: Upper price bound in minor units
        """
        await self.rate_limiter.acquire()

        params = self._list_params(kind_id, page, count)
        if keyword:
            params["keyword"] = keyword
        if price_min:
            params["price_min"] = price_min
        if price_max:
            params["price_max"] = price_max

        try:
            response = await self.client.get("/cgi/api/get_aggregate_equip_type_list", params=params)
            response.raise_for_status()
            data = response.json()

            if data.get("status") in AGGREGATE_OK_STATUSES:
                items = [self._transform_aggregate(equip_type, kind_id) for equip_type in data["equip_type_list"]]
                return {
                    "items": items,
                    "total": int(data.get("count") or 0),
                    "page_count": page if data.get("is_last_page") else page + 1,
                }
            logger.debug(f"Aggregate list returned status {data.get('status')}, using legacy format")
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.debug(f"Aggregate list failed for kind {kind_id} page {page}: {e}")

        # Legacy errors propagate; the legacy endpoint is tried once
        return await self._get_items_by_category_legacy(kind_id, page, count)

    async def _get_items_by_category_legacy(self, kind_id: int, page: int, count: int) -> Dict[str, Any]:
        await self.rate_limiter.acquire()

        response = await self.client.get(
            "/cgi/api/get_aggregate_equip_type_list",
            params=self._list_params(kind_id, page, count),
        )
        response.raise_for_status()
        data = response.json()

        if not data.get("result"):
            message = (data.get("error") or {}).get("message") or "Failed to fetch items"
            raise MarketplaceError(message)

        payload = data.get("data") or {}
        try:
            return {
                "items": [self._transform_legacy(item) for item in payload.get("equip_list") or []],
                "total": int(payload.get("total_count") or 0),
                "page_count": int(payload.get("page_count") or 0),
            }
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MarketplaceError(f"Malformed item list: {e}") from e

    async def get_item_detail(self, equip_id: str, ordersn: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Fetch a single listing from the detail endpoint. Returns None on any failure."""
        await self.rate_limiter.acquire()

        params = {"client_type": "h5", "equipid": equip_id, "gameid": 2}
        if ordersn:
            params["ordersn"] = ordersn

        try:
            response = await self.client.get("/cgi/api/get_equip_detail", params=params)
            response.raise_for_status()
            data = response.json()
            equip = (data.get("data") or {}).get("equip")
            if not data.get("result") or not equip:
                return None
            return self._transform_legacy(equip)
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.debug(f"Detail lookup failed for {equip_id}: {e}")
            return None

    async def get_item_by_id(self, item_id: str) -> Optional[Dict[str, Any]]:
        """
        Resolve an item id, trying the detail endpoint first and then a
        bounded scan of LOOKUP_KIND_IDS x max_lookup_pages category pages.
        """
        item = await self.get_item_detail(item_id)
        if item:
            return item

        for kind_id in LOOKUP_KIND_IDS:
            for page in range(1, self.max_lookup_pages + 1):
                try:
                    result = await self.get_items_by_category(kind_id, page, LOOKUP_PAGE_SIZE)
                except (httpx.HTTPError, MarketplaceError, ValueError, KeyError, TypeError) as e:
                    logger.debug(f"Lookup of {item_id} stopped in kind {kind_id} at page {page}: {e}")
                    break

                found = find_item(result["items"], item_id)
                if found:
                    return found

                if page >= result["page_count"]:
                    break

        logger.info(f"Item {item_id} not found upstream")
        return None

    async def get_listings_by_type(
        self,
        equip_type: str,
        search_type: str,
        page: int = 1,
        count: int = 15,
        order_by: str = "price ASC",
    ) -> Dict[str, Any]:
        """Individual listings of one aggregate item type, cheapest first by default."""
        await self.rate_limiter.acquire()

        form = {
            "client_type": "h5",
            "act": "recommd_by_role",
            "equip_type": equip_type,
            "search_type": search_type,
            "page": str(page),
            "count": str(count),
            "order_by": order_by,
        }

        response = await self.client.post("/cgi-bin/recommend.py", data=form)
        response.raise_for_status()
        data = response.json()

        if data.get("status") != 1:
            raise MarketplaceError(f"API Error: {data.get('status_code')}")

        return {
            "items": [self._transform_listing(item, search_type) for item in data.get("result", [])],
            "is_last_page": bool((data.get("paging") or {}).get("is_last_page")),
        }
