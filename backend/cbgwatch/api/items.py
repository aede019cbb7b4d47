"""
Marketplace browsing REST API endpoints
"""
from datetime import datetime
from typing import List, Optional
import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from cbgwatch.api.deps import get_market_client
from cbgwatch.database import get_db
from cbgwatch.scrapers.base import BaseMarketClient, MarketplaceError
from cbgwatch.services.item_search import ItemSearchService, StarGridFilter

router = APIRouter(prefix="/api/items", tags=["items"])


class MarketItem(BaseModel):
    """Item as served by the marketplace or the cache; prices in minor units"""
    id: str
    name: str
    category: str
    rarity: str
    image_url: Optional[str] = None
    capture_urls: Optional[List[str]] = None
    serial_num: Optional[str] = None
    star_grid: Optional[List[Optional[int]]] = None
    current_price: Optional[int] = None
    seller_name: Optional[str] = None
    status: str
    collect_count: int = 0
    game_ordersn: Optional[str] = None
    last_checked_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SearchResponse(BaseModel):
    items: List[MarketItem]
    total: int
    page: int
    limit: int
    page_count: int
    cached: bool = False
    error: Optional[str] = None


class ListingsResponse(BaseModel):
    items: List[MarketItem]
    page: int
    is_last_page: bool


@router.get("/search", response_model=SearchResponse)
async def search_items(
    q: Optional[str] = None,
    category: Optional[str] = Query(None, pattern="^(hero_skin|weapon_skin|item)$"),
    rarity: Optional[str] = Query(None, pattern="^(gold|red)$"),
    min_price: Optional[int] = Query(None, ge=0),
    max_price: Optional[int] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    limit: int = Query(15, ge=1, le=100),
    star_level: Optional[int] = Query(None, ge=0, le=4),
    slot1_min: Optional[int] = None,
    slot1_max: Optional[int] = None,
    slot2_min: Optional[int] = None,
    slot2_max: Optional[int] = None,
    slot3_min: Optional[int] = None,
    slot3_max: Optional[int] = None,
    slot4_min: Optional[int] = None,
    slot4_max: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    client: BaseMarketClient = Depends(get_market_client),
):
    """
    Search a marketplace category.
    If the marketplace is down, cached items are returned with cached=true and the upstream error.
    """
    star_filter = StarGridFilter(
        star_level=star_level,
        slot_min=[slot1_min, slot2_min, slot3_min, slot4_min],
        slot_max=[slot1_max, slot2_max, slot3_max, slot4_max],
    )
    result = await ItemSearchService(db, client).search(
        keyword=q,
        category=category,
        rarity=rarity,
        price_min=min_price,
        price_max=max_price,
        page=page,
        limit=limit,
        star_filter=star_filter,
    )
    return SearchResponse(
        items=[MarketItem.model_validate(item) for item in result.items],
        total=result.total,
        page=page,
        limit=limit,
        page_count=result.page_count,
        cached=result.cached,
        error=result.error,
    )


@router.get("/type/{equip_type}/listings", response_model=ListingsResponse)
async def list_type_listings(
    equip_type: str,
    search_type: str = "role_skin",
    page: int = Query(1, ge=1),
    sort: str = "price ASC",
    db: AsyncSession = Depends(get_db),
    client: BaseMarketClient = Depends(get_market_client),
):
    """Individual listings of one aggregate item type"""
    try:
        result = await ItemSearchService(db, client).get_listings(
            equip_type, search_type=search_type, page=page, order_by=sort,
        )
    except (MarketplaceError, httpx.HTTPError) as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return ListingsResponse(
        items=[MarketItem.model_validate(item) for item in result["items"]],
        page=page,
        is_last_page=result["is_last_page"],
    )


@router.get("/{item_id}", response_model=MarketItem)
async def get_item(
    item_id: str,
    ordersn: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    client: BaseMarketClient = Depends(get_market_client),
):
    """Live listing detail, else the cached item, else a bounded marketplace lookup"""
    try:
        item = await ItemSearchService(db, client).get_item(item_id, ordersn=ordersn)
    except (MarketplaceError, httpx.HTTPError) as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
    return MarketItem.model_validate(item)
