"""
Watchlist REST API endpoints
"""
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cbgwatch.api.deps import get_market_client
from cbgwatch.database import get_db
from cbgwatch.scrapers.base import BaseMarketClient, MarketplaceError
from cbgwatch.services.price_history import PriceHistoryService
from cbgwatch.services.watchlist_service import WatchlistService, ItemNotFoundError, GroupNotFoundError

router = APIRouter(prefix="/api/watchlist", tags=["watchlist"])


class ItemResponse(BaseModel):
    id: str
    name: str
    category: str
    rarity: str
    image_url: Optional[str] = None
    current_price: Optional[int] = None
    status: str
    collect_count: int
    last_checked_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WatchlistEntryResponse(BaseModel):
    id: int
    item_id: str
    group_id: int
    target_price: Optional[int] = None
    alert_enabled: bool
    notes: Optional[str] = None
    added_at: datetime
    item: Optional[ItemResponse] = None

    class Config:
        from_attributes = True


class WatchlistEntryCreate(BaseModel):
    """Request body for adding an item; prices are in minor units"""
    item_id: str
    group_id: int = 1
    target_price: Optional[int] = Field(default=None, ge=0)
    alert_enabled: bool = True
    notes: Optional[str] = None


class WatchlistEntryUpdate(BaseModel):
    target_price: Optional[int] = Field(default=None, ge=0)
    alert_enabled: Optional[bool] = None
    notes: Optional[str] = None
    group_id: Optional[int] = None


class PriceSnapshotResponse(BaseModel):
    price: int
    status: Optional[str] = None
    checked_at: datetime

    class Config:
        from_attributes = True


class PriceHistoryPoint(BaseModel):
    date: str
    avg_price: int
    min_price: int
    max_price: int


class PriceHistoryResponse(BaseModel):
    item_id: str
    snapshots: List[PriceSnapshotResponse]
    daily: List[PriceHistoryPoint]


@router.get("", response_model=List[WatchlistEntryResponse])
async def list_watchlist(group_id: Optional[int] = None, db: AsyncSession = Depends(get_db)):
    return await WatchlistService(db).list_entries(group_id=group_id)


@router.post("", response_model=WatchlistEntryResponse, status_code=status.HTTP_201_CREATED)
async def add_to_watchlist(
    request: WatchlistEntryCreate,
    db: AsyncSession = Depends(get_db),
    client: BaseMarketClient = Depends(get_market_client),
):
    """Track an item; it is fetched from the marketplace if not cached yet"""
    service = WatchlistService(db, client)
    try:
        return await service.add(
            item_id=request.item_id,
            group_id=request.group_id,
            target_price=request.target_price,
            alert_enabled=request.alert_enabled,
            notes=request.notes,
        )
    except ItemNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except GroupNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except MarketplaceError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


@router.patch("/{entry_id}", response_model=WatchlistEntryResponse)
async def update_watchlist_entry(
    entry_id: int,
    request: WatchlistEntryUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Only fields present in the body are changed; null clears target_price/notes"""
    fields = request.model_dump(exclude_unset=True)
    try:
        entry = await WatchlistService(db).update(entry_id, **fields)
    except GroupNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Watchlist entry not found")
    return entry


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_from_watchlist(entry_id: int, db: AsyncSession = Depends(get_db)):
    if not await WatchlistService(db).remove(entry_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Watchlist entry not found")


@router.get("/items/{item_id}/history", response_model=PriceHistoryResponse)
async def item_price_history(item_id: str, days: int = 30, db: AsyncSession = Depends(get_db)):
    """Recorded snapshots and daily summary for an item"""
    service = PriceHistoryService(db)
    return PriceHistoryResponse(
        item_id=item_id,
        snapshots=[
            PriceSnapshotResponse.model_validate(snapshot)
            for snapshot in await service.get_price_history(item_id, days=days)
        ],
        daily=await service.get_daily_summary(item_id, days=days),
    )
