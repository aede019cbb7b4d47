"""
Watchlist groups REST API endpoints
"""
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from cbgwatch.database import get_db
from cbgwatch.models import WatchlistEntry, WatchlistGroup

router = APIRouter(prefix="/api/groups", tags=["groups"])

DEFAULT_GROUP_ID = 1


class GroupCreate(BaseModel):
    name: str
    color: str = "#3b82f6"


class GroupUpdate(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None
    sort_order: Optional[int] = None


class GroupResponse(BaseModel):
    id: int
    name: str
    color: str
    sort_order: int
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("", response_model=List[GroupResponse])
async def list_groups(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(WatchlistGroup).order_by(WatchlistGroup.sort_order, WatchlistGroup.id))
    return list(result.scalars().all())


@router.post("", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(request: GroupCreate, db: AsyncSession = Depends(get_db)):
    """Create a group, ordered after the existing ones"""
    name = request.name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Group name is required")

    result = await db.execute(select(func.max(WatchlistGroup.sort_order)))
    max_order = result.scalar_one_or_none()

    group = WatchlistGroup(name=name, color=request.color, sort_order=(max_order or 0) + 1)
    db.add(group)
    await db.commit()
    await db.refresh(group)
    return group


@router.put("/{group_id}", response_model=GroupResponse)
async def update_group(group_id: int, request: GroupUpdate, db: AsyncSession = Depends(get_db)):
    fields = request.model_dump(exclude_unset=True, exclude_none=True)
    if not fields:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    group = await db.get(WatchlistGroup, group_id)
    if group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")

    for key, value in fields.items():
        setattr(group, key, value)
    await db.commit()
    return group


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(group_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a group; its entries move to the default group"""
    if group_id == DEFAULT_GROUP_ID:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete default group")

    group = await db.get(WatchlistGroup, group_id)
    if group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")

    await db.execute(
        update(WatchlistEntry)
        .where(WatchlistEntry.group_id == group_id)
        .values(group_id=DEFAULT_GROUP_ID)
    )
    await db.execute(delete(WatchlistGroup).where(WatchlistGroup.id == group_id))
    await db.commit()
