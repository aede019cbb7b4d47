"""
Alerts REST API endpoints
"""
from datetime import datetime
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from cbgwatch.database import get_db
from cbgwatch.services.alert_engine import AlertService

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


class AlertResponse(BaseModel):
    id: int
    watchlist_id: int
    item_id: str
    triggered_price: int
    target_price: int
    triggered_at: datetime
    is_read: bool
    is_resolved: bool

    class Config:
        from_attributes = True


@router.get("", response_model=List[AlertResponse])
async def list_alerts(unread: bool = False, db: AsyncSession = Depends(get_db)):
    """List alerts, newest first"""
    return await AlertService(db).get_alerts(unread_only=unread)


@router.put("/{alert_id}/read")
async def mark_alert_read(alert_id: int, db: AsyncSession = Depends(get_db)):
    if not await AlertService(db).mark_read(alert_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alert not found")
    return {"message": "Alert marked as read"}


@router.put("/{alert_id}/resolve")
async def resolve_alert(alert_id: int, db: AsyncSession = Depends(get_db)):
    """Resolve an alert; the entry can alert again on the next scan"""
    if not await AlertService(db).resolve(alert_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alert not found")
    return {"message": "Alert resolved"}


@router.delete("/{alert_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_alert(alert_id: int, db: AsyncSession = Depends(get_db)):
    if not await AlertService(db).delete(alert_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alert not found")
