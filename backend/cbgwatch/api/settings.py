"""
Settings REST API endpoints
"""
from typing import Any, Dict
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from cbgwatch.api.deps import get_price_monitor
from cbgwatch.database import get_db
from cbgwatch.services.notification import NotificationService, NOTIFICATION_TYPES
from cbgwatch.services.scheduler import PriceMonitor
from cbgwatch.services.settings_service import SettingsService, CHECK_INTERVAL_KEY

router = APIRouter(prefix="/api/settings", tags=["settings"])


class TestNotificationRequest(BaseModel):
    type: str
    config: Dict[str, Any]


@router.get("")
async def get_settings_values(
    db: AsyncSession = Depends(get_db),
    monitor: PriceMonitor = Depends(get_price_monitor),
):
    """All settings, typed, plus whether the monitor is running"""
    values = await SettingsService(db).get_all()
    values["monitor_running"] = monitor.state.running
    return values


@router.put("")
async def update_settings(
    updates: Dict[str, Any],
    db: AsyncSession = Depends(get_db),
    monitor: PriceMonitor = Depends(get_price_monitor),
):
    """
    Update several settings at once.
    A changed check interval restarts a running monitor so it takes effect.
    """
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No settings given")

    await SettingsService(db).update(updates)

    if CHECK_INTERVAL_KEY in updates and monitor.state.running:
        await monitor.restart()

    return {"monitor_running": monitor.state.running}


@router.post("/test")
async def test_notification(request: TestNotificationRequest):
    """Send a test message through the given channel config"""
    if request.type not in NOTIFICATION_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown notification type: {request.type}")

    sent = await NotificationService().send(
        request.type,
        request.config,
        "Test notification",
        "This is a test notification from cbgwatch",
    )
    if not sent:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Notification was not delivered")
    return {"message": "Notification sent"}
