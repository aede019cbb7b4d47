"""
API endpoints for controlling the price monitor.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from cbgwatch.api.deps import get_price_monitor
from cbgwatch.services.scheduler import PriceMonitor

router = APIRouter(prefix="/api/monitor", tags=["monitor"])


class MonitorStatus(BaseModel):
    running: bool
    interval_minutes: int


class CheckNowResponse(BaseModel):
    checked_count: int
    message: str


class ScanHistoryEntry(BaseModel):
    timestamp: str
    status: str
    scheduled_run_time: Optional[str] = None
    checked_count: Optional[int] = None
    alerts_created: Optional[int] = None
    error: Optional[str] = None


@router.get("/status", response_model=MonitorStatus)
async def monitor_status(monitor: PriceMonitor = Depends(get_price_monitor)):
    """Whether the monitor is running and its effective interval."""
    return await monitor.status()


@router.post("/start", response_model=MonitorStatus)
async def start_monitor(monitor: PriceMonitor = Depends(get_price_monitor)):
    """Start the monitor (no-op if already running)."""
    await monitor.start()
    return await monitor.status()


@router.post("/stop", response_model=MonitorStatus)
async def stop_monitor(monitor: PriceMonitor = Depends(get_price_monitor)):
    """Stop the monitor (no-op if not running)."""
    await monitor.stop()
    return await monitor.status()


@router.post("/check-now", response_model=CheckNowResponse)
async def check_now(monitor: PriceMonitor = Depends(get_price_monitor)):
    """Run one scan pass immediately, independent of the schedule."""
    result = await monitor.check_now()
    if not result["success"]:
        raise HTTPException(status_code=500, detail=result.get("error") or "Check failed")
    return CheckNowResponse(
        checked_count=result["checked_count"],
        message=f"Checked {result['checked_count']} items",
    )


@router.get("/history", response_model=List[ScanHistoryEntry])
async def scan_history(limit: int = Query(20, ge=1, le=100), monitor: PriceMonitor = Depends(get_price_monitor)):
    """Outcomes of recent scheduled scans."""
    return monitor.get_history(limit=limit)
