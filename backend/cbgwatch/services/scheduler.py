"""
Recurring price monitor.
Uses APScheduler to run a scan pass every N minutes (N from settings).
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.base import JobLookupError
from apscheduler.events import EVENT_JOB_EXECUTED, EVENT_JOB_ERROR, JobExecutionEvent
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cbgwatch.services.settings_service import SettingsService
from cbgwatch.services.watchlist_scanner import ScanResult, WatchlistScanner

logger = logging.getLogger(__name__)

JOB_ID = "price-monitor"
MAX_HISTORY = 100


@dataclass
class MonitorState:
    """The single registered scan job and the interval it was created with"""
    job: Any = None
    interval_minutes: Optional[int] = None

    @property
    def running(self) -> bool:
        return self.job is not None


class PriceMonitor:
    """
    Owns the recurring scan job.

    Usage:
        monitor = PriceMonitor(scanner, async_session_maker)
        await monitor.start()
        await monitor.check_now()
        await monitor.stop()
    """

    def __init__(
        self,
        scanner: WatchlistScanner,
        session_factory: async_sessionmaker[AsyncSession],
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.scanner = scanner
        self.session_factory = session_factory
        self._scheduler = scheduler or AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,  # Only one instance of the job at a time
                "misfire_grace_time": 60,
            }
        )
        self.state = MonitorState()
        self._state_lock = asyncio.Lock()
        # Serialises scheduled scans and check_now
        self._scan_lock = asyncio.Lock()
        self._job_history: List[Dict[str, Any]] = []

        self._scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)

    def _record(self, entry: Dict[str, Any]):
        self._job_history.append(entry)
        if len(self._job_history) > MAX_HISTORY:
            self._job_history = self._job_history[-MAX_HISTORY:]

    def _on_job_executed(self, event: JobExecutionEvent):
        """Log successful scan runs."""
        if event.job_id != JOB_ID:
            return
        result = event.retval
        self._record({
            "timestamp": datetime.utcnow().isoformat(),
            "status": "success",
            "scheduled_run_time": event.scheduled_run_time.isoformat() if event.scheduled_run_time else None,
            "checked_count": getattr(result, "checked_count", None),
            "alerts_created": getattr(result, "alerts_created", None),
        })

    def _on_job_error(self, event: JobExecutionEvent):
        """Log scan errors."""
        if event.job_id != JOB_ID:
            return
        self._record({
            "timestamp": datetime.utcnow().isoformat(),
            "status": "error",
            "error": str(event.exception) if event.exception else "Unknown error",
        })
        logger.error(f"Scheduled scan failed: {event.exception}")

    async def _configured_interval(self) -> int:
        async with self.session_factory() as db:
            return await SettingsService(db).get_check_interval()

    async def run_scan(self) -> ScanResult:
        """One scan pass; waits for any pass already in progress."""
        async with self._scan_lock:
            return await self.scanner.scan()

    async def start(self) -> bool:
        """
        Register the recurring scan and run the first pass right away.

        Returns:
            False if the monitor was already running
        """
        async with self._state_lock:
            if self.state.running:
                logger.info("Monitor already running")
                return False

            interval = await self._configured_interval()

            if not self._scheduler.running:
                self._scheduler.start()

            job = self._scheduler.add_job(
                self.run_scan,
                trigger=IntervalTrigger(minutes=interval),
                id=JOB_ID,
                name="Watchlist price monitor",
                next_run_time=datetime.now(timezone.utc),
                replace_existing=True,
            )
            self.state = MonitorState(job=job, interval_minutes=interval)

        logger.info(f"Monitor started (checking every {interval} minutes)")
        return True

    async def stop(self) -> bool:
        """
        Cancel future scans. A pass already in progress runs to completion.

        Returns:
            False if the monitor was not running
        """
        async with self._state_lock:
            if not self.state.running:
                return False
            try:
                self._scheduler.remove_job(JOB_ID)
            except JobLookupError:
                logger.warning("Monitor job was already gone")
            self.state = MonitorState()

        logger.info("Monitor stopped")
        return True

    async def restart(self) -> bool:
        """Stop and start again so a changed interval takes effect."""
        await self.stop()
        return await self.start()

    async def status(self) -> Dict[str, Any]:
        if self.state.running:
            return {"running": True, "interval_minutes": self.state.interval_minutes}
        return {"running": False, "interval_minutes": await self._configured_interval()}

    async def check_now(self) -> Dict[str, Any]:
        """Run a scan pass immediately without touching the schedule."""
        try:
            result = await self.run_scan()
            return {"success": True, "checked_count": result.checked_count}
        except Exception as e:
            logger.exception("Manual check failed")
            return {"success": False, "checked_count": 0, "error": str(e) or type(e).__name__}

    def get_history(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Recent scheduled scan outcomes, oldest first."""
        if limit <= 0:
            return []
        return self._job_history[-limit:]

    def shutdown(self):
        """Shut down the underlying scheduler."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler shutdown")
        self.state = MonitorState()


@lru_cache()
def get_monitor() -> PriceMonitor:
    """Process-wide monitor wired to the real marketplace client and database."""
    from cbgwatch.database import async_session_maker
    from cbgwatch.scrapers.cbg import CBGClient
    from cbgwatch.services.alert_engine import AlertEngine
    from cbgwatch.services.notification import NotificationDispatcher
    from cbgwatch.services.price_checker import PriceChecker

    client = CBGClient()
    dispatcher = NotificationDispatcher(async_session_maker)
    scanner = WatchlistScanner(
        async_session_maker,
        PriceChecker(async_session_maker, client),
        AlertEngine(async_session_maker, dispatcher),
    )
    return PriceMonitor(scanner, async_session_maker)
