"""
Scan pass: re-check every alert-enabled watchlist item, then evaluate alerts.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cbgwatch.models import WatchlistEntry
from cbgwatch.services.alert_engine import AlertEngine
from cbgwatch.services.price_checker import PriceChecker

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    """Outcome of one scan pass"""
    started_at: datetime
    total_count: int = 0
    checked_count: int = 0
    alerts_created: int = 0
    duration_ms: float = 0
    failed_item_ids: List[str] = field(default_factory=list)


class WatchlistScanner:
    """Checks tracked items one after another, sharing the client's request delay"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        price_checker: PriceChecker,
        alert_engine: AlertEngine,
    ):
        self.session_factory = session_factory
        self.price_checker = price_checker
        self.alert_engine = alert_engine

    async def get_tracked_item_ids(self) -> List[str]:
        """Distinct item ids referenced by alert-enabled watchlist entries."""
        query = (
            select(WatchlistEntry.item_id)
            .where(WatchlistEntry.alert_enabled.is_(True))
            .distinct()
            .order_by(WatchlistEntry.item_id)
        )
        async with self.session_factory() as db:
            result = await db.execute(query)
            return list(result.scalars().all())

    async def scan(self) -> ScanResult:
        """
        Run one scan pass.

        Per-item failures are logged and skipped. The alert evaluation always
        runs afterwards so target price changes apply to cached prices even
        when every check failed. Errors listing the tracked items propagate.
        """
        result = ScanResult(started_at=datetime.utcnow())
        item_ids = await self.get_tracked_item_ids()
        result.total_count = len(item_ids)
        logger.info(f"Scan started for {len(item_ids)} tracked items")

        for item_id in item_ids:
            try:
                item = await self.price_checker.check_item(item_id)
            except Exception as e:
                logger.error(f"Failed to check item {item_id}: {e}")
                result.failed_item_ids.append(item_id)
                continue

            if item:
                result.checked_count += 1
            else:
                result.failed_item_ids.append(item_id)

        alerts = await self.alert_engine.evaluate()
        result.alerts_created = len(alerts)

        result.duration_ms = (datetime.utcnow() - result.started_at).total_seconds() * 1000
        logger.info(
            f"Scan finished: {result.checked_count}/{result.total_count} items checked, "
            f"{result.alerts_created} new alerts in {result.duration_ms:.0f}ms"
        )
        return result
