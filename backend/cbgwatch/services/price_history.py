"""
Price history queries over recorded snapshots
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from cbgwatch.models import PriceSnapshot


class PriceHistoryService:
    """Service for querying price snapshots"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_price_history(
        self,
        item_id: str,
        days: int = 30
    ) -> List[PriceSnapshot]:
        """
        Get price history for an item.

        Args:
            item_id: Upstream item id
            days: Number of days of history to fetch

        Returns:
            List of price snapshots ordered by check time ascending
        """
        cutoff = datetime.utcnow() - timedelta(days=days)

        query = (
            select(PriceSnapshot)
            .where(
                PriceSnapshot.item_id == item_id,
                PriceSnapshot.checked_at >= cutoff
            )
            .order_by(PriceSnapshot.checked_at.asc(), PriceSnapshot.id.asc())
        )

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_daily_summary(self, item_id: str, days: int = 30) -> List[Dict[str, Any]]:
        """
        Per-day min/max/average price for an item.
        The average is integer-divided so it stays in minor units.
        """
        cutoff = datetime.utcnow() - timedelta(days=days)
        day = func.date(PriceSnapshot.checked_at)

        query = (
            select(
                day.label("date"),
                func.min(PriceSnapshot.price).label("min_price"),
                func.max(PriceSnapshot.price).label("max_price"),
                func.sum(PriceSnapshot.price).label("total"),
                func.count(PriceSnapshot.id).label("samples"),
            )
            .where(
                PriceSnapshot.item_id == item_id,
                PriceSnapshot.checked_at >= cutoff
            )
            .group_by(day)
            .order_by(day)
        )

        result = await self.db.execute(query)
        return [
            {
                "date": str(row.date),
                "avg_price": int(row.total) // int(row.samples),
                "min_price": int(row.min_price),
                "max_price": int(row.max_price),
            }
            for row in result.all()
        ]
