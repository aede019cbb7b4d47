"""
Target price alerts: evaluation after each scan, plus read/resolve/delete.
"""
import logging
from typing import List, Optional, Protocol, Any, Dict
from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cbgwatch.models import Alert, Item, WatchlistEntry
from cbgwatch.utils.prices import format_price

logger = logging.getLogger(__name__)


class Dispatcher(Protocol):
    async def send(self, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> Any:
        ...


class AlertEngine:
    """
    Creates at most one open alert per watchlist entry whose item is at or
    below its target price, and notifies for each alert it creates.

    Resolving an alert re-arms the entry: the next evaluation creates a new
    alert if the price still qualifies.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], dispatcher: Optional[Dispatcher] = None):
        self.session_factory = session_factory
        self.dispatcher = dispatcher

    async def _qualifying_entries(self) -> List[Dict[str, Any]]:
        query = (
            select(
                WatchlistEntry.id,
                WatchlistEntry.item_id,
                WatchlistEntry.target_price,
                Item.name,
                Item.current_price,
            )
            .join(Item, WatchlistEntry.item_id == Item.id)
            .where(
                WatchlistEntry.alert_enabled.is_(True),
                WatchlistEntry.target_price.is_not(None),
                Item.current_price <= WatchlistEntry.target_price,
            )
            .order_by(WatchlistEntry.id)
        )
        async with self.session_factory() as db:
            result = await db.execute(query)
            return [row._asdict() for row in result.all()]

    async def _create_alert(self, entry: Dict[str, Any]) -> Optional[Alert]:
        """Insert an alert unless the entry already has an unresolved one."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(Alert.id).where(
                    Alert.watchlist_id == entry["id"],
                    Alert.is_resolved.is_(False),
                ).limit(1)
            )
            if result.scalar_one_or_none() is not None:
                return None

            alert = Alert(
                watchlist_id=entry["id"],
                item_id=entry["item_id"],
                triggered_price=entry["current_price"],
                target_price=entry["target_price"],
                is_read=False,
                is_resolved=False,
            )
            db.add(alert)
            try:
                await db.commit()
            except IntegrityError:
                # Another pass opened an alert for this entry first
                await db.rollback()
                return None
            return alert

    async def _notify(self, alert: Alert, item_name: str) -> None:
        if self.dispatcher is None:
            return
        try:
            await self.dispatcher.send(
                "Price alert",
                f"{item_name} dropped to {format_price(alert.triggered_price)}, "
                f"at or below target {format_price(alert.target_price)}",
                {"alert_id": alert.id, "item_id": alert.item_id},
            )
        except Exception as e:
            logger.error(f"Notification for alert {alert.id} failed: {e}")

    async def evaluate(self) -> List[Alert]:
        """
        Run one evaluation pass.

        Returns:
            Alerts created in this pass
        """
        entries = await self._qualifying_entries()
        new_alerts: List[Alert] = []

        for entry in entries:
            try:
                alert = await self._create_alert(entry)
            except Exception as e:
                logger.error(f"Alert evaluation failed for watchlist entry {entry['id']}: {e}")
                continue

            if alert is None:
                continue

            new_alerts.append(alert)
            logger.info(
                f"Alert {alert.id}: {entry['name']} at {format_price(alert.triggered_price)} "
                f"<= {format_price(alert.target_price)}"
            )
            await self._notify(alert, entry["name"])

        return new_alerts


class AlertService:
    """User-facing alert operations"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_alerts(self, unread_only: bool = False) -> List[Alert]:
        query = select(Alert).order_by(Alert.triggered_at.desc(), Alert.id.desc())
        if unread_only:
            query = query.where(Alert.is_read.is_(False))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _update(self, alert_id: int, **values) -> bool:
        result = await self.db.execute(update(Alert).where(Alert.id == alert_id).values(**values))
        await self.db.commit()
        return result.rowcount > 0

    async def mark_read(self, alert_id: int) -> bool:
        return await self._update(alert_id, is_read=True)

    async def resolve(self, alert_id: int) -> bool:
        return await self._update(alert_id, is_resolved=True)

    async def delete(self, alert_id: int) -> bool:
        result = await self.db.execute(delete(Alert).where(Alert.id == alert_id))
        await self.db.commit()
        return result.rowcount > 0
