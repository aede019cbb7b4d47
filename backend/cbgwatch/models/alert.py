"""
Target price alerts
"""
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import Integer, Boolean, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from cbgwatch.database import Base

if TYPE_CHECKING:
    from cbgwatch.models.watchlist import WatchlistEntry


class Alert(Base):
    """A target price crossing for one watchlist entry"""
    __tablename__ = "alerts"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Foreign keys
    watchlist_id: Mapped[int] = mapped_column(ForeignKey("watchlist.id", ondelete="CASCADE"), index=True)
    item_id: Mapped[str] = mapped_column(ForeignKey("items.id"), index=True)

    # Prices at trigger time (minor currency units)
    triggered_price: Mapped[int] = mapped_column(Integer)
    target_price: Mapped[int] = mapped_column(Integer)

    triggered_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    # Status
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    is_resolved: Mapped[bool] = mapped_column(Boolean, default=False)

    # Relationships
    watchlist_entry: Mapped["WatchlistEntry"] = relationship(back_populates="alerts")

    __table_args__ = (
        # At most one open alert per watchlist entry
        Index(
            'ix_alerts_one_open_per_entry',
            'watchlist_id',
            unique=True,
            sqlite_where=text('is_resolved = 0'),
            postgresql_where=text('is_resolved = false'),
        ),
    )
