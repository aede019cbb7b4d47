"""
Watchlist groups and entries
"""
from datetime import datetime
from typing import Optional, TYPE_CHECKING
from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from cbgwatch.database import Base

if TYPE_CHECKING:
    from cbgwatch.models.item import Item
    from cbgwatch.models.alert import Alert


class WatchlistGroup(Base):
    """User-defined folder for watchlist entries"""
    __tablename__ = "watchlist_groups"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    color: Mapped[str] = mapped_column(String(20), default="#6366f1")
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    entries: Mapped[list["WatchlistEntry"]] = relationship(back_populates="group")


class WatchlistEntry(Base):
    """Tracks one item with an optional target price"""
    __tablename__ = "watchlist"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Foreign keys
    item_id: Mapped[str] = mapped_column(ForeignKey("items.id"), index=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("watchlist_groups.id"), default=1, index=True)

    # Alert configuration (minor currency units)
    target_price: Mapped[Optional[int]] = mapped_column(Integer)
    alert_enabled: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    notes: Mapped[Optional[str]] = mapped_column(String(1000))

    # Timestamp
    added_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    item: Mapped["Item"] = relationship(back_populates="watchlist_entries")
    group: Mapped["WatchlistGroup"] = relationship(back_populates="entries")
    alerts: Mapped[list["Alert"]] = relationship(
        back_populates="watchlist_entry",
        cascade="all, delete-orphan",
    )
