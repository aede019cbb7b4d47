"""
Cached mirror of a CBG marketplace item
"""
from datetime import datetime
from typing import Optional, TYPE_CHECKING
from sqlalchemy import String, Integer, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from cbgwatch.database import Base

if TYPE_CHECKING:
    from cbgwatch.models.watchlist import WatchlistEntry
    from cbgwatch.models.price_snapshot import PriceSnapshot


class Item(Base):
    """Latest known upstream state of an item, overwritten on every successful check"""
    __tablename__ = "items"

    # Upstream-assigned id (equip_type for aggregate items, equipid for listings)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Item details
    name: Mapped[str] = mapped_column(String(255))
    category: Mapped[str] = mapped_column(String(20), default="item", index=True)
    rarity: Mapped[str] = mapped_column(String(10), default="gold")
    serial_num: Mapped[Optional[str]] = mapped_column(String(64))
    seller_name: Mapped[Optional[str]] = mapped_column(String(255))
    game_ordersn: Mapped[Optional[str]] = mapped_column(String(128))

    # Images
    image_url: Mapped[Optional[str]] = mapped_column(String(1000))
    capture_urls: Mapped[Optional[list]] = mapped_column(JSON)  # 3D rotation preview frames
    star_grid: Mapped[Optional[list]] = mapped_column(JSON)  # Four slot qualities, None for unknown

    # Pricing (minor currency units)
    current_price: Mapped[Optional[int]] = mapped_column(Integer)
    collect_count: Mapped[int] = mapped_column(Integer, default=0)

    # Status: normal, draw, sold, delisted
    status: Mapped[str] = mapped_column(String(20), default="normal")

    # Timestamps
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    watchlist_entries: Mapped[list["WatchlistEntry"]] = relationship(back_populates="item")
    price_snapshots: Mapped[list["PriceSnapshot"]] = relationship(
        back_populates="item",
        order_by="PriceSnapshot.checked_at",
    )
