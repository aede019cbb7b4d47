"""
Price snapshot model for historical price tracking
"""
from datetime import datetime
from typing import Optional, TYPE_CHECKING
from sqlalchemy import String, Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from cbgwatch.database import Base

if TYPE_CHECKING:
    from cbgwatch.models.item import Item


class PriceSnapshot(Base):
    """One row per successful item check, never updated"""
    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Foreign key
    item_id: Mapped[str] = mapped_column(ForeignKey("items.id"), index=True)

    # Snapshot data
    price: Mapped[int] = mapped_column(Integer)
    status: Mapped[Optional[str]] = mapped_column(String(20))

    checked_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    item: Mapped["Item"] = relationship(back_populates="price_snapshots")

    __table_args__ = (
        Index('ix_price_history_item_checked', 'item_id', 'checked_at'),
    )
