"""
Supermarket Monitor — Watch Item Model

One product page the daily job keeps an eye on. Managed through the admin
API and the watchlist CLI; the scraper core only ever reads it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import BOOLEAN, DECIMAL, INTEGER, TIMESTAMP, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WatchItem(Base):
    """
    A watched product URL with its alert thresholds.

    product_url is unique: adding an existing URL updates the row in place.
    last_notified_price is written by the daily job only, according to
    LAST_NOTIFIED_POLICY.
    """

    __tablename__ = "watchlist"

    id: Mapped[int] = mapped_column(
        INTEGER, primary_key=True, autoincrement=True, comment="Surrogate key"
    )
    product_url: Mapped[str] = mapped_column(
        String, nullable=False, unique=True, comment="Product page URL"
    )
    product_name: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Human label; the scraped name is used in alerts"
    )
    target_price: Mapped[Decimal | None] = mapped_column(
        DECIMAL(10, 2), nullable=True, comment="Alert when the price is at or below this"
    )
    last_notified_price: Mapped[Decimal | None] = mapped_column(
        DECIMAL(10, 2), nullable=True, comment="Price at the last notification"
    )
    active: Mapped[bool] = mapped_column(
        BOOLEAN, nullable=False, default=True, comment="Inactive items are skipped by the job"
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_url": self.product_url,
            "product_name": self.product_name,
            "target_price": float(self.target_price) if self.target_price is not None else None,
            "last_notified_price": (
                float(self.last_notified_price) if self.last_notified_price is not None else None
            ),
            "active": self.active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<WatchItem id={self.id} url={self.product_url!r} "
            f"target={self.target_price} active={self.active}>"
        )
