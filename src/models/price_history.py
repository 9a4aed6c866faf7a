"""
Supermarket Monitor — Price History Model

Append-only log of captured prices. Never updated: each successful scrape
inserts a new row.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DECIMAL, INTEGER, TIMESTAMP, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PriceObservation(Base):
    """
    One captured (product, price) pair.

    Index: (product_url, captured_at) supports per-product history lookups.
    """

    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(
        INTEGER, primary_key=True, autoincrement=True, comment="Surrogate key"
    )
    product: Mapped[str] = mapped_column(
        String, nullable=False, comment="Product name as scraped"
    )
    price: Mapped[Decimal] = mapped_column(
        DECIMAL(10, 2), nullable=False, comment="Normalized price, always > 0"
    )
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default="EUR", comment="ISO 4217 code"
    )
    product_url: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Page the price was captured from"
    )
    captured_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
        comment="UTC timestamp of the capture",
    )

    __table_args__ = (
        Index("ix_price_history_url_captured", "product_url", "captured_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product": self.product,
            "price": float(self.price),
            "currency": self.currency,
            "product_url": self.product_url,
            "captured_at": self.captured_at.isoformat() if self.captured_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<PriceObservation product={self.product!r} price={self.price} "
            f"{self.currency} at={self.captured_at}>"
        )
