"""
Supermarket Monitor — Watchlist Repository

All reads and writes against the watchlist and price_history tables go
through here. Each write commits its own unit of work.

Usage:
    async with session_factory() as session:
        repo = WatchlistRepository(session)
        items = await repo.list_active_watch_items()
"""

from __future__ import annotations

from decimal import Decimal
from urllib.parse import urlsplit

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from src.config import Currency
from src.models.base import Base
from src.models.price_history import PriceObservation
from src.models.watch_item import WatchItem

logger = structlog.get_logger(__name__)


def validate_product_url(product_url: str | None) -> str:
    """Return the stripped URL, or raise ValueError unless it is an absolute http(s) URL."""
    product_url = (product_url or "").strip()
    if not product_url:
        raise ValueError("product_url is required")
    try:
        parsed = urlsplit(product_url)
        parsed.port  # raises ValueError on a non-numeric port
    except ValueError as e:
        raise ValueError(f"product_url is not a valid URL: {e}") from e
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValueError("product_url must be an absolute http(s) URL")
    return product_url


async def init_schema(engine: AsyncEngine) -> None:
    """Create missing tables. Existing tables are left untouched."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("schema_ready", tables=sorted(Base.metadata.tables), source="repository")


class WatchlistRepository:
    """Persistence collaborator for the daily job, the admin API and the CLI."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # -----------------------------------------------------------------------
    # Watchlist
    # -----------------------------------------------------------------------

    async def list_watch_items(self) -> list[WatchItem]:
        result = await self.session.execute(select(WatchItem).order_by(WatchItem.id))
        return list(result.scalars().all())

    async def list_active_watch_items(self) -> list[WatchItem]:
        result = await self.session.execute(
            select(WatchItem).where(WatchItem.active.is_(True)).order_by(WatchItem.id)
        )
        return list(result.scalars().all())

    async def get_watch_item_by_url(self, product_url: str) -> WatchItem | None:
        result = await self.session.execute(
            select(WatchItem).where(WatchItem.product_url == product_url)
        )
        return result.scalar_one_or_none()

    async def upsert_watch_item(
        self,
        product_url: str,
        product_name: str | None = None,
        target_price: Decimal | float | str | None = None,
        active: bool = True,
    ) -> WatchItem:
        """
        Insert a watch item, or update name/target/active when the URL exists.

        last_notified_price is never touched here.

        Raises:
            ValueError: product_url is empty or not an absolute http(s) URL.
        """
        product_url = validate_product_url(product_url)

        target = Decimal(str(target_price)) if target_price is not None else None
        item = await self.get_watch_item_by_url(product_url)
        created = item is None
        if item is None:
            item = WatchItem(product_url=product_url)
            self.session.add(item)

        item.product_name = product_name
        item.target_price = target
        item.active = active

        await self.session.commit()
        await self.session.refresh(item)
        logger.info(
            "watch_item_saved",
            id=item.id,
            product_url=product_url,
            created=created,
            active=active,
            source="repository",
        )
        return item

    async def delete_watch_item(self, item_id: int) -> bool:
        result = await self.session.execute(delete(WatchItem).where(WatchItem.id == item_id))
        await self.session.commit()
        return result.rowcount > 0

    async def delete_watch_item_by_url(self, product_url: str) -> bool:
        result = await self.session.execute(
            delete(WatchItem).where(WatchItem.product_url == product_url)
        )
        await self.session.commit()
        return result.rowcount > 0

    async def update_last_notified_price(self, item_id: int, price: Decimal) -> None:
        item = await self.session.get(WatchItem, item_id)
        if item is None:
            logger.warning("watch_item_missing", id=item_id, source="repository")
            return
        item.last_notified_price = price
        await self.session.commit()

    # -----------------------------------------------------------------------
    # Price history
    # -----------------------------------------------------------------------

    async def append_price_observation(
        self,
        product: str,
        price: Decimal,
        currency: Currency | str = Currency.EUR,
        product_url: str | None = None,
    ) -> PriceObservation:
        observation = PriceObservation(
            product=product,
            price=price,
            currency=currency.value if isinstance(currency, Currency) else currency,
            product_url=product_url,
        )
        self.session.add(observation)
        await self.session.commit()
        return observation

    async def list_price_history(self, limit: int = 50) -> list[PriceObservation]:
        """Most recent observations first."""
        result = await self.session.execute(
            select(PriceObservation)
            .order_by(PriceObservation.captured_at.desc(), PriceObservation.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
