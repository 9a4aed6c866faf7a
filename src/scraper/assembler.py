"""
Supermarket Monitor — Result Assembler

Turns the engine's raw matches into a ScrapeResult, or None. Missing fields
and unparseable prices are outcomes, not exceptions; they are logged with
enough context to spot markup drift.
"""

from __future__ import annotations

from enum import Enum

import structlog

from src.config import Currency
from src.scraper import RawFieldMatch, ScrapeResult, TransportKind
from src.scraper.normalize import normalize_price

logger = structlog.get_logger(__name__)


class MissReason(str, Enum):
    EXTRACTION_MISS = "extraction_miss"              # a field had no match at all
    NORMALIZATION_FAILURE = "normalization_failure"  # price text is not a positive amount


def diagnose(product_raw: RawFieldMatch | None, price_raw: RawFieldMatch | None) -> MissReason | None:
    """Why assemble() would return None for these matches, or None if it would not."""
    if product_raw is None or price_raw is None:
        return MissReason.EXTRACTION_MISS
    value = normalize_price(price_raw.text, price_raw.machine_readable)
    if value is None or value <= 0:
        return MissReason.NORMALIZATION_FAILURE
    return None


def assemble(
    product_raw: RawFieldMatch | None,
    price_raw: RawFieldMatch | None,
    *,
    currency: Currency = Currency.EUR,
    url: str | None = None,
    transport: TransportKind | None = None,
) -> ScrapeResult | None:
    """
    Combine name + price into a ScrapeResult.

    Both matches must be present and the price must normalize to a value
    strictly greater than zero. Currency is the retailer's, never parsed.
    """
    reason = diagnose(product_raw, price_raw)
    if reason is MissReason.EXTRACTION_MISS:
        logger.info(
            "extraction_miss",
            url=url,
            product_found=product_raw is not None,
            price_found=price_raw is not None,
            product_strategy=product_raw.strategy if product_raw else None,
            price_strategy=price_raw.strategy if price_raw else None,
            source="assembler",
        )
        return None
    if reason is MissReason.NORMALIZATION_FAILURE:
        logger.info(
            "normalization_failure",
            url=url,
            price_text=price_raw.text[:80],
            price_strategy=price_raw.strategy,
            source="assembler",
        )
        return None

    price = normalize_price(price_raw.text, price_raw.machine_readable)
    return ScrapeResult(
        product=product_raw.text,
        price=price,
        currency=currency,
        url=url,
        transport=transport,
        price_strategy=price_raw.strategy,
    )
