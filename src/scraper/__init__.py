"""Supermarket Monitor — Scraper Layer (extraction pipeline core)"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.config import Currency


class TransportKind(str, Enum):
    """How page content was obtained."""
    DIRECT = "direct"      # plain HTTP request
    RENDERED = "rendered"  # delegated to a page-rendering engine


@dataclass(frozen=True)
class ExecutionEnvironment:
    """
    Capability flag supplied by the host.

    The core never inspects process environment variables to decide
    whether a browser can be launched; the caller states it here.
    """
    rendering_available: bool

    @classmethod
    def direct_only(cls) -> ExecutionEnvironment:
        return cls(rendering_available=False)


@dataclass(frozen=True)
class ContentHandle:
    """Markup returned by one transport for one URL."""
    url: str
    markup: str
    transport: TransportKind
    status_code: int | None = None


@dataclass(frozen=True)
class RawFieldMatch:
    """First non-empty text a cascade strategy captured for a field."""
    field: str     # "product" | "price"
    text: str
    strategy: str
    rank: int      # position of the strategy in its cascade, 0-based
    machine_readable: bool = False

    def __post_init__(self) -> None:
        if not self.text or not self.text.strip():
            raise ValueError("RawFieldMatch text must be non-empty")


class ScrapeResult(BaseModel):
    """Normalized, validated output of one successful extraction."""

    model_config = ConfigDict(frozen=True)

    product: str = Field(..., min_length=1)
    price: Decimal = Field(..., gt=0)
    currency: Currency = Currency.EUR
    url: str | None = None
    transport: TransportKind | None = None
    price_strategy: str | None = None
    scraped_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("product", mode="before")
    @classmethod
    def strip_product(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v
