"""
Supermarket Monitor — Extraction Engine

Reads a product name and a price out of whatever markup a transport
returned. Each field has an ordered cascade of strategies; strategies run
strictly in order and the first one producing non-empty text wins.

Name cascade:
    product_title -> itemprop_name -> heading -> og_title -> title_tag

Price cascade:
    data_price_attribute -> price_meta_tag -> json_ld_offers
    -> css_class_price -> currency_text
    -> loose_price_key, loose_currency_number   (direct transport only)
    -> inline_script_scan                       (rendered transport only)

With NormalizationPolicy.FALL_THROUGH a price candidate must also normalize
to a positive amount, otherwise the cascade keeps going.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

import structlog
from selectolax.parser import HTMLParser

from src.config import NormalizationPolicy, settings
from src.scraper import ContentHandle, RawFieldMatch, TransportKind
from src.scraper.normalize import is_positive_price

logger = structlog.get_logger(__name__)

PRODUCT = "product"
PRICE = "price"

_ANY_TRANSPORT = frozenset({TransportKind.DIRECT, TransportKind.RENDERED})

_DIGIT = re.compile(r"\d")
_EURO_AMOUNT = re.compile(r"\d[\d.,]*\s*€")
_LOOSE_PRICE_KEYS = (
    re.compile(r"data-price\s*=\s*[\"']([0-9.,]+)[\"']", re.IGNORECASE),
    re.compile(r"\"price\"\s*:\s*\"?([0-9.,]+)\"?", re.IGNORECASE),
)
_LOOSE_EURO = re.compile(r"(\d[\d.,]*)\s*(?:€|&euro;|&#8364;)")
_SCRIPT_PRICE_KEY = re.compile(
    r"[\"'](?:price|finalPrice|currentPrice|salePrice)[\"']\s*:\s*[\"']?(\d[\d.,]*)",
    re.IGNORECASE,
)

# Text nodes longer than this are containers, not a price label.
_MAX_PRICE_LABEL_CHARS = 40


@dataclass
class Document:
    """Markup parsed once and shared by every strategy."""
    markup: str
    tree: HTMLParser

    @classmethod
    def parse(cls, markup: str) -> Document:
        return cls(markup=markup, tree=HTMLParser(markup or ""))


@dataclass(frozen=True)
class Strategy:
    """One cascade step: yields candidate texts in document order."""
    name: str
    finder: Callable[[Document], Iterator[str]]
    transports: frozenset[TransportKind] = _ANY_TRANSPORT
    machine_readable: bool = False


@dataclass
class ExtractionOutcome:
    """What the cascades found for one page."""
    product: RawFieldMatch | None = None
    price: RawFieldMatch | None = None
    tried: dict[str, list[str]] = field(default_factory=dict)
    rejected: list[RawFieldMatch] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _attr(node: Any, name: str) -> str:
    value = node.attributes.get(name)
    return value.strip() if value else ""


def _text(node: Any) -> str:
    return (node.text(deep=True, separator=" ", strip=True) or "").strip()


def _node_value(node: Any) -> str:
    """Meta tags carry their value in content=, everything else in text."""
    if node.tag == "meta":
        return _attr(node, "content")
    return _text(node)


def _first_values(doc: Document, *selectors: str) -> Iterator[str]:
    for selector in selectors:
        for node in doc.tree.css(selector):
            yield _node_value(node)


# ---------------------------------------------------------------------------
# Name strategies
# ---------------------------------------------------------------------------


def _product_title(doc: Document) -> Iterator[str]:
    yield from _first_values(doc, "h1.product-title", ".product-title")


def _itemprop_name(doc: Document) -> Iterator[str]:
    for node in doc.tree.css('[itemprop="name"]'):
        yield _attr(node, "content") or _text(node)


def _heading(doc: Document) -> Iterator[str]:
    yield from _first_values(doc, "h1")


def _og_title(doc: Document) -> Iterator[str]:
    for node in doc.tree.css('meta[property="og:title"]'):
        yield _attr(node, "content")


def _title_tag(doc: Document) -> Iterator[str]:
    yield from _first_values(doc, "title")


NAME_CASCADE: tuple[Strategy, ...] = (
    Strategy("product_title", _product_title),
    Strategy("itemprop_name", _itemprop_name),
    Strategy("heading", _heading),
    Strategy("og_title", _og_title),
    Strategy("title_tag", _title_tag),
)


# ---------------------------------------------------------------------------
# Price strategies
# ---------------------------------------------------------------------------


def _data_price_attribute(doc: Document) -> Iterator[str]:
    for selector in (".main-price .price[data-price]", ".price[data-price]"):
        for node in doc.tree.css(selector):
            yield _attr(node, "data-price")
    for node in doc.tree.css("[data-price]"):
        value = _attr(node, "data-price")
        if _DIGIT.search(value):
            yield value


def _price_meta_tag(doc: Document) -> Iterator[str]:
    for selector in (
        'meta[property="product:price:amount"]',
        'meta[property="og:price:amount"]',
        'meta[itemprop="price"]',
        '[itemprop="price"][content]',
    ):
        for node in doc.tree.css(selector):
            yield _attr(node, "content")


def _offer_prices(offers: Any) -> Iterator[str]:
    if isinstance(offers, list):
        for offer in offers:
            yield from _offer_prices(offer)
        return
    if not isinstance(offers, dict):
        return
    for key in ("price", "lowPrice", "highPrice"):
        value = offers.get(key)
        if value is not None and not isinstance(value, (dict, list, bool)):
            yield str(value)
    if "offers" in offers:
        yield from _offer_prices(offers["offers"])


def _walk_json_ld(data: Any) -> Iterator[str]:
    if isinstance(data, list):
        for item in data:
            yield from _walk_json_ld(item)
        return
    if not isinstance(data, dict):
        return
    if "offers" in data:
        yield from _offer_prices(data["offers"])
    for key in ("@graph", "mainEntity", "itemListElement"):
        if key in data:
            yield from _walk_json_ld(data[key])


def _json_ld_offers(doc: Document) -> Iterator[str]:
    for node in doc.tree.css('script[type="application/ld+json"]'):
        body = node.text(deep=True) or ""
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, ValueError):
            logger.debug("json_ld_unparseable", length=len(body), source="extraction")
            continue
        yield from _walk_json_ld(data)


def _css_class_price(doc: Document) -> Iterator[str]:
    yield from _first_values(
        doc,
        '[data-testid="product-price"]',
        ".main-price .price",
        ".price",
        ".product-price",
        'span[itemprop="price"]',
    )


def _currency_text(doc: Document) -> Iterator[str]:
    for node in doc.tree.css("span, div, p, b, strong"):
        text = _text(node)
        if len(text) > _MAX_PRICE_LABEL_CHARS:
            continue
        match = _EURO_AMOUNT.search(text)
        if match:
            yield match.group(0)


def _loose_price_key(doc: Document) -> Iterator[str]:
    for pattern in _LOOSE_PRICE_KEYS:
        for match in pattern.finditer(doc.markup):
            yield match.group(1)


def _loose_currency_number(doc: Document) -> Iterator[str]:
    for match in _LOOSE_EURO.finditer(doc.markup):
        yield match.group(1)


def _inline_script_scan(doc: Document) -> Iterator[str]:
    for node in doc.tree.css("script"):
        if _attr(node, "type").lower() == "application/ld+json" or _attr(node, "src"):
            continue
        body = node.text(deep=True) or ""
        for match in _SCRIPT_PRICE_KEY.finditer(body):
            yield match.group(1)


PRICE_CASCADE: tuple[Strategy, ...] = (
    Strategy("data_price_attribute", _data_price_attribute, machine_readable=True),
    Strategy("price_meta_tag", _price_meta_tag, machine_readable=True),
    Strategy("json_ld_offers", _json_ld_offers, machine_readable=True),
    Strategy("css_class_price", _css_class_price),
    Strategy("currency_text", _currency_text),
    Strategy("loose_price_key", _loose_price_key, frozenset({TransportKind.DIRECT}), machine_readable=True),
    Strategy("loose_currency_number", _loose_currency_number, frozenset({TransportKind.DIRECT})),
    Strategy("inline_script_scan", _inline_script_scan, frozenset({TransportKind.RENDERED}), machine_readable=True),
)


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------


def run_cascade(
    field_name: str,
    strategies: tuple[Strategy, ...],
    doc: Document,
    transport: TransportKind,
    accept: Callable[[RawFieldMatch], bool] | None = None,
    tried: list[str] | None = None,
    rejected: list[RawFieldMatch] | None = None,
) -> RawFieldMatch | None:
    """
    Try strategies in order and return the first acceptable non-empty match.

    Args:
        field_name: "product" or "price".
        strategies: Ordered cascade.
        doc: Parsed page.
        transport: Transport the markup came from; filters transport-specific steps.
        accept: Extra check on a non-empty candidate. When it returns False
            the candidate is recorded in `rejected` and the cascade continues.
        tried: Collects the names of strategies that were run.
        rejected: Collects candidates refused by `accept`.
    """
    for rank, strategy in enumerate(strategies):
        if transport not in strategy.transports:
            continue
        if tried is not None:
            tried.append(strategy.name)
        for text in strategy.finder(doc):
            text = (text or "").strip()
            if not text:
                continue
            match = RawFieldMatch(
                field=field_name,
                text=text,
                strategy=strategy.name,
                rank=rank,
                machine_readable=strategy.machine_readable,
            )
            if accept is not None and not accept(match):
                if rejected is not None:
                    rejected.append(match)
                continue
            return match
    return None


def _price_accepts(match: RawFieldMatch) -> bool:
    return is_positive_price(match.text, match.machine_readable)


def extract(
    content: ContentHandle,
    policy: NormalizationPolicy | None = None,
) -> ExtractionOutcome:
    """
    Run the name and price cascades over fetched content.

    Args:
        content: Markup from the direct or rendered transport.
        policy: FIRST_MATCH (default from settings) stops at the first
            non-empty price text; FALL_THROUGH also requires it to normalize.

    Returns:
        ExtractionOutcome. Either field may be None (an extraction miss).
    """
    policy = policy or settings.NORMALIZATION_POLICY
    doc = Document.parse(content.markup)
    outcome = ExtractionOutcome(tried={PRODUCT: [], PRICE: []})

    outcome.product = run_cascade(
        PRODUCT, NAME_CASCADE, doc, content.transport, tried=outcome.tried[PRODUCT]
    )
    outcome.price = run_cascade(
        PRICE,
        PRICE_CASCADE,
        doc,
        content.transport,
        accept=_price_accepts if policy == NormalizationPolicy.FALL_THROUGH else None,
        tried=outcome.tried[PRICE],
        rejected=outcome.rejected,
    )

    logger.debug(
        "extraction_complete",
        url=content.url,
        transport=content.transport.value,
        product_strategy=outcome.product.strategy if outcome.product else None,
        price_strategy=outcome.price.strategy if outcome.price else None,
        rejected=len(outcome.rejected),
        source="extraction",
    )
    return outcome
