"""
Supermarket Monitor — Price Normalizer

Greek/European formatting: comma is the decimal separator, dot groups
thousands. "1.234,56 €" -> Decimal("1234.56").

Known limitation: a dot-only string such as "1.234" is read as 1234, never
as 1.234. There is no way to tell the two apart from the text alone.
Machine-readable sources (data attributes, meta content, JSON-LD) already
use a canonical dot decimal, so callers flag those and "9.99" stays 9.99.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

_NON_NUMERIC = re.compile(r"[^0-9.,]")
_CANONICAL = re.compile(r"^\d+(?:\.\d+)?$")


def normalize_price(raw: str | None, machine_readable: bool = False) -> Decimal | None:
    """
    Convert locale-formatted price text to a Decimal.

    Args:
        raw: Text captured from the page.
        machine_readable: The text came from a field that stores a canonical
            number (e.g. data-price="9.99"). Canonical input is parsed as-is;
            anything else still goes through the locale rules.

    Returns:
        Decimal, or None for empty, unparseable, NaN or infinite input.
    """
    if not raw:
        return None

    stripped = raw.strip()
    if machine_readable and _CANONICAL.match(stripped):
        return Decimal(stripped)

    cleaned = _NON_NUMERIC.sub("", stripped).replace(".", "").replace(",", ".")
    if not cleaned or cleaned == ".":
        return None

    try:
        value = Decimal(cleaned)
    except (InvalidOperation, ValueError):
        return None

    if not value.is_finite():
        return None
    return value


def is_positive_price(raw: str | None, machine_readable: bool = False) -> bool:
    """True when raw text normalizes to a strictly positive amount."""
    value = normalize_price(raw, machine_readable)
    return value is not None and value > 0
