"""
Tests for the Price Normalizer.

Greek/European formatting: comma decimal, dot thousands.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from src.scraper.normalize import is_positive_price, normalize_price


class TestNormalizePrice:
    """Locale-formatted text to Decimal."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("1.234,56", Decimal("1234.56")),
            ("12,50€", Decimal("12.50")),
            ("5,49 €", Decimal("5.49")),
            ("€ 0,99", Decimal("0.99")),
            ("1.000.000,00", Decimal("1000000.00")),
            ("3", Decimal("3")),
        ],
    )
    def test_locale_formats(self, raw: str, expected: Decimal) -> None:
        assert normalize_price(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "", None, "   ", "€", ".", ",", "N/A"])
    def test_unparseable_returns_none(self, raw: str | None) -> None:
        assert normalize_price(raw) is None

    def test_dot_only_is_thousands_grouping(self) -> None:
        """'1.234' has no comma, so the dot is read as a thousands separator."""
        assert normalize_price("1.234") == Decimal("1234")

    def test_machine_readable_keeps_canonical_dot(self) -> None:
        assert normalize_price("9.99", machine_readable=True) == Decimal("9.99")
        assert normalize_price("9.99") == Decimal("999")

    def test_machine_readable_still_handles_locale_text(self) -> None:
        """Structured data sometimes carries '5,5'; it still normalizes."""
        assert normalize_price("5,5", machine_readable=True) == Decimal("5.5")

    def test_result_has_single_dot_separator(self) -> None:
        value = normalize_price("1.234.567,89 €")
        assert str(value) == "1234567.89"


class TestIsPositivePrice:
    def test_positive(self) -> None:
        assert is_positive_price("0,01") is True

    def test_zero_is_not_positive(self) -> None:
        assert is_positive_price("0,00") is False

    def test_garbage_is_not_positive(self) -> None:
        assert is_positive_price("Εξαντλήθηκε") is False
