"""
Tests for currency validation and minor-unit precision.

Budgets are created in an ISO 4217 currency and contributions are rounded
to that currency's minor unit.
"""

import pytest

from budget_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from budget_kernel.exceptions import InvalidCurrencyError, ValidationError


class TestISO4217Validation:
    def test_valid_currency_codes_accepted(self):
        for code in ["USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD"]:
            assert CurrencyRegistry.is_valid(code)
            assert CurrencyRegistry.validate(code) == code

    def test_lowercase_and_whitespace_normalized(self):
        assert CurrencyRegistry.validate("usd") == "USD"
        assert CurrencyRegistry.validate(" eur ") == "EUR"

    def test_invalid_currency_codes_rejected(self):
        for code in ["XXY", "ABC", "123", "US", "USDD", "", "X"]:
            assert not CurrencyRegistry.is_valid(code)

    @pytest.mark.parametrize("code", ["XXY", "US", "USDD", "", None])
    def test_validate_raises(self, code):
        with pytest.raises(InvalidCurrencyError) as exc_info:
            CurrencyRegistry.validate(code)
        assert exc_info.value.code == "INVALID_CURRENCY"

    def test_invalid_currency_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            CurrencyRegistry.validate("ABC")


class TestMinorUnits:
    @pytest.mark.parametrize(
        "code, places",
        [("USD", 2), ("EUR", 2), ("JPY", 0), ("KRW", 0), ("KWD", 3), ("BHD", 3)],
    )
    def test_decimal_places(self, code, places):
        assert CurrencyRegistry.get_decimal_places(code) == places

    def test_unknown_currency_uses_default(self):
        assert CurrencyRegistry.get_decimal_places("ZZZ") == CurrencyRegistry.DEFAULT_DECIMAL_PLACES

    def test_get_info(self):
        assert CurrencyRegistry.get_info("jpy") == CurrencyInfo("JPY", 0, "Japanese Yen")
        assert CurrencyRegistry.get_info("") is None

    def test_all_codes_are_three_letters(self):
        codes = CurrencyRegistry.all_codes()
        assert "USD" in codes
        assert all(len(code) == 3 and code.isupper() for code in codes)
