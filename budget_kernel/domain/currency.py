"""Currency -- ISO 4217 registry and minor-unit precision for budget amounts."""

from dataclasses import dataclass
from typing import ClassVar

from budget_kernel.exceptions import InvalidCurrencyError


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str


class CurrencyRegistry:
    """Registry of the currencies a workspace may budget in."""

    DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        info.code: info
        for info in (
            CurrencyInfo("USD", 2, "US Dollar"),
            CurrencyInfo("EUR", 2, "Euro"),
            CurrencyInfo("GBP", 2, "Pound Sterling"),
            CurrencyInfo("CHF", 2, "Swiss Franc"),
            CurrencyInfo("CAD", 2, "Canadian Dollar"),
            CurrencyInfo("AUD", 2, "Australian Dollar"),
            CurrencyInfo("NZD", 2, "New Zealand Dollar"),
            CurrencyInfo("SEK", 2, "Swedish Krona"),
            CurrencyInfo("NOK", 2, "Norwegian Krone"),
            CurrencyInfo("DKK", 2, "Danish Krone"),
            CurrencyInfo("PLN", 2, "Polish Zloty"),
            CurrencyInfo("CZK", 2, "Czech Koruna"),
            CurrencyInfo("TRY", 2, "Turkish Lira"),
            CurrencyInfo("AED", 2, "UAE Dirham"),
            CurrencyInfo("SAR", 2, "Saudi Riyal"),
            CurrencyInfo("QAR", 2, "Qatari Riyal"),
            CurrencyInfo("EGP", 2, "Egyptian Pound"),
            CurrencyInfo("MAD", 2, "Moroccan Dirham"),
            CurrencyInfo("INR", 2, "Indian Rupee"),
            CurrencyInfo("PKR", 2, "Pakistani Rupee"),
            CurrencyInfo("IDR", 2, "Indonesian Rupiah"),
            CurrencyInfo("MYR", 2, "Malaysian Ringgit"),
            CurrencyInfo("SGD", 2, "Singapore Dollar"),
            CurrencyInfo("HKD", 2, "Hong Kong Dollar"),
            CurrencyInfo("CNY", 2, "Chinese Yuan"),
            CurrencyInfo("BRL", 2, "Brazilian Real"),
            CurrencyInfo("MXN", 2, "Mexican Peso"),
            CurrencyInfo("ZAR", 2, "South African Rand"),
            # Zero minor units
            CurrencyInfo("JPY", 0, "Japanese Yen"),
            CurrencyInfo("KRW", 0, "South Korean Won"),
            CurrencyInfo("CLP", 0, "Chilean Peso"),
            CurrencyInfo("VND", 0, "Vietnamese Dong"),
            CurrencyInfo("ISK", 0, "Icelandic Krona"),
            # Three minor units
            CurrencyInfo("BHD", 3, "Bahraini Dinar"),
            CurrencyInfo("JOD", 3, "Jordanian Dinar"),
            CurrencyInfo("KWD", 3, "Kuwaiti Dinar"),
            CurrencyInfo("OMR", 3, "Omani Rial"),
            CurrencyInfo("TND", 3, "Tunisian Dinar"),
        )
    }

    @classmethod
    def is_valid(cls, code: str) -> bool:
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        """Minor-unit precision used when rounding contributions."""
        info = cls.get_info(code)
        return info.decimal_places if info else cls.DEFAULT_DECIMAL_PLACES

    @classmethod
    def validate(cls, code: str) -> str:
        """
        Validate and normalise a currency code.

        Raises:
            InvalidCurrencyError: If the code is not a known 3-letter code.
        """
        if not code or not isinstance(code, str):
            raise InvalidCurrencyError(str(code))
        normalized = code.upper().strip()
        if len(normalized) != 3 or normalized not in cls._CURRENCIES:
            raise InvalidCurrencyError(code)
        return normalized

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._CURRENCIES)
