"""
Currency -- the closed set of currencies the ledger books in.

Each currency knows its ISO 4217 minor-unit exponent, which is what turns a
``Decimal`` major-unit amount into the integer minor units Money stores.
"""

from __future__ import annotations

from enum import Enum

from ledger_kernel.exceptions import InvalidCurrencyError

_MINOR_UNITS: dict[str, int] = {
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "CAD": 2,
    "AUD": 2,
    "JPY": 0,
    "CHF": 2,
    "CNY": 2,
}


class Currency(str, Enum):
    """Supported ISO 4217 currency codes."""

    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    CAD = "CAD"
    AUD = "AUD"
    JPY = "JPY"
    CHF = "CHF"
    CNY = "CNY"

    @property
    def minor_units(self) -> int:
        """Number of decimal places in the currency's minor unit."""
        return _MINOR_UNITS[self.value]

    @classmethod
    def parse(cls, code: "str | Currency") -> "Currency":
        """Resolve a code (case-insensitive) or pass a Currency through."""
        if isinstance(code, Currency):
            return code
        if not isinstance(code, str):
            raise InvalidCurrencyError(repr(code))
        try:
            return cls(code.strip().upper())
        except ValueError:
            raise InvalidCurrencyError(code) from None

    def __str__(self) -> str:
        return self.value
