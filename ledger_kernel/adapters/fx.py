"""
Static-rate currency converter.

Holds dated Decimal rates per currency pair and converts Money with
half-up rounding to the target currency's minor unit. A pair with no rate
effective on or before the requested date raises
ConversionRateUnavailableError; there is no fallback rate.
"""

from __future__ import annotations

import bisect
from collections.abc import Mapping
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from ledger_kernel.domain.currency import Currency
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import ConversionRateUnavailableError
from ledger_kernel.ports import CurrencyConverter

_ONE = Decimal("1")


class StaticRateCurrencyConverter(CurrencyConverter):
    """
    ``rates`` maps (from, to) to a Decimal rate effective from ``date.min``;
    ``add_rate`` registers further dated rates. Inverse pairs are derived
    when only one direction is registered.
    """

    def __init__(self, rates: Mapping[tuple[Currency, Currency], Decimal] | None = None):
        self._rates: dict[tuple[Currency, Currency], list[tuple[date, Decimal]]] = {}
        for (source, target), rate in (rates or {}).items():
            self.add_rate(source, target, rate)

    def add_rate(
        self,
        source: Currency | str,
        target: Currency | str,
        rate: Decimal | str,
        effective_from: date = date.min,
    ) -> None:
        if isinstance(rate, float):
            raise TypeError("rate must be Decimal or str, not float")
        rate = Decimal(rate)
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        pair = (Currency.parse(source), Currency.parse(target))
        bisect.insort(self._rates.setdefault(pair, []), (effective_from, rate))

    def rate(self, source: Currency, target: Currency, as_of: date) -> Decimal:
        if source is target:
            return _ONE
        direct = self._lookup((source, target), as_of)
        if direct is not None:
            return direct
        inverse = self._lookup((target, source), as_of)
        if inverse is not None:
            return _ONE / inverse
        raise ConversionRateUnavailableError(source.value, target.value, as_of.isoformat())

    def convert(self, amount: Money, to_currency: Currency, as_of: date) -> Money:
        to_currency = Currency.parse(to_currency)
        if amount.currency is to_currency:
            return amount
        rate = self.rate(amount.currency, to_currency, as_of)
        major = amount.abs().to_decimal() * rate
        minor = major.scaleb(to_currency.minor_units).quantize(_ONE, rounding=ROUND_HALF_UP)
        converted = Money(int(minor), to_currency)
        return converted.negate() if amount.is_negative else converted

    def _lookup(self, pair: tuple[Currency, Currency], as_of: date) -> Decimal | None:
        dated = self._rates.get(pair)
        if not dated:
            return None
        idx = bisect.bisect_right(dated, (as_of, Decimal("Infinity"))) - 1
        return dated[idx][1] if idx >= 0 else None
