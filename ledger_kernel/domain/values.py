"""
Values -- exact monetary value object.

Responsibility:
    Provides Money, the unit every ledger computation is built on: a signed
    64-bit count of minor units paired with its Currency.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other domain module.

Invariants enforced:
    - Amounts are integers of minor units; floats are rejected outright.
    - Binary operations require identical currencies.
    - ``from_cents``/``from_decimal`` reject negative inputs and ``subtract``
      rejects a negative result. Negative magnitudes only appear through
      ``negate``, so a credit-side net change is always explicit.
    - Amounts stay within the signed 64-bit range.

Failure modes:
    - TypeError for float or non-integer amounts.
    - CurrencyMismatchError, NegativeAmountError, MoneyOverflowError,
      InvalidCurrencyError (see ledger_kernel.exceptions).
    - ValueError when ``from_decimal`` is given more precision than the
      currency's minor unit (no silent rounding).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from ledger_kernel.domain.currency import Currency
from ledger_kernel.exceptions import (
    CurrencyMismatchError,
    MoneyOverflowError,
    NegativeAmountError,
)

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount in integer minor units.

    Contract:
        Pairs an ``int`` minor-unit amount with its Currency. The bare
        constructor accepts signed amounts (balances and net changes are
        signed); the public factories only accept non-negative inputs.

    Guarantees:
        - Immutable and hashable (frozen dataclass with slots)
        - No floating point in any code path
        - Arithmetic never mixes currencies

    Non-goals:
        - Does NOT convert between currencies (see CurrencyConverter)
        - Does NOT round; fractional scaling lives in ConsolidationService
    """

    amount_minor_units: int
    currency: Currency

    def __post_init__(self) -> None:
        # INVARIANT: integer minor units only, bool is not an amount
        amount = self.amount_minor_units
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise TypeError(
                f"amount_minor_units must be int, got {type(amount).__name__}"
            )
        if not INT64_MIN <= amount <= INT64_MAX:
            raise MoneyOverflowError(amount)
        if not isinstance(self.currency, Currency):
            object.__setattr__(self, "currency", Currency.parse(self.currency))

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def from_cents(cls, cents: int, currency: Currency | str = Currency.USD) -> Money:
        """Create from a non-negative minor-unit count."""
        currency = Currency.parse(currency)
        if isinstance(cents, bool) or not isinstance(cents, int):
            raise TypeError(f"cents must be int, got {type(cents).__name__}")
        if cents < 0:
            raise NegativeAmountError(str(cents), currency.value)
        return cls(cents, currency)

    @classmethod
    def from_decimal(
        cls, amount: Decimal | str | int, currency: Currency | str = Currency.USD
    ) -> Money:
        """
        Create from a non-negative major-unit amount such as ``Decimal("12.34")``.

        Raises:
            TypeError: amount is a float.
            NegativeAmountError: amount is negative.
            ValueError: amount is not a number or is finer than the minor unit.
        """
        currency = Currency.parse(currency)
        if isinstance(amount, float):
            raise TypeError("Money.from_decimal does not accept float amounts")
        if isinstance(amount, bool):
            raise TypeError("Money.from_decimal does not accept bool amounts")
        try:
            value = Decimal(str(amount)) if not isinstance(amount, Decimal) else amount
        except ArithmeticError as e:
            raise ValueError(f"Invalid amount: {amount!r}") from e
        if not value.is_finite():
            raise ValueError(f"Invalid amount: {amount!r}")
        if value < 0:
            raise NegativeAmountError(str(value), currency.value)
        scaled = value.scaleb(currency.minor_units)
        if scaled != scaled.to_integral_value():
            raise ValueError(
                f"{value} has more precision than {currency.value} allows "
                f"({currency.minor_units} decimal places)"
            )
        return cls(int(scaled), currency)

    @classmethod
    def zero(cls, currency: Currency | str = Currency.USD) -> Money:
        return cls(0, Currency.parse(currency))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Money:
        """Inverse of ``to_dict``; accepts signed amounts."""
        return cls(int(data["amount_minor_units"]), Currency.parse(data["currency"]))

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def _require_same_currency(self, other: Money, operation: str) -> None:
        if self.currency is not other.currency:
            raise CurrencyMismatchError(
                self.currency.value, other.currency.value, operation
            )

    def add(self, other: Money) -> Money:
        self._require_same_currency(other, "add")
        return Money(self.amount_minor_units + other.amount_minor_units, self.currency)

    def subtract(self, other: Money) -> Money:
        """Subtract ``other``; the result must not be negative."""
        self._require_same_currency(other, "subtract")
        result = self.amount_minor_units - other.amount_minor_units
        if result < 0:
            raise NegativeAmountError(
                str(result),
                self.currency.value,
                reason="subtraction would produce a negative amount",
            )
        return Money(result, self.currency)

    def negate(self) -> Money:
        return Money(-self.amount_minor_units, self.currency)

    def abs(self) -> Money:
        return Money(abs(self.amount_minor_units), self.currency)

    def equals(self, other: Money) -> bool:
        return (
            self.currency is other.currency
            and self.amount_minor_units == other.amount_minor_units
        )

    def to_cents(self) -> int:
        return self.amount_minor_units

    def to_decimal(self) -> Decimal:
        """Major-unit Decimal, e.g. 1234 USD -> Decimal('12.34')."""
        return Decimal(self.amount_minor_units).scaleb(-self.currency.minor_units)

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount_minor_units": self.amount_minor_units,
            "currency": self.currency.value,
        }

    @property
    def is_zero(self) -> bool:
        return self.amount_minor_units == 0

    @property
    def is_positive(self) -> bool:
        return self.amount_minor_units > 0

    @property
    def is_negative(self) -> bool:
        return self.amount_minor_units < 0

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return self.add(other)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return self.subtract(other)

    def __neg__(self) -> Money:
        return self.negate()

    def __abs__(self) -> Money:
        return self.abs()

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "compare")
        return self.amount_minor_units < other.amount_minor_units

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "compare")
        return self.amount_minor_units <= other.amount_minor_units

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "compare")
        return self.amount_minor_units > other.amount_minor_units

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other, "compare")
        return self.amount_minor_units >= other.amount_minor_units

    def __str__(self) -> str:
        return f"{self.to_decimal()} {self.currency.value}"

    def __repr__(self) -> str:
        return f"Money({self.amount_minor_units}, {self.currency.value})"
