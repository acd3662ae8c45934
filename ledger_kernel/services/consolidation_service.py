"""
ConsolidationService -- per-subsidiary rollup arithmetic.

Responsibility:
    Folds one subsidiary amount into one parent amount under the Full,
    Proportional or Equity method, and computes the non-controlling
    interest (NCI) for Full consolidation.

Architecture position:
    Kernel > Services -- pure, stateless, zero I/O.

Invariants enforced:
    - Parent and subsidiary amounts share a currency.
    - The only rounding in the ledger happens here, when an ownership
      fraction is applied: half away from zero on the magnitude, with the
      sign restored through ``negate`` so no factory ever sees a negative.

Failure modes:
    - CurrencyMismatchError for mixed currencies.
    - ValueError for a fraction outside [0, 1].
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ledger_kernel.domain.entity import ConsolidationMethod, Entity
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import CurrencyMismatchError

_ZERO = Decimal("0")
_ONE = Decimal("1")


@dataclass(frozen=True)
class FullConsolidationResult:
    consolidated: Money
    nci: Money


class ConsolidationService:
    """
    Contract:
        Full:         consolidated = parent + subsidiary,
                      nci = (1 - ownership) * subsidiary
        Proportional: consolidated = parent + ownership * subsidiary
        Equity:       consolidated = parent + ownership * subsidiary

    Non-goals:
        - Equity and Proportional share a per-line formula. Presenting an
          Equity subsidiary as a single "investment in subsidiary" line is
          the caller's concern.
    """

    def consolidate_full(
        self, parent_amount: Money, subsidiary_amount: Money, entity: Entity
    ) -> FullConsolidationResult:
        self._require_same_currency(parent_amount, subsidiary_amount)
        consolidated = parent_amount.add(subsidiary_amount)
        nci = self.scale_money(subsidiary_amount, entity.non_controlling_interest_share)
        return FullConsolidationResult(consolidated=consolidated, nci=nci)

    def consolidate_proportional(
        self, parent_amount: Money, subsidiary_amount: Money, entity: Entity
    ) -> Money:
        self._require_same_currency(parent_amount, subsidiary_amount)
        share = self.scale_money(subsidiary_amount, entity.ownership_fraction)
        return parent_amount.add(share)

    def consolidate_equity(
        self, parent_amount: Money, subsidiary_amount: Money, entity: Entity
    ) -> Money:
        self._require_same_currency(parent_amount, subsidiary_amount)
        share = self.scale_money(subsidiary_amount, entity.ownership_fraction)
        return parent_amount.add(share)

    def consolidate(
        self, parent_amount: Money, subsidiary_amount: Money, entity: Entity
    ) -> FullConsolidationResult:
        """Dispatch on ``entity.consolidation_method``; NCI is zero unless Full."""
        method = entity.consolidation_method
        if method is ConsolidationMethod.FULL:
            return self.consolidate_full(parent_amount, subsidiary_amount, entity)
        if method is ConsolidationMethod.PROPORTIONAL:
            consolidated = self.consolidate_proportional(
                parent_amount, subsidiary_amount, entity
            )
        else:
            consolidated = self.consolidate_equity(parent_amount, subsidiary_amount, entity)
        return FullConsolidationResult(
            consolidated=consolidated, nci=Money.zero(parent_amount.currency)
        )

    def scale_money(self, money: Money, fraction: Decimal) -> Money:
        """Multiply by ``fraction`` in [0, 1], rounding to the nearest minor unit."""
        if isinstance(fraction, float):
            raise TypeError("fraction must be Decimal, not float")
        fraction = Decimal(fraction)
        if fraction < _ZERO or fraction > _ONE:
            raise ValueError(f"fraction must be within [0, 1], got {fraction}")
        magnitude = Decimal(abs(money.amount_minor_units)) * fraction
        scaled = Money.from_cents(
            int(magnitude.quantize(_ONE, rounding=ROUND_HALF_UP)), money.currency
        )
        return scaled.negate() if money.is_negative else scaled

    @staticmethod
    def _require_same_currency(a: Money, b: Money) -> None:
        if a.currency is not b.currency:
            raise CurrencyMismatchError(a.currency.value, b.currency.value, "consolidate")
