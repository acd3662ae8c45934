"""
Entity -- a legal/reporting entity in a consolidation group.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from ledger_kernel.domain.currency import Currency

_HUNDRED = Decimal("100")


class ConsolidationMethod(str, Enum):
    FULL = "Full"
    PROPORTIONAL = "Proportional"
    EQUITY = "Equity"


@dataclass(frozen=True)
class Entity:
    """
    A reporting entity.

    Contract:
        ``ownership_percentage`` is the parent's stake in this entity, a
        Decimal in [0, 100]. Ints and numeric strings are accepted and
        normalised; floats are rejected.
    """

    id: str
    tenant_id: str
    name: str
    ownership_percentage: Decimal = _HUNDRED
    consolidation_method: ConsolidationMethod = ConsolidationMethod.FULL
    currency: Currency = Currency.USD
    parent_entity_id: str | None = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Entity name is required")
        pct = self.ownership_percentage
        if isinstance(pct, (float, bool)):
            raise TypeError("ownership_percentage must be Decimal, int or str")
        pct = Decimal(str(pct)) if not isinstance(pct, Decimal) else pct
        if not pct.is_finite() or pct < 0 or pct > _HUNDRED:
            raise ValueError(
                f"ownership_percentage must be between 0 and 100, got: {self.ownership_percentage}"
            )
        object.__setattr__(self, "ownership_percentage", pct)
        object.__setattr__(
            self, "consolidation_method", ConsolidationMethod(self.consolidation_method)
        )
        object.__setattr__(self, "currency", Currency.parse(self.currency))

    @property
    def is_subsidiary(self) -> bool:
        return self.parent_entity_id is not None

    @property
    def ownership_fraction(self) -> Decimal:
        """Parent's stake as a fraction in [0, 1]."""
        return self.ownership_percentage / _HUNDRED

    @property
    def non_controlling_interest_share(self) -> Decimal:
        """Minority's stake, 1 - ownership_fraction."""
        return (_HUNDRED - self.ownership_percentage) / _HUNDRED
