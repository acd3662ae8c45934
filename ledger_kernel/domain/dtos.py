"""
Data transfer objects exchanged through the repository ports.
"""

from __future__ import annotations

from dataclasses import dataclass

from ledger_kernel.domain.account import AccountType
from ledger_kernel.domain.period import AccountingPeriod
from ledger_kernel.domain.values import Money


@dataclass(frozen=True)
class PostingEligibility:
    """Answer of ``PeriodRepository.can_post_to_date``."""

    allowed: bool
    period: AccountingPeriod | None
    reason: str | None = None


@dataclass(frozen=True)
class AccountBalance:
    """
    Signed per-account balance as of a date.

    ``balance`` is debit-positive: a credit-normal account in its normal
    state carries a negative amount.
    """

    account_code: str
    account_name: str
    account_type: AccountType
    balance: Money
    category: str | None = None

    @property
    def balance_cents(self) -> int:
        return self.balance.amount_minor_units
