"""
Account -- chart-of-accounts record.

Accounts are created once and never edited. Removing one from use produces a
tombstoned copy carrying ``deleted_at``; ledger history that references the
code stays valid.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum


class AccountType(str, Enum):
    ASSET = "Asset"
    LIABILITY = "Liability"
    EQUITY = "Equity"
    REVENUE = "Revenue"
    EXPENSE = "Expense"


class NormalBalance(str, Enum):
    DEBIT = "Debit"
    CREDIT = "Credit"


NORMAL_BALANCE_BY_TYPE: dict[AccountType, NormalBalance] = {
    AccountType.ASSET: NormalBalance.DEBIT,
    AccountType.EXPENSE: NormalBalance.DEBIT,
    AccountType.LIABILITY: NormalBalance.CREDIT,
    AccountType.EQUITY: NormalBalance.CREDIT,
    AccountType.REVENUE: NormalBalance.CREDIT,
}


@dataclass(frozen=True)
class Account:
    """
    A ledger account.

    Contract:
        ``code`` is unique per tenant (enforced by the repository).
        ``normal_balance`` must match the account type's convention.
    """

    id: str
    tenant_id: str
    code: str
    name: str
    account_type: AccountType
    normal_balance: NormalBalance | None = None
    parent_account_id: str | None = None
    category: str | None = None
    created_by: str | None = None
    deleted_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.code or not self.code.strip():
            raise ValueError("Account code must not be blank")
        if not self.name or not self.name.strip():
            raise ValueError("Account name must not be blank")
        account_type = AccountType(self.account_type)
        object.__setattr__(self, "account_type", account_type)

        expected = NORMAL_BALANCE_BY_TYPE[account_type]
        if self.normal_balance is None:
            object.__setattr__(self, "normal_balance", expected)
        elif NormalBalance(self.normal_balance) is not expected:
            raise ValueError(
                f"{account_type.value} account {self.code} must have a "
                f"{expected.value} normal balance, got {self.normal_balance}"
            )
        else:
            object.__setattr__(self, "normal_balance", NormalBalance(self.normal_balance))

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance is NormalBalance.DEBIT

    def soft_delete(self, at: datetime) -> Account:
        """Return a tombstoned copy. The original is left untouched."""
        if self.deleted_at is not None:
            return self
        return replace(self, deleted_at=at)
