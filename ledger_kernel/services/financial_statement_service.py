"""
FinancialStatementService -- profit and loss and balance sheet from balances.

Balances arrive debit-positive (see AccountBalance). For display, Revenue,
Liability and Equity amounts are sign-flipped so a normal balance shows as
positive. The balance sheet check includes current net income, since
revenue and expense have not yet been closed to retained earnings:

    total assets == liabilities + equity + (revenue - expense)
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from enum import Enum

from ledger_kernel.domain.account import AccountType
from ledger_kernel.domain.currency import Currency
from ledger_kernel.domain.dtos import AccountBalance

_CREDIT_NORMAL = frozenset({AccountType.REVENUE, AccountType.LIABILITY, AccountType.EQUITY})


class BalanceSheetSection(str, Enum):
    CURRENT_ASSETS = "current_assets"
    NON_CURRENT_ASSETS = "non_current_assets"
    CURRENT_LIABILITIES = "current_liabilities"
    NON_CURRENT_LIABILITIES = "non_current_liabilities"
    EQUITY = "equity"


@dataclass(frozen=True)
class StatementLine:
    account_code: str
    account_name: str
    account_type: AccountType
    amount_cents: int
    currency: Currency
    section: BalanceSheetSection | None = None


@dataclass(frozen=True)
class ProfitAndLossReport:
    period_start: date
    period_end: date
    currency: Currency
    revenue: tuple[StatementLine, ...]
    expenses: tuple[StatementLine, ...]
    total_revenue_cents: int
    total_expense_cents: int
    net_income_cents: int


@dataclass(frozen=True)
class BalanceSheetReport:
    as_of: date
    currency: Currency
    lines: tuple[StatementLine, ...]
    total_assets_cents: int
    total_liabilities_cents: int
    total_equity_cents: int
    net_income_cents: int
    total_liabilities_and_equity_cents: int

    @property
    def is_balanced(self) -> bool:
        return self.total_assets_cents == self.total_liabilities_and_equity_cents


def display_cents(balance: AccountBalance) -> int:
    """Debit-positive balance flipped for credit-normal account types."""
    if balance.account_type in _CREDIT_NORMAL:
        return -balance.balance_cents
    return balance.balance_cents


def is_current_account(account_name: str | None, category: str | None) -> bool:
    """Category wins when present; otherwise look for 'Current' in the name."""
    if category:
        return category == "Current"
    return "Current" in (account_name or "")


def _total(balances: Iterable[AccountBalance], account_type: AccountType) -> int:
    return sum(display_cents(b) for b in balances if b.account_type is account_type)


def _section(account_type: AccountType, current: bool) -> BalanceSheetSection:
    if account_type is AccountType.ASSET:
        return BalanceSheetSection.CURRENT_ASSETS if current else BalanceSheetSection.NON_CURRENT_ASSETS
    if account_type is AccountType.LIABILITY:
        return (
            BalanceSheetSection.CURRENT_LIABILITIES
            if current
            else BalanceSheetSection.NON_CURRENT_LIABILITIES
        )
    return BalanceSheetSection.EQUITY


def _line(balance: AccountBalance, section: BalanceSheetSection | None = None) -> StatementLine:
    return StatementLine(
        account_code=balance.account_code,
        account_name=balance.account_name,
        account_type=balance.account_type,
        amount_cents=display_cents(balance),
        currency=balance.balance.currency,
        section=section,
    )


class FinancialStatementService:
    def __init__(self, default_currency: Currency = Currency.USD):
        self._default_currency = default_currency

    def generate_profit_and_loss(
        self, balances: Sequence[AccountBalance], period_start: date, period_end: date
    ) -> ProfitAndLossReport:
        revenue = tuple(_line(b) for b in balances if b.account_type is AccountType.REVENUE)
        expenses = tuple(_line(b) for b in balances if b.account_type is AccountType.EXPENSE)
        total_revenue = _total(balances, AccountType.REVENUE)
        total_expense = _total(balances, AccountType.EXPENSE)
        return ProfitAndLossReport(
            period_start=period_start,
            period_end=period_end,
            currency=self._currency_of(balances),
            revenue=revenue,
            expenses=expenses,
            total_revenue_cents=total_revenue,
            total_expense_cents=total_expense,
            net_income_cents=total_revenue - total_expense,
        )

    def generate_balance_sheet(
        self, balances: Sequence[AccountBalance], as_of: date
    ) -> BalanceSheetReport:
        net_income = _total(balances, AccountType.REVENUE) - _total(balances, AccountType.EXPENSE)
        lines = tuple(
            _line(b, _section(b.account_type, is_current_account(b.account_name, b.category)))
            for b in balances
            if b.account_type in (AccountType.ASSET, AccountType.LIABILITY, AccountType.EQUITY)
        )
        liabilities = _total(balances, AccountType.LIABILITY)
        equity = _total(balances, AccountType.EQUITY)
        return BalanceSheetReport(
            as_of=as_of,
            currency=self._currency_of(balances),
            lines=lines,
            total_assets_cents=_total(balances, AccountType.ASSET),
            total_liabilities_cents=liabilities,
            total_equity_cents=equity,
            net_income_cents=net_income,
            total_liabilities_and_equity_cents=liabilities + equity + net_income,
        )

    def _currency_of(self, balances: Sequence[AccountBalance]) -> Currency:
        return balances[0].balance.currency if balances else self._default_currency
