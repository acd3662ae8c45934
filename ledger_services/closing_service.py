"""
ClosingService -- builds the period-end closing entry.

Responsibility:
    Reads the trial balance as of the period end, zeroes every Revenue and
    Expense balance and transfers the net to retained earnings, all in one
    reporting currency.

Architecture position:
    Services. Depends on the TrialBalanceRepository and CurrencyConverter
    ports. Pure with respect to the ledger: it never persists the entry and
    never touches balances.

Invariants enforced:
    - Every closing line is in the reporting currency. A balance in any
      other currency is converted at the period end date, and a missing
      rate aborts the whole close; there is no partial closing entry.
    - net income = total revenue - total expense, and the retained
      earnings line is a credit on profit and a debit on loss.

Failure modes:
    - NothingToCloseError when no revenue or expense balance is non-zero.
    - ConversionRateUnavailableError from the converter.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from ledger_config import LedgerSettings, get_active_settings
from ledger_kernel.domain.account import AccountType
from ledger_kernel.domain.currency import Currency
from ledger_kernel.domain.dtos import AccountBalance
from ledger_kernel.domain.ids import IdGenerator, UUID4Generator
from ledger_kernel.domain.journal import JournalEntry, JournalEntryLine
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import NothingToCloseError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.ports import CurrencyConverter, TrialBalanceRepository

logger = get_logger("services.closing")


@dataclass(frozen=True)
class ClosingEntryResult:
    closing_entry: JournalEntry
    total_revenue_cents: int
    total_expense_cents: int
    net_income_cents: int


class ClosingService:
    """
    Contract:
        ``build_closing_entry`` returns a balanced JournalEntry that, once
        applied, leaves every Revenue and Expense account at zero as of the
        period end.

    Non-goals:
        - Does NOT persist or apply the entry (ClosePeriodCommandHandler does).
        - Does NOT mark any AccountingPeriod closed.
    """

    def __init__(
        self,
        trial_balances: TrialBalanceRepository,
        currency_converter: CurrencyConverter,
        id_generator: IdGenerator | None = None,
        settings: LedgerSettings | None = None,
    ):
        self._trial_balances = trial_balances
        self._converter = currency_converter
        self._ids = id_generator or UUID4Generator()
        self._settings = settings or get_active_settings()

    def build_closing_entry(
        self,
        tenant_id: str,
        entity_id: str,
        period_end_date: date,
        retained_earnings_account_code: str,
        reporting_currency: Currency | str | None = None,
    ) -> ClosingEntryResult:
        currency = Currency.parse(reporting_currency or self._settings.default_currency)
        balances = self._trial_balances.get_trial_balance(tenant_id, entity_id, period_end_date)

        revenue = [b for b in balances if b.account_type is AccountType.REVENUE]
        expenses = [b for b in balances if b.account_type is AccountType.EXPENSE]

        # Convert everything up front so a missing rate fails before any line exists.
        converted_revenue = [(b, self._to_reporting(b, currency, period_end_date)) for b in revenue]
        converted_expenses = [(b, self._to_reporting(b, currency, period_end_date)) for b in expenses]

        entry_id = self._ids.new_id()
        lines: list[JournalEntryLine] = []

        total_revenue = 0
        for balance, amount in converted_revenue:
            if amount.is_zero:
                continue
            # Debit-positive, so a normal revenue balance is negative.
            total_revenue -= amount.amount_minor_units
            lines.append(
                self._zeroing_line(
                    balance, amount, entry_id, "Period close - revenue to retained earnings"
                )
            )

        total_expense = 0
        for balance, amount in converted_expenses:
            if amount.is_zero:
                continue
            total_expense += amount.amount_minor_units
            lines.append(
                self._zeroing_line(
                    balance, amount, entry_id, "Period close - expense to retained earnings"
                )
            )

        if not lines:
            raise NothingToCloseError(entity_id, period_end_date.isoformat())

        net_income = total_revenue - total_expense
        if net_income > 0:
            lines.append(
                JournalEntryLine.credit(
                    self._ids.new_id(),
                    retained_earnings_account_code,
                    Money.from_cents(net_income, currency),
                    entry_id=entry_id,
                    description="Period close - net income to retained earnings",
                )
            )
        elif net_income < 0:
            lines.append(
                JournalEntryLine.debit(
                    self._ids.new_id(),
                    retained_earnings_account_code,
                    Money.from_cents(-net_income, currency),
                    entry_id=entry_id,
                    description="Period close - net loss to retained earnings",
                )
            )

        entry = JournalEntry.create(
            id=entry_id,
            tenant_id=tenant_id,
            entity_id=entity_id,
            posting_date=period_end_date,
            lines=lines,
            source_module=self._settings.closing_source_module,
            source_document_id=self._ids.new_id(),
            source_document_type=self._settings.closing_document_type,
            description=f"Year-end closing entry as of {period_end_date.isoformat()}",
        )

        logger.info(
            "closing_entry_built",
            extra={
                "entity_id": entity_id,
                "period_end_date": period_end_date.isoformat(),
                "closing_entry_id": entry.id,
                "total_revenue_cents": total_revenue,
                "total_expense_cents": total_expense,
                "net_income_cents": net_income,
                "line_count": len(lines),
            },
        )
        return ClosingEntryResult(
            closing_entry=entry,
            total_revenue_cents=total_revenue,
            total_expense_cents=total_expense,
            net_income_cents=net_income,
        )

    def _to_reporting(self, balance: AccountBalance, currency: Currency, as_of: date) -> Money:
        """Signed balance in ``currency``."""
        amount = balance.balance
        if amount.currency is currency or amount.is_zero:
            return Money(amount.amount_minor_units, currency)
        return self._converter.convert(amount, currency, as_of)

    def _zeroing_line(
        self, balance: AccountBalance, amount: Money, entry_id: str, description: str
    ) -> JournalEntryLine:
        """Opposite side of the signed balance, for its magnitude."""
        if amount.is_negative:
            return JournalEntryLine.debit(
                self._ids.new_id(),
                balance.account_code,
                amount.abs(),
                entry_id=entry_id,
                description=description,
            )
        return JournalEntryLine.credit(
            self._ids.new_id(),
            balance.account_code,
            amount,
            entry_id=entry_id,
            description=description,
        )
