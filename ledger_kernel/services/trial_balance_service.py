"""
TrialBalanceService -- pure trial-balance report construction.

Each account's closing balance lands in exactly one column: debit when
positive, credit when negative. The two column totals must agree; a
mismatch raises UnbalancedLedgerError carrying both totals. All rows must
share one currency; a mixed input raises CurrencyMismatchError.

Never touches the temporal ledger; callers supply the per-account data.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from ledger_kernel.domain.currency import Currency
from ledger_kernel.exceptions import CurrencyMismatchError, UnbalancedLedgerError
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.trial_balance")


@dataclass(frozen=True)
class TrialBalanceDataLine:
    """Gross opening and in-period movements for one account, in minor units."""

    account_code: str
    currency: Currency = Currency.USD
    opening_debit_cents: int = 0
    opening_credit_cents: int = 0
    period_debit_cents: int = 0
    period_credit_cents: int = 0
    account_name: str | None = None

    def __post_init__(self) -> None:
        for name in (
            "opening_debit_cents",
            "opening_credit_cents",
            "period_debit_cents",
            "period_credit_cents",
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"{name} must be int")
            if value < 0:
                raise ValueError(f"{name} must not be negative")
        object.__setattr__(self, "currency", Currency.parse(self.currency))


@dataclass(frozen=True)
class TrialBalanceReportLine:
    account_code: str
    currency: Currency
    opening_balance_cents: int
    period_debit_cents: int
    period_credit_cents: int
    closing_balance_cents: int
    account_name: str | None = None

    @property
    def debit_column_cents(self) -> int:
        return self.closing_balance_cents if self.closing_balance_cents > 0 else 0

    @property
    def credit_column_cents(self) -> int:
        return -self.closing_balance_cents if self.closing_balance_cents < 0 else 0


@dataclass(frozen=True)
class TrialBalanceReport:
    period_start: date
    period_end: date
    lines: tuple[TrialBalanceReportLine, ...]
    total_debit_cents: int
    total_credit_cents: int


class TrialBalanceService:
    def build_report(
        self,
        lines: list[TrialBalanceDataLine],
        period_start: date,
        period_end: date,
    ) -> TrialBalanceReport:
        if lines:
            currency = lines[0].currency
            for row in lines:
                if row.currency is not currency:
                    raise CurrencyMismatchError(
                        currency.value, row.currency.value, "total trial balance"
                    )

        report_lines: list[TrialBalanceReportLine] = []
        for row in lines:
            opening = row.opening_debit_cents - row.opening_credit_cents
            closing = opening + row.period_debit_cents - row.period_credit_cents
            report_lines.append(
                TrialBalanceReportLine(
                    account_code=row.account_code,
                    currency=row.currency,
                    opening_balance_cents=opening,
                    period_debit_cents=row.period_debit_cents,
                    period_credit_cents=row.period_credit_cents,
                    closing_balance_cents=closing,
                    account_name=row.account_name,
                )
            )

        total_debit = sum(line.debit_column_cents for line in report_lines)
        total_credit = sum(line.credit_column_cents for line in report_lines)

        # INVARIANT: debit column == credit column
        if total_debit != total_credit:
            logger.warning(
                "trial_balance_unbalanced",
                extra={"total_debit_cents": total_debit, "total_credit_cents": total_credit},
            )
            raise UnbalancedLedgerError(total_debit, total_credit)

        return TrialBalanceReport(
            period_start=period_start,
            period_end=period_end,
            lines=tuple(report_lines),
            total_debit_cents=total_debit,
            total_credit_cents=total_credit,
        )
