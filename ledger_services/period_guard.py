"""
PostingPeriodGuard -- may a posting land on this date?

A period must always cover the date. The closed-period check can be
skipped by callers holding the override permission; the existence check
never can.
"""

from __future__ import annotations

from datetime import date

from ledger_kernel.domain.period import AccountingPeriod
from ledger_kernel.exceptions import NoPeriodFoundError, PeriodClosedError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.ports import PeriodRepository

logger = get_logger("services.period_guard")


class PostingPeriodGuard:
    def __init__(self, periods: PeriodRepository):
        self._periods = periods

    def assert_can_post(
        self, tenant_id: str, posting_date: date, allow_closed_period: bool = False
    ) -> AccountingPeriod:
        """
        Return the period covering ``posting_date``.

        Raises:
            NoPeriodFoundError: no period covers the date.
            PeriodClosedError: the period is closed and ``allow_closed_period``
                is False.
        """
        eligibility = self._periods.can_post_to_date(tenant_id, posting_date)
        period = eligibility.period
        if period is None:
            raise NoPeriodFoundError(posting_date.isoformat(), tenant_id)
        if eligibility.allowed:
            return period

        if allow_closed_period and period.is_closed:
            logger.warning(
                "closed_period_override",
                extra={
                    "tenant_id": tenant_id,
                    "period": period.name,
                    "status": period.status.value,
                    "posting_date": posting_date.isoformat(),
                },
            )
            return period
        raise PeriodClosedError(period.name, posting_date.isoformat(), period.status.value)
