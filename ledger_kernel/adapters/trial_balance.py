"""
Trial balance read model backed by the temporal ledger.

Answers ``TrialBalanceRepository.get_trial_balance`` by asking
TemporalBalanceService for every active account's business-view balance at
the end of the requested day.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time

from ledger_kernel.domain.currency import Currency
from ledger_kernel.domain.dtos import AccountBalance
from ledger_kernel.ports import AccountRepository, EntityRepository, TrialBalanceRepository
from ledger_kernel.services.temporal_balance_service import TemporalBalanceService


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max, tzinfo=UTC)


class LedgerTrialBalanceRepository(TrialBalanceRepository):
    def __init__(
        self,
        accounts: AccountRepository,
        balances: TemporalBalanceService,
        entities: EntityRepository | None = None,
        default_currency: Currency = Currency.USD,
        include_zero_balances: bool = False,
    ):
        self._accounts = accounts
        self._balances = balances
        self._entities = entities
        self._default_currency = default_currency
        self._include_zero = include_zero_balances

    def get_trial_balance(
        self, tenant_id: str, entity_id: str, as_of: date
    ) -> list[AccountBalance]:
        currency = self._currency_for(tenant_id, entity_id)
        at = end_of_day(as_of)
        rows: list[AccountBalance] = []
        for account in self._accounts.find_all(tenant_id):
            balance = self._balances.get_balance_at(
                tenant_id, entity_id, account.code, at, currency=currency
            )
            if balance.is_zero and not self._include_zero:
                continue
            rows.append(
                AccountBalance(
                    account_code=account.code,
                    account_name=account.name,
                    account_type=account.account_type,
                    balance=balance,
                    category=account.category,
                )
            )
        return rows

    def _currency_for(self, tenant_id: str, entity_id: str) -> Currency:
        if self._entities is not None:
            entity = self._entities.find_by_id(tenant_id, entity_id)
            if entity is not None:
                return entity.currency
        return self._default_currency
