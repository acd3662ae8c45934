"""
TemporalBalanceService -- bitemporal balance ledger fed by posted entries.

Responsibility:
    Folds each posted JournalEntry into per-account balance history along two
    independent time axes and answers point-in-time queries on both.

Architecture position:
    Kernel > Services. Depends on the TemporalBalanceRepository port, a
    Clock and an IdGenerator.

Invariants enforced:
    - Read-modify-write of one (tenant, entity, account) runs inside the
      repository's per-account lock, so concurrent postings never read the
      same "current" balance.
    - Append-only: superseded records get their transaction-time end closed
      and replacement slices are inserted; no balance is rewritten in place.
    - Applying the same entry twice is a no-op per account, which makes an
      entry that was persisted but not yet applied safe to re-drive.
    - Sum of the signed deltas an entry applies across its accounts is zero.

Failure modes:
    - CurrencyMismatchError if a posting's currency differs from the
      account's existing balance currency.

Audit relevance:
    ``get_audit_balance_at`` reproduces what the ledger believed at any past
    transaction time, even after back-dated postings changed the business
    view of that same valid time.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.currency import Currency
from ledger_kernel.domain.ids import IdGenerator, UUID4Generator
from ledger_kernel.domain.journal import JournalEntry
from ledger_kernel.domain.temporal_balance import END_OF_TIME, TemporalBalance
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import CurrencyMismatchError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.ports import TemporalBalanceRepository

logger = get_logger("services.temporal_balance")


@dataclass(frozen=True)
class AppliedDelta:
    """Signed change folded into one account by ``apply_journal_entry``."""

    account_code: str
    delta: Money
    new_current_balance: Money
    skipped: bool = False


class TemporalBalanceService:
    """
    Bitemporal balance ledger.

    Contract:
        ``apply_journal_entry`` nets each account as sum(debit) - sum(credit)
        and folds every non-zero delta in at the entry's valid time.

    Guarantees:
        - Business view (``get_balance_at``) reflects every posting whose
          valid time is at or before the queried time.
        - Audit view (``get_audit_balance_at``) reflects only what had been
          recorded at the queried transaction time.

    Non-goals:
        - Does NOT validate accounts or periods; the command handler does.
    """

    def __init__(
        self,
        repository: TemporalBalanceRepository,
        clock: Clock | None = None,
        id_generator: IdGenerator | None = None,
    ):
        self._repository = repository
        self._clock = clock or SystemClock()
        self._ids = id_generator or UUID4Generator()

    def apply_journal_entry(
        self, tenant_id: str, entity_id: str, entry: JournalEntry
    ) -> list[AppliedDelta]:
        valid_from = entry.valid_time_start
        applied: list[AppliedDelta] = []

        for account_code, delta in entry.net_change_by_account().items():
            if delta.is_zero:
                continue
            with self._repository.locked(tenant_id, entity_id, account_code):
                if self._repository.has_applied(
                    tenant_id, entity_id, account_code, entry.id
                ):
                    logger.info(
                        "balance_apply_skipped",
                        extra={"entry_id": entry.id, "account_code": account_code},
                    )
                    applied.append(
                        AppliedDelta(
                            account_code,
                            delta,
                            self._current(tenant_id, entity_id, account_code, delta.currency),
                            skipped=True,
                        )
                    )
                    continue
                new_balance = self._fold(
                    tenant_id, entity_id, account_code, delta, valid_from, entry.id
                )
            applied.append(AppliedDelta(account_code, delta, new_balance))

        logger.info(
            "balance_applied",
            extra={
                "entry_id": entry.id,
                "tenant_id": tenant_id,
                "entity_id": entity_id,
                "accounts": [a.account_code for a in applied if not a.skipped],
            },
        )
        return applied

    def _fold(
        self,
        tenant_id: str,
        entity_id: str,
        account_code: str,
        delta: Money,
        valid_from: datetime,
        entry_id: str,
    ) -> Money:
        """Close every believed slice reaching past ``valid_from`` and re-insert it shifted by ``delta``."""
        now = self._clock.now()
        believed = self._repository.find_believed(tenant_id, entity_id, account_code)
        if believed and believed[0].balance.currency is not delta.currency:
            raise CurrencyMismatchError(
                believed[0].balance.currency.value, delta.currency.value, "post"
            )

        first_start = believed[0].valid_time_start if believed else END_OF_TIME
        if valid_from < first_start:
            # Posting predates all history for the account: open the gap at delta.
            self._repository.insert(
                TemporalBalance(
                    id=self._ids.new_id(),
                    tenant_id=tenant_id,
                    entity_id=entity_id,
                    account_code=account_code,
                    balance=delta,
                    valid_time_start=valid_from,
                    valid_time_end=first_start,
                    transaction_time_start=now,
                    source_entry_id=entry_id,
                )
            )

        for record in believed:
            if record.valid_time_end <= valid_from:
                continue
            self._repository.close(record.id, now)
            if record.valid_time_start < valid_from:
                self._repository.insert(
                    replace(
                        record,
                        id=self._ids.new_id(),
                        valid_time_end=valid_from,
                        transaction_time_start=now,
                        transaction_time_end=END_OF_TIME,
                    )
                )
            self._repository.insert(
                replace(
                    record,
                    id=self._ids.new_id(),
                    balance=record.balance.add(delta),
                    valid_time_start=max(record.valid_time_start, valid_from),
                    transaction_time_start=now,
                    transaction_time_end=END_OF_TIME,
                    source_entry_id=entry_id,
                )
            )

        return self._current(tenant_id, entity_id, account_code, delta.currency)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_current_balance(
        self,
        tenant_id: str,
        entity_id: str,
        account_code: str,
        currency: Currency = Currency.USD,
    ) -> Money:
        """Latest believed balance; zero in ``currency`` for an untouched account."""
        return self._current(tenant_id, entity_id, account_code, currency)

    def get_balance_at(
        self,
        tenant_id: str,
        entity_id: str,
        account_code: str,
        valid_time: datetime,
        currency: Currency = Currency.USD,
    ) -> Money:
        """Business view: the balance as currently believed to be true at ``valid_time``."""
        for record in self._repository.find_believed(tenant_id, entity_id, account_code):
            if record.is_valid_at(valid_time):
                return _in_currency(record.balance, currency, "read balance")
        return Money.zero(currency)

    def get_audit_balance_at(
        self,
        tenant_id: str,
        entity_id: str,
        account_code: str,
        valid_time: datetime,
        transaction_time: datetime,
        currency: Currency = Currency.USD,
    ) -> Money:
        """Audit view: the balance at ``valid_time`` as recorded at ``transaction_time``."""
        for record in self._repository.find_history(tenant_id, entity_id, account_code):
            if record.was_recorded_at(transaction_time) and record.is_valid_at(valid_time):
                return _in_currency(record.balance, currency, "read audit balance")
        return Money.zero(currency)

    def get_balance_history(
        self, tenant_id: str, entity_id: str, account_code: str
    ) -> list[TemporalBalance]:
        """Every slice ever recorded, including superseded ones."""
        return self._repository.find_history(tenant_id, entity_id, account_code)

    def _current(
        self, tenant_id: str, entity_id: str, account_code: str, currency: Currency
    ) -> Money:
        believed = self._repository.find_believed(tenant_id, entity_id, account_code)
        if not believed:
            return Money.zero(currency)
        return _in_currency(believed[-1].balance, currency, "read balance")


def _in_currency(balance: Money, currency: Currency, operation: str) -> Money:
    if balance.currency is not currency:
        raise CurrencyMismatchError(currency.value, balance.currency.value, operation)
    return balance
