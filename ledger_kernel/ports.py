"""
Ports -- the narrow interfaces the ledger core consumes.

Responsibility:
    Declares every storage and infrastructure collaborator as an ABC. The
    core is written and tested against in-memory implementations
    (``ledger_kernel.adapters.memory``); SQLAlchemy implementations live in
    ``ledger_kernel.db.repositories``.

Architecture position:
    Kernel > Ports. Depends only on the domain layer.

Invariants enforced by implementations:
    - JournalEntryRepository.save and IdempotencyRepository.save reject a
      second record for the same (tenant_id, idempotency_key) with
      IdempotencyKeyConflictError, so check-then-act races fail safe.
    - TemporalBalanceRepository.locked serializes read-modify-write per
      (tenant, entity, account).
    - CurrencyConverter.convert raises ConversionRateUnavailableError rather
      than guessing a rate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from ledger_kernel.domain.account import Account
from ledger_kernel.domain.currency import Currency
from ledger_kernel.domain.dtos import AccountBalance, PostingEligibility
from ledger_kernel.domain.entity import Entity
from ledger_kernel.domain.events import AuditLogEntry, DomainEvent
from ledger_kernel.domain.journal import JournalEntry
from ledger_kernel.domain.period import AccountingPeriod
from ledger_kernel.domain.temporal_balance import TemporalBalance
from ledger_kernel.domain.values import Money


@dataclass(frozen=True)
class IdempotencyRecord:
    """Stored outcome of a command executed under an idempotency key."""

    id: str
    tenant_id: str
    idempotency_key: str
    command_type: str
    result: dict[str, Any]
    executed_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class JournalEntryRepository(ABC):
    @abstractmethod
    def save(self, entry: JournalEntry) -> None:
        """Persist a new entry. Raises IdempotencyKeyConflictError on a reused key."""

    @abstractmethod
    def find_by_id(self, tenant_id: str, entry_id: str) -> JournalEntry | None: ...

    @abstractmethod
    def find_by_idempotency_key(
        self, tenant_id: str, idempotency_key: str
    ) -> JournalEntry | None: ...

    @abstractmethod
    def find_intercompany_transactions(
        self, tenant_id: str, from_date: date, to_date: date
    ) -> list[JournalEntry]:
        """Intercompany entries with posting_date in [from_date, to_date]."""

    @abstractmethod
    def find_by_tenant(
        self,
        tenant_id: str,
        entity_id: str | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> list[JournalEntry]: ...


class AccountRepository(ABC):
    @abstractmethod
    def find_by_id(self, tenant_id: str, account_id: str) -> Account | None: ...

    @abstractmethod
    def find_by_code(self, tenant_id: str, code: str) -> Account | None: ...

    @abstractmethod
    def find_by_codes(self, tenant_id: str, codes: Sequence[str]) -> list[Account]:
        """Active (not tombstoned) accounts among ``codes``; missing codes are omitted."""

    @abstractmethod
    def find_all(self, tenant_id: str) -> list[Account]:
        """Active accounts ordered by code."""

    @abstractmethod
    def save(self, account: Account) -> None: ...


class PeriodRepository(ABC):
    @abstractmethod
    def find_by_date(self, tenant_id: str, day: date) -> AccountingPeriod | None: ...

    @abstractmethod
    def save(self, period: AccountingPeriod) -> None:
        """Insert or replace by id."""

    def can_post_to_date(self, tenant_id: str, day: date) -> PostingEligibility:
        period = self.find_by_date(tenant_id, day)
        if period is None:
            return PostingEligibility(False, None, f"No accounting period covers {day}")
        if period.is_closed:
            return PostingEligibility(
                False, period, f"Period {period.name} is {period.status.value}"
            )
        return PostingEligibility(True, period)


class TrialBalanceRepository(ABC):
    @abstractmethod
    def get_trial_balance(
        self, tenant_id: str, entity_id: str, as_of: date
    ) -> list[AccountBalance]:
        """Per-account signed (debit-positive) balances as of ``as_of``."""


class EntityRepository(ABC):
    @abstractmethod
    def find_by_id(self, tenant_id: str, entity_id: str) -> Entity | None: ...

    @abstractmethod
    def find_subsidiaries(self, tenant_id: str, parent_id: str) -> list[Entity]:
        """Direct children of ``parent_id``."""

    @abstractmethod
    def save(self, entity: Entity) -> None: ...


class TemporalBalanceRepository(ABC):
    """Append-only store of TemporalBalance slices."""

    @abstractmethod
    def locked(
        self, tenant_id: str, entity_id: str, account_code: str
    ) -> AbstractContextManager[None]:
        """Exclusive per-account section for the read-modify-write of a posting."""

    @abstractmethod
    def find_believed(
        self, tenant_id: str, entity_id: str, account_code: str
    ) -> list[TemporalBalance]:
        """Records whose transaction time is still open, by valid_time_start."""

    @abstractmethod
    def find_history(
        self, tenant_id: str, entity_id: str, account_code: str
    ) -> list[TemporalBalance]:
        """Every record ever written, by (transaction_time_start, valid_time_start)."""

    @abstractmethod
    def insert(self, record: TemporalBalance) -> None: ...

    @abstractmethod
    def close(self, record_id: str, transaction_time_end: datetime) -> None:
        """Set transaction_time_end on an open record."""

    @abstractmethod
    def has_applied(
        self, tenant_id: str, entity_id: str, account_code: str, entry_id: str
    ) -> bool:
        """Whether any record for the account was written by ``entry_id``."""


class IdempotencyRepository(ABC):
    @abstractmethod
    def find_by_key(self, tenant_id: str, idempotency_key: str) -> IdempotencyRecord | None: ...

    @abstractmethod
    def save(self, record: IdempotencyRecord) -> None:
        """Insert. Raises IdempotencyKeyConflictError if the key exists."""

    @abstractmethod
    def delete(self, tenant_id: str, idempotency_key: str) -> None: ...


class CurrencyConverter(ABC):
    @abstractmethod
    def convert(self, amount: Money, to_currency: Currency, as_of: date) -> Money:
        """Raises ConversionRateUnavailableError when no rate exists."""


class DomainEventBus(ABC):
    @abstractmethod
    def publish(self, event: DomainEvent) -> None: ...


class AuditLogSink(ABC):
    @abstractmethod
    def append(self, entry: AuditLogEntry) -> None: ...


class AuditLogger(ABC):
    @abstractmethod
    def log(
        self,
        *,
        tenant_id: str,
        user_id: str | None,
        action: str,
        entity_type: str,
        entity_id: str,
        payload: dict[str, Any] | None = None,
    ) -> AuditLogEntry: ...
