"""
In-memory implementations of every ledger port.

Used by the test suite and for embedding the core without a database. Each
store guards its state with a lock so the concurrency tests can hammer them
from a thread pool, and the uniqueness rules match the SQL schema: a
(tenant_id, idempotency_key) pair can only be inserted once.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime

from ledger_kernel.domain.account import Account
from ledger_kernel.domain.entity import Entity
from ledger_kernel.domain.events import AuditLogEntry, DomainEvent
from ledger_kernel.domain.journal import JournalEntry
from ledger_kernel.domain.period import AccountingPeriod
from ledger_kernel.domain.temporal_balance import TemporalBalance
from ledger_kernel.exceptions import IdempotencyKeyConflictError
from ledger_kernel.ports import (
    AccountRepository,
    AuditLogSink,
    DomainEventBus,
    EntityRepository,
    IdempotencyRecord,
    IdempotencyRepository,
    JournalEntryRepository,
    PeriodRepository,
    TemporalBalanceRepository,
)

_BalanceKey = tuple[str, str, str]


class InMemoryJournalEntryRepository(JournalEntryRepository):
    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], JournalEntry] = {}
        self._by_key: dict[tuple[str, str], str] = {}
        self._lock = threading.Lock()
        self.save_calls = 0

    def save(self, entry: JournalEntry) -> None:
        with self._lock:
            self.save_calls += 1
            if (entry.tenant_id, entry.id) in self._entries:
                raise ValueError(f"Journal entry {entry.id} already saved")
            if entry.idempotency_key is not None:
                key = (entry.tenant_id, entry.idempotency_key)
                if key in self._by_key:
                    raise IdempotencyKeyConflictError(entry.tenant_id, entry.idempotency_key)
                self._by_key[key] = entry.id
            self._entries[(entry.tenant_id, entry.id)] = entry

    def find_by_id(self, tenant_id: str, entry_id: str) -> JournalEntry | None:
        return self._entries.get((tenant_id, entry_id))

    def find_by_idempotency_key(
        self, tenant_id: str, idempotency_key: str
    ) -> JournalEntry | None:
        entry_id = self._by_key.get((tenant_id, idempotency_key))
        return self._entries.get((tenant_id, entry_id)) if entry_id else None

    def find_intercompany_transactions(
        self, tenant_id: str, from_date: date, to_date: date
    ) -> list[JournalEntry]:
        return [
            e
            for e in self.find_by_tenant(tenant_id, from_date=from_date, to_date=to_date)
            if e.is_intercompany
        ]

    def find_by_tenant(
        self,
        tenant_id: str,
        entity_id: str | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> list[JournalEntry]:
        with self._lock:
            entries = [e for (t, _), e in self._entries.items() if t == tenant_id]
        return sorted(
            (
                e
                for e in entries
                if (entity_id is None or e.entity_id == entity_id)
                and (from_date is None or e.posting_date >= from_date)
                and (to_date is None or e.posting_date <= to_date)
            ),
            key=lambda e: (e.posting_date, e.id),
        )


class InMemoryAccountRepository(AccountRepository):
    def __init__(self, accounts: Sequence[Account] = ()) -> None:
        self._accounts: dict[str, Account] = {}
        for account in accounts:
            self.save(account)

    def save(self, account: Account) -> None:
        for existing in self._accounts.values():
            if (
                existing.id != account.id
                and existing.tenant_id == account.tenant_id
                and existing.code == account.code
            ):
                raise ValueError(
                    f"Account code {account.code} already exists for tenant {account.tenant_id}"
                )
        self._accounts[account.id] = account

    def find_by_id(self, tenant_id: str, account_id: str) -> Account | None:
        account = self._accounts.get(account_id)
        if account is None or account.tenant_id != tenant_id or account.is_deleted:
            return None
        return account

    def find_by_code(self, tenant_id: str, code: str) -> Account | None:
        for account in self._accounts.values():
            if account.tenant_id == tenant_id and account.code == code and not account.is_deleted:
                return account
        return None

    def find_by_codes(self, tenant_id: str, codes: Sequence[str]) -> list[Account]:
        wanted = set(codes)
        return [a for a in self.find_all(tenant_id) if a.code in wanted]

    def find_all(self, tenant_id: str) -> list[Account]:
        return sorted(
            (
                a
                for a in self._accounts.values()
                if a.tenant_id == tenant_id and not a.is_deleted
            ),
            key=lambda a: a.code,
        )


class InMemoryPeriodRepository(PeriodRepository):
    def __init__(self, periods: Sequence[AccountingPeriod] = ()) -> None:
        self._periods: dict[str, AccountingPeriod] = {}
        for period in periods:
            self.save(period)

    def save(self, period: AccountingPeriod) -> None:
        self._periods[period.id] = period

    def find_by_date(self, tenant_id: str, day: date) -> AccountingPeriod | None:
        for period in sorted(self._periods.values(), key=lambda p: p.start_date):
            if period.tenant_id == tenant_id and period.contains_date(day):
                return period
        return None


class InMemoryEntityRepository(EntityRepository):
    def __init__(self, entities: Sequence[Entity] = ()) -> None:
        self._entities: dict[tuple[str, str], Entity] = {}
        for entity in entities:
            self.save(entity)

    def save(self, entity: Entity) -> None:
        self._entities[(entity.tenant_id, entity.id)] = entity

    def find_by_id(self, tenant_id: str, entity_id: str) -> Entity | None:
        return self._entities.get((tenant_id, entity_id))

    def find_subsidiaries(self, tenant_id: str, parent_id: str) -> list[Entity]:
        return sorted(
            (
                e
                for (t, _), e in self._entities.items()
                if t == tenant_id and e.parent_entity_id == parent_id
            ),
            key=lambda e: e.id,
        )


class InMemoryTemporalBalanceRepository(TemporalBalanceRepository):
    """
    Append-only balance slices with one re-entrant lock per account.

    ``close`` is the only update and only ever sets transaction_time_end.
    """

    def __init__(self) -> None:
        self._records: dict[_BalanceKey, list[TemporalBalance]] = defaultdict(list)
        self._account_locks: dict[_BalanceKey, threading.RLock] = {}
        self._guard = threading.Lock()

    @contextmanager
    def locked(self, tenant_id: str, entity_id: str, account_code: str) -> Iterator[None]:
        key = (tenant_id, entity_id, account_code)
        with self._guard:
            lock = self._account_locks.setdefault(key, threading.RLock())
        with lock:
            yield

    def find_believed(
        self, tenant_id: str, entity_id: str, account_code: str
    ) -> list[TemporalBalance]:
        with self._guard:
            records = list(self._records.get((tenant_id, entity_id, account_code), ()))
        return sorted(
            (r for r in records if r.is_believed), key=lambda r: r.valid_time_start
        )

    def find_history(
        self, tenant_id: str, entity_id: str, account_code: str
    ) -> list[TemporalBalance]:
        with self._guard:
            records = list(self._records.get((tenant_id, entity_id, account_code), ()))
        return sorted(
            records, key=lambda r: (r.transaction_time_start, r.valid_time_start)
        )

    def insert(self, record: TemporalBalance) -> None:
        with self._guard:
            self._records[(record.tenant_id, record.entity_id, record.account_code)].append(record)

    def close(self, record_id: str, transaction_time_end: datetime) -> None:
        with self._guard:
            for records in self._records.values():
                for i, record in enumerate(records):
                    if record.id == record_id:
                        if not record.is_believed:
                            raise ValueError(f"Temporal balance {record_id} is already closed")
                        records[i] = record.close(transaction_time_end)
                        return
        raise KeyError(record_id)

    def has_applied(
        self, tenant_id: str, entity_id: str, account_code: str, entry_id: str
    ) -> bool:
        with self._guard:
            records = list(self._records.get((tenant_id, entity_id, account_code), ()))
        return any(r.source_entry_id == entry_id for r in records)


class InMemoryIdempotencyRepository(IdempotencyRepository):
    def __init__(self) -> None:
        self._records: dict[tuple[str, str], IdempotencyRecord] = {}
        self._lock = threading.Lock()

    def find_by_key(self, tenant_id: str, idempotency_key: str) -> IdempotencyRecord | None:
        with self._lock:
            return self._records.get((tenant_id, idempotency_key))

    def save(self, record: IdempotencyRecord) -> None:
        key = (record.tenant_id, record.idempotency_key)
        with self._lock:
            if key in self._records:
                raise IdempotencyKeyConflictError(record.tenant_id, record.idempotency_key)
            self._records[key] = replace(record, result=dict(record.result))

    def delete(self, tenant_id: str, idempotency_key: str) -> None:
        with self._lock:
            self._records.pop((tenant_id, idempotency_key), None)


class InMemoryEventBus(DomainEventBus):
    """Collects published events; optional subscribers are called synchronously."""

    def __init__(self) -> None:
        self.published: list[DomainEvent] = []
        self._subscribers: list = []
        self._lock = threading.Lock()

    def subscribe(self, handler) -> None:
        self._subscribers.append(handler)

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            self.published.append(event)
        for handler in self._subscribers:
            handler(event)


class InMemoryAuditLogSink(AuditLogSink):
    def __init__(self) -> None:
        self.entries: list[AuditLogEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: AuditLogEntry) -> None:
        with self._lock:
            self.entries.append(entry)
