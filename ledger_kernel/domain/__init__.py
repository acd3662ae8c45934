"""
Pure domain layer.

Value objects, records and DTOs with no dependency on SQLAlchemy, the
database, the wall clock or any other I/O. Everything here is immutable.
"""

from ledger_kernel.domain.account import (
    NORMAL_BALANCE_BY_TYPE,
    Account,
    AccountType,
    NormalBalance,
)
from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.currency import Currency
from ledger_kernel.domain.dtos import AccountBalance, PostingEligibility
from ledger_kernel.domain.entity import ConsolidationMethod, Entity
from ledger_kernel.domain.events import (
    JOURNAL_ENTRY_POSTED,
    PERIOD_CLOSED,
    AuditLogEntry,
    DomainEvent,
)
from ledger_kernel.domain.ids import IdGenerator, SequentialIdGenerator, UUID4Generator
from ledger_kernel.domain.journal import JournalEntry, JournalEntryLine, start_of_day
from ledger_kernel.domain.period import AccountingPeriod, PeriodStatus
from ledger_kernel.domain.temporal_balance import END_OF_TIME, TemporalBalance
from ledger_kernel.domain.values import Money

__all__ = [
    "Account",
    "AccountBalance",
    "AccountType",
    "AccountingPeriod",
    "AuditLogEntry",
    "Clock",
    "ConsolidationMethod",
    "Currency",
    "DeterministicClock",
    "DomainEvent",
    "END_OF_TIME",
    "Entity",
    "IdGenerator",
    "JOURNAL_ENTRY_POSTED",
    "JournalEntry",
    "JournalEntryLine",
    "Money",
    "NORMAL_BALANCE_BY_TYPE",
    "NormalBalance",
    "PERIOD_CLOSED",
    "PeriodStatus",
    "PostingEligibility",
    "SequentialIdGenerator",
    "SystemClock",
    "TemporalBalance",
    "UUID4Generator",
    "start_of_day",
]
