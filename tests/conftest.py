"""
Pytest fixtures for the ledger test suite.

Provides:
- Structured logging configured once per session, LogContext cleared per test
- Deterministic clock and sequential ids
- In-memory repositories seeded with a small chart of accounts and periods
- A fully wired CreateJournalEntryCommandHandler and a command factory

The SQLAlchemy adapter tests build their own SQLite engine in
tests/db/conftest.py.
"""

import json
import logging
from datetime import UTC, date, datetime
from io import StringIO

import pytest

from ledger_config import LedgerSettings
from ledger_kernel.adapters.memory import (
    InMemoryAccountRepository,
    InMemoryAuditLogSink,
    InMemoryEntityRepository,
    InMemoryEventBus,
    InMemoryIdempotencyRepository,
    InMemoryJournalEntryRepository,
    InMemoryPeriodRepository,
    InMemoryTemporalBalanceRepository,
)
from ledger_kernel.domain.account import Account, AccountType
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.ids import SequentialIdGenerator
from ledger_kernel.domain.period import AccountingPeriod, PeriodStatus
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.services.temporal_balance_service import TemporalBalanceService
from ledger_services.audit_logger import AuditLoggerService
from ledger_services.commands import CreateJournalEntryCommand, CreateJournalEntryLineCommand
from ledger_services.create_journal_entry import CreateJournalEntryCommandHandler
from ledger_services.idempotency import IdempotencyService

TENANT_ID = "tenant-1"
ENTITY_ID = "entity-1"
TEST_USER_ID = "user-1"

CHART_OF_ACCOUNTS = [
    ("1000", "Cash", AccountType.ASSET, "Current"),
    ("1100", "Accounts Receivable", AccountType.ASSET, "Current"),
    ("1500", "Equipment", AccountType.ASSET, "NonCurrent"),
    ("1800", "Intercompany Receivable", AccountType.ASSET, "Current"),
    ("2000", "Accounts Payable", AccountType.LIABILITY, "Current"),
    ("2500", "Long-term Debt", AccountType.LIABILITY, "NonCurrent"),
    ("2800", "Intercompany Payable", AccountType.LIABILITY, "Current"),
    ("3000", "Common Stock", AccountType.EQUITY, None),
    ("3100", "Retained Earnings", AccountType.EQUITY, None),
    ("3900", "Intercompany Elimination", AccountType.EQUITY, None),
    ("4000", "Sales Revenue", AccountType.REVENUE, None),
    ("4100", "Service Revenue", AccountType.REVENUE, None),
    ("5000", "Operating Expenses", AccountType.EXPENSE, None),
    ("5100", "Rent Expense", AccountType.EXPENSE, None),
]


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, handler, make_command):
            handler.handle(make_command())
            logs = captured_logs()
            assert any(r["message"] == "journal_entry_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow (thread pools, many examples)")


# =============================================================================
# Deterministic infrastructure
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(datetime(2024, 1, 20, 9, 0, tzinfo=UTC))


@pytest.fixture
def ids():
    return SequentialIdGenerator()


@pytest.fixture
def settings():
    return LedgerSettings()


# =============================================================================
# Repositories
# =============================================================================


def build_chart(tenant_id: str = TENANT_ID) -> list[Account]:
    return [
        Account(
            id=f"acct-{tenant_id}-{code}",
            tenant_id=tenant_id,
            code=code,
            name=name,
            account_type=account_type,
            category=category,
        )
        for code, name, account_type, category in CHART_OF_ACCOUNTS
    ]


@pytest.fixture
def account_repo():
    return InMemoryAccountRepository(build_chart())


@pytest.fixture
def period_repo():
    return InMemoryPeriodRepository(
        [
            AccountingPeriod(
                id="period-2023-12",
                tenant_id=TENANT_ID,
                name="2023-12",
                start_date=date(2023, 12, 1),
                end_date=date(2023, 12, 31),
                status=PeriodStatus.HARD_CLOSED,
                closed_at=datetime(2024, 1, 5, tzinfo=UTC),
            ),
            AccountingPeriod(
                id="period-2024-01",
                tenant_id=TENANT_ID,
                name="2024-01",
                start_date=date(2024, 1, 1),
                end_date=date(2024, 1, 31),
            ),
            AccountingPeriod(
                id="period-2024-02",
                tenant_id=TENANT_ID,
                name="2024-02",
                start_date=date(2024, 2, 1),
                end_date=date(2024, 2, 29),
                status=PeriodStatus.SOFT_CLOSED,
            ),
        ]
    )


@pytest.fixture
def journal_repo():
    return InMemoryJournalEntryRepository()


@pytest.fixture
def balance_repo():
    return InMemoryTemporalBalanceRepository()


@pytest.fixture
def entity_repo():
    return InMemoryEntityRepository()


@pytest.fixture
def idempotency_repo():
    return InMemoryIdempotencyRepository()


@pytest.fixture
def event_bus():
    return InMemoryEventBus()


@pytest.fixture
def audit_sink():
    return InMemoryAuditLogSink()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def balance_service(balance_repo, clock, ids):
    return TemporalBalanceService(balance_repo, clock=clock, id_generator=ids)


@pytest.fixture
def audit_logger(audit_sink, clock, ids):
    return AuditLoggerService(audit_sink, clock=clock, id_generator=ids)


@pytest.fixture
def idempotency_service(idempotency_repo, clock, ids, settings):
    return IdempotencyService(
        idempotency_repo, clock=clock, id_generator=ids, ttl_hours=settings.idempotency_ttl_hours
    )


@pytest.fixture
def handler(
    journal_repo,
    account_repo,
    period_repo,
    balance_service,
    event_bus,
    idempotency_service,
    audit_logger,
    clock,
    ids,
    settings,
):
    return CreateJournalEntryCommandHandler(
        journal_entries=journal_repo,
        accounts=account_repo,
        periods=period_repo,
        balances=balance_service,
        event_bus=event_bus,
        idempotency=idempotency_service,
        audit_logger=audit_logger,
        clock=clock,
        id_generator=ids,
        settings=settings,
    )


@pytest.fixture
def make_command():
    """
    Factory for CreateJournalEntryCommand.

    Defaults to a balanced 100.00 USD cash sale (Dr 1000 / Cr 4000) dated
    inside the open January 2024 period.
    """

    def _make(
        amount_cents: int = 10_000,
        debit_account: str = "1000",
        credit_account: str = "4000",
        posting_date: date = date(2024, 1, 15),
        lines=None,
        **fields,
    ) -> CreateJournalEntryCommand:
        if lines is None:
            lines = (
                CreateJournalEntryLineCommand(debit_account, debit_amount_cents=amount_cents),
                CreateJournalEntryLineCommand(credit_account, credit_amount_cents=amount_cents),
            )
        values = {
            "tenant_id": TENANT_ID,
            "entity_id": ENTITY_ID,
            "posting_date": posting_date,
            "currency": "USD",
            "lines": tuple(lines),
            "description": "Test entry",
            "source_document_id": "doc-1",
            "created_by": TEST_USER_ID,
        }
        values.update(fields)
        return CreateJournalEntryCommand(**values)

    return _make
