"""
SQLite fixtures for the SQLAlchemy adapter tests.

Each test gets a fresh in-memory database: the module engine is
initialized, tables are created, and everything is disposed at teardown.
"""

from collections.abc import Generator
from datetime import date

import pytest
from sqlalchemy.orm import Session

from ledger_kernel.db import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.db.repositories import (
    SqlAlchemyAccountRepository,
    SqlAlchemyAuditLogSink,
    SqlAlchemyEntityRepository,
    SqlAlchemyIdempotencyRepository,
    SqlAlchemyJournalEntryRepository,
    SqlAlchemyPeriodRepository,
    SqlAlchemyTemporalBalanceRepository,
)

from tests.conftest import TENANT_ID, build_chart


@pytest.fixture
def db_engine():
    engine = init_engine_from_url("sqlite://")
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def sql_journal_repo(session):
    return SqlAlchemyJournalEntryRepository(session)


@pytest.fixture
def sql_account_repo(session):
    repo = SqlAlchemyAccountRepository(session)
    for account in build_chart():
        repo.save(account)
    return repo


@pytest.fixture
def sql_period_repo(session, period_repo):
    repo = SqlAlchemyPeriodRepository(session)
    for month in (date(2023, 12, 15), date(2024, 1, 15), date(2024, 2, 15)):
        repo.save(period_repo.find_by_date(TENANT_ID, month))
    return repo


@pytest.fixture
def sql_entity_repo(session):
    return SqlAlchemyEntityRepository(session)


@pytest.fixture
def sql_balance_repo(session):
    return SqlAlchemyTemporalBalanceRepository(session)


@pytest.fixture
def sql_idempotency_repo(session):
    return SqlAlchemyIdempotencyRepository(session)


@pytest.fixture
def sql_audit_sink(session):
    return SqlAlchemyAuditLogSink(session)