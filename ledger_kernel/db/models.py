"""
Module: ledger_kernel.db.models
Responsibility: ORM tables for the ledger. Column names match the persisted
    shapes the core's data round-trips through; conversion to and from
    domain objects lives in ledger_kernel.db.repositories.
Architecture position: Kernel > DB. Imports only ledger_kernel.db.base.

Invariants enforced:
    - accounts: UNIQUE (tenant_id, code)
    - accounting_periods: UNIQUE (tenant_id, name)
    - journal_entries: UNIQUE (tenant_id, idempotency_key)
    - idempotency_records: UNIQUE (tenant_id, idempotency_key)
    - journal_entry_lines: CHECK exactly one side non-zero
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, JSONDocument


class AccountModel(Base):
    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_accounts_tenant_code"),
        Index("idx_accounts_tenant", "tenant_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_type: Mapped[str] = mapped_column(String(20), nullable=False)
    normal_balance: Mapped[str] = mapped_column(String(10), nullable=False)
    parent_account_id: Mapped[str | None] = mapped_column(String(64))
    category: Mapped[str | None] = mapped_column(String(50))
    created_by: Mapped[str | None] = mapped_column(String(64))
    deleted_at: Mapped[datetime | None]


class EntityModel(Base):
    __tablename__ = "entities"

    __table_args__ = (
        CheckConstraint(
            "ownership_percentage >= 0 AND ownership_percentage <= 100",
            name="ck_entities_ownership_range",
        ),
        Index("idx_entities_parent", "tenant_id", "parent_entity_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    parent_entity_id: Mapped[str | None] = mapped_column(String(64))
    ownership_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    consolidation_method: Mapped[str] = mapped_column(String(20), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)


class AccountingPeriodModel(Base):
    __tablename__ = "accounting_periods"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_accounting_periods_tenant_name"),
        Index("idx_accounting_periods_dates", "tenant_id", "start_date", "end_date"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    closed_at: Mapped[datetime | None]


class JournalEntryModel(Base):
    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "idempotency_key", name="uq_journal_entries_tenant_idempotency_key"
        ),
        Index("idx_journal_entries_posting", "tenant_id", "entity_id", "posting_date"),
        Index("idx_journal_entries_intercompany", "tenant_id", "is_intercompany", "posting_date"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    posting_date: Mapped[date] = mapped_column(nullable=False)
    source_module: Mapped[str] = mapped_column(String(50), nullable=False)
    source_document_id: Mapped[str | None] = mapped_column(String(64))
    source_document_type: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_intercompany: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    counterparty_entity_id: Mapped[str | None] = mapped_column(String(64))
    valid_time_start: Mapped[datetime] = mapped_column(nullable=False)
    reversal_of: Mapped[str | None] = mapped_column(String(64))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_by: Mapped[str | None] = mapped_column(String(64))
    idempotency_key: Mapped[str | None] = mapped_column(String(255))
    # "metadata" is reserved on declarative classes
    entry_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONDocument, nullable=False, default=dict
    )

    lines: Mapped[list["JournalEntryLineModel"]] = relationship(
        back_populates="entry",
        order_by="JournalEntryLineModel.line_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class JournalEntryLineModel(Base):
    __tablename__ = "journal_entry_lines"

    __table_args__ = (
        CheckConstraint(
            "(debit_amount_cents > 0 AND credit_amount_cents = 0) OR "
            "(debit_amount_cents = 0 AND credit_amount_cents > 0)",
            name="ck_journal_entry_lines_one_side",
        ),
        Index("idx_journal_entry_lines_entry", "entry_id"),
    )

    entry_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("journal_entries.id", ondelete="CASCADE"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    account_code: Mapped[str] = mapped_column(String(50), nullable=False)
    debit_amount_cents: Mapped[int] = mapped_column(nullable=False, default=0)
    credit_amount_cents: Mapped[int] = mapped_column(nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    cost_center: Mapped[str | None] = mapped_column(String(50))
    description: Mapped[str | None] = mapped_column(Text)
    line_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONDocument, nullable=False, default=dict
    )

    entry: Mapped[JournalEntryModel] = relationship(back_populates="lines")


class TemporalBalanceModel(Base):
    __tablename__ = "temporal_balances"

    __table_args__ = (
        Index(
            "idx_temporal_balances_believed",
            "tenant_id",
            "entity_id",
            "account_code",
            "transaction_time_end",
        ),
        Index("idx_temporal_balances_source", "tenant_id", "source_entry_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    account_code: Mapped[str] = mapped_column(String(50), nullable=False)
    balance_cents: Mapped[int] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    valid_time_start: Mapped[datetime] = mapped_column(nullable=False)
    valid_time_end: Mapped[datetime] = mapped_column(nullable=False)
    transaction_time_start: Mapped[datetime] = mapped_column(nullable=False)
    transaction_time_end: Mapped[datetime] = mapped_column(nullable=False)
    source_entry_id: Mapped[str | None] = mapped_column(String(64))


class IdempotencyRecordModel(Base):
    __tablename__ = "idempotency_records"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "idempotency_key", name="uq_idempotency_records_tenant_key"
        ),
        Index("idx_idempotency_records_expires", "expires_at"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    command_type: Mapped[str] = mapped_column(String(100), nullable=False)
    result: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
    executed_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)


class AuditLogModel(Base):
    __tablename__ = "audit_log"

    __table_args__ = (
        Index("idx_audit_log_tenant_time", "tenant_id", "occurred_at"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(64))
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
