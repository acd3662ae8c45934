"""
Module: ledger_kernel.db.repositories
Responsibility: SQLAlchemy implementations of the ledger ports. Each adapter
    works inside a caller-owned Session (see ``session_scope``) and never
    commits on its own.
Architecture position: Kernel > DB. Maps ORM rows to domain objects and back.

Invariants enforced:
    - A duplicate (tenant_id, idempotency_key) insert surfaces as
      IdempotencyKeyConflictError. The insert runs in a SAVEPOINT so the
      caller's transaction stays usable for the replay lookup that follows.
    - TemporalBalance rows are only ever inserted or have their
      transaction_time_end closed.
    - On PostgreSQL, ``locked`` takes a transaction-scoped advisory lock on
      the (tenant, entity, account) key plus FOR UPDATE on the open rows, so
      even an account's first posting is serialized.
"""

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import date, datetime

from sqlalchemy import exists, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.models import (
    AccountModel,
    AccountingPeriodModel,
    AuditLogModel,
    EntityModel,
    IdempotencyRecordModel,
    JournalEntryLineModel,
    JournalEntryModel,
    TemporalBalanceModel,
)
from ledger_kernel.domain.account import Account, AccountType, NormalBalance
from ledger_kernel.domain.currency import Currency
from ledger_kernel.domain.entity import ConsolidationMethod, Entity
from ledger_kernel.domain.events import AuditLogEntry
from ledger_kernel.domain.journal import JournalEntry, JournalEntryLine
from ledger_kernel.domain.period import AccountingPeriod, PeriodStatus
from ledger_kernel.domain.temporal_balance import END_OF_TIME, TemporalBalance
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import IdempotencyKeyConflictError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.ports import (
    AccountRepository,
    AuditLogSink,
    EntityRepository,
    IdempotencyRecord,
    IdempotencyRepository,
    JournalEntryRepository,
    PeriodRepository,
    TemporalBalanceRepository,
)

logger = get_logger("db.repositories")


# ---------------------------------------------------------------------------
# Journal entries
# ---------------------------------------------------------------------------


def _entry_to_model(entry: JournalEntry) -> JournalEntryModel:
    model = JournalEntryModel(
        id=entry.id,
        tenant_id=entry.tenant_id,
        entity_id=entry.entity_id,
        posting_date=entry.posting_date,
        source_module=entry.source_module,
        source_document_id=entry.source_document_id,
        source_document_type=entry.source_document_type,
        description=entry.description,
        is_intercompany=entry.is_intercompany,
        counterparty_entity_id=entry.counterparty_entity_id,
        valid_time_start=entry.valid_time_start,
        reversal_of=entry.reversal_of,
        version=entry.version,
        created_by=entry.created_by,
        idempotency_key=entry.idempotency_key,
        entry_metadata=dict(entry.metadata),
    )
    model.lines = [
        JournalEntryLineModel(
            id=line.id,
            entry_id=entry.id,
            line_number=n,
            account_code=line.account_code,
            debit_amount_cents=line.debit_amount.amount_minor_units,
            credit_amount_cents=line.credit_amount.amount_minor_units,
            currency=line.currency.value,
            cost_center=line.cost_center,
            description=line.description,
            line_metadata=dict(line.metadata),
        )
        for n, line in enumerate(entry.lines)
    ]
    return model


def _entry_from_model(model: JournalEntryModel) -> JournalEntry:
    lines = tuple(
        JournalEntryLine(
            id=row.id,
            entry_id=row.entry_id,
            account_code=row.account_code,
            debit_amount=Money(row.debit_amount_cents, Currency(row.currency)),
            credit_amount=Money(row.credit_amount_cents, Currency(row.currency)),
            cost_center=row.cost_center,
            description=row.description,
            metadata=row.line_metadata or {},
        )
        for row in model.lines
    )
    return JournalEntry(
        id=model.id,
        tenant_id=model.tenant_id,
        entity_id=model.entity_id,
        posting_date=model.posting_date,
        lines=lines,
        source_module=model.source_module,
        source_document_id=model.source_document_id,
        source_document_type=model.source_document_type,
        description=model.description,
        is_intercompany=model.is_intercompany,
        counterparty_entity_id=model.counterparty_entity_id,
        valid_time_start=model.valid_time_start,
        reversal_of=model.reversal_of,
        version=model.version,
        created_by=model.created_by,
        idempotency_key=model.idempotency_key,
        metadata=model.entry_metadata or {},
    )


class SqlAlchemyJournalEntryRepository(JournalEntryRepository):
    def __init__(self, session: Session):
        self._session = session

    def save(self, entry: JournalEntry) -> None:
        try:
            with self._session.begin_nested():
                self._session.add(_entry_to_model(entry))
        except IntegrityError as exc:
            if entry.idempotency_key is not None and self._key_taken(
                entry.tenant_id, entry.idempotency_key, entry.id
            ):
                raise IdempotencyKeyConflictError(
                    entry.tenant_id, entry.idempotency_key
                ) from exc
            raise

    def _key_taken(self, tenant_id: str, key: str, entry_id: str) -> bool:
        return self._session.scalar(
            select(
                exists().where(
                    JournalEntryModel.tenant_id == tenant_id,
                    JournalEntryModel.idempotency_key == key,
                    JournalEntryModel.id != entry_id,
                )
            )
        )

    def find_by_id(self, tenant_id: str, entry_id: str) -> JournalEntry | None:
        model = self._session.scalar(
            select(JournalEntryModel).where(
                JournalEntryModel.tenant_id == tenant_id, JournalEntryModel.id == entry_id
            )
        )
        return _entry_from_model(model) if model else None

    def find_by_idempotency_key(
        self, tenant_id: str, idempotency_key: str
    ) -> JournalEntry | None:
        model = self._session.scalar(
            select(JournalEntryModel).where(
                JournalEntryModel.tenant_id == tenant_id,
                JournalEntryModel.idempotency_key == idempotency_key,
            )
        )
        return _entry_from_model(model) if model else None

    def find_intercompany_transactions(
        self, tenant_id: str, from_date: date, to_date: date
    ) -> list[JournalEntry]:
        stmt = (
            select(JournalEntryModel)
            .where(
                JournalEntryModel.tenant_id == tenant_id,
                JournalEntryModel.is_intercompany.is_(True),
                JournalEntryModel.counterparty_entity_id.is_not(None),
                JournalEntryModel.posting_date >= from_date,
                JournalEntryModel.posting_date <= to_date,
            )
            .order_by(JournalEntryModel.posting_date, JournalEntryModel.id)
        )
        return [_entry_from_model(m) for m in self._session.scalars(stmt)]

    def find_by_tenant(
        self,
        tenant_id: str,
        entity_id: str | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> list[JournalEntry]:
        stmt = select(JournalEntryModel).where(JournalEntryModel.tenant_id == tenant_id)
        if entity_id is not None:
            stmt = stmt.where(JournalEntryModel.entity_id == entity_id)
        if from_date is not None:
            stmt = stmt.where(JournalEntryModel.posting_date >= from_date)
        if to_date is not None:
            stmt = stmt.where(JournalEntryModel.posting_date <= to_date)
        stmt = stmt.order_by(JournalEntryModel.posting_date, JournalEntryModel.id)
        return [_entry_from_model(m) for m in self._session.scalars(stmt)]


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


def _account_from_model(model: AccountModel) -> Account:
    return Account(
        id=model.id,
        tenant_id=model.tenant_id,
        code=model.code,
        name=model.name,
        account_type=AccountType(model.account_type),
        normal_balance=NormalBalance(model.normal_balance),
        parent_account_id=model.parent_account_id,
        category=model.category,
        created_by=model.created_by,
        deleted_at=model.deleted_at,
    )


class SqlAlchemyAccountRepository(AccountRepository):
    def __init__(self, session: Session):
        self._session = session

    def _active(self, tenant_id: str):
        return select(AccountModel).where(
            AccountModel.tenant_id == tenant_id, AccountModel.deleted_at.is_(None)
        )

    def find_by_id(self, tenant_id: str, account_id: str) -> Account | None:
        model = self._session.scalar(self._active(tenant_id).where(AccountModel.id == account_id))
        return _account_from_model(model) if model else None

    def find_by_code(self, tenant_id: str, code: str) -> Account | None:
        model = self._session.scalar(self._active(tenant_id).where(AccountModel.code == code))
        return _account_from_model(model) if model else None

    def find_by_codes(self, tenant_id: str, codes: Sequence[str]) -> list[Account]:
        if not codes:
            return []
        stmt = self._active(tenant_id).where(AccountModel.code.in_(list(codes)))
        return [_account_from_model(m) for m in self._session.scalars(stmt.order_by(AccountModel.code))]

    def find_all(self, tenant_id: str) -> list[Account]:
        stmt = self._active(tenant_id).order_by(AccountModel.code)
        return [_account_from_model(m) for m in self._session.scalars(stmt)]

    def save(self, account: Account) -> None:
        self._session.merge(
            AccountModel(
                id=account.id,
                tenant_id=account.tenant_id,
                code=account.code,
                name=account.name,
                account_type=account.account_type.value,
                normal_balance=account.normal_balance.value,
                parent_account_id=account.parent_account_id,
                category=account.category,
                created_by=account.created_by,
                deleted_at=account.deleted_at,
            )
        )
        self._session.flush()


class SqlAlchemyPeriodRepository(PeriodRepository):
    def __init__(self, session: Session):
        self._session = session

    def find_by_date(self, tenant_id: str, day: date) -> AccountingPeriod | None:
        model = self._session.scalar(
            select(AccountingPeriodModel)
            .where(
                AccountingPeriodModel.tenant_id == tenant_id,
                AccountingPeriodModel.start_date <= day,
                AccountingPeriodModel.end_date >= day,
            )
            .order_by(AccountingPeriodModel.start_date)
            .limit(1)
        )
        if model is None:
            return None
        return AccountingPeriod(
            id=model.id,
            tenant_id=model.tenant_id,
            name=model.name,
            start_date=model.start_date,
            end_date=model.end_date,
            status=PeriodStatus(model.status),
            closed_at=model.closed_at,
        )

    def save(self, period: AccountingPeriod) -> None:
        self._session.merge(
            AccountingPeriodModel(
                id=period.id,
                tenant_id=period.tenant_id,
                name=period.name,
                start_date=period.start_date,
                end_date=period.end_date,
                status=period.status.value,
                closed_at=period.closed_at,
            )
        )
        self._session.flush()


def _entity_from_model(model: EntityModel) -> Entity:
    return Entity(
        id=model.id,
        tenant_id=model.tenant_id,
        name=model.name,
        parent_entity_id=model.parent_entity_id,
        ownership_percentage=model.ownership_percentage,
        consolidation_method=ConsolidationMethod(model.consolidation_method),
        currency=Currency(model.currency),
    )


class SqlAlchemyEntityRepository(EntityRepository):
    def __init__(self, session: Session):
        self._session = session

    def find_by_id(self, tenant_id: str, entity_id: str) -> Entity | None:
        model = self._session.scalar(
            select(EntityModel).where(EntityModel.tenant_id == tenant_id, EntityModel.id == entity_id)
        )
        return _entity_from_model(model) if model else None

    def find_subsidiaries(self, tenant_id: str, parent_id: str) -> list[Entity]:
        stmt = (
            select(EntityModel)
            .where(EntityModel.tenant_id == tenant_id, EntityModel.parent_entity_id == parent_id)
            .order_by(EntityModel.id)
        )
        return [_entity_from_model(m) for m in self._session.scalars(stmt)]

    def save(self, entity: Entity) -> None:
        self._session.merge(
            EntityModel(
                id=entity.id,
                tenant_id=entity.tenant_id,
                name=entity.name,
                parent_entity_id=entity.parent_entity_id,
                ownership_percentage=entity.ownership_percentage,
                consolidation_method=entity.consolidation_method.value,
                currency=entity.currency.value,
            )
        )
        self._session.flush()


# ---------------------------------------------------------------------------
# Temporal balances
# ---------------------------------------------------------------------------


def _balance_from_model(model: TemporalBalanceModel) -> TemporalBalance:
    return TemporalBalance(
        id=model.id,
        tenant_id=model.tenant_id,
        entity_id=model.entity_id,
        account_code=model.account_code,
        balance=Money(model.balance_cents, Currency(model.currency)),
        valid_time_start=model.valid_time_start,
        valid_time_end=model.valid_time_end,
        transaction_time_start=model.transaction_time_start,
        transaction_time_end=model.transaction_time_end,
        source_entry_id=model.source_entry_id,
    )


class SqlAlchemyTemporalBalanceRepository(TemporalBalanceRepository):
    def __init__(self, session: Session):
        self._session = session

    def _account_rows(self, tenant_id: str, entity_id: str, account_code: str):
        return select(TemporalBalanceModel).where(
            TemporalBalanceModel.tenant_id == tenant_id,
            TemporalBalanceModel.entity_id == entity_id,
            TemporalBalanceModel.account_code == account_code,
        )

    @contextmanager
    def locked(self, tenant_id: str, entity_id: str, account_code: str) -> Iterator[None]:
        bind = self._session.get_bind()
        if bind.dialect.name == "postgresql":
            self._session.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                {"key": f"temporal_balance:{tenant_id}:{entity_id}:{account_code}"},
            )
            self._session.execute(
                self._account_rows(tenant_id, entity_id, account_code)
                .where(TemporalBalanceModel.transaction_time_end == END_OF_TIME)
                .with_for_update()
            )
        yield

    def find_believed(
        self, tenant_id: str, entity_id: str, account_code: str
    ) -> list[TemporalBalance]:
        stmt = (
            self._account_rows(tenant_id, entity_id, account_code)
            .where(TemporalBalanceModel.transaction_time_end == END_OF_TIME)
            .order_by(TemporalBalanceModel.valid_time_start)
        )
        return [_balance_from_model(m) for m in self._session.scalars(stmt)]

    def find_history(
        self, tenant_id: str, entity_id: str, account_code: str
    ) -> list[TemporalBalance]:
        stmt = self._account_rows(tenant_id, entity_id, account_code).order_by(
            TemporalBalanceModel.transaction_time_start, TemporalBalanceModel.valid_time_start
        )
        return [_balance_from_model(m) for m in self._session.scalars(stmt)]

    def insert(self, record: TemporalBalance) -> None:
        self._session.add(
            TemporalBalanceModel(
                id=record.id,
                tenant_id=record.tenant_id,
                entity_id=record.entity_id,
                account_code=record.account_code,
                balance_cents=record.balance.amount_minor_units,
                currency=record.balance.currency.value,
                valid_time_start=record.valid_time_start,
                valid_time_end=record.valid_time_end,
                transaction_time_start=record.transaction_time_start,
                transaction_time_end=record.transaction_time_end,
                source_entry_id=record.source_entry_id,
            )
        )
        self._session.flush()

    def close(self, record_id: str, transaction_time_end: datetime) -> None:
        result = self._session.execute(
            update(TemporalBalanceModel)
            .where(
                TemporalBalanceModel.id == record_id,
                TemporalBalanceModel.transaction_time_end == END_OF_TIME,
            )
            .values(transaction_time_end=transaction_time_end)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            raise ValueError(f"Temporal balance {record_id} is not open")

    def has_applied(
        self, tenant_id: str, entity_id: str, account_code: str, entry_id: str
    ) -> bool:
        return self._session.scalar(
            select(
                exists().where(
                    TemporalBalanceModel.tenant_id == tenant_id,
                    TemporalBalanceModel.entity_id == entity_id,
                    TemporalBalanceModel.account_code == account_code,
                    TemporalBalanceModel.source_entry_id == entry_id,
                )
            )
        )


# ---------------------------------------------------------------------------
# Idempotency and audit
# ---------------------------------------------------------------------------


class SqlAlchemyIdempotencyRepository(IdempotencyRepository):
    def __init__(self, session: Session):
        self._session = session

    def find_by_key(self, tenant_id: str, idempotency_key: str) -> IdempotencyRecord | None:
        model = self._session.scalar(
            select(IdempotencyRecordModel).where(
                IdempotencyRecordModel.tenant_id == tenant_id,
                IdempotencyRecordModel.idempotency_key == idempotency_key,
            )
        )
        if model is None:
            return None
        return IdempotencyRecord(
            id=model.id,
            tenant_id=model.tenant_id,
            idempotency_key=model.idempotency_key,
            command_type=model.command_type,
            result=dict(model.result),
            executed_at=model.executed_at,
            expires_at=model.expires_at,
        )

    def save(self, record: IdempotencyRecord) -> None:
        try:
            with self._session.begin_nested():
                self._session.add(
                    IdempotencyRecordModel(
                        id=record.id,
                        tenant_id=record.tenant_id,
                        idempotency_key=record.idempotency_key,
                        command_type=record.command_type,
                        result=dict(record.result),
                        executed_at=record.executed_at,
                        expires_at=record.expires_at,
                    )
                )
        except IntegrityError as exc:
            logger.warning(
                "idempotency_key_conflict",
                extra={"tenant_id": record.tenant_id, "idempotency_key": record.idempotency_key},
            )
            raise IdempotencyKeyConflictError(record.tenant_id, record.idempotency_key) from exc

    def delete(self, tenant_id: str, idempotency_key: str) -> None:
        model = self._session.scalar(
            select(IdempotencyRecordModel).where(
                IdempotencyRecordModel.tenant_id == tenant_id,
                IdempotencyRecordModel.idempotency_key == idempotency_key,
            )
        )
        if model is not None:
            self._session.delete(model)
            self._session.flush()


class SqlAlchemyAuditLogSink(AuditLogSink):
    def __init__(self, session: Session):
        self._session = session

    def append(self, entry: AuditLogEntry) -> None:
        self._session.add(
            AuditLogModel(
                id=entry.id,
                tenant_id=entry.tenant_id,
                user_id=entry.user_id,
                action=entry.action,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                occurred_at=entry.occurred_at,
                payload=dict(entry.payload),
            )
        )
        self._session.flush()
