"""
CreateJournalEntryCommandHandler -- the write path of the ledger.

Responsibility:
    Takes a CreateJournalEntryCommand through validation, idempotency,
    business rules and construction, then persists the entry, folds it into
    the temporal balance ledger, publishes ``JournalEntryPosted``, writes
    the audit record and stores the idempotent result.

Architecture position:
    Services. Composes the kernel's TemporalBalanceService with the
    journal, account and period repositories, the event bus, the audit
    logger and IdempotencyService. All collaborators are injected.

Invariants enforced:
    - Stages run strictly in PostingStage order; any failure stops the
      pipeline with a typed error and nothing is reported as success.
    - The closed-period override bypasses only the closed check, never the
      period-existence check.
    - The journal store's (tenant_id, idempotency_key) uniqueness makes a
      check-then-act race fail safe: the loser replays the winner's result
      when the requests match and raises DuplicateEntryError when they do not.
    - A matching entry that was saved without a recorded result is resumed:
      balances are re-applied (a no-op for accounts already folded), then the
      event, audit record and result are written before success is reported.
    - Untyped failures surface as UnexpectedPostingError (UNEXPECTED_ERROR);
      typed ledger errors propagate unchanged.

Failure modes:
    - CommandValidationError, AccountNotFoundError, NoPeriodFoundError,
      PeriodClosedError, UnbalancedEntryError, DuplicateEntryError,
      UnexpectedPostingError.

Audit relevance:
    One ``JournalEntryCreated`` audit record and one ``JournalEntryPosted``
    event per posted entry. An idempotent replay emits neither. Resuming an
    interrupted posting emits them again, so consumers see them at least once.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ledger_config import LedgerSettings, get_active_settings
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.currency import Currency
from ledger_kernel.domain.events import JOURNAL_ENTRY_POSTED, DomainEvent
from ledger_kernel.domain.ids import IdGenerator, UUID4Generator
from ledger_kernel.domain.journal import JournalEntry, JournalEntryLine
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    DuplicateEntryError,
    GeneralLedgerError,
    IdempotencyKeyConflictError,
    UnexpectedPostingError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.ports import (
    AccountRepository,
    AuditLogger,
    DomainEventBus,
    JournalEntryRepository,
    PeriodRepository,
)
from ledger_kernel.services.temporal_balance_service import TemporalBalanceService
from ledger_services.commands import CommandValidator, CreateJournalEntryCommand
from ledger_services.idempotency import IdempotencyService
from ledger_services.period_guard import PostingPeriodGuard

logger = get_logger("services.create_journal_entry")

COMMAND_TYPE = "CreateJournalEntry"
AUDIT_ACTION = "JournalEntryCreated"

UnitOfWork = Callable[[], AbstractContextManager[Any]]


class PostingStage(str, Enum):
    VALIDATED = "validated"
    IDEMPOTENCY_CHECKED = "idempotency_checked"
    BUSINESS_RULES_CHECKED = "business_rules_checked"
    CONSTRUCTED = "constructed"
    PERSISTED = "persisted"
    BALANCES_APPLIED = "balances_applied"
    EVENT_PUBLISHED = "event_published"
    AUDIT_LOGGED = "audit_logged"
    COMPLETE = "complete"


@dataclass(frozen=True)
class CreateJournalEntryResult:
    journal_entry_id: str
    is_success: bool
    was_idempotent: bool
    affected_accounts: tuple[str, ...]
    total_amount_cents: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "journal_entry_id": self.journal_entry_id,
            "is_success": self.is_success,
            "was_idempotent": self.was_idempotent,
            "affected_accounts": list(self.affected_accounts),
            "total_amount_cents": self.total_amount_cents,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, was_idempotent: bool) -> CreateJournalEntryResult:
        return cls(
            journal_entry_id=data["journal_entry_id"],
            is_success=bool(data.get("is_success", True)),
            was_idempotent=was_idempotent,
            affected_accounts=tuple(data.get("affected_accounts", ())),
            total_amount_cents=int(data["total_amount_cents"]),
        )

    @classmethod
    def for_entry(cls, entry: JournalEntry, *, was_idempotent: bool) -> CreateJournalEntryResult:
        return cls(
            journal_entry_id=entry.id,
            is_success=True,
            was_idempotent=was_idempotent,
            affected_accounts=entry.affected_account_codes(),
            total_amount_cents=entry.total_debits().to_cents(),
        )


def event_payload(entry: JournalEntry) -> dict[str, Any]:
    return {
        "journal_entry_id": entry.id,
        "entity_id": entry.entity_id,
        "posting_date": entry.posting_date.isoformat(),
        "total_amount_cents": entry.total_debits().to_cents(),
        "affected_accounts": list(entry.affected_account_codes()),
        "source_module": entry.source_module,
    }


def _line_signature(entry: JournalEntry) -> list[tuple[str, int, int]]:
    return [
        (line.account_code, line.debit_amount.to_cents(), line.credit_amount.to_cents())
        for line in entry.lines
    ]


def _command_signature(command: CreateJournalEntryCommand) -> list[tuple[str, int, int]]:
    return [
        (line.account_code, line.debit_amount_cents, line.credit_amount_cents)
        for line in command.lines
    ]


class CreateJournalEntryCommandHandler:
    """
    Posts one journal entry per command.

    Contract:
        ``handle`` returns CreateJournalEntryResult or raises a
        GeneralLedgerError subclass.

    Guarantees:
        - Repeating a command with the same idempotency key returns the
          first result with ``was_idempotent=True`` and does not save again.
        - When ``unit_of_work`` is given, persist through idempotency
          recording run inside one ``with unit_of_work():`` block.

    Non-goals:
        - Does NOT authorize the caller; ``permissions`` on the command is
          trusted as given.
    """

    def __init__(
        self,
        journal_entries: JournalEntryRepository,
        accounts: AccountRepository,
        periods: PeriodRepository,
        balances: TemporalBalanceService,
        event_bus: DomainEventBus,
        idempotency: IdempotencyService,
        audit_logger: AuditLogger | None = None,
        clock: Clock | None = None,
        id_generator: IdGenerator | None = None,
        unit_of_work: UnitOfWork | None = None,
        settings: LedgerSettings | None = None,
    ):
        self._journal_entries = journal_entries
        self._accounts = accounts
        self._period_guard = PostingPeriodGuard(periods)
        self._balances = balances
        self._event_bus = event_bus
        self._idempotency = idempotency
        self._audit_logger = audit_logger
        self._clock = clock or SystemClock()
        self._ids = id_generator or UUID4Generator()
        self._unit_of_work = unit_of_work or nullcontext
        self._settings = settings or get_active_settings()
        self._validator = CommandValidator()

    def handle(self, command: CreateJournalEntryCommand) -> CreateJournalEntryResult:
        with LogContext.bind(
            tenant_id=command.tenant_id,
            entity_id=command.entity_id,
            user_id=command.created_by,
            idempotency_key=command.idempotency_key,
        ):
            start = time.monotonic()
            try:
                result = self._handle(command)
            except GeneralLedgerError as exc:
                logger.warning(
                    "journal_entry_rejected",
                    extra={"error_code": exc.code, "error": str(exc)},
                )
                raise
            except Exception as exc:
                logger.error("journal_entry_failed", exc_info=True)
                raise UnexpectedPostingError(exc) from exc

            logger.info(
                "journal_entry_posted",
                extra={
                    "journal_entry_id": result.journal_entry_id,
                    "was_idempotent": result.was_idempotent,
                    "total_amount_cents": result.total_amount_cents,
                    "duration_ms": round((time.monotonic() - start) * 1000, 2),
                },
            )
            return result

    def _handle(self, command: CreateJournalEntryCommand) -> CreateJournalEntryResult:
        self._validator.assert_valid(command)
        self._stage(PostingStage.VALIDATED)

        request_hash = command.fingerprint()
        if command.idempotency_key:
            stored = self._idempotency.replay(
                command.tenant_id, command.idempotency_key, request_hash
            )
            if stored is not None:
                return CreateJournalEntryResult.from_dict(stored, was_idempotent=True)
        self._stage(PostingStage.IDEMPOTENCY_CHECKED)

        self._check_business_rules(command)
        self._stage(PostingStage.BUSINESS_RULES_CHECKED)

        entry = self._build_entry(command)
        self._stage(PostingStage.CONSTRUCTED, entry.id)

        with LogContext.bind(entry_id=entry.id), self._unit_of_work():
            try:
                self._journal_entries.save(entry)
            except IdempotencyKeyConflictError:
                return self._resolve_conflict(command, request_hash)
            self._stage(PostingStage.PERSISTED, entry.id)
            result = self._complete(entry, command, request_hash, was_idempotent=False)
        self._stage(PostingStage.COMPLETE, entry.id)
        return result

    def _complete(
        self,
        entry: JournalEntry,
        command: CreateJournalEntryCommand,
        request_hash: str,
        *,
        was_idempotent: bool,
    ) -> CreateJournalEntryResult:
        """Run every stage after persistence for a saved entry."""
        self._balances.apply_journal_entry(entry.tenant_id, entry.entity_id, entry)
        self._stage(PostingStage.BALANCES_APPLIED, entry.id)

        payload = event_payload(entry)
        self._event_bus.publish(
            DomainEvent(
                event_id=self._ids.new_id(),
                event_type=JOURNAL_ENTRY_POSTED,
                tenant_id=entry.tenant_id,
                aggregate_id=entry.id,
                occurred_at=self._clock.now(),
                payload=payload,
            )
        )
        self._stage(PostingStage.EVENT_PUBLISHED, entry.id)

        if self._audit_logger is not None:
            self._audit_logger.log(
                tenant_id=entry.tenant_id,
                user_id=command.created_by,
                action=AUDIT_ACTION,
                entity_type="JournalEntry",
                entity_id=entry.id,
                payload=payload,
            )
        self._stage(PostingStage.AUDIT_LOGGED, entry.id)

        result = CreateJournalEntryResult.for_entry(entry, was_idempotent=was_idempotent)
        if command.idempotency_key:
            try:
                self._idempotency.record_execution(
                    command.tenant_id,
                    command.idempotency_key,
                    COMMAND_TYPE,
                    result.to_dict(),
                    request_hash,
                )
            except IdempotencyKeyConflictError:
                # A concurrent request for the same entry recorded first.
                stored = self._idempotency.replay(
                    command.tenant_id, command.idempotency_key, request_hash
                )
                if stored is None:
                    raise
                return CreateJournalEntryResult.from_dict(stored, was_idempotent=was_idempotent)
        return result

    def _check_business_rules(self, command: CreateJournalEntryCommand) -> None:
        codes = list(dict.fromkeys(line.account_code for line in command.lines))
        found = {a.code for a in self._accounts.find_by_codes(command.tenant_id, codes)}
        missing = [code for code in codes if code not in found]
        if missing:
            raise AccountNotFoundError(missing[0], command.tenant_id)

        override = command.has_permission(self._settings.closed_period_override_permission)
        self._period_guard.assert_can_post(
            command.tenant_id, command.posting_date, allow_closed_period=override
        )

    def _build_entry(self, command: CreateJournalEntryCommand) -> JournalEntry:
        currency = Currency.parse(command.currency)
        entry_id = self._ids.new_id()
        lines = [
            JournalEntryLine(
                id=self._ids.new_id(),
                entry_id=entry_id,
                account_code=line.account_code,
                debit_amount=Money.from_cents(line.debit_amount_cents, currency),
                credit_amount=Money.from_cents(line.credit_amount_cents, currency),
                cost_center=line.cost_center,
                description=line.description,
                metadata=line.metadata,
            )
            for line in command.lines
        ]
        # Constructor re-checks balance as a second line of defence.
        return JournalEntry.create(
            id=entry_id,
            tenant_id=command.tenant_id,
            entity_id=command.entity_id,
            posting_date=command.posting_date,
            lines=lines,
            source_module=command.source_module,
            source_document_id=command.source_document_id,
            source_document_type=command.source_document_type,
            description=command.description,
            is_intercompany=command.is_intercompany,
            counterparty_entity_id=command.counterparty_entity_id,
            valid_time_start=command.valid_time_start,
            created_by=command.created_by,
            idempotency_key=command.idempotency_key,
            metadata=command.metadata,
        )

    def _resolve_conflict(
        self, command: CreateJournalEntryCommand, request_hash: str
    ) -> CreateJournalEntryResult:
        """Another request saved an entry under the same key first."""
        key = command.idempotency_key
        logger.warning("idempotency_key_race_lost")

        stored = self._idempotency.replay(command.tenant_id, key, request_hash)
        if stored is not None:
            return CreateJournalEntryResult.from_dict(stored, was_idempotent=True)

        winner = self._journal_entries.find_by_idempotency_key(command.tenant_id, key)
        if winner is None or not self._same_request(winner, command):
            raise DuplicateEntryError(key, command.tenant_id)

        # Saved but never recorded: the first attempt may have stopped after
        # persistence, so drive the remaining stages before reporting success.
        logger.warning("posting_resumed", extra={"journal_entry_id": winner.id})
        with LogContext.bind(entry_id=winner.id):
            return self._complete(winner, command, request_hash, was_idempotent=True)

    @staticmethod
    def _same_request(entry: JournalEntry, command: CreateJournalEntryCommand) -> bool:
        return (
            entry.entity_id == command.entity_id
            and entry.posting_date == command.posting_date
            and entry.currency is Currency.parse(command.currency)
            and _line_signature(entry) == _command_signature(command)
        )

    @staticmethod
    def _stage(stage: PostingStage, entry_id: str | None = None) -> None:
        logger.debug("posting_stage", extra={"stage": stage.value, "journal_entry_id": entry_id})
