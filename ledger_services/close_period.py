"""
ClosePeriodCommandHandler -- runs the year-end close for one entity.

Builds the closing entry through ClosingService, persists it, folds it into
the temporal ledger and records a ``PeriodClosed`` audit entry. When an
event bus is wired, a ``PeriodClosed`` domain event is published as well.
"""

from __future__ import annotations

from contextlib import nullcontext
from dataclasses import dataclass
from typing import Any

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.events import PERIOD_CLOSED, DomainEvent
from ledger_kernel.domain.ids import IdGenerator, UUID4Generator
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.ports import AuditLogger, DomainEventBus, JournalEntryRepository
from ledger_kernel.services.temporal_balance_service import TemporalBalanceService
from ledger_services.closing_service import ClosingService
from ledger_services.commands import ClosePeriodCommand
from ledger_services.create_journal_entry import UnitOfWork

logger = get_logger("services.close_period")


@dataclass(frozen=True)
class ClosePeriodResult:
    closing_entry_id: str
    total_revenue_cents: int
    total_expense_cents: int
    net_income_cents: int


class ClosePeriodCommandHandler:
    def __init__(
        self,
        closing_service: ClosingService,
        journal_entries: JournalEntryRepository,
        balances: TemporalBalanceService,
        audit_logger: AuditLogger | None = None,
        event_bus: DomainEventBus | None = None,
        clock: Clock | None = None,
        id_generator: IdGenerator | None = None,
        unit_of_work: UnitOfWork | None = None,
    ):
        self._closing = closing_service
        self._journal_entries = journal_entries
        self._balances = balances
        self._audit_logger = audit_logger
        self._event_bus = event_bus
        self._clock = clock or SystemClock()
        self._ids = id_generator or UUID4Generator()
        self._unit_of_work = unit_of_work or nullcontext

    def handle(self, command: ClosePeriodCommand) -> ClosePeriodResult:
        with LogContext.bind(
            tenant_id=command.tenant_id,
            entity_id=command.entity_id,
            user_id=command.closed_by,
        ):
            closing = self._closing.build_closing_entry(
                command.tenant_id,
                command.entity_id,
                command.period_end_date,
                command.retained_earnings_account_code,
                command.reporting_currency,
            )
            entry = closing.closing_entry
            payload: dict[str, Any] = {
                "closing_entry_id": entry.id,
                "entity_id": command.entity_id,
                "period_end_date": command.period_end_date.isoformat(),
                "total_revenue_cents": closing.total_revenue_cents,
                "total_expense_cents": closing.total_expense_cents,
                "net_income_cents": closing.net_income_cents,
                "retained_earnings_account_code": command.retained_earnings_account_code,
            }

            with self._unit_of_work():
                self._journal_entries.save(entry)
                self._balances.apply_journal_entry(command.tenant_id, command.entity_id, entry)

                if self._event_bus is not None:
                    self._event_bus.publish(
                        DomainEvent(
                            event_id=self._ids.new_id(),
                            event_type=PERIOD_CLOSED,
                            tenant_id=command.tenant_id,
                            aggregate_id=entry.id,
                            occurred_at=self._clock.now(),
                            payload=payload,
                        )
                    )
                if self._audit_logger is not None:
                    self._audit_logger.log(
                        tenant_id=command.tenant_id,
                        user_id=command.closed_by,
                        action=PERIOD_CLOSED,
                        entity_type="JournalEntry",
                        entity_id=entry.id,
                        payload=payload,
                    )

            logger.info("period_closed", extra=payload)
            return ClosePeriodResult(
                closing_entry_id=entry.id,
                total_revenue_cents=closing.total_revenue_cents,
                total_expense_cents=closing.total_expense_cents,
                net_income_cents=closing.net_income_cents,
            )
