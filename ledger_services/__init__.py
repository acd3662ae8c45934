"""
ledger_services -- command handlers, queries and workflows over the kernel.

Everything here is wired from injected ports; nothing constructs its own
repositories. Settings come from ``ledger_config.get_active_settings()``
unless a LedgerSettings instance is passed in.
"""

from ledger_services.audit_logger import AuditLoggerService
from ledger_services.close_period import ClosePeriodCommandHandler, ClosePeriodResult
from ledger_services.closing_service import ClosingEntryResult, ClosingService
from ledger_services.commands import (
    ClosePeriodCommand,
    CommandValidator,
    CreateJournalEntryCommand,
    CreateJournalEntryLineCommand,
    validate_metadata,
)
from ledger_services.consolidated_balance_sheet import (
    ConsolidatedBalanceSheet,
    ConsolidatedEntity,
    ConsolidatedLine,
    GetConsolidatedBalanceSheetQuery,
    GetConsolidatedBalanceSheetQueryHandler,
)
from ledger_services.create_journal_entry import (
    CreateJournalEntryCommandHandler,
    CreateJournalEntryResult,
    PostingStage,
)
from ledger_services.idempotency import IdempotencyService
from ledger_services.period_guard import PostingPeriodGuard
from ledger_services.recovery import PostingRecoveryService, RecoveryReport

__all__ = [
    "AuditLoggerService",
    "ClosePeriodCommand",
    "ClosePeriodCommandHandler",
    "ClosePeriodResult",
    "ClosingEntryResult",
    "ClosingService",
    "CommandValidator",
    "ConsolidatedBalanceSheet",
    "ConsolidatedEntity",
    "ConsolidatedLine",
    "CreateJournalEntryCommand",
    "CreateJournalEntryCommandHandler",
    "CreateJournalEntryLineCommand",
    "CreateJournalEntryResult",
    "GetConsolidatedBalanceSheetQuery",
    "GetConsolidatedBalanceSheetQueryHandler",
    "IdempotencyService",
    "PostingPeriodGuard",
    "PostingRecoveryService",
    "PostingStage",
    "RecoveryReport",
    "validate_metadata",
]
