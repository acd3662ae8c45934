"""
PostingRecoveryService -- re-drives entries persisted without balances.

Persist and apply are separate steps when no unit of work spans them. A
crash in between leaves an entry in the journal whose balances were never
folded in. Balance application is idempotent per account, so re-applying
every entry in a window repairs exactly the accounts that are missing and
skips the rest.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.ports import JournalEntryRepository
from ledger_kernel.services.temporal_balance_service import TemporalBalanceService

logger = get_logger("services.recovery")


@dataclass(frozen=True)
class RecoveryReport:
    entries_checked: int
    redriven_entry_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def entries_redriven(self) -> int:
        return len(self.redriven_entry_ids)


class PostingRecoveryService:
    def __init__(self, journal_entries: JournalEntryRepository, balances: TemporalBalanceService):
        self._journal_entries = journal_entries
        self._balances = balances

    def redrive(
        self,
        tenant_id: str,
        entity_id: str | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> RecoveryReport:
        entries = self._journal_entries.find_by_tenant(
            tenant_id, entity_id=entity_id, from_date=from_date, to_date=to_date
        )
        redriven: list[str] = []
        for entry in entries:
            with LogContext.bind(entry_id=entry.id, entity_id=entry.entity_id):
                applied = self._balances.apply_journal_entry(
                    entry.tenant_id, entry.entity_id, entry
                )
            if any(not delta.skipped for delta in applied):
                redriven.append(entry.id)
                logger.warning(
                    "posting_redriven",
                    extra={
                        "journal_entry_id": entry.id,
                        "accounts": [d.account_code for d in applied if not d.skipped],
                    },
                )

        report = RecoveryReport(entries_checked=len(entries), redriven_entry_ids=tuple(redriven))
        logger.info(
            "posting_recovery_completed",
            extra={
                "tenant_id": tenant_id,
                "entries_checked": report.entries_checked,
                "entries_redriven": report.entries_redriven,
            },
        )
        return report
