"""
EliminationService -- intercompany netting for consolidated reporting.

Responsibility:
    Scans intercompany entries in a date range, nets every
    (account, currency) pair as sum(debit) - sum(credit), and builds one
    balanced elimination entry per currency that zeroes those nets against
    a designated elimination account.

Architecture position:
    Kernel > Services. Reads through JournalEntryRepository; never persists.

Invariants enforced:
    - Zero nets produce no lines.
    - Each generated entry is single-currency and balanced by construction.
"""

from __future__ import annotations

from datetime import date

from ledger_kernel.domain.currency import Currency
from ledger_kernel.domain.ids import IdGenerator, UUID4Generator
from ledger_kernel.domain.journal import JournalEntry, JournalEntryLine
from ledger_kernel.domain.values import Money
from ledger_kernel.logging_config import get_logger
from ledger_kernel.ports import JournalEntryRepository

logger = get_logger("services.elimination")

ELIMINATION_DOCUMENT_TYPE = "INTERCOMPANY_ELIMINATION"


class EliminationService:
    def __init__(
        self,
        journal_repository: JournalEntryRepository,
        id_generator: IdGenerator | None = None,
    ):
        self._journal_repository = journal_repository
        self._ids = id_generator or UUID4Generator()

    def generate_elimination_entries(
        self,
        tenant_id: str,
        from_date: date,
        to_date: date,
        consolidation_entity_id: str,
        elimination_account_code: str,
        source_module: str = "CONSOLIDATION",
    ) -> list[JournalEntry]:
        transactions = self._journal_repository.find_intercompany_transactions(
            tenant_id, from_date, to_date
        )
        nets = self._net_by_account(transactions)

        by_currency: dict[Currency, list[tuple[str, int]]] = {}
        for (account_code, currency), net in nets.items():
            if net != 0:
                by_currency.setdefault(currency, []).append((account_code, net))

        entries: list[JournalEntry] = []
        for currency, account_nets in by_currency.items():
            entry_id = self._ids.new_id()
            lines = self._elimination_lines(account_nets, currency, elimination_account_code)
            entries.append(
                JournalEntry.create(
                    id=entry_id,
                    tenant_id=tenant_id,
                    entity_id=consolidation_entity_id,
                    posting_date=to_date,
                    lines=lines,
                    source_module=source_module,
                    source_document_id=self._ids.new_id(),
                    source_document_type=ELIMINATION_DOCUMENT_TYPE,
                    description=(
                        f"Intercompany elimination for {from_date.isoformat()} "
                        f"to {to_date.isoformat()} ({currency.value})"
                    ),
                )
            )

        logger.info(
            "elimination_entries_generated",
            extra={
                "tenant_id": tenant_id,
                "transactions": len(transactions),
                "entries": len(entries),
            },
        )
        return entries

    @staticmethod
    def _net_by_account(entries: list[JournalEntry]) -> dict[tuple[str, Currency], int]:
        nets: dict[tuple[str, Currency], int] = {}
        for entry in entries:
            if not entry.is_intercompany or not entry.counterparty_entity_id:
                continue
            for line in entry.lines:
                key = (line.account_code, line.currency)
                nets[key] = nets.get(key, 0) + line.signed_amount.amount_minor_units
        return nets

    def _elimination_lines(
        self,
        account_nets: list[tuple[str, int]],
        currency: Currency,
        elimination_account_code: str,
    ) -> list[JournalEntryLine]:
        lines: list[JournalEntryLine] = []
        for account_code, net in account_nets:
            amount = Money.from_cents(abs(net), currency)
            description = f"Elimination {account_code}"
            if net > 0:
                # Net debit: credit it away, debit the elimination account.
                lines.append(JournalEntryLine.debit(
                    self._ids.new_id(), elimination_account_code, amount, description=description
                ))
                lines.append(JournalEntryLine.credit(
                    self._ids.new_id(), account_code, amount, description=description
                ))
            else:
                lines.append(JournalEntryLine.debit(
                    self._ids.new_id(), account_code, amount, description=description
                ))
                lines.append(JournalEntryLine.credit(
                    self._ids.new_id(), elimination_account_code, amount, description=description
                ))
        return lines
