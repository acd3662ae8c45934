"""
Journal -- the immutable double-entry unit.

Responsibility:
    JournalEntry and JournalEntryLine are the only way amounts enter the
    ledger. Both validate themselves in ``__post_init__``, so every instance
    that exists is a valid one; there are no mutators that could break the
    invariants afterwards.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Each line has exactly one non-zero side, in one currency, against a
      non-blank account code.
    - An entry has at least two lines, all in one currency.
    - Sum of debits equals sum of credits exactly, with no tolerance.
    - An intercompany entry names its counterparty entity.

    Validation order is fixed: line count, currency, balance, counterparty.

Failure modes:
    - JournalEntryValidationError for structural violations.
    - UnbalancedEntryError when debits and credits differ.

Audit relevance:
    Entries are never edited. A correction is a reversal, which is a new
    entry with every line's sides swapped and ``reversal_of`` pointing back.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, time
from types import MappingProxyType
from typing import Any

from ledger_kernel.domain.currency import Currency
from ledger_kernel.domain.ids import IdGenerator
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    JournalEntryValidationError,
    UnbalancedEntryError,
)


def start_of_day(day: date) -> datetime:
    """Midnight UTC at the start of ``day``; the valid-time anchor of a posting."""
    return datetime.combine(day, time.min, tzinfo=UTC)


@dataclass(frozen=True)
class JournalEntryLine:
    """
    One debit or credit against an account.

    Contract:
        Owned by exactly one JournalEntry (``entry_id``). Use ``debit()`` or
        ``credit()`` to build lines; ``JournalEntry.create`` binds them to
        the entry.
    """

    id: str
    entry_id: str
    account_code: str
    debit_amount: Money
    credit_amount: Money
    cost_center: str | None = None
    description: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.account_code, str) or not self.account_code.strip():
            raise JournalEntryValidationError(
                "Account code is required", field="account_code"
            )
        if not isinstance(self.debit_amount, Money) or not isinstance(
            self.credit_amount, Money
        ):
            raise JournalEntryValidationError(
                "Line amounts must be Money", field="amount"
            )
        if self.debit_amount.currency is not self.credit_amount.currency:
            raise JournalEntryValidationError(
                "Debit and credit amounts must use the same currency",
                field="currency",
            )
        if self.debit_amount.is_negative or self.credit_amount.is_negative:
            raise JournalEntryValidationError(
                "Line amounts must not be negative", field="amount"
            )

        # INVARIANT: exactly one side carries the amount
        has_debit = not self.debit_amount.is_zero
        has_credit = not self.credit_amount.is_zero
        if not has_debit and not has_credit:
            raise JournalEntryValidationError(
                "Journal entry line must have either debit or credit amount",
                field="amount",
            )
        if has_debit and has_credit:
            raise JournalEntryValidationError(
                "Journal entry line cannot have both debit and credit amounts",
                field="amount",
            )
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @classmethod
    def debit(
        cls,
        id: str,
        account_code: str,
        amount: Money,
        *,
        entry_id: str = "",
        cost_center: str | None = None,
        description: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> JournalEntryLine:
        return cls(
            id=id,
            entry_id=entry_id,
            account_code=account_code,
            debit_amount=amount,
            credit_amount=Money.zero(amount.currency),
            cost_center=cost_center,
            description=description,
            metadata=metadata or {},
        )

    @classmethod
    def credit(
        cls,
        id: str,
        account_code: str,
        amount: Money,
        *,
        entry_id: str = "",
        cost_center: str | None = None,
        description: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> JournalEntryLine:
        return cls(
            id=id,
            entry_id=entry_id,
            account_code=account_code,
            debit_amount=Money.zero(amount.currency),
            credit_amount=amount,
            cost_center=cost_center,
            description=description,
            metadata=metadata or {},
        )

    @property
    def currency(self) -> Currency:
        return self.debit_amount.currency

    @property
    def is_debit(self) -> bool:
        return not self.debit_amount.is_zero

    @property
    def is_credit(self) -> bool:
        return not self.credit_amount.is_zero

    @property
    def amount(self) -> Money:
        """The non-zero side, always non-negative."""
        return self.debit_amount if self.is_debit else self.credit_amount

    @property
    def signed_amount(self) -> Money:
        """Debit minus credit: positive for debits, negative for credits."""
        return self.debit_amount.add(self.credit_amount.negate())

    def create_reversal(self, id: str, entry_id: str) -> JournalEntryLine:
        return replace(
            self,
            id=id,
            entry_id=entry_id,
            debit_amount=self.credit_amount,
            credit_amount=self.debit_amount,
        )


@dataclass(frozen=True)
class JournalEntry:
    """
    Balanced, immutable journal entry.

    Contract:
        Construction either yields a balanced single-currency entry with at
        least two lines bound to it, or raises. Nothing can change it after.

    Guarantees:
        - ``total_debits() == total_credits()``
        - ``valid_time_start`` defaults to midnight UTC of ``posting_date``
        - ``lines`` is a tuple in caller order

    Non-goals:
        - Does NOT check that accounts exist or periods are open; that is the
          command handler's business-rule stage.
    """

    id: str
    tenant_id: str
    entity_id: str
    posting_date: date
    lines: tuple[JournalEntryLine, ...]
    source_module: str = "GL"
    source_document_id: str | None = None
    source_document_type: str = "JOURNAL_ENTRY"
    description: str = ""
    is_intercompany: bool = False
    counterparty_entity_id: str | None = None
    valid_time_start: datetime | None = None
    reversal_of: str | None = None
    version: int = 1
    created_by: str | None = None
    idempotency_key: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        lines = tuple(self.lines)
        object.__setattr__(self, "lines", lines)
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

        if not self.tenant_id:
            raise JournalEntryValidationError("tenant_id is required", field="tenant_id")
        if not self.entity_id:
            raise JournalEntryValidationError("entity_id is required", field="entity_id")
        if isinstance(self.posting_date, datetime) or not isinstance(self.posting_date, date):
            raise JournalEntryValidationError(
                "posting_date must be a date", field="posting_date"
            )

        # (1) at least two lines
        if len(lines) < 2:
            raise JournalEntryValidationError(
                "Journal entry must have at least 2 lines", field="lines"
            )
        for line in lines:
            if line.entry_id != self.id:
                raise JournalEntryValidationError(
                    f"Line {line.id} belongs to entry {line.entry_id!r}, not {self.id!r}",
                    field="lines",
                )

        # (2) one currency
        currencies = {line.currency for line in lines}
        if len(currencies) != 1:
            raise JournalEntryValidationError(
                "All lines must use the same currency: "
                + ", ".join(sorted(c.value for c in currencies)),
                field="currency",
            )

        # (3) INVARIANT: sum(debits) == sum(credits), exactly
        debits = sum(line.debit_amount.amount_minor_units for line in lines)
        credits = sum(line.credit_amount.amount_minor_units for line in lines)
        if debits != credits:
            raise UnbalancedEntryError(debits, credits, lines[0].currency.value)

        # (4) intercompany entries name their counterparty
        if self.is_intercompany and not self.counterparty_entity_id:
            raise JournalEntryValidationError(
                "Intercompany entries require a counterparty entity",
                field="counterparty_entity_id",
            )

        if self.valid_time_start is None:
            object.__setattr__(self, "valid_time_start", start_of_day(self.posting_date))
        elif not isinstance(self.valid_time_start, datetime) or self.valid_time_start.tzinfo is None:
            raise JournalEntryValidationError(
                "valid_time_start must be a timezone-aware datetime", field="valid_time_start"
            )
        if self.version < 1:
            raise JournalEntryValidationError("version must be >= 1", field="version")

    @classmethod
    def create(
        cls,
        *,
        id: str,
        tenant_id: str,
        entity_id: str,
        posting_date: date,
        lines: Iterable[JournalEntryLine],
        **fields: Any,
    ) -> JournalEntry:
        """Build an entry, binding every line's ``entry_id`` to ``id``."""
        bound = tuple(
            line if line.entry_id == id else replace(line, entry_id=id) for line in lines
        )
        return cls(
            id=id,
            tenant_id=tenant_id,
            entity_id=entity_id,
            posting_date=posting_date,
            lines=bound,
            **fields,
        )

    @property
    def currency(self) -> Currency:
        return self.lines[0].currency

    def total_debits(self) -> Money:
        return Money(
            sum(line.debit_amount.amount_minor_units for line in self.lines),
            self.currency,
        )

    def total_credits(self) -> Money:
        return Money(
            sum(line.credit_amount.amount_minor_units for line in self.lines),
            self.currency,
        )

    @property
    def is_balanced(self) -> bool:
        return self.total_debits().equals(self.total_credits())

    def affected_account_codes(self) -> tuple[str, ...]:
        """Distinct account codes in first-seen line order."""
        return tuple(dict.fromkeys(line.account_code for line in self.lines))

    def net_change_by_account(self) -> dict[str, Money]:
        """Signed net change per account: sum(debit) - sum(credit)."""
        net: dict[str, Money] = {}
        for line in self.lines:
            current = net.get(line.account_code, Money.zero(line.currency))
            net[line.account_code] = current.add(line.signed_amount)
        return net

    def create_reversal(
        self,
        id_generator: IdGenerator,
        *,
        posting_date: date | None = None,
        description: str | None = None,
        created_by: str | None = None,
        idempotency_key: str | None = None,
    ) -> JournalEntry:
        """New entry that undoes this one. The original is not touched."""
        new_id = id_generator.new_id()
        lines = tuple(
            line.create_reversal(id_generator.new_id(), new_id) for line in self.lines
        )
        when = posting_date or self.posting_date
        return JournalEntry(
            id=new_id,
            tenant_id=self.tenant_id,
            entity_id=self.entity_id,
            posting_date=when,
            lines=lines,
            source_module=self.source_module,
            source_document_id=self.source_document_id,
            source_document_type=self.source_document_type,
            description=description or f"Reversal of {self.id}",
            is_intercompany=self.is_intercompany,
            counterparty_entity_id=self.counterparty_entity_id,
            reversal_of=self.id,
            created_by=created_by or self.created_by,
            idempotency_key=idempotency_key,
            metadata=self.metadata,
        )
