"""
Command objects accepted by the ledger's write handlers.

Responsibility:
    Plain frozen records describing what a caller wants done, plus the
    structural validator that runs before any repository is touched.

Architecture position:
    Services > Commands. Depends on ledger_kernel domain types and the
    hashing utilities only.

Invariants enforced:
    - CommandValidator collects every structural problem rather than
      stopping at the first, so a caller sees the full error list.
    - ``fingerprint()`` is stable across processes: same business payload,
      same hash, regardless of idempotency key or caller permissions.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from ledger_kernel.domain.currency import Currency
from ledger_kernel.exceptions import CommandValidationError, InvalidCurrencyError
from ledger_kernel.utils.hashing import hash_payload

STANDARD_METADATA_FIELDS = ("Department", "Project", "ReferenceID")
METADATA_MAX_LENGTH = 255


@dataclass(frozen=True)
class CreateJournalEntryLineCommand:
    account_code: str
    debit_amount_cents: int = 0
    credit_amount_cents: int = 0
    cost_center: str | None = None
    description: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_code": self.account_code,
            "debit_amount_cents": self.debit_amount_cents,
            "credit_amount_cents": self.credit_amount_cents,
            "cost_center": self.cost_center,
            "description": self.description,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class CreateJournalEntryCommand:
    """
    Request to post one journal entry.

    ``permissions`` is a plain capability set; the only one the posting
    handler looks at is the closed-period override.
    """

    tenant_id: str
    entity_id: str
    posting_date: date | None
    currency: Currency | str | None
    lines: tuple[CreateJournalEntryLineCommand, ...]
    source_module: str = "GL"
    source_document_id: str | None = None
    source_document_type: str = "JOURNAL_ENTRY"
    description: str = ""
    is_intercompany: bool = False
    counterparty_entity_id: str | None = None
    valid_time_start: datetime | None = None
    idempotency_key: str | None = None
    created_by: str | None = None
    permissions: frozenset[str] = frozenset()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))
        object.__setattr__(self, "permissions", frozenset(self.permissions))

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def to_dict(self) -> dict[str, Any]:
        """Business payload; excludes the idempotency key and permissions."""
        return {
            "tenant_id": self.tenant_id,
            "entity_id": self.entity_id,
            "posting_date": self.posting_date,
            "currency": str(self.currency) if self.currency is not None else None,
            "lines": [line.to_dict() for line in self.lines],
            "source_module": self.source_module,
            "source_document_id": self.source_document_id,
            "source_document_type": self.source_document_type,
            "description": self.description,
            "is_intercompany": self.is_intercompany,
            "counterparty_entity_id": self.counterparty_entity_id,
            "valid_time_start": self.valid_time_start,
            "created_by": self.created_by,
            "metadata": dict(self.metadata),
        }

    def fingerprint(self) -> str:
        """SHA-256 of the canonical business payload."""
        return hash_payload(self.to_dict())


@dataclass(frozen=True)
class ClosePeriodCommand:
    tenant_id: str
    entity_id: str
    period_end_date: date
    retained_earnings_account_code: str
    reporting_currency: Currency | str | None = None
    closed_by: str | None = None


def validate_metadata(metadata: Mapping[str, Any] | None, label: str = "metadata") -> list[str]:
    """
    Metadata is a flat mapping of str, int or bool values (no None).

    Department, Project and ReferenceID, when present, must be strings of
    at most 255 characters.
    """
    if metadata is None:
        return []
    if not isinstance(metadata, Mapping):
        return [f"{label} must be a mapping"]

    errors: list[str] = []
    for key, value in metadata.items():
        if value is None or not isinstance(value, (str, int, bool)):
            errors.append(f"{label}.{key} must be a string, number or boolean")
    for name in STANDARD_METADATA_FIELDS:
        if name not in metadata:
            continue
        value = metadata[name]
        if not isinstance(value, str):
            errors.append(f"{label}.{name} must be a string")
        elif len(value) > METADATA_MAX_LENGTH:
            errors.append(f"{label}.{name} must be at most {METADATA_MAX_LENGTH} characters")
    return errors


def _is_cents(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class CommandValidator:
    """Structural checks for CreateJournalEntryCommand."""

    def validate(self, command: CreateJournalEntryCommand) -> list[str]:
        errors: list[str] = []

        if not (command.tenant_id or "").strip():
            errors.append("tenant_id is required")
        if not (command.entity_id or "").strip():
            errors.append("entity_id is required")
        if command.posting_date is None:
            errors.append("posting_date is required")
        elif isinstance(command.posting_date, datetime) or not isinstance(
            command.posting_date, date
        ):
            errors.append("posting_date must be a date")
        if command.valid_time_start is not None and (
            not isinstance(command.valid_time_start, datetime)
            or command.valid_time_start.tzinfo is None
        ):
            errors.append("valid_time_start must be a timezone-aware datetime")
        if command.currency is None:
            errors.append("currency is required")
        else:
            try:
                Currency.parse(command.currency)
            except InvalidCurrencyError:
                errors.append(f"currency {command.currency!r} is not supported")

        if len(command.lines) < 2:
            errors.append("At least 2 journal entry lines are required")

        total_debits = 0
        total_credits = 0
        for index, line in enumerate(command.lines, start=1):
            if not (line.account_code or "").strip():
                errors.append(f"Line {index}: account_code is required")
            if not _is_cents(line.debit_amount_cents) or not _is_cents(line.credit_amount_cents):
                errors.append(f"Line {index}: amounts must be integer cents")
                continue
            if line.debit_amount_cents < 0 or line.credit_amount_cents < 0:
                errors.append(f"Line {index}: amounts cannot be negative")
                continue
            has_debit = line.debit_amount_cents > 0
            has_credit = line.credit_amount_cents > 0
            if not has_debit and not has_credit:
                errors.append(f"Line {index}: must have either debit or credit amount")
            if has_debit and has_credit:
                errors.append(f"Line {index}: cannot have both debit and credit amounts")
            total_debits += line.debit_amount_cents
            total_credits += line.credit_amount_cents
            errors.extend(validate_metadata(line.metadata, f"Line {index}: metadata"))

        if command.lines and total_debits != total_credits:
            errors.append(
                f"Entry is unbalanced: debits={total_debits}, credits={total_credits}"
            )

        if command.is_intercompany and not (command.counterparty_entity_id or "").strip():
            errors.append("counterparty_entity_id is required for intercompany entries")

        errors.extend(validate_metadata(command.metadata))
        return errors

    def assert_valid(self, command: CreateJournalEntryCommand) -> None:
        errors = self.validate(command)
        if errors:
            raise CommandValidationError(errors)
