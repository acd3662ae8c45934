"""
TemporalBalance -- one slice of an account's bitemporal balance history.

A record states "the balance of this account was ``balance`` during the
valid-time interval [valid_time_start, valid_time_end), and the ledger held
that belief during the transaction-time interval
[transaction_time_start, transaction_time_end)". Both intervals are
half-open. An open end is ``END_OF_TIME``.

Records are append-only. Superseding one means closing its transaction-time
end and inserting replacements; a record's balance is never rewritten.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime

from ledger_kernel.domain.values import Money

END_OF_TIME = datetime(9999, 12, 31, 23, 59, 59, 999999, tzinfo=UTC)


@dataclass(frozen=True, slots=True)
class TemporalBalance:
    id: str
    tenant_id: str
    entity_id: str
    account_code: str
    balance: Money
    valid_time_start: datetime
    valid_time_end: datetime = END_OF_TIME
    transaction_time_start: datetime = END_OF_TIME
    transaction_time_end: datetime = END_OF_TIME
    source_entry_id: str | None = None

    def __post_init__(self) -> None:
        if not self.account_code or not self.account_code.strip():
            raise ValueError("Account code is required")
        for name in (
            "valid_time_start",
            "valid_time_end",
            "transaction_time_start",
            "transaction_time_end",
        ):
            if getattr(self, name).tzinfo is None:
                raise ValueError(f"{name} must be timezone-aware")
        if self.valid_time_start >= self.valid_time_end:
            raise ValueError("Valid time start must be before valid time end")
        if self.transaction_time_start > self.transaction_time_end:
            raise ValueError(
                "Transaction time start must not be after transaction time end"
            )

    @property
    def is_believed(self) -> bool:
        """Still part of the ledger's current belief (transaction time open)."""
        return self.transaction_time_end == END_OF_TIME

    @property
    def is_current(self) -> bool:
        """Believed and valid from its start onwards with no end."""
        return self.is_believed and self.valid_time_end == END_OF_TIME

    def is_valid_at(self, at: datetime) -> bool:
        return self.valid_time_start <= at < self.valid_time_end

    def was_recorded_at(self, at: datetime) -> bool:
        return self.transaction_time_start <= at < self.transaction_time_end

    def close(self, transaction_time_end: datetime) -> TemporalBalance:
        """Copy with the belief ended at ``transaction_time_end``."""
        return replace(self, transaction_time_end=transaction_time_end)
