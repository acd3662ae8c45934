"""
AccountingPeriod -- the posting window and its close status.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum


class PeriodStatus(str, Enum):
    OPEN = "OPEN"
    SOFT_CLOSED = "SOFT_CLOSED"
    HARD_CLOSED = "HARD_CLOSED"


@dataclass(frozen=True)
class AccountingPeriod:
    id: str
    tenant_id: str
    name: str
    start_date: date
    end_date: date
    status: PeriodStatus = PeriodStatus.OPEN
    closed_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Accounting period name is required")
        if self.start_date > self.end_date:
            raise ValueError("Period start_date must be on or before end_date")
        object.__setattr__(self, "status", PeriodStatus(self.status))

    @property
    def is_closed(self) -> bool:
        """No new entries without override: SOFT_CLOSED or HARD_CLOSED."""
        return self.status is not PeriodStatus.OPEN

    def contains_date(self, day: date) -> bool:
        """Inclusive on both ends."""
        return self.start_date <= day <= self.end_date
