"""
Domain events and audit records emitted by the posting pipeline.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any

JOURNAL_ENTRY_POSTED = "JournalEntryPosted"
PERIOD_CLOSED = "PeriodClosed"


@dataclass(frozen=True)
class DomainEvent:
    event_id: str
    event_type: str
    tenant_id: str
    aggregate_id: str
    occurred_at: datetime
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))


@dataclass(frozen=True)
class AuditLogEntry:
    """
    One audit trail record.

    ``payload`` always carries ``tenant_id`` and ``user_id``; AuditLoggerService
    merges them in before the entry reaches a sink.
    """

    id: str
    tenant_id: str
    user_id: str | None
    action: str
    entity_type: str
    entity_id: str
    occurred_at: datetime
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))
