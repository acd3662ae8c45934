"""
AuditLoggerService -- the write side of the audit trail.

Every payload is stamped with ``tenant_id`` and ``user_id`` (None when the
caller is anonymous) before it reaches the sink, so downstream consumers
never have to join back to the row to know who acted for which tenant.
"""

from __future__ import annotations

from typing import Any

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.events import AuditLogEntry
from ledger_kernel.domain.ids import IdGenerator, UUID4Generator
from ledger_kernel.logging_config import get_logger
from ledger_kernel.ports import AuditLogger, AuditLogSink

logger = get_logger("services.audit")


class AuditLoggerService(AuditLogger):
    def __init__(
        self,
        sink: AuditLogSink,
        clock: Clock | None = None,
        id_generator: IdGenerator | None = None,
    ):
        self._sink = sink
        self._clock = clock or SystemClock()
        self._ids = id_generator or UUID4Generator()

    def log(
        self,
        *,
        tenant_id: str,
        user_id: str | None,
        action: str,
        entity_type: str,
        entity_id: str,
        payload: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            id=self._ids.new_id(),
            tenant_id=tenant_id,
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            occurred_at=self._clock.now(),
            payload={**(payload or {}), "tenant_id": tenant_id, "user_id": user_id},
        )
        self._sink.append(entry)
        logger.info(
            "audit_logged",
            extra={"action": action, "entity_type": entity_type, "audit_entity_id": entity_id},
        )
        return entry
