"""
Tests for AuditLoggerService.
"""

import pytest

from ledger_services.audit_logger import AuditLoggerService


class TestAuditLoggerService:
    def test_entry_appended_to_sink(self, audit_logger, audit_sink, clock):
        entry = audit_logger.log(
            tenant_id="tenant-1",
            user_id="user-1",
            action="JournalEntryCreated",
            entity_type="JournalEntry",
            entity_id="je-1",
            payload={"total_amount_cents": 100},
        )

        assert audit_sink.entries == [entry]
        assert entry.occurred_at == clock.now()
        assert entry.payload == {
            "total_amount_cents": 100,
            "tenant_id": "tenant-1",
            "user_id": "user-1",
        }

    def test_anonymous_caller(self, audit_logger):
        entry = audit_logger.log(
            tenant_id="tenant-1",
            user_id=None,
            action="PeriodClosed",
            entity_type="JournalEntry",
            entity_id="je-2",
        )
        assert entry.user_id is None
        assert entry.payload == {"tenant_id": "tenant-1", "user_id": None}

    def test_identity_fields_cannot_be_spoofed_by_payload(self, audit_logger):
        entry = audit_logger.log(
            tenant_id="tenant-1",
            user_id="user-1",
            action="X",
            entity_type="JournalEntry",
            entity_id="je-3",
            payload={"tenant_id": "other", "user_id": "someone-else"},
        )
        assert entry.payload["tenant_id"] == "tenant-1"
        assert entry.payload["user_id"] == "user-1"

    def test_payload_is_read_only(self, audit_logger):
        entry = audit_logger.log(
            tenant_id="t", user_id="u", action="X", entity_type="E", entity_id="1"
        )
        with pytest.raises(TypeError):
            entry.payload["tenant_id"] = "x"

    def test_defaults_to_system_clock(self, audit_sink):
        entry = AuditLoggerService(audit_sink).log(
            tenant_id="t", user_id=None, action="X", entity_type="E", entity_id="1"
        )
        assert entry.occurred_at.tzinfo is not None
        assert entry.id
