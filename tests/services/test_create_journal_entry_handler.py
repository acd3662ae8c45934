"""
Tests for CreateJournalEntryCommandHandler, the ledger's write path.

Verifies:
- A valid command is persisted, folded into balances, published and audited
- Idempotent replay returns the first result without saving again
- Reusing a key for a different request is rejected
- Closed-period override bypasses only the closed check
- Untyped failures surface as UNEXPECTED_ERROR
- A retry of a saved but unfinished posting completes it exactly once
"""

from contextlib import contextmanager
from datetime import date, datetime

import pytest

from ledger_kernel.domain.events import JOURNAL_ENTRY_POSTED
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    CommandValidationError,
    DuplicateEntryError,
    NoPeriodFoundError,
    PeriodClosedError,
    UnexpectedPostingError,
)
from ledger_kernel.logging_config import LogContext
from ledger_services.commands import CreateJournalEntryLineCommand
from ledger_services.create_journal_entry import (
    AUDIT_ACTION,
    CreateJournalEntryCommandHandler,
)

from tests.conftest import ENTITY_ID, TENANT_ID, TEST_USER_ID, build_chart

OVERRIDE = "accounting:post_to_closed_period"


class TestSuccessfulPosting:
    def test_result(self, handler, make_command):
        result = handler.handle(make_command())

        assert result.is_success
        assert not result.was_idempotent
        assert result.affected_accounts == ("1000", "4000")
        assert result.total_amount_cents == 10_000

    def test_entry_persisted(self, handler, make_command, journal_repo):
        result = handler.handle(make_command(description="Cash sale"))

        entry = journal_repo.find_by_id(TENANT_ID, result.journal_entry_id)
        assert entry is not None
        assert entry.is_balanced
        assert entry.description == "Cash sale"
        assert entry.created_by == TEST_USER_ID

    def test_balances_updated(self, handler, make_command, balance_service):
        handler.handle(make_command())
        handler.handle(make_command(amount_cents=2_500, debit_account="5000", credit_account="1000"))

        assert balance_service.get_current_balance(TENANT_ID, ENTITY_ID, "1000").to_cents() == 7_500
        assert (
            balance_service.get_current_balance(TENANT_ID, ENTITY_ID, "4000").amount_minor_units
            == -10_000
        )

    def test_event_published(self, handler, make_command, event_bus):
        result = handler.handle(make_command())

        (event,) = event_bus.published
        assert event.event_type == JOURNAL_ENTRY_POSTED
        assert event.aggregate_id == result.journal_entry_id
        assert event.payload["total_amount_cents"] == 10_000
        assert event.payload["affected_accounts"] == ["1000", "4000"]

    def test_audit_record(self, handler, make_command, audit_sink):
        result = handler.handle(make_command())

        (record,) = audit_sink.entries
        assert record.action == AUDIT_ACTION
        assert record.entity_id == result.journal_entry_id
        assert record.user_id == TEST_USER_ID
        assert record.payload["tenant_id"] == TENANT_ID
        assert record.payload["user_id"] == TEST_USER_ID

    def test_multi_line_entry(self, handler, make_command):
        command = make_command(
            lines=[
                CreateJournalEntryLineCommand("5000", debit_amount_cents=3_000, cost_center="OPS"),
                CreateJournalEntryLineCommand("5100", debit_amount_cents=2_000),
                CreateJournalEntryLineCommand("2000", credit_amount_cents=5_000),
            ]
        )
        result = handler.handle(command)
        assert result.affected_accounts == ("5000", "5100", "2000")
        assert result.total_amount_cents == 5_000

    def test_posted_log(self, handler, make_command, captured_logs):
        handler.handle(make_command())

        records = captured_logs()
        posted = [r for r in records if r["message"] == "journal_entry_posted"]
        assert len(posted) == 1
        assert posted[0]["tenant_id"] == TENANT_ID
        stages = [r["stage"] for r in records if r["message"] == "posting_stage"]
        assert stages[0] == "validated"
        assert stages[-1] == "complete"


class TestIdempotency:
    def test_replay_returns_first_result(self, handler, make_command, journal_repo):
        first = handler.handle(make_command(idempotency_key="key-1"))
        second = handler.handle(make_command(idempotency_key="key-1"))

        assert second.was_idempotent
        assert second.journal_entry_id == first.journal_entry_id
        assert second.total_amount_cents == first.total_amount_cents
        assert journal_repo.save_calls == 1

    def test_replay_has_no_side_effects(
        self, handler, make_command, event_bus, audit_sink, balance_service
    ):
        handler.handle(make_command(idempotency_key="key-1"))
        handler.handle(make_command(idempotency_key="key-1"))

        assert len(event_bus.published) == 1
        assert len(audit_sink.entries) == 1
        assert balance_service.get_current_balance(TENANT_ID, ENTITY_ID, "1000").to_cents() == 10_000

    def test_different_payload_same_key_rejected(self, handler, make_command):
        handler.handle(make_command(idempotency_key="key-1"))
        with pytest.raises(DuplicateEntryError) as exc_info:
            handler.handle(make_command(idempotency_key="key-1", amount_cents=5_000))
        assert exc_info.value.code == "DUPLICATE_ENTRY"

    def test_keys_scoped_per_tenant(self, handler, make_command, account_repo):
        for account in build_chart("tenant-2"):
            account_repo.save(account)
        handler.handle(make_command(idempotency_key="key-1"))
        # tenant-2 has no periods, so a fresh (non-replayed) attempt reaches the period check.
        with pytest.raises(NoPeriodFoundError):
            handler.handle(make_command(idempotency_key="key-1", tenant_id="tenant-2"))

    def test_race_loser_replays_matching_winner(
        self, handler, make_command, idempotency_repo, journal_repo
    ):
        first = handler.handle(make_command(idempotency_key="key-1"))
        # Simulate the window where the winner's entry is saved but its
        # idempotency record is not yet visible.
        idempotency_repo.delete(TENANT_ID, "key-1")

        second = handler.handle(make_command(idempotency_key="key-1"))

        assert second.was_idempotent
        assert second.journal_entry_id == first.journal_entry_id
        assert journal_repo.save_calls == 2

    def test_race_loser_with_other_payload_rejected(
        self, handler, make_command, idempotency_repo
    ):
        handler.handle(make_command(idempotency_key="key-1"))
        idempotency_repo.delete(TENANT_ID, "key-1")

        with pytest.raises(DuplicateEntryError):
            handler.handle(make_command(idempotency_key="key-1", amount_cents=1))

    def test_without_key_every_call_posts(self, handler, make_command, journal_repo):
        a = handler.handle(make_command())
        b = handler.handle(make_command())
        assert a.journal_entry_id != b.journal_entry_id
        assert journal_repo.save_calls == 2


class TestValidation:
    def test_structural_errors(self, handler, make_command, journal_repo, captured_logs):
        command = make_command(
            lines=[
                CreateJournalEntryLineCommand("1000", debit_amount_cents=10_000),
                CreateJournalEntryLineCommand("4000", credit_amount_cents=5_000),
            ]
        )
        with pytest.raises(CommandValidationError) as exc_info:
            handler.handle(command)

        assert "Entry is unbalanced: debits=10000, credits=5000" in exc_info.value.errors
        assert journal_repo.save_calls == 0
        rejected = [r for r in captured_logs() if r["message"] == "journal_entry_rejected"]
        assert rejected[0]["error_code"] == "COMMAND_VALIDATION_FAILED"

    def test_naive_valid_time_rejected_before_save(
        self, handler, make_command, journal_repo, balance_service
    ):
        with pytest.raises(CommandValidationError) as exc_info:
            handler.handle(make_command(valid_time_start=datetime(2024, 1, 15, 9, 30)))

        assert exc_info.value.errors == ["valid_time_start must be a timezone-aware datetime"]
        assert journal_repo.save_calls == 0
        assert balance_service.get_current_balance(TENANT_ID, ENTITY_ID, "1000").is_zero

    def test_validation_runs_before_idempotency(self, handler, make_command):
        handler.handle(make_command(idempotency_key="key-1"))
        with pytest.raises(CommandValidationError):
            handler.handle(make_command(idempotency_key="key-1", tenant_id=""))

    def test_unknown_account(self, handler, make_command, journal_repo):
        with pytest.raises(AccountNotFoundError) as exc_info:
            handler.handle(make_command(debit_account="9999"))
        assert exc_info.value.account_code == "9999"
        assert journal_repo.save_calls == 0

    def test_unknown_account_checked_before_period(self, handler, make_command):
        with pytest.raises(AccountNotFoundError):
            handler.handle(make_command(debit_account="9999", posting_date=date(2030, 1, 1)))


class TestPeriodRules:
    def test_no_period(self, handler, make_command):
        with pytest.raises(NoPeriodFoundError) as exc_info:
            handler.handle(make_command(posting_date=date(2030, 1, 1)))
        assert exc_info.value.code == "NO_PERIOD_FOUND"

    def test_no_period_even_with_override(self, handler, make_command):
        with pytest.raises(NoPeriodFoundError):
            handler.handle(make_command(posting_date=date(2030, 1, 1), permissions={OVERRIDE}))

    @pytest.mark.parametrize(
        "posting_date, status",
        [(date(2023, 12, 15), "HARD_CLOSED"), (date(2024, 2, 10), "SOFT_CLOSED")],
    )
    def test_closed_period_rejected(self, handler, make_command, posting_date, status):
        with pytest.raises(PeriodClosedError) as exc_info:
            handler.handle(make_command(posting_date=posting_date))
        assert exc_info.value.status == status
        assert exc_info.value.code == "PERIOD_CLOSED"

    def test_closed_period_with_override(self, handler, make_command, captured_logs):
        result = handler.handle(
            make_command(posting_date=date(2023, 12, 15), permissions={OVERRIDE})
        )
        assert result.is_success
        assert any(r["message"] == "closed_period_override" for r in captured_logs())

    def test_unrelated_permission_does_not_override(self, handler, make_command):
        with pytest.raises(PeriodClosedError):
            handler.handle(
                make_command(posting_date=date(2023, 12, 15), permissions={"accounting:read"})
            )


class _ExplodingEventBus:
    def publish(self, event):
        raise RuntimeError("broker unavailable")


class TestFailureHandling:
    @pytest.fixture
    def failing_handler(
        self, journal_repo, account_repo, period_repo, balance_service, idempotency_service, clock, ids, settings
    ):
        return CreateJournalEntryCommandHandler(
            journal_entries=journal_repo,
            accounts=account_repo,
            periods=period_repo,
            balances=balance_service,
            event_bus=_ExplodingEventBus(),
            idempotency=idempotency_service,
            clock=clock,
            id_generator=ids,
            settings=settings,
        )

    def test_untyped_failure_wrapped(self, failing_handler, make_command, captured_logs):
        with pytest.raises(UnexpectedPostingError) as exc_info:
            failing_handler.handle(make_command())

        assert exc_info.value.code == "UNEXPECTED_ERROR"
        assert exc_info.value.cause_type == "RuntimeError"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert any(r["message"] == "journal_entry_failed" for r in captured_logs())

    def test_failure_not_recorded_as_idempotent(
        self, failing_handler, make_command, idempotency_repo
    ):
        with pytest.raises(UnexpectedPostingError):
            failing_handler.handle(make_command(idempotency_key="key-1"))
        assert idempotency_repo.find_by_key(TENANT_ID, "key-1") is None

    def test_unit_of_work_wraps_the_write(
        self, journal_repo, account_repo, period_repo, balance_service, event_bus,
        idempotency_service, clock, ids, settings, make_command,
    ):
        calls = []

        @contextmanager
        def unit_of_work():
            calls.append("begin")
            try:
                yield
            except Exception:
                calls.append("rollback")
                raise
            calls.append("commit")

        handler = CreateJournalEntryCommandHandler(
            journal_entries=journal_repo,
            accounts=account_repo,
            periods=period_repo,
            balances=balance_service,
            event_bus=event_bus,
            idempotency=idempotency_service,
            clock=clock,
            id_generator=ids,
            unit_of_work=unit_of_work,
            settings=settings,
        )
        handler.handle(make_command())
        assert calls == ["begin", "commit"]

    def test_log_context_cleared_after_handle(self, handler, make_command):
        handler.handle(make_command())
        assert LogContext.get_all() == {}


class _FlakyEventBus:
    """Fails the first publish, then delivers."""

    def __init__(self):
        self.published = []
        self.failures = 1

    def publish(self, event):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("broker unavailable")
        self.published.append(event)


class TestRetryAfterPartialFailure:
    @pytest.fixture
    def flaky_bus(self):
        return _FlakyEventBus()

    @pytest.fixture
    def retry_handler(
        self, journal_repo, account_repo, period_repo, balance_service, flaky_bus,
        idempotency_service, audit_logger, clock, ids, settings,
    ):
        return CreateJournalEntryCommandHandler(
            journal_entries=journal_repo,
            accounts=account_repo,
            periods=period_repo,
            balances=balance_service,
            event_bus=flaky_bus,
            idempotency=idempotency_service,
            audit_logger=audit_logger,
            clock=clock,
            id_generator=ids,
            settings=settings,
        )

    def test_retry_finishes_the_saved_entry(
        self, retry_handler, make_command, flaky_bus, audit_sink, journal_repo,
        balance_service, idempotency_repo, captured_logs,
    ):
        command = make_command(idempotency_key="key-1")
        with pytest.raises(UnexpectedPostingError):
            retry_handler.handle(command)
        (saved,) = journal_repo.find_by_tenant(TENANT_ID)
        assert flaky_bus.published == []

        result = retry_handler.handle(command)

        assert result.journal_entry_id == saved.id
        assert result.was_idempotent
        (event,) = flaky_bus.published
        assert event.aggregate_id == saved.id
        (record,) = audit_sink.entries
        assert record.entity_id == saved.id
        assert idempotency_repo.find_by_key(TENANT_ID, "key-1") is not None
        assert balance_service.get_current_balance(TENANT_ID, ENTITY_ID, "1000").to_cents() == 10_000
        assert any(r["message"] == "posting_resumed" for r in captured_logs())

    def test_later_retries_replay_without_side_effects(
        self, retry_handler, make_command, flaky_bus, audit_sink, balance_service
    ):
        command = make_command(idempotency_key="key-1")
        with pytest.raises(UnexpectedPostingError):
            retry_handler.handle(command)
        first = retry_handler.handle(command)

        again = retry_handler.handle(command)

        assert again == first
        assert len(flaky_bus.published) == 1
        assert len(audit_sink.entries) == 1
        assert balance_service.get_current_balance(TENANT_ID, ENTITY_ID, "1000").to_cents() == 10_000

    def test_different_request_under_saved_key_rejected(
        self, retry_handler, make_command, flaky_bus
    ):
        with pytest.raises(UnexpectedPostingError):
            retry_handler.handle(make_command(idempotency_key="key-1"))

        with pytest.raises(DuplicateEntryError):
            retry_handler.handle(make_command(idempotency_key="key-1", amount_cents=5_000))
        assert flaky_bus.published == []
