"""
Tests for the consolidated balance sheet query.

Verifies:
- Full subsidiaries fold in at 100% with NCI reclassified out of equity
- Proportional subsidiaries fold in at their ownership share
- Recursive discovery compounds ownership along the chain
- Explicit subsidiary lists, cycles, unknown entities and currencies
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.adapters.fx import StaticRateCurrencyConverter
from ledger_kernel.adapters.memory import InMemoryEntityRepository
from ledger_kernel.domain.account import AccountType
from ledger_kernel.domain.currency import Currency
from ledger_kernel.domain.dtos import AccountBalance
from ledger_kernel.domain.entity import ConsolidationMethod, Entity
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import CurrencyMismatchError, EntityNotFoundError
from ledger_kernel.ports import TrialBalanceRepository
from ledger_services.consolidated_balance_sheet import (
    GetConsolidatedBalanceSheetQuery,
    GetConsolidatedBalanceSheetQueryHandler,
)

TENANT = "tenant-1"
AS_OF = date(2024, 1, 31)

ACCOUNTS = {
    "1000": ("Cash", AccountType.ASSET),
    "2000": ("Accounts Payable", AccountType.LIABILITY),
    "3000": ("Common Stock", AccountType.EQUITY),
}


class EntityTrialBalances(TrialBalanceRepository):
    """Fixed signed balances per entity, keyed by account code."""

    def __init__(self, by_entity):
        self._by_entity = by_entity

    def get_trial_balance(self, tenant_id, entity_id, as_of):
        rows = []
        for code, (cents, currency) in sorted(self._by_entity.get(entity_id, {}).items()):
            money = Money.from_cents(abs(cents), currency)
            name, account_type = ACCOUNTS[code]
            rows.append(
                AccountBalance(code, name, account_type, money.negate() if cents < 0 else money)
            )
        return rows


def usd(cents):
    return (cents, "USD")


def entity(entity_id, parent=None, pct="100", method=ConsolidationMethod.FULL, currency="USD"):
    return Entity(
        id=entity_id,
        tenant_id=TENANT,
        name=entity_id.title(),
        ownership_percentage=Decimal(pct),
        consolidation_method=method,
        currency=currency,
        parent_entity_id=parent,
    )


def run(entities, balances, converter=None, settings=None, **query_fields):
    handler = GetConsolidatedBalanceSheetQueryHandler(
        InMemoryEntityRepository(entities),
        EntityTrialBalances(balances),
        currency_converter=converter,
        settings=settings,
    )
    query = GetConsolidatedBalanceSheetQuery(TENANT, "parent", AS_OF, **query_fields)
    return handler.execute(query)


class TestFullConsolidation:
    @pytest.fixture
    def sheet(self, settings):
        return run(
            [entity("parent"), entity("sub", parent="parent", pct="80")],
            {
                "parent": {},
                "sub": {"1000": usd(100_000), "3000": usd(-100_000)},
            },
            settings=settings,
        )

    def test_assets_fold_in_at_full_value(self, sheet):
        assert sheet.line_for("1000").amount_cents == 100_000

    def test_nci_reclassified_out_of_equity(self, sheet, settings):
        assert sheet.total_nci_cents == 20_000
        assert sheet.line_for("3000").amount_cents == -80_000
        nci = sheet.line_for(settings.nci_account_code)
        assert nci.amount_cents == -20_000
        assert nci.account_type is AccountType.EQUITY
        assert sheet.lines[-1] is nci

    def test_lines_still_sum_to_zero(self, sheet):
        assert sheet.total_cents == 0
        assert sheet.total_for(AccountType.ASSET) == -sheet.total_for(AccountType.EQUITY)

    def test_subsidiaries_reported(self, sheet):
        (sub,) = sheet.subsidiaries
        assert sub.entity_id == "sub"
        assert sub.effective_ownership_percentage == Decimal("80")
        assert sheet.currency is Currency.USD

    def test_wholly_owned_has_no_nci_line(self, settings):
        sheet = run(
            [entity("parent"), entity("sub", parent="parent")],
            {"sub": {"1000": usd(500), "3000": usd(-500)}},
            settings=settings,
        )
        assert sheet.total_nci_cents == 0
        assert sheet.line_for(settings.nci_account_code) is None

    def test_parent_and_subsidiary_added(self):
        sheet = run(
            [entity("parent"), entity("sub", parent="parent", pct="80")],
            {
                "parent": {"1000": usd(5_000), "2000": usd(-5_000)},
                "sub": {"1000": usd(1_000), "2000": usd(-1_000)},
            },
        )
        assert sheet.line_for("1000").amount_cents == 6_000
        assert sheet.line_for("2000").amount_cents == -6_000
        assert sheet.total_nci_cents == 0


class TestOtherMethods:
    @pytest.mark.parametrize(
        "method", [ConsolidationMethod.PROPORTIONAL, ConsolidationMethod.EQUITY]
    )
    def test_share_only(self, method):
        sheet = run(
            [entity("parent"), entity("sub", parent="parent", pct="60", method=method)],
            {"sub": {"1000": usd(10_000), "3000": usd(-10_000)}},
        )
        assert sheet.line_for("1000").amount_cents == 6_000
        assert sheet.line_for("3000").amount_cents == -6_000
        assert sheet.total_nci_cents == 0


class TestSubsidiaryResolution:
    def test_recursive_effective_ownership(self):
        sheet = run(
            [
                entity("parent"),
                entity("mid", parent="parent", pct="80"),
                entity("leaf", parent="mid", pct="50"),
            ],
            {"leaf": {"1000": usd(10_000), "3000": usd(-10_000)}},
        )
        effective = {s.entity_id: s.effective_ownership_percentage for s in sheet.subsidiaries}
        assert effective == {"mid": Decimal("80"), "leaf": Decimal("40")}
        # 60% of the leaf's equity belongs to outside holders.
        assert sheet.total_nci_cents == 6_000
        assert sheet.line_for("3000").amount_cents == -4_000

    def test_explicit_list_does_not_recurse(self):
        sheet = run(
            [
                entity("parent"),
                entity("mid", parent="parent", pct="80"),
                entity("leaf", parent="mid", pct="50"),
            ],
            {"mid": {"1000": usd(100)}, "leaf": {"1000": usd(10_000)}},
            subsidiary_entity_ids=["mid"],
        )
        assert [s.entity_id for s in sheet.subsidiaries] == ["mid"]
        assert sheet.line_for("1000").amount_cents == 100

    def test_explicit_empty_list_is_parent_only(self):
        sheet = run(
            [entity("parent"), entity("sub", parent="parent")],
            {"parent": {"1000": usd(1)}, "sub": {"1000": usd(99)}},
            subsidiary_entity_ids=[],
        )
        assert sheet.subsidiaries == ()
        assert sheet.line_for("1000").amount_cents == 1

    def test_cycle_visited_once(self, captured_logs):
        sheet = run(
            [entity("parent", parent="sub"), entity("sub", parent="parent")],
            {"sub": {"1000": usd(10)}},
        )
        assert [s.entity_id for s in sheet.subsidiaries] == ["sub"]
        assert any(r["message"] == "entity_cycle_skipped" for r in captured_logs())

    def test_unknown_parent(self):
        with pytest.raises(EntityNotFoundError) as exc_info:
            run([], {})
        assert exc_info.value.entity_id == "parent"

    def test_unknown_listed_subsidiary(self):
        with pytest.raises(EntityNotFoundError):
            run([entity("parent")], {}, subsidiary_entity_ids=["ghost"])


class TestCurrencies:
    def test_foreign_subsidiary_needs_converter(self):
        with pytest.raises(CurrencyMismatchError):
            run(
                [entity("parent"), entity("sub", parent="parent", currency="EUR")],
                {"sub": {"1000": (1_000, "EUR")}},
            )

    def test_foreign_subsidiary_converted(self):
        converter = StaticRateCurrencyConverter({(Currency.EUR, Currency.USD): Decimal("1.10")})
        sheet = run(
            [entity("parent"), entity("sub", parent="parent", currency="EUR")],
            {"sub": {"1000": (1_000, "EUR"), "3000": (-1_000, "EUR")}},
            converter=converter,
        )
        assert sheet.line_for("1000").amount == Money.from_cents(1_100, "USD")
