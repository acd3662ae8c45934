"""
Consolidated balance sheet read path.

Responsibility:
    Resolves a parent entity and its subsidiaries, reads each entity's trial
    balance as of a date and folds the subsidiaries into the parent per
    account code with ConsolidationService, then presents the
    non-controlling interest as one synthetic equity line.

Architecture position:
    Services > Queries. Read-only: depends on the EntityRepository and
    TrialBalanceRepository ports, ConsolidationService, and an optional
    CurrencyConverter.

Invariants enforced:
    - NCI is taken only from the equity accounts of Full-method
      subsidiaries: ``(1 - effective ownership) * equity balance`` per line.
    - Reclassification moves that amount out of each equity line into the
      NCI line, so the sum of all consolidated lines is unchanged by it.
    - When subsidiaries are discovered recursively, effective ownership is
      the product of ownership fractions along the chain; each descendant
      is consolidated by its own method. Cycles in the parent chain are
      visited once.
    - An explicit subsidiary list is consolidated as given, without
      descending further.

Failure modes:
    - EntityNotFoundError for an unknown parent or listed subsidiary.
    - CurrencyMismatchError when a subsidiary reports in another currency
      and no CurrencyConverter is wired.
    - ConversionRateUnavailableError from the converter.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal

from ledger_config import LedgerSettings, get_active_settings
from ledger_kernel.domain.account import AccountType
from ledger_kernel.domain.currency import Currency
from ledger_kernel.domain.entity import ConsolidationMethod, Entity
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import CurrencyMismatchError, EntityNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.ports import CurrencyConverter, EntityRepository, TrialBalanceRepository
from ledger_kernel.services.consolidation_service import ConsolidationService

logger = get_logger("services.consolidated_balance_sheet")


@dataclass(frozen=True)
class GetConsolidatedBalanceSheetQuery:
    tenant_id: str
    parent_entity_id: str
    as_of_date: date
    subsidiary_entity_ids: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        if self.subsidiary_entity_ids is not None:
            object.__setattr__(self, "subsidiary_entity_ids", tuple(self.subsidiary_entity_ids))


@dataclass(frozen=True)
class ConsolidatedLine:
    """One consolidated account. ``amount`` is debit-positive."""

    account_code: str
    account_name: str
    account_type: AccountType
    amount: Money

    @property
    def amount_cents(self) -> int:
        return self.amount.amount_minor_units


@dataclass(frozen=True)
class ConsolidatedEntity:
    """A consolidated entity with the ownership actually applied."""

    entity_id: str
    consolidation_method: ConsolidationMethod
    effective_ownership_percentage: Decimal


@dataclass(frozen=True)
class ConsolidatedBalanceSheet:
    tenant_id: str
    parent_entity_id: str
    as_of_date: date
    currency: Currency
    lines: tuple[ConsolidatedLine, ...]
    total_nci_cents: int
    subsidiaries: tuple[ConsolidatedEntity, ...]

    @property
    def total_cents(self) -> int:
        return sum(line.amount_cents for line in self.lines)

    def total_for(self, account_type: AccountType) -> int:
        return sum(line.amount_cents for line in self.lines if line.account_type is account_type)

    def line_for(self, account_code: str) -> ConsolidatedLine | None:
        for line in self.lines:
            if line.account_code == account_code:
                return line
        return None


class GetConsolidatedBalanceSheetQueryHandler:
    def __init__(
        self,
        entities: EntityRepository,
        trial_balances: TrialBalanceRepository,
        consolidation: ConsolidationService | None = None,
        currency_converter: CurrencyConverter | None = None,
        settings: LedgerSettings | None = None,
    ):
        self._entities = entities
        self._trial_balances = trial_balances
        self._consolidation = consolidation or ConsolidationService()
        self._converter = currency_converter
        self._settings = settings or get_active_settings()

    def execute(self, query: GetConsolidatedBalanceSheetQuery) -> ConsolidatedBalanceSheet:
        tenant_id = query.tenant_id
        parent = self._entities.find_by_id(tenant_id, query.parent_entity_id)
        if parent is None:
            raise EntityNotFoundError(query.parent_entity_id)
        currency = parent.currency

        amounts: dict[str, Money] = {}
        meta: dict[str, tuple[str, AccountType]] = {}
        nci_by_code: dict[str, Money] = {}

        for balance in self._trial_balances.get_trial_balance(
            tenant_id, parent.id, query.as_of_date
        ):
            code = balance.account_code
            meta.setdefault(code, (balance.account_name, balance.account_type))
            amount = self._in_currency(balance.balance, currency, query.as_of_date)
            amounts[code] = amounts.get(code, Money.zero(currency)).add(amount)

        subsidiaries = list(self._resolve_subsidiaries(query, parent))
        for subsidiary in subsidiaries:
            for balance in self._trial_balances.get_trial_balance(
                tenant_id, subsidiary.id, query.as_of_date
            ):
                code = balance.account_code
                meta.setdefault(code, (balance.account_name, balance.account_type))
                amount = self._in_currency(balance.balance, currency, query.as_of_date)
                folded = self._consolidation.consolidate(
                    amounts.get(code, Money.zero(currency)), amount, subsidiary
                )
                amounts[code] = folded.consolidated
                if balance.account_type is AccountType.EQUITY and not folded.nci.is_zero:
                    nci_by_code[code] = nci_by_code.get(code, Money.zero(currency)).add(
                        folded.nci
                    )

        # Reclassify NCI out of each equity line into one synthetic line.
        nci_total = Money.zero(currency)
        for code, nci in nci_by_code.items():
            amounts[code] = amounts[code].add(nci.negate())
            nci_total = nci_total.add(nci)

        lines = [
            ConsolidatedLine(code, meta[code][0], meta[code][1], amount)
            for code, amount in sorted(amounts.items())
            if not amount.is_zero
        ]
        if not nci_total.is_zero:
            lines.append(
                ConsolidatedLine(
                    self._settings.nci_account_code,
                    self._settings.nci_account_name,
                    AccountType.EQUITY,
                    nci_total,
                )
            )

        sheet = ConsolidatedBalanceSheet(
            tenant_id=tenant_id,
            parent_entity_id=parent.id,
            as_of_date=query.as_of_date,
            currency=currency,
            lines=tuple(lines),
            # Equity is credit-normal: a negative signed NCI is a positive interest.
            total_nci_cents=-nci_total.amount_minor_units,
            subsidiaries=tuple(
                ConsolidatedEntity(s.id, s.consolidation_method, s.ownership_percentage)
                for s in subsidiaries
            ),
        )
        logger.info(
            "consolidated_balance_sheet_built",
            extra={
                "tenant_id": tenant_id,
                "parent_entity_id": parent.id,
                "as_of_date": query.as_of_date.isoformat(),
                "subsidiary_count": len(subsidiaries),
                "line_count": len(lines),
                "total_nci_cents": sheet.total_nci_cents,
            },
        )
        return sheet

    def _resolve_subsidiaries(
        self, query: GetConsolidatedBalanceSheetQuery, parent: Entity
    ) -> Iterator[Entity]:
        if query.subsidiary_entity_ids is not None:
            for entity_id in query.subsidiary_entity_ids:
                entity = self._entities.find_by_id(query.tenant_id, entity_id)
                if entity is None:
                    raise EntityNotFoundError(entity_id)
                yield entity
            return
        yield from self._descendants(query.tenant_id, parent, Decimal(1), {parent.id})

    def _descendants(
        self, tenant_id: str, node: Entity, factor: Decimal, visited: set[str]
    ) -> Iterator[Entity]:
        children: Sequence[Entity] = self._entities.find_subsidiaries(tenant_id, node.id)
        for child in children:
            if child.id in visited:
                logger.warning(
                    "entity_cycle_skipped",
                    extra={"parent_entity_id": node.id, "child_entity_id": child.id},
                )
                continue
            visited.add(child.id)
            effective = child.ownership_percentage * factor
            yield replace(child, ownership_percentage=effective)
            yield from self._descendants(
                tenant_id, child, factor * child.ownership_fraction, visited
            )

    def _in_currency(self, amount: Money, currency: Currency, as_of: date) -> Money:
        if amount.currency is currency:
            return amount
        if amount.is_zero:
            return Money.zero(currency)
        if self._converter is None:
            raise CurrencyMismatchError(amount.currency.value, currency.value, "consolidate")
        return self._converter.convert(amount, currency, as_of)
