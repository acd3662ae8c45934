"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Posting callers must be able to tell "the period is closed, pick another date"
apart from "the request replayed a different payload under a reused key"
without parsing message strings. Every error therefore:
  1. Has its own exception class (catch by type, not message)
  2. Carries a CODE attribute (machine-readable, API-safe)
  3. Stores its diagnostic data as attributes (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    GeneralLedgerError (base)
    |
    +-- MoneyError
    |   +-- CurrencyMismatchError
    |   +-- NegativeAmountError
    |   +-- MoneyOverflowError
    |   +-- InvalidCurrencyError
    |
    +-- JournalEntryError              (code may be overridden per instance)
    |   +-- JournalEntryValidationError
    |   +-- CommandValidationError
    |   +-- UnbalancedEntryError
    |   +-- AccountNotFoundError
    |   +-- PeriodClosedError
    |   +-- NoPeriodFoundError
    |   +-- DuplicateEntryError
    |   +-- UnexpectedPostingError
    |
    +-- LedgerError
    |   +-- UnbalancedLedgerError
    |   +-- NothingToCloseError
    |
    +-- ConversionRateUnavailableError
    +-- EntityNotFoundError
    +-- IdempotencyKeyConflictError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|----------------------------------
Money        | CURRENCY_MISMATCH             | Binary op across currencies
             | NEGATIVE_AMOUNT               | Negative input / negative result
             | MONEY_OVERFLOW                | Outside signed 64-bit minor units
             | INVALID_CURRENCY              | Unsupported currency code
-------------|-------------------------------|----------------------------------
Journal      | INVALID_JOURNAL_ENTRY         | Structural entry violation
             | COMMAND_VALIDATION_FAILED     | Posting command fails validation
             | UNBALANCED_ENTRY              | Debits != credits at construction
             | ACCOUNT_NOT_FOUND             | Account code absent for tenant
             | PERIOD_CLOSED                 | Closed period, no override
             | NO_PERIOD_FOUND               | No period covers the date
             | DUPLICATE_ENTRY               | Key reused with another payload
             | UNEXPECTED_ERROR              | Untyped failure while posting
-------------|-------------------------------|----------------------------------
Ledger       | UNBALANCED_LEDGER             | Trial balance columns differ
             | NOTHING_TO_CLOSE              | No revenue/expense balances
-------------|-------------------------------|----------------------------------
Currency     | CONVERSION_RATE_UNAVAILABLE   | No rate for pair/date
Entity       | ENTITY_NOT_FOUND              | Entity id absent for tenant
Idempotency  | IDEMPOTENCY_KEY_CONFLICT      | Store rejected duplicate key
"""

from __future__ import annotations

from typing import Any


class GeneralLedgerError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "GENERAL_LEDGER_ERROR"


# Money


class MoneyError(GeneralLedgerError):
    """Base exception for monetary value errors."""

    code: str = "MONEY_ERROR"


class CurrencyMismatchError(MoneyError):
    """Operation combined amounts in different currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, left: str, right: str, operation: str = "combine"):
        self.left = left
        self.right = right
        self.operation = operation
        super().__init__(f"Cannot {operation} {left} with {right}")


class NegativeAmountError(MoneyError):
    """An amount that must be non-negative was negative."""

    code: str = "NEGATIVE_AMOUNT"

    def __init__(self, amount: str, currency: str, reason: str = "amount cannot be negative"):
        self.amount = amount
        self.currency = currency
        self.reason = reason
        super().__init__(f"{reason}: {amount} {currency}")


class MoneyOverflowError(MoneyError):
    """Minor-unit amount does not fit a signed 64-bit integer."""

    code: str = "MONEY_OVERFLOW"

    def __init__(self, amount_minor_units: int):
        self.amount_minor_units = amount_minor_units
        super().__init__(
            f"Amount out of signed 64-bit range: {amount_minor_units} minor units"
        )


class InvalidCurrencyError(MoneyError):
    """Currency code is not supported."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency_code: str):
        self.currency_code = currency_code
        super().__init__(f"Unsupported currency code: {currency_code!r}")


# Journal entries and posting


class JournalEntryError(GeneralLedgerError):
    """
    Base exception for journal entry and posting errors.

    Unlike most kernel errors, the code can be overridden per instance so a
    boundary can raise ``JournalEntryError(..., code="NO_PERIOD_FOUND")``
    without a dedicated subclass.
    """

    code: str = "JOURNAL_ENTRY_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        if code is not None:
            self.code = code
        self.details = details or {}
        super().__init__(message)


class JournalEntryValidationError(JournalEntryError):
    """Journal entry or line violates a structural rule."""

    code: str = "INVALID_JOURNAL_ENTRY"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message, details={"field": field} if field else None)


class CommandValidationError(JournalEntryError):
    """Posting command failed structural validation."""

    code: str = "COMMAND_VALIDATION_FAILED"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(
            "Command validation failed: " + "; ".join(self.errors),
            details={"errors": self.errors},
        )


class UnbalancedEntryError(JournalEntryError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: int, credits: int, currency: str):
        self.debits = debits
        self.credits = credits
        self.currency = currency
        super().__init__(
            f"Unbalanced entry in {currency}: debits={debits}, credits={credits}",
            details={"debits": debits, "credits": credits, "currency": currency},
        )


class AccountNotFoundError(JournalEntryError):
    """Referenced account code does not exist for the tenant."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_code: str, tenant_id: str | None = None):
        self.account_code = account_code
        self.tenant_id = tenant_id
        super().__init__(
            f"Account not found: {account_code}",
            details={"account_code": account_code},
        )


class PeriodClosedError(JournalEntryError):
    """Posting date falls in a closed period and no override was granted."""

    code: str = "PERIOD_CLOSED"

    def __init__(self, period_name: str, posting_date: str, status: str):
        self.period_name = period_name
        self.posting_date = posting_date
        self.status = status
        super().__init__(
            f"Period {period_name} is {status}; cannot post on {posting_date}",
            details={"period_name": period_name, "status": status},
        )


class NoPeriodFoundError(JournalEntryError):
    """No accounting period covers the posting date."""

    code: str = "NO_PERIOD_FOUND"

    def __init__(self, posting_date: str, tenant_id: str | None = None):
        self.posting_date = posting_date
        self.tenant_id = tenant_id
        super().__init__(
            f"No accounting period found for date {posting_date}",
            details={"posting_date": posting_date},
        )


class DuplicateEntryError(JournalEntryError):
    """Idempotency key was reused with a different request payload."""

    code: str = "DUPLICATE_ENTRY"

    def __init__(self, idempotency_key: str, tenant_id: str | None = None):
        self.idempotency_key = idempotency_key
        self.tenant_id = tenant_id
        super().__init__(
            f"Idempotency key {idempotency_key!r} was already used for a different request",
            details={"idempotency_key": idempotency_key},
        )


class UnexpectedPostingError(JournalEntryError):
    """Untyped failure raised while posting, wrapped at the handler boundary."""

    code: str = "UNEXPECTED_ERROR"

    def __init__(self, cause: BaseException):
        self.cause_type = type(cause).__name__
        super().__init__(
            f"Unexpected error while posting journal entry: {cause}",
            details={"cause_type": self.cause_type},
        )


# Ledger reporting


class LedgerError(GeneralLedgerError):
    """Base exception for ledger-wide reporting errors."""

    code: str = "LEDGER_ERROR"


class UnbalancedLedgerError(LedgerError):
    """Trial balance debit and credit columns do not total equally."""

    code: str = "UNBALANCED_LEDGER"

    def __init__(self, total_debit_cents: int, total_credit_cents: int):
        self.total_debit_cents = total_debit_cents
        self.total_credit_cents = total_credit_cents
        super().__init__(
            f"Trial balance is out of balance: debits={total_debit_cents}, "
            f"credits={total_credit_cents}"
        )


class NothingToCloseError(LedgerError):
    """Period has no revenue or expense balances to close."""

    code: str = "NOTHING_TO_CLOSE"

    def __init__(self, entity_id: str, period_end_date: str):
        self.entity_id = entity_id
        self.period_end_date = period_end_date
        super().__init__(
            f"No revenue or expense balances to close for entity {entity_id} "
            f"as of {period_end_date}"
        )


class ConversionRateUnavailableError(GeneralLedgerError):
    """No conversion rate is available for a currency pair on a date."""

    code: str = "CONVERSION_RATE_UNAVAILABLE"

    def __init__(self, from_currency: str, to_currency: str, as_of: str):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.as_of = as_of
        super().__init__(
            f"No conversion rate from {from_currency} to {to_currency} as of {as_of}"
        )


class EntityNotFoundError(GeneralLedgerError):
    """Entity does not exist for the tenant."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"Entity not found: {entity_id}")


class IdempotencyKeyConflictError(GeneralLedgerError):
    """Store rejected a second insert for the same (tenant, idempotency key)."""

    code: str = "IDEMPOTENCY_KEY_CONFLICT"

    def __init__(self, tenant_id: str, idempotency_key: str):
        self.tenant_id = tenant_id
        self.idempotency_key = idempotency_key
        super().__init__(
            f"Idempotency key {idempotency_key!r} already recorded for tenant {tenant_id}"
        )
