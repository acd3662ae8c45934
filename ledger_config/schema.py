"""
LedgerSettings schema.

The runtime configuration of the posting and reporting services. Parsed
from YAML by ``ledger_config.loader`` and handed out by
``ledger_config.get_active_settings()``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ledger_kernel.domain.currency import Currency


@dataclass(frozen=True)
class LedgerSettings:
    """Frozen, validated ledger settings."""

    default_currency: Currency = Currency.USD
    idempotency_ttl_hours: int = 24
    closed_period_override_permission: str = "accounting:post_to_closed_period"
    closing_source_module: str = "PERIOD_CLOSE"
    closing_document_type: str = "CLOSING_ENTRY"
    elimination_source_module: str = "CONSOLIDATION"
    nci_account_code: str = "NCI"
    nci_account_name: str = "Non-controlling interest"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        object.__setattr__(self, "default_currency", Currency.parse(self.default_currency))
        if isinstance(self.idempotency_ttl_hours, bool) or not isinstance(
            self.idempotency_ttl_hours, int
        ):
            raise ValueError("idempotency_ttl_hours must be an integer")
        if self.idempotency_ttl_hours <= 0:
            raise ValueError("idempotency_ttl_hours must be positive")
        for name in (
            "closed_period_override_permission",
            "closing_source_module",
            "closing_document_type",
            "elimination_source_module",
            "nci_account_code",
        ):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} must be a non-empty string")
        level = str(self.log_level).upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log_level: {self.log_level}")
        object.__setattr__(self, "log_level", level)
