"""
Ledger Kernel - multi-tenant general ledger core.

A double-entry accounting engine with:
- Exact integer minor-unit money
- Self-validating journal entries
- Bitemporal (valid time / transaction time) balance history
- Multi-entity consolidation with non-controlling interest
- Trial balance, closing and intercompany elimination workflows
"""

__version__ = "0.1.0"
