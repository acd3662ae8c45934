"""
Kernel services: the ledger's arithmetic and bitemporal bookkeeping.

Each service receives its collaborators (ports, Clock, IdGenerator) through
its constructor and holds no other state.
"""

from ledger_kernel.services.consolidation_service import (
    ConsolidationService,
    FullConsolidationResult,
)
from ledger_kernel.services.elimination_service import EliminationService
from ledger_kernel.services.financial_statement_service import (
    BalanceSheetReport,
    FinancialStatementService,
    ProfitAndLossReport,
)
from ledger_kernel.services.temporal_balance_service import (
    AppliedDelta,
    TemporalBalanceService,
)
from ledger_kernel.services.trial_balance_service import (
    TrialBalanceDataLine,
    TrialBalanceReport,
    TrialBalanceService,
)

__all__ = [
    "AppliedDelta",
    "BalanceSheetReport",
    "ConsolidationService",
    "EliminationService",
    "FinancialStatementService",
    "FullConsolidationResult",
    "ProfitAndLossReport",
    "TemporalBalanceService",
    "TrialBalanceDataLine",
    "TrialBalanceReport",
    "TrialBalanceService",
]
