"""
Ledger 모듈

identity별 가계부 레코드 동기화와 예산 한도 검증
"""

from wallet.ledger.budget_guard import BudgetGuard, BudgetCheckResult
from wallet.ledger.sync_engine import LedgerSyncEngine

__all__ = [
    "BudgetGuard",
    "BudgetCheckResult",
    "LedgerSyncEngine",
]
