"""
Budget Guard

쓰기 전 예산 한도 검증.
상태를 갖지 않는 순수 평가기로, LedgerSyncEngine이 현재 합계를 넘겨 호출한다.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from core.errors import BudgetExceededError
from core.types import Record

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BudgetCheckResult:
    """예산 검사 결과"""

    passed: bool
    ceiling: Decimal | None
    current_total: Decimal
    attempted: Decimal
    projected_total: Decimal
    reason: str | None = None

    @property
    def remaining(self) -> Decimal | None:
        """현재 남은 예산 (한도 없으면 None)"""
        if self.ceiling is None:
            return None
        return self.ceiling - self.current_total


class BudgetGuard:
    """예산 한도 검증기

    한도(ceiling)가 설정되어 있으면 쓰기 후 합계가 한도를 넘는 쓰기를 거부.
    한도가 None이면 무제한.

    사용 예시:
    ```python
    guard = BudgetGuard()
    result = guard.evaluate(ceiling=Decimal("200"), current_total=Decimal("100"), delta=Decimal("150"))
    result.passed  # False

    guard.enforce(Decimal("200"), Decimal("100"), Decimal("50"))  # 통과 (예외 없음)
    ```
    """

    @staticmethod
    def total(records: Iterable[Record]) -> Decimal:
        """레코드 금액 합계"""
        return sum((r.amount for r in records), Decimal("0"))

    def evaluate(
        self,
        ceiling: Decimal | None,
        current_total: Decimal,
        delta: Decimal,
    ) -> BudgetCheckResult:
        """쓰기 허용 여부 평가

        Args:
            ceiling: 예산 한도 (None이면 무제한)
            current_total: 현재 합계
            delta: 쓰기로 인한 합계 증가분

        Returns:
            BudgetCheckResult
        """
        projected = current_total + delta

        if ceiling is None:
            return BudgetCheckResult(
                passed=True,
                ceiling=None,
                current_total=current_total,
                attempted=delta,
                projected_total=projected,
                reason="No ceiling configured",
            )

        # 합계를 줄이거나 유지하는 쓰기는 항상 허용 (이미 초과 상태여도)
        if delta <= 0:
            return BudgetCheckResult(
                passed=True,
                ceiling=ceiling,
                current_total=current_total,
                attempted=delta,
                projected_total=projected,
                reason="Non-increasing write",
            )

        if projected > ceiling:
            return BudgetCheckResult(
                passed=False,
                ceiling=ceiling,
                current_total=current_total,
                attempted=delta,
                projected_total=projected,
                reason=f"Projected total {projected} exceeds ceiling {ceiling}",
            )

        return BudgetCheckResult(
            passed=True,
            ceiling=ceiling,
            current_total=current_total,
            attempted=delta,
            projected_total=projected,
        )

    def enforce(
        self,
        ceiling: Decimal | None,
        current_total: Decimal,
        delta: Decimal,
    ) -> BudgetCheckResult:
        """평가 후 거부면 예외

        Raises:
            BudgetExceededError: 한도 초과
        """
        result = self.evaluate(ceiling, current_total, delta)
        if not result.passed:
            assert ceiling is not None
            logger.warning(
                "예산 한도 초과로 쓰기 거부",
                extra={
                    "ceiling": str(ceiling),
                    "current_total": str(current_total),
                    "attempted": str(delta),
                },
            )
            raise BudgetExceededError(
                ceiling=ceiling,
                current_total=current_total,
                attempted=delta,
            )
        return result
