"""
Mock 환율 프로바이더

테스트용 Mock RateProvider.
IRateProvider Protocol 준수.
"""

from decimal import Decimal
from typing import Any

from core.errors import RateProviderError


class MockRateProvider:
    """Mock 환율 프로바이더

    응답 스크립트를 순서대로 소비한다.
    스크립트 항목이 Exception이면 raise, 그 외에는 Decimal로 반환.
    스크립트가 소진되면 default 사용 (default도 없으면 실패).

    사용 예시:
    ```python
    # 항상 실패
    failing = MockRateProvider("p1", default=RateProviderError("p1", "down"))

    # 첫 시도 실패, 두 번째 성공
    flaky = MockRateProvider("p2", responses=[RateProviderError("p2", "x"), "0.041"])
    ```
    """

    def __init__(
        self,
        name: str = "mock",
        responses: list[Any] | None = None,
        default: Any = None,
    ):
        self._name = name
        self.responses = list(responses or [])
        self.default = default
        self.calls: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def convert(self, base: str, target: str) -> Decimal:
        self.calls.append((base, target))

        outcome = self.responses.pop(0) if self.responses else self.default
        if outcome is None:
            raise RateProviderError(self._name, "No scripted response")
        if isinstance(outcome, BaseException):
            raise outcome
        return Decimal(str(outcome))
