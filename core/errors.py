"""
예외 정의

두 갈래로 나뉜다.
- ValidationError: 입력/불변식 위반. I/O 전에 동기적으로 발생하며 작업 자체를 막는다.
- RemoteError: 백엔드/환율 프로바이더 실패. 쓰기 작업에서는 로컬 효과만 남기고 흡수된다.
"""

from decimal import Decimal


class ValidationError(Exception):
    """입력 검증 실패"""

    pass


class InvalidAmountError(ValidationError):
    """금액이 유한한 양수(또는 0 이상)가 아님"""

    def __init__(self, value: object, message: str = "Invalid amount"):
        self.value = value
        super().__init__(f"{message}: {value!r}")


class BudgetExceededError(ValidationError):
    """예산 한도 초과

    쓰기 결과 합계가 한도를 넘으면 상태 변경 없이 거부.
    remaining은 현재 남은 예산 (음수 가능).
    """

    def __init__(
        self,
        ceiling: Decimal,
        current_total: Decimal,
        attempted: Decimal,
    ):
        self.ceiling = ceiling
        self.current_total = current_total
        self.attempted = attempted
        self.remaining = ceiling - current_total
        super().__init__(
            f"Amount {attempted} exceeds remaining budget {self.remaining} "
            f"(ceiling={ceiling}, total={current_total})"
        )


class InvalidRecordIdError(ValidationError):
    """원격 작업에 사용할 수 없는 레코드 ID"""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Record id is not a remote identifier: {record_id!r}")


class InvalidCurrencyError(ValidationError):
    """통화 코드 형식 오류"""

    def __init__(self, code: object):
        self.code = code
        super().__init__(f"Invalid currency code: {code!r}")


class RemoteError(Exception):
    """원격 호출 실패 공통 베이스"""

    pass


class BackendError(RemoteError):
    """RecordBackend 호출 실패

    HTTP 에러, 네트워크 에러, 응답 파싱 실패를 모두 포함.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
    ):
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class RateProviderError(RemoteError):
    """환율 프로바이더 1회 호출 실패"""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class RateResolutionError(RemoteError):
    """환율 확보 실패

    캐시가 전혀 없고 모든 프로바이더가 실패한 경우에만 발생.
    """

    def __init__(self, base: str, target: str, errors: list[Exception] | None = None):
        self.base = base
        self.target = target
        self.errors = errors or []
        super().__init__(f"Could not get exchange rate {base}->{target}")
