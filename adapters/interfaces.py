"""
어댑터 인터페이스 정의

Protocol 기반으로 정의하여 의존성 주입 및 Mock 교체 가능.
모든 구현체는 이 Protocol을 준수해야 함.
"""

from decimal import Decimal
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class IKeyValueStore(Protocol):
    """로컬 Key-Value 저장소 인터페이스

    값은 불투명한 문자열. 직렬화는 호출자 책임.
    """

    async def get(self, key: str) -> str | None:
        """값 조회 (없으면 None)"""
        ...

    async def set(self, key: str, value: str) -> None:
        """값 저장 (덮어쓰기)"""
        ...

    async def remove(self, key: str) -> None:
        """키 삭제 (없으면 무시)"""
        ...

    async def remove_many(self, keys: list[str]) -> None:
        """여러 키 삭제"""
        ...

    async def all_keys(self) -> list[str]:
        """전체 키 목록"""
        ...


@runtime_checkable
class IRecordBackend(Protocol):
    """원격 레코드 저장소 인터페이스

    레코드 행은 백엔드 원본 dict 그대로 반환하며,
    정규화(Record.from_remote)는 호출자가 수행한다.
    """

    # -------------------------------------------------------------------------
    # 레코드
    # -------------------------------------------------------------------------

    async def list_records(self, owner_identity: str) -> list[dict[str, Any]]:
        """소유자의 전체 레코드 조회 (최신순)

        Raises:
            BackendError: 조회 실패 시
        """
        ...

    async def create_record(
        self,
        label: str,
        category: str,
        amount: Decimal,
    ) -> dict[str, Any] | None:
        """레코드 생성 (소유자는 인증 정보로 서버에서 결정)

        Returns:
            생성된 행 또는 None (성공했으나 응답 본문 없음)

        Raises:
            BackendError: 생성 실패 시
        """
        ...

    async def update_record(
        self,
        record_id: str,
        patch: dict[str, Any],
    ) -> dict[str, Any] | None:
        """레코드 수정

        Raises:
            InvalidRecordIdError: record_id가 원격 식별자 형식이 아님
            BackendError: 수정 실패 시
        """
        ...

    async def delete_record(self, record_id: str) -> None:
        """레코드 삭제

        Raises:
            InvalidRecordIdError: record_id가 원격 식별자 형식이 아님
            BackendError: 삭제 실패 시
        """
        ...

    async def delete_all_for_owner(self, owner_identity: str) -> None:
        """소유자의 전체 레코드 삭제"""
        ...

    # -------------------------------------------------------------------------
    # 예산 한도
    # -------------------------------------------------------------------------

    async def get_ceiling(self, owner_identity: str) -> Decimal:
        """소유자의 예산 한도 조회 (프로필 budget 필드)"""
        ...

    async def set_ceiling(self, owner_identity: str, value: Decimal) -> None:
        """소유자의 예산 한도 저장"""
        ...


@runtime_checkable
class IRateProvider(Protocol):
    """환율 프로바이더 인터페이스

    프로바이더별 요청/응답 형식은 구현체 내부에서 처리하고
    단일 Decimal 환율 또는 RateProviderError로 정규화한다.
    """

    @property
    def name(self) -> str:
        """프로바이더 이름 (로깅용)"""
        ...

    async def convert(self, base: str, target: str) -> Decimal:
        """base 1단위당 target 환율

        Raises:
            RateProviderError: 네트워크/HTTP/응답 형식 오류
        """
        ...
