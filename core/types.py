"""
타입 정의 모듈

Enum, Dataclass 등 핵심 타입 정의
모든 Enum은 str을 상속하여 문자열 직렬화 가능
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from core.constants import Defaults, StorageNamespaces
from core.utils.money import to_decimal
from core.utils.timezone import now_utc, parse_iso


class LedgerOperation(str, Enum):
    """LedgerSyncEngine 작업 종류"""

    INITIALIZE = "initialize"
    REFRESH = "refresh"
    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"
    SET_CEILING = "set_ceiling"
    CLEAR_ALL = "clear_all"


@dataclass(frozen=True)
class Record:
    """가계부 레코드 (지출 1건)

    Attributes:
        id: 로컬 식별자 또는 원격 식별자(UUID)
        label: 제목 (빈 문자열 허용)
        category: 카테고리 (없으면 기본 카테고리)
        amount: 금액 (양수)
        occurred_at: 발생 시각 (UTC)
        owner_identity: 소유자 identity
        created_at: 원격 생성 시각 (원격 확정 전에는 None)
    """

    id: str
    label: str
    category: str
    amount: Decimal
    occurred_at: datetime
    owner_identity: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_remote(cls, row: dict[str, Any], owner_identity: str | None = None) -> "Record":
        """원격 행을 Record로 정규화

        누락 필드 기본값:
        - title → ""
        - category → 기본 카테고리
        - date → created_at → 현재 시각
        """
        created_at = parse_iso(row.get("created_at"))
        occurred_at = parse_iso(row.get("date")) or created_at or now_utc()

        return cls(
            id=str(row["id"]),
            label=str(row.get("title") or ""),
            category=str(row.get("category") or Defaults.CATEGORY),
            amount=to_decimal(row.get("amount")) or Decimal("0"),
            occurred_at=occurred_at,
            owner_identity=row.get("owner_id") or owner_identity,
            created_at=created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """로컬 저장용 JSON 호환 dict"""
        return {
            "id": self.id,
            "label": self.label,
            "category": self.category,
            "amount": str(self.amount),
            "occurred_at": self.occurred_at.isoformat(),
            "owner_identity": self.owner_identity,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Record":
        """로컬 저장 dict에서 복원

        Raises:
            KeyError, ValueError: 필수 필드 누락 또는 금액/시각 형식 오류
        """
        amount = to_decimal(data["amount"])
        if amount is None:
            raise ValueError(f"Invalid persisted amount: {data['amount']!r}")

        occurred_at = parse_iso(data.get("occurred_at"))
        if occurred_at is None:
            raise ValueError(f"Invalid persisted occurred_at: {data.get('occurred_at')!r}")

        return cls(
            id=str(data["id"]),
            label=str(data.get("label") or ""),
            category=str(data.get("category") or Defaults.CATEGORY),
            amount=amount,
            occurred_at=occurred_at,
            owner_identity=data.get("owner_identity"),
            created_at=parse_iso(data.get("created_at")),
        )


@dataclass(frozen=True)
class RecordDraft:
    """새 레코드 입력값 (검증 전)

    amount는 문자열/숫자 모두 허용. 검증은 LedgerSyncEngine.add()에서 수행.
    """

    amount: Any
    label: str | None = None
    category: str | None = None
    occurred_at: datetime | None = None


@dataclass(frozen=True)
class RecordPatch:
    """레코드 부분 수정값 (None 필드는 변경 없음)"""

    label: str | None = None
    category: str | None = None
    amount: Any = None
    occurred_at: datetime | None = None

    def is_empty(self) -> bool:
        return (
            self.label is None
            and self.category is None
            and self.amount is None
            and self.occurred_at is None
        )

    def to_remote(self) -> dict[str, Any]:
        """원격 update 페이로드 (변경 필드만)"""
        payload: dict[str, Any] = {}
        if self.label is not None:
            payload["title"] = self.label.strip()
        if self.category is not None:
            payload["category"] = self.category
        if self.amount is not None:
            payload["amount"] = str(self.amount)
        if self.occurred_at is not None:
            payload["date"] = self.occurred_at.isoformat()
        return payload


@dataclass(frozen=True)
class StorageKey:
    """identity 단위로 분할된 저장소 키

    "<namespace>_<identity|anon>" 으로 결정적으로 매핑.
    네임스페이스에 구분자가 없으므로 서로 다른 네임스페이스 키는 충돌하지 않는다.
    """

    namespace: str
    identity: str | None = None

    def __post_init__(self) -> None:
        if not self.namespace or StorageNamespaces.SEPARATOR in self.namespace:
            raise ValueError(f"Invalid storage namespace: {self.namespace!r}")

    def to_storage_key(self) -> str:
        owner = self.identity or StorageNamespaces.ANONYMOUS
        return f"{self.namespace}{StorageNamespaces.SEPARATOR}{owner}"

    def __str__(self) -> str:
        return self.to_storage_key()


@dataclass(frozen=True)
class RateCacheKey:
    """환율 캐시 키 ("<rate_ns>_<BASE>_<TARGET>")"""

    base: str
    target: str

    def to_storage_key(self) -> str:
        sep = StorageNamespaces.SEPARATOR
        return f"{StorageNamespaces.RATE}{sep}{self.base.upper()}{sep}{self.target.upper()}"

    @staticmethod
    def prefix() -> str:
        """환율 캐시 전체 키 접두사"""
        return f"{StorageNamespaces.RATE}{StorageNamespaces.SEPARATOR}"

    def __str__(self) -> str:
        return self.to_storage_key()


@dataclass(frozen=True)
class RateQuote:
    """캐시된 환율

    Attributes:
        base: 기준 통화
        target: 대상 통화
        rate: 환율 (base 1단위 = target rate 단위)
        fetched_at: 조회 시각 (UTC)
        stale: TTL 만료 캐시에서 반환된 값인지 여부
    """

    base: str
    target: str
    rate: Decimal
    fetched_at: datetime
    stale: bool = False

    def age_seconds(self, now: datetime) -> float:
        return (now - self.fetched_at).total_seconds()

    def is_fresh(self, now: datetime, ttl_seconds: float) -> bool:
        return self.age_seconds(now) < ttl_seconds

    def to_json(self) -> str:
        return json.dumps(
            {
                "base": self.base,
                "target": self.target,
                "rate": str(self.rate),
                "timestamp": self.fetched_at.isoformat(),
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "RateQuote":
        """캐시 문자열에서 복원

        Raises:
            ValueError: JSON 형식 오류, 환율이 유한한 양수가 아님, timestamp 누락
        """
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("Rate cache entry is not an object")

        rate = to_decimal(data.get("rate"))
        if rate is None or rate <= 0:
            raise ValueError(f"Invalid cached rate: {data.get('rate')!r}")

        fetched_at = parse_iso(data.get("timestamp") or data.get("fetchedAt"))
        if fetched_at is None:
            raise ValueError("Rate cache entry has no timestamp")

        return cls(
            base=str(data.get("base", "")).upper(),
            target=str(data.get("target", "")).upper(),
            rate=rate,
            fetched_at=fetched_at,
        )


@dataclass
class SyncOutcome:
    """LedgerSyncEngine 작업 결과

    원격 실패는 예외가 아닌 이 결과로 전달된다.

    Attributes:
        operation: 작업 종류
        remote_ok: 원격 효과까지 반영되었는지 여부
        skipped_remote: 원격 호출을 의도적으로 생략했는지 (로컬 ID, identity 없음 등)
        error: 원격 실패 원인
        record: 작업 대상 레코드 (있으면)
    """

    operation: LedgerOperation
    remote_ok: bool = False
    skipped_remote: bool = False
    error: Exception | None = None
    record: Record | None = None

    @property
    def local_only(self) -> bool:
        """로컬 효과만 남은 작업인지"""
        return not self.remote_ok


@dataclass(frozen=True)
class LedgerSummary:
    """가계부 요약"""

    total: Decimal
    count: int
    ceiling: Decimal | None
    remaining: Decimal | None
    by_category: dict[str, Decimal] = field(default_factory=dict)
