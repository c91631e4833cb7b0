"""
Rate Resolver

환율 조회: TTL 캐시 → 프로바이더 체인(재시도 포함) → 만료 캐시 fallback.
캐시는 로컬 KV 저장소에 통화쌍 단위로 저장된다.
"""

import asyncio
import logging
import re
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Sequence

from adapters.interfaces import IKeyValueStore, IRateProvider
from core.constants import Defaults
from core.errors import (
    InvalidCurrencyError,
    RateProviderError,
    RateResolutionError,
    RemoteError,
    ValidationError,
)
from core.types import RateCacheKey, RateQuote
from core.utils.money import to_decimal
from core.utils.timezone import now_utc

logger = logging.getLogger(__name__)

_CURRENCY_CODE = re.compile(r"^[A-Z]{3}$")


class RateResolver:
    """환율 조회기

    조회 순서:
    1. 같은 통화면 1 (캐시, 네트워크 접근 없음)
    2. TTL 내 캐시가 있으면 반환
    3. 프로바이더를 순서대로 시도 (프로바이더당 1 + max_retries 회)
       첫 성공 값을 캐시에 저장 후 반환
    4. 모두 실패하면 만료된 캐시라도 반환 (stale)
    5. 캐시도 없으면 RateResolutionError

    Args:
        store: 캐시용 KV 저장소
        providers: 우선순위 순서의 프로바이더 목록
        ttl_seconds: 캐시 유효 기간
        max_retries: 프로바이더당 추가 시도 횟수
        retry_delay_seconds: 재시도 기본 대기 (시도마다 선형 증가)
        call_timeout: 프로바이더 호출 1회 타임아웃
        clock: 현재 시각 함수 (테스트용)

    사용 예시:
    ```python
    resolver = RateResolver(store, [ExchangeRateHostProvider(), OpenErApiProvider()])
    rate = await resolver.get_rate("HNL", "USD")
    usd = await resolver.convert(Decimal("1500"), "HNL", "USD")
    ```
    """

    def __init__(
        self,
        store: IKeyValueStore,
        providers: Sequence[IRateProvider],
        ttl_seconds: float = Defaults.RATE_TTL_SEC,
        max_retries: int = Defaults.RATE_MAX_RETRIES,
        retry_delay_seconds: float = Defaults.RATE_RETRY_DELAY_SEC,
        call_timeout: float = Defaults.RATE_PROVIDER_TIMEOUT_SEC,
        clock: Callable[[], datetime] = now_utc,
    ):
        if max_retries < 0:
            raise ValueError("max_retries는 0 이상이어야 합니다")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds는 양수여야 합니다")

        self.store = store
        self.providers = list(providers)
        self.ttl_seconds = ttl_seconds
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.call_timeout = call_timeout
        self._clock = clock

    # =========================================================================
    # 조회
    # =========================================================================

    async def get_rate(self, base: str, target: str) -> Decimal:
        """환율 조회 (base 1단위당 target)

        Raises:
            InvalidCurrencyError: 통화 코드 형식 오류
            RateResolutionError: 프로바이더 전부 실패, 캐시 없음
        """
        quote = await self.get_quote(base, target)
        return quote.rate

    async def get_quote(
        self,
        base: str,
        target: str,
        force_refresh: bool = False,
    ) -> RateQuote:
        """환율 조회 (조회 시각, stale 여부 포함)

        Args:
            base: 기준 통화
            target: 대상 통화
            force_refresh: True면 유효한 캐시가 있어도 프로바이더 조회
        """
        if str(base).strip().upper() == str(target).strip().upper():
            code = str(base).strip().upper()
            return RateQuote(base=code, target=code, rate=Decimal("1"), fetched_at=self._clock())

        base_code = self._normalize(base)
        target_code = self._normalize(target)
        key = RateCacheKey(base_code, target_code)

        if not force_refresh:
            cached = await self._read_cache(key)
            if cached is not None and cached.is_fresh(self._clock(), self.ttl_seconds):
                logger.debug("환율 캐시 적중", extra={"pair": str(key)})
                return cached

        errors: list[Exception] = []
        for provider in self.providers:
            rate = await self._try_provider(provider, base_code, target_code, errors)
            if rate is None:
                continue

            quote = RateQuote(
                base=base_code,
                target=target_code,
                rate=rate,
                fetched_at=self._clock(),
            )
            await self._write_cache(key, quote)
            logger.info(
                "환율 조회 성공",
                extra={"pair": str(key), "provider": provider.name, "rate": str(rate)},
            )
            return quote

        # 프로바이더 전부 실패: 캐시 재확인
        cached = await self._read_cache(key)
        if cached is not None:
            if cached.is_fresh(self._clock(), self.ttl_seconds):
                return cached
            logger.warning(
                "모든 프로바이더 실패, 만료된 캐시 반환",
                extra={
                    "pair": str(key),
                    "age_sec": round(cached.age_seconds(self._clock())),
                    "errors": [str(e) for e in errors],
                },
            )
            return replace(cached, stale=True)

        logger.error(
            "환율 조회 실패 (캐시 없음)",
            extra={"pair": str(key), "errors": [str(e) for e in errors]},
        )
        raise RateResolutionError(base_code, target_code, errors)

    async def convert(self, amount: Any, base: str, target: str) -> Decimal:
        """금액 환산

        Raises:
            ValueError: 금액이 숫자가 아님
            RateResolutionError: 환율 조회 실패
        """
        value = to_decimal(amount)
        if value is None:
            raise ValueError(f"Invalid amount: {amount!r}")
        rate = await self.get_rate(base, target)
        return value * rate

    async def refresh_rate(self, base: str, target: str) -> Decimal:
        """캐시 무시하고 재조회 (실패 시 만료 캐시 fallback 유지)"""
        quote = await self.get_quote(base, target, force_refresh=True)
        return quote.rate

    async def prefetch(
        self,
        pairs: Iterable[tuple[str, str]],
    ) -> dict[tuple[str, str], Decimal | None]:
        """여러 통화쌍 캐시 워밍 (실패한 쌍은 None, 예외 없음)"""
        results: dict[tuple[str, str], Decimal | None] = {}
        for base, target in pairs:
            try:
                results[(base, target)] = await self.get_rate(base, target)
            except (RemoteError, ValidationError) as e:
                logger.warning(f"환율 prefetch 실패: {e}", extra={"base": base, "target": target})
                results[(base, target)] = None
        return results

    # =========================================================================
    # 캐시 관리
    # =========================================================================

    async def invalidate(self, base: str | None = None, target: str | None = None) -> int:
        """캐시 삭제

        base, target 둘 다 주면 해당 쌍만, 아니면 환율 캐시 전체.
        저장소 오류는 호출자에게 전파.

        Returns:
            삭제한 키 개수
        """
        if base is not None and target is not None:
            key = RateCacheKey(self._normalize(base), self._normalize(target))
            await self.store.remove(key.to_storage_key())
            logger.info("환율 캐시 삭제", extra={"pair": str(key)})
            return 1

        prefix = RateCacheKey.prefix()
        keys = [k for k in await self.store.all_keys() if k.startswith(prefix)]
        if keys:
            await self.store.remove_many(keys)
        logger.info("환율 캐시 전체 삭제", extra={"count": len(keys)})
        return len(keys)

    # =========================================================================
    # 내부
    # =========================================================================

    @staticmethod
    def _normalize(code: str) -> str:
        normalized = str(code or "").strip().upper()
        if not _CURRENCY_CODE.match(normalized):
            raise InvalidCurrencyError(code)
        return normalized

    async def _try_provider(
        self,
        provider: IRateProvider,
        base: str,
        target: str,
        errors: list[Exception],
    ) -> Decimal | None:
        """프로바이더 1개 시도 (재시도 포함), 실패 시 None"""
        attempts = 1 + self.max_retries

        for attempt in range(attempts):
            try:
                raw = await asyncio.wait_for(
                    provider.convert(base, target),
                    timeout=self.call_timeout,
                )
                rate = to_decimal(raw)
                if rate is None or rate <= 0:
                    raise RateProviderError(provider.name, f"Invalid rate: {raw!r}")
                return rate
            except asyncio.TimeoutError:
                error: Exception = RateProviderError(
                    provider.name, f"Timeout after {self.call_timeout}s"
                )
            except Exception as e:
                error = e

            errors.append(error)
            logger.warning(
                f"환율 프로바이더 실패 ({attempt + 1}/{attempts}): {error}",
                extra={"provider": provider.name, "base": base, "target": target},
            )
            if attempt < attempts - 1:
                await asyncio.sleep(self.retry_delay_seconds * (attempt + 1))

        return None

    async def _read_cache(self, key: RateCacheKey) -> RateQuote | None:
        """캐시 읽기 (없음, 저장소 오류, 손상 모두 None)"""
        storage_key = key.to_storage_key()
        try:
            raw = await self.store.get(storage_key)
        except Exception as e:
            logger.warning(f"환율 캐시 읽기 실패: {e}", extra={"key": storage_key})
            return None

        if raw is None:
            return None

        try:
            return RateQuote.from_json(raw)
        except (ValueError, TypeError) as e:
            logger.warning(f"환율 캐시 손상, 무시: {e}", extra={"key": storage_key})
            return None

    async def _write_cache(self, key: RateCacheKey, quote: RateQuote) -> None:
        storage_key = key.to_storage_key()
        try:
            await self.store.set(storage_key, quote.to_json())
        except Exception as e:
            logger.warning(f"환율 캐시 저장 실패: {e}", extra={"key": storage_key})
