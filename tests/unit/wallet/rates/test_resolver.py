"""
RateResolver 테스트

MemoryKeyValueStore + MockRateProvider 로 캐시/fallback 동작 검증.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from adapters.kv import MemoryKeyValueStore
from adapters.mock import MockRateProvider
from core.errors import InvalidCurrencyError, RateProviderError, RateResolutionError
from core.types import RateQuote
from wallet.rates.resolver import RateResolver

NOW = datetime(2025, 11, 20, 12, 0, tzinfo=timezone.utc)
HNL_USD_KEY = "fxrate_HNL_USD"


def cache_entry(rate: str, age: timedelta) -> str:
    return RateQuote(base="HNL", target="USD", rate=Decimal(rate), fetched_at=NOW - age).to_json()


def failing(name: str) -> MockRateProvider:
    return MockRateProvider(name, default=RateProviderError(name, "down"))


def make_resolver(store, providers, **kwargs) -> RateResolver:
    kwargs.setdefault("retry_delay_seconds", 0)
    kwargs.setdefault("clock", lambda: NOW)
    return RateResolver(store, providers, **kwargs)


class TestSameCurrency:
    """같은 통화 테스트"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["USD", "hnl", "EUR"])
    async def test_same_currency_is_one_without_io(self, code) -> None:
        """X→X는 1, 캐시/네트워크 접근 없음"""
        store = MemoryKeyValueStore()
        provider = MockRateProvider("p1", default="2")
        resolver = make_resolver(store, [provider])

        rate = await resolver.get_rate(code, code.lower())

        assert rate == Decimal("1")
        assert provider.call_count == 0
        assert store.calls.total == 0


class TestCache:
    """캐시 테스트"""

    @pytest.mark.asyncio
    async def test_fresh_cache_hit(self) -> None:
        """30분 된 캐시는 프로바이더 호출 없이 반환"""
        store = MemoryKeyValueStore({HNL_USD_KEY: cache_entry("0.04", timedelta(minutes=30))})
        provider = MockRateProvider("p1", default="0.05")
        resolver = make_resolver(store, [provider])

        rate = await resolver.get_rate("HNL", "USD")

        assert rate == Decimal("0.04")
        assert provider.call_count == 0

    @pytest.mark.asyncio
    async def test_expired_cache_refetched(self) -> None:
        """만료된 캐시는 재조회 후 갱신"""
        store = MemoryKeyValueStore({HNL_USD_KEY: cache_entry("0.04", timedelta(hours=2))})
        provider = MockRateProvider("p1", default="0.041")
        resolver = make_resolver(store, [provider])

        quote = await resolver.get_quote("HNL", "USD")

        assert quote.rate == Decimal("0.041")
        assert quote.stale is False
        cached = json.loads(store.data[HNL_USD_KEY])
        assert cached["rate"] == "0.041"
        assert cached["timestamp"] == NOW.isoformat()

    @pytest.mark.asyncio
    async def test_legacy_fetched_at_key_accepted(self) -> None:
        """fetchedAt 키로 저장된 캐시도 읽음"""
        entry = json.dumps({"rate": 0.04, "fetchedAt": (NOW - timedelta(minutes=5)).isoformat()})
        store = MemoryKeyValueStore({HNL_USD_KEY: entry})
        provider = MockRateProvider("p1", default="0.05")
        resolver = make_resolver(store, [provider])

        assert await resolver.get_rate("HNL", "USD") == Decimal("0.04")
        assert provider.call_count == 0

    @pytest.mark.asyncio
    async def test_corrupt_cache_ignored(self) -> None:
        """손상된 캐시는 미스로 처리"""
        store = MemoryKeyValueStore({HNL_USD_KEY: "not json"})
        resolver = make_resolver(store, [MockRateProvider("p1", default="0.04")])

        assert await resolver.get_rate("HNL", "USD") == Decimal("0.04")

    @pytest.mark.asyncio
    async def test_cache_write_failure_still_returns_rate(self) -> None:
        """캐시 저장 실패해도 조회 값 반환"""
        store = MemoryKeyValueStore(fail_writes=True)
        resolver = make_resolver(store, [MockRateProvider("p1", default="0.04")])

        assert await resolver.get_rate("HNL", "USD") == Decimal("0.04")


class TestProviderChain:
    """프로바이더 체인 테스트"""

    @pytest.mark.asyncio
    async def test_falls_back_to_next_provider(self) -> None:
        """첫 프로바이더 실패 시 다음 프로바이더 값 캐시"""
        store = MemoryKeyValueStore()
        first = failing("p1")
        second = MockRateProvider("p2", default="0.041")
        resolver = make_resolver(store, [first, second], max_retries=2)

        rate = await resolver.get_rate("HNL", "USD")

        assert rate == Decimal("0.041")
        assert first.call_count == 3
        assert second.call_count == 1
        assert json.loads(store.data[HNL_USD_KEY])["rate"] == "0.041"

    @pytest.mark.asyncio
    async def test_retry_succeeds_on_same_provider(self) -> None:
        """재시도 중 성공하면 다음 프로바이더로 넘어가지 않음"""
        flaky = MockRateProvider("p1", responses=[RateProviderError("p1", "x"), "0.042"])
        second = MockRateProvider("p2", default="0.05")
        resolver = make_resolver(MemoryKeyValueStore(), [flaky, second], max_retries=1)

        assert await resolver.get_rate("HNL", "USD") == Decimal("0.042")
        assert flaky.call_count == 2
        assert second.call_count == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad", ["0", "-1"])
    async def test_non_positive_rate_treated_as_failure(self, bad) -> None:
        """0 이하 환율은 실패로 간주"""
        first = MockRateProvider("p1", default=bad)
        second = MockRateProvider("p2", default="0.04")
        resolver = make_resolver(MemoryKeyValueStore(), [first, second], max_retries=0)

        assert await resolver.get_rate("HNL", "USD") == Decimal("0.04")

    @pytest.mark.asyncio
    async def test_timeout_treated_as_failure(self) -> None:
        """타임아웃은 실패로 간주"""

        class SlowProvider:
            name = "slow"

            async def convert(self, base: str, target: str) -> Decimal:
                await asyncio.sleep(10)
                return Decimal("1")

        second = MockRateProvider("p2", default="0.04")
        resolver = make_resolver(
            MemoryKeyValueStore(), [SlowProvider(), second], max_retries=0, call_timeout=0.01
        )

        assert await resolver.get_rate("HNL", "USD") == Decimal("0.04")

    @pytest.mark.asyncio
    async def test_stale_cache_when_all_fail(self) -> None:
        """모두 실패하면 만료된 캐시 반환"""
        store = MemoryKeyValueStore({HNL_USD_KEY: cache_entry("0.039", timedelta(hours=2))})
        resolver = make_resolver(store, [failing("p1"), failing("p2")], max_retries=0)

        quote = await resolver.get_quote("HNL", "USD")

        assert quote.rate == Decimal("0.039")
        assert quote.stale is True

    @pytest.mark.asyncio
    async def test_cold_start_failure_raises(self) -> None:
        """캐시 없고 모두 실패하면 예외"""
        resolver = make_resolver(MemoryKeyValueStore(), [failing("p1"), failing("p2")], max_retries=1)

        with pytest.raises(RateResolutionError) as exc_info:
            await resolver.get_rate("HNL", "USD")

        assert exc_info.value.base == "HNL"
        assert exc_info.value.target == "USD"
        assert len(exc_info.value.errors) == 4


class TestValidation:
    """통화 코드 검증 테스트"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["", "US", "US1", "DOLLAR"])
    async def test_invalid_currency(self, code) -> None:
        resolver = make_resolver(MemoryKeyValueStore(), [MockRateProvider("p1", default="1")])

        with pytest.raises(InvalidCurrencyError):
            await resolver.get_rate(code, "USD")

    def test_invalid_constructor_arguments(self) -> None:
        with pytest.raises(ValueError):
            RateResolver(MemoryKeyValueStore(), [], max_retries=-1)
        with pytest.raises(ValueError):
            RateResolver(MemoryKeyValueStore(), [], ttl_seconds=0)


class TestHelpers:
    """보조 기능 테스트"""

    @pytest.mark.asyncio
    async def test_convert_amount(self) -> None:
        resolver = make_resolver(MemoryKeyValueStore(), [MockRateProvider("p1", default="0.04")])

        assert await resolver.convert("1500", "hnl", "usd") == Decimal("60.00")

    @pytest.mark.asyncio
    async def test_convert_invalid_amount(self) -> None:
        resolver = make_resolver(MemoryKeyValueStore(), [MockRateProvider("p1", default="0.04")])

        with pytest.raises(ValueError):
            await resolver.convert("abc", "HNL", "USD")

    @pytest.mark.asyncio
    async def test_prefetch_never_raises(self) -> None:
        """prefetch는 실패한 쌍을 None으로 기록"""
        provider = MockRateProvider("p1", responses=["0.04", RateProviderError("p1", "down")])
        resolver = make_resolver(MemoryKeyValueStore(), [provider], max_retries=0)

        results = await resolver.prefetch([("HNL", "USD"), ("HNL", "EUR"), ("XX", "USD")])

        assert results == {
            ("HNL", "USD"): Decimal("0.04"),
            ("HNL", "EUR"): None,
            ("XX", "USD"): None,
        }

    @pytest.mark.asyncio
    async def test_refresh_rate_bypasses_fresh_cache(self) -> None:
        """refresh_rate는 유효한 캐시도 무시"""
        store = MemoryKeyValueStore({HNL_USD_KEY: cache_entry("0.04", timedelta(minutes=1))})
        provider = MockRateProvider("p1", default="0.045")
        resolver = make_resolver(store, [provider])

        assert await resolver.refresh_rate("HNL", "USD") == Decimal("0.045")
        assert provider.call_count == 1

    @pytest.mark.asyncio
    async def test_refresh_rate_keeps_fallback(self) -> None:
        """refresh_rate 실패 시 기존 캐시 유지"""
        store = MemoryKeyValueStore({HNL_USD_KEY: cache_entry("0.04", timedelta(minutes=1))})
        resolver = make_resolver(store, [failing("p1")], max_retries=0)

        assert await resolver.refresh_rate("HNL", "USD") == Decimal("0.04")


class TestInvalidate:
    """캐시 삭제 테스트"""

    @pytest.mark.asyncio
    async def test_invalidate_single_pair(self) -> None:
        store = MemoryKeyValueStore(
            {
                HNL_USD_KEY: cache_entry("0.04", timedelta(minutes=1)),
                "fxrate_USD_EUR": "{}",
            }
        )
        resolver = make_resolver(store, [])

        assert await resolver.invalidate("hnl", "usd") == 1
        assert HNL_USD_KEY not in store.data
        assert "fxrate_USD_EUR" in store.data

    @pytest.mark.asyncio
    async def test_invalidate_all_keeps_other_namespaces(self) -> None:
        store = MemoryKeyValueStore(
            {
                HNL_USD_KEY: "{}",
                "fxrate_USD_EUR": "{}",
                "expenses_anon": "[]",
                "budget_anon": "100",
            }
        )
        resolver = make_resolver(store, [])

        assert await resolver.invalidate() == 2
        assert sorted(store.data) == ["budget_anon", "expenses_anon"]

    @pytest.mark.asyncio
    async def test_invalidate_propagates_storage_error(self) -> None:
        store = MemoryKeyValueStore({HNL_USD_KEY: "{}"}, fail_writes=True)
        resolver = make_resolver(store, [])

        with pytest.raises(OSError):
            await resolver.invalidate()
