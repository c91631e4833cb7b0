"""
Mock 어댑터 테스트
"""

import asyncio
from decimal import Decimal

import pytest

from adapters.interfaces import IRateProvider, IRecordBackend
from adapters.mock import MockRateProvider, MockRecordBackend
from core.errors import BackendError, InvalidRecordIdError, RateProviderError

OWNER = "11111111-1111-4111-8111-111111111111"
OTHER = "22222222-2222-4222-8222-222222222222"


class TestMockRecordBackend:
    """MockRecordBackend 테스트"""

    def test_protocol(self) -> None:
        assert isinstance(MockRecordBackend(owner=OWNER), IRecordBackend)

    @pytest.mark.asyncio
    async def test_list_filters_owner_newest_first(self) -> None:
        backend = MockRecordBackend(owner=OWNER)
        backend.seed_row(title="first")
        backend.seed_row(title="second")
        backend.seed_row(title="foreign", owner=OTHER)

        rows = await backend.list_records(OWNER)

        assert [r["title"] for r in rows] == ["second", "first"]

    @pytest.mark.asyncio
    async def test_create_records_call(self) -> None:
        backend = MockRecordBackend(owner=OWNER)

        row = await backend.create_record("Lunch", "Food", Decimal("150"))

        assert row["owner_id"] == OWNER
        assert row["amount"] == "150"
        assert backend.calls_to("create_record") == [("Lunch", "Food", Decimal("150"))]

    @pytest.mark.asyncio
    async def test_fail_and_recover(self) -> None:
        backend = MockRecordBackend(owner=OWNER)
        backend.fail()

        with pytest.raises(BackendError):
            await backend.get_ceiling(OWNER)

        backend.recover()
        assert await backend.get_ceiling(OWNER) == Decimal("0")

    @pytest.mark.asyncio
    async def test_local_id_rejected(self) -> None:
        backend = MockRecordBackend(owner=OWNER)

        with pytest.raises(InvalidRecordIdError):
            await backend.delete_record("local-1-1-abcdef")

        assert backend.calls_to("delete_record") == []

    @pytest.mark.asyncio
    async def test_hold_creates(self) -> None:
        backend = MockRecordBackend(owner=OWNER)
        gate = backend.hold_creates()

        task = asyncio.create_task(backend.create_record("x", "General", Decimal("1")))
        await asyncio.sleep(0)
        assert backend.state.rows == {}

        gate.set()
        await task
        assert len(backend.state.rows) == 1

    @pytest.mark.asyncio
    async def test_hold_ceilings_returns_value_read_before_gate(self) -> None:
        """보류된 get_ceiling은 조회 시점 값 반환"""
        backend = MockRecordBackend(owner=OWNER)
        backend.state.ceilings[OWNER] = Decimal("100")
        gate = backend.hold_ceilings()

        task = asyncio.create_task(backend.get_ceiling(OWNER))
        await asyncio.sleep(0)
        await backend.set_ceiling(OWNER, Decimal("500"))
        assert not task.done()

        gate.set()
        assert await task == Decimal("100")

    @pytest.mark.asyncio
    async def test_hold_lists(self) -> None:
        backend = MockRecordBackend(owner=OWNER)
        backend.seed_row(title="Before")
        gate = backend.hold_lists()

        task = asyncio.create_task(backend.list_records(OWNER))
        await asyncio.sleep(0)
        backend.seed_row(title="After")

        gate.set()
        assert [r["title"] for r in await task] == ["Before"]


class TestMockRateProvider:
    """MockRateProvider 테스트"""

    def test_protocol(self) -> None:
        assert isinstance(MockRateProvider(), IRateProvider)

    @pytest.mark.asyncio
    async def test_scripted_responses(self) -> None:
        provider = MockRateProvider("p", responses=[RateProviderError("p", "x"), "0.04"], default="0.05")

        with pytest.raises(RateProviderError):
            await provider.convert("HNL", "USD")
        assert await provider.convert("HNL", "USD") == Decimal("0.04")
        assert await provider.convert("HNL", "USD") == Decimal("0.05")
        assert provider.call_count == 3

    @pytest.mark.asyncio
    async def test_no_script_fails(self) -> None:
        with pytest.raises(RateProviderError):
            await MockRateProvider("p").convert("HNL", "USD")
