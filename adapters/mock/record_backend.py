"""
Mock 원격 백엔드

테스트용 Mock RecordBackend.
IRecordBackend Protocol 준수.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from core.errors import BackendError, InvalidRecordIdError
from core.utils.identifiers import is_remote_id


@dataclass
class MockBackendState:
    """Mock 상태 (메모리 내 저장)"""

    # 행 (id -> row), 삽입 순서 유지
    rows: dict[str, dict[str, Any]] = field(default_factory=dict)

    # 예산 한도 (owner -> Decimal)
    ceilings: dict[str, Decimal] = field(default_factory=dict)

    # 호출 기록 (메서드 이름, 인자)
    calls: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)

    # 실패 시뮬레이션 (메서드 이름 집합, "*"면 전체)
    failing: set[str] = field(default_factory=set)

    # create 성공 시 본문 없이 None 반환
    create_returns_none: bool = False

    # create 호출 시 resume 전까지 대기 (경합 시나리오용)
    create_gate: asyncio.Event | None = None

    # list_records / get_ceiling 응답을 gate.set() 전까지 보류 (조회 시점 값 반환)
    list_gate: asyncio.Event | None = None
    ceiling_gate: asyncio.Event | None = None


class MockRecordBackend:
    """Mock RecordBackend

    IRecordBackend Protocol 구현.
    메모리 내 행 저장으로 테스트 시나리오 지원.

    사용 예시:
    ```python
    backend = MockRecordBackend(owner="user-1")
    backend.seed_row(title="Lunch", amount="150")
    backend.fail("create_record")  # 이후 create 실패
    ```
    """

    def __init__(self, owner: str | None = None, state: MockBackendState | None = None):
        self.owner = owner
        self.state = state or MockBackendState()
        self._clock = datetime(2025, 11, 20, tzinfo=timezone.utc)

    # -------------------------------------------------------------------------
    # 상태 조작 메서드 (테스트용)
    # -------------------------------------------------------------------------

    def fail(self, *methods: str) -> None:
        """지정 메서드 실패 설정 (인자 없으면 전체)"""
        self.state.failing.update(methods or ("*",))

    def recover(self) -> None:
        """실패 설정 해제"""
        self.state.failing.clear()

    def hold_creates(self) -> asyncio.Event:
        """create 호출을 gate.set() 전까지 대기시킴"""
        self.state.create_gate = asyncio.Event()
        return self.state.create_gate

    def hold_lists(self) -> asyncio.Event:
        """list_records 응답을 gate.set() 전까지 보류"""
        self.state.list_gate = asyncio.Event()
        return self.state.list_gate

    def hold_ceilings(self) -> asyncio.Event:
        """get_ceiling 응답을 gate.set() 전까지 보류"""
        self.state.ceiling_gate = asyncio.Event()
        return self.state.ceiling_gate

    def seed_row(
        self,
        title: str | None = "Seed",
        amount: Any = "10",
        category: str | None = "General",
        owner: str | None = None,
        row_id: str | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        """원격 행 직접 추가"""
        row = {
            "id": row_id or str(uuid.uuid4()),
            "title": title,
            "category": category,
            "amount": amount,
            "owner_id": owner or self.owner,
            "created_at": self._tick().isoformat(),
            **extra,
        }
        self.state.rows[row["id"]] = row
        return row

    def calls_to(self, method: str) -> list[tuple[Any, ...]]:
        """특정 메서드 호출 인자 목록"""
        return [args for name, args in self.state.calls if name == method]

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def _record_call(self, method: str, *args: Any) -> None:
        self.state.calls.append((method, args))
        if "*" in self.state.failing or method in self.state.failing:
            raise BackendError(f"Mock {method} failure", status_code=503)

    # -------------------------------------------------------------------------
    # IRecordBackend
    # -------------------------------------------------------------------------

    async def list_records(self, owner_identity: str) -> list[dict[str, Any]]:
        self._record_call("list_records", owner_identity)
        rows = [dict(r) for r in self.state.rows.values() if r.get("owner_id") == owner_identity]
        rows.sort(key=lambda r: r.get("created_at") or "", reverse=True)

        gate = self.state.list_gate
        if gate is not None:
            await gate.wait()
        return rows

    async def create_record(
        self,
        label: str,
        category: str,
        amount: Decimal,
    ) -> dict[str, Any] | None:
        self._record_call("create_record", label, category, amount)

        if self.state.create_gate is not None:
            await self.state.create_gate.wait()
            if "*" in self.state.failing or "create_record" in self.state.failing:
                raise BackendError("Mock create_record failure", status_code=503)

        row = self.seed_row(title=label, amount=str(amount), category=category)
        if self.state.create_returns_none:
            return None
        return dict(row)

    async def update_record(
        self,
        record_id: str,
        patch: dict[str, Any],
    ) -> dict[str, Any] | None:
        if not is_remote_id(record_id):
            raise InvalidRecordIdError(record_id)
        self._record_call("update_record", record_id, patch)

        row = self.state.rows.get(record_id)
        if row is None:
            return None
        row.update(patch)
        return dict(row)

    async def delete_record(self, record_id: str) -> None:
        if not is_remote_id(record_id):
            raise InvalidRecordIdError(record_id)
        self._record_call("delete_record", record_id)
        self.state.rows.pop(record_id, None)

    async def delete_all_for_owner(self, owner_identity: str) -> None:
        self._record_call("delete_all_for_owner", owner_identity)
        for row_id in [k for k, r in self.state.rows.items() if r.get("owner_id") == owner_identity]:
            del self.state.rows[row_id]

    async def get_ceiling(self, owner_identity: str) -> Decimal:
        self._record_call("get_ceiling", owner_identity)
        value = self.state.ceilings.get(owner_identity, Decimal("0"))

        gate = self.state.ceiling_gate
        if gate is not None:
            await gate.wait()
        return value

    async def set_ceiling(self, owner_identity: str, value: Decimal) -> None:
        self._record_call("set_ceiling", owner_identity, value)
        self.state.ceilings[owner_identity] = value
