"""
Ledger Sync Engine

identity별 가계부 레코드와 예산 한도의 로컬 우선 동기화.

흐름:
1. 쓰기는 메모리 상태에 즉시 반영 후 KV 저장소에 영속화 (optimistic)
2. 원격 호출은 그 이후에 수행, 실패해도 로컬 상태는 유지
3. identity 전환 시 generation 증가, 이전 generation의 비동기 결과는 폐기
"""

import asyncio
import json
import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

from adapters.interfaces import IKeyValueStore, IRecordBackend
from core.constants import Defaults, StorageNamespaces
from core.types import (
    LedgerOperation,
    LedgerSummary,
    Record,
    RecordDraft,
    RecordPatch,
    StorageKey,
    SyncOutcome,
)
from core.utils.identifiers import is_local_id, is_remote_id, make_local_id
from core.utils.money import parse_amount, parse_budget_text, parse_ceiling, to_decimal
from core.utils.timezone import now_utc
from wallet.ledger.budget_guard import BudgetGuard

logger = logging.getLogger(__name__)


class LedgerSyncEngine:
    """가계부 동기화 엔진

    로컬 KV 저장소를 1차 저장소로, 원격 백엔드를 최종 저장소로 사용.
    원격 실패는 예외로 전파하지 않고 SyncOutcome.error 로 반환한다.
    검증 실패(금액, 예산 초과)만 예외로 전파하며 이 경우 상태 변경 없음.

    Args:
        store: 로컬 KV 저장소
        backend: 원격 레코드 백엔드
        guard: 예산 검증기 (기본 BudgetGuard)
        keep_pending_on_refresh: refresh 시 미확정 로컬 레코드 유지 여부
        pending_ttl_sec: 미확정 로컬 레코드 유지 기간
        clock: 현재 시각 함수 (테스트용)

    사용 예시:
    ```python
    engine = LedgerSyncEngine(store, backend)
    await engine.initialize_for_identity("user-1")

    outcome = await engine.add(RecordDraft(amount="150", label="Lunch"))
    if outcome.error:
        print("원격 저장 실패, 로컬에는 저장됨")
    ```
    """

    def __init__(
        self,
        store: IKeyValueStore,
        backend: IRecordBackend,
        guard: BudgetGuard | None = None,
        keep_pending_on_refresh: bool = False,
        pending_ttl_sec: float = Defaults.PENDING_TTL_SEC,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.store = store
        self.backend = backend
        self.guard = guard or BudgetGuard()
        self.keep_pending_on_refresh = keep_pending_on_refresh
        self.pending_ttl_sec = pending_ttl_sec
        self._clock = clock

        self._identity: str | None = None
        self._records: list[Record] = []
        self._ceiling: Decimal | None = None
        self._is_loading = False
        self._generation = 0
        # 로컬 한도 쓰기 횟수 (로드 중 쓰기 감지)
        self._ceiling_writes = 0

        # 영속화 쓰기 직렬화
        self._persist_lock = asyncio.Lock()

        # 원격 확정 전 로컬 레코드 (local id -> 생성 시각)
        self._pending: dict[str, datetime] = {}
        # create 진행 중인 local id
        self._in_flight: set[str] = set()
        # create 진행 중 삭제된 local id (확정 시 원격 삭제)
        self._tombstones: set[str] = set()

    # =========================================================================
    # 상태 조회
    # =========================================================================

    @property
    def identity(self) -> str | None:
        return self._identity

    @property
    def records(self) -> list[Record]:
        """레코드 목록 복사본 (최신순)"""
        return list(self._records)

    @property
    def ceiling(self) -> Decimal | None:
        return self._ceiling

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def total(self) -> Decimal:
        return self.guard.total(self._records)

    @property
    def remaining(self) -> Decimal | None:
        """남은 예산 (한도 없으면 None)"""
        if self._ceiling is None:
            return None
        return self._ceiling - self.total

    def get(self, record_id: str) -> Record | None:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def summary(self) -> LedgerSummary:
        """합계, 남은 예산, 카테고리별 합계"""
        by_category: dict[str, Decimal] = {}
        for record in self._records:
            by_category[record.category] = by_category.get(record.category, Decimal("0")) + record.amount

        return LedgerSummary(
            total=self.total,
            count=len(self._records),
            ceiling=self._ceiling,
            remaining=self.remaining,
            by_category=by_category,
        )

    # =========================================================================
    # identity 전환 / 원격 갱신
    # =========================================================================

    async def initialize_for_identity(self, identity: str | None) -> SyncOutcome:
        """identity 전환 및 상태 로드

        1. generation 증가, 메모리 상태 초기화
        2. 로컬 저장된 레코드 목록 즉시 반영 (로드 중 추가된 레코드는 앞에 유지)
        3. 예산 한도: 로컬 → 없으면 원격 조회 후 로컬 저장 (로드 중 설정된 값 우선)
        4. 원격 목록으로 refresh

        identity가 None이면 상태만 초기화하고 아무것도 조회하지 않는다.
        """
        self._generation += 1
        generation = self._generation

        self._identity = identity or None
        self._records = []
        self._ceiling = None
        self._pending.clear()
        self._in_flight.clear()
        self._tombstones.clear()

        if self._identity is None:
            self._is_loading = False
            logger.info("identity 해제, 상태 초기화", extra={"generation": generation})
            return SyncOutcome(operation=LedgerOperation.INITIALIZE, skipped_remote=True)

        identity = self._identity
        self._is_loading = True
        logger.info(
            "identity 초기화 시작",
            extra={"identity": identity, "generation": generation},
        )

        try:
            records = await self._load_records(identity)
            if not self._is_current(generation):
                return self._discarded(LedgerOperation.INITIALIZE, generation)
            if self._records:
                # 로드 중 추가된 레코드를 앞에 유지
                self._records = self._merge_loaded(records)
                await self._persist_records(identity, generation)
            else:
                self._records = records
            if self.keep_pending_on_refresh:
                self._track_loaded_pending(records)

            writes = self._ceiling_writes
            ceiling = await self._load_ceiling(identity, generation, writes)
            if not self._is_current(generation):
                return self._discarded(LedgerOperation.INITIALIZE, generation)
            if self._ceiling_writes == writes:
                self._ceiling = ceiling

            refreshed = await self.refresh()
            return SyncOutcome(
                operation=LedgerOperation.INITIALIZE,
                remote_ok=refreshed.remote_ok,
                skipped_remote=refreshed.skipped_remote,
                error=refreshed.error,
            )
        finally:
            if self._is_current(generation):
                self._is_loading = False

    async def refresh(self) -> SyncOutcome:
        """원격 목록으로 로컬 목록 교체

        원격 실패 시 로컬 목록은 그대로 둔다.
        keep_pending_on_refresh가 켜져 있으면 TTL 내의 미확정 로컬 레코드를 앞에 유지.
        """
        identity = self._identity
        if identity is None:
            return SyncOutcome(operation=LedgerOperation.REFRESH, skipped_remote=True)

        generation = self._generation
        self._is_loading = True
        try:
            try:
                rows = await self.backend.list_records(identity)
            except Exception as e:
                logger.error(
                    f"원격 목록 조회 실패: {e}",
                    extra={"identity": identity, "generation": generation},
                )
                return SyncOutcome(operation=LedgerOperation.REFRESH, error=e)

            if not self._is_current(generation):
                return self._discarded(LedgerOperation.REFRESH, generation)

            fetched = self._normalize_rows(rows, identity)
            if self.keep_pending_on_refresh:
                fetched = self._merge_pending(fetched)

            self._records = fetched
            await self._persist_records(identity, generation)

            logger.debug(
                "원격 목록 반영 완료",
                extra={"identity": identity, "count": len(fetched)},
            )
            return SyncOutcome(operation=LedgerOperation.REFRESH, remote_ok=True)
        finally:
            if self._is_current(generation):
                self._is_loading = False

    # =========================================================================
    # 레코드 쓰기
    # =========================================================================

    async def add(self, draft: RecordDraft) -> SyncOutcome:
        """레코드 추가 (optimistic)

        Raises:
            InvalidAmountError: 금액이 양수가 아님
            BudgetExceededError: 추가 시 예산 한도 초과
        """
        amount = parse_amount(draft.amount)
        self.guard.enforce(self._ceiling, self.total, amount)

        identity = self._identity
        generation = self._generation

        record = Record(
            id=make_local_id(),
            label=(draft.label or "").strip(),
            category=(draft.category or "").strip() or Defaults.CATEGORY,
            amount=amount,
            occurred_at=draft.occurred_at or self._clock(),
            owner_identity=identity,
        )
        self._records = [record, *self._records]
        if self.keep_pending_on_refresh:
            self._pending[record.id] = self._clock()
        await self._persist_records(identity, generation)

        if identity is None:
            return SyncOutcome(operation=LedgerOperation.ADD, skipped_remote=True, record=record)

        self._in_flight.add(record.id)
        try:
            row = await self.backend.create_record(record.label, record.category, amount)
        except Exception as e:
            logger.warning(
                f"원격 추가 실패, 로컬 유지: {e}",
                extra={"record_id": record.id, "identity": identity},
            )
            return SyncOutcome(
                operation=LedgerOperation.ADD,
                error=e,
                record=self.get(record.id) or record,
            )
        finally:
            self._in_flight.discard(record.id)

        if not self._is_current(generation):
            logger.info(
                "identity 전환 후 도착한 추가 응답 무시",
                extra={"record_id": record.id, "generation": generation},
            )
            return SyncOutcome(operation=LedgerOperation.ADD, remote_ok=True)

        if not row or not row.get("id"):
            # 식별자 없는 성공 응답: 전체 재조회로 확정
            self._pending.pop(record.id, None)
            refreshed = await self.refresh()
            return SyncOutcome(
                operation=LedgerOperation.ADD,
                remote_ok=refreshed.remote_ok,
                error=refreshed.error,
            )

        confirmed = await self._confirm_creation(record, row, identity, generation)
        return SyncOutcome(operation=LedgerOperation.ADD, remote_ok=True, record=confirmed)

    async def update(self, record_id: str, patch: RecordPatch) -> SyncOutcome:
        """레코드 수정

        로컬에 있으면 즉시 병합. 원격 식별자인 경우에만 원격 수정 요청.

        Raises:
            InvalidAmountError: 금액이 양수가 아님
            BudgetExceededError: 수정 후 합계가 예산 한도 초과
        """
        if patch.is_empty():
            return SyncOutcome(
                operation=LedgerOperation.UPDATE,
                skipped_remote=True,
                record=self.get(record_id),
            )

        amount = parse_amount(patch.amount) if patch.amount is not None else None
        normalized = RecordPatch(
            label=patch.label.strip() if patch.label is not None else None,
            category=(patch.category.strip() or Defaults.CATEGORY) if patch.category is not None else None,
            amount=amount,
            occurred_at=patch.occurred_at,
        )

        current = self.get(record_id)
        if current is not None and amount is not None:
            self.guard.enforce(self._ceiling, self.total, amount - current.amount)

        identity = self._identity
        generation = self._generation

        record = current
        if current is not None:
            record = self._apply_patch(current, normalized)
            self._replace_record(record_id, record)
            await self._persist_records(identity, generation)

        if not is_remote_id(record_id) or identity is None:
            return SyncOutcome(operation=LedgerOperation.UPDATE, skipped_remote=True, record=record)

        try:
            await self.backend.update_record(record_id, normalized.to_remote())
        except Exception as e:
            logger.warning(
                f"원격 수정 실패, 로컬 유지: {e}",
                extra={"record_id": record_id, "identity": identity},
            )
            return SyncOutcome(operation=LedgerOperation.UPDATE, error=e, record=record)

        return SyncOutcome(operation=LedgerOperation.UPDATE, remote_ok=True, record=record)

    async def remove(self, record_id: str) -> SyncOutcome:
        """레코드 삭제

        존재하지 않는 id는 로컬 no-op. 원격 식별자인 경우에만 원격 삭제 요청.
        """
        identity = self._identity
        generation = self._generation

        removed = self.get(record_id)
        if removed is not None:
            self._records = [r for r in self._records if r.id != record_id]
            await self._persist_records(identity, generation)

        self._pending.pop(record_id, None)
        if record_id in self._in_flight:
            self._tombstones.add(record_id)

        if not is_remote_id(record_id) or identity is None:
            return SyncOutcome(operation=LedgerOperation.REMOVE, skipped_remote=True, record=removed)

        try:
            await self.backend.delete_record(record_id)
        except Exception as e:
            logger.warning(
                f"원격 삭제 실패: {e}",
                extra={"record_id": record_id, "identity": identity},
            )
            return SyncOutcome(operation=LedgerOperation.REMOVE, error=e, record=removed)

        return SyncOutcome(operation=LedgerOperation.REMOVE, remote_ok=True, record=removed)

    async def clear_all(self, also_remote: bool = False) -> SyncOutcome:
        """로컬 레코드 전체 삭제 (also_remote면 원격도 삭제)"""
        identity = self._identity

        self._records = []
        self._pending.clear()
        if also_remote:
            # 진행 중인 create는 확정 즉시 원격에서 삭제
            self._tombstones.update(self._in_flight)

        async with self._persist_lock:
            try:
                await self.store.remove(self._ledger_key(identity))
            except Exception as e:
                logger.warning(f"로컬 레코드 삭제 실패: {e}", extra={"identity": identity})

        if not also_remote or identity is None:
            return SyncOutcome(operation=LedgerOperation.CLEAR_ALL, skipped_remote=True)

        try:
            await self.backend.delete_all_for_owner(identity)
        except Exception as e:
            logger.warning(f"원격 전체 삭제 실패: {e}", extra={"identity": identity})
            return SyncOutcome(operation=LedgerOperation.CLEAR_ALL, error=e)

        return SyncOutcome(operation=LedgerOperation.CLEAR_ALL, remote_ok=True)

    # =========================================================================
    # 예산 한도
    # =========================================================================

    async def set_ceiling(self, value: Any) -> SyncOutcome:
        """예산 한도 설정

        Raises:
            InvalidAmountError: 음수 또는 숫자 아님
        """
        ceiling = parse_ceiling(value)
        identity = self._identity

        self._ceiling = ceiling
        self._ceiling_writes += 1
        await self._persist_ceiling(identity, ceiling)

        if identity is None:
            return SyncOutcome(operation=LedgerOperation.SET_CEILING, skipped_remote=True)

        try:
            await self.backend.set_ceiling(identity, ceiling)
        except Exception as e:
            logger.warning(
                f"원격 예산 저장 실패, 로컬 유지: {e}",
                extra={"identity": identity, "ceiling": str(ceiling)},
            )
            return SyncOutcome(operation=LedgerOperation.SET_CEILING, error=e)

        return SyncOutcome(operation=LedgerOperation.SET_CEILING, remote_ok=True)

    async def apply_profile(self, profile: dict[str, Any] | None) -> Decimal | None:
        """프로필의 budget 값으로 로컬 한도 설정 (원격 전송 없음)

        Returns:
            적용된 한도 (budget 없거나 해석 불가면 None, 상태 변경 없음)
        """
        if not profile:
            return None

        budget = parse_budget_text(profile.get("budget"))
        if budget is None or budget < 0:
            return None

        self._ceiling = budget
        self._ceiling_writes += 1
        await self._persist_ceiling(self._identity, budget)
        return budget

    # =========================================================================
    # 내부: 로드 / 영속화
    # =========================================================================

    @staticmethod
    def _ledger_key(identity: str | None) -> str:
        return StorageKey(StorageNamespaces.LEDGER, identity).to_storage_key()

    @staticmethod
    def _budget_key(identity: str | None) -> str:
        return StorageKey(StorageNamespaces.BUDGET, identity).to_storage_key()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _discarded(self, operation: LedgerOperation, generation: int) -> SyncOutcome:
        logger.info(
            "이전 generation 결과 폐기",
            extra={"operation": operation.value, "generation": generation, "current": self._generation},
        )
        return SyncOutcome(operation=operation, skipped_remote=True)

    async def _load_records(self, identity: str | None) -> list[Record]:
        """로컬 저장 목록 로드 (손상 시 빈 목록)"""
        key = self._ledger_key(identity)
        try:
            raw = await self.store.get(key)
        except Exception as e:
            logger.warning(f"로컬 레코드 로드 실패: {e}", extra={"key": key})
            return []

        if raw is None:
            return []

        try:
            items = json.loads(raw)
            if not isinstance(items, list):
                raise ValueError("persisted ledger is not a list")
            return [Record.from_dict(item) for item in items]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"로컬 레코드 손상, 무시: {e}", extra={"key": key})
            return []

    async def _load_ceiling(self, identity: str, generation: int, writes: int) -> Decimal:
        """예산 한도 로드

        로컬 값이 있으면 사용. 없으면 원격 조회 후 로컬 저장.
        원격 실패 시 0을 반환하되 저장하지 않음 (다음 초기화에서 재시도).
        조회 중 set_ceiling / apply_profile 이 있었으면 조회값을 저장하지 않는다.
        """
        key = self._budget_key(identity)
        try:
            raw = await self.store.get(key)
        except Exception as e:
            logger.warning(f"로컬 예산 로드 실패: {e}", extra={"key": key})
            raw = None

        if raw is not None:
            cached = to_decimal(raw)
            if cached is not None and cached >= 0:
                return cached
            logger.warning("로컬 예산 값 손상, 원격 조회", extra={"key": key, "raw": raw})

        try:
            fetched = await self.backend.get_ceiling(identity)
        except Exception as e:
            logger.warning(f"원격 예산 조회 실패, 0으로 대체: {e}", extra={"identity": identity})
            return Decimal("0")

        ceiling = to_decimal(fetched)
        if ceiling is None or ceiling < 0:
            ceiling = Decimal("0")

        if self._is_current(generation) and self._ceiling_writes == writes:
            await self._persist_ceiling(identity, ceiling)
        return ceiling

    async def _persist_records(self, identity: str | None, generation: int) -> bool:
        """현재 메모리 목록을 로컬 저장

        lock 안에서 최신 상태를 직렬화하므로 순서가 뒤바뀌어도 마지막 쓰기가 최신 상태.
        """
        async with self._persist_lock:
            if not self._is_current(generation):
                return False

            payload = json.dumps([r.to_dict() for r in self._records])
            try:
                await self.store.set(self._ledger_key(identity), payload)
            except Exception as e:
                logger.warning(f"로컬 레코드 저장 실패: {e}", extra={"identity": identity})
                return False
            return True

    async def _persist_ceiling(self, identity: str | None, ceiling: Decimal) -> None:
        try:
            await self.store.set(self._budget_key(identity), str(ceiling))
        except Exception as e:
            logger.warning(f"로컬 예산 저장 실패: {e}", extra={"identity": identity})

    # =========================================================================
    # 내부: 병합 / 확정
    # =========================================================================

    def _normalize_rows(self, rows: list[dict[str, Any]], identity: str) -> list[Record]:
        records = []
        for row in rows or []:
            try:
                records.append(Record.from_remote(row, identity))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"원격 행 정규화 실패, 건너뜀: {e}", extra={"row": row})
        return records

    def _merge_loaded(self, loaded: list[Record]) -> list[Record]:
        """현재 메모리 레코드 뒤에 로컬 저장 목록을 이어 붙임 (id 중복 제거)"""
        seen = {r.id for r in self._records}
        return [*self._records, *(r for r in loaded if r.id not in seen)]

    def _track_loaded_pending(self, loaded: list[Record]) -> None:
        """저장소에서 읽은 미확정(로컬 id) 레코드를 pending으로 등록 (TTL은 로드 시각 기준)"""
        now = self._clock()
        for record in loaded:
            if is_local_id(record.id):
                self._pending.setdefault(record.id, now)

    def _merge_pending(self, fetched: list[Record]) -> list[Record]:
        """TTL 내 미확정 로컬 레코드를 원격 목록 앞에 유지"""
        now = self._clock()
        kept = []
        for record in self._records:
            created = self._pending.get(record.id)
            if created is None:
                continue
            if (now - created).total_seconds() > self.pending_ttl_sec:
                self._pending.pop(record.id, None)
                continue
            kept.append(record)
        return kept + fetched

    def _replace_record(self, record_id: str, record: Record) -> None:
        self._records = [record if r.id == record_id else r for r in self._records]

    @staticmethod
    def _apply_patch(record: Record, patch: RecordPatch) -> Record:
        changes: dict[str, Any] = {}
        if patch.label is not None:
            changes["label"] = patch.label
        if patch.category is not None:
            changes["category"] = patch.category
        if patch.amount is not None:
            changes["amount"] = patch.amount
        if patch.occurred_at is not None:
            changes["occurred_at"] = patch.occurred_at
        return replace(record, **changes)

    async def _confirm_creation(
        self,
        sent: Record,
        row: dict[str, Any],
        identity: str,
        generation: int,
    ) -> Record | None:
        """원격 생성 확정: local id를 원격 id로 교체

        create 진행 중 발생한 로컬 변경을 보정한다.
        - 삭제됨: 원격 행 삭제
        - 수정됨: 변경 필드 원격 전송
        """
        local_id = sent.id
        self._pending.pop(local_id, None)
        confirmed_row = Record.from_remote(row, identity)
        remote_id = confirmed_row.id

        if local_id in self._tombstones:
            self._tombstones.discard(local_id)
            logger.info(
                "확정 전 삭제된 레코드, 원격 삭제",
                extra={"local_id": local_id, "remote_id": remote_id},
            )
            try:
                await self.backend.delete_record(remote_id)
            except Exception as e:
                logger.warning(f"원격 삭제 보정 실패: {e}", extra={"remote_id": remote_id})
            return None

        current = self.get(local_id)
        if current is None:
            # refresh가 먼저 원격 행을 가져온 경우
            return self.get(remote_id)

        if self.get(remote_id) is not None:
            # 원격 행이 이미 목록에 있음: 로컬 사본 제거
            self._records = [r for r in self._records if r.id != local_id]
            await self._persist_records(identity, generation)
            return self.get(remote_id)

        confirmed = replace(
            current,
            id=remote_id,
            created_at=confirmed_row.created_at or current.created_at,
            owner_identity=current.owner_identity or identity,
        )
        self._replace_record(local_id, confirmed)
        await self._persist_records(identity, generation)

        patch = RecordPatch(
            label=current.label if current.label != sent.label else None,
            category=current.category if current.category != sent.category else None,
            amount=current.amount if current.amount != sent.amount else None,
            occurred_at=current.occurred_at if current.occurred_at != sent.occurred_at else None,
        )
        if not patch.is_empty():
            logger.info(
                "확정 전 수정된 레코드, 원격 수정 보정",
                extra={"remote_id": remote_id},
            )
            try:
                await self.backend.update_record(remote_id, patch.to_remote())
            except Exception as e:
                logger.warning(f"원격 수정 보정 실패: {e}", extra={"remote_id": remote_id})

        return confirmed


__all__ = ["LedgerSyncEngine"]
