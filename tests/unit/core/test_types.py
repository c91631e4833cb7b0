"""
core/types.py 테스트

Record 정규화/직렬화, 저장소 키, RateQuote 캐시 형식 확인
"""

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from core.types import (
    LedgerOperation,
    RateCacheKey,
    RateQuote,
    Record,
    RecordPatch,
    StorageKey,
    SyncOutcome,
)

OWNER = "11111111-1111-4111-8111-111111111111"


class TestLedgerOperation:
    """LedgerOperation 테스트"""

    def test_values(self) -> None:
        """값 확인"""
        assert LedgerOperation.ADD.value == "ADD"
        assert LedgerOperation("REFRESH") == LedgerOperation.REFRESH


class TestRecordFromRemote:
    """원격 행 정규화 테스트"""

    def test_full_row(self) -> None:
        """모든 필드가 있는 행"""
        row = {
            "id": "550e8400-e29b-41d4-a716-446655440000",
            "title": "Lunch",
            "category": "Food",
            "amount": "150.50",
            "date": "2025-11-20T10:00:00Z",
            "created_at": "2025-11-20T10:00:05+00:00",
            "owner_id": OWNER,
        }

        record = Record.from_remote(row)

        assert record.label == "Lunch"
        assert record.category == "Food"
        assert record.amount == Decimal("150.50")
        assert record.occurred_at == datetime(2025, 11, 20, 10, 0, tzinfo=timezone.utc)
        assert record.owner_identity == OWNER

    def test_missing_fields_defaulted(self) -> None:
        """제목/카테고리/날짜 누락 시 기본값"""
        row = {"id": "abc", "amount": 10, "created_at": "2025-11-20T09:00:00Z"}

        record = Record.from_remote(row, OWNER)

        assert record.label == ""
        assert record.category == "General"
        assert record.occurred_at == datetime(2025, 11, 20, 9, 0, tzinfo=timezone.utc)
        assert record.owner_identity == OWNER

    def test_missing_id_raises(self) -> None:
        """id 누락은 KeyError"""
        with pytest.raises(KeyError):
            Record.from_remote({"title": "x"})


class TestRecordPersistence:
    """로컬 저장 형식 테스트"""

    def test_round_trip(self) -> None:
        """to_dict → from_dict 동일"""
        record = Record(
            id="local-1-1-abcdef",
            label="Bus",
            category="Transport",
            amount=Decimal("20.25"),
            occurred_at=datetime(2025, 11, 20, tzinfo=timezone.utc),
            owner_identity=OWNER,
        )

        data = json.loads(json.dumps(record.to_dict()))

        assert data["amount"] == "20.25"
        assert Record.from_dict(data) == record

    def test_invalid_amount_raises(self) -> None:
        """금액 손상 시 ValueError"""
        with pytest.raises(ValueError):
            Record.from_dict({"id": "x", "amount": "abc", "occurred_at": "2025-11-20T00:00:00Z"})


class TestRecordPatch:
    """RecordPatch 테스트"""

    def test_is_empty(self) -> None:
        assert RecordPatch().is_empty() is True
        assert RecordPatch(label="").is_empty() is False

    def test_to_remote_only_changed_fields(self) -> None:
        """변경 필드만 원격 컬럼명으로"""
        patch = RecordPatch(label=" Dinner ", amount=Decimal("12.5"))

        assert patch.to_remote() == {"title": "Dinner", "amount": "12.5"}


class TestStorageKey:
    """StorageKey 테스트"""

    def test_identity_key(self) -> None:
        assert StorageKey("expenses", OWNER).to_storage_key() == f"expenses_{OWNER}"

    def test_anonymous_key(self) -> None:
        assert str(StorageKey("budget")) == "budget_anon"

    def test_namespaces_do_not_collide(self) -> None:
        """네임스페이스가 다르면 같은 identity라도 키가 다름"""
        assert StorageKey("expenses", OWNER) != StorageKey("budget", OWNER)
        assert StorageKey("expenses", OWNER).to_storage_key() != StorageKey("budget", OWNER).to_storage_key()

    @pytest.mark.parametrize("namespace", ["", "my_ns"])
    def test_invalid_namespace(self, namespace) -> None:
        with pytest.raises(ValueError):
            StorageKey(namespace, OWNER)


class TestRateCacheKey:
    """RateCacheKey 테스트"""

    def test_key_format(self) -> None:
        assert RateCacheKey("hnl", "usd").to_storage_key() == "fxrate_HNL_USD"

    def test_prefix(self) -> None:
        assert RateCacheKey("HNL", "USD").to_storage_key().startswith(RateCacheKey.prefix())


class TestRateQuote:
    """RateQuote 테스트"""

    def test_freshness(self) -> None:
        fetched = datetime(2025, 11, 20, 12, 0, tzinfo=timezone.utc)
        quote = RateQuote("HNL", "USD", Decimal("0.04"), fetched)

        assert quote.is_fresh(fetched + timedelta(minutes=30), 3600) is True
        assert quote.is_fresh(fetched + timedelta(hours=1), 3600) is False

    def test_json_format(self) -> None:
        fetched = datetime(2025, 11, 20, 12, 0, tzinfo=timezone.utc)
        quote = RateQuote("HNL", "USD", Decimal("0.04"), fetched)

        data = json.loads(quote.to_json())

        assert data == {
            "base": "HNL",
            "target": "USD",
            "rate": "0.04",
            "timestamp": "2025-11-20T12:00:00+00:00",
        }
        assert RateQuote.from_json(quote.to_json()) == quote

    @pytest.mark.parametrize(
        "raw",
        [
            "[]",
            '{"rate": "0", "timestamp": "2025-11-20T12:00:00Z"}',
            '{"rate": "0.04"}',
            "not json",
        ],
    )
    def test_invalid_entries(self, raw) -> None:
        with pytest.raises(ValueError):
            RateQuote.from_json(raw)


class TestSyncOutcome:
    """SyncOutcome 테스트"""

    def test_local_only(self) -> None:
        assert SyncOutcome(LedgerOperation.ADD).local_only is True
        assert SyncOutcome(LedgerOperation.ADD, remote_ok=True).local_only is False
