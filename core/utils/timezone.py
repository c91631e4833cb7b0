"""
타임존 유틸리티

내부 저장: UTC (ISO-8601 문자열) 원칙 준수를 위한 헬퍼 함수
"""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """현재 UTC 시간 반환 (타임존 명시)

    datetime.now(timezone.utc)의 축약형.

    Returns:
        현재 UTC 시간 (tzinfo=timezone.utc)
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """naive datetime은 UTC로 간주하여 타임존 부여"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso(value: str | datetime | None) -> datetime | None:
    """ISO-8601 문자열을 UTC datetime으로 변환

    PostgREST의 "Z" 접미사와 "+00:00" 오프셋 모두 처리.

    Args:
        value: ISO 문자열, datetime, 또는 None

    Returns:
        UTC datetime 또는 None (빈 값/파싱 실패)

    Example:
        >>> parse_iso("2025-11-20T10:00:00Z")
        datetime(2025, 11, 20, 10, 0, tzinfo=timezone.utc)
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)

    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def utc_from_timestamp_ms(ts_ms: int) -> datetime:
    """밀리초 타임스탬프를 UTC datetime으로 변환

    Args:
        ts_ms: Unix 타임스탬프 (밀리초)

    Returns:
        UTC datetime

    Example:
        >>> utc_from_timestamp_ms(1708444800000)
        datetime(2024, 2, 20, 16, 0, 0, tzinfo=timezone.utc)
    """
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)


def to_timestamp_ms(dt: datetime) -> int:
    """datetime을 밀리초 타임스탬프로 변환

    Args:
        dt: datetime 객체 (타임존 포함 권장)

    Returns:
        Unix 타임스탬프 (밀리초)
    """
    return int(ensure_utc(dt).timestamp() * 1000)
