"""
레코드 식별자 유틸리티

로컬 식별자 생성 및 원격 식별자 판별 기능 제공
- 로컬: local-{epoch_ms}-{counter}-{random}  (클라이언트 생성, 원격 키로 사용 금지)
- 원격: 백엔드가 발급한 UUID (v1~v5, RFC 4122 variant)
"""

import itertools
import re
import secrets
import time

# 로컬 식별자 접두사
LOCAL_ID_PREFIX: str = "local"

_REMOTE_ID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}$"
)

# 프로세스 내 단조 증가 카운터 (같은 밀리초 충돌 방지)
_local_counter = itertools.count(1)


def make_local_id() -> str:
    """로컬 식별자 생성

    프로세스 내에서 유일하며 UUID 형식과 절대 겹치지 않는다.

    Returns:
        local-{epoch_ms}-{counter}-{random} 형식 문자열

    Example:
        >>> make_local_id()
        'local-1732100000000-1-9f2c1a'
    """
    ts_ms = int(time.time() * 1000)
    return f"{LOCAL_ID_PREFIX}-{ts_ms}-{next(_local_counter)}-{secrets.token_hex(3)}"


def is_local_id(value: str | None) -> bool:
    """로컬 식별자인지 확인

    Example:
        >>> is_local_id("local-1732100000000-1-9f2c1a")
        True
        >>> is_local_id("550e8400-e29b-41d4-a716-446655440000")
        False
    """
    if not value or not isinstance(value, str):
        return False

    return value.startswith(f"{LOCAL_ID_PREFIX}-")


def is_remote_id(value: str | None) -> bool:
    """원격 식별자(UUID) 형식인지 확인

    이 형식을 만족하는 ID만 원격 update/delete 대상이 된다.

    Example:
        >>> is_remote_id("550e8400-e29b-41d4-a716-446655440000")
        True
        >>> is_remote_id("local-1732100000000-1-9f2c1a")
        False
    """
    if not value or not isinstance(value, str):
        return False

    return _REMOTE_ID_PATTERN.match(value) is not None
