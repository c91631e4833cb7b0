"""
유틸리티 패키지

식별자 생성/판별, 타임존 처리 등 공통 유틸리티
"""

from core.utils.identifiers import (
    LOCAL_ID_PREFIX,
    make_local_id,
    is_local_id,
    is_remote_id,
)
from core.utils.money import (
    to_decimal,
    parse_amount,
    parse_ceiling,
    parse_budget_text,
)
from core.utils.timezone import (
    now_utc,
    ensure_utc,
    parse_iso,
    utc_from_timestamp_ms,
    to_timestamp_ms,
)

__all__ = [
    "LOCAL_ID_PREFIX",
    "make_local_id",
    "is_local_id",
    "is_remote_id",
    "to_decimal",
    "parse_amount",
    "parse_ceiling",
    "parse_budget_text",
    "now_utc",
    "ensure_utc",
    "parse_iso",
    "utc_from_timestamp_ms",
    "to_timestamp_ms",
]
