"""
금액 파싱 유틸리티

모든 금액은 Decimal. float 입력은 str 경유로 변환하여 이진 오차를 피한다.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any

from core.errors import InvalidAmountError

# 숫자, 소수점, 부호 이외 문자 (통화 기호, 공백, 천 단위 구분자 등)
_NON_NUMERIC = re.compile(r"[^0-9.\-]+")


def to_decimal(value: Any) -> Decimal | None:
    """임의 값을 유한한 Decimal로 변환

    Returns:
        Decimal 또는 None (변환 불가, NaN, Infinity)
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None

    if not result.is_finite():
        return None
    return result


def parse_amount(value: Any) -> Decimal:
    """레코드 금액 검증 (유한한 양수)

    Raises:
        InvalidAmountError: 0 이하, NaN, 숫자 아님
    """
    amount = to_decimal(value)
    if amount is None or amount <= 0:
        raise InvalidAmountError(value)
    return amount


def parse_ceiling(value: Any) -> Decimal:
    """예산 한도 검증 (유한한 0 이상 값)

    Raises:
        InvalidAmountError: 음수, NaN, 숫자 아님
    """
    ceiling = to_decimal(value)
    if ceiling is None or ceiling < 0:
        raise InvalidAmountError(value, message="Invalid ceiling")
    return ceiling


def parse_budget_text(value: Any) -> Decimal | None:
    """프로필의 budget 필드 파싱

    "L 1,500.00" 처럼 통화 기호나 구분자가 섞인 값도 허용.

    Example:
        >>> parse_budget_text("L 1,500.00")
        Decimal('1500.00')
        >>> parse_budget_text(None) is None
        True
    """
    if value is None:
        return None

    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return to_decimal(value)

    cleaned = _NON_NUMERIC.sub("", str(value))
    if not cleaned:
        return None
    return to_decimal(cleaned)
