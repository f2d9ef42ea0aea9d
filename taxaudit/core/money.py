"""금액 처리 헬퍼

모든 금액은 Decimal로 다룹니다. float는 str()을 거쳐 변환하여
이진 부동소수점 오차가 유입되지 않도록 합니다.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

# 최소 통화 단위 (AED 1 fils)
FILS = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """값을 Decimal로 변환

    Args:
        value: int, str, float 또는 Decimal

    Returns:
        변환된 Decimal

    Raises:
        ValueError: 숫자로 해석할 수 없거나 NaN/Infinity인 경우
    """
    if isinstance(value, bool):
        raise ValueError(f"boolean is not a monetary amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValueError(f"not a decimal amount: {value!r}")

    if not result.is_finite():
        raise ValueError(f"amount must be finite: {value!r}")
    return result


def optional_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return to_decimal(value)


def round_money(amount: Decimal) -> Decimal:
    """최종 합계에만 적용하는 반올림 (round-half-up, fils 단위)"""
    return amount.quantize(FILS, rounding=ROUND_HALF_UP)


def decimal_str(value: Optional[Decimal]) -> Optional[str]:
    """직렬화용 문자열 (정규화하지 않아 자릿수를 보존)"""
    if value is None:
        return None
    return str(value)
