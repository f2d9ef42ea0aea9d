"""InputValidator: 계산 요청 입력 검증

계산 전에 요청을 점검하여 위반 사항을 모두 모아 반환합니다.
부분 결과는 만들지 않으며, 순수 함수로 동작합니다.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .exceptions import ValidationError
from .money import ZERO
from .rate_config import RateConfig
from .request import CalculationRequest, TaxPeriod, TaxType


_TRN = re.compile(r"^\d{15}$")


@dataclass(frozen=True)
class ValidationResult:
    """검증 결과

    Attributes:
        valid: 위반 사항이 없으면 True
        errors: 위반된 규칙 설명 목록
    """

    valid: bool
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'valid': self.valid, 'errors': list(self.errors)}


class InputValidator:
    """계산 요청 검증기

    검사 순서:
        1. 세목별 필수 필드
        2. 금액 필드 음수 여부
        3. 세율 필드 범위 [0, 1]
        4. TRN 형식 (15자리 숫자)
        5. 필드 간 정합성 (자유구역 관련 속성)
    """

    def validate(self, request: CalculationRequest) -> ValidationResult:
        errors: List[str] = []
        errors.extend(self._check_required(request))
        errors.extend(self._check_non_negative(request))
        errors.extend(self._check_rates(request))
        errors.extend(self._check_trn(request))
        errors.extend(self._check_cross_fields(request))
        return ValidationResult(valid=not errors, errors=errors)

    def validate_or_raise(self, request: CalculationRequest) -> None:
        """검증 실패 시 ValidationError 발생

        Raises:
            ValidationError: 하나 이상의 규칙 위반
        """
        result = self.validate(request)
        if not result.valid:
            raise ValidationError(result.errors)

    def _check_required(self, request: CalculationRequest) -> List[str]:
        errors = []

        if not request.company_id:
            errors.append("company_id is required")

        if not request.period:
            errors.append("period is required")
        else:
            try:
                TaxPeriod.parse(request.period)
            except ValueError as e:
                errors.append(str(e))

        if request.total_revenue is None:
            errors.append("total_revenue is required")

        if request.total_expenses is None and not request.expense_lines:
            errors.append("total_expenses or expense_lines is required")

        if request.tax_type == TaxType.CIT:
            if request.attributes.free_zone_status is None:
                errors.append("free_zone_status is required for CIT")
            if request.attributes.small_business_election is None:
                errors.append("small_business_election is required for CIT")

        return errors

    def _check_non_negative(self, request: CalculationRequest) -> List[str]:
        errors = []
        amounts = [
            ('total_revenue', request.total_revenue),
            ('total_expenses', request.total_expenses),
            ('qualifying_income', request.attributes.qualifying_income),
        ]
        amounts.extend(
            (f"expense_lines[{index}].amount", line.amount)
            for index, line in enumerate(request.expense_lines)
        )

        for name, value in amounts:
            if value is None:
                continue
            if not value.is_finite():
                errors.append(f"{name} must be a finite number (got {value})")
            elif value < ZERO:
                errors.append(f"{name} must not be negative (got {value})")
        return errors

    def _check_rates(self, request: CalculationRequest) -> List[str]:
        rate = request.vat_rate_override
        if rate is not None and not (rate.is_finite() and ZERO <= rate <= Decimal("1")):
            return [f"vat_rate_override must be within [0, 1] (got {rate})"]
        return []

    def _check_trn(self, request: CalculationRequest) -> List[str]:
        if request.trn is not None and not _TRN.match(str(request.trn)):
            return ["trn must be exactly 15 digits"]
        return []

    def _check_cross_fields(self, request: CalculationRequest) -> List[str]:
        errors = []
        attributes = request.attributes

        if (request.tax_type == TaxType.CIT
                and attributes.free_zone_status
                and attributes.qualifying_income is None):
            errors.append("qualifying_income is required when free_zone_status is claimed")

        if attributes.qfzp_status and not attributes.free_zone_status:
            errors.append("qfzp_status requires free_zone_status")

        return errors


def check_vat_registration(revenue: Decimal, config: RateConfig,
                           current_status: Optional[str] = None) -> Dict[str, Any]:
    """VAT 등록 의무 안내 (계산을 막지 않는 참고 정보)

    Args:
        revenue: 연간 과세 공급액
        config: 적용 세율 설정
        current_status: 현재 등록 상태 (예: "REGISTERED")

    Returns:
        mandatory / voluntary_eligible 여부와 기준금액
    """
    mandatory_threshold = config.vat_registration_threshold
    voluntary_threshold = mandatory_threshold / 2
    mandatory = revenue >= mandatory_threshold
    voluntary = not mandatory and revenue >= voluntary_threshold

    if mandatory:
        message = "VAT registration is mandatory"
    elif voluntary:
        message = "voluntary VAT registration is available"
    else:
        message = "below the voluntary registration threshold"

    return {
        'revenue': str(revenue),
        'mandatory': mandatory,
        'voluntary_eligible': voluntary,
        'mandatory_threshold': str(mandatory_threshold),
        'voluntary_threshold': str(voluntary_threshold),
        'already_registered': current_status == "REGISTERED",
        'message': message,
        'rate_config_version': config.jurisdiction_version,
    }
