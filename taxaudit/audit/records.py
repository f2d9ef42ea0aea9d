"""감사 레코드 모델

AuditRecord는 계산 한 번의 고정된 사본입니다. 생성 후에는
검증 상태(validation_status, validated_by, validated_at)와
superseded_by만 한 번씩 설정될 수 있습니다.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from ..core.calculation_trace import CalculationResult
from ..core.money import to_decimal
from ..core.request import CalculationRequest, TaxType


class ValidationStatus(str, Enum):
    RECORDED = "RECORDED"
    VALIDATED = "VALIDATED"


class AmendmentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


@dataclass
class AuditRecord:
    """감사 레코드

    Attributes:
        id: 레코드 ID (UUID4)
        company_id: 회사 식별자
        tax_type: 세목
        period: 신고 기간
        version: (company_id, tax_type, period)별 1부터 증가하는 버전
        input_data: 계산 요청의 고정 사본 (CalculationRequest.to_dict)
        result: 계산 결과의 고정 사본 (CalculationResult.to_dict)
        rate_config_version: 사용된 세율 설정 버전
        created_at: 생성 시각
        created_by: 생성자
        validation_status: RECORDED → VALIDATED (단방향)
        validated_by: 검증자
        validated_at: 검증 시각
        superseded_by: 이 레코드를 대체한 정정 레코드 ID
    """

    id: str
    company_id: str
    tax_type: TaxType
    period: str
    version: int
    input_data: Dict[str, Any]
    result: Dict[str, Any]
    rate_config_version: str
    created_at: datetime
    created_by: str
    validation_status: ValidationStatus = ValidationStatus.RECORDED
    validated_by: Optional[str] = None
    validated_at: Optional[datetime] = None
    superseded_by: Optional[str] = None

    @property
    def key(self) -> tuple:
        return (self.company_id, self.tax_type.value, self.period)

    @property
    def is_superseded(self) -> bool:
        return self.superseded_by is not None

    @property
    def total_amount(self) -> Decimal:
        return to_decimal(self.result['total_amount'])

    def calculation_result(self) -> CalculationResult:
        return CalculationResult.from_dict(self.result)

    def calculation_request(self) -> CalculationRequest:
        return CalculationRequest.from_dict(self.input_data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'company_id': self.company_id,
            'tax_type': self.tax_type.value,
            'period': self.period,
            'version': self.version,
            'input_data': self.input_data,
            'result': self.result,
            'rate_config_version': self.rate_config_version,
            'created_at': self.created_at.isoformat(),
            'created_by': self.created_by,
            'validation_status': self.validation_status.value,
            'validated_by': self.validated_by,
            'validated_at': self.validated_at.isoformat() if self.validated_at else None,
            'superseded_by': self.superseded_by,
        }

    def __str__(self) -> str:
        return f"AuditRecord({self.company_id}/{self.tax_type.value}/{self.period} v{self.version})"


@dataclass
class AmendmentRequest:
    """정정 요청

    PENDING에서 APPROVED(새 버전 생성) 또는 REJECTED(종료)로만 전이합니다.
    """

    id: str
    original_record_id: str
    company_id: str
    tax_type: TaxType
    period: str
    requested_by: str
    reason: str
    proposed_input_data: Dict[str, Any]
    created_at: datetime
    status: AmendmentStatus = AmendmentStatus.PENDING
    resulting_record_id: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'original_record_id': self.original_record_id,
            'company_id': self.company_id,
            'tax_type': self.tax_type.value,
            'period': self.period,
            'requested_by': self.requested_by,
            'reason': self.reason,
            'proposed_input_data': self.proposed_input_data,
            'status': self.status.value,
            'resulting_record_id': self.resulting_record_id,
            'created_at': self.created_at.isoformat(),
            'resolved_by': self.resolved_by,
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None,
        }


@dataclass(frozen=True)
class VerificationResult:
    """저장된 레코드 재계산 비교 결과"""

    record_id: str
    matches: bool
    stored_total: Decimal
    recomputed_total: Decimal
    difference: Decimal
    rate_config_version: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'record_id': self.record_id,
            'matches': self.matches,
            'stored_total': str(self.stored_total),
            'recomputed_total': str(self.recomputed_total),
            'difference': str(self.difference),
            'rate_config_version': self.rate_config_version,
        }


@dataclass
class CompanyStatistics:
    """회사별 통계 (파생 조회)"""

    company_id: str
    totals_by_type: Dict[str, Decimal] = field(default_factory=dict)
    total_calculations: int = 0
    validated_count: int = 0
    pending_validations: int = 0
    pending_amendments: int = 0
    latest_versions_by_period: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'company_id': self.company_id,
            'totals_by_type': {key: str(value) for key, value in self.totals_by_type.items()},
            'total_calculations': self.total_calculations,
            'validated_count': self.validated_count,
            'pending_validations': self.pending_validations,
            'pending_amendments': self.pending_amendments,
            'latest_versions_by_period': dict(self.latest_versions_by_period),
        }
