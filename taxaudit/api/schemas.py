"""API 요청/응답 스키마 (Pydantic)"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# 계산 관련 스키마
# ============================================================================

class CompanyAttributesSchema(BaseModel):
    """회사 속성 (분기 판단에 사용, 누락 시 기본값을 추정하지 않음)"""
    free_zone_status: Optional[bool] = Field(None, description="자유구역 소재 여부")
    small_business_election: Optional[bool] = Field(None, description="소기업 감면 선택 여부")
    qfzp_status: Optional[bool] = Field(None, description="적격 자유구역 법인(QFZP) 여부")
    qualifying_income: Optional[Decimal] = Field(None, description="적격 소득")


class ExpenseLineSchema(BaseModel):
    """비용 항목"""
    category: str = Field(..., description="비용 분류")
    amount: Decimal = Field(..., description="금액")
    vat_deductible: bool = Field(True, description="매입세액 공제 가능 여부")
    cit_deductible: bool = Field(True, description="법인세 손금 인정 여부")


class CalculateRequest(BaseModel):
    """세금 계산 요청

    금액 검증(음수, 필수 여부)은 엔진 검증기가 모든 위반을 모아서 보고합니다.
    """
    company_id: str = Field(..., description="회사 식별자")
    user_id: str = Field(..., description="요청자")
    tax_type: str = Field(..., description="VAT 또는 CIT")
    period: str = Field(..., description="YYYY, YYYY-MM 또는 YYYY-Qn")
    revenue: Optional[Decimal] = Field(None, description="총 매출")
    expenses: Optional[Decimal] = Field(None, description="총 비용")
    expense_lines: List[ExpenseLineSchema] = Field(default_factory=list)
    company_attributes: CompanyAttributesSchema = Field(default_factory=CompanyAttributesSchema)
    trn: Optional[str] = Field(None, description="과세사업자 등록번호 (15자리)")
    vat_rate_override: Optional[Decimal] = Field(None, description="세율 확인용 (계산에는 설정 세율 사용)")
    reference_id: Optional[str] = Field(None, description="외부 참조 ID")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "company_id": "ACME-LLC",
            "user_id": "accountant-1",
            "tax_type": "CIT",
            "period": "2024",
            "revenue": "5000000",
            "expenses": "1000000",
            "company_attributes": {
                "free_zone_status": False,
                "small_business_election": False
            }
        }
    })

    def to_request_data(self) -> Dict[str, Any]:
        """CalculationRequest.from_dict 입력 형태로 변환"""
        return {
            'company_id': self.company_id,
            'tax_type': self.tax_type,
            'period': self.period,
            'total_revenue': self.revenue,
            'total_expenses': self.expenses,
            'expense_lines': [line.model_dump() for line in self.expense_lines],
            'attributes': self.company_attributes.model_dump(),
            'trn': self.trn,
            'vat_rate_override': self.vat_rate_override,
            'reference_id': self.reference_id,
        }


class AuditRecordResponse(BaseModel):
    """감사 레코드"""
    id: str
    company_id: str
    tax_type: str
    period: str
    version: int
    input_data: Dict[str, Any]
    result: Dict[str, Any]
    rate_config_version: str
    created_at: datetime
    created_by: str
    validation_status: str
    validated_by: Optional[str] = None
    validated_at: Optional[datetime] = None
    superseded_by: Optional[str] = None


class CalculateResponse(BaseModel):
    """계산 응답"""
    result: Dict[str, Any]
    audit_record_id: str
    version: int
    vat_registration: Optional[Dict[str, Any]] = Field(
        None, description="VAT 등록 의무 안내 (VAT 계산 시)"
    )


class ValidateRequest(BaseModel):
    user_id: str = Field(..., description="검증자")


class VerificationResponse(BaseModel):
    """재계산 비교 결과"""
    record_id: str
    matches: bool
    stored_total: str
    recomputed_total: str
    difference: str
    rate_config_version: str


class StatisticsResponse(BaseModel):
    company_id: str
    totals_by_type: Dict[str, str]
    total_calculations: int
    validated_count: int
    pending_validations: int
    pending_amendments: int
    latest_versions_by_period: Dict[str, int]


# ============================================================================
# 정정 관련 스키마
# ============================================================================

class AmendRequest(BaseModel):
    """정정 요청"""
    record_id: str = Field(..., description="원본 감사 레코드 ID")
    requested_by: str = Field(..., description="요청자")
    reason: str = Field(..., description="정정 사유")
    proposed_input_data: Dict[str, Any] = Field(..., description="변경할 입력 필드")


class ResolveAmendmentRequest(BaseModel):
    approve: bool
    resolved_by: str


class AmendmentResponse(BaseModel):
    id: str
    original_record_id: str
    company_id: str
    tax_type: str
    period: str
    requested_by: str
    reason: str
    proposed_input_data: Dict[str, Any]
    status: str
    resulting_record_id: Optional[str] = None
    created_at: datetime
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None


# ============================================================================
# 보고서 관련 스키마
# ============================================================================

class GenerateReportRequest(BaseModel):
    company_id: str
    tax_type: str
    period_from: str = Field(..., description="시작 기간 (예: 2024-Q1)")
    period_to: str = Field(..., description="종료 기간 (예: 2024-Q4)")
    generated_by: Optional[str] = None


class SummaryReportResponse(BaseModel):
    id: str
    company_id: str
    tax_type: str
    period_from: str
    period_to: str
    included_record_ids: List[str]
    totals: Dict[str, Any]
    currency: str
    generated_at: datetime
    generated_by: Optional[str] = None


class ExportRequest(BaseModel):
    report_id: str
    format: str = Field("JSON", description="JSON 또는 CSV")


class ErrorResponse(BaseModel):
    """에러 응답"""
    error: str
    detail: str
    errors: Optional[List[str]] = None
    retryable: Optional[bool] = None


# 라우터 공통 에러 응답 (OpenAPI 문서용)
ERROR_RESPONSES = {
    404: {"model": ErrorResponse, "description": "레코드 없음"},
    409: {"model": ErrorResponse, "description": "버전 경합 또는 잘못된 상태 전이"},
    422: {"model": ErrorResponse, "description": "입력 검증 실패 또는 세율 설정 없음"},
}
