"""세금 계산 및 감사 기록 조회 API 라우터"""

from typing import List, Optional

from fastapi import APIRouter, Depends

from ...audit.audit_trail_service import AuditTrailService
from ...core.request import TaxType
from ...core.validator import check_vat_registration
from ..deps import get_audit_service
from ..schemas import (
    ERROR_RESPONSES,
    AuditRecordResponse,
    CalculateRequest,
    CalculateResponse,
    StatisticsResponse,
)

router = APIRouter(responses=ERROR_RESPONSES)


@router.post("/calculate", response_model=CalculateResponse)
def calculate_tax(
    body: CalculateRequest,
    service: AuditTrailService = Depends(get_audit_service)
):
    """세금 계산 후 감사 레코드 저장

    검증 → 세율 설정 조회 → 계산 → 새 버전 저장 순으로 처리합니다.
    실패 시 아무것도 저장되지 않습니다.
    """
    record = service.record_calculation(
        company_id=body.company_id,
        user_id=body.user_id,
        tax_type=body.tax_type,
        request=body.to_request_data()
    )

    vat_registration = None
    if record.tax_type == TaxType.VAT:
        config = service.registry.get_by_version(record.rate_config_version)
        vat_registration = check_vat_registration(
            record.calculation_request().total_revenue, config
        )

    return CalculateResponse(
        result=record.result,
        audit_record_id=record.id,
        version=record.version,
        vat_registration=vat_registration
    )


@router.get("/history", response_model=List[AuditRecordResponse])
def get_history(
    company_id: str,
    tax_type: str,
    period: Optional[str] = None,
    service: AuditTrailService = Depends(get_audit_service)
):
    """모든 버전 조회 (대체된 레코드 포함)"""
    records = service.get_history(company_id, tax_type, period)
    return [AuditRecordResponse(**record.to_dict()) for record in records]


@router.get("/breakdown/{record_id}", response_model=AuditRecordResponse)
def get_breakdown(
    record_id: str,
    service: AuditTrailService = Depends(get_audit_service)
):
    """레코드 전체 조회 (계산 단계 포함)"""
    return AuditRecordResponse(**service.get_breakdown(record_id).to_dict())


@router.get("/statistics/{company_id}", response_model=StatisticsResponse)
def get_statistics(
    company_id: str,
    service: AuditTrailService = Depends(get_audit_service)
):
    """회사별 통계"""
    return StatisticsResponse(**service.get_statistics(company_id).to_dict())
