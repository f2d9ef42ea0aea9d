"""검증 및 정정 API 라우터"""

from typing import List, Optional

from fastapi import APIRouter, Depends

from ...audit.audit_trail_service import AuditTrailService
from ...audit.records import AmendmentStatus
from ...core.exceptions import ValidationError
from ..deps import get_audit_service
from ..schemas import (
    ERROR_RESPONSES,
    AmendmentResponse,
    AmendRequest,
    AuditRecordResponse,
    ResolveAmendmentRequest,
    ValidateRequest,
    VerificationResponse,
)

router = APIRouter(responses=ERROR_RESPONSES)


@router.post("/validate/{record_id}", response_model=AuditRecordResponse)
def validate_record(
    record_id: str,
    body: ValidateRequest,
    service: AuditTrailService = Depends(get_audit_service)
):
    """계산 검증 (RECORDED → VALIDATED)"""
    record = service.validate_calculation(record_id, body.user_id)
    return AuditRecordResponse(**record.to_dict())


@router.post("/verify/{record_id}", response_model=VerificationResponse)
def verify_record(
    record_id: str,
    service: AuditTrailService = Depends(get_audit_service)
):
    """저장된 입력으로 재계산하여 저장된 금액과 비교"""
    return VerificationResponse(**service.verify_record(record_id).to_dict())


@router.post("/amend", response_model=AmendmentResponse)
def request_amendment(
    body: AmendRequest,
    service: AuditTrailService = Depends(get_audit_service)
):
    """정정 요청 생성 (원본은 변경되지 않음)"""
    amendment = service.request_amendment(
        original_record_id=body.record_id,
        requested_by=body.requested_by,
        reason=body.reason,
        proposed_input_data=body.proposed_input_data
    )
    return AmendmentResponse(**amendment.to_dict())


@router.post("/amend/{amendment_id}/resolve", response_model=Optional[AuditRecordResponse])
def resolve_amendment(
    amendment_id: str,
    body: ResolveAmendmentRequest,
    service: AuditTrailService = Depends(get_audit_service)
):
    """정정 요청 승인/거절

    승인 시 새 버전 레코드를 반환하고, 거절 시 null을 반환합니다.
    """
    record = service.resolve_amendment(amendment_id, body.approve, body.resolved_by)
    if record is None:
        return None
    return AuditRecordResponse(**record.to_dict())


@router.get("/amendments", response_model=List[AmendmentResponse])
def list_amendments(
    company_id: Optional[str] = None,
    status: Optional[str] = None,
    service: AuditTrailService = Depends(get_audit_service)
):
    """정정 요청 목록"""
    amendment_status = None
    if status is not None:
        try:
            amendment_status = AmendmentStatus(status.upper())
        except ValueError:
            raise ValidationError([f"status must be one of PENDING, APPROVED, REJECTED (got {status!r})"])

    amendments = service.list_amendments(company_id, amendment_status)
    return [AmendmentResponse(**amendment.to_dict()) for amendment in amendments]
