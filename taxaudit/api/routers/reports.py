"""요약 보고서 및 출력 API 라우터"""

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from ...reports.summary_report import SummaryReportGenerator
from ..deps import get_report_generator
from ..schemas import (
    ERROR_RESPONSES, ExportRequest, GenerateReportRequest, SummaryReportResponse,
)

router = APIRouter(responses=ERROR_RESPONSES)


@router.post("/report/generate", response_model=SummaryReportResponse)
def generate_report(
    body: GenerateReportRequest,
    generator: SummaryReportGenerator = Depends(get_report_generator)
):
    """기간 범위 요약 보고서 생성 (기간별 최신, 대체되지 않은 레코드)"""
    report = generator.generate(
        company_id=body.company_id,
        tax_type=body.tax_type,
        period_from=body.period_from,
        period_to=body.period_to,
        generated_by=body.generated_by
    )
    return SummaryReportResponse(**report.to_dict())


@router.get("/report/{report_id}", response_model=SummaryReportResponse)
def get_report(
    report_id: str,
    generator: SummaryReportGenerator = Depends(get_report_generator)
):
    """생성된 보고서 조회"""
    return SummaryReportResponse(**generator.get_report(report_id).to_dict())


@router.post("/export")
def export_report(
    body: ExportRequest,
    generator: SummaryReportGenerator = Depends(get_report_generator)
):
    """보고서 출력 (JSON, CSV)

    저장된 계산 단계를 그대로 직렬화합니다.
    """
    document = generator.export(body.report_id, body.format)
    return Response(
        content=document.content,
        media_type=document.media_type,
        headers={"Content-Disposition": f'attachment; filename="{document.filename}"'}
    )
