"""FastAPI 의존성

서비스 객체는 create_app에서 app.state에 주입됩니다.
"""

from fastapi import Request

from ..audit.audit_trail_service import AuditTrailService
from ..reports.summary_report import SummaryReportGenerator


def get_audit_service(request: Request) -> AuditTrailService:
    return request.app.state.audit_service


def get_report_generator(request: Request) -> SummaryReportGenerator:
    return request.app.state.report_generator
