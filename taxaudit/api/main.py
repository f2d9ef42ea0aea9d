"""FastAPI 애플리케이션 메인

실행:
    uvicorn taxaudit.api.main:create_app --factory
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..audit.audit_middleware import RequestLoggingMiddleware
from ..audit.audit_trail_service import AuditTrailService
from ..core.exceptions import (
    ConcurrencyConflict,
    ConfigurationError,
    RecordNotFoundError,
    StateError,
    TaxEngineError,
    ValidationError,
)
from ..core.rate_config import RateConfigRegistry
from ..database import SqlAlchemyAuditStore, build_engine, build_session_factory, init_db
from ..logging_config import configure_logging
from ..reports.summary_report import SummaryReportGenerator
from ..settings import Settings
from .routers import audit, calculate, reports

logger = logging.getLogger(__name__)

# 예외 -> HTTP 상태 코드 (위에서부터 먼저 일치하는 항목)
_STATUS_CODES = (
    (ValidationError, 422),
    (ConfigurationError, 422),
    (RecordNotFoundError, 404),
    (ConcurrencyConflict, 409),
    (StateError, 409),
)


async def tax_engine_error_handler(request: Request, exc: TaxEngineError):
    """엔진 예외를 {"error": code, "detail": ...} 응답으로 변환"""
    status_code = 400
    for exc_type, code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            status_code = code
            break

    logger.info(
        "request rejected path=%s error=%s status=%s detail=%s",
        request.url.path, exc.code, status_code, exc,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def build_services(settings: Settings):
    """설정으로 서비스 객체 생성 (SQL 저장소 + YAML 세율 설정)"""
    engine = build_engine(settings.database_url, echo=settings.sql_echo)
    init_db(engine)
    store = SqlAlchemyAuditStore(build_session_factory(engine))
    registry = RateConfigRegistry.from_yaml(settings.rates_file)
    service = AuditTrailService(store, registry, max_retries=settings.max_retries)
    return service, SummaryReportGenerator(store)


def create_app(
    service: Optional[AuditTrailService] = None,
    report_generator: Optional[SummaryReportGenerator] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """FastAPI 앱 생성

    Args:
        service: 감사 추적 서비스 (없으면 설정으로 생성)
        report_generator: 보고서 생성기 (없으면 서비스 저장소로 생성)
        settings: 설정 (없으면 환경 변수)
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    if service is None:
        service, default_generator = build_services(settings)
        report_generator = report_generator or default_generator
    if report_generator is None:
        report_generator = SummaryReportGenerator(service.store)

    app = FastAPI(
        title=settings.api_title,
        description="UAE VAT / Corporate Tax calculation with an immutable, versioned audit trail",
        version=settings.api_version,
    )
    app.state.audit_service = service
    app.state.report_generator = report_generator
    app.state.settings = settings

    # CORS 설정
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(TaxEngineError, tax_engine_error_handler)

    # 라우터 등록
    app.include_router(calculate.router, prefix="/api/v1", tags=["세금계산"])
    app.include_router(audit.router, prefix="/api/v1", tags=["검증/정정"])
    app.include_router(reports.router, prefix="/api/v1", tags=["보고서"])

    @app.get("/")
    async def root():
        """루트 엔드포인트"""
        return {
            "message": settings.api_title,
            "version": settings.api_version,
            "docs": "/docs"
        }

    @app.get("/health")
    @app.get("/api/v1/health")
    async def health_check():
        """헬스체크 엔드포인트"""
        return {"status": "healthy"}

    return app
