"""FastAPI 요청 로깅 미들웨어"""

import logging
import time
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """API 요청/응답 로깅 미들웨어

    모든 요청의 메서드, 경로, 상태 코드, 처리 시간을 기록합니다.
    경로에 감사 레코드/정정 요청 ID가 있으면 함께 남깁니다.
    """

    def __init__(self, app: ASGIApp, logger_name: Optional[str] = None):
        super().__init__(app)
        self.logger = logging.getLogger(logger_name) if logger_name else logger

    async def dispatch(self, request: Request, call_next):
        """요청 처리 및 로깅

        Args:
            request: HTTP 요청
            call_next: 다음 미들웨어/핸들러

        Returns:
            HTTP 응답
        """
        start_time = time.perf_counter()
        resource_id = self._extract_resource_id(request.url.path)

        try:
            response = await call_next(request)
        except Exception:
            self.logger.exception(
                "request failed method=%s path=%s resource_id=%s elapsed_ms=%.1f",
                request.method, request.url.path, resource_id,
                (time.perf_counter() - start_time) * 1000,
            )
            raise

        self.logger.info(
            "request method=%s path=%s status=%s resource_id=%s elapsed_ms=%.1f",
            request.method, request.url.path, response.status_code, resource_id,
            (time.perf_counter() - start_time) * 1000,
        )
        return response

    def _extract_resource_id(self, path: str) -> Optional[str]:
        """URL 경로에서 레코드/정정 요청 ID 추출

        /api/v1/breakdown/<id>, /api/v1/amend/<id>/resolve 같은 패턴
        """
        parts = [part for part in path.split('/') if part]

        for i, part in enumerate(parts):
            if part in ('breakdown', 'validate', 'verify', 'amend') and i + 1 < len(parts):
                return parts[i + 1]

        return None
