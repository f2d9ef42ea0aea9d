"""로깅 설정

taxaudit 로거 계층에 한 줄 key=value 형식의 핸들러를 설치합니다.
모듈에서는 logging.getLogger(__name__)만 사용합니다.
"""

import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Optional, Union

_LOGGER_PREFIX = "taxaudit"
_lock = threading.Lock()
_configured = False


class KeyValueFormatter(logging.Formatter):
    """ts=... level=... logger=... msg="..." 형식"""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        message = record.getMessage().replace('"', "'")
        line = (
            f"ts={timestamp.isoformat(timespec='milliseconds')} "
            f"level={record.levelname} logger={record.name} msg=\"{message}\""
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(level: Union[int, str] = logging.INFO,
                      stream: Any = None,
                      handler: Optional[logging.Handler] = None) -> None:
    """taxaudit 로거 설정 (여러 번 호출해도 한 번만 적용)

    Args:
        level: 로그 레벨 (정수 또는 "INFO" 같은 이름)
        stream: 출력 스트림 (기본값: stderr)
        handler: 직접 지정할 핸들러
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.setLevel(level)

    h = handler or logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(KeyValueFormatter())
    logger.addHandler(h)


def reset_logging() -> None:
    """설정 초기화 (테스트용)"""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
