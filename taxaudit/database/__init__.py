"""데이터베이스 모듈"""

from .models import (
    Base,
    AuditRecordDB,
    AmendmentRequestDB
)
from .connection import (
    build_engine,
    build_session_factory,
    init_db
)
from .sql_store import SqlAlchemyAuditStore

__all__ = [
    'Base',
    'AuditRecordDB',
    'AmendmentRequestDB',
    'build_engine',
    'build_session_factory',
    'init_db',
    'SqlAlchemyAuditStore'
]
