"""감사 추적 모듈"""

from .records import (
    AuditRecord,
    AmendmentRequest,
    ValidationStatus,
    AmendmentStatus,
    VerificationResult,
    CompanyStatistics,
)
from .store import AuditStore, InMemoryAuditStore
from .amendment_proposal import AmendmentProposal
from .audit_trail_service import AuditTrailService

__all__ = [
    'AuditRecord',
    'AmendmentRequest',
    'ValidationStatus',
    'AmendmentStatus',
    'VerificationResult',
    'CompanyStatistics',
    'AuditStore',
    'InMemoryAuditStore',
    'AmendmentProposal',
    'AuditTrailService',
]
