"""요약 보고서 및 출력 모듈"""

from .exporters import ExportFormat, ExportedDocument
from .summary_report import (
    SummaryReport,
    SummaryReportGenerator,
    InMemoryReportRepository,
)
from .submission import SubmissionGateway, SubmissionReceipt, NullSubmissionGateway

__all__ = [
    'ExportFormat',
    'ExportedDocument',
    'SummaryReport',
    'SummaryReportGenerator',
    'InMemoryReportRepository',
    'SubmissionGateway',
    'SubmissionReceipt',
    'NullSubmissionGateway',
]
