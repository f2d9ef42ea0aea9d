"""신고 제출 게이트웨이

실제 FTA 연동은 별도 구현체가 담당합니다. 기본 구현은 제출 내역을
메모리에 기록만 합니다.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List

from .exporters import ExportedDocument
from .summary_report import SummaryReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionReceipt:
    receipt_id: str
    report_id: str
    submitted_at: datetime
    status: str


class SubmissionGateway(ABC):
    """세무 당국 제출 인터페이스"""

    @abstractmethod
    def submit(self, report: SummaryReport, payload: ExportedDocument) -> SubmissionReceipt:
        """보고서 제출

        Args:
            report: 요약 보고서
            payload: 출력된 제출 문서

        Returns:
            제출 접수증
        """


class NullSubmissionGateway(SubmissionGateway):
    """제출 내역만 기록하는 게이트웨이"""

    def __init__(self):
        self._lock = threading.Lock()
        self.submissions: List[SubmissionReceipt] = []

    def submit(self, report: SummaryReport, payload: ExportedDocument) -> SubmissionReceipt:
        receipt = SubmissionReceipt(
            receipt_id=str(uuid.uuid4()),
            report_id=report.id,
            submitted_at=datetime.now(timezone.utc),
            status="RECORDED",
        )
        with self._lock:
            self.submissions.append(receipt)
        logger.info(
            "submission recorded report_id=%s format=%s receipt=%s",
            report.id, payload.format.value, receipt.receipt_id,
        )
        return receipt
