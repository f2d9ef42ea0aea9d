"""AuditStore: 감사 레코드 저장소 인터페이스와 메모리 구현

저장소는 (company_id, tax_type, period, version) 유일성을 보장해야 하며,
정정 승인(apply_amendment)은 하나의 원자적 단위로 처리해야 합니다.
"""

import copy
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from ..core.exceptions import ConcurrencyConflict, RecordNotFoundError, StateError
from ..core.request import TaxType
from .records import AmendmentRequest, AmendmentStatus, AuditRecord, ValidationStatus


class AuditStore(ABC):
    """감사 레코드 저장소"""

    @abstractmethod
    def insert_record(self, record: AuditRecord) -> AuditRecord:
        """새 레코드 저장

        Raises:
            ConcurrencyConflict: 같은 키와 버전의 레코드가 이미 있는 경우
        """

    @abstractmethod
    def get_record(self, record_id: str) -> Optional[AuditRecord]:
        ...

    @abstractmethod
    def latest_version(self, company_id: str, tax_type: TaxType, period: str) -> int:
        """마지막 버전 (없으면 0)"""

    @abstractmethod
    def list_records(self, company_id: str, tax_type: Optional[TaxType] = None,
                     period: Optional[str] = None) -> List[AuditRecord]:
        """레코드 목록 (period, version 오름차순)"""

    @abstractmethod
    def mark_validated(self, record_id: str, validated_by: str,
                       validated_at: datetime) -> AuditRecord:
        """RECORDED → VALIDATED 전이

        Raises:
            RecordNotFoundError: 레코드가 없는 경우
            StateError: 이미 대체되었거나 다른 사용자가 검증한 경우
        """

    @abstractmethod
    def insert_amendment(self, amendment: AmendmentRequest) -> AmendmentRequest:
        ...

    @abstractmethod
    def get_amendment(self, amendment_id: str) -> Optional[AmendmentRequest]:
        ...

    @abstractmethod
    def list_amendments(self, company_id: Optional[str] = None,
                        status: Optional[AmendmentStatus] = None) -> List[AmendmentRequest]:
        ...

    @abstractmethod
    def apply_amendment(self, amendment_id: str, new_record: AuditRecord,
                        resolved_by: str, resolved_at: datetime) -> AuditRecord:
        """정정 승인: 새 버전 저장 + 원본 superseded_by 설정 + 요청 APPROVED (원자적)

        Raises:
            StateError: 요청이 PENDING이 아니거나 원본이 이미 대체된 경우
            ConcurrencyConflict: 새 버전이 이미 존재하는 경우
        """

    @abstractmethod
    def reject_amendment(self, amendment_id: str, resolved_by: str,
                         resolved_at: datetime) -> AmendmentRequest:
        """정정 거절 (원본은 변경하지 않음)

        Raises:
            StateError: 요청이 PENDING이 아닌 경우
        """


def check_validation_transition(record: AuditRecord, validated_by: str) -> bool:
    """검증 전이 가능 여부 확인

    Returns:
        True면 상태를 변경해야 함, False면 같은 검증자의 재요청 (변경 없음)

    Raises:
        StateError: 허용되지 않는 전이
    """
    if record.is_superseded:
        raise StateError(f"{record} is superseded by {record.superseded_by} and cannot be validated")
    if record.validation_status == ValidationStatus.VALIDATED:
        if record.validated_by == validated_by:
            return False
        raise StateError(f"{record} was already validated by {record.validated_by}")
    return True


def check_amendment_pending(amendment: AmendmentRequest) -> None:
    if amendment.status != AmendmentStatus.PENDING:
        raise StateError(f"amendment {amendment.id} is already {amendment.status.value}")


class InMemoryAuditStore(AuditStore):
    """메모리 저장소

    모든 조회/저장은 깊은 복사본으로 처리하여 호출자가 저장된 레코드를
    직접 변경할 수 없습니다. 하나의 RLock으로 원자성을 보장합니다.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._records: Dict[str, AuditRecord] = {}
        self._versions: Dict[tuple, Dict[int, str]] = {}
        self._amendments: Dict[str, AmendmentRequest] = {}

    def insert_record(self, record: AuditRecord) -> AuditRecord:
        with self._lock:
            self._insert(record)
            return copy.deepcopy(record)

    def _insert(self, record: AuditRecord) -> None:
        versions = self._versions.setdefault(record.key, {})
        if record.version in versions:
            raise ConcurrencyConflict(
                record.company_id, record.tax_type.value, record.period, record.version
            )
        versions[record.version] = record.id
        self._records[record.id] = copy.deepcopy(record)

    def get_record(self, record_id: str) -> Optional[AuditRecord]:
        with self._lock:
            record = self._records.get(record_id)
            return copy.deepcopy(record) if record else None

    def latest_version(self, company_id: str, tax_type: TaxType, period: str) -> int:
        with self._lock:
            versions = self._versions.get((company_id, tax_type.value, period))
            return max(versions) if versions else 0

    def list_records(self, company_id: str, tax_type: Optional[TaxType] = None,
                     period: Optional[str] = None) -> List[AuditRecord]:
        with self._lock:
            records = [
                copy.deepcopy(record) for record in self._records.values()
                if record.company_id == company_id
                and (tax_type is None or record.tax_type == tax_type)
                and (period is None or record.period == period)
            ]
        return sorted(records, key=lambda r: (r.tax_type.value, r.period, r.version))

    def mark_validated(self, record_id: str, validated_by: str,
                       validated_at: datetime) -> AuditRecord:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise RecordNotFoundError("AuditRecord", record_id)
            if check_validation_transition(record, validated_by):
                record.validation_status = ValidationStatus.VALIDATED
                record.validated_by = validated_by
                record.validated_at = validated_at
            return copy.deepcopy(record)

    def insert_amendment(self, amendment: AmendmentRequest) -> AmendmentRequest:
        with self._lock:
            self._amendments[amendment.id] = copy.deepcopy(amendment)
            return copy.deepcopy(amendment)

    def get_amendment(self, amendment_id: str) -> Optional[AmendmentRequest]:
        with self._lock:
            amendment = self._amendments.get(amendment_id)
            return copy.deepcopy(amendment) if amendment else None

    def list_amendments(self, company_id: Optional[str] = None,
                        status: Optional[AmendmentStatus] = None) -> List[AmendmentRequest]:
        with self._lock:
            amendments = [
                copy.deepcopy(amendment) for amendment in self._amendments.values()
                if (company_id is None or amendment.company_id == company_id)
                and (status is None or amendment.status == status)
            ]
        return sorted(amendments, key=lambda a: a.created_at)

    def apply_amendment(self, amendment_id: str, new_record: AuditRecord,
                        resolved_by: str, resolved_at: datetime) -> AuditRecord:
        with self._lock:
            amendment = self._amendments.get(amendment_id)
            if amendment is None:
                raise RecordNotFoundError("AmendmentRequest", amendment_id)
            check_amendment_pending(amendment)

            original = self._records.get(amendment.original_record_id)
            if original is None:
                raise RecordNotFoundError("AuditRecord", amendment.original_record_id)
            if original.is_superseded:
                raise StateError(f"{original} is already superseded by {original.superseded_by}")

            # 새 버전 저장이 실패하면 아무것도 변경하지 않음
            self._insert(new_record)
            original.superseded_by = new_record.id
            amendment.status = AmendmentStatus.APPROVED
            amendment.resulting_record_id = new_record.id
            amendment.resolved_by = resolved_by
            amendment.resolved_at = resolved_at
            return copy.deepcopy(new_record)

    def reject_amendment(self, amendment_id: str, resolved_by: str,
                         resolved_at: datetime) -> AmendmentRequest:
        with self._lock:
            amendment = self._amendments.get(amendment_id)
            if amendment is None:
                raise RecordNotFoundError("AmendmentRequest", amendment_id)
            check_amendment_pending(amendment)
            amendment.status = AmendmentStatus.REJECTED
            amendment.resolved_by = resolved_by
            amendment.resolved_at = resolved_at
            return copy.deepcopy(amendment)
