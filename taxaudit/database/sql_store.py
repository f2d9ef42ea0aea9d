"""SqlAlchemyAuditStore: SQL 기반 감사 레코드 저장소

버전 중복은 uq_audit_records_version 유일 제약으로 막고, 상태 전이는
조건부 UPDATE(현재 상태를 WHERE 절에 포함)로 처리하여 여러 프로세스가
같은 데이터베이스를 공유해도 단방향 전이가 보장됩니다.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..audit.records import (
    AmendmentRequest, AmendmentStatus, AuditRecord, ValidationStatus,
)
from ..audit.store import (
    AuditStore, check_amendment_pending, check_validation_transition,
)
from ..core.exceptions import ConcurrencyConflict, RecordNotFoundError, StateError
from ..core.request import TaxType
from .models import AmendmentRequestDB, AuditRecordDB

logger = logging.getLogger(__name__)


class SqlAlchemyAuditStore(AuditStore):
    """SQLAlchemy 저장소

    Attributes:
        session_factory: 세션 팩토리 (build_session_factory)
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # 감사 레코드
    # ------------------------------------------------------------------

    def insert_record(self, record: AuditRecord) -> AuditRecord:
        with self.session_factory() as db:
            db.add(_record_to_row(record))
            self._commit(db, record)
        return record

    def get_record(self, record_id: str) -> Optional[AuditRecord]:
        with self.session_factory() as db:
            row = db.query(AuditRecordDB).filter(AuditRecordDB.id == record_id).first()
            return _row_to_record(row) if row else None

    def latest_version(self, company_id: str, tax_type: TaxType, period: str) -> int:
        with self.session_factory() as db:
            latest = db.query(func.max(AuditRecordDB.version)).filter(
                AuditRecordDB.company_id == company_id,
                AuditRecordDB.tax_type == tax_type.value,
                AuditRecordDB.period == period
            ).scalar()
            return latest or 0

    def list_records(self, company_id: str, tax_type: Optional[TaxType] = None,
                     period: Optional[str] = None) -> List[AuditRecord]:
        with self.session_factory() as db:
            query = db.query(AuditRecordDB).filter(AuditRecordDB.company_id == company_id)
            if tax_type is not None:
                query = query.filter(AuditRecordDB.tax_type == tax_type.value)
            if period is not None:
                query = query.filter(AuditRecordDB.period == period)
            rows = query.order_by(
                AuditRecordDB.tax_type,
                AuditRecordDB.period,
                AuditRecordDB.version
            ).all()
            return [_row_to_record(row) for row in rows]

    def mark_validated(self, record_id: str, validated_by: str,
                       validated_at: datetime) -> AuditRecord:
        with self.session_factory() as db:
            row = db.query(AuditRecordDB).filter(AuditRecordDB.id == record_id).first()
            if row is None:
                raise RecordNotFoundError("AuditRecord", record_id)
            if not check_validation_transition(_row_to_record(row), validated_by):
                return _row_to_record(row)

            updated = db.query(AuditRecordDB).filter(
                AuditRecordDB.id == record_id,
                AuditRecordDB.validation_status == ValidationStatus.RECORDED.value,
                AuditRecordDB.superseded_by.is_(None)
            ).update({
                AuditRecordDB.validation_status: ValidationStatus.VALIDATED.value,
                AuditRecordDB.validated_by: validated_by,
                AuditRecordDB.validated_at: validated_at,
            }, synchronize_session=False)

            if updated != 1:
                db.rollback()
                # 다른 트랜잭션이 먼저 전이시킴
                current = self.get_record(record_id)
                if check_validation_transition(current, validated_by):
                    raise StateError(f"{current} changed concurrently; retry")
                return current

            db.commit()

        return self.get_record(record_id)

    # ------------------------------------------------------------------
    # 정정 요청
    # ------------------------------------------------------------------

    def insert_amendment(self, amendment: AmendmentRequest) -> AmendmentRequest:
        with self.session_factory() as db:
            db.add(_amendment_to_row(amendment))
            db.commit()
        return amendment

    def get_amendment(self, amendment_id: str) -> Optional[AmendmentRequest]:
        with self.session_factory() as db:
            row = db.query(AmendmentRequestDB).filter(
                AmendmentRequestDB.id == amendment_id
            ).first()
            return _row_to_amendment(row) if row else None

    def list_amendments(self, company_id: Optional[str] = None,
                        status: Optional[AmendmentStatus] = None) -> List[AmendmentRequest]:
        with self.session_factory() as db:
            query = db.query(AmendmentRequestDB)
            if company_id is not None:
                query = query.filter(AmendmentRequestDB.company_id == company_id)
            if status is not None:
                query = query.filter(AmendmentRequestDB.status == status.value)
            rows = query.order_by(AmendmentRequestDB.created_at).all()
            return [_row_to_amendment(row) for row in rows]

    def apply_amendment(self, amendment_id: str, new_record: AuditRecord,
                        resolved_by: str, resolved_at: datetime) -> AuditRecord:
        with self.session_factory() as db:
            amendment_row = db.query(AmendmentRequestDB).filter(
                AmendmentRequestDB.id == amendment_id
            ).first()
            if amendment_row is None:
                raise RecordNotFoundError("AmendmentRequest", amendment_id)
            check_amendment_pending(_row_to_amendment(amendment_row))
            original_id = amendment_row.original_record_id

            # 1. 새 버전 저장 (유일 제약 위반 시 ConcurrencyConflict)
            db.add(_record_to_row(new_record))
            self._flush(db, new_record)

            # 2. 원본 대체 표시 (아직 대체되지 않은 경우에만)
            superseded = db.query(AuditRecordDB).filter(
                AuditRecordDB.id == original_id,
                AuditRecordDB.superseded_by.is_(None)
            ).update({AuditRecordDB.superseded_by: new_record.id}, synchronize_session=False)
            if superseded != 1:
                db.rollback()
                raise StateError(f"AuditRecord {original_id} is already superseded")

            # 3. 요청 승인 (PENDING인 경우에만)
            approved = db.query(AmendmentRequestDB).filter(
                AmendmentRequestDB.id == amendment_id,
                AmendmentRequestDB.status == AmendmentStatus.PENDING.value
            ).update({
                AmendmentRequestDB.status: AmendmentStatus.APPROVED.value,
                AmendmentRequestDB.resulting_record_id: new_record.id,
                AmendmentRequestDB.resolved_by: resolved_by,
                AmendmentRequestDB.resolved_at: resolved_at,
            }, synchronize_session=False)
            if approved != 1:
                db.rollback()
                raise StateError(f"amendment {amendment_id} was resolved concurrently")

            self._commit(db, new_record)

        return new_record

    def reject_amendment(self, amendment_id: str, resolved_by: str,
                         resolved_at: datetime) -> AmendmentRequest:
        with self.session_factory() as db:
            row = db.query(AmendmentRequestDB).filter(
                AmendmentRequestDB.id == amendment_id
            ).first()
            if row is None:
                raise RecordNotFoundError("AmendmentRequest", amendment_id)
            check_amendment_pending(_row_to_amendment(row))

            rejected = db.query(AmendmentRequestDB).filter(
                AmendmentRequestDB.id == amendment_id,
                AmendmentRequestDB.status == AmendmentStatus.PENDING.value
            ).update({
                AmendmentRequestDB.status: AmendmentStatus.REJECTED.value,
                AmendmentRequestDB.resolved_by: resolved_by,
                AmendmentRequestDB.resolved_at: resolved_at,
            }, synchronize_session=False)
            if rejected != 1:
                db.rollback()
                raise StateError(f"amendment {amendment_id} was resolved concurrently")
            db.commit()

        return self.get_amendment(amendment_id)

    # ------------------------------------------------------------------
    # 내부 처리
    # ------------------------------------------------------------------

    def _flush(self, db: Session, record: AuditRecord) -> None:
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            raise self._conflict(record)

    def _commit(self, db: Session, record: AuditRecord) -> None:
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise self._conflict(record)

    def _conflict(self, record: AuditRecord) -> ConcurrencyConflict:
        logger.debug("unique constraint violated for %s", record)
        return ConcurrencyConflict(
            record.company_id, record.tax_type.value, record.period, record.version
        )


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite는 시간대 정보를 저장하지 않음
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _record_to_row(record: AuditRecord) -> AuditRecordDB:
    return AuditRecordDB(
        id=record.id,
        company_id=record.company_id,
        tax_type=record.tax_type.value,
        period=record.period,
        version=record.version,
        input_data=record.input_data,
        result=record.result,
        total_amount=record.total_amount,
        rate_config_version=record.rate_config_version,
        created_at=record.created_at,
        created_by=record.created_by,
        validation_status=record.validation_status.value,
        validated_by=record.validated_by,
        validated_at=record.validated_at,
        superseded_by=record.superseded_by,
    )


def _row_to_record(row: AuditRecordDB) -> AuditRecord:
    return AuditRecord(
        id=row.id,
        company_id=row.company_id,
        tax_type=TaxType(row.tax_type),
        period=row.period,
        version=row.version,
        input_data=row.input_data,
        result=row.result,
        rate_config_version=row.rate_config_version,
        created_at=_aware(row.created_at),
        created_by=row.created_by,
        validation_status=ValidationStatus(row.validation_status),
        validated_by=row.validated_by,
        validated_at=_aware(row.validated_at),
        superseded_by=row.superseded_by,
    )


def _amendment_to_row(amendment: AmendmentRequest) -> AmendmentRequestDB:
    return AmendmentRequestDB(
        id=amendment.id,
        original_record_id=amendment.original_record_id,
        company_id=amendment.company_id,
        tax_type=amendment.tax_type.value,
        period=amendment.period,
        requested_by=amendment.requested_by,
        reason=amendment.reason,
        proposed_input_data=amendment.proposed_input_data,
        status=amendment.status.value,
        resulting_record_id=amendment.resulting_record_id,
        created_at=amendment.created_at,
        resolved_by=amendment.resolved_by,
        resolved_at=amendment.resolved_at,
    )


def _row_to_amendment(row: AmendmentRequestDB) -> AmendmentRequest:
    return AmendmentRequest(
        id=row.id,
        original_record_id=row.original_record_id,
        company_id=row.company_id,
        tax_type=TaxType(row.tax_type),
        period=row.period,
        requested_by=row.requested_by,
        reason=row.reason,
        proposed_input_data=row.proposed_input_data,
        created_at=_aware(row.created_at),
        status=AmendmentStatus(row.status),
        resulting_record_id=row.resulting_record_id,
        resolved_by=row.resolved_by,
        resolved_at=_aware(row.resolved_at),
    )
