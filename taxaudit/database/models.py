"""데이터베이스 모델 정의"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Numeric, Text, ForeignKey, JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class AuditRecordDB(Base):
    """감사 레코드 테이블

    (company_id, tax_type, period, version) 유일 제약으로 버전 중복을 막습니다.
    input_data, result는 생성 후 변경하지 않습니다.
    """
    __tablename__ = "audit_records"
    __table_args__ = (
        UniqueConstraint(
            "company_id", "tax_type", "period", "version",
            name="uq_audit_records_version",
        ),
    )

    id = Column(String(36), primary_key=True)

    # 키
    company_id = Column(String(100), nullable=False, index=True)
    tax_type = Column(String(10), nullable=False, comment="VAT, CIT")
    period = Column(String(20), nullable=False, comment="YYYY, YYYY-MM, YYYY-Qn")
    version = Column(Integer, nullable=False)

    # 고정 사본 (JSON)
    input_data = Column(JSON, nullable=False, comment="계산 요청 사본")
    result = Column(JSON, nullable=False, comment="계산 결과 사본 (단계 포함)")
    total_amount = Column(Numeric(20, 2), nullable=False, comment="최종 세액")
    rate_config_version = Column(String(50), nullable=False)

    # 생성 정보
    created_at = Column(DateTime(timezone=True), nullable=False)
    created_by = Column(String(100), nullable=False)

    # 단방향 상태
    validation_status = Column(
        String(20),
        nullable=False,
        default="RECORDED",
        comment="RECORDED, VALIDATED"
    )
    validated_by = Column(String(100), nullable=True)
    validated_at = Column(DateTime(timezone=True), nullable=True)
    superseded_by = Column(String(36), ForeignKey("audit_records.id"), nullable=True)

    def __repr__(self):
        return (
            f"<AuditRecord(id={self.id}, company={self.company_id}, "
            f"tax_type={self.tax_type}, period={self.period}, version={self.version})>"
        )


class AmendmentRequestDB(Base):
    """정정 요청 테이블"""
    __tablename__ = "amendment_requests"

    id = Column(String(36), primary_key=True)
    original_record_id = Column(
        String(36),
        ForeignKey("audit_records.id"),
        nullable=False,
        index=True
    )

    company_id = Column(String(100), nullable=False, index=True)
    tax_type = Column(String(10), nullable=False)
    period = Column(String(20), nullable=False)

    requested_by = Column(String(100), nullable=False)
    reason = Column(Text, nullable=False)
    proposed_input_data = Column(JSON, nullable=False)

    status = Column(
        String(20),
        nullable=False,
        default="PENDING",
        comment="PENDING, APPROVED, REJECTED"
    )
    resulting_record_id = Column(String(36), ForeignKey("audit_records.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    resolved_by = Column(String(100), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return (
            f"<AmendmentRequest(id={self.id}, original={self.original_record_id}, "
            f"status={self.status})>"
        )
