"""SqlAlchemyAuditStore 테스트 (SQLite 인메모리)"""

import dataclasses
import uuid
from decimal import Decimal

import pytest

from taxaudit.audit import AmendmentStatus, AuditTrailService, ValidationStatus
from taxaudit.core import ConcurrencyConflict, StateError, TaxType
from taxaudit.database import (
    AuditRecordDB, SqlAlchemyAuditStore, build_engine, build_session_factory, init_db,
)

from conftest import cit_request, vat_request


@pytest.fixture
def sql_store():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield SqlAlchemyAuditStore(build_session_factory(engine))
    engine.dispose()


@pytest.fixture
def sql_service(sql_store, registry, clock):
    return AuditTrailService(sql_store, registry, clock=clock)


class TestSqlRecords:
    """레코드 저장/조회 테스트"""

    def test_record_round_trip(self, sql_service, sql_store):
        record = sql_service.record_calculation("ACME", "alice", "VAT", vat_request())

        loaded = sql_store.get_record(record.id)

        assert loaded.to_dict() == record.to_dict()
        assert loaded.created_at.tzinfo is not None
        assert loaded.calculation_result().replay() == Decimal("30000")

    def test_latest_version(self, sql_service, sql_store):
        assert sql_store.latest_version("ACME", TaxType.VAT, "2024-Q1") == 0

        sql_service.record_calculation("ACME", "alice", "VAT", vat_request())
        sql_service.record_calculation("ACME", "alice", "VAT", vat_request())

        assert sql_store.latest_version("ACME", TaxType.VAT, "2024-Q1") == 2

    def test_duplicate_version_is_conflict(self, sql_service, sql_store):
        """유일 제약 위반은 ConcurrencyConflict로 변환"""
        record = sql_service.record_calculation("ACME", "alice", "VAT", vat_request())
        duplicate = dataclasses.replace(record, id=str(uuid.uuid4()))

        with pytest.raises(ConcurrencyConflict):
            sql_store.insert_record(duplicate)

        assert len(sql_store.list_records("ACME")) == 1

    def test_list_records_filters(self, sql_service, sql_store):
        sql_service.record_calculation("ACME", "alice", "VAT", vat_request())
        sql_service.record_calculation("ACME", "alice", "VAT", vat_request(period="2024-Q2"))
        sql_service.record_calculation("ACME", "alice", "CIT", cit_request())

        assert len(sql_store.list_records("ACME")) == 3
        assert len(sql_store.list_records("ACME", TaxType.VAT)) == 2
        assert len(sql_store.list_records("ACME", TaxType.VAT, "2024-Q2")) == 1

    def test_unique_constraint_declared(self):
        constraint_names = {constraint.name for constraint in AuditRecordDB.__table__.constraints}
        assert "uq_audit_records_version" in constraint_names


class TestSqlTransitions:
    """상태 전이 테스트"""

    def test_validate(self, sql_service):
        record = sql_service.record_calculation("ACME", "alice", "VAT", vat_request())

        validated = sql_service.validate_calculation(record.id, "reviewer")

        assert validated.validation_status == ValidationStatus.VALIDATED
        assert validated.validated_by == "reviewer"
        assert sql_service.validate_calculation(record.id, "reviewer").validated_by == "reviewer"
        with pytest.raises(StateError):
            sql_service.validate_calculation(record.id, "other")

    def test_amendment_approval(self, sql_service):
        original = sql_service.record_calculation("ACME", "alice", "VAT", vat_request())
        amendment = sql_service.request_amendment(
            original.id, "alice", "missed invoice", {'total_revenue': '1200000'}
        )

        new_record = sql_service.resolve_amendment(amendment.id, True, "manager")

        assert new_record.version == 2
        assert sql_service.get_breakdown(original.id).superseded_by == new_record.id
        stored = sql_service.list_amendments("ACME")[0]
        assert stored.status == AmendmentStatus.APPROVED
        assert stored.resulting_record_id == new_record.id

        with pytest.raises(StateError):
            sql_service.validate_calculation(original.id, "reviewer")

    def test_apply_amendment_rolls_back_on_conflict(self, sql_service, sql_store, clock):
        """새 버전 저장이 실패하면 원본과 요청 모두 변경되지 않음"""
        original = sql_service.record_calculation("ACME", "alice", "VAT", vat_request())
        amendment = sql_service.request_amendment(original.id, "alice", "x", {'total_revenue': '1'})
        clashing = dataclasses.replace(original, id=str(uuid.uuid4()))

        with pytest.raises(ConcurrencyConflict):
            sql_store.apply_amendment(amendment.id, clashing, "manager", clock())

        assert sql_store.get_record(original.id).superseded_by is None
        assert sql_store.get_amendment(amendment.id).status == AmendmentStatus.PENDING

    def test_reject(self, sql_service):
        original = sql_service.record_calculation("ACME", "alice", "VAT", vat_request())
        amendment = sql_service.request_amendment(original.id, "alice", "x", {'total_revenue': '1'})

        assert sql_service.resolve_amendment(amendment.id, False, "manager") is None

        assert sql_service.list_amendments(status=AmendmentStatus.REJECTED)[0].id == amendment.id
        with pytest.raises(StateError):
            sql_service.resolve_amendment(amendment.id, False, "manager")

    def test_statistics(self, sql_service):
        sql_service.record_calculation("ACME", "alice", "VAT", vat_request())
        sql_service.record_calculation("ACME", "alice", "CIT", cit_request())

        stats = sql_service.get_statistics("ACME")

        assert stats.totals_by_type == {"VAT": Decimal("30000"), "CIT": Decimal("360000")}
        assert stats.total_calculations == 2
        assert stats.pending_validations == 2
