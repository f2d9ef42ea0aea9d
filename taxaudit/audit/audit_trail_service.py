"""AuditTrailService: 계산 기록, 검증, 정정 관리

계산 결과는 AuditRecord로 고정되며 (company_id, tax_type, period)별로
1부터 빈틈없이 증가하는 버전을 가집니다. 계산은 락 밖에서 수행하고,
"마지막 버전 조회 → 다음 버전 저장"만 키별 락 안에서 처리합니다.
"""

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from ..core.calculation_trace import CalculationResult
from ..core.exceptions import (
    ConcurrencyConflict, RecordNotFoundError, StateError, ValidationError,
)
from ..core.money import ZERO
from ..core.rate_config import RateConfig, RateConfigRegistry
from ..core.request import CalculationRequest, TaxType
from ..core.tax_calculator import TaxCalculator
from ..core.validator import InputValidator
from .amendment_proposal import AmendmentProposal
from .records import (
    AmendmentRequest, AmendmentStatus, AuditRecord, CompanyStatistics,
    ValidationStatus, VerificationResult,
)
from .store import AuditStore

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditTrailService:
    """감사 추적 서비스

    Attributes:
        store: 감사 레코드 저장소
        registry: 세율 설정 레지스트리
        calculator: 세금 계산기
        validator: 입력 검증기
        clock: 현재 시각 함수 (테스트에서 고정 가능)
        max_retries: 버전 경합 시 재시도 횟수
    """

    def __init__(
        self,
        store: AuditStore,
        registry: RateConfigRegistry,
        calculator: Optional[TaxCalculator] = None,
        validator: Optional[InputValidator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_retries: int = 3,
    ):
        self.store = store
        self.registry = registry
        self.calculator = calculator or TaxCalculator()
        self.validator = validator or InputValidator()
        self.clock = clock or _utc_now
        self.max_retries = max(1, max_retries)
        self._locks: Dict[tuple, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # 계산 기록
    # ------------------------------------------------------------------

    def record_calculation(
        self,
        company_id: str,
        user_id: str,
        tax_type: Union[TaxType, str],
        request: Union[CalculationRequest, Dict[str, Any]],
    ) -> AuditRecord:
        """계산 후 새 버전의 감사 레코드 저장

        Args:
            company_id: 회사 식별자
            user_id: 요청자
            tax_type: 세목
            request: 계산 요청 (객체 또는 딕셔너리)

        Returns:
            저장된 AuditRecord

        Raises:
            ValidationError: 입력 오류 (아무것도 저장되지 않음)
            ConfigurationError: 기간에 유효한 세율 설정 없음
            ConcurrencyConflict: 재시도 후에도 버전 경합에 실패
        """
        request = self._normalize_request(company_id, tax_type, request)
        config, result = self._compute(request)

        def write() -> AuditRecord:
            version = self.store.latest_version(
                request.company_id, request.tax_type, request.period
            ) + 1
            record = self._new_record(request, result, version, user_id)
            return self.store.insert_record(record)

        record = self._with_version_lock(request, write)
        logger.info(
            "recorded calculation record_id=%s company=%s tax_type=%s period=%s "
            "version=%s total=%s config=%s",
            record.id, record.company_id, record.tax_type.value, record.period,
            record.version, result.total_amount, config.jurisdiction_version,
        )
        return record

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    def get_breakdown(self, record_id: str) -> AuditRecord:
        """레코드 전체 (모든 계산 단계 포함)

        Raises:
            RecordNotFoundError: 레코드가 없는 경우
        """
        record = self.store.get_record(record_id)
        if record is None:
            raise RecordNotFoundError("AuditRecord", record_id)
        return record

    def get_history(self, company_id: str, tax_type: Union[TaxType, str],
                    period: Optional[str] = None) -> List[AuditRecord]:
        """모든 버전 (대체된 레코드 포함, 버전 오름차순)"""
        return self.store.list_records(company_id, self._tax_type(tax_type), period)

    def list_amendments(self, company_id: Optional[str] = None,
                        status: Optional[AmendmentStatus] = None) -> List[AmendmentRequest]:
        return self.store.list_amendments(company_id, status)

    def get_statistics(self, company_id: str) -> CompanyStatistics:
        """회사별 통계

        세목별 합계는 기간별로 대체되지 않은 최신 레코드만 합산합니다.
        total_calculations는 대체된 버전을 포함한 전체 레코드 수,
        pending_validations는 대체되지 않은 미검증 레코드 수입니다.
        """
        records = self.store.list_records(company_id)
        stats = CompanyStatistics(company_id=company_id, total_calculations=len(records))

        latest: Dict[tuple, AuditRecord] = {}
        for record in records:
            period_key = f"{record.tax_type.value}:{record.period}"
            stats.latest_versions_by_period[period_key] = max(
                stats.latest_versions_by_period.get(period_key, 0), record.version
            )
            if record.validation_status == ValidationStatus.VALIDATED:
                stats.validated_count += 1
            if record.is_superseded:
                continue
            if record.validation_status == ValidationStatus.RECORDED:
                stats.pending_validations += 1
            current = latest.get(record.key)
            if current is None or record.version > current.version:
                latest[record.key] = record

        for record in latest.values():
            type_key = record.tax_type.value
            stats.totals_by_type[type_key] = (
                stats.totals_by_type.get(type_key, ZERO) + record.total_amount
            )

        stats.pending_amendments = len(
            self.store.list_amendments(company_id, AmendmentStatus.PENDING)
        )
        return stats

    # ------------------------------------------------------------------
    # 검증
    # ------------------------------------------------------------------

    def validate_calculation(self, record_id: str, user_id: str) -> AuditRecord:
        """RECORDED → VALIDATED (같은 검증자의 재요청은 멱등)

        Raises:
            RecordNotFoundError: 레코드가 없는 경우
            StateError: 대체된 레코드이거나 다른 사용자가 이미 검증한 경우
        """
        record = self.store.mark_validated(record_id, user_id, self.clock())
        logger.info("validated record_id=%s by=%s", record.id, user_id)
        return record

    def verify_record(self, record_id: str) -> VerificationResult:
        """저장된 입력과 고정된 세율 설정으로 재계산하여 비교 (읽기 전용)"""
        record = self.get_breakdown(record_id)
        config = self.registry.get_by_version(record.rate_config_version)
        recomputed = self.calculator.calculate(record.calculation_request(), config)

        stored_total = record.total_amount
        difference = recomputed.total_amount - stored_total
        verification = VerificationResult(
            record_id=record.id,
            matches=difference == 0,
            stored_total=stored_total,
            recomputed_total=recomputed.total_amount,
            difference=difference,
            rate_config_version=config.jurisdiction_version,
        )
        if not verification.matches:
            logger.warning(
                "verification mismatch record_id=%s stored=%s recomputed=%s",
                record.id, stored_total, recomputed.total_amount,
            )
        return verification

    # ------------------------------------------------------------------
    # 정정
    # ------------------------------------------------------------------

    def request_amendment(
        self,
        original_record_id: str,
        requested_by: str,
        reason: str,
        proposed_input_data: Dict[str, Any],
    ) -> AmendmentRequest:
        """정정 요청 생성 (원본은 변경하지 않음)

        proposed_input_data는 원본 입력에 덮어쓸 필드입니다
        (AmendmentProposal 참고). 회사, 세목, 기간은 변경할 수 없고,
        원본과 같은 입력이 되는 제안은 거부합니다.

        Raises:
            RecordNotFoundError: 원본이 없는 경우
            StateError: 원본이 이미 대체되었거나 최신 버전이 아닌 경우
            ValidationError: 사유가 없거나 제안된 입력이 잘못된 경우
        """
        original = self.get_breakdown(original_record_id)
        self._ensure_amendable(original)

        errors = []
        if not reason or not reason.strip():
            errors.append("reason is required")
        try:
            proposal = AmendmentProposal.parse(proposed_input_data)
        except ValidationError as e:
            raise ValidationError(errors + e.errors)
        errors.extend(proposal.identity_changes(original.input_data))
        if errors:
            raise ValidationError(errors)

        proposed = CalculationRequest.from_dict(proposal.merge_into(original.input_data))
        if proposed == original.calculation_request():
            raise ValidationError(["proposed input does not change the original calculation"])
        self.validator.validate_or_raise(proposed)

        amendment = AmendmentRequest(
            id=str(uuid.uuid4()),
            original_record_id=original.id,
            company_id=original.company_id,
            tax_type=original.tax_type,
            period=original.period,
            requested_by=requested_by,
            reason=reason,
            proposed_input_data=proposed.to_dict(),
            created_at=self.clock(),
        )
        amendment = self.store.insert_amendment(amendment)
        logger.info(
            "amendment requested amendment_id=%s original=%s by=%s",
            amendment.id, original.id, requested_by,
        )
        return amendment

    def resolve_amendment(self, amendment_id: str, approve: bool,
                          resolved_by: str) -> Optional[AuditRecord]:
        """정정 요청 승인/거절

        승인 시 제안된 입력으로 다시 검증/계산하고, 새 버전 저장과 원본
        대체 표시를 함께 처리합니다. 거절 시 None을 반환합니다.

        Raises:
            RecordNotFoundError: 요청이 없는 경우
            StateError: 이미 처리된 요청이거나 원본이 이미 대체된 경우
        """
        amendment = self.store.get_amendment(amendment_id)
        if amendment is None:
            raise RecordNotFoundError("AmendmentRequest", amendment_id)
        if amendment.status != AmendmentStatus.PENDING:
            raise StateError(f"amendment {amendment.id} is already {amendment.status.value}")

        if not approve:
            self.store.reject_amendment(amendment_id, resolved_by, self.clock())
            logger.info("amendment rejected amendment_id=%s by=%s", amendment_id, resolved_by)
            return None

        original = self.get_breakdown(amendment.original_record_id)
        request = CalculationRequest.from_dict(amendment.proposed_input_data)
        config, result = self._compute(request)

        def write() -> AuditRecord:
            latest = self.store.latest_version(
                request.company_id, request.tax_type, request.period
            )
            if latest != original.version:
                raise StateError(
                    f"{original} is no longer the latest version (latest is v{latest})"
                )
            record = self._new_record(request, result, original.version + 1, resolved_by)
            return self.store.apply_amendment(amendment_id, record, resolved_by, self.clock())

        record = self._with_version_lock(request, write)
        logger.info(
            "amendment approved amendment_id=%s original=%s new_record=%s version=%s",
            amendment_id, original.id, record.id, record.version,
        )
        return record

    # ------------------------------------------------------------------
    # 내부 처리
    # ------------------------------------------------------------------

    def _compute(self, request: CalculationRequest):
        """검증 → 세율 설정 조회 → 계산 (락 밖에서 실행)"""
        self.validator.validate_or_raise(request)
        config: RateConfig = self.registry.get_effective(request.tax_period.start)
        result: CalculationResult = self.calculator.calculate(request, config)
        return config, result

    def _with_version_lock(self, request: CalculationRequest,
                           write: Callable[[], AuditRecord]) -> AuditRecord:
        """키별 락 안에서 write 실행, 버전 경합 시 재시도"""
        lock = self._lock_for((request.company_id, request.tax_type.value, request.period))

        for attempt in range(1, self.max_retries + 1):
            try:
                with lock:
                    return write()
            except ConcurrencyConflict as e:
                if attempt == self.max_retries:
                    logger.error("version conflict not resolved after %s attempts: %s", attempt, e)
                    raise
                logger.warning("version conflict (attempt %s/%s): %s", attempt, self.max_retries, e)

        raise AssertionError("unreachable")

    def _lock_for(self, key: tuple) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _new_record(self, request: CalculationRequest, result: CalculationResult,
                    version: int, created_by: str) -> AuditRecord:
        return AuditRecord(
            id=str(uuid.uuid4()),
            company_id=request.company_id,
            tax_type=request.tax_type,
            period=request.period,
            version=version,
            input_data=request.to_dict(),
            result=result.to_dict(),
            rate_config_version=result.rate_config_version,
            created_at=self.clock(),
            created_by=created_by,
        )

    def _ensure_amendable(self, original: AuditRecord) -> None:
        if original.is_superseded:
            raise StateError(f"{original} is already superseded by {original.superseded_by}")
        latest = self.store.latest_version(original.company_id, original.tax_type, original.period)
        if latest != original.version:
            raise StateError(f"{original} is not the latest version (latest is v{latest})")

    def _normalize_request(self, company_id: str, tax_type: Union[TaxType, str],
                           request: Union[CalculationRequest, Dict[str, Any]]) -> CalculationRequest:
        tax_type = self._tax_type(tax_type)

        if isinstance(request, dict):
            data = dict(request)
            data.setdefault('company_id', company_id)
            data.setdefault('tax_type', tax_type.value)
            request = CalculationRequest.from_dict(data)

        errors = []
        if request.company_id != company_id:
            errors.append(f"request company_id {request.company_id!r} does not match {company_id!r}")
        if request.tax_type != tax_type:
            errors.append(f"request tax_type {request.tax_type.value} does not match {tax_type.value}")
        if errors:
            raise ValidationError(errors)
        return request

    def _tax_type(self, tax_type: Union[TaxType, str]) -> TaxType:
        if isinstance(tax_type, TaxType):
            return tax_type
        try:
            return TaxType(str(tax_type).upper())
        except ValueError:
            raise ValidationError([f"tax_type must be one of VAT, CIT (got {tax_type!r})"])
