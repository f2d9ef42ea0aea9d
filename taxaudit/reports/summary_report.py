"""SummaryReportGenerator: 기간 범위 요약 보고서

보고서는 저장된 AuditRecord에서 파생되는 읽기 전용 산출물입니다.
기간별로 대체되지 않은 최신 레코드만 포함하며, 보고서 ID는 포함된
레코드 ID와 버전으로부터 결정되므로 새 레코드가 없으면 재생성해도
같은 보고서가 나옵니다.
"""

import hashlib
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, List, Optional, Union

from ..audit.records import AmendmentStatus, AuditRecord, ValidationStatus
from ..audit.store import AuditStore
from ..core.exceptions import RecordNotFoundError, ValidationError
from ..core.money import ZERO, round_money
from ..core.request import TaxPeriod, TaxType
from .exporters import ExportedDocument, ExportFormat, render

logger = logging.getLogger(__name__)

# 비율 (amendment_rate) 자릿수
RATE_PLACES = Decimal("0.0001")


@dataclass(frozen=True)
class SummaryReport:
    """요약 보고서

    Attributes:
        id: 내용에서 파생된 보고서 ID
        company_id: 회사 식별자
        tax_type: 세목
        period_from: 시작 기간
        period_to: 종료 기간
        included_record_ids: 포함된 레코드 ID (기간 순)
        totals: 합계 (total_tax, record_count, validated_count, amended_count,
                amendment_rate, average_amount, by_period, granularity,
                excluded_periods)
        generated_at: 생성 시각
        generated_by: 생성자
    """

    id: str
    company_id: str
    tax_type: TaxType
    period_from: str
    period_to: str
    included_record_ids: List[str]
    totals: Dict[str, Any]
    generated_at: datetime
    generated_by: Optional[str] = None
    currency: str = "AED"

    @property
    def total_tax(self) -> Decimal:
        return Decimal(self.totals['total_tax'])

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'company_id': self.company_id,
            'tax_type': self.tax_type.value,
            'period_from': self.period_from,
            'period_to': self.period_to,
            'included_record_ids': list(self.included_record_ids),
            'totals': self.totals,
            'currency': self.currency,
            'generated_at': self.generated_at.isoformat(),
            'generated_by': self.generated_by,
        }


class InMemoryReportRepository:
    """생성된 보고서 보관소 (보고서는 언제든 재생성 가능)"""

    def __init__(self):
        self._lock = threading.Lock()
        self._reports: Dict[str, SummaryReport] = {}

    def save(self, report: SummaryReport) -> SummaryReport:
        """같은 ID의 보고서가 있으면 기존 보고서를 반환"""
        with self._lock:
            return self._reports.setdefault(report.id, report)

    def get(self, report_id: str) -> Optional[SummaryReport]:
        with self._lock:
            return self._reports.get(report_id)


class SummaryReportGenerator:
    """요약 보고서 생성기

    Attributes:
        store: 감사 레코드 저장소
        repository: 보고서 보관소
        clock: 현재 시각 함수
    """

    def __init__(
        self,
        store: AuditStore,
        repository: Optional[InMemoryReportRepository] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.repository = repository or InMemoryReportRepository()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def generate(
        self,
        company_id: str,
        tax_type: Union[TaxType, str],
        period_from: str,
        period_to: str,
        generated_by: Optional[str] = None,
    ) -> SummaryReport:
        """기간 범위의 요약 보고서 생성

        Args:
            company_id: 회사 식별자
            tax_type: 세목
            period_from: 시작 기간 (예: "2024-Q1")
            period_to: 종료 기간 (예: "2024-Q4")
            generated_by: 생성자

        Returns:
            SummaryReport

        Raises:
            ValidationError: 기간 형식이 잘못되었거나 범위가 역순인 경우
        """
        tax_type = _tax_type(tax_type)
        first, last = self._parse_range(period_from, period_to)
        granularity = first.granularity

        latest: Dict[str, AuditRecord] = {}
        excluded_periods = set()
        for record in self.store.list_records(company_id, tax_type):
            if record.is_superseded:
                continue
            period = TaxPeriod.parse(record.period)
            if not period.within(first, last):
                continue
            if period.granularity != granularity:
                # 범위와 같은 단위의 기간만 합산
                excluded_periods.add(record.period)
                continue
            current = latest.get(record.period)
            if current is None or record.version > current.version:
                latest[record.period] = record

        if excluded_periods:
            logger.warning(
                "report %s %s %s..%s skipped non-%s periods: %s",
                company_id, tax_type.value, period_from, period_to,
                granularity, sorted(excluded_periods),
            )

        included = sorted(latest.values(), key=lambda r: TaxPeriod.parse(r.period))
        included_ids = {record.id for record in included}

        total_tax = sum((record.total_amount for record in included), ZERO)
        amended_count = sum(
            1 for amendment in self.store.list_amendments(company_id, AmendmentStatus.APPROVED)
            if amendment.resulting_record_id in included_ids
        )
        totals = {
            'total_tax': str(total_tax),
            'record_count': len(included),
            'validated_count': sum(
                1 for record in included
                if record.validation_status == ValidationStatus.VALIDATED
            ),
            'amended_count': amended_count,
            'amendment_rate': str(_ratio(amended_count, len(included))),
            'average_amount': str(
                round_money(total_tax / len(included)) if included else round_money(ZERO)
            ),
            'by_period': {record.period: str(record.total_amount) for record in included},
            'granularity': granularity,
            'excluded_periods': sorted(excluded_periods),
        }

        currencies = {record.result.get('currency', 'AED') for record in included}
        report = SummaryReport(
            id=self._report_id(company_id, tax_type, period_from, period_to, included),
            company_id=company_id,
            tax_type=tax_type,
            period_from=period_from,
            period_to=period_to,
            included_record_ids=[record.id for record in included],
            totals=totals,
            generated_at=self.clock(),
            generated_by=generated_by,
            currency=currencies.pop() if len(currencies) == 1 else "AED",
        )

        saved = self.repository.save(report)
        logger.info(
            "summary report report_id=%s company=%s tax_type=%s range=%s..%s records=%s total=%s",
            saved.id, company_id, tax_type.value, period_from, period_to,
            len(included), total_tax,
        )
        return saved

    def get_report(self, report_id: str) -> SummaryReport:
        report = self.repository.get(report_id)
        if report is None:
            raise RecordNotFoundError("SummaryReport", report_id)
        return report

    def export(self, report: Union[SummaryReport, str],
               fmt: Union[ExportFormat, str]) -> ExportedDocument:
        """보고서와 포함된 레코드의 계산 단계를 지정 형식으로 출력

        저장된 데이터를 그대로 직렬화하며 다시 계산하지 않습니다.
        """
        if isinstance(report, str):
            report = self.get_report(report)
        fmt = ExportFormat.parse(fmt)

        records = []
        for record_id in report.included_record_ids:
            record = self.store.get_record(record_id)
            if record is None:
                raise RecordNotFoundError("AuditRecord", record_id)
            records.append(record)

        return render(report.to_dict(), [record.to_dict() for record in records], fmt)

    def _parse_range(self, period_from: str, period_to: str):
        errors = []
        parsed = []
        for name, label in (('period_from', period_from), ('period_to', period_to)):
            try:
                parsed.append(TaxPeriod.parse(label))
            except ValueError as e:
                errors.append(f"{name}: {e}")
        if errors:
            raise ValidationError(errors)

        first, last = parsed
        if first.granularity != last.granularity:
            raise ValidationError([
                f"period_from {period_from} and period_to {period_to} must use the same "
                f"period granularity"
            ])
        if first.start > last.end:
            raise ValidationError([f"period_from {period_from} is after period_to {period_to}"])
        return first, last

    def _report_id(self, company_id: str, tax_type: TaxType, period_from: str,
                   period_to: str, included: List[AuditRecord]) -> str:
        parts = [company_id, tax_type.value, period_from, period_to]
        parts.extend(f"{record.id}:{record.version}" for record in included)
        digest = hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
        return f"rpt-{digest[:32]}"


def _ratio(part: int, whole: int) -> Decimal:
    if not whole:
        return ZERO
    return (Decimal(part) / Decimal(whole)).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def _tax_type(tax_type: Union[TaxType, str]) -> TaxType:
    if isinstance(tax_type, TaxType):
        return tax_type
    try:
        return TaxType(str(tax_type).upper())
    except ValueError:
        raise ValidationError([f"tax_type must be one of VAT, CIT (got {tax_type!r})"])
