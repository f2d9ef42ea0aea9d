"""CalculationRequest: 세금 계산 요청 (불변)

요청 자체는 저장되지 않으며, 계산 결과와 함께 AuditRecord에 고정 사본으로
포함됩니다.
"""

import calendar
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import ValidationError
from .money import ZERO, decimal_str, optional_decimal


class TaxType(str, Enum):
    """세목"""
    VAT = "VAT"
    CIT = "CIT"


_YEAR = re.compile(r"^(\d{4})$")
_MONTH = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")
_QUARTER = re.compile(r"^(\d{4})-Q([1-4])$")


@dataclass(frozen=True, order=True)
class TaxPeriod:
    """신고 기간 ("2024", "2024-03", "2024-Q1")

    start, end 순으로 정렬되며 start 일자가 세율 설정 조회 기준일입니다.
    """

    start: date
    end: date
    label: str = field(compare=False)

    @classmethod
    def parse(cls, label: str) -> "TaxPeriod":
        """기간 문자열 파싱

        Raises:
            ValueError: 지원하지 않는 형식인 경우
        """
        text = (label or "").strip()

        match = _YEAR.match(text)
        if match:
            year = int(match.group(1))
            return cls(date(year, 1, 1), date(year, 12, 31), text)

        match = _MONTH.match(text)
        if match:
            year, month = int(match.group(1)), int(match.group(2))
            last_day = calendar.monthrange(year, month)[1]
            return cls(date(year, month, 1), date(year, month, last_day), text)

        match = _QUARTER.match(text)
        if match:
            year, quarter = int(match.group(1)), int(match.group(2))
            first_month = 3 * (quarter - 1) + 1
            last_month = first_month + 2
            last_day = calendar.monthrange(year, last_month)[1]
            return cls(date(year, first_month, 1), date(year, last_month, last_day), text)

        raise ValueError(f"unsupported period format: {label!r} (use YYYY, YYYY-MM or YYYY-Qn)")

    def within(self, first: "TaxPeriod", last: "TaxPeriod") -> bool:
        """first.start ~ last.end 범위에 완전히 포함되는지"""
        return first.start <= self.start and self.end <= last.end

    @property
    def granularity(self) -> str:
        """YEAR, QUARTER 또는 MONTH"""
        if _YEAR.match(self.label):
            return "YEAR"
        if _QUARTER.match(self.label):
            return "QUARTER"
        return "MONTH"

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class CompanyAttributes:
    """계산 분기에 영향을 주는 회사 속성

    None은 "제공되지 않음"을 의미하며, 엔진은 기본값을 추정하지 않습니다.
    """

    free_zone_status: Optional[bool] = None
    small_business_election: Optional[bool] = None
    qfzp_status: Optional[bool] = None
    qualifying_income: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'free_zone_status': self.free_zone_status,
            'small_business_election': self.small_business_election,
            'qfzp_status': self.qfzp_status,
            'qualifying_income': decimal_str(self.qualifying_income),
        }


@dataclass(frozen=True)
class ExpenseLine:
    """비용 항목별 내역"""

    category: str
    amount: Decimal
    vat_deductible: bool = True
    cit_deductible: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'category': self.category,
            'amount': str(self.amount),
            'vat_deductible': self.vat_deductible,
            'cit_deductible': self.cit_deductible,
        }


@dataclass(frozen=True)
class CalculationRequest:
    """세금 계산 요청

    Attributes:
        company_id: 회사 식별자
        tax_type: 세목 (VAT, CIT)
        period: 신고 기간 문자열
        total_revenue: 총 매출
        total_expenses: 총 비용 (expense_lines가 없을 때 사용)
        expense_lines: 비용 항목별 내역
        attributes: 회사 속성
        trn: 과세사업자 등록번호 (15자리)
        vat_rate_override: 사용자가 제시한 세율 (검증만 하며 계산에는 설정 세율 사용)
        reference_id: 외부 참조 ID (신고서, 거래 묶음 등)
    """

    company_id: str
    tax_type: TaxType
    period: str
    total_revenue: Optional[Decimal] = None
    total_expenses: Optional[Decimal] = None
    expense_lines: Tuple[ExpenseLine, ...] = ()
    attributes: CompanyAttributes = field(default_factory=CompanyAttributes)
    trn: Optional[str] = None
    vat_rate_override: Optional[Decimal] = None
    reference_id: Optional[str] = None

    @property
    def tax_period(self) -> TaxPeriod:
        return TaxPeriod.parse(self.period)

    def deductible_expenses(self) -> Decimal:
        """세목별 공제 가능 비용

        항목별 내역이 있으면 해당 세목에 공제 가능한 항목만 합산하고,
        없으면 total_expenses를 그대로 사용합니다.
        """
        if self.expense_lines:
            if self.tax_type == TaxType.VAT:
                lines = [line for line in self.expense_lines if line.vat_deductible]
            else:
                lines = [line for line in self.expense_lines if line.cit_deductible]
            return sum((line.amount for line in lines), ZERO)

        return self.total_expenses if self.total_expenses is not None else ZERO

    def deductions_by_category(self) -> Dict[str, Decimal]:
        """항목별 공제 금액 (결과의 deductions 맵)"""
        if not self.expense_lines:
            return {'total_expenses': self.deductible_expenses()}

        deductions: Dict[str, Decimal] = {}
        for line in self.expense_lines:
            deductible = line.vat_deductible if self.tax_type == TaxType.VAT else line.cit_deductible
            if deductible:
                deductions[line.category] = deductions.get(line.category, ZERO) + line.amount
        return deductions

    def to_dict(self) -> Dict[str, Any]:
        """딕셔너리로 변환 (감사 레코드에 고정되는 형태)"""
        return {
            'company_id': self.company_id,
            'tax_type': self.tax_type.value,
            'period': self.period,
            'total_revenue': decimal_str(self.total_revenue),
            'total_expenses': decimal_str(self.total_expenses),
            'expense_lines': [line.to_dict() for line in self.expense_lines],
            'attributes': self.attributes.to_dict(),
            'trn': self.trn,
            'vat_rate_override': decimal_str(self.vat_rate_override),
            'reference_id': self.reference_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalculationRequest":
        """딕셔너리에서 요청 생성

        숫자 변환에 실패한 필드는 모두 모아서 한 번에 보고합니다.

        Raises:
            ValidationError: 타입 변환 실패
        """
        errors: List[str] = []

        def amount(name: str, value: Any) -> Optional[Decimal]:
            try:
                return optional_decimal(value)
            except ValueError:
                errors.append(f"{name} must be a finite decimal number")
                return None

        def flag(name: str, value: Any, default: Optional[bool] = None) -> Optional[bool]:
            if value is None:
                return default
            if isinstance(value, bool):
                return value
            errors.append(f"{name} must be true or false (got {value!r})")
            return default

        raw_type = data.get('tax_type')
        tax_type = None
        try:
            if isinstance(raw_type, TaxType):
                tax_type = raw_type
            else:
                tax_type = TaxType(str(raw_type).upper())
        except ValueError:
            errors.append(f"tax_type must be one of VAT, CIT (got {raw_type!r})")

        raw_attributes = data.get('attributes') or data.get('company_attributes') or {}
        attributes = CompanyAttributes(
            free_zone_status=flag('free_zone_status', raw_attributes.get('free_zone_status')),
            small_business_election=flag(
                'small_business_election', raw_attributes.get('small_business_election')
            ),
            qfzp_status=flag('qfzp_status', raw_attributes.get('qfzp_status')),
            qualifying_income=amount('qualifying_income', raw_attributes.get('qualifying_income')),
        )

        lines = []
        for index, raw_line in enumerate(data.get('expense_lines') or []):
            line_amount = amount(f"expense_lines[{index}].amount", raw_line.get('amount'))
            lines.append(ExpenseLine(
                category=str(raw_line.get('category') or 'uncategorized'),
                amount=line_amount if line_amount is not None else ZERO,
                vat_deductible=flag(
                    f"expense_lines[{index}].vat_deductible", raw_line.get('vat_deductible'), True
                ),
                cit_deductible=flag(
                    f"expense_lines[{index}].cit_deductible", raw_line.get('cit_deductible'), True
                ),
            ))

        request_kwargs = dict(
            company_id=str(data.get('company_id') or ''),
            period=str(data.get('period') or ''),
            total_revenue=amount('total_revenue', data.get('total_revenue')),
            total_expenses=amount('total_expenses', data.get('total_expenses')),
            expense_lines=tuple(lines),
            attributes=attributes,
            trn=data.get('trn'),
            vat_rate_override=amount('vat_rate_override', data.get('vat_rate_override')),
            reference_id=data.get('reference_id'),
        )

        if errors:
            raise ValidationError(errors)

        return cls(tax_type=tax_type, **request_kwargs)

    def with_changes(self, **changes) -> "CalculationRequest":
        """일부 필드를 바꾼 새 요청 (정정 요청 작성용)"""
        data = self.to_dict()
        data.update(changes)
        return CalculationRequest.from_dict(data)

    def __str__(self) -> str:
        return f"CalculationRequest({self.company_id}, {self.tax_type.value}, {self.period})"
