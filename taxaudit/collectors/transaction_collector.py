"""TransactionCollector: 거래 내역을 기간별 계산 요청으로 집계"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from ..core.exceptions import ValidationError
from ..core.money import ZERO, to_decimal
from ..core.request import (
    CalculationRequest, CompanyAttributes, ExpenseLine, TaxPeriod, TaxType,
)


REVENUE = "REVENUE"
EXPENSE = "EXPENSE"


@dataclass(frozen=True)
class Transaction:
    """원장 거래 한 건

    Attributes:
        transaction_type: REVENUE 또는 EXPENSE
        amount: 금액 (세전)
        transaction_date: 거래일
        category: 비용 분류
        vat_deductible: 매입세액 공제 가능 여부
        cit_deductible: 법인세 손금 인정 여부
    """

    transaction_type: str
    amount: Decimal
    transaction_date: date
    category: str = "uncategorized"
    vat_deductible: bool = True
    cit_deductible: bool = True


class TransactionCollector:
    """거래 내역 수집기

    회계 시스템에서 가져온 거래 행(dict)을 Transaction으로 변환하고,
    신고 기간에 속하는 거래만 모아 CalculationRequest를 만듭니다.

    - REVENUE 거래는 합산하여 total_revenue가 됩니다.
    - EXPENSE 거래는 분류별로 합산하여 expense_lines가 됩니다
      (공제 가능 여부가 다른 거래는 별도 항목으로 유지).
    """

    def parse_transactions(self, rows: Iterable[Dict[str, Any]]) -> List[Transaction]:
        """거래 행 변환

        Raises:
            ValidationError: 변환할 수 없는 행이 있는 경우 (모든 오류를 모아서 보고)
        """
        transactions = []
        errors = []

        for index, row in enumerate(rows):
            transaction_type = str(row.get('type') or row.get('transaction_type') or '').upper()
            if transaction_type not in (REVENUE, EXPENSE):
                errors.append(f"transactions[{index}].type must be REVENUE or EXPENSE")
                continue

            try:
                amount = to_decimal(row.get('amount'))
            except ValueError:
                errors.append(f"transactions[{index}].amount must be a decimal number")
                continue

            try:
                transaction_date = self._parse_date(row.get('date') or row.get('transaction_date'))
            except (TypeError, ValueError):
                errors.append(f"transactions[{index}].date must be an ISO date")
                continue

            transactions.append(Transaction(
                transaction_type=transaction_type,
                amount=amount,
                transaction_date=transaction_date,
                category=str(row.get('category') or 'uncategorized'),
                vat_deductible=bool(row.get('vat_deductible', True)),
                cit_deductible=bool(row.get('cit_deductible', True)),
            ))

        if errors:
            raise ValidationError(errors)

        return transactions

    def build_request(
        self,
        company_id: str,
        tax_type: TaxType,
        period: str,
        transactions: Iterable[Transaction],
        attributes: Optional[CompanyAttributes] = None,
        trn: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> CalculationRequest:
        """기간에 속한 거래로 계산 요청 생성

        Args:
            company_id: 회사 식별자
            tax_type: 세목
            period: 신고 기간 ("2024-Q1" 등)
            transactions: 거래 목록
            attributes: 회사 속성
            trn: 과세사업자 등록번호
            reference_id: 외부 참조 ID

        Returns:
            CalculationRequest

        Raises:
            ValidationError: 기간 형식이 잘못된 경우
        """
        try:
            tax_period = TaxPeriod.parse(period)
        except ValueError as e:
            raise ValidationError([str(e)])

        revenue = ZERO
        expense_totals: Dict[tuple, Decimal] = {}

        for transaction in transactions:
            if not tax_period.start <= transaction.transaction_date <= tax_period.end:
                continue

            if transaction.transaction_type == REVENUE:
                revenue += transaction.amount
            else:
                key = (transaction.category, transaction.vat_deductible, transaction.cit_deductible)
                expense_totals[key] = expense_totals.get(key, ZERO) + transaction.amount

        expense_lines = tuple(
            ExpenseLine(
                category=category,
                amount=amount,
                vat_deductible=vat_deductible,
                cit_deductible=cit_deductible,
            )
            for (category, vat_deductible, cit_deductible), amount in sorted(expense_totals.items())
        )

        return CalculationRequest(
            company_id=company_id,
            tax_type=tax_type,
            period=period,
            total_revenue=revenue,
            total_expenses=sum((line.amount for line in expense_lines), ZERO),
            expense_lines=expense_lines,
            attributes=attributes or CompanyAttributes(),
            trn=trn,
            reference_id=reference_id,
        )

    def _parse_date(self, value: Any) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        return date.fromisoformat(str(value)[:10])
