"""TransactionCollector 테스트"""

from datetime import date
from decimal import Decimal

import pytest

from taxaudit.collectors import Transaction, TransactionCollector
from taxaudit.core import CompanyAttributes, TaxCalculator, TaxType, ValidationError


ROWS = [
    {'type': 'REVENUE', 'amount': '600000', 'date': '2024-01-15'},
    {'type': 'revenue', 'amount': '400000', 'date': '2024-03-31'},
    {'type': 'REVENUE', 'amount': '999999', 'date': '2024-04-01'},
    {'type': 'EXPENSE', 'amount': '300000', 'date': '2024-02-01', 'category': 'rent'},
    {'type': 'EXPENSE', 'amount': '100000', 'date': '2024-02-10', 'category': 'rent'},
    {'type': 'EXPENSE', 'amount': '50000', 'date': '2024-02-11', 'category': 'entertainment',
     'vat_deductible': False, 'cit_deductible': False},
]


class TestParseTransactions:
    """거래 행 변환 테스트"""

    def setup_method(self):
        self.collector = TransactionCollector()

    def test_parse_rows(self):
        transactions = self.collector.parse_transactions(ROWS)

        assert len(transactions) == 6
        assert transactions[1] == Transaction(
            transaction_type='REVENUE',
            amount=Decimal("400000"),
            transaction_date=date(2024, 3, 31),
        )
        assert transactions[5].vat_deductible is False

    def test_collects_all_errors(self):
        rows = [
            {'type': 'TRANSFER', 'amount': '1', 'date': '2024-01-01'},
            {'type': 'REVENUE', 'amount': 'abc', 'date': '2024-01-01'},
            {'type': 'EXPENSE', 'amount': '1', 'date': 'yesterday'},
        ]

        with pytest.raises(ValidationError) as exc_info:
            self.collector.parse_transactions(rows)

        assert len(exc_info.value.errors) == 3
        assert "transactions[0].type" in exc_info.value.errors[0]


class TestBuildRequest:
    """계산 요청 생성 테스트"""

    def setup_method(self):
        self.collector = TransactionCollector()
        self.transactions = self.collector.parse_transactions(ROWS)

    def test_filters_by_period(self):
        request = self.collector.build_request("ACME", TaxType.VAT, "2024-Q1", self.transactions)

        assert request.total_revenue == Decimal("1000000")
        assert request.total_expenses == Decimal("450000")

    def test_groups_expense_lines(self):
        request = self.collector.build_request("ACME", TaxType.VAT, "2024-Q1", self.transactions)

        assert [(line.category, line.amount) for line in request.expense_lines] == [
            ('entertainment', Decimal("50000")),
            ('rent', Decimal("400000")),
        ]

    def test_non_deductible_lines_excluded_from_calculation(self, config):
        """공제 불가 비용은 매입세액에서 제외"""
        request = self.collector.build_request("ACME", TaxType.VAT, "2024-Q1", self.transactions)

        result = TaxCalculator().calculate(request, config)

        assert result.details.input_vat == Decimal("20000")
        assert result.total_amount == Decimal("30000")

    def test_cit_request_carries_attributes(self, config):
        attributes = CompanyAttributes(free_zone_status=False, small_business_election=False)

        request = self.collector.build_request(
            "ACME", TaxType.CIT, "2024", self.transactions, attributes=attributes
        )
        result = TaxCalculator().calculate(request, config)

        # (1,999,999 − 400,000) × 9%
        assert result.taxable_base == Decimal("1599999")
        assert result.total_amount == Decimal("143999.91")

    def test_empty_period(self):
        request = self.collector.build_request("ACME", TaxType.VAT, "2023-Q1", self.transactions)

        assert request.total_revenue == Decimal("0")
        assert request.expense_lines == ()

    def test_invalid_period(self):
        with pytest.raises(ValidationError):
            self.collector.build_request("ACME", TaxType.VAT, "Q1-2024", self.transactions)
