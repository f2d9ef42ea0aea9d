"""InputValidator / CalculationRequest 테스트"""

from decimal import Decimal

import pytest

from taxaudit.core import (
    CalculationRequest, CompanyAttributes, ExpenseLine, InputValidator,
    TaxPeriod, TaxType, ValidationError, check_vat_registration,
)
from taxaudit.core.money import round_money, to_decimal

from conftest import cit_request, vat_request


class TestInputValidator:
    """입력 검증 테스트"""

    def setup_method(self):
        self.validator = InputValidator()

    def test_valid_vat_request(self):
        result = self.validator.validate(vat_request(trn="100123456700003"))

        assert result.valid is True
        assert result.errors == []

    def test_valid_cit_request(self):
        assert self.validator.validate(cit_request()).valid is True

    def test_reports_all_violations_at_once(self):
        """첫 번째 오류에서 멈추지 않고 모두 보고"""
        request = CalculationRequest(
            company_id="",
            tax_type=TaxType.VAT,
            period="2024-13",
            total_revenue=Decimal("-1"),
            total_expenses=Decimal("-5"),
            trn="12345",
            vat_rate_override=Decimal("1.2"),
        )

        result = self.validator.validate(request)

        assert result.valid is False
        assert len(result.errors) == 6
        assert "company_id is required" in result.errors
        assert any("unsupported period format" in error for error in result.errors)
        assert any(error.startswith("total_revenue must not be negative") for error in result.errors)
        assert any(error.startswith("total_expenses must not be negative") for error in result.errors)
        assert any("vat_rate_override" in error for error in result.errors)
        assert "trn must be exactly 15 digits" in result.errors

    def test_missing_amounts(self):
        request = CalculationRequest(company_id="ACME", tax_type=TaxType.VAT, period="2024-01")

        errors = self.validator.validate(request).errors

        assert "total_revenue is required" in errors
        assert "total_expenses or expense_lines is required" in errors

    def test_expense_lines_replace_total_expenses(self):
        request = CalculationRequest(
            company_id="ACME",
            tax_type=TaxType.VAT,
            period="2024-01",
            total_revenue=Decimal("1000"),
            expense_lines=(ExpenseLine("rent", Decimal("100")),),
        )

        assert self.validator.validate(request).valid is True

    def test_negative_expense_line(self):
        request = vat_request(expense_lines=(ExpenseLine("rent", Decimal("-10")),))

        errors = self.validator.validate(request).errors

        assert errors == ["expense_lines[0].amount must not be negative (got -10)"]

    def test_cit_requires_branch_flags(self):
        """법인세는 자유구역/소기업 플래그가 반드시 있어야 함"""
        request = cit_request(free_zone_status=None, small_business_election=None)

        errors = self.validator.validate(request).errors

        assert "free_zone_status is required for CIT" in errors
        assert "small_business_election is required for CIT" in errors

    def test_vat_does_not_require_cit_flags(self):
        request = vat_request(attributes=CompanyAttributes())
        assert self.validator.validate(request).valid is True

    def test_free_zone_claim_requires_qualifying_income(self):
        request = cit_request(free_zone_status=True, qfzp_status=True)

        errors = self.validator.validate(request).errors

        assert errors == ["qualifying_income is required when free_zone_status is claimed"]

    def test_qfzp_requires_free_zone(self):
        request = cit_request(free_zone_status=False, qfzp_status=True)

        assert "qfzp_status requires free_zone_status" in self.validator.validate(request).errors

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_amounts_reported(self, value):
        request = vat_request(revenue=value, vat_rate_override=Decimal(value))

        errors = self.validator.validate(request).errors

        assert f"total_revenue must be a finite number (got {Decimal(value)})" in errors
        assert f"vat_rate_override must be within [0, 1] (got {Decimal(value)})" in errors

    def test_validate_or_raise(self):
        with pytest.raises(ValidationError) as exc_info:
            self.validator.validate_or_raise(vat_request(revenue="-1", trn="abc"))

        assert len(exc_info.value.errors) == 2
        assert exc_info.value.to_dict()["error"] == "VALIDATION_FAILED"

    def test_validation_has_no_side_effects(self):
        request = vat_request()
        before = request.to_dict()

        self.validator.validate(request)
        self.validator.validate(request)

        assert request.to_dict() == before


class TestCalculationRequest:
    """요청 변환 테스트"""

    def test_from_dict_converts_amounts(self):
        request = CalculationRequest.from_dict({
            'company_id': 'ACME',
            'tax_type': 'vat',
            'period': '2024-Q2',
            'total_revenue': '1000.50',
            'total_expenses': 200,
            'company_attributes': {'free_zone_status': False},
        })

        assert request.tax_type == TaxType.VAT
        assert request.total_revenue == Decimal("1000.50")
        assert request.total_expenses == Decimal("200")
        assert request.attributes.free_zone_status is False

    def test_from_dict_float_goes_through_str(self):
        request = CalculationRequest.from_dict({
            'company_id': 'ACME', 'tax_type': 'VAT', 'period': '2024',
            'total_revenue': 0.1, 'total_expenses': 0,
        })

        assert request.total_revenue == Decimal("0.1")

    def test_from_dict_collects_conversion_errors(self):
        with pytest.raises(ValidationError) as exc_info:
            CalculationRequest.from_dict({
                'company_id': 'ACME',
                'tax_type': 'SALES',
                'period': '2024',
                'total_revenue': 'lots',
            })

        assert len(exc_info.value.errors) == 2

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-inf"])
    def test_from_dict_rejects_non_finite_amounts(self, value):
        with pytest.raises(ValidationError) as exc_info:
            CalculationRequest.from_dict({
                'company_id': 'ACME', 'tax_type': 'VAT', 'period': '2024',
                'total_revenue': value, 'total_expenses': float("nan"),
            })

        assert exc_info.value.errors == [
            "total_revenue must be a finite decimal number",
            "total_expenses must be a finite decimal number",
        ]

    def test_from_dict_rejects_non_boolean_flags(self):
        """플래그는 불리언만 허용 (문자열 "false" 포함 거부)"""
        with pytest.raises(ValidationError) as exc_info:
            CalculationRequest.from_dict({
                'company_id': 'ACME', 'tax_type': 'CIT', 'period': '2024',
                'total_revenue': '100', 'total_expenses': '0',
                'attributes': {'free_zone_status': "false", 'small_business_election': False},
                'expense_lines': [{'category': 'rent', 'amount': '10', 'vat_deductible': 'yes'}],
            })

        assert exc_info.value.errors == [
            "free_zone_status must be true or false (got 'false')",
            "expense_lines[0].vat_deductible must be true or false (got 'yes')",
        ]

    def test_round_trip_keeps_values(self):
        original = cit_request(free_zone_status=True, qfzp_status=True, qualifying_income="2000000")

        restored = CalculationRequest.from_dict(original.to_dict())

        assert restored == original

    def test_with_changes(self):
        request = vat_request()

        changed = request.with_changes(total_revenue="2000000")

        assert changed.total_revenue == Decimal("2000000")
        assert request.total_revenue == Decimal("1000000")

    def test_deductible_expenses_per_tax_type(self):
        lines = (
            ExpenseLine("entertainment", Decimal("100"), vat_deductible=False, cit_deductible=True),
            ExpenseLine("fines", Decimal("50"), vat_deductible=True, cit_deductible=False),
        )

        assert vat_request(expense_lines=lines).deductible_expenses() == Decimal("50")
        assert cit_request(expense_lines=lines).deductible_expenses() == Decimal("100")


class TestTaxPeriod:
    """신고 기간 파싱 테스트"""

    @pytest.mark.parametrize("label,start,end", [
        ("2024", (2024, 1, 1), (2024, 12, 31)),
        ("2024-02", (2024, 2, 1), (2024, 2, 29)),
        ("2023-Q4", (2023, 10, 1), (2023, 12, 31)),
    ])
    def test_parse(self, label, start, end):
        period = TaxPeriod.parse(label)

        assert (period.start.year, period.start.month, period.start.day) == start
        assert (period.end.year, period.end.month, period.end.day) == end

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            TaxPeriod.parse("Q1-2024")

    def test_within(self):
        q2 = TaxPeriod.parse("2024-Q2")

        assert q2.within(TaxPeriod.parse("2024-Q1"), TaxPeriod.parse("2024-Q4"))
        assert not q2.within(TaxPeriod.parse("2024-Q3"), TaxPeriod.parse("2024-Q4"))


class TestVatRegistrationAdvisory:
    """VAT 등록 의무 안내 테스트"""

    def test_mandatory(self, config):
        advisory = check_vat_registration(Decimal("375000"), config)

        assert advisory['mandatory'] is True
        assert advisory['voluntary_eligible'] is False

    def test_voluntary(self, config):
        advisory = check_vat_registration(Decimal("200000"), config)

        assert advisory['mandatory'] is False
        assert advisory['voluntary_eligible'] is True
        assert Decimal(advisory['voluntary_threshold']) == Decimal("187500")

    def test_below_thresholds(self, config):
        advisory = check_vat_registration(Decimal("100000"), config)

        assert advisory['mandatory'] is False
        assert advisory['voluntary_eligible'] is False

class TestMoney:
    """금액 변환 테스트"""

    @pytest.mark.parametrize("value", ["NaN", "sNaN", "Infinity", float("inf"), Decimal("-Infinity")])
    def test_non_finite_rejected(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)

    def test_boolean_rejected(self):
        with pytest.raises(ValueError):
            to_decimal(True)

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_round_half_up(self):
        assert round_money(Decimal("10.005")) == Decimal("10.01")
        assert round_money(Decimal("-10.005")) == Decimal("-10.01")
