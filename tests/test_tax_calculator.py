"""TaxCalculator 테스트 (VAT / CIT)"""

import dataclasses
from decimal import Decimal

import pytest

from taxaudit.core import (
    CalculationResult, CITBranch, CITDetails, MissingAttributeError,
    TaxCalculator, ValidationError, VATDetails, VATPosition,
)

from conftest import cit_request, vat_request


class TestVATCalculation:
    """부가가치세 계산 테스트"""

    def setup_method(self):
        self.calculator = TaxCalculator()

    def test_basic_vat(self, config):
        """매출 100만, 공제 비용 40만, 5% → 납부 3만"""
        result = self.calculator.calculate(vat_request(), config)

        assert result.total_amount == Decimal("30000")
        assert result.currency == "AED"
        assert result.applied_rate == Decimal("0.05")
        assert result.rate_config_version == "UAE-2023.1"

        assert isinstance(result.details, VATDetails)
        assert result.details.output_vat == Decimal("50000")
        assert result.details.input_vat == Decimal("20000")
        assert result.details.net_vat == Decimal("30000")
        assert result.details.position == VATPosition.PAYABLE

    def test_step_order(self, config):
        """output → input → net → 반올림 순서"""
        result = self.calculator.calculate(vat_request(), config)

        assert [step.step_number for step in result.steps] == [1, 2, 3, 4]
        assert [step.result for step in result.steps] == [
            Decimal("50000"), Decimal("20000"), Decimal("30000"), Decimal("30000"),
        ]
        assert result.steps[2].sources == {'output_vat': 'step_1', 'input_vat': 'step_2'}
        assert all(step.regulatory_reference for step in result.steps)

    def test_refundable_position(self, config):
        """매입세액이 더 크면 납부세액 0, 환급 가능액 기록"""
        result = self.calculator.calculate(vat_request(revenue="100000", expenses="300000"), config)

        assert result.total_amount == Decimal("0")
        assert result.details.position == VATPosition.REFUNDABLE
        assert result.details.refundable_amount == Decimal("10000")

    def test_rounding_only_on_final_step(self, config):
        """0.505 → 0.51 (round-half-up), 중간값은 그대로"""
        result = self.calculator.calculate(vat_request(revenue="10.10", expenses="0"), config)

        assert result.steps[0].result == Decimal("0.5050")
        assert result.steps[2].result == Decimal("0.5050")
        assert result.total_amount == Decimal("0.51")
        assert str(result.total_amount) == "0.51"

    def test_rate_override_is_not_used(self, config):
        """제시된 세율과 무관하게 설정 세율 사용"""
        result = self.calculator.calculate(vat_request(vat_rate_override=Decimal("0.10")), config)

        assert result.total_amount == Decimal("30000")

    def test_missing_revenue(self, config):
        request = dataclasses.replace(vat_request(), total_revenue=None)

        with pytest.raises(ValidationError):
            self.calculator.calculate(request, config)


class TestCITCalculation:
    """법인세 계산 테스트"""

    def setup_method(self):
        self.calculator = TaxCalculator()

    def test_standard_rate(self, config):
        """매출 500만, 비용 100만, 9% → 36만"""
        result = self.calculator.calculate(cit_request(), config)

        assert result.taxable_base == Decimal("4000000")
        assert result.total_amount == Decimal("360000")
        assert result.applied_rate == Decimal("0.09")
        assert isinstance(result.details, CITDetails)
        assert result.details.branch == CITBranch.STANDARD

    def test_small_business_below_threshold(self, config):
        """과세표준 30만 ≤ 37.5만 → 0"""
        request = cit_request(revenue="500000", expenses="200000", small_business_election=True)

        result = self.calculator.calculate(request, config)

        assert result.taxable_base == Decimal("300000")
        assert result.total_amount == Decimal("0")
        assert result.details.branch == CITBranch.SMALL_BUSINESS_RELIEF
        assert result.exemptions == {'small_business_relief': Decimal("300000")}

    def test_small_business_above_threshold(self, config):
        """(100만 − 37.5만) × 9% = 56,250"""
        request = cit_request(revenue="1500000", expenses="500000", small_business_election=True)

        result = self.calculator.calculate(request, config)

        assert result.total_amount == Decimal("56250")
        assert result.steps[2].operation == 'excess_multiply'

    def test_free_zone_exemption(self, config):
        """적격 자유구역, 과세표준 200만 ≤ 300만 → 세율 0, 세액 0, 면제 단계 존재"""
        request = cit_request(
            revenue="2500000", expenses="500000",
            free_zone_status=True, qfzp_status=True, qualifying_income="2000000",
        )

        result = self.calculator.calculate(request, config)

        assert result.taxable_base == Decimal("2000000")
        assert result.total_amount == Decimal("0")
        assert result.applied_rate == Decimal("0")
        assert result.details.branch == CITBranch.FREE_ZONE_EXEMPT
        assert result.exemptions['free_zone_exemption'] == Decimal("2000000")
        assert "Free-zone exemption" in result.steps[2].description

    def test_free_zone_short_circuits_small_business(self, config):
        """자유구역 면제가 소기업 감면보다 우선"""
        request = cit_request(
            revenue="1000000", expenses="0",
            free_zone_status=True, qfzp_status=True, qualifying_income="1000000",
            small_business_election=True,
        )

        result = self.calculator.calculate(request, config)

        assert result.details.branch == CITBranch.FREE_ZONE_EXEMPT

    def test_free_zone_above_threshold_uses_standard_rate(self, config):
        request = cit_request(free_zone_status=True, qfzp_status=True, qualifying_income="4000000")

        result = self.calculator.calculate(request, config)

        assert result.details.branch == CITBranch.STANDARD
        assert result.total_amount == Decimal("360000")
        assert "exceeds free-zone threshold" in result.details.branch_reason

    def test_non_qualifying_free_zone_person(self, config):
        request = cit_request(
            revenue="1000000", expenses="0",
            free_zone_status=True, qfzp_status=False, qualifying_income="0",
        )

        result = self.calculator.calculate(request, config)

        assert result.details.branch == CITBranch.STANDARD
        assert result.total_amount == Decimal("90000")

    def test_branch_selection_step_records_reason(self, config):
        result = self.calculator.calculate(cit_request(small_business_election=True), config)

        selection = result.steps[1]
        assert selection.operation == 'select'
        assert selection.currency == "RATE"
        assert selection.inputs['small_business_election'] is True
        assert "SMALL_BUSINESS_RELIEF" in selection.description

    def test_missing_free_zone_flag(self, config):
        """필수 속성이 없으면 기본값을 추정하지 않고 실패"""
        with pytest.raises(MissingAttributeError) as exc_info:
            self.calculator.calculate(cit_request(free_zone_status=None), config)

        assert exc_info.value.attribute == 'free_zone_status'

    def test_missing_qfzp_status_when_free_zone_claimed(self, config):
        request = cit_request(free_zone_status=True, qualifying_income="100")

        with pytest.raises(MissingAttributeError) as exc_info:
            self.calculator.calculate(request, config)

        assert exc_info.value.attribute == 'qfzp_status'

    def test_expenses_exceed_revenue(self, config):
        result = self.calculator.calculate(cit_request(revenue="100", expenses="500"), config)

        assert result.taxable_base == Decimal("0")
        assert result.total_amount == Decimal("0")

    def test_pre_cit_period_config(self, registry):
        """법인세 시행 전 설정은 세율 0"""
        config = registry.get_by_version("UAE-2018.1")

        result = self.calculator.calculate(cit_request(period="2022"), config)

        assert result.total_amount == Decimal("0")
        assert result.rate_config_version == "UAE-2018.1"


class TestCalculationTrace:
    """결정성 / 재현성 테스트"""

    def setup_method(self):
        self.calculator = TaxCalculator()

    @pytest.mark.parametrize("request_factory", [
        lambda: vat_request(),
        lambda: vat_request(revenue="12345.67", expenses="2345.01"),
        lambda: cit_request(),
        lambda: cit_request(small_business_election=True),
        lambda: cit_request(free_zone_status=True, qfzp_status=True, qualifying_income="10"),
    ])
    def test_determinism_and_replay(self, config, request_factory):
        first = self.calculator.calculate(request_factory(), config)
        second = self.calculator.calculate(request_factory(), config)

        assert first == second
        assert first.to_dict() == second.to_dict()
        assert first.replay() == first.total_amount
        assert first.trace_problems() == []

    def test_replay_detects_tampered_step(self, config):
        result = self.calculator.calculate(vat_request(), config)
        tampered_steps = list(result.steps)
        tampered_steps[1] = dataclasses.replace(tampered_steps[1], result=Decimal("1"))
        tampered = dataclasses.replace(result, steps=tampered_steps)

        with pytest.raises(ValueError):
            tampered.replay()

    def test_replay_detects_broken_reference(self, config):
        result = self.calculator.calculate(cit_request(), config)
        steps = list(result.steps)
        inputs = dict(steps[2].inputs, taxable_base=Decimal("1"))
        steps[2] = dataclasses.replace(steps[2], inputs=inputs, result=Decimal("0.09"))

        with pytest.raises(ValueError, match="does not match step 1"):
            dataclasses.replace(result, steps=steps).replay()

    def test_serialized_result_replays(self, config):
        """저장 형태에서 복원해도 재현 가능"""
        result = self.calculator.calculate(cit_request(small_business_election=True), config)

        restored = CalculationResult.from_dict(result.to_dict())

        assert restored == result
        assert restored.replay() == result.total_amount

    def test_trace_summary(self, config):
        summary = self.calculator.calculate(vat_request(), config).get_trace_summary()

        assert "UAE-2023.1" in summary
        assert "Total: 30,000.00 AED" in summary
