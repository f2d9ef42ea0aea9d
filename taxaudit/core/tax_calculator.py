"""TaxCalculator: UAE 부가가치세(VAT) / 법인세(CIT) 계산기

상태가 없는 순수 계산기입니다. 동일한 요청과 RateConfig가 주어지면
항상 동일한 CalculationResult를 반환합니다. 중간값은 반올림하지 않고
마지막 단계에서만 fils 단위로 반올림합니다.
"""

from decimal import Decimal
from typing import Dict, List

from .calculation_trace import (
    CalculationResult, CalculationStep, CITBranch, CITDetails,
    RATE_UNIT, VATDetails, VATPosition,
)
from .exceptions import MissingAttributeError, ValidationError
from .money import ZERO, round_money
from .rate_config import RateConfig
from .request import CalculationRequest, TaxType


class TaxCalculator:
    """세금 계산기

    요청의 tax_type에 따라 VAT 또는 CIT 계산을 수행하고, 각 단계를
    CalculationStep으로 기록합니다.
    """

    def calculate(self, request: CalculationRequest, config: RateConfig) -> CalculationResult:
        """세목에 맞는 계산 실행

        Args:
            request: 계산 요청
            config: 요청 기간에 유효한 세율 설정

        Returns:
            계산 결과

        Raises:
            ValidationError: 필수 입력 누락
            MissingAttributeError: 분기 판단에 필요한 회사 속성 누락
        """
        if request.tax_type == TaxType.VAT:
            return self.calculate_vat(request, config)
        if request.tax_type == TaxType.CIT:
            return self.calculate_cit(request, config)
        raise ValueError(f"unhandled tax type: {request.tax_type}")

    def calculate_vat(self, request: CalculationRequest, config: RateConfig) -> CalculationResult:
        """부가가치세 계산

        output VAT = 매출 × 세율, input VAT = 공제 가능 비용 × 세율,
        납부세액 = max(0, output − input)
        """
        revenue = self._require_revenue(request)
        expenses = request.deductible_expenses()
        rate = config.vat_standard_rate
        rate_citation = config.citation("vat_rate")

        steps: List[CalculationStep] = []

        # 1. 매출세액
        output_vat = revenue * rate
        steps.append(CalculationStep(
            step_number=1,
            description="Output VAT on taxable supplies",
            formula=f"total_revenue × vat_standard_rate ({rate})",
            inputs={'total_revenue': revenue, 'vat_standard_rate': rate},
            result=output_vat,
            currency=config.currency,
            regulatory_reference=rate_citation,
            operation='multiply',
            operands=('total_revenue', 'vat_standard_rate'),
            sources={
                'total_revenue': 'request.total_revenue',
                'vat_standard_rate': 'config.vat_standard_rate',
            },
        ))

        # 2. 매입세액
        input_vat = expenses * rate
        steps.append(CalculationStep(
            step_number=2,
            description="Recoverable input VAT on deductible expenses",
            formula=f"deductible_expenses × vat_standard_rate ({rate})",
            inputs={'deductible_expenses': expenses, 'vat_standard_rate': rate},
            result=input_vat,
            currency=config.currency,
            regulatory_reference=config.citation("vat_input_tax"),
            operation='multiply',
            operands=('deductible_expenses', 'vat_standard_rate'),
            sources={
                'deductible_expenses': self._expense_source(request),
                'vat_standard_rate': 'config.vat_standard_rate',
            },
        ))

        # 3. 납부(환급)세액
        net_vat = max(output_vat - input_vat, ZERO)
        if output_vat >= input_vat:
            position = VATPosition.PAYABLE
            refundable = ZERO
            description = "Net VAT payable"
        else:
            position = VATPosition.REFUNDABLE
            refundable = input_vat - output_vat
            description = "Net VAT payable (input exceeds output, excess is refundable)"

        steps.append(CalculationStep(
            step_number=3,
            description=description,
            formula="max(0, output_vat − input_vat)",
            inputs={'output_vat': output_vat, 'input_vat': input_vat},
            result=net_vat,
            currency=config.currency,
            regulatory_reference=config.citation("vat_net"),
            operation='subtract_floor_zero',
            operands=('output_vat', 'input_vat'),
            sources={'output_vat': 'step_1', 'input_vat': 'step_2'},
        ))

        total = self._append_rounding(steps, net_vat, config)

        return CalculationResult(
            total_amount=total,
            currency=config.currency,
            taxable_base=revenue,
            applied_rate=rate,
            exemptions={},
            deductions=request.deductions_by_category(),
            steps=steps,
            details=VATDetails(
                output_vat=output_vat,
                input_vat=input_vat,
                net_vat=net_vat,
                position=position,
                refundable_amount=refundable,
            ),
            rate_config_version=config.jurisdiction_version,
        )

    def calculate_cit(self, request: CalculationRequest, config: RateConfig) -> CalculationResult:
        """법인세 계산

        과세표준 = max(0, 매출 − 공제 가능 비용). 이후 우선순위에 따라
        자유구역 면제, 소기업 감면, 표준세율 중 정확히 하나의 분기를 적용합니다.
        """
        revenue = self._require_revenue(request)
        attributes = request.attributes

        # 분기 판단 전에 필수 속성부터 확인 (기본값을 추정하지 않음)
        if attributes.free_zone_status is None:
            raise MissingAttributeError('free_zone_status', "needed to evaluate the free-zone exemption")
        if attributes.small_business_election is None:
            raise MissingAttributeError('small_business_election', "needed to evaluate small-business relief")
        if attributes.free_zone_status:
            if attributes.qfzp_status is None:
                raise MissingAttributeError('qfzp_status', "free-zone status was claimed")
            if attributes.qualifying_income is None:
                raise MissingAttributeError('qualifying_income', "free-zone status was claimed")

        expenses = request.deductible_expenses()
        steps: List[CalculationStep] = []

        # 1. 과세표준
        taxable_base = max(revenue - expenses, ZERO)
        steps.append(CalculationStep(
            step_number=1,
            description="Taxable income after deductible expenses",
            formula="max(0, total_revenue − deductible_expenses)",
            inputs={'total_revenue': revenue, 'deductible_expenses': expenses},
            result=taxable_base,
            currency=config.currency,
            regulatory_reference=config.citation("cit_taxable_income"),
            operation='subtract_floor_zero',
            operands=('total_revenue', 'deductible_expenses'),
            sources={
                'total_revenue': 'request.total_revenue',
                'deductible_expenses': self._expense_source(request),
            },
        ))

        # 2. 적용 분기 선택
        free_zone_qualified = (
            attributes.free_zone_status is True
            and attributes.qfzp_status is True
            and taxable_base <= config.cit_free_zone_threshold
        )
        if free_zone_qualified:
            branch = CITBranch.FREE_ZONE_EXEMPT
            applied_rate = ZERO
            rate_source = 'rule.free_zone_zero_rate'
            reason = (
                f"qualifying free zone person with taxable income {taxable_base} "
                f"≤ free-zone threshold {config.cit_free_zone_threshold}: 0% applies"
            )
            citation_key = "cit_free_zone"
        elif attributes.small_business_election:
            branch = CITBranch.SMALL_BUSINESS_RELIEF
            applied_rate = config.cit_standard_rate
            rate_source = 'config.cit_standard_rate'
            reason = (
                f"small business relief elected: 0% up to "
                f"{config.cit_small_business_threshold}, standard rate on the excess"
            )
            citation_key = "cit_small_business"
        else:
            branch = CITBranch.STANDARD
            applied_rate = config.cit_standard_rate
            rate_source = 'config.cit_standard_rate'
            reason = self._standard_reason(request, taxable_base, config)
            citation_key = "cit_rate"

        selection_inputs: Dict[str, object] = {
            'taxable_base': taxable_base,
            'free_zone_status': attributes.free_zone_status,
            'qfzp_status': attributes.qfzp_status,
            'small_business_election': attributes.small_business_election,
            'cit_free_zone_threshold': config.cit_free_zone_threshold,
            'applied_rate': applied_rate,
        }
        selection_sources = {
            'taxable_base': 'step_1',
            'free_zone_status': 'request.attributes.free_zone_status',
            'qfzp_status': 'request.attributes.qfzp_status',
            'small_business_election': 'request.attributes.small_business_election',
            'cit_free_zone_threshold': 'config.cit_free_zone_threshold',
            'applied_rate': rate_source,
        }
        if attributes.qualifying_income is not None:
            selection_inputs['qualifying_income'] = attributes.qualifying_income
            selection_sources['qualifying_income'] = 'request.attributes.qualifying_income'

        steps.append(CalculationStep(
            step_number=2,
            description=f"Select {branch.value} branch: {reason}",
            formula="free zone → small business relief → standard rate (first match)",
            inputs=selection_inputs,
            result=applied_rate,
            currency=RATE_UNIT,
            regulatory_reference=config.citation(citation_key),
            operation='select',
            operands=('applied_rate',),
            sources=selection_sources,
        ))

        # 3. 분기별 세액 계산
        exemptions: Dict[str, Decimal] = {}
        relief_amount = ZERO

        if branch == CITBranch.FREE_ZONE_EXEMPT:
            tax = taxable_base * applied_rate
            exemptions['free_zone_exemption'] = taxable_base
            relief_amount = taxable_base
            steps.append(CalculationStep(
                step_number=3,
                description="Free-zone exemption: qualifying income taxed at 0%",
                formula="taxable_base × 0",
                inputs={'taxable_base': taxable_base, 'applied_rate': applied_rate},
                result=tax,
                currency=config.currency,
                regulatory_reference=config.citation("cit_free_zone"),
                operation='multiply',
                operands=('taxable_base', 'applied_rate'),
                sources={'taxable_base': 'step_1', 'applied_rate': 'step_2'},
            ))
        elif branch == CITBranch.SMALL_BUSINESS_RELIEF:
            threshold = config.cit_small_business_threshold
            tax = max(taxable_base - threshold, ZERO) * applied_rate
            relief_amount = min(taxable_base, threshold)
            exemptions['small_business_relief'] = relief_amount
            steps.append(CalculationStep(
                step_number=3,
                description="Small business relief: standard rate on income above the threshold",
                formula=f"max(0, taxable_base − {threshold}) × applied_rate",
                inputs={
                    'taxable_base': taxable_base,
                    'cit_small_business_threshold': threshold,
                    'applied_rate': applied_rate,
                },
                result=tax,
                currency=config.currency,
                regulatory_reference=config.citation("cit_small_business"),
                operation='excess_multiply',
                operands=('taxable_base', 'cit_small_business_threshold', 'applied_rate'),
                sources={
                    'taxable_base': 'step_1',
                    'cit_small_business_threshold': 'config.cit_small_business_threshold',
                    'applied_rate': 'step_2',
                },
            ))
        elif branch == CITBranch.STANDARD:
            tax = taxable_base * applied_rate
            steps.append(CalculationStep(
                step_number=3,
                description="Corporate tax at the standard rate",
                formula=f"taxable_base × applied_rate ({applied_rate})",
                inputs={'taxable_base': taxable_base, 'applied_rate': applied_rate},
                result=tax,
                currency=config.currency,
                regulatory_reference=config.citation("cit_rate"),
                operation='multiply',
                operands=('taxable_base', 'applied_rate'),
                sources={'taxable_base': 'step_1', 'applied_rate': 'step_2'},
            ))
        else:
            raise ValueError(f"unhandled CIT branch: {branch}")

        total = self._append_rounding(steps, tax, config)

        return CalculationResult(
            total_amount=total,
            currency=config.currency,
            taxable_base=taxable_base,
            applied_rate=applied_rate,
            exemptions=exemptions,
            deductions=request.deductions_by_category(),
            steps=steps,
            details=CITDetails(
                taxable_base=taxable_base,
                branch=branch,
                branch_reason=reason,
                relief_amount=relief_amount,
            ),
            rate_config_version=config.jurisdiction_version,
        )

    def _append_rounding(self, steps: List[CalculationStep], amount: Decimal,
                         config: RateConfig) -> Decimal:
        """마지막 단계: fils 단위 반올림 (round-half-up)"""
        previous = steps[-1].step_number
        total = round_money(amount)
        steps.append(CalculationStep(
            step_number=previous + 1,
            description="Round the final amount to the nearest fils",
            formula="round_half_up(amount, 0.01)",
            inputs={'amount': amount},
            result=total,
            currency=config.currency,
            regulatory_reference=config.citation("rounding"),
            operation='round_half_up',
            operands=('amount',),
            sources={'amount': f"step_{previous}"},
        ))
        return total

    def _require_revenue(self, request: CalculationRequest) -> Decimal:
        if request.total_revenue is None:
            raise ValidationError(["total_revenue is required"])
        return request.total_revenue

    def _expense_source(self, request: CalculationRequest) -> str:
        if request.expense_lines:
            return 'request.expense_lines'
        return 'request.total_expenses'

    def _standard_reason(self, request: CalculationRequest, taxable_base: Decimal,
                         config: RateConfig) -> str:
        attributes = request.attributes
        if attributes.free_zone_status and not attributes.qfzp_status:
            return "free zone company is not a qualifying free zone person: standard rate applies"
        if attributes.free_zone_status:
            return (
                f"taxable income {taxable_base} exceeds free-zone threshold "
                f"{config.cit_free_zone_threshold}: standard rate applies"
            )
        return "no exemption or relief applies: standard rate"
