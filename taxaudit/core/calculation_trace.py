"""CalculationStep / CalculationResult: 계산 과정 추적

모든 결과 금액은 원자적 단계의 연쇄로 설명되어야 합니다. 각 단계는
입력값 스냅샷과 그 출처(요청 필드, 세율 설정, 이전 단계)를 함께 기록하며,
operation을 다시 적용하여 결과를 재현할 수 있습니다.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .money import ZERO, round_money, to_decimal
from .request import TaxType


RATE_UNIT = "RATE"


def _multiply(values: List[Decimal]) -> Decimal:
    result = Decimal("1")
    for value in values:
        result *= value
    return result


def _subtract_floor_zero(values: List[Decimal]) -> Decimal:
    minuend, subtrahend = values
    return max(minuend - subtrahend, ZERO)


def _excess_multiply(values: List[Decimal]) -> Decimal:
    amount, threshold, rate = values
    return max(amount - threshold, ZERO) * rate


def _select(values: List[Decimal]) -> Decimal:
    (selected,) = values
    return selected


def _round_half_up(values: List[Decimal]) -> Decimal:
    (amount,) = values
    return round_money(amount)


# operation 이름 -> 재현 함수
OPERATIONS: Dict[str, Callable[[List[Decimal]], Decimal]] = {
    'multiply': _multiply,
    'subtract_floor_zero': _subtract_floor_zero,
    'excess_multiply': _excess_multiply,
    'select': _select,
    'round_half_up': _round_half_up,
}


@dataclass(frozen=True)
class CalculationStep:
    """계산의 원자적 단계

    Attributes:
        step_number: 1부터 시작하는 연속 번호
        description: 단계 설명
        formula: 사람이 읽을 수 있는 공식
        inputs: 입력값 스냅샷 (Decimal 또는 bool)
        result: 단계 결과
        currency: 통화 (세율 단계는 "RATE")
        regulatory_reference: 법적 근거
        operation: 재현에 사용하는 연산 이름 (OPERATIONS 키)
        operands: 연산에 사용되는 입력 이름 (순서 중요)
        sources: 입력 이름 -> 출처 ("request.*", "config.*", "rule.*", "step_<n>")
    """

    step_number: int
    description: str
    formula: str
    inputs: Dict[str, Any]
    result: Decimal
    currency: str
    regulatory_reference: str
    operation: str
    operands: Tuple[str, ...]
    sources: Dict[str, str] = field(default_factory=dict)

    def recompute(self) -> Decimal:
        """입력값에 operation을 다시 적용한 결과"""
        values = [to_decimal(self.inputs[name]) for name in self.operands]
        return OPERATIONS[self.operation](values)

    def to_dict(self) -> dict:
        return {
            'step_number': self.step_number,
            'description': self.description,
            'formula': self.formula,
            'inputs': {key: _serialize_value(value) for key, value in self.inputs.items()},
            'result': str(self.result),
            'currency': self.currency,
            'regulatory_reference': self.regulatory_reference,
            'operation': self.operation,
            'operands': list(self.operands),
            'sources': dict(self.sources),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalculationStep":
        return cls(
            step_number=int(data['step_number']),
            description=data['description'],
            formula=data['formula'],
            inputs={key: _deserialize_value(value) for key, value in data['inputs'].items()},
            result=to_decimal(data['result']),
            currency=data['currency'],
            regulatory_reference=data['regulatory_reference'],
            operation=data['operation'],
            operands=tuple(data['operands']),
            sources=dict(data.get('sources') or {}),
        )

    def __str__(self) -> str:
        return f"[{self.step_number}] {self.description}: {self.formula} = {self.result} {self.currency}"


class VATPosition(str, Enum):
    PAYABLE = "PAYABLE"
    REFUNDABLE = "REFUNDABLE"


class CITBranch(str, Enum):
    """법인세 적용 분기 (정확히 하나만 실행)"""
    FREE_ZONE_EXEMPT = "FREE_ZONE_EXEMPT"
    SMALL_BUSINESS_RELIEF = "SMALL_BUSINESS_RELIEF"
    STANDARD = "STANDARD"


@dataclass(frozen=True)
class VATDetails:
    """VAT 결과 세부 내역"""

    output_vat: Decimal
    input_vat: Decimal
    net_vat: Decimal
    position: VATPosition
    refundable_amount: Decimal = ZERO

    kind = TaxType.VAT

    def to_dict(self) -> dict:
        return {
            'kind': self.kind.value,
            'output_vat': str(self.output_vat),
            'input_vat': str(self.input_vat),
            'net_vat': str(self.net_vat),
            'position': self.position.value,
            'refundable_amount': str(self.refundable_amount),
        }


@dataclass(frozen=True)
class CITDetails:
    """법인세 결과 세부 내역"""

    taxable_base: Decimal
    branch: CITBranch
    branch_reason: str
    relief_amount: Decimal = ZERO

    kind = TaxType.CIT

    def to_dict(self) -> dict:
        return {
            'kind': self.kind.value,
            'taxable_base': str(self.taxable_base),
            'branch': self.branch.value,
            'branch_reason': self.branch_reason,
            'relief_amount': str(self.relief_amount),
        }


TaxDetails = Union[VATDetails, CITDetails]


def details_from_dict(data: Dict[str, Any]) -> TaxDetails:
    """kind 태그로 세부 내역 복원

    Raises:
        ValueError: 알 수 없는 kind
    """
    kind = TaxType(data['kind'])
    if kind == TaxType.VAT:
        return VATDetails(
            output_vat=to_decimal(data['output_vat']),
            input_vat=to_decimal(data['input_vat']),
            net_vat=to_decimal(data['net_vat']),
            position=VATPosition(data['position']),
            refundable_amount=to_decimal(data.get('refundable_amount', '0')),
        )
    if kind == TaxType.CIT:
        return CITDetails(
            taxable_base=to_decimal(data['taxable_base']),
            branch=CITBranch(data['branch']),
            branch_reason=data['branch_reason'],
            relief_amount=to_decimal(data.get('relief_amount', '0')),
        )
    raise ValueError(f"unhandled details kind: {kind}")


@dataclass(frozen=True)
class CalculationResult:
    """최종 계산 결과

    total_amount는 항상 마지막 단계의 결과와 같습니다. 계산 시각 같은
    비결정적 값은 포함하지 않습니다 (시각은 AuditRecord가 가짐).

    Attributes:
        total_amount: 최종 세액 (fils 단위 반올림)
        currency: 통화
        taxable_base: 과세표준
        applied_rate: 적용 세율
        exemptions: 면제/감면 항목 -> 금액
        deductions: 공제 항목 -> 금액
        steps: 계산 단계 목록
        details: 세목별 세부 내역 (VATDetails | CITDetails)
        rate_config_version: 사용된 세율 설정 버전
    """

    total_amount: Decimal
    currency: str
    taxable_base: Decimal
    applied_rate: Decimal
    exemptions: Dict[str, Decimal]
    deductions: Dict[str, Decimal]
    steps: List[CalculationStep]
    details: TaxDetails
    rate_config_version: str

    @property
    def tax_type(self) -> TaxType:
        return self.details.kind

    def replay(self) -> Decimal:
        """단계를 순서대로 재적용하여 최종 금액 재현

        Returns:
            마지막 단계의 재계산 결과

        Raises:
            ValueError: 단계 결과나 이전 단계 참조가 기록과 다른 경우
        """
        if not self.steps:
            raise ValueError("calculation has no steps")

        replayed: Dict[int, Decimal] = {}
        for step in self.steps:
            for name, source in step.sources.items():
                if source.startswith("step_"):
                    referenced = int(source[len("step_"):])
                    if referenced not in replayed:
                        raise ValueError(
                            f"step {step.step_number} references step {referenced} before it exists"
                        )
                    if to_decimal(step.inputs[name]) != replayed[referenced]:
                        raise ValueError(
                            f"step {step.step_number} input '{name}' does not match step {referenced}"
                        )

            value = step.recompute()
            if value != step.result:
                raise ValueError(
                    f"step {step.step_number} recomputes to {value}, recorded {step.result}"
                )
            replayed[step.step_number] = value

        return replayed[self.steps[-1].step_number]

    def trace_problems(self) -> List[str]:
        """추적성 점검 (번호 연속성, 입력 출처, 최종 금액 일치)"""
        problems = []
        for expected, step in enumerate(self.steps, 1):
            if step.step_number != expected:
                problems.append(f"step numbering gap at {expected} (found {step.step_number})")
            for name in step.inputs:
                source = step.sources.get(name)
                if source is None:
                    problems.append(f"step {step.step_number} input '{name}' has no source")
                elif source.startswith("step_") and int(source[len("step_"):]) >= step.step_number:
                    problems.append(f"step {step.step_number} input '{name}' references a later step")
                elif not source.startswith(("step_", "request.", "config.", "rule.")):
                    problems.append(f"step {step.step_number} input '{name}' has unknown source {source!r}")
            if step.operation not in OPERATIONS:
                problems.append(f"step {step.step_number} uses unknown operation {step.operation!r}")

        if self.steps and self.steps[-1].result != self.total_amount:
            problems.append("total_amount does not equal the final step result")
        return problems

    def to_dict(self) -> dict:
        return {
            'total_amount': str(self.total_amount),
            'currency': self.currency,
            'taxable_base': str(self.taxable_base),
            'applied_rate': str(self.applied_rate),
            'exemptions': {key: str(value) for key, value in self.exemptions.items()},
            'deductions': {key: str(value) for key, value in self.deductions.items()},
            'steps': [step.to_dict() for step in self.steps],
            'details': self.details.to_dict(),
            'rate_config_version': self.rate_config_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalculationResult":
        return cls(
            total_amount=to_decimal(data['total_amount']),
            currency=data['currency'],
            taxable_base=to_decimal(data['taxable_base']),
            applied_rate=to_decimal(data['applied_rate']),
            exemptions={key: to_decimal(value) for key, value in data['exemptions'].items()},
            deductions={key: to_decimal(value) for key, value in data['deductions'].items()},
            steps=[CalculationStep.from_dict(step) for step in data['steps']],
            details=details_from_dict(data['details']),
            rate_config_version=data['rate_config_version'],
        )

    def get_trace_summary(self) -> str:
        """계산 과정 요약 (사람이 읽는 형태)"""
        lines = [f"=== {self.tax_type.value} calculation ({self.rate_config_version}) ===", ""]
        for step in self.steps:
            lines.append(str(step))
            lines.append(f"   basis: {step.regulatory_reference}")
        lines.append("")
        lines.append(f"Total: {self.total_amount:,} {self.currency}")
        return "\n".join(lines)

    def __str__(self) -> str:
        return f"CalculationResult({self.tax_type.value}, total={self.total_amount} {self.currency})"


def _serialize_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    return value


def _deserialize_value(value: Any) -> Any:
    # 단계 입력은 금액/세율(Decimal) 또는 플래그(bool/None)만 허용
    if isinstance(value, str):
        return to_decimal(value)
    return value
