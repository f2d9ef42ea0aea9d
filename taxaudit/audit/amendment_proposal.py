"""정정 요청의 제안 입력 (Pydantic)

제안 입력은 원본 입력에 덮어쓸 필드만 담습니다. /calculate 요청과 같은
이름(revenue, expenses, company_attributes)과 저장 형태의 이름
(total_revenue, total_expenses, attributes)을 모두 받으며, 알 수 없는
필드는 거부합니다.
"""

import copy
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

from ..core.exceptions import ValidationError

# 정정으로 바꿀 수 없는 필드
IMMUTABLE_KEYS = ('company_id', 'tax_type', 'period')


class _ProposalModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ProposedAttributes(_ProposalModel):
    free_zone_status: Optional[bool] = None
    small_business_election: Optional[bool] = None
    qfzp_status: Optional[bool] = None
    qualifying_income: Optional[Decimal] = None


class ProposedExpenseLine(_ProposalModel):
    category: str
    amount: Decimal
    vat_deductible: bool = True
    cit_deductible: bool = True


class AmendmentProposal(_ProposalModel):
    """제안 입력

    설정된 필드만 원본에 반영됩니다. attributes는 필드 단위로 병합하고,
    expense_lines는 목록 전체를 교체합니다.
    """

    company_id: Optional[str] = None
    tax_type: Optional[str] = None
    period: Optional[str] = None
    total_revenue: Optional[Decimal] = Field(None, alias="revenue")
    total_expenses: Optional[Decimal] = Field(None, alias="expenses")
    expense_lines: Optional[List[ProposedExpenseLine]] = None
    attributes: Optional[ProposedAttributes] = Field(None, alias="company_attributes")
    trn: Optional[str] = None
    vat_rate_override: Optional[Decimal] = None
    reference_id: Optional[str] = None

    @classmethod
    def parse(cls, data: Dict[str, Any]) -> "AmendmentProposal":
        """딕셔너리 검증

        Raises:
            ValidationError: 알 수 없는 필드, 타입 오류
        """
        if not isinstance(data, dict):
            raise ValidationError(["proposed_input_data must be an object"])
        try:
            return cls.model_validate(data)
        except SchemaError as e:
            raise ValidationError([_describe(error) for error in e.errors()])

    def changed_keys(self) -> List[str]:
        return sorted(self.model_fields_set)

    def identity_changes(self, original: Dict[str, Any]) -> List[str]:
        """바꿀 수 없는 필드를 다른 값으로 제안한 경우의 오류 목록"""
        errors = []
        for key in IMMUTABLE_KEYS:
            if key not in self.model_fields_set:
                continue
            proposed = getattr(self, key)
            if str(proposed).upper() != str(original.get(key)).upper():
                errors.append(f"{key} cannot be changed by an amendment")
        return errors

    def merge_into(self, original: Dict[str, Any]) -> Dict[str, Any]:
        """원본 입력 딕셔너리에 제안을 반영한 새 딕셔너리"""
        merged = copy.deepcopy(original)

        for key in self.model_fields_set:
            if key in IMMUTABLE_KEYS:
                continue
            value = getattr(self, key)
            if key == 'attributes':
                attributes = dict(merged.get('attributes') or {})
                if value is not None:
                    attributes.update(value.model_dump(exclude_unset=True))
                merged['attributes'] = attributes
            elif key == 'expense_lines':
                merged['expense_lines'] = [line.model_dump() for line in value or []]
            else:
                merged[key] = value

        return merged


def _describe(error: Dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get('loc', ()))
    if error.get('type') == 'extra_forbidden':
        return f"{location} is not an amendable field"
    return f"{location}: {error.get('msg')}"
