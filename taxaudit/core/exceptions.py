"""세금 계산/감사 엔진 예외 계층

모든 예외는 TaxEngineError를 상속하며, 기계가 읽을 수 있는 code 속성을 가집니다.

    TaxEngineError
    +-- ValidationError          (입력 오류, 수정 후 재시도)
    |   +-- MissingAttributeError
    +-- ConfigurationError       (기간에 유효한 RateConfig 없음)
    +-- ConcurrencyConflict      (버전 경합 패배, 전체 재시도 가능)
    +-- StateError               (상태 전이 불가, 재시도 불가)
    +-- RecordNotFoundError
"""

from typing import List, Optional


class TaxEngineError(Exception):
    """엔진 예외의 기본 클래스"""

    code: str = "TAX_ENGINE_ERROR"

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": str(self)}


class ValidationError(TaxEngineError):
    """입력값 검증 실패

    위반된 모든 규칙을 errors에 담아 한 번에 보고합니다.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "validation failed")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class MissingAttributeError(ValidationError):
    """분기 판단에 필요한 회사 속성이 누락됨 (기본값을 추정하지 않음)"""

    code: str = "MISSING_COMPANY_ATTRIBUTE"

    def __init__(self, attribute: str, reason: str):
        self.attribute = attribute
        super().__init__([f"company attribute '{attribute}' is required: {reason}"])


class ConfigurationError(TaxEngineError):
    """요청 기간에 적용할 세율 설정이 없거나 설정이 잘못됨"""

    code: str = "CONFIGURATION_MISSING"


class ConcurrencyConflict(TaxEngineError):
    """동일 (company, tax_type, period) 버전 할당 경합"""

    code: str = "VERSION_CONFLICT"

    def __init__(self, company_id: str, tax_type: str, period: str, version: int):
        self.company_id = company_id
        self.tax_type = tax_type
        self.period = period
        self.version = version
        super().__init__(
            f"version {version} already exists for "
            f"{company_id}/{tax_type}/{period}"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["retryable"] = True
        return data


class StateError(TaxEngineError):
    """허용되지 않는 상태 전이 (클라이언트의 오래된 뷰)"""

    code: str = "INVALID_STATE"


class RecordNotFoundError(TaxEngineError):
    """감사 레코드/정정 요청/보고서를 찾을 수 없음"""

    code: str = "NOT_FOUND"

    def __init__(self, kind: str, identifier: Optional[str]):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} '{identifier}' not found")
