"""핵심 비즈니스 로직"""

from .exceptions import (
    TaxEngineError,
    ValidationError,
    MissingAttributeError,
    ConfigurationError,
    ConcurrencyConflict,
    StateError,
    RecordNotFoundError,
)
from .request import (
    TaxType,
    TaxPeriod,
    CompanyAttributes,
    ExpenseLine,
    CalculationRequest,
)
from .rate_config import RateConfig, RateConfigRegistry
from .calculation_trace import (
    CalculationStep,
    CalculationResult,
    VATDetails,
    CITDetails,
    VATPosition,
    CITBranch,
)
from .validator import InputValidator, ValidationResult, check_vat_registration
from .tax_calculator import TaxCalculator

__all__ = [
    'TaxEngineError',
    'ValidationError',
    'MissingAttributeError',
    'ConfigurationError',
    'ConcurrencyConflict',
    'StateError',
    'RecordNotFoundError',
    'TaxType',
    'TaxPeriod',
    'CompanyAttributes',
    'ExpenseLine',
    'CalculationRequest',
    'RateConfig',
    'RateConfigRegistry',
    'CalculationStep',
    'CalculationResult',
    'VATDetails',
    'CITDetails',
    'VATPosition',
    'CITBranch',
    'InputValidator',
    'ValidationResult',
    'check_vat_registration',
    'TaxCalculator',
]
