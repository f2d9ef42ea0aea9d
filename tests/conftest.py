"""공용 테스트 픽스처"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from taxaudit.audit import AuditTrailService, InMemoryAuditStore
from taxaudit.core import (
    CalculationRequest, CompanyAttributes, RateConfigRegistry, TaxType,
)


class FixedClock:
    """호출할 때마다 1초씩 증가하는 시계"""

    def __init__(self, start=None):
        self.current = start or datetime(2024, 7, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


def vat_request(company_id="ACME", period="2024-Q1", revenue="1000000", expenses="400000", **kwargs):
    return CalculationRequest(
        company_id=company_id,
        tax_type=TaxType.VAT,
        period=period,
        total_revenue=Decimal(revenue),
        total_expenses=Decimal(expenses),
        **kwargs
    )


def cit_request(company_id="ACME", period="2024", revenue="5000000", expenses="1000000",
                free_zone_status=False, small_business_election=False,
                qfzp_status=None, qualifying_income=None, **kwargs):
    return CalculationRequest(
        company_id=company_id,
        tax_type=TaxType.CIT,
        period=period,
        total_revenue=Decimal(revenue),
        total_expenses=Decimal(expenses),
        attributes=CompanyAttributes(
            free_zone_status=free_zone_status,
            small_business_election=small_business_election,
            qfzp_status=qfzp_status,
            qualifying_income=Decimal(qualifying_income) if qualifying_income is not None else None,
        ),
        **kwargs
    )


@pytest.fixture
def registry():
    return RateConfigRegistry.from_yaml()


@pytest.fixture
def config(registry):
    """2023-06-01 이후 유효한 설정 (VAT 5%, CIT 9%)"""
    return registry.get_by_version("UAE-2023.1")


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store():
    return InMemoryAuditStore()


@pytest.fixture
def service(store, registry, clock):
    return AuditTrailService(store, registry, clock=clock)
