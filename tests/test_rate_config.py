"""RateConfig / RateConfigRegistry 테스트"""

from datetime import date
from decimal import Decimal

import pytest

from taxaudit.core import ConfigurationError, RateConfig, RateConfigRegistry


def make_config(version="TEST-1", start=date(2024, 1, 1), end=None, vat="0.05", cit="0.09"):
    return RateConfig(
        jurisdiction_version=version,
        effective_from=start,
        effective_to=end,
        vat_standard_rate=Decimal(vat),
        cit_standard_rate=Decimal(cit),
        cit_small_business_threshold=Decimal("375000"),
        cit_free_zone_threshold=Decimal("3000000"),
        vat_registration_threshold=Decimal("375000"),
    )


class TestRateConfigLoading:
    """YAML 로드 테스트"""

    def test_load_default_file(self):
        """기본 세율 파일 로드"""
        registry = RateConfigRegistry.from_yaml()

        assert len(registry) == 2
        config = registry.get_by_version("UAE-2023.1")
        assert config.vat_standard_rate == Decimal("0.05")
        assert config.cit_standard_rate == Decimal("0.09")
        assert config.cit_small_business_threshold == Decimal("375000")
        assert config.cit_free_zone_threshold == Decimal("3000000")
        assert config.currency == "AED"

    def test_citations_merged_with_defaults(self):
        """파일의 인용문과 기본 인용문 병합"""
        config = RateConfigRegistry.from_yaml().get_by_version("UAE-2023.1")

        assert "Article 21" in config.citation("cit_small_business")
        assert "Article 3" in config.citation("vat_rate")

    def test_invalid_file_format(self, tmp_path):
        """rate_configs 키가 없는 파일"""
        path = tmp_path / "rates.yaml"
        path.write_text("something_else: []\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            RateConfigRegistry.from_yaml(path)

    def test_missing_required_field(self, tmp_path):
        """필수 필드 누락"""
        path = tmp_path / "rates.yaml"
        path.write_text(
            "rate_configs:\n"
            "  - jurisdiction_version: X\n"
            "    effective_from: 2024-01-01\n"
            "    vat_standard_rate: '0.05'\n",
            encoding="utf-8",
        )

        with pytest.raises(ConfigurationError, match="cit_standard_rate"):
            RateConfigRegistry.from_yaml(path)


class TestRateConfigLookup:
    """시행일 기준 조회 테스트"""

    def test_effective_lookup_by_date(self, registry):
        """날짜별 유효 설정"""
        assert registry.get_effective(date(2020, 6, 1)).jurisdiction_version == "UAE-2018.1"
        assert registry.get_effective(date(2023, 5, 31)).jurisdiction_version == "UAE-2018.1"
        assert registry.get_effective(date(2023, 6, 1)).jurisdiction_version == "UAE-2023.1"
        assert registry.get_effective(date(2030, 1, 1)).jurisdiction_version == "UAE-2023.1"

    def test_no_config_for_date(self, registry):
        """설정 이전 날짜는 ConfigurationError"""
        with pytest.raises(ConfigurationError):
            registry.get_effective(date(2017, 12, 31))

    def test_unknown_version(self, registry):
        with pytest.raises(ConfigurationError):
            registry.get_by_version("UAE-1999.1")

    def test_list_configs_newest_first(self, registry):
        versions = [config.jurisdiction_version for config in registry.list_configs()]
        assert versions == ["UAE-2023.1", "UAE-2018.1"]


class TestRateConfigRegistration:
    """등록 규칙 테스트"""

    def test_duplicate_version_rejected(self):
        registry = RateConfigRegistry([make_config("A", end=date(2024, 12, 31))])

        with pytest.raises(ConfigurationError, match="already exists"):
            registry.register(make_config("A", start=date(2025, 1, 1)))

    def test_overlapping_range_rejected(self):
        """하루라도 겹치면 거부 (날짜당 설정은 최대 하나)"""
        registry = RateConfigRegistry([make_config("A", end=date(2024, 12, 31))])

        with pytest.raises(ConfigurationError, match="overlaps"):
            registry.register(make_config("B", start=date(2024, 12, 31)))

    def test_adjacent_ranges_allowed(self):
        registry = RateConfigRegistry([
            make_config("A", end=date(2024, 12, 31)),
            make_config("B", start=date(2025, 1, 1), cit="0.15"),
        ])

        assert registry.get_effective(date(2025, 1, 1)).cit_standard_rate == Decimal("0.15")

    def test_rate_out_of_range(self):
        with pytest.raises(ConfigurationError):
            make_config(vat="1.5")

    def test_end_before_start(self):
        with pytest.raises(ConfigurationError):
            make_config(start=date(2024, 6, 1), end=date(2024, 1, 1))

    def test_config_is_immutable(self):
        config = make_config()
        with pytest.raises(Exception):
            config.vat_standard_rate = Decimal("0.10")
