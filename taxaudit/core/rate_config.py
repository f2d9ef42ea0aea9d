"""RateConfig: 관할 세율/기준금액 버전 관리

세율과 기준금액은 코드가 아니라 데이터입니다. 각 버전은 시행 기간을 가지며
한 번 등록되면 변경되지 않습니다. 정정이 필요하면 새 시행 기간을 가진
새 버전을 등록합니다.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .exceptions import ConfigurationError
from .money import to_decimal


DEFAULT_RATES_FILE = Path(__file__).resolve().parent.parent / "rules" / "uae_rates.yaml"

# 단계 설명에 사용하는 기본 법적 근거
DEFAULT_CITATIONS = {
    "vat_rate": "Federal Decree-Law No. 8 of 2017 on VAT, Article 3",
    "vat_input_tax": "Federal Decree-Law No. 8 of 2017 on VAT, Article 54",
    "vat_net": "Federal Decree-Law No. 8 of 2017 on VAT, Article 53",
    "cit_taxable_income": "Federal Decree-Law No. 47 of 2022 on CIT, Article 20",
    "cit_rate": "Federal Decree-Law No. 47 of 2022 on CIT, Article 3",
    "cit_small_business": "Federal Decree-Law No. 47 of 2022 on CIT, Article 21; Ministerial Decision No. 73 of 2023",
    "cit_free_zone": "Federal Decree-Law No. 47 of 2022 on CIT, Article 18; Cabinet Decision No. 100 of 2023",
    "rounding": "FTA Guide: amounts rounded to the nearest fils",
}


@dataclass(frozen=True)
class RateConfig:
    """특정 시행 기간의 관할 상수

    Attributes:
        jurisdiction_version: 버전 식별자 (예: "UAE-2023.1")
        effective_from: 시행 시작일
        effective_to: 시행 종료일 (포함, None이면 무기한)
        vat_standard_rate: VAT 표준세율 (0~1)
        cit_standard_rate: 법인세 표준세율 (0~1)
        cit_small_business_threshold: 소기업 감면 기준금액
        cit_free_zone_threshold: 자유구역 적격소득 기준금액
        vat_registration_threshold: VAT 의무등록 기준 매출
        currency: 통화 코드
        source: 법적 근거
        citations: 규칙명 -> 인용 문자열
    """

    jurisdiction_version: str
    effective_from: date
    vat_standard_rate: Decimal
    cit_standard_rate: Decimal
    cit_small_business_threshold: Decimal
    cit_free_zone_threshold: Decimal
    vat_registration_threshold: Decimal
    effective_to: Optional[date] = None
    currency: str = "AED"
    source: str = ""
    citations: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_CITATIONS))

    def __post_init__(self):
        for name in ("vat_standard_rate", "cit_standard_rate"):
            rate = getattr(self, name)
            if not Decimal("0") <= rate <= Decimal("1"):
                raise ConfigurationError(f"{name} must be within [0, 1], got {rate}")
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ConfigurationError(
                f"{self.jurisdiction_version}: effective_to precedes effective_from"
            )

    def is_effective_on(self, target_date: date) -> bool:
        """특정 날짜에 이 설정이 유효한지 확인"""
        if target_date < self.effective_from:
            return False
        return self.effective_to is None or target_date <= self.effective_to

    def overlaps(self, other: "RateConfig") -> bool:
        this_end = self.effective_to or date.max
        other_end = other.effective_to or date.max
        return self.effective_from <= other_end and other.effective_from <= this_end

    def citation(self, key: str) -> str:
        return self.citations.get(key) or DEFAULT_CITATIONS.get(key, self.source)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'jurisdiction_version': self.jurisdiction_version,
            'effective_from': self.effective_from.isoformat(),
            'effective_to': self.effective_to.isoformat() if self.effective_to else None,
            'vat_standard_rate': str(self.vat_standard_rate),
            'cit_standard_rate': str(self.cit_standard_rate),
            'cit_small_business_threshold': str(self.cit_small_business_threshold),
            'cit_free_zone_threshold': str(self.cit_free_zone_threshold),
            'vat_registration_threshold': str(self.vat_registration_threshold),
            'currency': self.currency,
            'source': self.source,
        }

    def __str__(self) -> str:
        end = self.effective_to.isoformat() if self.effective_to else "open"
        return f"RateConfig({self.jurisdiction_version}, {self.effective_from.isoformat()}..{end})"


class RateConfigRegistry:
    """세율 설정 레지스트리

    YAML 파일에서 설정을 로드하고, 날짜별로 유효한 설정을 제공합니다.
    애플리케이션 시작 시 한 번 생성하여 서비스에 주입합니다.

    Attributes:
        configs: jurisdiction_version -> RateConfig
    """

    def __init__(self, configs: Optional[List[RateConfig]] = None):
        self.configs: Dict[str, RateConfig] = {}
        for config in configs or []:
            self.register(config)

    @classmethod
    def from_yaml(cls, path: Union[str, Path, None] = None) -> "RateConfigRegistry":
        """YAML 파일에서 레지스트리 생성

        Args:
            path: 설정 파일 경로 (기본값: 패키지의 rules/uae_rates.yaml)
        """
        registry = cls()
        registry.load_file(Path(path) if path else DEFAULT_RATES_FILE)
        return registry

    def register(self, config: RateConfig) -> None:
        """설정 등록

        Raises:
            ConfigurationError: 동일 버전이 있거나 시행 기간이 겹치는 경우
        """
        if config.jurisdiction_version in self.configs:
            raise ConfigurationError(
                f"RateConfig {config.jurisdiction_version} already exists"
            )

        for existing in self.configs.values():
            if existing.overlaps(config):
                raise ConfigurationError(
                    f"{config} overlaps {existing}; publish a new range instead"
                )

        self.configs[config.jurisdiction_version] = config

    def get_effective(self, target_date: date) -> RateConfig:
        """특정 날짜에 유효한 설정

        Raises:
            ConfigurationError: 해당 날짜를 포함하는 설정이 없는 경우
        """
        for config in self.configs.values():
            if config.is_effective_on(target_date):
                return config

        raise ConfigurationError(
            f"no RateConfig effective on {target_date.isoformat()}"
        )

    def get_by_version(self, version: str) -> RateConfig:
        try:
            return self.configs[version]
        except KeyError:
            raise ConfigurationError(f"unknown RateConfig version {version!r}")

    def list_configs(self) -> List[RateConfig]:
        """시행 시작일 내림차순 목록"""
        return sorted(
            self.configs.values(),
            key=lambda c: c.effective_from,
            reverse=True
        )

    def load_file(self, file_path: Path) -> None:
        """YAML 파일에서 설정 로드

        파일 형식: ``rate_configs: [{...}, {...}]``
        """
        with open(file_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict) or 'rate_configs' not in data:
            raise ConfigurationError(f"Invalid rate config file format: {file_path}")

        for entry in data['rate_configs']:
            self.register(self._parse_config(entry))

    def _parse_config(self, data: Dict[str, Any]) -> RateConfig:
        """딕셔너리에서 RateConfig 생성

        Raises:
            ConfigurationError: 필수 필드가 누락된 경우
        """
        required_fields = [
            'jurisdiction_version', 'effective_from',
            'vat_standard_rate', 'cit_standard_rate',
            'cit_small_business_threshold', 'cit_free_zone_threshold',
            'vat_registration_threshold',
        ]
        missing = [name for name in required_fields if name not in data]
        if missing:
            raise ConfigurationError(f"Missing required field(s): {', '.join(missing)}")

        citations = dict(DEFAULT_CITATIONS)
        citations.update(data.get('citations') or {})

        return RateConfig(
            jurisdiction_version=str(data['jurisdiction_version']),
            effective_from=_parse_date(data['effective_from']),
            effective_to=_parse_date(data['effective_to']) if data.get('effective_to') else None,
            vat_standard_rate=to_decimal(data['vat_standard_rate']),
            cit_standard_rate=to_decimal(data['cit_standard_rate']),
            cit_small_business_threshold=to_decimal(data['cit_small_business_threshold']),
            cit_free_zone_threshold=to_decimal(data['cit_free_zone_threshold']),
            vat_registration_threshold=to_decimal(data['vat_registration_threshold']),
            currency=data.get('currency', 'AED'),
            source=data.get('source', ''),
            citations=citations,
        )

    def __len__(self) -> int:
        return len(self.configs)

    def __str__(self) -> str:
        return f"RateConfigRegistry({len(self)} versions)"


def _parse_date(value: Any) -> date:
    # PyYAML은 ISO 날짜를 이미 date로 변환함
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))
