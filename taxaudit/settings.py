"""애플리케이션 설정

환경 변수에서 읽습니다. 세율과 기준금액은 설정이 아니라
rules/uae_rates.yaml 데이터로 관리합니다.
"""

import os
from dataclasses import dataclass

from .core.rate_config import DEFAULT_RATES_FILE
from .database.connection import DEFAULT_DATABASE_URL


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


@dataclass(frozen=True)
class Settings:
    """설정 값

    Attributes:
        database_url: DATABASE_URL
        rates_file: TAXAUDIT_RATES_FILE (세율 설정 YAML 경로)
        max_retries: TAXAUDIT_MAX_RETRIES (버전 경합 재시도 횟수)
        log_level: TAXAUDIT_LOG_LEVEL
        sql_echo: TAXAUDIT_SQL_ECHO
    """

    database_url: str = DEFAULT_DATABASE_URL
    rates_file: str = str(DEFAULT_RATES_FILE)
    max_retries: int = 3
    log_level: str = "INFO"
    sql_echo: bool = False
    api_title: str = "UAE SME Tax Calculation & Audit API"
    api_version: str = "0.1.0"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            rates_file=os.getenv("TAXAUDIT_RATES_FILE", str(DEFAULT_RATES_FILE)),
            max_retries=_env_int("TAXAUDIT_MAX_RETRIES", 3),
            log_level=os.getenv("TAXAUDIT_LOG_LEVEL", "INFO"),
            sql_echo=_env_bool("TAXAUDIT_SQL_ECHO"),
        )

