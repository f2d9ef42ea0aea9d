"""데이터베이스 연결 설정"""

import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base


DEFAULT_DATABASE_URL = "sqlite:///./taxaudit.db"


def build_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """SQLAlchemy 엔진 생성

    Args:
        database_url: 데이터베이스 URL (기본값: DATABASE_URL 환경 변수)
        echo: SQL 로깅 여부

    Returns:
        엔진
    """
    url = database_url or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # 메모리 DB는 연결 하나를 공유해야 테이블이 유지됨
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)

    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,  # 연결 풀 헬스체크
        pool_size=5,
        max_overflow=10
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    """세션 팩토리"""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine
    )


def init_db(engine: Engine) -> None:
    """데이터베이스 초기화

    모든 테이블을 생성합니다.
    """
    Base.metadata.create_all(bind=engine)
