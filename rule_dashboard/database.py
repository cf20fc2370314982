"""
데이터베이스 연결 및 세션 관리

SQLAlchemy를 사용하여 비동기 데이터베이스 연결을 관리합니다.
rules 테이블이 있는 백엔드 데이터 서비스(BACKEND_URL)에 연결합니다.
"""

from typing import Any, Dict

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from rule_dashboard.config import settings
from rule_dashboard.models.base import Base


def create_engine_for_url(url: str, echo: bool = False) -> AsyncEngine:
    """
    URL에 맞는 비동기 엔진 생성

    SQLite(테스트/로컬)는 연결 풀 옵션을 지원하지 않으므로 제외합니다.
    """
    options: Dict[str, Any] = {"echo": echo}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_recycle=settings.DB_POOL_RECYCLE,
            pool_pre_ping=True,  # 연결 상태 확인
        )
    return create_async_engine(url, **options)


# 비동기 데이터베이스 엔진 생성
engine = create_engine_for_url(settings.BACKEND_URL, echo=settings.SQL_ECHO)

# 세션 팩토리
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,  # 커밋 후에도 룰 객체를 캐시에 담을 수 있도록 유지
    autocommit=False,
    autoflush=False,
)


def get_session_factory() -> async_sessionmaker:
    """
    세션 팩토리 의존성

    룰 서비스는 호출마다 자체 세션을 열기 때문에 세션 대신 팩토리를 주입합니다.
    """
    return AsyncSessionLocal


async def init_db() -> None:
    """
    데이터베이스 초기화 (테이블 생성)

    주의: 프로덕션 환경에서는 Alembic 마이그레이션을 사용하세요.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """
    데이터베이스 연결 종료

    애플리케이션 종료 시 호출됩니다.
    """
    await engine.dispose()
