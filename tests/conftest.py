"""
Pytest configuration and shared fixtures
"""

import asyncio
import os
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

# 애플리케이션 설정이 로드되기 전에 테스트 환경으로 전환
os.environ["ENV"] = "testing"
os.environ["BACKEND_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["AUTH_JWT_SECRET"] = "test-secret-key-0123456789abcdef"
os.environ["REALTIME_ENABLED"] = "false"
os.environ["RULE_TEST_DELAY_SECONDS"] = "0"
os.environ.pop("BACKEND_PUBLIC_KEY", None)

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from rule_dashboard.database import get_session_factory
from rule_dashboard.dependencies import get_store_registry
from rule_dashboard.main import app
from rule_dashboard.middleware.auth import Principal, jwt_manager
from rule_dashboard.models import Base
from rule_dashboard.services.rule_service import RuleService
from rule_dashboard.store.registry import StoreRegistry


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """
    테스트마다 새 인메모리 SQLite 데이터베이스의 세션 팩토리

    StaticPool로 모든 세션이 같은 연결(같은 메모리 DB)을 공유합니다.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def principal() -> Principal:
    """룰 소유자 (테스트 사용자)"""
    return Principal(id=uuid4(), email="analyst@example.com", session_id="session-1")


@pytest.fixture
def other_principal() -> Principal:
    """다른 사용자"""
    return Principal(id=uuid4(), email="other@example.com", session_id="session-9")


@pytest.fixture
def rule_service(session_factory, principal) -> RuleService:
    return RuleService(session_factory, principal)


@pytest.fixture
def mock_redis():
    """
    Mock Redis client for testing

    pubsub()은 동기 메서드이므로 MagicMock으로 감싸고,
    get_message는 실제처럼 잠시 대기한 뒤 None을 반환합니다.
    """
    async def idle_get_message(*args, **kwargs):
        await asyncio.sleep(0.01)
        return None

    pubsub = AsyncMock()
    pubsub.get_message.side_effect = idle_get_message

    mock = AsyncMock()
    mock.publish.return_value = 1
    mock.pubsub = MagicMock(return_value=pubsub)

    return mock


@pytest.fixture
def auth_headers(principal: Principal) -> dict:
    """테스트 사용자의 JWT 인증 헤더"""
    token = jwt_manager.create_access_token(
        principal.id, email=principal.email, session_id=principal.session_id
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers(other_principal: Principal) -> dict:
    token = jwt_manager.create_access_token(
        other_principal.id, session_id=other_principal.session_id
    )
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture(scope="function")
async def store_registry(session_factory) -> AsyncGenerator[StoreRegistry, None]:
    registry = StoreRegistry(session_factory)
    yield registry
    await registry.close()


@pytest_asyncio.fixture(scope="function")
async def async_client(
    session_factory, store_registry
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing FastAPI endpoints.

    ASGITransport는 lifespan을 실행하지 않으므로
    세션 팩토리와 스토어 레지스트리 의존성을 테스트용으로 교체합니다.
    """
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_store_registry] = lambda: store_registry

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()
