"""
FastAPI Dependencies

룰 서비스, 스토어 레지스트리, 사용자별 스토어를 주입합니다.
"""

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from rule_dashboard.database import get_session_factory
from rule_dashboard.middleware.auth import (
    Principal,
    get_current_principal,
    get_optional_principal,
)
from rule_dashboard.services.realtime import RuleChangePublisher
from rule_dashboard.services.rule_service import RuleService
from rule_dashboard.store.registry import StoreRegistry
from rule_dashboard.store.rule_store import RuleManagementStore


def get_change_publisher(request: Request) -> Optional[RuleChangePublisher]:
    """룰 변경 이벤트 발행기 (실시간 알림 비활성화 시 None)"""
    return getattr(request.app.state, "change_publisher", None)


def get_rule_service(
    principal: Optional[Principal] = Depends(get_optional_principal),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    publisher: Optional[RuleChangePublisher] = Depends(get_change_publisher),
) -> RuleService:
    """현재 사용자로 범위가 지정된 룰 서비스"""
    return RuleService(session_factory, principal, publisher)


def get_store_registry(request: Request) -> StoreRegistry:
    """애플리케이션 수명 동안 유지되는 스토어 레지스트리"""
    return request.app.state.store_registry


async def get_rule_store(
    principal: Principal = Depends(get_current_principal),
    registry: StoreRegistry = Depends(get_store_registry),
) -> RuleManagementStore:
    """로그인한 사용자의 스토어"""
    return await registry.acquire(principal)
