"""
사용자별 스토어 레지스트리

로그인한 사용자마다 RuleManagementStore 하나를 만들어 보관하고,
로그아웃/종료 시 명시적으로 정리합니다.

전역 잠금은 딕셔너리 조회/변경에만 사용하고, 스토어 생성(초기 로드와 구독)은
사용자별 잠금 안에서 수행합니다. 한 사용자의 느린 초기 로드가 다른 사용자의
요청을 막지 않습니다.
"""

import asyncio
import logging
from typing import Dict, Optional
from uuid import UUID

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import async_sessionmaker

from rule_dashboard.config import settings
from rule_dashboard.middleware.auth import Principal
from rule_dashboard.services.realtime import RuleChangeListener, RuleChangePublisher
from rule_dashboard.services.rule_service import RuleService
from rule_dashboard.store.rule_store import RuleManagementStore

logger = logging.getLogger(__name__)


class StoreRegistry:
    """
    Args:
        session_factory: 룰 서비스가 사용할 세션 팩토리
        publisher: 룰 변경 이벤트 발행기 (선택)
        redis: 실시간 구독용 Redis 클라이언트 (없으면 리스너 비활성화)
        channel: 실시간 채널 이름
        max_listeners: 동시에 유지할 실시간 구독 수 상한
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        publisher: Optional[RuleChangePublisher] = None,
        redis: Optional[Redis] = None,
        channel: Optional[str] = None,
        max_listeners: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.publisher = publisher
        self.redis = redis
        self.channel = channel
        self.max_listeners = (
            settings.REALTIME_MAX_LISTENERS if max_listeners is None else max_listeners
        )
        self._stores: Dict[UUID, RuleManagementStore] = {}
        self._principal_locks: Dict[UUID, asyncio.Lock] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._stores)

    def __contains__(self, principal_id: UUID) -> bool:
        return principal_id in self._stores

    @property
    def listener_count(self) -> int:
        return sum(1 for store in self._stores.values() if store.listener is not None)

    def build_store(self, principal: Principal) -> RuleManagementStore:
        service = RuleService(self.session_factory, principal, self.publisher)
        listener = None
        if self.redis is not None:
            if self.listener_count < self.max_listeners:
                listener = RuleChangeListener(self.redis, self.channel)
            else:
                logger.warning(
                    f"실시간 구독 상한({self.max_listeners}) 도달: "
                    f"user={principal.id} 스토어는 구독 없이 생성합니다."
                )
        return RuleManagementStore(service, listener)

    async def acquire(self, principal: Principal) -> RuleManagementStore:
        """
        사용자의 스토어 반환 (없으면 생성 후 초기화)

        기존 스토어는 세션 변경 여부만 반영합니다.
        """
        async with self._lock:
            principal_lock = self._principal_locks.setdefault(principal.id, asyncio.Lock())

        async with principal_lock:
            async with self._lock:
                store = self._stores.get(principal.id)

            if store is not None:
                await store.attach_session(principal)
                return store

            store = self.build_store(principal)
            await store.initialize()
            async with self._lock:
                self._stores[principal.id] = store
            logger.info(f"스토어 생성: user={principal.id}")
            return store

    async def release(self, principal_id: UUID) -> bool:
        """
        사용자의 스토어 정리

        Returns:
            bool: 정리한 스토어가 있었는지
        """
        async with self._lock:
            store = self._stores.pop(principal_id, None)
            self._principal_locks.pop(principal_id, None)
        if store is None:
            return False

        await store.dispose()
        logger.info(f"스토어 정리: user={principal_id}")
        return True

    async def close(self) -> None:
        """모든 스토어 정리 (애플리케이션 종료 시)"""
        async with self._lock:
            stores = list(self._stores.values())
            self._stores.clear()
            self._principal_locks.clear()

        for store in stores:
            await store.dispose()
        logger.info(f"스토어 레지스트리 종료: {len(stores)}개 정리")
