"""
룰 변경 알림 채널

rules 테이블의 행 단위 변경 이벤트를 Redis pub/sub 채널로 전달합니다.

- RuleChangePublisher: 룰 서비스가 커밋 후 이벤트를 발행 (best-effort)
- RuleChangeListener: 세션별로 채널을 구독하고 이벤트를 로그로만 남김

리스너는 캐시에 이벤트를 병합하지 않습니다. 외부 훅 지점으로만 사용됩니다.
"""

import asyncio
import contextlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from rule_dashboard.config import settings
from rule_dashboard.middleware.auth import Principal
from rule_dashboard.models.rule import Rule
from rule_dashboard.schemas.rule import RuleRead

logger = logging.getLogger(__name__)


class RuleChangePublisher:
    """룰 변경 이벤트 발행기"""

    def __init__(self, redis: Redis, channel: Optional[str] = None):
        self.redis = redis
        self.channel = channel or settings.REALTIME_CHANNEL

    @staticmethod
    def build_event(event_type: str, rule: Rule) -> Dict[str, Any]:
        """행 변경 이벤트 페이로드 생성"""
        return {
            "event": event_type,
            "schema": "public",
            "table": Rule.__tablename__,
            "new": RuleRead.model_validate(rule).model_dump(mode="json"),
            "commit_timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def publish(self, event_type: str, rule: Rule) -> None:
        """
        이벤트 발행

        알림은 데이터 경로가 아니므로 발행 실패는 경고 로그만 남깁니다.
        """
        payload = self.build_event(event_type, rule)
        try:
            await self.redis.publish(self.channel, json.dumps(payload, ensure_ascii=False))
        except RedisError as e:
            logger.warning(
                f"룰 변경 이벤트 발행 실패: event={event_type}, rule={rule.id}, error={e}"
            )


class RuleChangeListener:
    """
    룰 변경 이벤트 구독자

    세션이 바뀌면 기존 구독을 해제하고 새로 구독합니다.
    """

    def __init__(
        self,
        redis: Redis,
        channel: Optional[str] = None,
        poll_timeout: float = 1.0,
    ):
        self.redis = redis
        self.channel = channel or settings.REALTIME_CHANNEL
        self.poll_timeout = poll_timeout
        self.principal: Optional[Principal] = None
        self._pubsub = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, principal: Optional[Principal]) -> bool:
        """
        채널 구독 시작

        Args:
            principal: 현재 세션의 사용자. 없으면 구독하지 않음

        Returns:
            bool: 구독 여부 (Redis 오류로 구독하지 못하면 False)
        """
        if principal is None:
            logger.warning("유효한 세션이 없어 실시간 구독을 건너뜁니다.")
            return False

        # 이전 세션의 구독 정리
        if self._pubsub is not None:
            await self.stop()

        self.principal = principal
        pubsub = self.redis.pubsub()
        try:
            await pubsub.subscribe(self.channel)
        except RedisError as e:
            # 구독 실패는 대시보드 요청을 막지 않음
            logger.warning(
                f"실시간 구독 실패: channel={self.channel}, user={principal.id}, error={e}"
            )
            await pubsub.aclose()
            return False

        self._pubsub = pubsub
        self._task = asyncio.create_task(self._run())

        logger.info(
            f"실시간 구독 시작: channel={self.channel}, user={principal.id}, "
            f"session={principal.session_id}"
        )
        return True

    async def stop(self) -> None:
        """구독 해제 및 리소스 정리"""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        if self._pubsub is not None:
            pubsub, self._pubsub = self._pubsub, None
            try:
                await pubsub.unsubscribe(self.channel)
            except RedisError as e:
                logger.warning(f"실시간 구독 해제 실패: channel={self.channel}, error={e}")
            finally:
                await pubsub.aclose()
            logger.info(f"실시간 구독 해제: channel={self.channel}")

    async def _run(self) -> None:
        """메시지 수신 루프"""
        try:
            while True:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=self.poll_timeout
                )
                if message is not None:
                    self.handle_message(message)
        except RedisError as e:
            logger.error(f"실시간 구독 오류로 수신을 중단합니다: {e}")

    def handle_message(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        수신한 메시지를 로그로 남김

        현재 사용자가 소유한 룰의 이벤트만 처리합니다.

        Returns:
            처리한 이벤트 페이로드 (무시한 경우 None)
        """
        try:
            payload = json.loads(message["data"])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"해석할 수 없는 실시간 메시지: {message!r}")
            return None

        rule = payload.get("new") or {}
        if self.principal is None or rule.get("user_id") != str(self.principal.id):
            return None

        logger.info(
            f"실시간 이벤트 수신: {payload.get('event')} "
            f"{payload.get('table')} id={rule.get('id')}",
            extra={"realtime_event": payload},
        )
        return payload
