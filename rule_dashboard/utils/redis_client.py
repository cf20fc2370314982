"""
Redis 연결 풀 관리

룰 변경 알림 채널(pub/sub)에 사용하는 비동기 Redis 클라이언트를 제공합니다.
"""

from typing import Optional
import logging

from redis import asyncio as aioredis
from redis.asyncio import ConnectionPool
from redis.exceptions import RedisError

from rule_dashboard.config import settings

logger = logging.getLogger(__name__)

# 전역 Redis 연결 풀 및 클라이언트
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[aioredis.Redis] = None


async def init_redis(redis_url: Optional[str] = None) -> aioredis.Redis:
    """
    Redis 연결 풀 및 클라이언트 초기화

    Returns:
        aioredis.Redis: Redis 클라이언트 인스턴스
    """
    global _redis_pool, _redis_client

    if _redis_client is not None:
        return _redis_client

    _redis_pool = ConnectionPool.from_url(
        redis_url or settings.REDIS_URL,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        socket_connect_timeout=5.0,
        decode_responses=True,  # 문자열 자동 디코딩
    )
    _redis_client = aioredis.Redis(connection_pool=_redis_pool)

    try:
        await _redis_client.ping()
    except RedisError as e:
        logger.error(f"Redis 연결 실패: {e}")
        await close_redis()
        raise

    logger.info("Redis 연결 완료")
    return _redis_client


async def close_redis() -> None:
    """
    Redis 연결 종료

    애플리케이션 종료 시 호출하여 리소스를 정리합니다.
    """
    global _redis_pool, _redis_client

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool:
        await _redis_pool.disconnect()
        _redis_pool = None

