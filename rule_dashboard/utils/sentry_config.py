"""
Sentry 에러 트래킹 설정

SENTRY_DSN이 설정된 경우에만 활성화됩니다.
"""

import logging

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)

# 이벤트에서 걸러낼 키워드
SENSITIVE_KEYS = ["token", "apikey", "api_key", "secret", "password", "authorization"]

# 걸러낼 요청 헤더
FILTERED_HEADERS = ["Authorization", "authorization", "apikey", "Apikey"]


def init_sentry(
    dsn: str | None,
    environment: str = "development",
    release: str = "1.0.0",
    traces_sample_rate: float = 1.0,
) -> bool:
    """
    Sentry SDK 초기화

    Args:
        dsn: Sentry DSN. 없으면 초기화하지 않음 (로컬 개발 시)
        environment: 환경 이름 (development, staging, production)
        release: 릴리스 버전
        traces_sample_rate: 트랜잭션 샘플링 비율 (0.0 ~ 1.0)

    Returns:
        bool: 초기화 여부
    """
    if not dsn:
        logger.info("Sentry DSN이 설정되지 않았습니다. Sentry 모니터링이 비활성화됩니다.")
        return False

    # 환경별 샘플링 비율 자동 조정
    if environment == "production":
        traces_sample_rate = min(traces_sample_rate, 0.1)
    elif environment == "staging":
        traces_sample_rate = min(traces_sample_rate, 0.5)

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            RedisIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR,
            ),
        ],
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
        before_send=before_send_filter,
        attach_stacktrace=True,
    )

    logger.info(
        f"Sentry 초기화 완료: environment={environment}, "
        f"traces_sample_rate={traces_sample_rate}"
    )
    return True


def before_send_filter(event, hint):
    """
    이벤트 전송 전 인증 헤더 및 민감 정보 마스킹
    """
    request = event.get("request")
    if request:
        headers = request.get("headers") or {}
        for key in FILTERED_HEADERS:
            if key in headers:
                headers[key] = "[Filtered]"

        if "data" in request:
            request["data"] = mask_sensitive_data(request["data"])

    if "extra" in event:
        event["extra"] = mask_sensitive_data(event["extra"])

    return event


def mask_sensitive_data(data):
    """민감 데이터 마스킹 (재귀적)"""
    if isinstance(data, dict):
        return {
            key: "[Filtered]"
            if any(sensitive in str(key).lower() for sensitive in SENSITIVE_KEYS)
            else mask_sensitive_data(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [mask_sensitive_data(item) for item in data]
    return data
