"""
룰 변경 알림 채널 유닛 테스트

Redis는 AsyncMock으로 대체합니다.
"""

import asyncio
import json
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, RedisError

from rule_dashboard.middleware.auth import Principal
from rule_dashboard.models import Rule
from rule_dashboard.services.realtime import RuleChangeListener, RuleChangePublisher


def make_rule(user_id) -> Rule:
    return Rule(
        id=uuid4(),
        user_id=user_id,
        name="Geo Velocity",
        description="짧은 시간 내 원거리 접속",
        category="Technical",
        condition="distance_km / minutes > 10",
        severity="high",
        status="active",
        log_only=False,
        catches=0,
        false_positives=0,
        effectiveness=0,
        is_deleted=False,
    )


def event_message(user_id, event="UPDATE") -> dict:
    return {
        "type": "message",
        "channel": "rules_updates_channel",
        "data": json.dumps(
            {
                "event": event,
                "schema": "public",
                "table": "rules",
                "new": {"id": str(uuid4()), "user_id": str(user_id)},
            }
        ),
    }


class TestRuleChangePublisher:
    """이벤트 발행 테스트"""

    @pytest.mark.asyncio
    async def test_publish_payload(self, mock_redis, principal):
        publisher = RuleChangePublisher(mock_redis, "rules_updates_channel")
        rule = make_rule(principal.id)

        await publisher.publish("INSERT", rule)

        channel, raw = mock_redis.publish.await_args.args
        payload = json.loads(raw)
        assert channel == "rules_updates_channel"
        assert payload["event"] == "INSERT"
        assert payload["table"] == "rules"
        assert payload["new"]["id"] == str(rule.id)
        assert payload["new"]["user_id"] == str(principal.id)
        assert "commit_timestamp" in payload

    @pytest.mark.asyncio
    async def test_publish_failure_is_not_raised(self, mock_redis, principal):
        mock_redis.publish.side_effect = RedisError("connection refused")
        publisher = RuleChangePublisher(mock_redis)

        await publisher.publish("UPDATE", make_rule(principal.id))

        mock_redis.publish.assert_awaited_once()


class TestRuleChangeListener:
    """세션별 채널 구독 테스트"""

    @pytest.mark.asyncio
    async def test_no_principal_no_subscription(self, mock_redis):
        listener = RuleChangeListener(mock_redis)

        assert await listener.start(None) is False
        mock_redis.pubsub.assert_not_called()

    @pytest.mark.asyncio
    async def test_start_and_stop(self, mock_redis, principal):
        listener = RuleChangeListener(mock_redis, "rules_updates_channel", poll_timeout=0.01)
        pubsub = mock_redis.pubsub.return_value

        assert await listener.start(principal) is True
        assert listener.is_running is True
        pubsub.subscribe.assert_awaited_once_with("rules_updates_channel")

        await listener.stop()

        assert listener.is_running is False
        pubsub.unsubscribe.assert_awaited_once_with("rules_updates_channel")
        pubsub.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_subscribe_failure_is_not_raised(self, mock_redis, principal):
        pubsub = mock_redis.pubsub.return_value
        pubsub.subscribe.side_effect = RedisConnectionError("Too many connections")
        listener = RuleChangeListener(mock_redis, poll_timeout=0.01)

        assert await listener.start(principal) is False
        assert listener.is_running is False
        pubsub.aclose.assert_awaited_once()

        # 정리할 구독이 없으므로 해제 요청도 없음
        await listener.stop()
        pubsub.unsubscribe.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsubscribe_failure_still_closes(self, mock_redis, principal):
        pubsub = mock_redis.pubsub.return_value
        pubsub.unsubscribe.side_effect = RedisError("connection lost")
        listener = RuleChangeListener(mock_redis, poll_timeout=0.01)

        await listener.start(principal)
        await listener.stop()

        assert listener.is_running is False
        pubsub.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_restart_tears_down_previous_subscription(self, mock_redis, principal):
        listener = RuleChangeListener(mock_redis, poll_timeout=0.01)
        pubsub = mock_redis.pubsub.return_value

        await listener.start(principal)
        await listener.start(Principal(id=principal.id, session_id="session-2"))

        assert mock_redis.pubsub.call_count == 2
        pubsub.unsubscribe.assert_awaited_once()
        assert listener.principal.session_id == "session-2"

        await listener.stop()

    def test_handle_message_own_rule(self, mock_redis, principal):
        listener = RuleChangeListener(mock_redis)
        listener.principal = principal

        payload = listener.handle_message(event_message(principal.id))

        assert payload["event"] == "UPDATE"

    def test_handle_message_ignores_other_owner(self, mock_redis, principal, other_principal):
        listener = RuleChangeListener(mock_redis)
        listener.principal = principal

        assert listener.handle_message(event_message(other_principal.id)) is None

    def test_handle_message_ignores_garbage(self, mock_redis, principal):
        listener = RuleChangeListener(mock_redis)
        listener.principal = principal

        assert listener.handle_message({"type": "message", "data": "not json"}) is None

    @pytest.mark.asyncio
    async def test_receive_loop_dispatches_messages(self, mock_redis, principal):
        pubsub = mock_redis.pubsub.return_value
        messages = [event_message(principal.id)]

        async def get_message(*args, **kwargs):
            if messages:
                return messages.pop()
            await asyncio.sleep(0.01)
            return None

        pubsub.get_message.side_effect = get_message
        listener = RuleChangeListener(mock_redis, poll_timeout=0.01)
        listener.handle_message = MagicMock(wraps=listener.handle_message)

        await listener.start(principal)
        await asyncio.sleep(0.05)
        await listener.stop()

        listener.handle_message.assert_called_once()
