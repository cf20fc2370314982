"""
룰 서비스 통합 테스트 (인메모리 SQLite)

소유자 범위, 소프트 삭제, 상태 토글, 검색, 제약 조건 위반 처리를 검증합니다.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from rule_dashboard.models import Rule
from rule_dashboard.schemas.rule import RuleCreate, RuleStatsUpdate, RuleUpdate
from rule_dashboard.services.realtime import RuleChangePublisher
from rule_dashboard.services.rule_service import RuleService, escape_like
from rule_dashboard.store.rule_store import RuleManagementStore
from rule_dashboard.utils.exceptions import (
    DataServiceException,
    UnauthorizedException,
    ValidationException,
)


pytestmark = pytest.mark.integration


async def insert_rules(session_factory, user_id, *names, **overrides):
    """생성 시각을 1분 간격으로 지정하여 룰 삽입 (마지막 이름이 가장 최신)"""
    base = datetime(2025, 6, 16, 9, 0, tzinfo=timezone.utc)
    rules = []
    async with session_factory() as db:
        for index, name in enumerate(names):
            values = {
                "user_id": user_id,
                "name": name,
                "description": f"{name} 설명",
                "condition": "amount > 100",
                "created_at": base + timedelta(minutes=index),
            }
            values.update(overrides)
            rule = Rule(**values)
            db.add(rule)
            rules.append(rule)
        await db.commit()
    return rules


class TestQueries:
    """조회 테스트"""

    @pytest.mark.asyncio
    async def test_list_newest_first(self, session_factory, rule_service, principal):
        await insert_rules(session_factory, principal.id, "First", "Second", "Third")

        rules = await rule_service.list_rules()

        assert [rule.name for rule in rules] == ["Third", "Second", "First"]

    @pytest.mark.asyncio
    async def test_owner_scoping(self, session_factory, rule_service, principal, other_principal):
        await insert_rules(session_factory, principal.id, "Mine")
        others = await insert_rules(session_factory, other_principal.id, "Theirs")

        rules = await rule_service.list_rules()

        assert [rule.name for rule in rules] == ["Mine"]
        assert await rule_service.get_rule(others[0].id) is None

    @pytest.mark.asyncio
    async def test_no_principal_sees_nothing(self, session_factory, principal):
        await insert_rules(session_factory, principal.id, "Mine")

        assert await RuleService(session_factory, None).list_rules() == []

    @pytest.mark.asyncio
    async def test_filters(self, session_factory, rule_service, principal):
        await insert_rules(session_factory, principal.id, "Card A", category="Payment Method")
        await insert_rules(session_factory, principal.id, "Warn B", status="warning")

        by_category = await rule_service.get_rules_by_category("Payment Method")
        by_status = await rule_service.get_rules_by_status("warning")

        assert [rule.name for rule in by_category] == ["Card A"]
        assert [rule.name for rule in by_status] == ["Warn B"]

    @pytest.mark.asyncio
    async def test_search_case_insensitive_name_or_description(
        self, session_factory, rule_service, principal
    ):
        await insert_rules(session_factory, principal.id, "Velocity Check", "Geo Mismatch")

        by_name = await rule_service.search_rules("velocity")
        by_description = await rule_service.search_rules("MISMATCH 설명")

        assert [rule.name for rule in by_name] == ["Velocity Check"]
        assert [rule.name for rule in by_description] == ["Geo Mismatch"]

    @pytest.mark.asyncio
    async def test_search_wildcards_are_literal(self, session_factory, rule_service, principal):
        await insert_rules(session_factory, principal.id, "100% Match", "Plain")

        rules = await rule_service.search_rules("%")

        assert [rule.name for rule in rules] == ["100% Match"]

    @pytest.mark.asyncio
    async def test_empty_search_returns_all(self, session_factory, rule_service, principal):
        await insert_rules(session_factory, principal.id, "A", "B")

        assert len(await rule_service.search_rules("")) == 2

    def test_escape_like(self):
        assert escape_like("50%_off\\") == "50\\%\\_off\\\\"


class TestMutations:
    """생성/수정/삭제/토글 테스트"""

    @pytest.mark.asyncio
    async def test_create_sets_owner_and_defaults(self, rule_service, principal):
        rule = await rule_service.create_rule(
            RuleCreate(name="High Value Alert", description="고액 결제", condition="amount > 1000")
        )

        assert rule.user_id == principal.id
        assert rule.category == "Behavioral"
        assert (rule.catches, rule.false_positives, rule.effectiveness) == (0, 0, 0)
        assert rule.is_deleted is False
        assert rule.created_at is not None

    @pytest.mark.asyncio
    async def test_create_without_principal(self, session_factory):
        service = RuleService(session_factory, None)

        with pytest.raises(UnauthorizedException):
            await service.create_rule(
                RuleCreate(name="x", description="d", condition="c")
            )

    @pytest.mark.asyncio
    async def test_partial_update(self, session_factory, rule_service, principal):
        (rule,) = await insert_rules(session_factory, principal.id, "Original")

        updated = await rule_service.update_rule(rule.id, RuleUpdate(name="Renamed"))

        assert updated.name == "Renamed"
        assert updated.description == "Original 설명"

    @pytest.mark.asyncio
    async def test_check_constraint_violation(self, session_factory, rule_service, principal):
        (rule,) = await insert_rules(session_factory, principal.id, "Stats")

        # 스키마 검증을 거치지 않은 값으로 데이터베이스 제약 조건 확인
        with pytest.raises(DataServiceException) as exc_info:
            await rule_service.update_rule(rule.id, RuleUpdate.model_construct(effectiveness=150))

        assert exc_info.value.status_code == 502
        assert (await rule_service.get_rule(rule.id)).effectiveness == 0

    @pytest.mark.asyncio
    async def test_invalid_update_values_are_client_errors(
        self, session_factory, rule_service, principal
    ):
        (rule,) = await insert_rules(session_factory, principal.id, "Strict")

        with pytest.raises(ValidationException) as exc_info:
            await rule_service.update_rule(rule.id, {"name": None, "effectiveness": 150})

        assert exc_info.value.status_code == 400
        assert exc_info.value.details["fields"] == ["effectiveness", "name"]
        assert (await rule_service.get_rule(rule.id)).name == "Strict"

    @pytest.mark.asyncio
    async def test_store_records_invalid_update(self, session_factory, rule_service, principal):
        (rule,) = await insert_rules(session_factory, principal.id, "Strict")
        store = RuleManagementStore(rule_service)
        await store.load_rules()

        with pytest.raises(ValidationException):
            await store.update_rule(rule.id, {"severity": "critical"})

        assert "severity" in store.error
        assert store.rules[0].severity == "medium"

    @pytest.mark.asyncio
    async def test_update_other_owner_fails(
        self, session_factory, rule_service, other_principal
    ):
        (rule,) = await insert_rules(session_factory, other_principal.id, "Theirs")

        with pytest.raises(DataServiceException) as exc_info:
            await rule_service.update_rule(rule.id, {"name": "Hijacked"})

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_update_stats(self, session_factory, rule_service, principal):
        (rule,) = await insert_rules(session_factory, principal.id, "Stats")

        updated = await rule_service.update_rule_stats(
            rule.id, RuleStatsUpdate(catches=12, effectiveness=88)
        )

        assert (updated.catches, updated.false_positives, updated.effectiveness) == (12, 0, 88)

    @pytest.mark.asyncio
    async def test_soft_delete_hides_rule(self, session_factory, rule_service, principal):
        (rule,) = await insert_rules(session_factory, principal.id, "Doomed")

        await rule_service.delete_rule(rule.id)

        assert await rule_service.list_rules() == []
        assert await rule_service.search_rules("Doomed") == []
        assert await rule_service.get_rules_by_category("Behavioral") == []
        async with session_factory() as db:
            row = await db.get(Rule, rule.id)
            assert row is not None
            assert row.is_deleted is True

    @pytest.mark.asyncio
    async def test_delete_missing_rule_is_silent(self, rule_service):
        await rule_service.delete_rule(uuid4())

    @pytest.mark.asyncio
    async def test_deleted_rule_cannot_be_updated(self, session_factory, rule_service, principal):
        (rule,) = await insert_rules(session_factory, principal.id, "Doomed")
        await rule_service.delete_rule(rule.id)

        with pytest.raises(DataServiceException):
            await rule_service.update_rule(rule.id, {"name": "Revived"})

    @pytest.mark.asyncio
    async def test_toggle_twice_restores_status(self, session_factory, rule_service, principal):
        (rule,) = await insert_rules(session_factory, principal.id, "Toggle")

        first = await rule_service.toggle_rule_status(rule.id)
        second = await rule_service.toggle_rule_status(rule.id)

        assert first.status == "inactive"
        assert second.status == "active"

    @pytest.mark.asyncio
    async def test_toggle_warning_becomes_active(self, session_factory, rule_service, principal):
        (rule,) = await insert_rules(session_factory, principal.id, "Warn", status="warning")

        toggled = await rule_service.toggle_rule_status(rule.id)

        assert toggled.status == "active"

    @pytest.mark.asyncio
    async def test_mutations_publish_events(self, session_factory, principal, mock_redis):
        service = RuleService(
            session_factory, principal, RuleChangePublisher(mock_redis, "rules_updates_channel")
        )

        rule = await service.create_rule(
            RuleCreate(name="Published", description="d", condition="c")
        )
        await service.toggle_rule_status(rule.id)

        assert mock_redis.publish.await_count == 2
