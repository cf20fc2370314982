"""
룰 생성/수정 폼 유닛 테스트
"""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from rule_dashboard.forms.rule_form import RuleForm, check_condition_syntax
from rule_dashboard.schemas.rule import RuleCreate, RuleRead, RuleUpdate
from rule_dashboard.store.rule_store import RuleManagementStore
from rule_dashboard.utils.exceptions import DataServiceException


def make_rule(**overrides) -> RuleRead:
    values = {
        "id": uuid4(),
        "user_id": uuid4(),
        "name": "Card Testing",
        "description": "소액 결제 반복 탐지",
        "category": "Payment Method",
        "condition": "small_tx_count_10m > 3",
        "severity": "high",
        "status": "warning",
        "log_only": True,
        "catches": 5,
        "false_positives": 0,
        "effectiveness": 80,
        "is_deleted": False,
    }
    values.update(overrides)
    return RuleRead(**values)


@pytest.fixture
def store():
    service = MagicMock()
    service.principal = None
    service.create_rule = AsyncMock()
    service.update_rule = AsyncMock()
    return RuleManagementStore(service)


def fill(form: RuleForm, **overrides):
    values = {
        "name": "High Value Alert",
        "description": "고액 결제 알림",
        "condition": "amount > 1000",
    }
    values.update(overrides)
    form.set_values(**values)


class TestFormDefaults:
    """폼 초기값 테스트"""

    def test_create_defaults(self, store):
        form = RuleForm(store)

        assert form.is_editing is False
        assert form.title == "새 룰 만들기"
        assert form.data.category == "Behavioral"
        assert form.data.severity == "medium"
        assert form.data.status == "active"
        assert form.data.log_only is False

    def test_edit_prefills_from_target(self, store):
        rule = make_rule()
        store.rules = [rule]
        store.edit_rule(rule.id)

        form = RuleForm(store)

        assert form.is_editing is True
        assert form.title == "룰 수정"
        assert form.data.name == rule.name
        assert form.data.status == rule.status
        assert form.data.log_only is True


class TestValidation:
    """필수 입력 검증 테스트"""

    def test_blank_fields_reported(self, store):
        form = RuleForm(store)
        form.set_values(name="   ")

        assert form.validate() is False
        assert set(form.errors) == {"name", "condition", "description"}

    def test_changing_field_clears_its_error(self, store):
        form = RuleForm(store)
        form.validate()

        form.set_values(name="Geo Mismatch")

        assert "name" not in form.errors
        assert "condition" in form.errors


class TestSubmit:
    """폼 저장 테스트"""

    @pytest.mark.asyncio
    async def test_invalid_form_does_not_call_store(self, store):
        form = RuleForm(store)

        assert await form.submit() is None
        store.service.create_rule.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_success_resets_and_closes(self, store):
        created = make_rule(name="High Value Alert")
        store.service.create_rule.return_value = created
        store.open_create_modal()
        form = RuleForm(store)
        fill(form)

        rule = await form.submit()

        assert rule == created
        sent = store.service.create_rule.await_args.args[0]
        assert isinstance(sent, RuleCreate)
        assert sent.name == "High Value Alert"
        assert store.is_create_modal_open is False
        assert form.data.name == ""
        assert form.is_saving is False

    @pytest.mark.asyncio
    async def test_edit_calls_update(self, store):
        rule = make_rule()
        store.rules = [rule]
        store.edit_rule(rule.id)
        store.service.update_rule.return_value = rule.model_copy(update={"name": "Renamed"})
        form = RuleForm(store)

        form.set_values(name="Renamed")
        saved = await form.submit()

        assert saved.name == "Renamed"
        rule_id, updates = store.service.update_rule.await_args.args
        assert rule_id == rule.id
        assert isinstance(updates, RuleUpdate)
        assert store.editing_rule is None
        assert store.rules[0].name == "Renamed"

    @pytest.mark.asyncio
    async def test_failure_keeps_form_open(self, store):
        store.service.create_rule.side_effect = DataServiceException("저장 실패")
        store.open_create_modal()
        form = RuleForm(store)
        fill(form)

        assert await form.submit() is None

        assert store.is_create_modal_open is True
        assert store.error == "저장 실패"
        assert form.data.name == "High Value Alert"

    def test_close_discards_input(self, store):
        store.open_create_modal()
        form = RuleForm(store)
        fill(form)

        form.close()

        assert store.is_create_modal_open is False
        assert form.data.name == ""


class TestConditionCheck:
    """룰 조건 문법 검사 (자리표시자) 테스트"""

    @pytest.mark.asyncio
    async def test_blank_condition(self, store):
        form = RuleForm(store, condition_check_delay=0)

        assert await form.check_condition() is None
        assert form.errors["condition"] == "테스트할 조건을 입력하세요."

    @pytest.mark.asyncio
    async def test_any_condition_reported_valid(self, store):
        form = RuleForm(store, condition_check_delay=0)
        form.set_values(condition="this is not parsed (((")

        result = await form.check_condition()

        assert result.valid is True
        assert form.is_testing_rule is False

    @pytest.mark.asyncio
    async def test_syntax_check_uses_delay(self):
        result = await check_condition_syntax("amount > 1", delay=0)

        assert result.valid is True
        assert result.message == "룰 문법이 유효합니다."
