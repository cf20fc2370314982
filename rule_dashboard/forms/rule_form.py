"""
룰 생성/수정 폼

생성과 수정이 하나의 폼을 공유하며, 스토어의 editing_rule 설정 여부로 구분합니다.
폼은 입력값과 검증 메시지만 보관하고 저장은 스토어에 위임합니다.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from rule_dashboard.config import settings
from rule_dashboard.schemas.rule import (
    ConditionCheckResponse,
    RuleCreate,
    RuleFormData,
    RuleRead,
    RuleUpdate,
)
from rule_dashboard.store.rule_store import RuleManagementStore
from rule_dashboard.utils.exceptions import AppException

logger = logging.getLogger(__name__)


# 필수 입력 필드와 메시지
REQUIRED_FIELDS = {
    "name": "룰 이름을 입력하세요.",
    "category": "카테고리를 선택하세요.",
    "condition": "룰 조건을 입력하세요.",
    "description": "설명을 입력하세요.",
}


async def check_condition_syntax(
    condition: str, delay: Optional[float] = None
) -> ConditionCheckResponse:
    """
    룰 조건 문법 검사 (자리표시자)

    조건 언어 문법이 아직 정의되지 않아 실제 검증 없이
    일정 시간 후 항상 성공을 반환합니다.
    """
    await asyncio.sleep(settings.RULE_TEST_DELAY_SECONDS if delay is None else delay)
    logger.debug(f"룰 조건 검사 (미구현): {condition!r}")
    return ConditionCheckResponse(valid=True, message="룰 문법이 유효합니다.")


class RuleForm:
    """
    Args:
        store: 폼이 저장을 위임할 스토어
        condition_check_delay: 조건 검사 지연 시간 (기본: RULE_TEST_DELAY_SECONDS)
    """

    def __init__(
        self,
        store: RuleManagementStore,
        condition_check_delay: Optional[float] = None,
    ):
        self.store = store
        self.condition_check_delay = condition_check_delay
        self.data = RuleFormData()
        self.errors: Dict[str, str] = {}
        self.is_saving = False
        self.is_testing_rule = False
        self.reset()

    @property
    def is_editing(self) -> bool:
        return self.store.editing_rule is not None

    @property
    def title(self) -> str:
        return "룰 수정" if self.is_editing else "새 룰 만들기"

    def reset(self) -> None:
        """수정 대상이 있으면 그 값으로, 없으면 기본값으로 채움"""
        rule = self.store.editing_rule
        if rule is not None:
            self.data = RuleFormData(
                name=rule.name,
                description=rule.description,
                category=rule.category,
                condition=rule.condition,
                severity=rule.severity,
                status=rule.status,
                log_only=rule.log_only,
            )
        else:
            self.data = RuleFormData()
        self.errors = {}

    def set_values(self, **values: Any) -> None:
        """입력값 변경 (변경한 필드의 오류 메시지는 지움)"""
        self.data = RuleFormData.model_validate({**self.data.model_dump(), **values})
        for field in values:
            self.errors.pop(field, None)

    def validate(self) -> bool:
        errors = {}
        for field, message in REQUIRED_FIELDS.items():
            if not getattr(self.data, field).strip():
                errors[field] = message

        self.errors = errors
        return not errors

    async def submit(self) -> Optional[RuleRead]:
        """
        폼 저장

        저장에 성공한 경우에만 폼을 초기화하고 모달을 닫습니다.
        실패 메시지는 스토어의 error에 기록되고 폼은 열린 상태로 남습니다.

        Returns:
            저장된 룰 (검증 실패 또는 저장 실패 시 None)
        """
        if not self.validate():
            return None

        self.is_saving = True
        editing = self.store.editing_rule
        try:
            if editing is not None:
                rule = await self.store.update_rule(
                    editing.id, RuleUpdate(**self.data.model_dump())
                )
            else:
                rule = await self.store.add_rule(RuleCreate(**self.data.model_dump()))
        except AppException as e:
            logger.warning(f"룰 저장 실패: {e.message}")
            return None
        finally:
            self.is_saving = False

        self.store.close_create_modal()
        self.reset()
        return rule

    def close(self) -> None:
        """입력값을 버리고 모달 닫기"""
        self.store.close_create_modal()
        self.reset()

    async def check_condition(self) -> Optional[ConditionCheckResponse]:
        """
        조건 문법 검사

        조건이 비어 있으면 오류 메시지를 남기고 None을 반환합니다.
        """
        if not self.data.condition.strip():
            self.errors["condition"] = "테스트할 조건을 입력하세요."
            return None

        self.is_testing_rule = True
        try:
            return await check_condition_syntax(
                self.data.condition, self.condition_check_delay
            )
        finally:
            self.is_testing_rule = False
