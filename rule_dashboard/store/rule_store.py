"""
룰 관리 스토어 (관찰 가능한 캐시)

현재 사용자의 룰 목록과 대시보드 UI 상태를 메모리에 보관합니다.

동작 방식:
- 원격 호출이 성공한 뒤에만 캐시를 바꿉니다 (낙관적 업데이트 없음).
- 상태 변경은 새 값을 만든 뒤 한 번에 교체하고, 구독자에게 스냅샷을 한 번 전달합니다.
- 실패 시 기존 캐시는 그대로 두고 error에 표시용 메시지를 기록합니다.
  이후 성공한 작업이 error를 지웁니다.
- 같은 룰 ID에 대한 동시 요청은 중복 제거하지 않습니다.
"""

import enum
import logging
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import UUID

from rule_dashboard.middleware.auth import Principal
from rule_dashboard.models.rule import RuleSeverity, RuleStatus
from rule_dashboard.schemas.rule import (
    DashboardSnapshot,
    RuleCreate,
    RuleRead,
    RuleUpdate,
)
from rule_dashboard.services.realtime import RuleChangeListener
from rule_dashboard.services.rule_service import RuleService
from rule_dashboard.utils.exceptions import AppException

logger = logging.getLogger(__name__)


# 검토 필요 기준
ATTENTION_EFFECTIVENESS_THRESHOLD = 70
ATTENTION_FALSE_POSITIVES_THRESHOLD = 100


class RuleTab(str, enum.Enum):
    """룰 목록 탭"""
    ALL = "all"
    ACTIVE = "active"
    ATTENTION = "attention"  # 검토 필요


def needs_attention(rule: RuleRead) -> bool:
    """검토가 필요한 룰인지 (경고 상태, 낮은 효과성, 많은 오탐)"""
    return (
        rule.status == RuleStatus.WARNING
        or rule.effectiveness < ATTENTION_EFFECTIVENESS_THRESHOLD
        or rule.false_positives > ATTENTION_FALSE_POSITIVES_THRESHOLD
    )


Subscriber = Callable[[DashboardSnapshot], None]


class RuleManagementStore:
    """
    룰 관리 스토어

    Args:
        service: 현재 사용자로 범위가 지정된 룰 서비스
        listener: 실시간 변경 알림 구독자 (선택)
    """

    def __init__(
        self,
        service: RuleService,
        listener: Optional[RuleChangeListener] = None,
    ):
        self.service = service
        self.listener = listener

        self.rules: List[RuleRead] = []
        self.active_tab: RuleTab = RuleTab.ALL
        self.search_query: str = ""
        self.is_create_modal_open = False
        self.is_edit_modal_open = False
        self.is_chargeback_analysis_open = False
        self.editing_rule: Optional[RuleRead] = None
        self.is_loading = False
        self.error: Optional[str] = None

        self.version = 0
        self._subscribers: List[Subscriber] = []
        self._disposed = False

    # --- 생명주기 ---

    async def initialize(self) -> None:
        """룰 목록을 불러오고 실시간 구독을 시작"""
        await self.load_rules()
        if self.listener is not None:
            await self.listener.start(self.service.principal)

    async def attach_session(self, principal: Principal) -> None:
        """
        세션 변경 반영

        세션 ID가 바뀌면 실시간 구독을 해제하고 새 세션으로 다시 구독합니다.
        """
        previous = self.service.principal
        self.service.principal = principal

        if self.listener is None:
            return
        if previous is not None and previous.session_id == principal.session_id:
            return

        logger.info(f"세션 변경 감지: user={principal.id}, 실시간 구독을 재생성합니다.")
        await self.listener.start(principal)

    async def dispose(self) -> None:
        """구독 해제 및 정리 (이후 완료되는 요청은 상태를 바꾸지 않음)"""
        self._disposed = True
        self._subscribers.clear()
        if self.listener is not None:
            await self.listener.stop()

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    # --- 구독 ---

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        상태 변경 구독

        Returns:
            구독 해제 함수
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def snapshot(self) -> DashboardSnapshot:
        """현재 상태의 불변 스냅샷"""
        return DashboardSnapshot(
            version=self.version,
            rules=self.filtered_rules,
            total=len(self.rules),
            active_count=self.active_rules_count,
            attention_count=self.needs_attention_count,
            active_tab=self.active_tab.value,
            search_query=self.search_query,
            is_loading=self.is_loading,
            error=self.error,
            is_create_modal_open=self.is_create_modal_open,
            is_edit_modal_open=self.is_edit_modal_open,
            is_chargeback_analysis_open=self.is_chargeback_analysis_open,
            editing_rule=self.editing_rule,
        )

    def _commit(self, **changes: Any) -> None:
        """상태를 한 번에 교체하고 구독자에게 알림"""
        if self._disposed:
            logger.debug(f"정리된 스토어에 대한 늦은 상태 변경 무시: {sorted(changes)}")
            return

        for name, value in changes.items():
            setattr(self, name, value)
        self.version += 1

        if not self._subscribers:
            return
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            callback(snapshot)

    def _record_error(self, error: AppException, fallback: str) -> None:
        logger.error(f"{fallback}: {error.message}")
        self._commit(error=error.message or fallback)

    # --- 원격 작업 ---

    async def load_rules(self) -> None:
        """원격 목록으로 캐시 전체 교체"""
        self._commit(is_loading=True, error=None)
        try:
            rules = await self.service.list_rules()
        except AppException as e:
            self._record_error(e, "룰 목록을 불러오지 못했습니다")
        else:
            self._commit(rules=[RuleRead.model_validate(rule) for rule in rules])
        finally:
            self._commit(is_loading=False)

    async def search_rules(self, query: str) -> None:
        """원격 검색 결과로 캐시 전체 교체"""
        self._commit(is_loading=True)
        try:
            rules = await self.service.search_rules(query)
        except AppException as e:
            self._record_error(e, "룰 검색에 실패했습니다")
        else:
            self._commit(
                rules=[RuleRead.model_validate(rule) for rule in rules], error=None
            )
        finally:
            self._commit(is_loading=False)

    async def add_rule(self, data: RuleCreate) -> RuleRead:
        """
        룰 생성 후 목록 맨 앞에 추가

        Raises:
            AppException: 생성 실패 시 (error 기록 후 다시 발생)
        """
        try:
            created = await self.service.create_rule(data)
        except AppException as e:
            self._record_error(e, "룰 생성에 실패했습니다")
            raise

        rule = RuleRead.model_validate(created)
        self._commit(rules=[rule, *self.rules], error=None)
        return rule

    async def update_rule(
        self, rule_id: UUID, updates: Union[RuleUpdate, Dict[str, Any]]
    ) -> RuleRead:
        """
        룰 수정 후 같은 위치의 항목 교체

        Raises:
            AppException: 수정 실패 시 (error 기록 후 다시 발생)
        """
        try:
            updated = await self.service.update_rule(rule_id, updates)
        except AppException as e:
            self._record_error(e, "룰 수정에 실패했습니다")
            raise

        rule = RuleRead.model_validate(updated)
        self._commit(rules=self._replaced(rule), error=None)
        return rule

    async def delete_rule(self, rule_id: UUID) -> None:
        """룰 소프트 삭제 후 목록에서 제거"""
        try:
            await self.service.delete_rule(rule_id)
        except AppException as e:
            self._record_error(e, "룰 삭제에 실패했습니다")
            return

        self._commit(
            rules=[rule for rule in self.rules if rule.id != rule_id], error=None
        )

    async def toggle_rule_status(self, rule_id: UUID) -> None:
        """룰 상태 토글 후 같은 위치의 항목 교체"""
        try:
            toggled = await self.service.toggle_rule_status(rule_id)
        except AppException as e:
            self._record_error(e, "룰 상태 변경에 실패했습니다")
            return

        self._commit(rules=self._replaced(RuleRead.model_validate(toggled)), error=None)

    def _replaced(self, updated: RuleRead) -> List[RuleRead]:
        return [updated if rule.id == updated.id else rule for rule in self.rules]

    # --- 로컬 상태 ---

    def set_active_tab(self, tab: Union[RuleTab, str]) -> None:
        self._commit(active_tab=RuleTab(tab))

    def set_search_query(self, query: str) -> None:
        self._commit(search_query=query)

    def open_create_modal(self) -> None:
        self._commit(is_create_modal_open=True, editing_rule=None)

    def close_create_modal(self) -> None:
        self._commit(
            is_create_modal_open=False, is_edit_modal_open=False, editing_rule=None
        )

    def edit_rule(self, rule_id: UUID) -> bool:
        """
        수정 대상 지정 (생성 폼을 수정 모드로 재사용)

        Returns:
            bool: 캐시에 해당 룰이 있는지
        """
        rule = self.find_rule(rule_id)
        if rule is None:
            return False

        self._commit(
            editing_rule=rule, is_edit_modal_open=True, is_create_modal_open=True
        )
        return True

    def close_edit_modal(self) -> None:
        self._commit(
            is_edit_modal_open=False, is_create_modal_open=False, editing_rule=None
        )

    def open_chargeback_analysis(self) -> None:
        self._commit(is_chargeback_analysis_open=True)

    def close_chargeback_analysis(self) -> None:
        self._commit(is_chargeback_analysis_open=False)

    def view_rule_history(self, rule_id: UUID) -> Optional[RuleRead]:
        # TODO: 룰 변경 이력 테이블이 생기면 이력을 조회하도록 변경
        rule = self.find_rule(rule_id)
        if rule is not None:
            logger.info(f"룰 이력 조회 요청: {rule.name} (ID: {rule.id})")
        return rule

    def clear_error(self) -> None:
        self._commit(error=None)

    # --- 파생 뷰 ---

    def find_rule(self, rule_id: UUID) -> Optional[RuleRead]:
        return next((rule for rule in self.rules if rule.id == rule_id), None)

    @property
    def filtered_rules(self) -> List[RuleRead]:
        """탭 필터 후 검색어(이름/설명/카테고리, 대소문자 무시)로 필터링한 목록"""
        filtered = self.rules

        if self.active_tab == RuleTab.ACTIVE:
            filtered = [rule for rule in filtered if rule.status == RuleStatus.ACTIVE]
        elif self.active_tab == RuleTab.ATTENTION:
            filtered = [rule for rule in filtered if needs_attention(rule)]

        if self.search_query:
            query = self.search_query.lower()
            filtered = [
                rule
                for rule in filtered
                if query in rule.name.lower()
                or query in rule.description.lower()
                or query in rule.category.lower()
            ]

        return list(filtered)

    @property
    def active_rules_count(self) -> int:
        return sum(1 for rule in self.rules if rule.status == RuleStatus.ACTIVE)

    @property
    def needs_attention_count(self) -> int:
        return sum(1 for rule in self.rules if needs_attention(rule))

    def get_rules_by_category(self, category: str) -> List[RuleRead]:
        return [rule for rule in self.rules if rule.category == category]

    def get_rules_by_status(self, rule_status: Union[RuleStatus, str]) -> List[RuleRead]:
        rule_status = RuleStatus(rule_status)
        return [rule for rule in self.rules if rule.status == rule_status]

    def get_rules_by_severity(self, severity: Union[RuleSeverity, str]) -> List[RuleRead]:
        severity = RuleSeverity(severity)
        return [rule for rule in self.rules if rule.severity == severity]
