"""
룰 서비스 (원격 저장소 접근자)

rules 테이블에 대한 요청 함수 모음입니다. 각 메서드는 자체 세션을 열어
하나의 요청을 수행하고, 결과를 반환하거나 실패를 그대로 전파합니다.

접근 정책:
- 모든 쿼리에 소유자 조건(user_id = 현재 사용자)을 붙입니다.
- 사용자가 없으면 조건이 항상 거짓이 되어 조회는 빈 결과, 수정은 0건이 됩니다.
- 삭제는 is_deleted 플래그 갱신(소프트 삭제)으로만 처리합니다.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Union
from uuid import UUID

from fastapi import status
from pydantic import BaseModel, ValidationError
from sqlalchemy import and_, case, false, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rule_dashboard.middleware.auth import Principal
from rule_dashboard.models.rule import Rule, RuleStatus
from rule_dashboard.schemas.rule import RuleCreate, RuleStatsUpdate, RuleUpdate
from rule_dashboard.services.realtime import RuleChangePublisher
from rule_dashboard.utils.exceptions import (
    DataServiceException,
    UnauthorizedException,
    ValidationException,
)

logger = logging.getLogger(__name__)


def escape_like(value: str) -> str:
    """LIKE 패턴의 와일드카드 문자 이스케이프"""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class RuleService:
    """룰 CRUD 및 조회 요청"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        principal: Optional[Principal],
        publisher: Optional[RuleChangePublisher] = None,
    ):
        self.session_factory = session_factory
        self.principal = principal
        self.publisher = publisher

    # --- 내부 헬퍼 ---

    def _owned(self):
        """소유자 조건"""
        if self.principal is None:
            return false()
        return Rule.user_id == self.principal.id

    def _visible(self):
        """소유자 + 삭제되지 않은 행"""
        return and_(self._owned(), Rule.is_deleted.is_(False))

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        """
        요청 단위 세션

        데이터베이스 오류는 DataServiceException으로 변환하여 전파합니다.
        """
        async with self.session_factory() as db:
            try:
                yield db
            except (SQLAlchemyError, OSError) as e:
                await db.rollback()
                reason = getattr(e, "orig", None) or e
                logger.error(f"룰 {operation} 실패: {reason}", exc_info=True)
                raise DataServiceException(
                    message=f"룰 {operation} 중 오류가 발생했습니다: {reason}",
                    operation=operation,
                ) from e

    async def _list(self, operation: str, *filters) -> List[Rule]:
        """조건에 맞는 보이는 룰 목록 (최신순)"""
        query = (
            select(Rule)
            .where(self._visible(), *filters)
            .order_by(Rule.created_at.desc())
        )
        async with self._session(operation) as db:
            result = await db.execute(query)
            return list(result.scalars().all())

    async def _apply_update(
        self, operation: str, rule_id: UUID, values: Dict[str, Any]
    ) -> Rule:
        """보이는 행 하나에 부분 수정을 적용하고 갱신된 행을 반환"""
        stmt = (
            update(Rule)
            .where(Rule.id == rule_id, self._visible())
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        async with self._session(operation) as db:
            result = await db.execute(stmt)
            if result.rowcount == 0:
                raise DataServiceException(
                    message=f"{operation}할 룰을 찾을 수 없습니다: {rule_id}",
                    operation=operation,
                    status_code=status.HTTP_404_NOT_FOUND,
                )
            await db.commit()

            rule = (
                await db.execute(select(Rule).where(Rule.id == rule_id))
            ).scalar_one()

        await self._publish("UPDATE", rule)
        return rule

    async def _publish(self, event_type: str, rule: Rule) -> None:
        if self.publisher is not None:
            await self.publisher.publish(event_type, rule)

    # --- 조회 ---

    async def list_rules(self) -> List[Rule]:
        """현재 사용자의 룰 목록 (삭제 제외, 최신순)"""
        return await self._list("목록 조회")

    async def get_rule(self, rule_id: UUID) -> Optional[Rule]:
        """
        룰 단건 조회

        Returns:
            Rule 또는 None (없거나 삭제되었거나 다른 사용자의 룰)
        """
        query = select(Rule).where(Rule.id == rule_id, self._visible())
        async with self._session("조회") as db:
            result = await db.execute(query)
            return result.scalar_one_or_none()

    async def get_rules_by_category(self, category: str) -> List[Rule]:
        """카테고리별 룰 목록"""
        return await self._list("카테고리별 조회", Rule.category == category)

    async def get_rules_by_status(self, rule_status: Union[RuleStatus, str]) -> List[Rule]:
        """상태별 룰 목록"""
        return await self._list("상태별 조회", Rule.status == RuleStatus(rule_status).value)

    async def search_rules(self, query: str) -> List[Rule]:
        """
        룰 검색 (이름 또는 설명, 대소문자 무시 부분 일치)

        빈 검색어는 전체 목록과 같습니다.
        """
        pattern = f"%{escape_like(query)}%"
        return await self._list(
            "검색",
            or_(
                Rule.name.ilike(pattern, escape="\\"),
                Rule.description.ilike(pattern, escape="\\"),
            ),
        )

    # --- 변경 ---

    async def create_rule(self, data: RuleCreate) -> Rule:
        """
        룰 생성

        소유자는 현재 세션의 사용자로 지정됩니다.

        Raises:
            UnauthorizedException: 인증된 사용자가 없는 경우
        """
        if self.principal is None:
            raise UnauthorizedException("로그인한 사용자만 룰을 생성할 수 있습니다.")

        rule = Rule(**data.model_dump(mode="json"), user_id=self.principal.id)

        async with self._session("생성") as db:
            db.add(rule)
            await db.commit()
            await db.refresh(rule)

        logger.info(f"새 룰 생성 완료: {rule.name} (ID: {rule.id})")
        await self._publish("INSERT", rule)
        return rule

    async def update_rule(
        self, rule_id: UUID, updates: Union[RuleUpdate, Dict[str, Any]]
    ) -> Rule:
        """
        룰 부분 수정

        삭제된 룰은 대상이 되지 않으며, 대상이 없으면 실패합니다.
        """
        if isinstance(updates, BaseModel):
            values = updates.model_dump(mode="json", exclude_unset=True)
        else:
            try:
                values = RuleUpdate(**updates).model_dump(mode="json", exclude_unset=True)
            except ValidationError as e:
                fields = sorted({".".join(str(loc) for loc in err["loc"]) for err in e.errors()})
                raise ValidationException(
                    message=f"수정할 값이 유효하지 않습니다: {', '.join(fields)}",
                    details={"fields": fields},
                ) from e

        if not values:
            rule = await self.get_rule(rule_id)
            if rule is None:
                raise DataServiceException(
                    message=f"수정할 룰을 찾을 수 없습니다: {rule_id}",
                    operation="수정",
                    status_code=status.HTTP_404_NOT_FOUND,
                )
            return rule

        rule = await self._apply_update("수정", rule_id, values)
        logger.info(f"룰 수정 완료: {rule.name} (ID: {rule.id}), fields={sorted(values)}")
        return rule

    async def update_rule_stats(self, rule_id: UUID, stats: RuleStatsUpdate) -> Rule:
        """룰 통계 기록 (catches, false_positives, effectiveness)"""
        return await self.update_rule(rule_id, stats.model_dump(exclude_unset=True))

    async def delete_rule(self, rule_id: UUID) -> None:
        """
        룰 소프트 삭제

        행을 지우지 않고 is_deleted만 설정합니다.
        """
        stmt = (
            update(Rule)
            .where(Rule.id == rule_id, self._owned())
            .values(is_deleted=True)
            .execution_options(synchronize_session=False)
        )

        async with self._session("삭제") as db:
            result = await db.execute(stmt)
            await db.commit()

            if result.rowcount == 0:
                logger.warning(f"삭제 대상 룰 없음: {rule_id}")
                return

            rule = (
                await db.execute(select(Rule).where(Rule.id == rule_id))
            ).scalar_one()

        logger.info(f"룰 삭제 완료: {rule.name} (ID: {rule.id})")
        await self._publish("UPDATE", rule)

    async def toggle_rule_status(self, rule_id: UUID) -> Rule:
        """
        룰 상태 토글 (active ⇄ inactive)

        현재 상태를 읽지 않고 단일 조건부 UPDATE로 뒤집습니다.
        active가 아닌 룰(inactive, warning)은 active가 됩니다.
        """
        flipped = case(
            (Rule.status == RuleStatus.ACTIVE.value, RuleStatus.INACTIVE.value),
            else_=RuleStatus.ACTIVE.value,
        )
        rule = await self._apply_update("상태 변경", rule_id, {"status": flipped})
        logger.info(f"룰 상태 변경 완료: {rule.name} (ID: {rule.id}) -> {rule.status}")
        return rule
