"""
룰 API 엔드포인트

rules 테이블에 대한 요청 함수(RuleService)를 HTTP로 노출합니다.
모든 요청은 토큰의 사용자로 범위가 지정되며, 다른 사용자의 룰은 보이지 않습니다.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from rule_dashboard.dependencies import get_rule_service
from rule_dashboard.middleware.auth import verify_public_key
from rule_dashboard.models.rule import RuleStatus
from rule_dashboard.schemas.rule import (
    RuleCreate,
    RuleListResponse,
    RuleRead,
    RuleStatsUpdate,
    RuleUpdate,
)
from rule_dashboard.services.rule_service import RuleService
from rule_dashboard.utils.exceptions import RuleNotFoundException, ValidationException

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/rules",
    tags=["Rules"],
    dependencies=[Depends(verify_public_key)],
)


@router.get("/", response_model=RuleListResponse, summary="룰 목록 조회")
async def list_rules(
    category: Optional[str] = Query(None, description="카테고리 필터"),
    rule_status: Optional[RuleStatus] = Query(None, alias="status", description="상태 필터"),
    q: Optional[str] = Query(None, description="검색어 (이름/설명)"),
    service: RuleService = Depends(get_rule_service),
):
    """
    현재 사용자의 룰 목록을 조회합니다.

    **필터링 옵션** (하나만 사용):
    - `category`: 특정 카테고리만 조회
    - `status`: active, inactive, warning
    - `q`: 이름 또는 설명 부분 일치 검색 (대소문자 무시)

    **정렬**: 생성일 내림차순. 삭제된 룰은 제외됩니다.
    """
    if sum(value is not None for value in (category, rule_status, q)) > 1:
        raise ValidationException("category, status, q 중 하나만 지정할 수 있습니다.")

    if category is not None:
        rules = await service.get_rules_by_category(category)
    elif rule_status is not None:
        rules = await service.get_rules_by_status(rule_status)
    elif q is not None:
        rules = await service.search_rules(q)
    else:
        rules = await service.list_rules()

    return RuleListResponse(
        total=len(rules), rules=[RuleRead.model_validate(rule) for rule in rules]
    )


@router.get("/{rule_id}", response_model=RuleRead, summary="룰 상세 조회")
async def get_rule(
    rule_id: UUID,
    service: RuleService = Depends(get_rule_service),
):
    """삭제되었거나 다른 사용자의 룰은 404를 반환합니다."""
    rule = await service.get_rule(rule_id)
    if rule is None:
        raise RuleNotFoundException(str(rule_id))

    return RuleRead.model_validate(rule)


@router.post(
    "/",
    response_model=RuleRead,
    status_code=status.HTTP_201_CREATED,
    summary="새 룰 생성",
)
async def create_rule(
    request: RuleCreate,
    service: RuleService = Depends(get_rule_service),
):
    """
    새 룰을 생성합니다. 소유자는 토큰의 사용자로 지정됩니다.

    토큰이 없으면 401을 반환합니다.
    """
    rule = await service.create_rule(request)
    return RuleRead.model_validate(rule)


@router.patch("/{rule_id}", response_model=RuleRead, summary="룰 수정")
async def update_rule(
    rule_id: UUID,
    request: RuleUpdate,
    service: RuleService = Depends(get_rule_service),
):
    """전달된 필드만 수정합니다. 삭제된 룰은 수정할 수 없습니다."""
    rule = await service.update_rule(rule_id, request)
    return RuleRead.model_validate(rule)


@router.patch("/{rule_id}/stats", response_model=RuleRead, summary="룰 통계 기록")
async def update_rule_stats(
    rule_id: UUID,
    request: RuleStatsUpdate,
    service: RuleService = Depends(get_rule_service),
):
    """외부 집계 프로세스가 탐지/오탐 건수와 효과성을 기록합니다."""
    rule = await service.update_rule_stats(rule_id, request)
    return RuleRead.model_validate(rule)


@router.patch("/{rule_id}/toggle", response_model=RuleRead, summary="룰 활성화/비활성화 토글")
async def toggle_rule(
    rule_id: UUID,
    service: RuleService = Depends(get_rule_service),
):
    """
    룰 상태를 토글합니다.

    **동작**:
    - `active` → `inactive`
    - `inactive`, `warning` → `active`
    """
    rule = await service.toggle_rule_status(rule_id)
    return RuleRead.model_validate(rule)


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT, summary="룰 삭제")
async def delete_rule(
    rule_id: UUID,
    service: RuleService = Depends(get_rule_service),
):
    """
    룰을 소프트 삭제합니다.

    행은 남아 있으며 이후 모든 조회에서 제외됩니다.
    """
    await service.delete_rule(rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
