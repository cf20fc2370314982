"""
룰 관리 대시보드 API

로그인한 사용자의 스토어 상태(스냅샷)를 조회하고, 화면 동작(탭/검색/모달/폼 제출)을
스토어 메서드로 위임합니다. 모든 응답은 변경 후의 DashboardSnapshot을 포함합니다.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field

from rule_dashboard.dependencies import get_rule_store, get_store_registry
from rule_dashboard.forms.rule_form import RuleForm
from rule_dashboard.middleware.auth import (
    Principal,
    get_current_principal,
    verify_public_key,
)
from rule_dashboard.models.rule import RULE_CATEGORIES
from rule_dashboard.schemas.rule import (
    ConditionCheckResponse,
    DashboardSnapshot,
    FormSubmitResponse,
    RuleFormData,
)
from rule_dashboard.store.registry import StoreRegistry
from rule_dashboard.store.rule_store import RuleManagementStore, RuleTab
from rule_dashboard.utils.exceptions import RuleNotFoundException, ValidationException

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/dashboard",
    tags=["Dashboard"],
    dependencies=[Depends(verify_public_key)],
)


class TabRequest(BaseModel):
    tab: RuleTab = Field(..., description="all, active, attention")


class QueryRequest(BaseModel):
    query: str = Field("", description="검색어")


class ConditionCheckRequest(BaseModel):
    condition: str = Field("", description="검사할 룰 조건")


@router.get("/", response_model=DashboardSnapshot, summary="대시보드 스냅샷")
async def get_snapshot(store: RuleManagementStore = Depends(get_rule_store)):
    """현재 탭/검색어로 필터링된 룰 목록과 활성/검토 필요 개수를 반환합니다."""
    return store.snapshot()


@router.get("/categories", response_model=List[str], summary="룰 카테고리 목록")
async def list_categories():
    """폼에서 선택할 수 있는 기본 카테고리 (직접 입력도 허용)"""
    return RULE_CATEGORIES


@router.post("/reload", response_model=DashboardSnapshot, summary="룰 목록 새로고침")
async def reload_rules(store: RuleManagementStore = Depends(get_rule_store)):
    await store.load_rules()
    return store.snapshot()


@router.put("/tab", response_model=DashboardSnapshot, summary="탭 변경")
async def set_tab(
    request: TabRequest,
    store: RuleManagementStore = Depends(get_rule_store),
):
    store.set_active_tab(request.tab)
    return store.snapshot()


@router.put("/query", response_model=DashboardSnapshot, summary="목록 필터 검색어 변경")
async def set_query(
    request: QueryRequest,
    store: RuleManagementStore = Depends(get_rule_store),
):
    """캐시된 목록을 로컬에서 필터링합니다 (네트워크 요청 없음)."""
    store.set_search_query(request.query)
    return store.snapshot()


@router.post("/search", response_model=DashboardSnapshot, summary="서버 검색")
async def search_rules(
    request: QueryRequest,
    store: RuleManagementStore = Depends(get_rule_store),
):
    """서버 검색 결과로 캐시를 교체합니다."""
    await store.search_rules(request.query)
    return store.snapshot()


@router.post("/rules/{rule_id}/toggle", response_model=DashboardSnapshot, summary="룰 상태 토글")
async def toggle_rule(
    rule_id: UUID,
    store: RuleManagementStore = Depends(get_rule_store),
):
    await store.toggle_rule_status(rule_id)
    return store.snapshot()


@router.delete("/rules/{rule_id}", response_model=DashboardSnapshot, summary="룰 삭제")
async def delete_rule(
    rule_id: UUID,
    store: RuleManagementStore = Depends(get_rule_store),
):
    await store.delete_rule(rule_id)
    return store.snapshot()


@router.get("/rules/{rule_id}/history", response_model=DashboardSnapshot, summary="룰 이력")
async def view_rule_history(
    rule_id: UUID,
    store: RuleManagementStore = Depends(get_rule_store),
):
    if store.view_rule_history(rule_id) is None:
        raise RuleNotFoundException(str(rule_id))
    return store.snapshot()


# --- 폼 ---


@router.post("/form", response_model=DashboardSnapshot, summary="생성 폼 열기")
async def open_create_form(store: RuleManagementStore = Depends(get_rule_store)):
    store.open_create_modal()
    return store.snapshot()


@router.post("/rules/{rule_id}/edit", response_model=DashboardSnapshot, summary="수정 폼 열기")
async def open_edit_form(
    rule_id: UUID,
    store: RuleManagementStore = Depends(get_rule_store),
):
    if not store.edit_rule(rule_id):
        raise RuleNotFoundException(str(rule_id))
    return store.snapshot()


@router.delete("/form", response_model=DashboardSnapshot, summary="폼 닫기")
async def close_form(store: RuleManagementStore = Depends(get_rule_store)):
    RuleForm(store).close()
    return store.snapshot()


@router.post("/form/submit", response_model=FormSubmitResponse, summary="폼 저장")
async def submit_form(
    request: RuleFormData,
    store: RuleManagementStore = Depends(get_rule_store),
):
    """
    폼을 저장합니다.

    수정 폼이 열려 있으면 해당 룰을 수정하고, 아니면 새 룰을 생성합니다.
    저장에 성공한 경우에만 폼이 닫힙니다.
    """
    form = RuleForm(store)
    form.set_values(**request.model_dump())
    rule = await form.submit()

    return FormSubmitResponse(
        saved=rule is not None,
        rule=rule,
        field_errors=form.errors,
        error=None if rule is not None else store.error,
        snapshot=store.snapshot(),
    )


@router.post(
    "/form/check-condition",
    response_model=ConditionCheckResponse,
    summary="룰 조건 문법 검사",
)
async def check_condition(
    request: ConditionCheckRequest,
    store: RuleManagementStore = Depends(get_rule_store),
):
    """조건 문법 검사는 아직 구현되지 않아 항상 성공을 반환합니다."""
    form = RuleForm(store)
    form.set_values(condition=request.condition)
    result = await form.check_condition()
    if result is None:
        raise ValidationException(form.errors["condition"], field="condition")
    return result


# --- 기타 UI 상태 ---


@router.post("/chargeback-analysis", response_model=DashboardSnapshot, summary="차지백 분석 열기")
async def open_chargeback_analysis(store: RuleManagementStore = Depends(get_rule_store)):
    store.open_chargeback_analysis()
    return store.snapshot()


@router.delete("/chargeback-analysis", response_model=DashboardSnapshot, summary="차지백 분석 닫기")
async def close_chargeback_analysis(store: RuleManagementStore = Depends(get_rule_store)):
    store.close_chargeback_analysis()
    return store.snapshot()


@router.delete("/error", response_model=DashboardSnapshot, summary="오류 메시지 지우기")
async def clear_error(store: RuleManagementStore = Depends(get_rule_store)):
    store.clear_error()
    return store.snapshot()


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT, summary="로그아웃")
async def end_session(
    principal: Principal = Depends(get_current_principal),
    registry: StoreRegistry = Depends(get_store_registry),
):
    """사용자의 스토어와 실시간 구독을 정리합니다."""
    await registry.release(principal.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
