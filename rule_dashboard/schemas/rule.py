"""
룰 Pydantic 스키마

요청/응답 모델과 캐시에 보관되는 룰 스냅샷(RuleRead)을 정의합니다.
"""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rule_dashboard.models.rule import DEFAULT_CATEGORY, RuleSeverity, RuleStatus


class RuleCreate(BaseModel):
    """룰 생성 요청"""

    name: str = Field(..., description="룰 이름", max_length=255)
    description: str = Field(..., description="룰 설명")
    category: str = Field(DEFAULT_CATEGORY, description="카테고리")
    condition: str = Field(..., description="룰 조건식 (자유 텍스트)")
    severity: RuleSeverity = Field(RuleSeverity.MEDIUM, description="심각도")
    status: RuleStatus = Field(RuleStatus.ACTIVE, description="상태")
    log_only: bool = Field(False, description="로그만 남길지 여부")


class RuleUpdate(BaseModel):
    """
    룰 부분 수정 요청

    명시적으로 전달된 필드만 반영됩니다 (exclude_unset).
    """

    name: Optional[str] = Field(None, description="룰 이름", max_length=255)
    description: Optional[str] = Field(None, description="룰 설명")
    category: Optional[str] = Field(None, description="카테고리")
    condition: Optional[str] = Field(None, description="룰 조건식")
    severity: Optional[RuleSeverity] = Field(None, description="심각도")
    status: Optional[RuleStatus] = Field(None, description="상태")
    log_only: Optional[bool] = Field(None, description="로그만 남길지 여부")
    catches: Optional[int] = Field(None, description="탐지 건수", ge=0)
    false_positives: Optional[int] = Field(None, description="오탐 건수", ge=0)
    effectiveness: Optional[int] = Field(None, description="효과성 (0-100)", ge=0, le=100)

    @field_validator("*")
    @classmethod
    def reject_null(cls, value):
        # 모든 컬럼이 NOT NULL이므로 생략은 허용하되 명시적 null은 거부
        if value is None:
            raise ValueError("null은 허용되지 않습니다. 변경하지 않을 필드는 생략하세요.")
        return value


class RuleStatsUpdate(BaseModel):
    """외부 프로세스가 기록하는 룰 통계"""

    catches: Optional[int] = Field(None, description="탐지 건수", ge=0)
    false_positives: Optional[int] = Field(None, description="오탐 건수", ge=0)
    effectiveness: Optional[int] = Field(None, description="효과성 (0-100)", ge=0, le=100)


class RuleRead(BaseModel):
    """룰 응답 (캐시 스냅샷)"""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    user_id: UUID
    name: str
    description: str
    category: str
    condition: str
    severity: RuleSeverity
    status: RuleStatus
    log_only: bool
    catches: int
    false_positives: int
    effectiveness: int
    is_deleted: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RuleListResponse(BaseModel):
    """룰 목록 응답"""

    total: int
    rules: List[RuleRead]


class DashboardSnapshot(BaseModel):
    """
    대시보드 상태 스냅샷

    스토어가 변경될 때마다 구독자에게 전달되는 불변 뷰입니다.
    rules는 현재 탭과 검색어로 필터링된 목록입니다.
    """

    model_config = ConfigDict(frozen=True)

    version: int
    rules: List[RuleRead]
    total: int
    active_count: int
    attention_count: int
    active_tab: str
    search_query: str
    is_loading: bool
    error: Optional[str] = None
    is_create_modal_open: bool = False
    is_edit_modal_open: bool = False
    is_chargeback_analysis_open: bool = False
    editing_rule: Optional[RuleRead] = None


class RuleFormData(BaseModel):
    """룰 생성/수정 폼 입력값"""

    name: str = Field("", max_length=255)
    description: str = ""
    category: str = DEFAULT_CATEGORY
    condition: str = ""
    severity: RuleSeverity = RuleSeverity.MEDIUM
    status: RuleStatus = RuleStatus.ACTIVE
    log_only: bool = False


class FormSubmitResponse(BaseModel):
    """폼 제출 결과"""

    saved: bool
    rule: Optional[RuleRead] = None
    field_errors: Dict[str, str] = Field(default_factory=dict)
    error: Optional[str] = None
    snapshot: DashboardSnapshot


class ConditionCheckResponse(BaseModel):
    """룰 조건 문법 검사 결과"""

    valid: bool
    message: str
