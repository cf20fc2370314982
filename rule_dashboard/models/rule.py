"""
Rule 모델: 사용자가 소유하는 사기 탐지 룰

조건식(condition)은 자유 텍스트로 저장만 하며 이 서비스에서 해석하지 않습니다.
catches/false_positives/effectiveness 통계는 외부 프로세스가 기록합니다.
"""

from uuid import UUID, uuid4
import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class RuleSeverity(str, enum.Enum):
    """룰 심각도"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RuleStatus(str, enum.Enum):
    """룰 상태"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    WARNING = "warning"  # 검토가 필요한 룰


DEFAULT_CATEGORY = "Behavioral"

# 대시보드에서 제공하는 기본 카테고리 (열린 집합)
RULE_CATEGORIES = ["Behavioral", "Payment Method", "Technical", "Identity"]


class Rule(Base, TimestampMixin):
    """
    Rule 모델

    소유자(user_id)만 조회/수정할 수 있으며, 삭제는 is_deleted 플래그로만 처리합니다.
    """

    __tablename__ = "rules"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
        comment="고유 식별자",
    )

    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
        comment="소유자 (인증된 사용자 ID)",
    )

    name: Mapped[str] = mapped_column(Text, nullable=False, comment="룰 이름")

    description: Mapped[str] = mapped_column(Text, nullable=False, comment="룰 설명")

    category: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=DEFAULT_CATEGORY,
        server_default=DEFAULT_CATEGORY,
        comment="카테고리 (Behavioral, Payment Method 등)",
    )

    condition: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="룰 조건식 (해석하지 않는 자유 텍스트)",
    )

    severity: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RuleSeverity.MEDIUM.value,
        server_default=RuleSeverity.MEDIUM.value,
        comment="심각도 (low, medium, high)",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RuleStatus.ACTIVE.value,
        server_default=RuleStatus.ACTIVE.value,
        index=True,
        comment="상태 (active, inactive, warning)",
    )

    log_only: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
        comment="차단 없이 로그만 남기는지 여부",
    )

    # 외부 프로세스가 기록하는 통계
    catches: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
        comment="탐지한 사기 건수",
    )

    false_positives: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
        comment="오탐 건수",
    )

    effectiveness: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
        comment="효과성 (0-100%)",
    )

    is_deleted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
        index=True,
        comment="소프트 삭제 플래그",
    )

    __table_args__ = (
        CheckConstraint(
            "severity IN ('low', 'medium', 'high')",
            name="severity_valid",
        ),
        CheckConstraint(
            "status IN ('active', 'inactive', 'warning')",
            name="status_valid",
        ),
        CheckConstraint(
            "effectiveness >= 0 AND effectiveness <= 100",
            name="effectiveness_range",
        ),
        Index(
            "idx_rules_user_active",
            "user_id",
            "is_deleted",
            postgresql_where=text("is_deleted = false"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Rule(id={self.id}, name={self.name}, status={self.status})>"
