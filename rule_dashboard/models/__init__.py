"""
룰 관리 대시보드 데이터 모델
"""

from .base import Base, TimestampMixin
from .rule import (
    Rule,
    RuleSeverity,
    RuleStatus,
    DEFAULT_CATEGORY,
    RULE_CATEGORIES,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "Rule",
    "RuleSeverity",
    "RuleStatus",
    "DEFAULT_CATEGORY",
    "RULE_CATEGORIES",
]
