"""
SQLAlchemy Base 모델

이 모듈은 모든 데이터베이스 모델의 기본 클래스와 타임스탬프 Mixin을 제공합니다.
"""

from datetime import datetime

from sqlalchemy import DateTime, MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


# 네이밍 컨벤션 정의 (Alembic 마이그레이션 시 일관된 제약 조건 이름 생성)
convention = {
    "ix": "ix_%(column_0_label)s",  # 인덱스
    "uq": "uq_%(table_name)s_%(column_0_name)s",  # UNIQUE 제약
    "ck": "ck_%(table_name)s_%(constraint_name)s",  # CHECK 제약
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",  # 외래 키
    "pk": "pk_%(table_name)s",  # 기본 키
}

metadata = MetaData(naming_convention=convention)


class Base(DeclarativeBase):
    """
    모든 데이터베이스 모델의 기본 클래스
    """

    metadata = metadata


class TimestampMixin:
    """
    생성/수정 시간 자동 추적 Mixin

    두 컬럼 모두 데이터베이스 서버가 값을 부여합니다.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="생성 일시",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        comment="수정 일시",
    )
