"""
JWT 인증 미들웨어

인증 제공자가 발급한 액세스 토큰을 검증하고 현재 사용자(Principal)를 제공합니다.

**JWT 구조**:
- Header: 알고리즘 (HS256)
- Payload: sub(사용자 ID), aud, exp, iat, session_id, email, role
- Signature: AUTH_JWT_SECRET으로 검증
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

import jwt
from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from rule_dashboard.config import settings
from rule_dashboard.utils.exceptions import UnauthorizedException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """인증된 사용자 (룰 소유자)"""

    id: UUID
    email: Optional[str] = None
    role: str = "authenticated"
    session_id: Optional[str] = None


class JWTManager:
    """
    JWT 토큰 생성 및 검증 매니저
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        audience: Optional[str] = None,
    ):
        self.secret_key = secret_key or settings.AUTH_JWT_SECRET
        self.algorithm = algorithm or settings.AUTH_JWT_ALGORITHM
        self.audience = audience or settings.AUTH_JWT_AUDIENCE

    def create_access_token(
        self,
        user_id: UUID,
        email: Optional[str] = None,
        session_id: Optional[str] = None,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """
        Access Token 생성 (개발/테스트용)

        Args:
            user_id: 사용자 ID (sub 클레임)
            email: 이메일
            session_id: 세션 ID (없으면 새로 생성)
            expires_delta: 만료 시간 (기본: ACCESS_TOKEN_EXPIRE_MINUTES)

        Returns:
            str: JWT 토큰
        """
        now = datetime.now(timezone.utc)
        expire = now + (
            expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )

        payload = {
            "sub": str(user_id),
            "aud": self.audience,
            "role": "authenticated",
            "session_id": session_id or secrets.token_hex(16),
            "iat": now,
            "exp": expire,
        }
        if email:
            payload["email"] = email

        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        JWT 토큰 검증

        Raises:
            UnauthorizedException: 토큰이 유효하지 않은 경우
        """
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
            )
        except jwt.ExpiredSignatureError:
            logger.warning("[JWT] 토큰 만료")
            raise UnauthorizedException("토큰이 만료되었습니다.")
        except jwt.InvalidTokenError as e:
            logger.warning(f"[JWT] 유효하지 않은 토큰: {e}")
            raise UnauthorizedException("유효하지 않은 토큰입니다.")

    def principal_from_token(self, token: str) -> Principal:
        """토큰을 검증하고 Principal로 변환"""
        payload = self.verify_token(token)

        try:
            user_id = UUID(payload["sub"])
        except (KeyError, ValueError, TypeError):
            raise UnauthorizedException("토큰에서 사용자 정보를 찾을 수 없습니다.")

        return Principal(
            id=user_id,
            email=payload.get("email"),
            role=payload.get("role", "authenticated"),
            session_id=payload.get("session_id"),
        )


# 전역 JWT 매니저 인스턴스
jwt_manager = JWTManager()


# HTTPBearer 스키마 (Authorization: Bearer <token>)
bearer_scheme = HTTPBearer(auto_error=False)


def get_jwt_manager() -> JWTManager:
    """JWT 매니저 의존성"""
    return jwt_manager


async def verify_public_key(apikey: Optional[str] = Header(None)) -> None:
    """
    공개 API 키 검증

    BACKEND_PUBLIC_KEY가 설정된 경우에만 apikey 헤더를 요구합니다.
    """
    expected = settings.BACKEND_PUBLIC_KEY
    if not expected:
        return

    if apikey is None or not secrets.compare_digest(apikey, expected):
        logger.warning("[AUTH] 공개 API 키가 없거나 일치하지 않음")
        raise UnauthorizedException("유효하지 않은 API 키입니다.")


async def get_optional_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    manager: JWTManager = Depends(get_jwt_manager),
) -> Optional[Principal]:
    """
    현재 사용자 (선택)

    토큰이 없으면 None, 토큰이 있으나 유효하지 않으면 401을 반환합니다.
    """
    if not credentials:
        return None

    principal = manager.principal_from_token(credentials.credentials)
    logger.debug(f"[JWT] 토큰 검증 성공: user={principal.id}")
    return principal


async def get_current_principal(
    principal: Optional[Principal] = Depends(get_optional_principal),
) -> Principal:
    """
    현재 사용자 (필수)

    Raises:
        UnauthorizedException: 토큰이 제공되지 않은 경우
    """
    if principal is None:
        logger.warning("[JWT] 토큰이 제공되지 않음")
        raise UnauthorizedException("인증 토큰이 필요합니다.")

    return principal
