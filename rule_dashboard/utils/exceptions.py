"""
커스텀 예외 클래스 정의

애플리케이션 전역에서 사용하는 예외 클래스를 정의합니다.
"""

from typing import Optional, Any
from fastapi import status


class AppException(Exception):
    """
    애플리케이션 기본 예외 클래스

    모든 커스텀 예외는 이 클래스를 상속받습니다.
    message는 대시보드에 그대로 표시되는 문자열입니다.
    """

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "app_error",
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(AppException):
    """
    입력 검증 실패 예외

    사용자 입력이 유효하지 않을 때 발생합니다.
    """

    def __init__(
        self,
        message: str = "입력 데이터가 유효하지 않습니다.",
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        if field:
            details = details or {}
            details["field"] = field

        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="validation_error",
            details=details,
        )


class NotFoundException(AppException):
    """
    리소스를 찾을 수 없을 때 발생하는 예외
    """

    def __init__(
        self,
        resource: str = "리소스",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
    ):
        if message is None:
            if resource_id:
                message = f"{resource}를 찾을 수 없습니다 (ID: {resource_id})"
            else:
                message = f"{resource}를 찾을 수 없습니다."

        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="not_found",
            details={"resource": resource, "resource_id": resource_id},
        )


class UnauthorizedException(AppException):
    """
    인증 실패 예외 (401 Unauthorized)

    로그인한 사용자 없이 룰을 생성하려 할 때도 발생합니다.
    """

    def __init__(self, message: str = "인증에 실패했습니다."):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="unauthorized",
        )


class DataServiceException(AppException):
    """
    데이터 서비스 요청 실패 예외

    전송 오류, 접근 정책 거부, 체크 제약 위반, 대상 행 없음 등
    백엔드가 요청을 거부한 모든 경우를 나타냅니다. 재시도하지 않습니다.
    """

    def __init__(
        self,
        message: str = "데이터 서비스 요청에 실패했습니다.",
        operation: Optional[str] = None,
        status_code: int = status.HTTP_502_BAD_GATEWAY,
        details: Optional[dict[str, Any]] = None,
    ):
        details = details or {}
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            status_code=status_code,
            error_code="data_service_error",
            details=details,
        )


class RuleNotFoundException(NotFoundException):
    """룰을 찾을 수 없을 때"""

    def __init__(self, rule_id: str):
        super().__init__(resource="룰", resource_id=rule_id)
