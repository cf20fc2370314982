"""
로깅 설정 및 민감 데이터 자동 마스킹

액세스 토큰, API 키, 이메일이 로그에 그대로 남지 않도록 마스킹합니다.
"""

import logging
import re
import json
from datetime import datetime
from typing import Optional
import os


class SensitiveDataFilter(logging.Filter):
    """
    민감 데이터 자동 마스킹 필터

    로그에 출력되는 민감 정보를 자동으로 마스킹합니다.
    """

    # 마스킹할 필드 패턴
    SENSITIVE_PATTERNS = {
        # Bearer 토큰: "Bearer eyJ..." → "Bearer ***"
        "bearer": (
            r"(Bearer)\s+[A-Za-z0-9\-_\.=]+",
            r"\1 ***",
        ),
        # JWT 토큰: "token": "eyJ..." → "token": "***"
        "token": (
            r'"(token|access_token|refresh_token)"\s*:\s*"[^"]*"',
            r'"\1": "***"',
        ),
        # 공개 API 키: apikey=abc → apikey=***
        "apikey": (
            r"(apikey|api_key)([\"']?\s*[:=]\s*[\"']?)[^\s\"',}]+",
            r"\1\2***",
        ),
        # 이메일 일부 마스킹: user@example.com → u***@example.com
        "email": (
            r"\b([a-zA-Z0-9._%+-])[a-zA-Z0-9._%+-]*@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})\b",
            r"\1***@\2",
        ),
    }

    def filter(self, record: logging.LogRecord) -> bool:
        """
        로그 레코드를 필터링하여 민감 데이터 마스킹

        Returns:
            bool: 항상 True (필터 통과)
        """
        if isinstance(record.msg, str):
            record.msg = self.mask_sensitive_data(record.msg)

        if record.args:
            record.args = tuple(
                self.mask_sensitive_data(str(arg)) for arg in record.args
            )

        return True

    def mask_sensitive_data(self, text: str) -> str:
        """민감 데이터 마스킹"""
        for pattern, replacement in self.SENSITIVE_PATTERNS.values():
            text = re.sub(pattern, replacement, text, flags=re.IGNORECASE)

        return text


class JSONFormatter(logging.Formatter):
    """
    JSON 형식 로그 포맷터

    구조화된 로그를 위해 JSON 형식으로 출력합니다.
    """

    # LogRecord 기본 속성 (extra로 전달된 값만 골라내기 위해 사용)
    _RESERVED = set(
        logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
    ) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # logger.info(..., extra={...})로 전달된 컨텍스트
        for key, value in record.__dict__.items():
            if key not in self._RESERVED and not key.startswith("_"):
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    전역 로깅 설정

    Args:
        log_level: 로그 레벨 (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: 로그 포맷 ("json" 또는 "text")
        log_file: 로그 파일 경로 (None이면 콘솔만)
    """
    log_level = log_level or os.getenv("LOG_LEVEL", "INFO")
    log_format = log_format or os.getenv("LOG_FORMAT", "json")
    log_file = log_file or os.getenv("LOG_FILE")

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # 기존 핸들러 제거
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if log_format == "json":
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.addFilter(SensitiveDataFilter())
        root_logger.addHandler(file_handler)

    # 써드파티 라이브러리 로그 레벨 조정
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
