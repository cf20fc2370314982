"""
룰 관리 대시보드 FastAPI 메인 애플리케이션

사기 탐지 룰을 조회/생성/수정/토글/삭제하는 대시보드 API 서버입니다.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from rule_dashboard.config import settings
from rule_dashboard.database import AsyncSessionLocal, close_db
from rule_dashboard.services.realtime import RuleChangePublisher
from rule_dashboard.store.registry import StoreRegistry
from rule_dashboard.utils.exceptions import AppException
from rule_dashboard.utils.logging import setup_logging
from rule_dashboard.utils.redis_client import close_redis, init_redis
from rule_dashboard.utils.sentry_config import init_sentry

# API 라우터
from rule_dashboard.api.rules import router as rules_router
from rule_dashboard.api.dashboard import router as dashboard_router

# 로깅 설정
import logging

setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT, settings.LOG_FILE)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    애플리케이션 라이프사이클 관리

    시작 시: Sentry, Redis(실시간 알림 사용 시), 스토어 레지스트리 준비
    종료 시: 사용자별 스토어와 연결 정리
    """
    logger.info("룰 관리 대시보드 서버 시작 중...")

    init_sentry(
        settings.SENTRY_DSN,
        environment=settings.ENV,
        release=settings.APP_VERSION,
    )

    redis = None
    publisher = None
    if settings.REALTIME_ENABLED:
        redis = await init_redis(settings.REDIS_URL)
        publisher = RuleChangePublisher(redis, settings.REALTIME_CHANNEL)

    app.state.change_publisher = publisher
    app.state.store_registry = StoreRegistry(
        AsyncSessionLocal,
        publisher=publisher,
        redis=redis,
        channel=settings.REALTIME_CHANNEL,
    )

    logger.info("서버 시작 완료")
    yield

    logger.info("룰 관리 대시보드 서버 종료 중...")
    await app.state.store_registry.close()
    await close_redis()
    await close_db()
    logger.info("서버 종료 완료")


# FastAPI 애플리케이션 인스턴스
app = FastAPI(
    title=settings.APP_NAME,
    description="사기 탐지 룰 관리 대시보드",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


# CORS 미들웨어 설정 (대시보드 프론트엔드 연동)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 전역 예외 핸들러
@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """애플리케이션 정의 예외 처리"""
    logger.warning(
        f"AppException: {exc.message}",
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """모든 예외를 캐치하는 최종 핸들러"""
    logger.error(
        f"Unhandled exception: {str(exc)}",
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "서버 내부 오류가 발생했습니다. 잠시 후 다시 시도해주세요.",
        },
    )


# 헬스 체크 엔드포인트
@app.get("/", tags=["Health"])
async def root():
    """루트 엔드포인트"""
    return {
        "service": settings.APP_NAME,
        "status": "running",
        "version": settings.APP_VERSION,
        "description": "사기 탐지 룰 관리 대시보드",
    }


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """헬스 체크 엔드포인트 (로드 밸런서용)"""
    registry = getattr(request.app.state, "store_registry", None)
    return {
        "status": "healthy",
        "realtime": "enabled" if settings.REALTIME_ENABLED else "disabled",
        "active_stores": len(registry) if registry is not None else 0,
    }


# API 라우터 등록
app.include_router(rules_router)
app.include_router(dashboard_router)


if __name__ == "__main__":
    # 개발 서버 실행
    uvicorn.run(
        "rule_dashboard.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower(),
    )
