"""FastAPI メインアプリケーション"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from prometheus_client import make_asgi_app

from src import __version__
from src.api.errors import register_exception_handlers
from src.api.middleware.correlation import CorrelationIdMiddleware
from src.api.middleware.security import SecurityHeadersMiddleware
from src.api.routes import (
    admin,
    assistant,
    auditee,
    auditees,
    audits,
    auth,
    dashboard,
    health,
    issues,
    working_papers,
)
from src.config.settings import get_settings
from src.db.engine import get_engine
from src.monitoring.logging import setup_logging
from src.monitoring.metrics import app_info


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """アプリケーションライフサイクル管理"""
    settings = get_settings()

    # ログ設定
    setup_logging(
        level=settings.app_log_level,
        json_output=settings.is_production,
    )

    logger.info(
        "audit-workflow 起動",
        version=__version__,
        env=settings.app_env,
        timezone=settings.app_timezone,
    )

    # メトリクス情報設定
    app_info.info(
        {
            "version": __version__,
            "environment": settings.app_env,
        }
    )

    yield

    await get_engine().dispose()
    logger.info("audit-workflow シャットダウン")


def create_app() -> FastAPI:
    """FastAPIアプリケーションファクトリ"""
    settings = get_settings()

    app = FastAPI(
        title="audit-workflow API",
        description="内部監査ワークフロー（リスク評価・往査・課題管理・フォローアップ）",
        version=__version__,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # ── ミドルウェア ──────────────────────────────────
    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # セキュリティヘッダー
    app.add_middleware(SecurityHeadersMiddleware)

    # 相関ID
    app.add_middleware(CorrelationIdMiddleware)

    # ── 例外ハンドラ ──────────────────────────────────
    register_exception_handlers(app)

    # ── ルーター ──────────────────────────────────────
    api_prefix = "/api/v1"
    app.include_router(health.router, prefix=api_prefix, tags=["health"])
    app.include_router(auth.router, prefix=f"{api_prefix}/auth", tags=["auth"])
    app.include_router(admin.router, prefix=f"{api_prefix}/admin", tags=["admin"])
    app.include_router(dashboard.router, prefix=f"{api_prefix}/dashboard", tags=["dashboard"])
    app.include_router(auditees.router, prefix=f"{api_prefix}/auditees", tags=["auditees"])
    app.include_router(audits.router, prefix=f"{api_prefix}/audits", tags=["audits"])
    app.include_router(working_papers.router, prefix=f"{api_prefix}/working-papers", tags=["working-papers"])
    app.include_router(issues.router, prefix=f"{api_prefix}/issues", tags=["issues"])
    app.include_router(auditee.router, prefix=f"{api_prefix}/auditee", tags=["auditee-portal"])
    app.include_router(assistant.router, prefix=f"{api_prefix}/assistant", tags=["assistant"])

    # ── Prometheusメトリクス ──────────────────────────
    if settings.prometheus_enabled:
        metrics_app = make_asgi_app()
        app.mount("/metrics", metrics_app)

    return app


# アプリケーションインスタンス
app = create_app()


def run() -> None:
    """開発サーバー起動"""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.api.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.is_development,
        log_level=settings.app_log_level.lower(),
    )
