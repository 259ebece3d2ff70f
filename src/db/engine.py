"""SQLAlchemy async engine — コネクションプール管理"""

from functools import lru_cache
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from src.config.settings import get_settings


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """URLからAsyncEngineを生成（SQLiteでは外部キー制約を有効化）"""
    engine = create_async_engine(database_url, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """AsyncEngineシングルトンを返す"""
    settings = get_settings()

    if settings.database_url.startswith("sqlite"):
        return build_engine(settings.database_url, echo=settings.app_debug and settings.is_development)

    return build_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=settings.app_debug and settings.is_development,
    )
