"""共通テストフィクスチャ"""

import os
from collections.abc import AsyncGenerator
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

# テスト用に環境変数を設定
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("APP_DEBUG", "false")
os.environ.setdefault("APP_TIMEZONE", "Asia/Tokyo")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-testing-only")
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-test-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SMTP_HOST", "")
os.environ.setdefault("PROMETHEUS_ENABLED", "false")

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import src.db.models  # noqa: E402,F401
from src.db.base import Base  # noqa: E402
from src.db.engine import build_engine  # noqa: E402
from tests.factories import Seed, seed_world  # noqa: E402

TOKYO = ZoneInfo("Asia/Tokyo")


# ── DBフィクスチャ ────────────────────────────────────
@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """テストごとのインメモリSQLite（外部キー制約有効）"""
    test_engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
async def session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with factory() as s:
        yield s


# ── 時刻フィクスチャ ──────────────────────────────────
@pytest.fixture
def now() -> datetime:
    """テストの基準時刻（東京 2026-03-02 10:00）"""
    return datetime(2026, 3, 2, 10, 0, tzinfo=TOKYO)


# ── 組織・ユーザー・監査データ ────────────────────────
@pytest.fixture
async def world(session: AsyncSession, now: datetime) -> Seed:
    """組織1つ分の基本データ（ユーザー各ロール・被監査部門・監査・ユニバース）"""
    return await seed_world(session, now)


@pytest.fixture
async def other_world(session: AsyncSession, now: datetime, world: Seed) -> Seed:
    """別組織の基本データ（組織分離の検証用）"""
    return await seed_world(session, now, suffix="other")
