"""audit-workflow データベース初期化スクリプト.

モデル定義から全テーブルと制約（部分ユニークインデックスを含む）を作成する。

使用方法:
    python -m infrastructure.scripts.init_db
    python -m infrastructure.scripts.init_db --drop   # 既存テーブルを削除して再作成
"""

from __future__ import annotations

import argparse
import asyncio

from sqlalchemy.ext.asyncio import AsyncEngine

import src.db.models  # noqa: F401
from src.config.settings import get_settings
from src.db.base import Base
from src.db.engine import build_engine


async def create_schema(engine: AsyncEngine, drop: bool = False) -> list[str]:
    """テーブルを作成し、作成対象のテーブル名を返す."""
    async with engine.begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
            print("[OK] Existing tables dropped")
        await conn.run_sync(Base.metadata.create_all)
    return sorted(Base.metadata.tables)


async def main(drop: bool = False) -> None:
    """メイン実行."""
    settings = get_settings()
    engine = build_engine(settings.database_url, echo=settings.app_debug)

    try:
        print("=== audit-workflow Database Initialization ===")
        tables = await create_schema(engine, drop=drop)
        print(f"[OK] {len(tables)} tables ready: {', '.join(tables)}")
        print("=== Initialization Complete ===")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="audit-workflow のテーブルを作成する")
    parser.add_argument("--drop", action="store_true", help="既存テーブルを削除してから作成する")
    args = parser.parse_args()
    asyncio.run(main(drop=args.drop))
