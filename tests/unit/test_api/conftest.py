"""API テスト共通フィクスチャ"""

from collections.abc import AsyncGenerator, Iterator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.notifications import DeliveryResult, IssueNotifier
from src.storage import LocalFileStorage


@pytest.fixture
def mail_provider() -> MagicMock:
    """送信成功を返すメールプロバイダ"""
    provider = MagicMock()
    provider.deliver = AsyncMock(return_value=DeliveryResult(sent=True))
    return provider


@pytest.fixture
def test_app(session: AsyncSession, mail_provider: MagicMock, tmp_path: Path) -> Iterator[Any]:
    """テスト用FastAPIアプリ（DB・ストレージ・通知をオーバーライド）"""
    from src.api.dependencies import get_db_session, get_notifier, get_storage
    from src.api.main import create_app

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        yield session

    app = create_app()
    app.dependency_overrides[get_db_session] = _session
    app.dependency_overrides[get_storage] = lambda: LocalFileStorage(tmp_path, 1024 * 1024)
    app.dependency_overrides[get_notifier] = lambda: IssueNotifier(mail_provider, base_url="https://audit.example.com")

    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app: Any) -> AsyncGenerator[AsyncClient, None]:
    """テスト用HTTPクライアント"""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
