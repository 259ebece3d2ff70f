"""FastAPI 依存性注入"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from src.db.session import get_session
from src.llm_gateway.assistant import IssueWritingAssistant
from src.llm_gateway.gateway import LLMGateway
from src.llm_gateway.providers.anthropic import AnthropicProvider
from src.notifications import EmailNotificationProvider, IssueNotifier
from src.storage import FileStorage, Upload, get_file_storage


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """DBセッション依存性"""
    async for session in get_session():
        yield session


def get_llm_gateway() -> LLMGateway:
    """LLMゲートウェイ依存性"""
    gateway = LLMGateway()
    gateway.register_provider(AnthropicProvider())
    return gateway


def get_writing_assistant() -> IssueWritingAssistant:
    return IssueWritingAssistant(get_llm_gateway())


def get_storage() -> FileStorage:
    """ファイルストレージ依存性"""
    return get_file_storage()


def get_notifier() -> IssueNotifier:
    """メール通知依存性"""
    return IssueNotifier(EmailNotificationProvider())


async def read_upload(file: UploadFile | None) -> Upload | None:
    """multipartのファイルを保存用に読み込む（未添付ならNone）"""
    if file is None or not file.filename:
        return None
    content = await file.read()
    return Upload(filename=file.filename, content=content, content_type=file.content_type)
