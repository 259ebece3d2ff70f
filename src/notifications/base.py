"""通知プロバイダ基底クラス"""

from abc import ABC, abstractmethod
from enum import StrEnum
from typing import Any

from pydantic import BaseModel


class NotificationPriority(StrEnum):
    """通知優先度"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationMessage(BaseModel):
    """通知メッセージ"""

    title: str
    body: str
    html_body: str | None = None
    priority: NotificationPriority = NotificationPriority.MEDIUM
    organization_id: int | None = None
    kind: str = ""  # comment_request / followup_request / credentials
    metadata: dict[str, Any] = {}
    action_url: str | None = None  # ポータル画面へのリンク


class DeliveryResult(BaseModel):
    """送信結果 — 失敗しても例外は送出せず呼び出し元へ返す"""

    sent: bool
    error: str | None = None


class BaseNotificationProvider(ABC):
    """通知プロバイダの基底クラス"""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """プロバイダ名"""
        ...

    @abstractmethod
    async def deliver(self, message: NotificationMessage, recipient: str) -> DeliveryResult:
        """通知を送信し結果を返す

        Args:
            message: 通知メッセージ
            recipient: 送信先アドレス
        """
        ...

    async def send(self, message: NotificationMessage, recipient: str) -> bool:
        """送信成功ならTrue"""
        return (await self.deliver(message, recipient)).sent

    @abstractmethod
    async def health_check(self) -> bool:
        """接続チェック"""
        ...
